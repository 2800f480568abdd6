"""
AuditLens API application
Analytics dashboards and permission administration over the audit database
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict

import uvicorn
from fastapi import FastAPI

from .config import get_settings
from .middleware.error_handling import register_exception_handlers
from .models.mongo_models import mongo_manager
from .routes import router as analytics_router

settings = get_settings()

logging.basicConfig(level=settings.log_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan management."""
    logger.info(f"Starting {settings.app_name} {settings.app_version}...")
    await mongo_manager.initialize(
        settings.mongodb_url,
        settings.mongodb_database,
        min_pool_size=settings.mongodb_min_pool_size,
        max_pool_size=settings.mongodb_max_pool_size,
        ssl=settings.mongodb_ssl,
        ssl_cert=settings.mongodb_ssl_cert,
        ssl_ca=settings.mongodb_ssl_ca,
    )
    logger.info("MongoDB connection established")

    yield

    logger.info(f"Shutting down {settings.app_name}...")
    await mongo_manager.close()


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Audit analytics dashboards with per-user permission filtering",
        debug=settings.debug,
        lifespan=lifespan,
    )
    register_exception_handlers(app)
    app.include_router(analytics_router)

    @app.get("/health", tags=["Health"])
    async def health() -> Dict[str, Any]:
        return {"status": "ok", "version": settings.app_version, "database": await mongo_manager.health_check()}

    return app


app = create_app()


if __name__ == "__main__":
    # Development server configuration
    uvicorn.run(
        "auditlens.main:app",
        host="0.0.0.0",  # nosec B104 - Intentional for container binding
        port=8000,
        log_level=settings.log_level.lower(),
        reload=settings.debug,
    )
