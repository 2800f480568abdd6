"""
MongoDB connection management for AuditLens
Initializes the async PyMongo client and the Beanie ODM
"""

import logging
from typing import Any, Dict, Optional

from beanie import init_beanie
from pymongo import AsyncMongoClient

from .audit_models import Audit, AuditProcedure, AuditStatus
from .catalog_models import AlcanceTemplate, AppSettings, Client, Company, ProcedureTemplate, User
from .permission_models import AnalyticsPermission

logger = logging.getLogger(__name__)

DOCUMENT_MODELS = [
    Audit,
    AuditProcedure,
    AuditStatus,
    Company,
    Client,
    User,
    ProcedureTemplate,
    AlcanceTemplate,
    AppSettings,
    AnalyticsPermission,
]


class MongoManager:
    """MongoDB connection and database management"""

    def __init__(self):
        self.client: Optional[AsyncMongoClient] = None
        self.database = None
        self.initialized = False

    async def initialize(self, mongodb_url: str, database_name: str = "auditlens", **kwargs):
        """Initialize MongoDB connection and Beanie ODM"""

        if self.initialized:
            return

        client_kwargs = {
            "minPoolSize": kwargs.get("min_pool_size", 10),
            "maxPoolSize": kwargs.get("max_pool_size", 100),
            "connectTimeoutMS": 30000,
            "serverSelectionTimeoutMS": 30000,
            "heartbeatFrequencyMS": 10000,
        }

        if kwargs.get("ssl", False):
            client_kwargs.update(
                {
                    "tls": True,
                    "tlsCertificateKeyFile": kwargs.get("ssl_cert"),
                    "tlsCAFile": kwargs.get("ssl_ca"),
                }
            )

        self.client = AsyncMongoClient(mongodb_url, **client_kwargs)
        self.database = self.client[database_name]

        logger.info(f"Registering {len(DOCUMENT_MODELS)} Beanie document models")
        try:
            await init_beanie(database=self.database, document_models=DOCUMENT_MODELS)
            logger.info("Beanie ODM initialized successfully")
        except Exception as beanie_error:
            logger.error(f"Beanie initialization failed: {type(beanie_error).__name__}: {beanie_error}")
            raise

        self.initialized = True

    async def health_check(self) -> Dict[str, Any]:
        """Check MongoDB connection health"""
        if not self.initialized:
            return {"status": "error", "message": "Not initialized"}

        try:
            await self.client.admin.command("ping")
            return {
                "status": "healthy",
                "database": self.database.name,
                "document_count": {
                    "audits": await Audit.find_all().count(),
                    "companies": await Company.find_all().count(),
                    "analytics_permissions": await AnalyticsPermission.find_all().count(),
                },
            }
        except Exception as e:
            logger.error(f"MongoDB health check failed: {e}")
            return {"status": "error", "message": "Database unavailable"}

    async def close(self):
        """Close MongoDB connection"""
        if self.client:
            await self.client.close()
            self.initialized = False


# Global MongoDB manager instance
mongo_manager = MongoManager()


async def get_mongo_manager() -> MongoManager:
    """Get MongoDB manager instance"""
    return mongo_manager
