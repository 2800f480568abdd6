"""
AuditLens API routers

All analytics endpoints live under ``/api/analytics``; permission
administration is mounted at ``/api/analytics/permissions``.
"""

from fastapi import APIRouter

from . import analytics, analytics_permissions

router = APIRouter(prefix="/api/analytics")
router.include_router(analytics_permissions.router)
router.include_router(analytics.router)

__all__ = ["router"]
