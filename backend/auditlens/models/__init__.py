"""
AuditLens data models.

Beanie documents for the audit platform collections read by analytics,
plus the analytics permission record.
"""

from .audit_models import Audit, AuditProcedure, AuditStatus, DocumentReference, Finding
from .catalog_models import AlcanceTemplate, AppSettings, Client, Company, ProcedureTemplate, User
from .permission_models import (
    AnalyticsPermission,
    AnalyticsPermissionBase,
    EndpointFilter,
    EndpointFilters,
    PermissionInfo,
    VisibleSections,
)

__all__ = [
    "Audit",
    "AuditProcedure",
    "AuditStatus",
    "DocumentReference",
    "Finding",
    "AlcanceTemplate",
    "AppSettings",
    "Client",
    "Company",
    "ProcedureTemplate",
    "User",
    "AnalyticsPermission",
    "AnalyticsPermissionBase",
    "EndpointFilter",
    "EndpointFilters",
    "PermissionInfo",
    "VisibleSections",
]
