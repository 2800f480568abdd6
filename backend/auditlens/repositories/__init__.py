"""
Repository Pattern for MongoDB Operations
Centralized query logic for the analytics and permission services
"""

from .audit_repository import AuditProcedureRepository, AuditRepository, AuditStatusRepository
from .base_repository import BaseRepository
from .catalog_repository import (
    AlcanceTemplateRepository,
    ProcedureTemplateRepository,
    SettingsRepository,
    UserRepository,
)
from .company_repository import ClientRepository, CompanyRepository
from .permission_repository import AnalyticsPermissionRepository

__all__ = [
    "BaseRepository",
    "AuditRepository",
    "AuditProcedureRepository",
    "AuditStatusRepository",
    "CompanyRepository",
    "ClientRepository",
    "UserRepository",
    "ProcedureTemplateRepository",
    "AlcanceTemplateRepository",
    "SettingsRepository",
    "AnalyticsPermissionRepository",
]
