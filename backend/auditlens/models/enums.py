"""
Shared Enums

Enumeration types used across models, services and routes.
Kept separate to avoid circular imports.

Usage:
    from auditlens.models.enums import EndpointName, SectionName
"""

from enum import Enum


class AuditState(str, Enum):
    """Lifecycle state of an audit document."""

    EDIT = "EDIT"
    REVIEW = "REVIEW"
    APPROVED = "APPROVED"


class AuditKind(str, Enum):
    """Structural type of an audit (single, multi-target or retest)."""

    DEFAULT = "default"
    MULTI = "multi"
    RETEST = "retest"


class RetestStatus(str, Enum):
    """
    Remediation-verification outcome of a finding.

    A missing value is read as UNKNOWN (not yet verified).
    """

    OK = "ok"
    KO = "ko"
    PARTIAL = "partial"
    UNKNOWN = "unknown"


class ProcedureStatus(str, Enum):
    """Workflow status tracked in the auditstatus collection."""

    EVALUANDO = "EVALUANDO"
    PENDIENTE = "PENDIENTE"
    COMPLETADO = "COMPLETADO"


class UserRole(str, Enum):
    """Roles meaningful to the analytics subsystem."""

    ADMIN = "admin"
    ANALYST = "analyst"


class EndpointName(str, Enum):
    """Dashboard entry points a permission record can restrict independently."""

    GLOBAL_DASHBOARD = "globalDashboard"
    COMPANY_DASHBOARD = "companyDashboard"
    AUDIT_DASHBOARD = "auditDashboard"
    ENTIDADES_CRITICAS = "entidadesCriticas"
    VULNERABILIDADES_ENTIDAD = "vulnerabilidadesEntidad"


class SectionName(str, Enum):
    """Dashboard payload blocks that can be hidden from a user."""

    STATS = "stats"
    EVALUACIONES_POR_PROCEDIMIENTO = "evaluacionesPorProcedimiento"
    EVALUACIONES_POR_ALCANCE = "evaluacionesPorAlcance"
    EVALUACIONES_POR_ESTADO = "evaluacionesPorEstado"
    EVALUACIONES_POR_TIPO = "evaluacionesPorTipo"
    VULNERABILIDADES_POR_SEVERIDAD = "vulnerabilidadesPorSeveridad"
    TENDENCIA_MENSUAL = "tendenciaMensual"
    ENTIDADES_EVALUADAS = "entidadesEvaluadas"
    EVALUACIONES_RECIENTES = "evaluacionesRecientes"
    ALERTAS_ACTIVAS = "alertasActivas"
    CLIENTES_ASOCIADOS = "clientesAsociados"


class SeverityLabel(str, Enum):
    """Severity bucket derived from an approximate CVSS score."""

    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    INFO = "Info"


class RiskTier(str, Enum):
    """Company risk tier computed from active critical/high findings."""

    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    MINIMAL = "Minimal"


class ScopeKind(str, Enum):
    """Scope of a dashboard request."""

    GLOBAL = "global"
    COMPANY = "company"
    AUDIT = "audit"


ENDPOINT_NAMES = [e.value for e in EndpointName]
SECTION_NAMES = [s.value for s in SectionName]
