"""
Analytics permission models.

One AnalyticsPermission document per user holds the master switch, the
global company allow/deny lists, one EndpointFilter per dashboard entry
point and the per-section visibility flags.

Visibility and endpoint ``enabled`` flags are three-state: ``None`` (never
set, e.g. a section introduced after the record was written), ``True`` or
``False``. Only an explicit ``False`` hides or disables.
"""

from datetime import datetime
from typing import Dict, List, Optional

from beanie import Document, Indexed, PydanticObjectId
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .enums import ENDPOINT_NAMES, SECTION_NAMES, EndpointName, SectionName


def _dedupe_ids(values: List[PydanticObjectId]) -> List[PydanticObjectId]:
    seen = set()
    unique = []
    for value in values:
        key = str(value)
        if key not in seen:
            seen.add(key)
            unique.append(value)
    return unique


class EndpointFilter(BaseModel):
    """Per-endpoint restriction overrides."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    enabled: Optional[bool] = True
    only_flagged_companies: bool = Field(default=False, alias="onlyFlaggedCompanies")
    allowed_companies: List[PydanticObjectId] = Field(default_factory=list, alias="allowedCompanies")
    excluded_fields: List[str] = Field(default_factory=list, alias="excludedFields")
    max_results: int = Field(default=0, ge=0, alias="maxResults", description="0 = unlimited")

    @field_validator("allowed_companies")
    @classmethod
    def _unique_companies(cls, v: List[PydanticObjectId]) -> List[PydanticObjectId]:
        return _dedupe_ids(v)

    @field_validator("excluded_fields")
    @classmethod
    def _strip_fields(cls, v: List[str]) -> List[str]:
        return list(dict.fromkeys(f.strip() for f in v if f and f.strip()))


# Attribute name for every endpoint, in declaration order
ENDPOINT_ATTRIBUTES: Dict[EndpointName, str] = {
    EndpointName.GLOBAL_DASHBOARD: "global_dashboard",
    EndpointName.COMPANY_DASHBOARD: "company_dashboard",
    EndpointName.AUDIT_DASHBOARD: "audit_dashboard",
    EndpointName.ENTIDADES_CRITICAS: "entidades_criticas",
    EndpointName.VULNERABILIDADES_ENTIDAD: "vulnerabilidades_entidad",
}


class EndpointFilters(BaseModel):
    """Closed record of one EndpointFilter per endpoint name."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    global_dashboard: Optional[EndpointFilter] = Field(default_factory=EndpointFilter, alias="globalDashboard")
    company_dashboard: Optional[EndpointFilter] = Field(default_factory=EndpointFilter, alias="companyDashboard")
    audit_dashboard: Optional[EndpointFilter] = Field(default_factory=EndpointFilter, alias="auditDashboard")
    entidades_criticas: Optional[EndpointFilter] = Field(default_factory=EndpointFilter, alias="entidadesCriticas")
    vulnerabilidades_entidad: Optional[EndpointFilter] = Field(
        default_factory=EndpointFilter, alias="vulnerabilidadesEntidad"
    )

    def get(self, endpoint: EndpointName) -> Optional[EndpointFilter]:
        """Return the filter for an endpoint, or None when the sub-record is absent."""
        return getattr(self, ENDPOINT_ATTRIBUTES[EndpointName(endpoint)])


class VisibleSections(BaseModel):
    """Per-section visibility flags (three-state, see module docstring)."""

    model_config = ConfigDict(extra="forbid")

    stats: Optional[bool] = None
    evaluacionesPorProcedimiento: Optional[bool] = None
    evaluacionesPorAlcance: Optional[bool] = None
    evaluacionesPorEstado: Optional[bool] = None
    evaluacionesPorTipo: Optional[bool] = None
    vulnerabilidadesPorSeveridad: Optional[bool] = None
    tendenciaMensual: Optional[bool] = None
    entidadesEvaluadas: Optional[bool] = None
    evaluacionesRecientes: Optional[bool] = None
    alertasActivas: Optional[bool] = None
    clientesAsociados: Optional[bool] = None

    @classmethod
    def all_visible(cls) -> "VisibleSections":
        return cls(**{name: True for name in SECTION_NAMES})

    def is_visible(self, section: SectionName) -> bool:
        return getattr(self, SectionName(section).value) is not False


class AnalyticsPermissionBase(BaseModel):
    """Persisted fields of an analytics permission record."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: PydanticObjectId = Field(alias="userId")
    custom_permissions_enabled: bool = Field(default=False, alias="customPermissionsEnabled")
    global_only_flagged_companies: bool = Field(default=False, alias="globalOnlyFlaggedCompanies")
    global_allowed_companies: List[PydanticObjectId] = Field(default_factory=list, alias="globalAllowedCompanies")
    global_excluded_companies: List[PydanticObjectId] = Field(
        default_factory=list, alias="globalExcludedCompanies"
    )
    endpoints: Optional[EndpointFilters] = Field(default_factory=EndpointFilters)
    visible_sections: Optional[VisibleSections] = Field(
        default_factory=VisibleSections.all_visible, alias="visibleSections"
    )

    created_by: Optional[PydanticObjectId] = Field(default=None, alias="createdBy")
    updated_by: Optional[PydanticObjectId] = Field(default=None, alias="updatedBy")
    notes: Optional[str] = Field(default=None, max_length=500)

    @field_validator("global_allowed_companies", "global_excluded_companies")
    @classmethod
    def _unique_companies(cls, v: List[PydanticObjectId]) -> List[PydanticObjectId]:
        return _dedupe_ids(v)


class AnalyticsPermission(Document, AnalyticsPermissionBase):
    """Analytics permission document, one per user."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: Indexed(PydanticObjectId, unique=True) = Field(alias="userId")
    created_at: datetime = Field(default_factory=datetime.utcnow, alias="createdAt")
    updated_at: datetime = Field(default_factory=datetime.utcnow, alias="updatedAt")

    class Settings:
        name = "analyticspermissions"
        indexes = ["customPermissionsEnabled"]


class PermissionInfo(BaseModel):
    """Permission digest attached to filtered dashboard payloads."""

    model_config = ConfigDict(populate_by_name=True)

    custom_permissions_enabled: bool = Field(alias="customPermissionsEnabled")
    global_only_flagged_companies: bool = Field(alias="globalOnlyFlaggedCompanies")
    visible_sections: Dict[str, bool] = Field(alias="visibleSections")
    has_restrictions: bool = Field(alias="hasRestrictions")


# Top-level keys an administrator may send on upsert/partial update
EDITABLE_PERMISSION_FIELDS = [
    "customPermissionsEnabled",
    "globalOnlyFlaggedCompanies",
    "globalAllowedCompanies",
    "globalExcludedCompanies",
    "endpoints",
    "visibleSections",
    "notes",
]

__all__ = [
    "ENDPOINT_NAMES",
    "SECTION_NAMES",
    "EDITABLE_PERMISSION_FIELDS",
    "EndpointFilter",
    "EndpointFilters",
    "VisibleSections",
    "AnalyticsPermissionBase",
    "AnalyticsPermission",
    "PermissionInfo",
]
