"""
Beanie ODM models for audits and their 1:1 side documents.

Field names follow the persisted camelCase shape through aliases, so the
collections stay readable by the rest of the audit platform.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from beanie import Document, Indexed, PydanticObjectId
from pydantic import BaseModel, ConfigDict, Field

from .enums import AuditKind, AuditState, ProcedureStatus, RetestStatus


class Finding(BaseModel):
    """Vulnerability finding embedded in an audit."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: Optional[PydanticObjectId] = Field(default=None, alias="_id")
    title: Optional[str] = None
    vuln_type: Optional[str] = Field(default=None, alias="vulnType", description="Finding category")
    description: Optional[str] = None
    remediation: Optional[str] = None
    references: List[str] = Field(default_factory=list)
    cvssv3: Optional[str] = Field(default=None, description="CVSS v3 vector string")
    cvssv4: Optional[str] = Field(default=None, description="CVSS v4 vector string")
    retest_status: Optional[RetestStatus] = Field(default=None, alias="retestStatus")

    @property
    def cvss_vector(self) -> Optional[str]:
        """Whichever CVSS vector is populated (v3 first)."""
        return self.cvssv3 or self.cvssv4


class Audit(Document):
    """Security audit with its embedded findings."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    name: str
    audit_type: Optional[str] = Field(default=None, alias="auditType")
    language: Optional[str] = None
    date_start: Optional[str] = None
    date_end: Optional[str] = None
    company: Optional[PydanticObjectId] = None
    creator: Optional[PydanticObjectId] = None
    collaborators: List[PydanticObjectId] = Field(default_factory=list)
    state: AuditState = AuditState.EDIT
    type: AuditKind = AuditKind.DEFAULT
    findings: List[Finding] = Field(default_factory=list)
    sections: List[Dict[str, Any]] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.utcnow, alias="createdAt")
    updated_at: datetime = Field(default_factory=datetime.utcnow, alias="updatedAt")

    class Settings:
        name = "audits"
        indexes = ["company", "createdAt", "state"]


class DocumentReference(BaseModel):
    """Official document reference (CITE number and date)."""

    cite: Optional[str] = Field(default=None, max_length=200)
    fecha: Optional[datetime] = None
    descripcion: Optional[str] = Field(default=None, max_length=1000)

    @property
    def is_populated(self) -> bool:
        return bool(self.cite) or self.fecha is not None


class AuditProcedure(Document):
    """Procedure documentation attached to one audit."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    audit_id: Indexed(PydanticObjectId, unique=True) = Field(alias="auditId")
    origen: str = Field(max_length=200, description="Procedure code, e.g. PR01")
    alcance: List[str] = Field(default_factory=list)
    alcance_descripcion: Optional[str] = Field(default=None, alias="alcanceDescripcion")

    solicitud: Optional[DocumentReference] = None
    instructivo: Optional[DocumentReference] = None
    informe: Optional[DocumentReference] = None
    respuesta: Optional[DocumentReference] = None

    nota_externa: Optional[str] = Field(default=None, alias="notaExterna")
    nota_interna: Optional[str] = Field(default=None, alias="notaInterna")

    nota_retest: Optional[str] = Field(default=None, alias="notaRetest")
    informe_retest: Optional[DocumentReference] = Field(default=None, alias="informeRetest")
    respuesta_retest: Optional[DocumentReference] = Field(default=None, alias="respuestaRetest")
    nota_interna_retest: Optional[str] = Field(default=None, alias="notaInternaRetest")

    class Settings:
        name = "auditprocedures"


class AuditStatus(Document):
    """Workflow status of one audit."""

    model_config = ConfigDict(populate_by_name=True)

    audit_id: Indexed(PydanticObjectId, unique=True) = Field(alias="auditId")
    status: ProcedureStatus = ProcedureStatus.EVALUANDO

    class Settings:
        name = "auditstatus"
