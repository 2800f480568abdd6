"""
Beanie ODM models for catalog collections read by the analytics layer:
companies, clients, users, procedure/alcance templates and settings.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from beanie import Document, Indexed, PydanticObjectId
from pydantic import ConfigDict, Field

from .enums import UserRole


class Company(Document):
    """Evaluated entity."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    name: Indexed(str, unique=True)
    short_name: Optional[str] = Field(default=None, alias="shortName")
    logo: Optional[str] = None
    status: bool = Field(default=True, description="Active flag")
    cuadro_de_mando: bool = Field(
        default=False,
        alias="cuadroDeMando",
        description="Flagged/priority company tracked on the control board",
    )
    nivel: Optional[str] = Field(default=None, description="Organizational level (CENTRAL/TERRITORIAL)")
    categoria: Optional[str] = None
    nivel_de_madurez: Optional[str] = Field(default=None, alias="nivelDeMadurez")

    class Settings:
        name = "companies"
        indexes = ["status", "cuadroDeMando"]


class Client(Document):
    """Contact person attached to a company."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    firstname: Optional[str] = None
    lastname: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[PydanticObjectId] = None

    class Settings:
        name = "clients"


class User(Document):
    """Platform user; only the role matters to analytics."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    username: Indexed(str, unique=True)
    firstname: Optional[str] = None
    lastname: Optional[str] = None
    email: Optional[str] = None
    role: str = UserRole.ANALYST.value
    enabled: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow, alias="createdAt")

    class Settings:
        name = "users"

    @property
    def full_name(self) -> str:
        return f"{self.firstname or ''} {self.lastname or ''}".strip()


class ProcedureTemplate(Document):
    """Catalog entry describing a procedure code."""

    code: Indexed(str, unique=True)
    name: str
    color: Optional[str] = None

    class Settings:
        name = "proceduretemplates"


class AlcanceTemplate(Document):
    """Catalog entry describing a scope tag."""

    name: Indexed(str, unique=True)
    color: Optional[str] = None

    class Settings:
        name = "alcancetemplates"


class AppSettings(Document):
    """Platform settings document (single instance)."""

    model_config = ConfigDict(extra="allow")

    report: Dict[str, Any] = Field(default_factory=dict)

    class Settings:
        name = "settings"
