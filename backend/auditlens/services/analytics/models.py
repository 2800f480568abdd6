"""
Analytics Data Models

Pydantic result types for finding analysis and risk classification.
"""

from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ...models.enums import RiskTier


class FindingStats(BaseModel):
    """Counts of a finding collection by severity bucket and by retest state."""

    model_config = ConfigDict(populate_by_name=True)

    total: int = Field(0, ge=0)

    critical: int = Field(0, ge=0)
    high: int = Field(0, ge=0)
    medium: int = Field(0, ge=0)
    low: int = Field(0, ge=0)
    info: int = Field(0, ge=0)

    remediated: int = Field(0, ge=0)
    not_remediated: int = Field(0, ge=0, alias="notRemediated")
    partial: int = Field(0, ge=0)
    unverified: int = Field(0, ge=0)

    verified: int = Field(0, ge=0)
    remediation_rate: int = Field(0, ge=0, le=100, alias="remediationRate")

    @model_validator(mode="after")
    def validate_totals(self) -> "FindingStats":
        """
        Both the severity and the retest partitions must add up to total.

        Raises:
            ValueError: If a partition does not match total
        """
        severity_sum = self.critical + self.high + self.medium + self.low + self.info
        retest_sum = self.remediated + self.not_remediated + self.partial + self.unverified
        if severity_sum != self.total or retest_sum != self.total:
            raise ValueError(
                f"bucket counts (severity {severity_sum}, retest {retest_sum}) must equal total ({self.total})"
            )
        if self.verified != self.remediated + self.not_remediated + self.partial:
            raise ValueError("verified must equal remediated + notRemediated + partial")
        return self

    def to_dashboard(self) -> Dict[str, int]:
        """Dashboard wire shape (Spanish keys, as read by the dashboard UI)."""
        return {
            "total": self.total,
            "criticas": self.critical,
            "altas": self.high,
            "medias": self.medium,
            "bajas": self.low,
            "info": self.info,
            "remediadas": self.remediated,
            "noRemediadas": self.not_remediated,
            "parciales": self.partial,
            "sinVerificar": self.unverified,
            "verificadas": self.verified,
            "tasaRemediacion": self.remediation_rate,
        }


class CategoryStats(BaseModel):
    """Per-category rollup of findings."""

    category: str
    total: int = 0
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    info: int = 0
    remediated: int = 0

    def to_dashboard(self) -> Dict[str, object]:
        return {
            "category": self.category,
            "total": self.total,
            "criticas": self.critical,
            "altas": self.high,
            "medias": self.medium,
            "bajas": self.low,
            "info": self.info,
            "remediadas": self.remediated,
        }


class RiskAssessment(BaseModel):
    """Risk tier of a company with its display color and sort priority (1 = most urgent)."""

    tier: RiskTier
    color: str
    priority: int = Field(..., ge=1, le=5)

    def to_dashboard(self) -> Dict[str, object]:
        return {"nivel": self.tier.value, "color": self.color, "prioridad": self.priority}


class DashboardFilters(BaseModel):
    """Query filters accepted by the dashboard operations."""

    model_config = ConfigDict(populate_by_name=True)

    year: Optional[int] = Field(default=None, ge=1970, le=9999)
    start_date: Optional[str] = Field(default=None, alias="startDate")
    end_date: Optional[str] = Field(default=None, alias="endDate")
    limit: Optional[int] = Field(default=None, ge=1, le=500)
    prioritize_flagged: bool = Field(default=False, alias="prioritizeFlagged")
    solo_activas: bool = Field(default=False, alias="soloActivas")
    severidad: Optional[str] = None
