"""
Global and per-company statistics plus the dashboard breakdowns
(procedure, alcance, status, type, severity).

Every method takes an already-merged MongoDB filter over audits.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from ...models.enums import AuditState, RetestStatus, SeverityLabel
from ...repositories import (
    AlcanceTemplateRepository,
    AuditRepository,
    AuditStatusRepository,
    CompanyRepository,
    ProcedureTemplateRepository,
    SettingsRepository,
)
from .constants import NEUTRAL_COLOR
from .cvss import finding_retest_status, finding_vector, severity_label
from .findings import analyze_many
from .helpers import days_between, percentage, round_half_up

logger = logging.getLogger(__name__)

NO_PROCEDURE = "Sin procedimiento"
NO_ALCANCE = "Sin alcance"
NO_STATUS = "Sin estado"
NO_TYPE = "Sin tipo"

# Severity label -> (display name, settings color key)
SEVERITY_ROWS = [
    (SeverityLabel.CRITICAL, "criticalColor"),
    (SeverityLabel.HIGH, "highColor"),
    (SeverityLabel.MEDIUM, "mediumColor"),
    (SeverityLabel.LOW, "lowColor"),
    (SeverityLabel.INFO, "noneColor"),
]


def normalize_procedure_code(code: Optional[str]) -> Optional[str]:
    """
    Canonical catalog code for a procedure origen.

    PR* codes are kept as-is; any VERIF* code maps to VERIF-001 and any
    RETEST* code maps to RETEST.

    Example:
        >>> normalize_procedure_code("VERIF-003")
        'VERIF-001'
    """
    if not code:
        return code
    upper = code.upper()
    if upper.startswith("VERIF"):
        return "VERIF-001"
    if upper.startswith("RETEST"):
        return "RETEST"
    return code


def count_active_criticals(finding_lists: List[Optional[List[Any]]]) -> int:
    """Critical findings whose retest status is anything other than ok."""
    active = 0
    for findings in finding_lists:
        for finding in findings or []:
            if (
                severity_label(finding_vector(finding)) == SeverityLabel.CRITICAL
                and finding_retest_status(finding) != RetestStatus.OK.value
            ):
                active += 1
    return active


class GlobalStatsService:
    """
    Counters and breakdowns over a filtered audit set.

    Example:
        >>> service = GlobalStatsService()
        >>> stats = await service.get_global_stats({"createdAt": {"$gte": start, "$lte": end}})
        >>> stats["totalEvaluaciones"]
        42
    """

    def __init__(
        self,
        audits: Optional[AuditRepository] = None,
        statuses: Optional[AuditStatusRepository] = None,
        companies: Optional[CompanyRepository] = None,
        procedure_templates: Optional[ProcedureTemplateRepository] = None,
        alcance_templates: Optional[AlcanceTemplateRepository] = None,
        settings_repo: Optional[SettingsRepository] = None,
        default_average_duration_days: float = 12.4,
    ):
        self.audits = audits or AuditRepository()
        self.statuses = statuses or AuditStatusRepository()
        self.companies = companies or CompanyRepository()
        self.procedure_templates = procedure_templates or ProcedureTemplateRepository()
        self.alcance_templates = alcance_templates or AlcanceTemplateRepository()
        self.settings_repo = settings_repo or SettingsRepository()
        self.default_average_duration_days = default_average_duration_days

    async def get_global_stats(self, query: Dict[str, Any]) -> Dict[str, Any]:
        """
        Headline counters for the global dashboard.

        Coverage is the share of active companies (narrowed by the
        permission company constraint when present) that had at least one
        matched audit.
        """
        total, active, completed, evaluated_companies, total_companies, rows, average_days = await asyncio.gather(
            self.audits.count(query),
            self.audits.count({**query, "state": AuditState.EDIT.value}),
            self.audits.count({**query, "state": AuditState.APPROVED.value}),
            self.audits.distinct_companies(query),
            self.companies.count_active(query.get("company")),
            self.audits.find_findings(query),
            self.average_duration_days(query),
        )

        evaluated = len(evaluated_companies)
        stats = self._findings_block(rows)
        return {
            "totalEvaluaciones": total,
            "evaluacionesActivas": active,
            "evaluacionesCompletadas": completed,
            "entidadesEvaluadas": evaluated,
            "totalEntidades": total_companies,
            "porcentajeCobertura": percentage(evaluated, total_companies, digits=1, empty=0.0),
            **stats,
            "tiempoPromedioDias": average_days,
        }

    async def get_company_stats(self, query: Dict[str, Any]) -> Dict[str, Any]:
        """Same counters restricted to one company; reports companies evaluated instead of coverage."""
        total, active, completed, evaluated_companies, rows, average_days = await asyncio.gather(
            self.audits.count(query),
            self.audits.count({**query, "state": AuditState.EDIT.value}),
            self.audits.count({**query, "state": AuditState.APPROVED.value}),
            self.audits.distinct_companies(query),
            self.audits.find_findings(query),
            self.average_duration_days(query),
        )

        return {
            "totalEvaluaciones": total,
            "evaluacionesActivas": active,
            "evaluacionesCompletadas": completed,
            "empresasEvaluadas": len(evaluated_companies),
            **self._findings_block(rows),
            "tiempoPromedioDias": average_days,
        }

    def _findings_block(self, rows: List[Dict[str, Any]]) -> Dict[str, Any]:
        finding_lists = [row.get("findings") for row in rows]
        stats = analyze_many(finding_lists)
        return {
            "vulnCriticasActivas": count_active_criticals(finding_lists),
            "tasaRemediacion": stats.remediation_rate,
            "verificacion": {
                "remediadas": stats.remediated,
                "noRemediadas": stats.not_remediated,
                "parciales": stats.partial,
                "sinVerificar": stats.unverified,
                "totalVerificadas": stats.verified,
            },
        }

    async def average_duration_days(self, query: Dict[str, Any]) -> float:
        """
        Mean evaluation length in days over audits with a usable date range.

        Each audit contributes its whole-day length; unparseable pairs are
        skipped. Falls back to the configured default when nothing is usable.
        """
        rows = await self.audits.find_date_ranges(query)
        durations = [
            days
            for days in (days_between(row.get("date_start"), row.get("date_end")) for row in rows)
            if days is not None
        ]
        if not durations:
            return self.default_average_duration_days
        return round_half_up(sum(durations) / len(durations), 1)

    async def get_severity_breakdown(self, query: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Finding counts per severity bucket, colored from platform settings."""
        rows, colors = await asyncio.gather(self.audits.find_findings(query), self.settings_repo.get_cvss_colors())
        stats = analyze_many(row.get("findings") for row in rows)
        values = {
            SeverityLabel.CRITICAL: stats.critical,
            SeverityLabel.HIGH: stats.high,
            SeverityLabel.MEDIUM: stats.medium,
            SeverityLabel.LOW: stats.low,
            SeverityLabel.INFO: stats.info,
        }
        return [
            {"name": label.value, "value": values[label], "color": colors[color_key]}
            for label, color_key in SEVERITY_ROWS
        ]

    async def get_by_procedure(self, query: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Audit counts per procedure origen, labelled from the template catalog.

        Codes are normalized before the catalog lookup; a code the catalog
        does not know keeps its raw value and gets the neutral color.
        """
        rows, catalog = await asyncio.gather(
            self.audits.count_by_procedure(query), self.procedure_templates.as_lookup()
        )

        breakdown = []
        for row in rows:
            origen = row.get("_id") or NO_PROCEDURE
            template = catalog.get(normalize_procedure_code(origen)) or catalog.get(origen)
            if template:
                tipo = f"{origen} - {template['name']}"
                color = template.get("color") or NEUTRAL_COLOR
            else:
                tipo = origen
                color = NEUTRAL_COLOR
            breakdown.append({"tipo": tipo, "cantidad": row["cantidad"], "color": color})
        return breakdown

    async def get_by_alcance(self, query: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Audit counts per scope tag (an audit counts once per tag it declares)."""
        rows, colors = await asyncio.gather(self.audits.count_by_alcance(query), self.alcance_templates.as_lookup())
        return [
            {
                "alcance": row.get("_id") or NO_ALCANCE,
                "cantidad": row["cantidad"],
                "color": colors.get(row.get("_id")) or NEUTRAL_COLOR,
            }
            for row in rows
        ]

    async def get_by_status(self, query: Dict[str, Any]) -> List[Dict[str, Any]]:
        rows = await self.statuses.count_by_status(query)
        return [{"estado": row.get("_id") or NO_STATUS, "cantidad": row["cantidad"]} for row in rows]

    async def get_by_type(self, query: Dict[str, Any]) -> List[Dict[str, Any]]:
        rows = await self.audits.count_by_type(query)
        return [{"tipo": row.get("_id") or NO_TYPE, "cantidad": row["cantidad"]} for row in rows]
