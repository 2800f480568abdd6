"""
Single-audit dashboard and summary.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from beanie import PydanticObjectId

from ...errors import NotFoundError
from ...models.audit_models import Audit, AuditProcedure
from ...models.enums import AuditState, RetestStatus
from ...repositories import (
    AuditProcedureRepository,
    AuditRepository,
    AuditStatusRepository,
    CompanyRepository,
    SettingsRepository,
    UserRepository,
)
from .constants import UNCATEGORIZED, VERIFICATION_COLORS
from .cvss import approximate_cvss_score, retest_label, severity_label
from .findings import analyze, group_by_category
from .global_stats import NO_STATUS, SEVERITY_ROWS
from .helpers import days_between, format_date, percentage

logger = logging.getLogger(__name__)

# Document references checked by the completion heuristic
COMPLETION_DOCUMENTS = ["solicitud", "instructivo", "informe", "respuesta"]


def completion_percentage(audit: Audit, procedure: Optional[AuditProcedure]) -> int:
    """
    Rough completion of an audit, as a whole percentage.

    Checks the four evaluation document references (only when a procedure
    exists), the approved state, and the presence of findings (only
    counted when there are some, and then always complete).
    """
    total = 0
    done = 0

    if procedure is not None:
        for name in COMPLETION_DOCUMENTS:
            total += 1
            reference = getattr(procedure, name, None)
            if reference is not None and reference.is_populated:
                done += 1

    total += 1
    if audit.state == AuditState.APPROVED:
        done += 1

    if audit.findings:
        total += 1
        done += 1

    return int(percentage(done, total))


def audit_duration_days(audit: Audit, now: Optional[datetime] = None) -> int:
    """Days from date_start to date_end (or now); from createdAt when no start is recorded."""
    now = now or datetime.utcnow()
    if not audit.date_start:
        days = days_between(audit.created_at, now)
    else:
        days = days_between(audit.date_start, audit.date_end or now)
    return days or 0


def findings_by_section(audit: Audit) -> List[Dict[str, Any]]:
    """Finding stats per report section, matching findings referenced by the section's custom fields."""
    rows = []
    for section in audit.sections or []:
        referenced = {str(cf.get("customField")) for cf in section.get("customFields") or [] if cf.get("customField")}
        section_findings = [f for f in audit.findings if f.id is not None and str(f.id) in referenced]
        rows.append(
            {
                "name": section.get("name") or "Sin nombre",
                "field": section.get("field") or "",
                "totalFindings": len(section_findings),
                **analyze(section_findings).to_dashboard(),
            }
        )
    return rows


def _identity(user: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not user:
        return None
    return {
        "id": user.get("_id"),
        "username": user.get("username"),
        "fullName": f"{user.get('firstname') or ''} {user.get('lastname') or ''}".strip(),
    }


def _procedure_block(procedure: Optional[AuditProcedure]) -> Optional[Dict[str, Any]]:
    if procedure is None:
        return None
    return {
        "origen": procedure.origen,
        "alcance": procedure.alcance or [],
        "alcanceDescripcion": procedure.alcance_descripcion,
        "documentacion": {
            "solicitud": procedure.solicitud,
            "instructivo": procedure.instructivo,
            "informe": procedure.informe,
            "respuesta": procedure.respuesta,
            "notaExterna": procedure.nota_externa,
            "notaInterna": procedure.nota_interna,
        },
        "retest": {
            "notaRetest": procedure.nota_retest,
            "informeRetest": procedure.informe_retest,
            "respuestaRetest": procedure.respuesta_retest,
            "notaInternaRetest": procedure.nota_interna_retest,
        },
    }


class AuditDashboardService:
    """
    Dashboard of one audit.

    Example:
        >>> service = AuditDashboardService()
        >>> dashboard = await service.get_audit_dashboard(audit_id)
        >>> dashboard["stats"]["porcentajeCompletado"]
        67
    """

    def __init__(
        self,
        audits: Optional[AuditRepository] = None,
        procedures: Optional[AuditProcedureRepository] = None,
        statuses: Optional[AuditStatusRepository] = None,
        companies: Optional[CompanyRepository] = None,
        users: Optional[UserRepository] = None,
        settings_repo: Optional[SettingsRepository] = None,
    ):
        self.audits = audits or AuditRepository()
        self.procedures = procedures or AuditProcedureRepository()
        self.statuses = statuses or AuditStatusRepository()
        self.companies = companies or CompanyRepository()
        self.users = users or UserRepository()
        self.settings_repo = settings_repo or SettingsRepository()

    async def get_audit_company_id(self, audit_id: PydanticObjectId) -> Optional[PydanticObjectId]:
        """Company of an audit (used for access checks), or None when the audit is missing."""
        return await self.audits.get_company_id(audit_id)

    async def get_audit_dashboard(self, audit_id: PydanticObjectId) -> Dict[str, Any]:
        """
        Full dashboard of an audit.

        Raises:
            NotFoundError: The audit does not exist
        """
        audit = await self.audits.find_by_id(audit_id)
        if audit is None:
            raise NotFoundError("Audit", str(audit_id))

        people_ids = [uid for uid in [audit.creator, *audit.collaborators] if uid is not None]
        procedure, status, company, people, colors = await asyncio.gather(
            self.procedures.find_by_audit(audit_id),
            self.statuses.find_by_audit(audit_id),
            self.companies.find_by_id(audit.company) if audit.company else _none(),
            self.users.find_identities(people_ids),
            self.settings_repo.get_cvss_colors(),
        )
        people_by_id = {str(p["_id"]): p for p in people}

        stats = analyze(audit.findings)
        wire_stats = stats.to_dashboard()
        severity_values = {
            "Critical": stats.critical,
            "High": stats.high,
            "Medium": stats.medium,
            "Low": stats.low,
            "Info": stats.info,
        }

        return {
            "audit": {
                "id": audit.id,
                "name": audit.name,
                "auditType": audit.audit_type,
                "state": audit.state.value if audit.state else None,
                "status": status.status.value if status else NO_STATUS,
                "language": audit.language,
                "dateStart": audit.date_start,
                "dateEnd": audit.date_end,
                "createdAt": audit.created_at,
                "updatedAt": audit.updated_at,
            },
            "company": (
                {
                    "id": company.id,
                    "name": company.name,
                    "shortName": company.short_name,
                    "logo": company.logo,
                    "cuadroDeMando": company.cuadro_de_mando,
                }
                if company
                else None
            ),
            "creator": _identity(people_by_id.get(str(audit.creator))) if audit.creator else None,
            "collaborators": [
                _identity(people_by_id[str(uid)]) for uid in audit.collaborators if str(uid) in people_by_id
            ],
            "procedure": _procedure_block(procedure),
            "stats": {
                "totalFindings": stats.total,
                "tiempoEvaluacionDias": audit_duration_days(audit),
                "porcentajeCompletado": completion_percentage(audit, procedure),
                **wire_stats,
            },
            "vulnerabilidadesPorSeveridad": [
                {"name": label.value, "value": severity_values[label.value], "color": colors[color_key]}
                for label, color_key in SEVERITY_ROWS
            ],
            "estadoVerificacion": [
                {"name": "Remediated", "value": stats.remediated, "color": VERIFICATION_COLORS["remediated"]},
                {
                    "name": "Not Remediated",
                    "value": stats.not_remediated,
                    "color": VERIFICATION_COLORS["notRemediated"],
                },
                {"name": "Partial", "value": stats.partial, "color": VERIFICATION_COLORS["partial"]},
                {"name": "Unverified", "value": stats.unverified, "color": VERIFICATION_COLORS["unverified"]},
            ],
            "findingsPorCategoria": [entry.to_dashboard() for entry in group_by_category(audit.findings)],
            "findingsPorSeccion": findings_by_section(audit),
            "findings": [
                {
                    "id": finding.id,
                    "title": finding.title,
                    "severity": severity_label(finding.cvss_vector).value,
                    "cvssScore": approximate_cvss_score(finding.cvss_vector),
                    "retestStatus": (finding.retest_status or RetestStatus.UNKNOWN).value,
                    "retestStatusLabel": retest_label(finding.retest_status),
                    "category": finding.vuln_type or UNCATEGORIZED,
                }
                for finding in audit.findings
            ],
        }

    async def get_audit_summary(self, audit_id: PydanticObjectId) -> Optional[Dict[str, Any]]:
        """Compact summary of an audit, or None when it does not exist."""
        audit = await self.audits.find_by_id(audit_id)
        if audit is None:
            return None

        status, company = await asyncio.gather(
            self.statuses.find_by_audit(audit_id),
            self.companies.find_by_id(audit.company) if audit.company else _none(),
        )
        stats = analyze(audit.findings)

        return {
            "id": audit.id,
            "name": audit.name,
            "company": (company.name or company.short_name) if company else "Sin compañía",
            "companyId": audit.company,
            "auditType": audit.audit_type,
            "state": audit.state.value if audit.state else None,
            "status": status.status.value if status else NO_STATUS,
            "createdAt": format_date(audit.created_at),
            "stats": {
                "total": stats.total,
                "criticas": stats.critical,
                "altas": stats.high,
                "remediadas": stats.remediated,
                "tasaRemediacion": stats.remediation_rate,
            },
        }


async def _none() -> None:
    return None
