"""
Entity Analytics

Per-company views: the critical-risk ranking, the evaluated-entities
table, recent evaluations, active alerts, company info and associated
clients.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from beanie import PydanticObjectId

from ...models.enums import RetestStatus, SeverityLabel
from ...repositories import AuditRepository, ClientRepository, CompanyRepository
from .cvss import finding_retest_status, finding_vector, severity_label
from .findings import analyze_many
from .global_stats import NO_STATUS, NO_TYPE, count_active_criticals
from .helpers import format_date, maturity_level, parse_date, percentage
from .risk import assess_risk

logger = logging.getLogger(__name__)

NO_NAME = "Sin nombre"
NO_ENTITY = "Sin entidad"

RANKING_TOTAL_FIELDS = {
    "totalCriticas": "criticas",
    "totalCriticasActivas": "criticasActivas",
    "totalCriticasRemediadas": "criticasRemediadas",
    "totalAltas": "altas",
    "totalAltasActivas": "altasActivas",
    "totalVulnerabilidades": "totalVulnerabilidades",
    "totalRemediadas": "remediadas",
}


def _new_rollup(company: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "companyId": company.get("_id"),
        "nombre": company.get("name") or company.get("shortName") or NO_NAME,
        "nombreCorto": company.get("shortName") or "",
        "logo": company.get("logo"),
        "cuadroDeMando": bool(company.get("cuadroDeMando")),
        "nivelMadurez": maturity_level(company.get("nivelDeMadurez")),
        "nivelOrganizacional": company.get("nivel"),
        "categoria": company.get("categoria"),
        "totalAuditorias": 0,
        "totalVulnerabilidades": 0,
        "criticas": 0,
        "criticasActivas": 0,
        "criticasRemediadas": 0,
        "criticasParciales": 0,
        "criticasSinVerificar": 0,
        "altas": 0,
        "altasActivas": 0,
        "altasRemediadas": 0,
        "medias": 0,
        "bajas": 0,
        "info": 0,
        "remediadas": 0,
        "noRemediadas": 0,
        "parciales": 0,
        "sinVerificar": 0,
        "ultimaAuditoria": None,
    }


def _add_finding(entry: Dict[str, Any], finding: Any) -> None:
    """
    Fold one finding into a company rollup.

    A critical or high finding is active unless its retest status is ok,
    so partial and unverified findings both count as active.
    """
    entry["totalVulnerabilidades"] += 1
    severity = severity_label(finding_vector(finding))
    status = finding_retest_status(finding)
    remediated = status == RetestStatus.OK.value

    if severity == SeverityLabel.CRITICAL:
        entry["criticas"] += 1
        if remediated:
            entry["criticasRemediadas"] += 1
        else:
            entry["criticasActivas"] += 1
            if status == RetestStatus.PARTIAL.value:
                entry["criticasParciales"] += 1
            elif status != RetestStatus.KO.value:
                entry["criticasSinVerificar"] += 1
    elif severity == SeverityLabel.HIGH:
        entry["altas"] += 1
        if remediated:
            entry["altasRemediadas"] += 1
        else:
            entry["altasActivas"] += 1
    elif severity == SeverityLabel.MEDIUM:
        entry["medias"] += 1
    elif severity == SeverityLabel.LOW:
        entry["bajas"] += 1
    else:
        entry["info"] += 1

    if remediated:
        entry["remediadas"] += 1
    elif status == RetestStatus.KO.value:
        entry["noRemediadas"] += 1
    elif status == RetestStatus.PARTIAL.value:
        entry["parciales"] += 1
    else:
        entry["sinVerificar"] += 1


def rank_entities(entities: List[Dict[str, Any]], prioritize_flagged: bool = False) -> List[Dict[str, Any]]:
    """
    Order company rollups for the critical-risk ranking.

    Flagged companies first when requested, then active criticals
    descending, then active highs descending. The sort is stable.
    """

    def key(entity: Dict[str, Any]):
        flagged_rank = 0 if (prioritize_flagged and entity.get("cuadroDeMando")) else 1
        return (flagged_rank, -entity["criticasActivas"], -entity["altasActivas"])

    return sorted(entities, key=key)


def summarize_ranking(ranking: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Totals over a ranking; remediation rates default to 100 when nothing applies."""
    totals: Dict[str, Any] = {"totalEmpresas": len(ranking)}
    for total_key, field in RANKING_TOTAL_FIELDS.items():
        totals[total_key] = sum(entity[field] for entity in ranking)
    totals["tasaRemediacionCriticas"] = percentage(
        totals["totalCriticasRemediadas"], totals["totalCriticas"], empty=100
    )
    totals["tasaRemediacionGeneral"] = percentage(
        totals["totalRemediadas"], totals["totalVulnerabilidades"], empty=100
    )
    return totals


class EntityAnalytics:
    """
    Company-level analytics.

    Example:
        >>> entities = EntityAnalytics()
        >>> top = await entities.top_critical_entities(query, limit=5)
        >>> top["entidades"][0]["riesgo"]["nivel"]
        'Critical'
    """

    def __init__(
        self,
        audits: Optional[AuditRepository] = None,
        companies: Optional[CompanyRepository] = None,
        clients: Optional[ClientRepository] = None,
        high_severity_alert_threshold: int = 50,
    ):
        self.audits = audits or AuditRepository()
        self.companies = companies or CompanyRepository()
        self.clients = clients or ClientRepository()
        self.high_severity_alert_threshold = high_severity_alert_threshold

    async def top_critical_entities(
        self, query: Dict[str, Any], limit: int = 10, prioritize_flagged: bool = False
    ) -> Dict[str, Any]:
        """
        Rank companies by active critical/high findings.

        Args:
            query: Merged audit filter (date range plus permission constraint)
            limit: Maximum number of companies returned
            prioritize_flagged: Put flagged companies ahead of the rest

        Returns:
            Dict with ``resumen`` (totals over the returned ranking) and
            ``entidades`` (ranked company rollups with risk assessment)
        """
        rows = await self.audits.find_findings_with_company(query)

        rollups: Dict[str, Dict[str, Any]] = {}
        for row in rows:
            company = row.get("companyInfo")
            if not company or company.get("_id") is None:
                continue

            key = str(company["_id"])
            entry = rollups.get(key)
            if entry is None:
                entry = rollups[key] = _new_rollup(company)

            entry["totalAuditorias"] += 1
            created = parse_date(row.get("createdAt"))
            if created is not None and (entry["ultimaAuditoria"] is None or created > entry["ultimaAuditoria"]):
                entry["ultimaAuditoria"] = created

            for finding in row.get("findings") or []:
                _add_finding(entry, finding)

        entities = []
        for entry in rollups.values():
            entry["tasaRemediacionCriticas"] = percentage(entry["criticasRemediadas"], entry["criticas"], empty=100)
            entry["tasaRemediacionGeneral"] = percentage(
                entry["remediadas"], entry["totalVulnerabilidades"], empty=100
            )
            entry["riesgo"] = assess_risk(entry["criticasActivas"], entry["altasActivas"]).to_dashboard()
            entry["ultimaAuditoria"] = format_date(entry["ultimaAuditoria"])
            entities.append(entry)

        ranking = rank_entities(entities, prioritize_flagged)[:limit]
        return {"resumen": summarize_ranking(ranking), "entidades": ranking}

    async def evaluated_entities(self, query: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Companies with matched audits, most evaluated first, with finding and retest counts."""
        rows = await self.audits.evaluated_entities(query)

        table = []
        for index, row in enumerate(rows, start=1):
            stats = analyze_many(row.get("allFindings"))
            table.append(
                {
                    "id": index,
                    "nombre": row.get("nombre") or row.get("nombreCorto") or NO_NAME,
                    "nombreCorto": row.get("nombreCorto") or "",
                    "idEntidad": row.get("_id"),
                    "cuadroDeMando": bool(row.get("cuadroDeMando")),
                    "evaluaciones": row.get("evaluaciones", 0),
                    "vulnCriticas": stats.critical,
                    "vulnAltas": stats.high,
                    "totalVulnerabilidades": stats.total,
                    "remediadas": stats.remediated,
                    "noRemediadas": stats.not_remediated,
                    "parciales": stats.partial,
                    "sinVerificar": stats.unverified,
                    "estado": row.get("ultimoEstado") or row.get("estado") or NO_STATUS,
                    "ultimaEval": format_date(row.get("ultimaEval")) or "N/A",
                    "tasaRemediacion": stats.remediation_rate,
                }
            )
        return table

    async def recent_evaluations(self, query: Dict[str, Any], limit: int = 10) -> List[Dict[str, Any]]:
        """Most recent audits with their procedure documentation and status."""
        rows = await self.audits.find_recent(query, limit)
        return [self._recent_row(row) for row in rows]

    @staticmethod
    def _recent_row(row: Dict[str, Any]) -> Dict[str, Any]:
        company = row.get("companyInfo") or {}
        status = row.get("statusInfo") or {}
        procedure = row.get("procedure")

        procedimiento = None
        if procedure:
            procedimiento = {
                "origen": procedure.get("origen"),
                "alcance": procedure.get("alcance") or [],
                "alcanceDescripcion": procedure.get("alcanceDescripcion"),
                "documentacionEvaluacion": {
                    key: procedure.get(key)
                    for key in ("solicitud", "instructivo", "informe", "respuesta", "notaExterna", "notaInterna")
                },
                "documentacionRetest": {
                    key: procedure.get(key)
                    for key in ("notaRetest", "informeRetest", "respuestaRetest", "notaInternaRetest")
                },
            }

        return {
            "id": row.get("_id"),
            "companyId": row.get("company"),
            "entidad": company.get("name") or company.get("shortName") or NO_ENTITY,
            "tipoAudit": row.get("auditType") or NO_TYPE,
            "estado": status.get("status") or NO_STATUS,
            "fechaInicio": format_date(row.get("createdAt")),
            "procedimiento": procedimiento,
        }

    async def active_alerts(self, query: Dict[str, Any], now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """
        Alerts for the filtered audit set.

        Raised for unmitigated critical findings, high findings above the
        configured threshold and EDIT audits past their planned end date.
        """
        today = format_date(now or datetime.utcnow())
        rows, overdue = await asyncio.gather(self.audits.find_findings(query), self.audits.count_overdue(query, today))

        finding_lists = [row.get("findings") for row in rows]
        active_critical = count_active_criticals(finding_lists)
        high = analyze_many(finding_lists).high

        alerts = []
        if active_critical > 0:
            alerts.append(
                {
                    "tipo": "critica",
                    "mensaje": f"{active_critical} vulnerabilidades críticas sin mitigar detectadas",
                    "fecha": today,
                }
            )
        if high > self.high_severity_alert_threshold:
            alerts.append(
                {
                    "tipo": "alta",
                    "mensaje": f"{high} vulnerabilidades de severidad alta requieren atención",
                    "fecha": today,
                }
            )
        if overdue > 0:
            alerts.append(
                {
                    "tipo": "media",
                    "mensaje": f"{overdue} evaluaciones con fecha de finalización vencida",
                    "fecha": today,
                }
            )
        return alerts

    async def company_info(self, company_id: PydanticObjectId) -> Optional[Dict[str, Any]]:
        company = await self.companies.find_by_id(company_id)
        if company is None:
            return None
        return {
            "id": company.id,
            "name": company.name,
            "shortName": company.short_name,
            "logo": company.logo,
            "cuadroDeMando": company.cuadro_de_mando,
            "nivel": company.nivel,
            "categoria": company.categoria,
            "status": company.status,
        }

    async def associated_clients(self, company_id: PydanticObjectId) -> List[Dict[str, Any]]:
        rows = await self.clients.find_by_company(company_id)
        return [
            {
                "id": row.get("_id"),
                "nombre": f"{row.get('firstname') or ''} {row.get('lastname') or ''}".strip(),
                "email": row.get("email"),
                "phone": row.get("phone"),
            }
            for row in rows
        ]
