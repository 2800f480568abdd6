"""
Company (entity) statistics: totals, flagged share, organizational level,
category and maturity distribution, and the companies-with-stats listing.

Maturity is a 0..5 scale stored as a string; anything missing or outside
the scale counts as 0 ("Sin asignar").
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from ...models.enums import RetestStatus, SeverityLabel
from ...repositories import AuditRepository, ClientRepository, CompanyRepository
from .constants import MATURITY_LABELS
from .cvss import finding_retest_status, finding_vector, severity_label
from .helpers import format_date, maturity_level, parse_date, percentage, round_half_up

logger = logging.getLogger(__name__)

NO_LEVEL = "Sin nivel"
NO_CATEGORY = "Sin categoría"
NO_DATA = "Sin datos"


def _count_by(rows: List[Dict[str, Any]], field: str) -> Dict[Optional[str], int]:
    counts: Dict[Optional[str], int] = {}
    for row in rows:
        key = row.get(field) or None
        counts[key] = counts.get(key, 0) + 1
    return counts


class CompanyStatsService:
    """Statistics over the (permission-filtered) company catalog."""

    def __init__(
        self,
        companies: Optional[CompanyRepository] = None,
        audits: Optional[AuditRepository] = None,
        clients: Optional[ClientRepository] = None,
    ):
        self.companies = companies or CompanyRepository()
        self.audits = audits or AuditRepository()
        self.clients = clients or ClientRepository()

    async def company_statistics(self, company_filter: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Aggregate statistics over active companies matching company_filter.

        Args:
            company_filter: Extra constraint, e.g. ``{"_id": {"$in": ids}}``
        """
        rows = await self.companies.find_with_fields({"status": True, **(company_filter or {})})
        total = len(rows)
        flagged = sum(1 for row in rows if row.get("cuadroDeMando"))

        levels = _count_by(rows, "nivel")
        categories = _count_by(rows, "categoria")

        maturity_counts = {level: 0 for level in MATURITY_LABELS}
        rated = []
        for row in rows:
            level = maturity_level(row.get("nivelDeMadurez"))
            maturity_counts[level] += 1
            if level >= 1:
                rated.append(level)

        if rated:
            mean = round_half_up(sum(rated) / len(rated), 2)
            average = {
                "promedio": mean,
                "label": MATURITY_LABELS.get(int(round_half_up(mean)), NO_DATA),
                "totalEvaluadas": len(rated),
            }
        else:
            average = {"promedio": 0, "label": NO_DATA, "totalEvaluadas": 0}

        return {
            "totalEntidades": total,
            "entidadesCuadroDeMando": flagged,
            "porcentajeCuadroDeMando": percentage(flagged, total, digits=1, empty=0.0),
            "porNivelOrganizacional": [
                {"nivel": nivel or NO_LEVEL, "cantidad": cantidad} for nivel, cantidad in levels.items()
            ],
            "porCategoria": [
                {"categoria": categoria or NO_CATEGORY, "cantidad": cantidad}
                for categoria, cantidad in sorted(categories.items(), key=lambda item: item[1], reverse=True)
            ],
            "porNivelMadurez": [
                {
                    "nivel": level,
                    "label": label,
                    "cantidad": maturity_counts[level],
                    "porcentaje": percentage(maturity_counts[level], total, digits=1, empty=0.0),
                }
                for level, label in MATURITY_LABELS.items()
            ],
            "promedioMadurez": average,
        }

    async def companies_with_stats(
        self, company_filter: Optional[Dict[str, Any]] = None, audit_filter: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        """
        Active companies with their audit, client and finding counters.

        Remediation rate defaults to 100 for a company without findings.
        """
        companies = await self.companies.find_with_fields({"status": True, **(company_filter or {})})
        ids = [company["_id"] for company in companies]
        if not ids:
            return []

        audits, client_counts = await asyncio.gather(
            self.audits.find_findings({**(audit_filter or {}), "company": {"$in": ids}}),
            self.clients.count_by_companies(ids),
        )

        per_company: Dict[str, Dict[str, Any]] = {}
        for audit in audits:
            entry = per_company.setdefault(
                str(audit.get("company")),
                {"audits": 0, "findings": 0, "critical": 0, "high": 0, "remediated": 0, "last": None},
            )
            entry["audits"] += 1
            created = parse_date(audit.get("createdAt"))
            if created is not None and (entry["last"] is None or created > entry["last"][0]):
                entry["last"] = (created, audit.get("name"))
            for finding in audit.get("findings") or []:
                entry["findings"] += 1
                severity = severity_label(finding_vector(finding))
                if severity == SeverityLabel.CRITICAL:
                    entry["critical"] += 1
                elif severity == SeverityLabel.HIGH:
                    entry["high"] += 1
                if finding_retest_status(finding) == RetestStatus.OK.value:
                    entry["remediated"] += 1

        listing = []
        for company in companies:
            key = str(company["_id"])
            entry = per_company.get(key) or {
                "audits": 0,
                "findings": 0,
                "critical": 0,
                "high": 0,
                "remediated": 0,
                "last": None,
            }
            level = maturity_level(company.get("nivelDeMadurez"))
            listing.append(
                {
                    "id": company["_id"],
                    "nombre": company.get("name"),
                    "nombreCorto": company.get("shortName"),
                    "cuadroDeMando": bool(company.get("cuadroDeMando")),
                    "nivelOrganizacional": company.get("nivel"),
                    "categoria": company.get("categoria"),
                    "nivelMadurez": {"valor": level, "label": MATURITY_LABELS[level]},
                    "estadisticas": {
                        "totalAuditorias": entry["audits"],
                        "totalClientes": client_counts.get(key, 0),
                        "totalVulnerabilidades": entry["findings"],
                        "vulnCriticas": entry["critical"],
                        "vulnAltas": entry["high"],
                        "remediadas": entry["remediated"],
                        "tasaRemediacion": percentage(entry["remediated"], entry["findings"], empty=100),
                    },
                    "ultimaAuditoria": (
                        {"fecha": format_date(entry["last"][0]), "nombre": entry["last"][1]} if entry["last"] else None
                    ),
                }
            )
        return listing
