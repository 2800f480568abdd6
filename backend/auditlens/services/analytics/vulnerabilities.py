"""
Vulnerability Analytics

Finding-level listings: the per-entity vulnerability list, the most
recurrent vulnerabilities and the active critical backlog.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from beanie import PydanticObjectId

from ...errors import BadParametersError, NotFoundError
from ...models.enums import RetestStatus, SeverityLabel
from ...repositories import AuditRepository, CompanyRepository
from .constants import UNCATEGORIZED
from .cvss import (
    approximate_cvss_score,
    finding_retest_status,
    finding_vector,
    retest_label,
    severity_for_score,
)
from .findings import analyze_many
from .helpers import days_between, format_date, parse_date, percentage

logger = logging.getLogger(__name__)

NO_TITLE = "Sin título"

# Accepted spellings of the severity filter
SEVERITY_ALIASES = {
    "critical": SeverityLabel.CRITICAL,
    "critica": SeverityLabel.CRITICAL,
    "crítica": SeverityLabel.CRITICAL,
    "high": SeverityLabel.HIGH,
    "alta": SeverityLabel.HIGH,
    "medium": SeverityLabel.MEDIUM,
    "media": SeverityLabel.MEDIUM,
    "low": SeverityLabel.LOW,
    "baja": SeverityLabel.LOW,
    "info": SeverityLabel.INFO,
}


def parse_severity(value: Optional[str]) -> Optional[SeverityLabel]:
    """
    Resolve a severity filter value.

    Raises:
        BadParametersError: Unknown severity name
    """
    if not value:
        return None
    label = SEVERITY_ALIASES.get(value.strip().lower())
    if label is None:
        raise BadParametersError.single("severidad", f"Unknown severity: {value}")
    return label


def _get(finding: Any, key: str, attribute: Optional[str] = None) -> Any:
    if isinstance(finding, dict):
        return finding.get(key)
    return getattr(finding, attribute or key, None)


class VulnerabilityAnalytics:
    """Finding-level analytics over filtered audits."""

    def __init__(self, audits: Optional[AuditRepository] = None, companies: Optional[CompanyRepository] = None):
        self.audits = audits or AuditRepository()
        self.companies = companies or CompanyRepository()

    async def company_vulnerabilities(
        self,
        company_id: PydanticObjectId,
        date_filter: Dict[str, Any],
        solo_activas: bool = False,
        severidad: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Every finding of one company's audits in the period.

        Args:
            company_id: Company to list
            date_filter: createdAt range
            solo_activas: Only findings not remediated (retest status other than ok)
            severidad: Only findings of this severity

        Returns:
            Dict with company, filters, stats and ``vulnerabilidades`` sorted by
            score descending, then audit date descending

        Raises:
            NotFoundError: The company does not exist
            BadParametersError: Unknown severity filter
        """
        severity_filter = parse_severity(severidad)

        company = await self.companies.find_by_id(company_id)
        if company is None:
            raise NotFoundError("Company", str(company_id))

        rows = await self.audits.find_findings({"company": company_id, "createdAt": date_filter})

        listing = []
        for row in rows:
            audit_date = parse_date(row.get("createdAt"))
            for finding in row.get("findings") or []:
                vector = finding_vector(finding)
                score = approximate_cvss_score(vector)
                severity = severity_for_score(score)
                status = finding_retest_status(finding) or RetestStatus.UNKNOWN.value
                active = status != RetestStatus.OK.value

                if solo_activas and not active:
                    continue
                if severity_filter is not None and severity != severity_filter:
                    continue

                listing.append(
                    {
                        "id": _get(finding, "_id", "id"),
                        "auditId": row.get("_id"),
                        "auditName": row.get("name"),
                        "auditType": row.get("auditType"),
                        "auditDate": format_date(audit_date),
                        "title": _get(finding, "title"),
                        "description": _get(finding, "description"),
                        "severity": severity.value,
                        "cvssScore": score,
                        "cvssVector": vector,
                        "category": _get(finding, "vulnType", "vuln_type") or UNCATEGORIZED,
                        "retestStatus": status,
                        "retestStatusLabel": retest_label(status),
                        "esActiva": active,
                        "remediation": _get(finding, "remediation"),
                        "references": _get(finding, "references") or [],
                        "_sortDate": audit_date or datetime.min,
                    }
                )

        listing.sort(key=lambda item: (item["cvssScore"], item["_sortDate"]), reverse=True)
        for item in listing:
            del item["_sortDate"]

        stats = analyze_many(row.get("findings") for row in rows)
        return {
            "company": {
                "id": company.id,
                "name": company.name,
                "shortName": company.short_name,
                "cuadroDeMando": company.cuadro_de_mando,
            },
            "filters": {"soloActivas": solo_activas, "severidad": severidad or None},
            "stats": {"totalAuditorias": len(rows), **stats.to_dashboard()},
            "vulnerabilidades": listing,
        }

    async def top_vulnerabilities(self, query: Dict[str, Any], limit: int = 10) -> List[Dict[str, Any]]:
        """Most frequent vulnerabilities, keyed by title and category."""
        rows = await self.audits.find_findings(query)

        counts: Dict[tuple, Dict[str, Any]] = {}
        for row in rows:
            for finding in row.get("findings") or []:
                title = _get(finding, "title") or NO_TITLE
                category = _get(finding, "vulnType", "vuln_type") or UNCATEGORIZED
                entry = counts.setdefault(
                    (title, category),
                    {"title": title, "category": category, "count": 0, "severidadMax": 0.0, "remediadas": 0},
                )
                entry["count"] += 1
                entry["severidadMax"] = max(entry["severidadMax"], approximate_cvss_score(finding_vector(finding)))
                if finding_retest_status(finding) == RetestStatus.OK.value:
                    entry["remediadas"] += 1

        ranked = sorted(counts.values(), key=lambda entry: entry["count"], reverse=True)[:limit]
        for entry in ranked:
            entry["severidad"] = severity_for_score(entry["severidadMax"]).value
            entry["tasaRemediacion"] = percentage(entry["remediadas"], entry["count"])
        return ranked

    async def active_critical_vulnerabilities(
        self, query: Dict[str, Any], now: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """Critical findings not yet remediated, longest outstanding first."""
        now = now or datetime.utcnow()
        rows = await self.audits.find_findings_with_company(query)

        backlog = []
        for row in rows:
            company = row.get("companyInfo")
            for finding in row.get("findings") or []:
                score = approximate_cvss_score(finding_vector(finding))
                status = finding_retest_status(finding) or RetestStatus.UNKNOWN.value
                if severity_for_score(score) != SeverityLabel.CRITICAL or status == RetestStatus.OK.value:
                    continue
                backlog.append(
                    {
                        "id": _get(finding, "_id", "id"),
                        "title": _get(finding, "title"),
                        "cvssScore": score,
                        "retestStatus": status,
                        "retestStatusLabel": retest_label(status),
                        "auditId": row.get("_id"),
                        "auditName": row.get("name"),
                        "auditDate": format_date(row.get("createdAt")),
                        "company": (
                            {"id": company.get("_id"), "name": company.get("name") or company.get("shortName")}
                            if company
                            else None
                        ),
                        "diasSinRemediar": days_between(row.get("createdAt"), now) or 0,
                    }
                )

        backlog.sort(key=lambda item: item["diasSinRemediar"], reverse=True)
        return backlog
