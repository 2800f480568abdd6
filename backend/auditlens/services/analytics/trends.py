"""
Trend Analysis

Monthly trends (evaluations, findings and retest outcomes), monthly
severity trends and year-over-year comparison. Every series covers all
twelve months in calendar order, with zero rows for empty months.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from ...models.enums import RetestStatus
from ...repositories import AuditRepository
from .constants import MONTH_NAMES
from .cvss import finding_retest_status
from .findings import analyze, analyze_many
from .helpers import merge_filters, parse_date, round_half_up, year_bounds

logger = logging.getLogger(__name__)


def year_filter(year: int, permission_filter: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """createdAt range of a calendar year merged with the permission filter."""
    lower, upper = year_bounds(year)
    return merge_filters({"createdAt": {"$gte": lower, "$lte": upper}}, permission_filter)


def variation(previous: int, current: int) -> int:
    """
    Percentage change from previous to current.

    A rise from zero reports 100; zero to zero reports 0.
    """
    if previous == 0:
        return 100 if current > 0 else 0
    return int(round_half_up((current - previous) / previous * 100))


class TrendAnalyzer:
    """
    Time-series views over audits.

    Example:
        >>> analyzer = TrendAnalyzer()
        >>> trend = await analyzer.monthly_trend(2024, {"company": company_id})
        >>> len(trend)
        12
    """

    def __init__(self, audits: Optional[AuditRepository] = None):
        self.audits = audits or AuditRepository()

    async def monthly_trend(
        self, year: int, permission_filter: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        """
        Per-month evaluations, findings and retest outcomes for a year.

        Returns:
            Exactly 12 dicts (mes, evaluaciones, vulnerabilidades, remediadas,
            noRemediadas, parciales), January first
        """
        rows = await self.audits.monthly_rollup(year_filter(year, permission_filter))
        by_month = {row["_id"]: row for row in rows}

        trend = []
        for index, name in enumerate(MONTH_NAMES, start=1):
            row = by_month.get(index)
            entry = {
                "mes": name,
                "evaluaciones": 0,
                "vulnerabilidades": 0,
                "remediadas": 0,
                "noRemediadas": 0,
                "parciales": 0,
            }
            if row:
                entry["evaluaciones"] = row.get("evaluaciones", 0)
                entry["vulnerabilidades"] = row.get("vulnerabilidades", 0)
                for findings in row.get("findings") or []:
                    for finding in findings or []:
                        status = finding_retest_status(finding)
                        if status == RetestStatus.OK.value:
                            entry["remediadas"] += 1
                        elif status == RetestStatus.KO.value:
                            entry["noRemediadas"] += 1
                        elif status == RetestStatus.PARTIAL.value:
                            entry["parciales"] += 1
            trend.append(entry)
        return trend

    async def severity_trend(
        self, year: int, permission_filter: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        """Per-month finding counts by severity bucket for a year (12 entries)."""
        rows = await self.audits.find_findings(year_filter(year, permission_filter))

        monthly: List[List[Any]] = [[] for _ in MONTH_NAMES]
        for row in rows:
            created = parse_date(row.get("createdAt"))
            if created is None:
                continue
            monthly[created.month - 1].extend(row.get("findings") or [])

        trend = []
        for index, name in enumerate(MONTH_NAMES):
            stats = analyze(monthly[index])
            trend.append(
                {
                    "mes": name,
                    "month": index + 1,
                    "criticas": stats.critical,
                    "altas": stats.high,
                    "medias": stats.medium,
                    "bajas": stats.low,
                    "info": stats.info,
                }
            )
        return trend

    async def annual_comparison(self, year: int, permission_filter: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Summary of ``year`` against ``year - 1`` with percentage variations."""
        current, previous = await asyncio.gather(
            self._annual_summary(year, permission_filter),
            self._annual_summary(year - 1, permission_filter),
        )
        return {
            "actual": {"year": year, **current},
            "anterior": {"year": year - 1, **previous},
            "variacion": {
                "evaluaciones": variation(previous["totalEvaluaciones"], current["totalEvaluaciones"]),
                "vulnerabilidades": variation(previous["totalVulnerabilidades"], current["totalVulnerabilidades"]),
                "criticas": variation(previous["criticas"], current["criticas"]),
            },
        }

    async def _annual_summary(self, year: int, permission_filter: Optional[Dict[str, Any]]) -> Dict[str, int]:
        rows = await self.audits.find_findings(year_filter(year, permission_filter))
        stats = analyze_many(row.get("findings") for row in rows)
        return {
            "totalEvaluaciones": len(rows),
            "totalVulnerabilidades": stats.total,
            "criticas": stats.critical,
            "remediadas": stats.remediated,
            "tasaRemediacion": stats.remediation_rate,
        }
