"""
AuditLens Analytics

Dashboard computations over the audit collections.

Layers:
    0. Scoring: CVSS approximation, severity and retest labels (cvss)
    1. Finding analysis: severity/retest partitions and categories (findings)
    2. Risk: company risk tier from active critical/high findings (risk)
    3. Aggregation: global, company, audit, entity, trend and vulnerability views

Usage:
    >>> from auditlens.services.analytics import get_analytics_service
    >>> analytics = get_analytics_service()
    >>> ranking = await analytics.get_top_critical_entities(DashboardFilters(limit=5))
"""

from .cvss import approximate_cvss_score, retest_label, severity_for_score, severity_label
from .dashboard_service import AnalyticsService, get_analytics_service
from .findings import analyze, analyze_many, group_by_category
from .models import CategoryStats, DashboardFilters, FindingStats, RiskAssessment
from .risk import assess_risk, classify_risk_tier

__all__ = [
    "AnalyticsService",
    "get_analytics_service",
    "DashboardFilters",
    "FindingStats",
    "CategoryStats",
    "RiskAssessment",
    "approximate_cvss_score",
    "severity_for_score",
    "severity_label",
    "retest_label",
    "analyze",
    "analyze_many",
    "group_by_category",
    "assess_risk",
    "classify_risk_tier",
]
