"""
Finding Analyzer

Pure functions that classify a collection of findings by severity bucket
and retest state. Findings may be ``Finding`` models or the raw dicts
returned by aggregation pipelines.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional

from ...models.enums import RetestStatus, SeverityLabel
from .constants import UNCATEGORIZED
from .cvss import finding_retest_status, finding_vector, severity_label
from .helpers import round_half_up
from .models import CategoryStats, FindingStats

_SEVERITY_FIELDS = {
    SeverityLabel.CRITICAL: "critical",
    SeverityLabel.HIGH: "high",
    SeverityLabel.MEDIUM: "medium",
    SeverityLabel.LOW: "low",
    SeverityLabel.INFO: "info",
}

_RETEST_FIELDS = {
    RetestStatus.OK.value: "remediated",
    RetestStatus.KO.value: "not_remediated",
    RetestStatus.PARTIAL.value: "partial",
}


def retest_bucket(finding: Any) -> str:
    """FindingStats field counting this finding's retest state (default ``unverified``)."""
    return _RETEST_FIELDS.get(finding_retest_status(finding), "unverified")


def severity_bucket(finding: Any) -> str:
    """FindingStats field counting this finding's severity."""
    return _SEVERITY_FIELDS[severity_label(finding_vector(finding))]


def analyze(findings: Optional[Iterable[Any]]) -> FindingStats:
    """
    Count findings by severity bucket and by retest state.

    Args:
        findings: Findings to classify; None is treated as empty

    Returns:
        FindingStats; remediation rate is 0 for an empty collection

    Example:
        >>> stats = analyze([{"cvssv3": "AV:N/PR:N/UI:N/C:H/I:H/A:H", "retestStatus": "ok"}])
        >>> stats.critical, stats.remediated, stats.remediation_rate
        (1, 1, 100)
    """
    counts: Dict[str, int] = {
        "total": 0,
        "critical": 0,
        "high": 0,
        "medium": 0,
        "low": 0,
        "info": 0,
        "remediated": 0,
        "not_remediated": 0,
        "partial": 0,
        "unverified": 0,
    }

    for finding in findings or []:
        counts["total"] += 1
        counts[severity_bucket(finding)] += 1
        counts[retest_bucket(finding)] += 1

    total = counts["total"]
    verified = counts["remediated"] + counts["not_remediated"] + counts["partial"]
    rate = round_half_up(100 * counts["remediated"] / total) if total > 0 else 0

    return FindingStats(verified=verified, remediation_rate=int(rate), **counts)


def analyze_many(finding_lists: Optional[Iterable[Optional[Iterable[Any]]]]) -> FindingStats:
    """Analyze the concatenation of several findings arrays (one per audit)."""
    return analyze(finding for findings in (finding_lists or []) for finding in (findings or []))


def group_by_category(findings: Optional[Iterable[Any]]) -> List[CategoryStats]:
    """
    Roll findings up by category (vulnType), largest category first.

    Findings without a category are grouped under "Uncategorized". Ties
    keep first-seen order.
    """
    grouped: Dict[str, CategoryStats] = {}

    for finding in findings or []:
        if isinstance(finding, Mapping):
            category = finding.get("vulnType")
        else:
            category = getattr(finding, "vuln_type", None)
        category = category or UNCATEGORIZED

        entry = grouped.get(category)
        if entry is None:
            entry = grouped[category] = CategoryStats(category=category)

        entry.total += 1
        bucket = severity_bucket(finding)
        setattr(entry, bucket, getattr(entry, bucket) + 1)
        if finding_retest_status(finding) == RetestStatus.OK.value:
            entry.remediated += 1

    return sorted(grouped.values(), key=lambda entry: entry.total, reverse=True)
