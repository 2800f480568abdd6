"""
CVSS Approximator

Derives an approximate numeric score and a severity label from a CVSS v3
or v4 vector string. See ``constants`` for the weight table.
"""

import re
from typing import Any, Dict, Mapping, Optional

from ...models.enums import RetestStatus, SeverityLabel
from .constants import (
    CVSS_METRIC_WEIGHTS,
    CVSS_SCORE_MAX,
    CVSS_SCORE_MIN,
    SEVERITY_THRESHOLD_CRITICAL,
    SEVERITY_THRESHOLD_HIGH,
    SEVERITY_THRESHOLD_MEDIUM,
)

RETEST_LABELS = {
    RetestStatus.OK.value: "Remediated",
    RetestStatus.KO.value: "Not Remediated",
    RetestStatus.PARTIAL.value: "Partial",
}
UNVERIFIED_LABEL = "Unverified"

_METRIC_TOKEN = re.compile(r"(?<![A-Z])([A-Z]{1,4}):([A-Z0-9.]+)")


def parse_cvss_vector(vector: str) -> Dict[str, str]:
    """
    Collect ``{metric: value}`` tokens from free text.

    Tokens may be separated by slashes, spaces or anything else and may
    follow leading prose. A metric name must not be preceded by a letter,
    so "AC:H" is the AC metric and never reads as C:H. The first
    occurrence of a metric wins.

    Example:
        >>> parse_cvss_vector("Vector AV:N PR:L")
        {'AV': 'N', 'PR': 'L'}
    """
    metrics: Dict[str, str] = {}
    for match in _METRIC_TOKEN.finditer(vector.upper()):
        metrics.setdefault(match.group(1), match.group(2))
    return metrics


def approximate_cvss_score(vector: Optional[str]) -> float:
    """
    Approximate score of a CVSS vector string.

    Args:
        vector: Free-text vector, e.g. "CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H"

    Returns:
        Score in [0, 10]; 0 for a missing or empty vector

    Example:
        >>> approximate_cvss_score("AV:L/PR:H/UI:R/C:L/I:N/A:N")
        2.0
    """
    if not vector:
        return 0.0

    metrics = parse_cvss_vector(vector)
    score = 0.0
    for keys, weights in CVSS_METRIC_WEIGHTS:
        for key in keys:
            if key in metrics:
                score += weights.get(metrics[key], 0.0)
                break

    # Summing float weights (e.g. 0.3) can leave binary noise
    score = round(score, 2)
    return max(CVSS_SCORE_MIN, min(CVSS_SCORE_MAX, score))


def severity_for_score(score: float) -> SeverityLabel:
    """
    Bucket a score. Lower bounds are inclusive and 0 is Info, not Low.

    Example:
        >>> severity_for_score(9.0)
        <SeverityLabel.CRITICAL: 'Critical'>
    """
    if score >= SEVERITY_THRESHOLD_CRITICAL:
        return SeverityLabel.CRITICAL
    if score >= SEVERITY_THRESHOLD_HIGH:
        return SeverityLabel.HIGH
    if score >= SEVERITY_THRESHOLD_MEDIUM:
        return SeverityLabel.MEDIUM
    if score > 0:
        return SeverityLabel.LOW
    return SeverityLabel.INFO


def severity_label(vector: Optional[str]) -> SeverityLabel:
    """Severity bucket of a CVSS vector string."""
    return severity_for_score(approximate_cvss_score(vector))


def retest_label(status: Optional[Any]) -> str:
    """Display label of a retest status; anything unknown or missing is Unverified."""
    if isinstance(status, RetestStatus):
        status = status.value
    return RETEST_LABELS.get(status, UNVERIFIED_LABEL)


def finding_vector(finding: Any) -> Optional[str]:
    """
    CVSS vector of a finding given either as a model or a persisted dict.

    cvssv3 is preferred; cvssv4 is used when v3 is empty.
    """
    if isinstance(finding, Mapping):
        return finding.get("cvssv3") or finding.get("cvssv4")
    return getattr(finding, "cvssv3", None) or getattr(finding, "cvssv4", None)


def finding_retest_status(finding: Any) -> Optional[str]:
    """Raw retest status value of a finding (model or persisted dict)."""
    if isinstance(finding, Mapping):
        status = finding.get("retestStatus")
    else:
        status = getattr(finding, "retest_status", None)
    if isinstance(status, RetestStatus):
        return status.value
    return status


def finding_score(finding: Any) -> float:
    return approximate_cvss_score(finding_vector(finding))
