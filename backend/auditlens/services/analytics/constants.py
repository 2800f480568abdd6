"""
Analytics Constants - CVSS Approximation Weights and Display Colors

The approximate score of a finding is the sum of weighted contributions
read from its CVSS vector string, clamped to [0, 10]:

    score = AV + PR + UI + C + I + A

    AV  network 3.0, adjacent 2.0, local 1.0, physical 0.5
    PR  none 2.0, low 1.0, high 0.5
    UI  none 1.0
    C,I high 1.5, low 0.5
    A   high 1.0, low 0.3

This is a heuristic used for dashboard bucketing, not a CVSS calculator.
Scores diverge from official CVSS tooling on some vectors; stored
dashboards depend on these exact weights.

Example:
    >>> from auditlens.services.analytics.cvss import approximate_cvss_score
    >>> approximate_cvss_score("CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H")
    10.0
"""

from typing import Dict, Final, List, Tuple

CVSS_SCORE_MIN: Final[float] = 0.0
CVSS_SCORE_MAX: Final[float] = 10.0

# Weight per metric value. Each entry lists the metric keys it is read from:
# v3 uses C/I/A, v4 names the vulnerable-system impacts VC/VI/VA.
CVSS_METRIC_WEIGHTS: Final[List[Tuple[Tuple[str, ...], Dict[str, float]]]] = [
    (("AV",), {"N": 3.0, "A": 2.0, "L": 1.0, "P": 0.5}),
    (("PR",), {"N": 2.0, "L": 1.0, "H": 0.5}),
    (("UI",), {"N": 1.0}),
    (("C", "VC"), {"H": 1.5, "L": 0.5}),
    (("I", "VI"), {"H": 1.5, "L": 0.5}),
    (("A", "VA"), {"H": 1.0, "L": 0.3}),
]

# Severity thresholds (lower bound inclusive); anything at or below 0 is Info
SEVERITY_THRESHOLD_CRITICAL: Final[float] = 9.0
SEVERITY_THRESHOLD_HIGH: Final[float] = 7.0
SEVERITY_THRESHOLD_MEDIUM: Final[float] = 4.0

# Risk tier thresholds over active critical/high counts
RISK_CRITICAL_ACTIVE_CRITICAL: Final[int] = 5
RISK_CRITICAL_COMBINED: Final[Tuple[int, int]] = (3, 10)
RISK_HIGH_ACTIVE_CRITICAL: Final[int] = 2
RISK_HIGH_COMBINED: Final[Tuple[int, int]] = (1, 5)
RISK_MEDIUM_ACTIVE_CRITICAL: Final[int] = 1
RISK_MEDIUM_ACTIVE_HIGH: Final[int] = 3
RISK_LOW_ACTIVE_HIGH: Final[int] = 1

RISK_TIER_COLORS: Final[Dict[str, str]] = {
    "Critical": "#dc2626",
    "High": "#ea580c",
    "Medium": "#d97706",
    "Low": "#65a30d",
    "Minimal": "#22c55e",
}

# Retest verification chart colors
VERIFICATION_COLORS: Final[Dict[str, str]] = {
    "remediated": "#22c55e",
    "notRemediated": "#ef4444",
    "partial": "#f59e0b",
    "unverified": "#6b7280",
}

# Fallback color for procedure/alcance codes missing from the catalogs
NEUTRAL_COLOR: Final[str] = "#6b7280"

MONTH_NAMES: Final[List[str]] = [
    "Ene",
    "Feb",
    "Mar",
    "Abr",
    "May",
    "Jun",
    "Jul",
    "Ago",
    "Sep",
    "Oct",
    "Nov",
    "Dic",
]

MATURITY_LABELS: Final[Dict[int, str]] = {
    0: "Sin asignar",
    1: "Inicial",
    2: "Básico",
    3: "Intermedio",
    4: "Avanzado",
    5: "Óptimo",
}

UNCATEGORIZED: Final[str] = "Uncategorized"
