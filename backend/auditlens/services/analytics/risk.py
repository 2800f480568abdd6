"""
Risk Tier Classifier

Deterministic threshold ladder over a company's active (not remediated)
critical and high findings. Evaluated top-down, first match wins:

    Critical  criticalActive >= 5, or >= 3 with highActive >= 10
    High      criticalActive >= 2, or >= 1 with highActive >= 5
    Medium    criticalActive >= 1, or highActive >= 3
    Low       highActive >= 1
    Minimal   otherwise
"""

from ...models.enums import RiskTier
from .constants import (
    RISK_CRITICAL_ACTIVE_CRITICAL,
    RISK_CRITICAL_COMBINED,
    RISK_HIGH_ACTIVE_CRITICAL,
    RISK_HIGH_COMBINED,
    RISK_LOW_ACTIVE_HIGH,
    RISK_MEDIUM_ACTIVE_CRITICAL,
    RISK_MEDIUM_ACTIVE_HIGH,
    RISK_TIER_COLORS,
)
from .models import RiskAssessment

_PRIORITY = {
    RiskTier.CRITICAL: 1,
    RiskTier.HIGH: 2,
    RiskTier.MEDIUM: 3,
    RiskTier.LOW: 4,
    RiskTier.MINIMAL: 5,
}


def classify_risk_tier(critical_active: int, high_active: int) -> RiskTier:
    """
    Risk tier for the given active critical/high counts.

    Example:
        >>> classify_risk_tier(3, 10)
        <RiskTier.CRITICAL: 'Critical'>
        >>> classify_risk_tier(0, 2)
        <RiskTier.LOW: 'Low'>
    """
    combined_critical, combined_high = RISK_CRITICAL_COMBINED
    if critical_active >= RISK_CRITICAL_ACTIVE_CRITICAL or (
        critical_active >= combined_critical and high_active >= combined_high
    ):
        return RiskTier.CRITICAL

    combined_critical, combined_high = RISK_HIGH_COMBINED
    if critical_active >= RISK_HIGH_ACTIVE_CRITICAL or (
        critical_active >= combined_critical and high_active >= combined_high
    ):
        return RiskTier.HIGH

    if critical_active >= RISK_MEDIUM_ACTIVE_CRITICAL or high_active >= RISK_MEDIUM_ACTIVE_HIGH:
        return RiskTier.MEDIUM

    if high_active >= RISK_LOW_ACTIVE_HIGH:
        return RiskTier.LOW

    return RiskTier.MINIMAL


def assess_risk(critical_active: int, high_active: int) -> RiskAssessment:
    """Risk tier with its display color and priority (1 = most urgent)."""
    tier = classify_risk_tier(critical_active, high_active)
    return RiskAssessment(tier=tier, color=RISK_TIER_COLORS[tier.value], priority=_PRIORITY[tier])
