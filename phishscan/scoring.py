"""Score aggregation over rule findings and risk-level comparison.

Provides:
  - ``score_from_findings()``: weighted sum of findings → RiskLevel.
  - ``higher_risk()``:         the riskier of two levels (by ordinal index).
  - ``risk_index()``:          ordinal index of a level (Safe=0 … Critical=4).
  - ``is_valid_risk_level()``: membership test for raw strings.
  - ``is_high_risk()``:        True for High and Critical.

Weighting: high = 3, medium = 1.

Thresholds on the weighted total:
    total >= 9 → Critical
    total >= 6 → High
    total >= 4 → Medium
    total >= 1 → Low
    total == 0 → Safe
"""

from __future__ import annotations

from typing import Any, Iterable

from phishscan.models.analysis import RISK_ORDER, Finding, RiskLevel

#: (minimum total, level), checked top-down; the first satisfied threshold wins.
SCORE_THRESHOLDS: tuple[tuple[int, RiskLevel], ...] = (
    (9, RiskLevel.CRITICAL),
    (6, RiskLevel.HIGH),
    (4, RiskLevel.MEDIUM),
    (1, RiskLevel.LOW),
)


def weighted_total(findings: Iterable[Finding]) -> int:
    return sum(f.severity.weight for f in findings)


def score_from_findings(findings: Iterable[Finding]) -> RiskLevel:
    """Convert rule findings into one RiskLevel. Pure and total."""
    total = weighted_total(findings)
    for minimum, level in SCORE_THRESHOLDS:
        if total >= minimum:
            return level
    return RiskLevel.SAFE


def risk_index(level: RiskLevel) -> int:
    return RISK_ORDER.index(level)


def higher_risk(a: RiskLevel, b: RiskLevel) -> RiskLevel:
    """Return whichever level sits further along Safe → Critical.

    Compares ordinal indexes, never the level names.
    """
    return RISK_ORDER[max(risk_index(a), risk_index(b))]


def is_valid_risk_level(value: Any) -> bool:
    """True if ``value`` is a RiskLevel or one of its exact display strings."""
    if isinstance(value, RiskLevel):
        return True
    return isinstance(value, str) and value in {level.value for level in RISK_ORDER}


def is_high_risk(level: RiskLevel) -> bool:
    return risk_index(level) >= risk_index(RiskLevel.HIGH)
