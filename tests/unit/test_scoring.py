"""Unit tests for phishscan/scoring.py and the RiskLevel ordering.

Verifies:
  - weighted-sum thresholds at every boundary (0, 1, 3, 4, 5, 6, 8, 9)
  - higher_risk() is symmetric and follows ordinal position, never names
  - is_valid_risk_level() / is_high_risk()
"""

from __future__ import annotations

import itertools

import pytest

from phishscan.models.analysis import RISK_ORDER, Finding, RiskLevel, Severity
from phishscan.scoring import (
    higher_risk,
    is_high_risk,
    is_valid_risk_level,
    risk_index,
    score_from_findings,
    weighted_total,
)


def _findings(high: int = 0, medium: int = 0) -> list[Finding]:
    return [Finding(f"h{i}", "high rule", Severity.HIGH) for i in range(high)] + [
        Finding(f"m{i}", "medium rule", Severity.MEDIUM) for i in range(medium)
    ]


# ─── Ordering ─────────────────────────────────────────────────────────────────


class TestRiskOrder:
    def test_order_is_safe_to_critical(self) -> None:
        assert [level.value for level in RISK_ORDER] == [
            "Safe",
            "Low",
            "Medium",
            "High",
            "Critical",
        ]

    def test_ordinal_matches_position(self) -> None:
        assert [level.ordinal for level in RISK_ORDER] == [0, 1, 2, 3, 4]
        assert [risk_index(level) for level in RISK_ORDER] == [0, 1, 2, 3, 4]

    def test_alphabetical_order_differs(self) -> None:
        values = [level.value for level in RISK_ORDER]
        assert sorted(values) != values


# ─── Thresholds ───────────────────────────────────────────────────────────────


class TestScoreFromFindings:
    @pytest.mark.parametrize(
        "high, medium, expected_total, expected",
        [
            (0, 0, 0, RiskLevel.SAFE),
            (0, 1, 1, RiskLevel.LOW),
            (1, 0, 3, RiskLevel.LOW),
            (1, 1, 4, RiskLevel.MEDIUM),
            (1, 2, 5, RiskLevel.MEDIUM),
            (2, 0, 6, RiskLevel.HIGH),
            (2, 2, 8, RiskLevel.HIGH),
            (3, 0, 9, RiskLevel.CRITICAL),
            (4, 5, 17, RiskLevel.CRITICAL),
        ],
    )
    def test_threshold_boundaries(
        self, high: int, medium: int, expected_total: int, expected: RiskLevel
    ) -> None:
        findings = _findings(high=high, medium=medium)
        assert weighted_total(findings) == expected_total
        assert score_from_findings(findings) is expected

    def test_accepts_any_iterable(self) -> None:
        assert score_from_findings(iter(_findings(high=2))) is RiskLevel.HIGH


# ─── higher_risk ──────────────────────────────────────────────────────────────


class TestHigherRisk:
    @pytest.mark.parametrize("a, b", list(itertools.product(RISK_ORDER, repeat=2)))
    def test_symmetric_and_picks_larger_ordinal(self, a: RiskLevel, b: RiskLevel) -> None:
        result = higher_risk(a, b)
        assert result is higher_risk(b, a)
        assert result.ordinal == max(a.ordinal, b.ordinal)

    def test_medium_vs_critical(self) -> None:
        assert higher_risk(RiskLevel.MEDIUM, RiskLevel.CRITICAL) is RiskLevel.CRITICAL

    def test_safe_vs_low(self) -> None:
        # "Safe" > "Low" lexically; the ordinal says otherwise.
        assert higher_risk(RiskLevel.SAFE, RiskLevel.LOW) is RiskLevel.LOW


# ─── Predicates ───────────────────────────────────────────────────────────────


class TestPredicates:
    @pytest.mark.parametrize("value", ["Safe", "Low", "Medium", "High", "Critical"])
    def test_valid_strings(self, value: str) -> None:
        assert is_valid_risk_level(value)

    @pytest.mark.parametrize("value", ["safe", "HIGH", "Severe", "", None, 3])
    def test_invalid_values(self, value: object) -> None:
        assert not is_valid_risk_level(value)

    def test_enum_member_is_valid(self) -> None:
        assert is_valid_risk_level(RiskLevel.MEDIUM)

    def test_is_high_risk(self) -> None:
        assert [is_high_risk(level) for level in RISK_ORDER] == [
            False,
            False,
            False,
            True,
            True,
        ]
