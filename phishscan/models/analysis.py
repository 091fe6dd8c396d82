"""Analysis data contracts shared by the rule engine, scorer, cache and API.

Provides:
  - ``RiskLevel``:      five-level ordinal verdict, Safe < Low < Medium < High < Critical.
  - ``Severity``:       weight class of a single rule finding (high / medium).
  - ``Finding``:        one rule-engine match. Produced only by ``rules.engine.scan()``.
  - ``Highlight``:      public (severity-stripped) form of a Finding or an LLM detection.
  - ``AnalysisResult``: the merged verdict returned to the caller and written to the cache.

All dataclasses are frozen. AnalysisResult carries its highlights as a tuple so a
result handed to the cache cannot be changed by the request that produced it.

ORDERING RULE: RiskLevel values are compared by ``RiskLevel.ordinal`` only. The enum
values are display strings; sorting them alphabetically puts "Critical" first and
"Safe" in the middle, which is wrong.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


# ─── RiskLevel ────────────────────────────────────────────────────────────────


class RiskLevel(str, Enum):
    """Ordinal phishing verdict. Declaration order IS risk order."""

    SAFE = "Safe"
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"

    @property
    def ordinal(self) -> int:
        """Position on the Safe (0) → Critical (4) scale."""
        return RISK_ORDER.index(self)


#: Canonical low → high ordering. Every comparison goes through this tuple.
RISK_ORDER: tuple[RiskLevel, ...] = (
    RiskLevel.SAFE,
    RiskLevel.LOW,
    RiskLevel.MEDIUM,
    RiskLevel.HIGH,
    RiskLevel.CRITICAL,
)


# ─── Severity ─────────────────────────────────────────────────────────────────


class Severity(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"

    @property
    def weight(self) -> int:
        return SEVERITY_WEIGHTS[self]


SEVERITY_WEIGHTS: dict[Severity, int] = {
    Severity.HIGH: 3,
    Severity.MEDIUM: 1,
}


# ─── Finding / Highlight ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class Finding:
    """A single rule match.

    Fields:
        matched_text: Exact substring of the scanned content that matched.
        reason:       Human-readable reason; also the identity of the rule.
        severity:     Weight class used by the score aggregator.
    """

    matched_text: str
    reason: str
    severity: Severity

    def to_highlight(self) -> "Highlight":
        return Highlight(text=self.matched_text, reason=self.reason)


@dataclass(frozen=True)
class Highlight:
    text: str
    reason: str

    def to_dict(self) -> dict[str, str]:
        return {"text": self.text, "reason": self.reason}


# ─── AnalysisResult ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class AnalysisResult:
    """Final verdict for one analysed piece of content.

    Built once by the orchestrator (or rebuilt from a cache row) and never
    mutated afterwards.
    """

    score: RiskLevel
    highlights: tuple[Highlight, ...] = field(default_factory=tuple)
    summary: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the public JSON shape ``{score, highlights, summary}``."""
        return {
            "score": self.score.value,
            "highlights": [h.to_dict() for h in self.highlights],
            "summary": self.summary,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "AnalysisResult":
        """Rebuild from the public JSON shape.

        Raises:
            ValueError: Unknown score value.
            KeyError / TypeError: Missing or malformed fields.
        """
        return cls(
            score=RiskLevel(raw["score"]),
            highlights=tuple(
                Highlight(text=str(h["text"]), reason=str(h["reason"]))
                for h in raw.get("highlights") or []
            ),
            summary=str(raw["summary"]),
        )
