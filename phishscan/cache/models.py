"""CacheEntry dataclass and row (de)serialisation for the URL verdict cache.

All backends store the same logical row, mirroring the ``url_cache`` table:

    url_hash    TEXT  — SHA-256 hex of the normalised URL (primary key)
    domain      TEXT  — URL host, "unknown" when unparsable
    score       TEXT  — RiskLevel display value
    highlights  JSON  — [{text, reason}, ...]
    summary     TEXT
    hit_count   INT
    created_at  ISO 8601 UTC
    expires_at  ISO 8601 UTC

Rows read back from any backend pass through ``CacheRow`` (pydantic). A row that
fails validation raises ``CacheUnavailableError`` and is treated as a miss.

IMPORTANT: the raw URL is NEVER part of a row. Only its fingerprint and host.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ValidationError

from phishscan.errors import CacheUnavailableError
from phishscan.models.analysis import AnalysisResult, Highlight, RiskLevel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    """Fixed-width UTC ISO 8601 string; sorts lexically in time order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


# ─── CacheEntry ───────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class CacheEntry:
    """One cached verdict.

    ``result`` is the AnalysisResult as it was when written; AnalysisResult is
    frozen, so holding it here is equivalent to holding a copy.
    """

    fingerprint: str
    domain: str
    result: AnalysisResult
    created_at: datetime
    expires_at: datetime
    hit_count: int = 0

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def to_row(self) -> dict[str, Any]:
        """Serialise to the backend row shape (JSON-compatible values)."""
        return {
            "url_hash": self.fingerprint,
            "domain": self.domain,
            "score": self.result.score.value,
            "highlights": [h.to_dict() for h in self.result.highlights],
            "summary": self.result.summary,
            "hit_count": self.hit_count,
            "created_at": to_iso(self.created_at),
            "expires_at": to_iso(self.expires_at),
        }

    def stats_dict(self) -> dict[str, Any]:
        """Public shape for ``GET /api/cache/stats`` — no verdict text, no hash."""
        return {
            "domain": self.domain,
            "score": self.result.score.value,
            "hit_count": self.hit_count,
            "created_at": to_iso(self.created_at),
        }


# ─── Row validation ───────────────────────────────────────────────────────────


class HighlightRow(BaseModel):
    text: str
    reason: str


class CacheRow(BaseModel):
    """Validated backend row. Unknown columns (e.g. a Postgres ``id``) are ignored."""

    url_hash: str
    domain: str = "unknown"
    score: RiskLevel
    highlights: list[HighlightRow] = []
    summary: str
    hit_count: int = 0
    created_at: datetime
    expires_at: datetime

    def to_entry(self) -> CacheEntry:
        return CacheEntry(
            fingerprint=self.url_hash,
            domain=self.domain,
            result=AnalysisResult(
                score=self.score,
                highlights=tuple(Highlight(text=h.text, reason=h.reason) for h in self.highlights),
                summary=self.summary,
            ),
            created_at=_aware(self.created_at),
            expires_at=_aware(self.expires_at),
            hit_count=self.hit_count,
        )


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def entry_from_row(row: dict[str, Any]) -> CacheEntry:
    """Validate a backend row and build a CacheEntry.

    Raises:
        CacheUnavailableError: The row is corrupt (missing column, bad score, bad JSON shape).
    """
    try:
        return CacheRow.model_validate(row).to_entry()
    except ValidationError as exc:
        raise CacheUnavailableError(f"corrupt cache row: {exc.error_count()} error(s)") from exc
