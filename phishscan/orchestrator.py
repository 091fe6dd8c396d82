"""AnalysisOrchestrator — the request-level coordinator.

Per request (terminal states 200 / 400 / 429 / 500):

    1. rate-limit   RateLimiter.check(client_id)           denied → 429
    2. validate     content: non-empty str, ≤ max bytes    invalid → 400
    3. cache        URL only: ResultCache.lookup           hit → 200 (cached)
    4. rules        rules.scan(content)
    5. classify     Classifier.classify(content, type)     any failure → 500
    6. merge        highlights, score, summary
    7. cache        URL only: ResultCache.store (best-effort)
    8. respond      200

Rate limiting runs BEFORE validation: a malformed request still consumes quota.

``analyze()`` never raises. Every exception that escapes a step is caught at
this boundary, logged with the analysis id, and answered with a generic 500.
The classifier failure path is never downgraded to a Safe verdict.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional, Sequence

from fastapi.responses import JSONResponse

from phishscan.cache.result_cache import ResultCache, is_valid_url
from phishscan.classifier.client import Classifier
from phishscan.classifier.schema import LLMVerdict
from phishscan.constants import MAX_CONTENT_BYTES
from phishscan.errors import (
    MSG_CLASSIFIER_FAILED,
    MSG_INTERNAL_ERROR,
    MSG_INVALID_INPUT,
    ExternalClassifierError,
    InputValidationError,
    rate_limit_message,
    size_limit_message,
)
from phishscan.models.analysis import AnalysisResult, Finding, Highlight
from phishscan.models.responses import (
    build_error_response,
    build_rate_limited_response,
    build_success_response,
)
from phishscan.ratelimit.limiter import RateLimitDecision, RateLimiter
from phishscan.rules.engine import scan
from phishscan.scoring import higher_risk, score_from_findings
from phishscan.utils.health import LatencyTracker
from phishscan.utils.logger import PerformanceLogger, get_logger
from phishscan.utils.ulid import generate_ulid

logger = get_logger(__name__)

CACHE_HIT = "HIT"
CACHE_MISS = "MISS"

#: The LLM call dominates request latency; only warn when it is slow even for an LLM.
LLM_SLOW_WARN_MS = 10_000.0


# ─── Pure merge helpers ───────────────────────────────────────────────────────


def merge_highlights(*groups: Iterable[Highlight]) -> list[Highlight]:
    """Concatenate highlight lists, keeping the first highlight for each ``text``."""
    seen: set[str] = set()
    merged: list[Highlight] = []
    for group in groups:
        for highlight in group:
            if highlight.text in seen:
                continue
            seen.add(highlight.text)
            merged.append(highlight)
    return merged


def build_summary(llm_summary: str, finding_count: int) -> str:
    """Append the static-rule note when the rule engine found anything."""
    if finding_count <= 0:
        return llm_summary
    noun = "risk factor" if finding_count == 1 else "risk factors"
    return f"{llm_summary}\n\n{finding_count} additional {noun} found by static rules."


def merge_results(findings: Sequence[Finding], verdict: LLMVerdict) -> AnalysisResult:
    """Reconcile rule findings with the classifier verdict.

    score = the riskier of (rule score, classifier score), by ordinal index.
    """
    return AnalysisResult(
        score=higher_risk(score_from_findings(findings), verdict.score),
        highlights=tuple(
            merge_highlights(
                (f.to_highlight() for f in findings),
                verdict.to_highlights(),
            )
        ),
        summary=build_summary(verdict.summary, len(findings)),
    )


def validate_request(body: Any, max_content_bytes: int = MAX_CONTENT_BYTES) -> tuple[str, Optional[str]]:
    """Extract ``(content, type)`` from a decoded JSON body.

    Size is measured in UTF-8 bytes. Content that has no UTF-8 encoding (a lone
    surrogate from a ``\\ud800`` JSON escape) is invalid input.

    Raises:
        InputValidationError: code ``invalid_input`` or ``size_limit``.
    """
    content = body.get("content") if isinstance(body, dict) else None
    if not isinstance(content, str) or not content:
        raise InputValidationError(MSG_INVALID_INPUT, code="invalid_input")
    try:
        encoded = content.encode("utf-8")
    except UnicodeEncodeError:
        raise InputValidationError(MSG_INVALID_INPUT, code="invalid_input") from None
    if len(encoded) > max_content_bytes:
        raise InputValidationError(size_limit_message(max_content_bytes), code="size_limit")
    content_type = body.get("type")
    return content, content_type if isinstance(content_type, str) else None


# ─── Outcome ──────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class AnalysisOutcome:
    """Terminal state of one analysis request."""

    analysis_id: str
    status_code: int
    result: Optional[AnalysisResult] = None
    cached: bool = False
    error: Optional[str] = None
    decision: Optional[RateLimitDecision] = None
    cache_status: Optional[str] = None

    def to_response(self) -> JSONResponse:
        if self.status_code == 200 and self.result is not None and self.decision is not None:
            return build_success_response(
                self.result,
                cached=self.cached,
                analysis_id=self.analysis_id,
                decision=self.decision,
                cache_status=self.cache_status,
            )
        if self.status_code == 429 and self.decision is not None:
            return build_rate_limited_response(
                self.decision, self.error or MSG_INTERNAL_ERROR, self.analysis_id
            )
        return build_error_response(
            self.status_code,
            self.error or MSG_INTERNAL_ERROR,
            analysis_id=self.analysis_id,
            decision=self.decision,
        )


# ─── Orchestrator ─────────────────────────────────────────────────────────────


class AnalysisOrchestrator:
    """Coordinates one analysis per call. Holds no per-request state."""

    def __init__(
        self,
        rate_limiter: RateLimiter,
        result_cache: ResultCache,
        classifier: Classifier,
        max_content_bytes: int = MAX_CONTENT_BYTES,
        latency_tracker: Optional[LatencyTracker] = None,
        scanner: Callable[[str], list[Finding]] = scan,
    ) -> None:
        self.rate_limiter = rate_limiter
        self.result_cache = result_cache
        self.classifier = classifier
        self.max_content_bytes = max_content_bytes
        self.latency_tracker = latency_tracker
        self._scan = scanner

    async def analyze(
        self,
        client_id: str,
        body: Any,
        analysis_id: Optional[str] = None,
    ) -> AnalysisOutcome:
        analysis_id = analysis_id or generate_ulid()
        decision: Optional[RateLimitDecision] = None
        try:
            decision = await self.rate_limiter.check(client_id)
            if not decision.allowed:
                return AnalysisOutcome(
                    analysis_id=analysis_id,
                    status_code=429,
                    error=rate_limit_message(decision.limit),
                    decision=decision,
                )
            return await self._run(analysis_id, decision, body)
        except Exception as exc:
            logger.error(
                "analysis_unexpected_error",
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=True,
            )
            return AnalysisOutcome(
                analysis_id=analysis_id,
                status_code=500,
                error=MSG_INTERNAL_ERROR,
                decision=decision,
            )

    async def _run(
        self,
        analysis_id: str,
        decision: RateLimitDecision,
        body: Any,
    ) -> AnalysisOutcome:
        try:
            content, content_type = validate_request(body, self.max_content_bytes)
        except InputValidationError as exc:
            logger.info("analysis_rejected", code=exc.code)
            return AnalysisOutcome(
                analysis_id=analysis_id,
                status_code=400,
                error=exc.message,
                decision=decision,
            )

        is_url = is_valid_url(content)
        if is_url:
            cached = await self.result_cache.lookup(content)
            if cached is not None:
                logger.info("analysis_complete", score=cached.score.value, cached=True)
                return AnalysisOutcome(
                    analysis_id=analysis_id,
                    status_code=200,
                    result=cached,
                    cached=True,
                    decision=decision,
                    cache_status=CACHE_HIT,
                )

        findings = self._scan(content)

        try:
            with PerformanceLogger("classifier_call", logger, warn_ms=LLM_SLOW_WARN_MS) as perf:
                verdict = await self.classifier.classify(content, content_type)
        except ExternalClassifierError as exc:
            logger.error(
                "classifier_failed",
                reason=exc.reason,
                error=exc.message,
                content_length=len(content),
            )
            return AnalysisOutcome(
                analysis_id=analysis_id,
                status_code=500,
                error=MSG_CLASSIFIER_FAILED,
                decision=decision,
                cache_status=CACHE_MISS if is_url else None,
            )
        if self.latency_tracker is not None:
            self.latency_tracker.record(perf.duration_ms)

        result = merge_results(findings, verdict)

        if is_url:
            await self.result_cache.store(content, result)

        logger.info(
            "analysis_complete",
            score=result.score.value,
            llm_score=verdict.score.value,
            findings=len(findings),
            highlights=len(result.highlights),
            cached=False,
            content_length=len(content),
        )
        return AnalysisOutcome(
            analysis_id=analysis_id,
            status_code=200,
            result=result,
            cached=False,
            decision=decision,
            cache_status=CACHE_MISS if is_url else None,
        )
