"""JSON response builders for ``POST /api/analyze``.

Provides the factory functions that build correctly-formed responses for every
terminal state of an analysis request:

  build_success_response():
      HTTP 200 — ``{success: true, result: {...}, cached: bool}``.

  build_error_response():
      HTTP 400 / 500 — ``{success: false, error: "<message>"}``.

  build_rate_limited_response():
      HTTP 429 — ``{success: false, error, remaining: 0, reset_at}``.

Headers:
  - ``X-RateLimit-Limit`` / ``X-RateLimit-Remaining`` / ``X-RateLimit-Reset``
    whenever a rate-limit decision exists (reset is epoch milliseconds).
  - ``X-Cache: HIT|MISS`` only for URL submissions (``cache_status`` not None).
  - ``X-Analysis-ID: <ulid>`` on every analyze response.

No builder ever places exception text, stack traces or upstream payloads in a body.
"""

from __future__ import annotations

from typing import Optional

from fastapi.responses import JSONResponse

from phishscan.models.analysis import AnalysisResult
from phishscan.ratelimit.limiter import RateLimitDecision


def _apply_headers(
    response: JSONResponse,
    analysis_id: Optional[str],
    decision: Optional[RateLimitDecision],
    cache_status: Optional[str] = None,
) -> JSONResponse:
    if decision is not None:
        response.headers["X-RateLimit-Limit"] = str(decision.limit)
        response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
        response.headers["X-RateLimit-Reset"] = str(decision.reset_at)
    if cache_status is not None:
        response.headers["X-Cache"] = cache_status
    if analysis_id:
        response.headers["X-Analysis-ID"] = analysis_id
    return response


def build_success_response(
    result: AnalysisResult,
    cached: bool,
    analysis_id: str,
    decision: RateLimitDecision,
    cache_status: Optional[str] = None,
) -> JSONResponse:
    """Build the HTTP 200 analysis response.

    .. code-block:: json

        {
          "success": true,
          "result": {"score": "Low", "highlights": [{"text": "...", "reason": "..."}],
                     "summary": "..."},
          "cached": false
        }

    Args:
        result:       Merged (or cached) AnalysisResult.
        cached:       True when served from ResultCache.
        analysis_id:  ULID for this request.
        decision:     Rate-limit decision for this request (always allowed here).
        cache_status: ``"HIT"`` / ``"MISS"`` for URL submissions, None otherwise.
    """
    response = JSONResponse(
        status_code=200,
        content={"success": True, "result": result.to_dict(), "cached": cached},
    )
    return _apply_headers(response, analysis_id, decision, cache_status)


def build_error_response(
    status_code: int,
    message: str,
    analysis_id: Optional[str] = None,
    decision: Optional[RateLimitDecision] = None,
) -> JSONResponse:
    """Build a ``{success: false, error}`` response for 400 / 500 / 503.

    ``message`` must be one of the fixed user-facing strings in ``phishscan.errors``.
    """
    response = JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message},
    )
    return _apply_headers(response, analysis_id, decision)


def build_rate_limited_response(
    decision: RateLimitDecision,
    message: str,
    analysis_id: str,
) -> JSONResponse:
    """Build the HTTP 429 response.

    Carries ``remaining`` (always 0) and ``reset_at`` (epoch ms) in the body as
    well as the headers, so a client can back off without parsing headers.
    """
    response = JSONResponse(
        status_code=429,
        content={
            "success": False,
            "error": message,
            "remaining": 0,
            "reset_at": decision.reset_at,
        },
    )
    response.headers["Retry-After"] = str(max(0, decision.retry_after_s))
    return _apply_headers(response, analysis_id, decision)
