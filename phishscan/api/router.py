"""Analysis API endpoints for PhishScan.

Routes (mounted under /api in main.py, gated on readiness):
    POST /analyze     — classify an email body or URL
    GET  /cache/stats — most-hit unexpired cached URL verdicts

Request body for /analyze::

    {"content": "<email text or URL>", "type": "email" | "url"}

The body is decoded leniently: malformed JSON is handed to the orchestrator
as ``None`` so that it still counts against the client's quota and is answered
with the standard 400 envelope rather than a framework validation error.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from phishscan.api.client_ip import resolve_client_id
from phishscan.orchestrator import AnalysisOrchestrator
from phishscan.utils.logger import analysis_context, get_logger
from phishscan.utils.ulid import generate_ulid

logger = get_logger(__name__)

router = APIRouter(tags=["analysis"])


async def _read_json(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        return None


@router.post("/analyze")
async def analyze(request: Request) -> JSONResponse:
    """Run one analysis: rate limit → validate → cache → rules → classifier → merge."""
    analysis_id = generate_ulid()
    with analysis_context(analysis_id):
        client_id = resolve_client_id(request)
        body = await _read_json(request)
        orchestrator: AnalysisOrchestrator = request.app.state.orchestrator
        outcome = await orchestrator.analyze(client_id, body, analysis_id=analysis_id)
        if outcome.status_code != 200:
            logger.info("analysis_failed", status_code=outcome.status_code)
        return outcome.to_response()


@router.get("/cache/stats")
async def cache_stats(request: Request) -> dict[str, Any]:
    """Cached URL verdicts ordered by hit count.

    ``data`` is null when caching is disabled or the backend is unreachable.
    """
    data = await request.app.state.result_cache.stats()
    return {"success": True, "data": data}
