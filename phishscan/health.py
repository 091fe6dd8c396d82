"""Health endpoint for PhishScan.

Implements:
  GET /health — 503 before ``app.state.ready``; 200 with dependency status after.

The cache is optional, so an unavailable cache reports ``"degraded"`` rather
than failing the probe. A missing classifier key also reports ``"degraded"``:
the process is up, but every analysis will fail.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Request

from phishscan.config import Config
from phishscan.utils.health import LatencyTracker, check_component_health

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    """Primary health check endpoint.

    Response body (200):
        {
          "status": "ok" | "degraded",
          "environment": "production" | "development" | "test",
          "cache_backend": "LocalSQLiteCacheBackend" | ... | "NullCacheBackend",
          "cache": "healthy" | "unavailable" | "disabled",
          "classifier": "configured" | "unconfigured",
          "avg_llm_ms": 0.0,
          "p99_llm_ms": 0.0
        }

    Response body (503):
        {"status": "starting", "message": "PhishScan is starting up."}
    """
    if not getattr(request.app.state, "ready", False):
        raise HTTPException(
            status_code=503,
            detail={"status": "starting", "message": "PhishScan is starting up."},
        )

    config: Config = request.app.state.config
    result_cache = request.app.state.result_cache
    latency_tracker: Optional[LatencyTracker] = getattr(
        request.app.state, "latency_tracker", None
    )

    component_health = await check_component_health(
        result_cache=result_cache,
        classifier=request.app.state.classifier,
        latency_tracker=latency_tracker,
    )

    return {
        "status": "ok" if component_health.healthy else "degraded",
        "environment": config.environment,
        "cache_backend": type(result_cache.backend).__name__,
        "cache": component_health.cache,
        "classifier": component_health.classifier,
        "avg_llm_ms": round(component_health.avg_llm_ms, 2),
        "p99_llm_ms": round(component_health.p99_llm_ms, 2),
    }
