"""PhishScan FastAPI application factory + lifespan lifecycle.

This module implements:
  - create_app() — testable application factory
  - lifespan — @asynccontextmanager startup/shutdown sequence
  - /health router — delegated to phishscan/health.py
  - /api router    — delegated to phishscan/api/router.py
  - /        route — service discovery root
  - app = create_app() — module-level instance for uvicorn

Startup sequence:
  1. load_config()              → app.state.config
  2. create_cache_backend()     → app.state.result_cache (wrapping the backend)
     run_cache_pruner()         → background task pruning expired entries hourly
  3. create_http_client()       → app.state.http_client
  4. create_classifier()        → app.state.classifier
  5. LatencyTracker()           → app.state.latency_tracker
  6. RateLimiter()              → app.state.rate_limiter
  7. AnalysisOrchestrator()     → app.state.orchestrator
  8. app.state.ready = True

Shutdown sequence (reverse):
  app.state.ready = False → cancel cache pruner → close http client → close cache backend

Uvicorn hardened defaults (see phishscan/run.py):
  uvicorn phishscan.main:app \\
    --host 127.0.0.1 \\
    --port 8000 \\
    --limit-concurrency 100 \\
    --backlog 50 \\
    --timeout-keep-alive 5
"""

from __future__ import annotations

import asyncio
import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.routing import APIRouter
from starlette.exceptions import HTTPException as StarletteHTTPException

from phishscan.api.router import router as api_router
from phishscan.cache.factory import create_cache_backend
from phishscan.cache.protocol import CacheBackend
from phishscan.cache.result_cache import ResultCache, run_cache_pruner
from phishscan.classifier.client import create_classifier, create_http_client
from phishscan.config import Config, load_config
from phishscan.errors import MSG_INTERNAL_ERROR, MSG_NOT_READY
from phishscan.health import router as health_router
from phishscan.middleware import BodySizeLimitMiddleware
from phishscan.orchestrator import AnalysisOrchestrator
from phishscan.ratelimit.limiter import RateLimiter, RateLimitPolicy
from phishscan.utils.health import LatencyTracker
from phishscan.utils.logger import configure_logging, get_logger

# ─── Logging Setup ────────────────────────────────────────────────────────────
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if not DEBUG else "DEBUG")
JSON_LOGS = os.getenv("JSON_LOGS", "true").lower() == "true"

configure_logging(log_level=LOG_LEVEL, json_output=JSON_LOGS)
logger = get_logger(__name__)


# ─── Routers ──────────────────────────────────────────────────────────────────

root_router = APIRouter(tags=["root"])


# ─── Dependencies ─────────────────────────────────────────────────────────────


async def require_ready(request: Request) -> None:
    """FastAPI dependency: raises HTTP 503 if app.state.ready is not True.

    The /health endpoint handles the 503 case itself.
    """
    if not getattr(request.app.state, "ready", False):
        raise HTTPException(
            status_code=503,
            detail={"status": "starting", "message": MSG_NOT_READY},
        )


# ─── Root Endpoint ────────────────────────────────────────────────────────────


@root_router.get("/")
async def root() -> dict[str, str]:
    """Root endpoint — service identity / discovery."""
    return {
        "service": "PhishScan",
        "tagline": "Phishing risk analysis for emails and URLs",
        "analyze": "/api/analyze",
        "health": "/health",
    }


# ─── Lifespan ─────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan — startup and shutdown sequence.

    load_config() raises SystemExit on an invalid config file, so the process
    exits non-zero before ready=True is ever set. Every other dependency
    degrades instead of failing startup: the cache falls back to
    NullCacheBackend and a missing API key leaves the classifier unconfigured.
    """
    logger.info("phishscan_starting")

    # ── Step 1: Load configuration ────────────────────────────────────────────
    config: Config = load_config()
    app.state.config = config
    logger.info(
        "config_loaded",
        environment=config.environment,
        cache_backend=config.cache.backend,
        rate_limit=config.rate_limit.limit,
        allow_dev_mode=config.rate_limit.allow_dev_mode,
    )

    # ── Step 2: Result cache ──────────────────────────────────────────────────
    cache_backend: CacheBackend = await create_cache_backend(config)
    result_cache = ResultCache(cache_backend, retention_days=config.cache.retention_days)
    app.state.result_cache = result_cache

    prune_task: asyncio.Task[None] | None = None
    if result_cache.enabled:
        prune_task = asyncio.create_task(run_cache_pruner(result_cache))
    app.state.cache_prune_task = prune_task

    # ── Step 3: Shared HTTP client ────────────────────────────────────────────
    # NEVER instantiated per-request.
    http_client: httpx.AsyncClient = create_http_client(config.llm.timeout_s)
    app.state.http_client = http_client
    logger.info("http_client_created", timeout_s=config.llm.timeout_s)

    # ── Step 4: Classifier ────────────────────────────────────────────────────
    classifier = create_classifier(config, http_client)
    app.state.classifier = classifier

    # ── Step 5: Classifier latency tracker ────────────────────────────────────
    latency_tracker = LatencyTracker()
    app.state.latency_tracker = latency_tracker

    # ── Step 6: Rate limiter ──────────────────────────────────────────────────
    rate_limiter = RateLimiter(RateLimitPolicy.from_config(config))
    app.state.rate_limiter = rate_limiter

    # ── Step 7: Orchestrator ──────────────────────────────────────────────────
    app.state.orchestrator = AnalysisOrchestrator(
        rate_limiter=rate_limiter,
        result_cache=result_cache,
        classifier=classifier,
        max_content_bytes=config.analysis.max_content_bytes,
        latency_tracker=latency_tracker,
    )

    # ── Step 8: Mark as ready ─────────────────────────────────────────────────
    app.state.ready = True
    logger.info("phishscan_ready")

    yield

    # ── Shutdown (reverse order) ──────────────────────────────────────────────
    logger.info("phishscan_shutting_down")
    app.state.ready = False

    if prune_task is not None and not prune_task.done():
        prune_task.cancel()
        try:
            await prune_task
        except asyncio.CancelledError:
            pass

    try:
        await http_client.aclose()
        logger.info("http_client_closed")
    except Exception as exc:
        logger.warning("http_client_close_error", error=str(exc))

    try:
        await cache_backend.close()
    except Exception as exc:
        logger.warning("cache_backend_close_error", error=str(exc))

    logger.info("phishscan_shutdown_complete")


# ─── Application Factory ──────────────────────────────────────────────────────


def create_app() -> FastAPI:
    """Create and configure the PhishScan FastAPI application.

    Call this function directly in tests to get an isolated app instance:
        app = create_app()
    """
    # Swagger UI and ReDoc only with DEBUG=true.
    _debug = os.getenv("DEBUG", "false").lower() == "true"

    application = FastAPI(
        title="PhishScan",
        description="Phishing risk analysis for emails and URLs",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if _debug else None,
        redoc_url="/redoc" if _debug else None,
        openapi_url="/openapi.json" if _debug else None,
    )

    # /health returns 503 until the lifespan completes.
    application.state.ready = False

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=[
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
            "X-Cache",
            "X-Analysis-ID",
            "Retry-After",
        ],
    )

    # The LAST-added middleware is OUTERMOST: the size cap runs before CORS.
    application.add_middleware(BodySizeLimitMiddleware)

    application.include_router(root_router)
    application.include_router(health_router)
    application.include_router(
        api_router, prefix="/api", dependencies=[Depends(require_ready)]
    )

    # Global exception handlers
    @application.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        logger.warning(
            "http_exception",
            status_code=exc.status_code,
            detail=exc.detail,
            path=str(request.url.path),
        )
        if isinstance(exc.detail, dict):
            extra = {k: v for k, v in exc.detail.items() if k != "message"}
            content = {"success": False, "error": exc.detail.get("message", ""), **extra}
        else:
            content = {"success": False, "error": str(exc.detail)}
        return JSONResponse(status_code=exc.status_code, content=content)

    @application.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=str(request.url.path),
        )
        return JSONResponse(
            status_code=500, content={"success": False, "error": MSG_INTERNAL_ERROR}
        )

    return application


# ─── Module-Level App (for uvicorn) ───────────────────────────────────────────

app = create_app()
