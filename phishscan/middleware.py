"""Request body size limit middleware for PhishScan.

Caps the raw HTTP body at MAX_REQUEST_BODY_BYTES before JSON parsing:
  - Content-Length fast path: reject on the declared size without reading.
  - Chunked slow path: accumulate with a rolling cap; reject as soon as the
    cap is crossed.

Both rejections use the analyze error envelope (HTTP 400, ``success: false``).
The per-field content ceiling (MAX_CONTENT_BYTES, UTF-8) is enforced later by
the orchestrator; this cap only keeps oversized payloads out of the parser.
"""

from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from phishscan.constants import MAX_REQUEST_BODY_BYTES
from phishscan.errors import size_limit_message
from phishscan.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Error response bodies ────────────────────────────────────────────────────

_INVALID_CONTENT_LENGTH_BODY: dict = {
    "success": False,
    "error": "Invalid Content-Length header",
}


def _too_large_response(limit_bytes: int) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": size_limit_message(limit_bytes)},
    )


# ─── Middleware ───────────────────────────────────────────────────────────────


class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    """Starlette middleware enforcing a hard cap on request body size.

    Registration (in create_app() in phishscan/main.py):
        application.add_middleware(BodySizeLimitMiddleware)

      - Content-Length > max_bytes  → HTTP 400 (no body read)
      - Content-Length == max_bytes → accepted
      - No Content-Length, accumulated body > max_bytes → HTTP 400
      - No Content-Length, accumulated body ≤ max_bytes → accepted, body cached
    """

    def __init__(self, app, max_bytes: int = MAX_REQUEST_BODY_BYTES) -> None:  # type: ignore[no-untyped-def]
        super().__init__(app)
        self.max_bytes = max_bytes

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        content_length_header = request.headers.get("content-length")

        # ── Phase 1: Content-Length fast path ─────────────────────────────────
        if content_length_header is not None:
            try:
                declared_size = int(content_length_header)
            except ValueError:
                logger.warning(
                    "invalid_content_length",
                    value=content_length_header,
                    path=request.url.path,
                )
                return JSONResponse(status_code=400, content=_INVALID_CONTENT_LENGTH_BODY)

            if declared_size > self.max_bytes:
                logger.warning(
                    "request_body_too_large",
                    declared_size=declared_size,
                    limit=self.max_bytes,
                    path=request.url.path,
                )
                return _too_large_response(self.max_bytes)

            return await call_next(request)

        # ── Phase 2: no Content-Length, rolling cap ──────────────────────────
        body_chunks: list[bytes] = []
        total_size = 0

        async for chunk in request.stream():
            total_size += len(chunk)
            if total_size > self.max_bytes:
                logger.warning(
                    "request_body_too_large",
                    accumulated_size=total_size,
                    limit=self.max_bytes,
                    path=request.url.path,
                )
                return _too_large_response(self.max_bytes)
            body_chunks.append(chunk)

        # Request.body() returns request._body when set; the stream is consumed.
        request._body = b"".join(body_chunks)  # type: ignore[attr-defined]

        return await call_next(request)
