"""Client identifier resolution for rate limiting.

Resolution order:
  1. first entry of ``X-Forwarded-For``
  2. ``X-Real-IP``
  3. the socket peer address
  4. ``127.0.0.1``

Forwarding headers are trusted as-is. Deploy behind a proxy that overwrites them.
"""

from __future__ import annotations

from starlette.requests import Request

FALLBACK_CLIENT_ID = "127.0.0.1"


def resolve_client_id(request: Request) -> str:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    real_ip = (request.headers.get("x-real-ip") or "").strip()
    if real_ip:
        return real_ip

    if request.client is not None and request.client.host:
        return request.client.host

    return FALLBACK_CLIENT_ID
