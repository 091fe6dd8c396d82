"""PhishScan HTTP API.

    router.py    — POST /api/analyze, GET /api/cache/stats
    client_ip.py — client identifier resolution for rate limiting
"""

from phishscan.api.client_ip import resolve_client_id
from phishscan.api.router import router

__all__ = ["resolve_client_id", "router"]
