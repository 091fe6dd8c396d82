"""Shared constants for PhishScan.

All size limits, quotas and retention windows used across modules are defined
here. No magic numbers in other modules — import from here.
"""

# ─── Input Size Limits ───────────────────────────────────────────────────────

# Maximum analysable content size, measured in UTF-8 bytes.
# Content above this ceiling is rejected with HTTP 400 before the rule engine,
# the cache or the LLM ever see it. Bounding input is also the primary guard
# for regex run time in the rule engine.
MAX_CONTENT_BYTES: int = 20 * 1024  # 20 KiB = 20,480 bytes

# Hard cap on the raw HTTP request body, enforced by BodySizeLimitMiddleware
# before JSON parsing. Leaves headroom for JSON escaping of MAX_CONTENT_BYTES
# (Korean text escaped as \uXXXX grows up to 6x).
MAX_REQUEST_BODY_BYTES: int = 256 * 1024  # 256 KiB

# ─── Rate Limiting ───────────────────────────────────────────────────────────

# Standard daily quota per client identifier (production and default).
RATE_LIMIT_DEFAULT: int = 10

# Relaxed quota for local development. Only reachable when the operating
# environment is not "production", dev mode is explicitly enabled in config,
# and the client is a loopback address.
RATE_LIMIT_DEVELOPMENT: int = 50

# Rolling window length. The window is anchored at the client's first request,
# not aligned to the wall-clock day.
RATE_LIMIT_WINDOW_HOURS: int = 24

# Client identifiers eligible for the development quota.
LOCAL_CLIENT_IDS: frozenset[str] = frozenset({"127.0.0.1", "::1", "localhost"})

# ─── Result Cache ────────────────────────────────────────────────────────────

# URL verdicts are served from cache for this many days after being written.
CACHE_EXPIRY_DAYS: int = 7

# Default number of rows returned by GET /api/cache/stats.
CACHE_STATS_LIMIT: int = 100

# Key cap for the process-local memory cache backend.
MEMORY_CACHE_MAX_ENTRIES: int = 10_000

# Seconds between background sweeps of expired cache entries.
CACHE_PRUNE_INTERVAL_S: int = 60 * 60

# ─── LLM Classifier ──────────────────────────────────────────────────────────

# Single attempt, generous deadline. The LLM call is the only long suspension
# point in a request; it must still terminate.
LLM_TIMEOUT_S: float = 30.0

DEFAULT_LLM_MODEL: str = "gpt-4o"
DEFAULT_LLM_BASE_URL: str = "https://api.openai.com"
