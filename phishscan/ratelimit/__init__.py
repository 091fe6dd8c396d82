"""PhishScan rate limiting package.

Re-exports the public API for ergonomic imports:

    from phishscan.ratelimit import RateLimiter, RateLimitPolicy

Layout:
    limiter.py — RateLimitPolicy, RateLimitDecision, RateLimiter (on ``limits``)
"""

from phishscan.ratelimit.limiter import RateLimitDecision, RateLimiter, RateLimitPolicy

__all__ = [
    "RateLimitDecision",
    "RateLimitPolicy",
    "RateLimiter",
]
