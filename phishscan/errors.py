"""Exception taxonomy and user-facing error messages.

HTTP mapping (see ``phishscan.models.responses``):
  - InputValidationError    → 400, per-case message
  - RateLimitExceeded       → 429 (a policy decision, not an exception; see RateLimitDecision)
  - CacheUnavailableError   → never leaves ResultCache; miss / no-op
  - ExternalClassifierError → 500, generic message
  - anything else           → 500, generic message

Messages below are the ONLY strings that reach a response body on failure.
Exception text, stack traces and upstream payloads are logged, never returned.
"""

from __future__ import annotations

# ─── User-facing messages ─────────────────────────────────────────────────────

MSG_INVALID_INPUT = "Invalid input: content must be a non-empty string."
MSG_SIZE_LIMIT = "Input size exceeds the {limit_kb}KB limit."
MSG_RATE_LIMIT = (
    "Daily request limit of {limit} exceeded. Please try again after the window resets."
)
MSG_CLASSIFIER_FAILED = "An error occurred during AI analysis."
MSG_INTERNAL_ERROR = "An internal server error occurred."
MSG_NOT_READY = "Service is starting up. Please retry shortly."


def size_limit_message(limit_bytes: int) -> str:
    return MSG_SIZE_LIMIT.format(limit_kb=limit_bytes // 1024)


def rate_limit_message(limit: int) -> str:
    return MSG_RATE_LIMIT.format(limit=limit)


# ─── Exceptions ───────────────────────────────────────────────────────────────


class InputValidationError(Exception):
    """Raised when the analyze body fails validation.

    HTTP mapping: 400 Bad Request with ``message`` as the error text.

    ``code`` distinguishes the two cases for logs and tests:
      - ``invalid_input`` — missing, empty or non-string content
      - ``size_limit``    — content above the byte ceiling
    """

    def __init__(self, message: str, code: str) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class CacheUnavailableError(Exception):
    """Raised by cache backends on connectivity, timeout or corrupt-row failures.

    Caught inside ``ResultCache``; never propagates to a request.
    """


class ExternalClassifierError(Exception):
    """Raised when the LLM call fails for any reason.

    Covers: missing API key, transport error, timeout, non-2xx status,
    undecodable body, missing function/tool call, schema violation.

    HTTP mapping: 500 with MSG_CLASSIFIER_FAILED. Never downgraded to a Safe verdict.
    """

    def __init__(self, message: str, reason: str = "unknown") -> None:
        super().__init__(message)
        self.message = message
        self.reason = reason
