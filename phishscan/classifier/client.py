"""External LLM classifier over an OpenAI-compatible Chat Completions endpoint.

Provides:
  - ``Classifier``:         runtime-checkable Protocol (tests inject doubles).
  - ``OpenAIClassifier``:   one POST per analysis, forced ``analyze_phishing`` call.
  - ``create_http_client()``: the shared httpx.AsyncClient (created once at startup).
  - ``create_classifier()``: builds OpenAIClassifier from Config + OPENAI_API_KEY.

Failure contract: EVERY failure raises ``ExternalClassifierError`` — missing API
key, connect/read timeout, transport error, non-2xx status, undecodable body,
missing function/tool call, schema violation. There is one attempt per request
and no fallback verdict. The orchestrator maps the error to HTTP 500.

Logging: status codes, model name and latency only. Never the API key, never
the analysed content, never the upstream body.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any, Optional, Protocol, runtime_checkable

import httpx

from phishscan.classifier.prompt import FUNCTION_DEFINITION, FUNCTION_NAME, build_messages
from phishscan.classifier.schema import LLMVerdict, parse_verdict
from phishscan.constants import DEFAULT_LLM_BASE_URL, DEFAULT_LLM_MODEL, LLM_TIMEOUT_S
from phishscan.errors import ExternalClassifierError
from phishscan.utils.logger import get_logger

if TYPE_CHECKING:
    from phishscan.config import Config

logger = get_logger(__name__)

# ─── Constants ────────────────────────────────────────────────────────────────

POOL_MAX_CONNECTIONS: int = 100
POOL_MAX_KEEPALIVE: int = 20
POOL_KEEPALIVE_EXPIRY: float = 30.0  # seconds

_ENV_API_KEY = "OPENAI_API_KEY"

CHAT_COMPLETIONS_PATH = "/v1/chat/completions"


# ─── httpx.AsyncClient factory ────────────────────────────────────────────────


def create_http_client(timeout_s: float = LLM_TIMEOUT_S) -> httpx.AsyncClient:
    """Create the shared httpx.AsyncClient with connection pooling configured.

    Created once at lifespan startup and stored in app.state.http_client.
    NEVER instantiated per-request.
    """
    return httpx.AsyncClient(
        limits=httpx.Limits(
            max_connections=POOL_MAX_CONNECTIONS,
            max_keepalive_connections=POOL_MAX_KEEPALIVE,
            keepalive_expiry=POOL_KEEPALIVE_EXPIRY,
        ),
        timeout=httpx.Timeout(timeout_s),
        follow_redirects=False,
    )


# ─── Classifier Protocol ──────────────────────────────────────────────────────


@runtime_checkable
class Classifier(Protocol):
    """Black-box phishing oracle."""

    @property
    def configured(self) -> bool:
        """False when the classifier cannot possibly succeed (e.g. no API key)."""
        ...

    async def classify(self, content: str, content_type: Optional[str]) -> LLMVerdict:
        """Return a validated verdict or raise ExternalClassifierError."""
        ...


# ─── OpenAIClassifier ─────────────────────────────────────────────────────────


class OpenAIClassifier:
    """Chat Completions client with a forced ``analyze_phishing`` tool call.

    Request body::

        {
          "model": "gpt-4o",
          "temperature": 0,
          "messages": [system, user],
          "tools": [{"type": "function", "function": FUNCTION_DEFINITION}],
          "tool_choice": {"type": "function", "function": {"name": "analyze_phishing"}}
        }

    Accepted response shapes (first match wins):
      - ``choices[0].message.tool_calls[*].function`` named ``analyze_phishing``
      - ``choices[0].message.function_call`` (legacy functions API)
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: Optional[str],
        base_url: str = DEFAULT_LLM_BASE_URL,
        model: str = DEFAULT_LLM_MODEL,
        timeout_s: float = LLM_TIMEOUT_S,
        temperature: float = 0.0,
    ) -> None:
        self._http = http_client
        self._api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout_s = timeout_s
        self.temperature = temperature

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    def build_payload(self, content: str, content_type: Optional[str]) -> dict[str, Any]:
        return {
            "model": self.model,
            "temperature": self.temperature,
            "messages": build_messages(content, content_type),
            "tools": [{"type": "function", "function": FUNCTION_DEFINITION}],
            "tool_choice": {"type": "function", "function": {"name": FUNCTION_NAME}},
        }

    async def classify(self, content: str, content_type: Optional[str]) -> LLMVerdict:
        if not self._api_key:
            raise ExternalClassifierError(
                f"{_ENV_API_KEY} is not set", reason="not_configured"
            )

        url = self.base_url + CHAT_COMPLETIONS_PATH
        try:
            response = await self._http.post(
                url,
                json=self.build_payload(content, content_type),
                headers={"Authorization": f"Bearer {self._api_key}"},
                timeout=self.timeout_s,
            )
        except httpx.TimeoutException as exc:
            raise ExternalClassifierError(
                f"classifier timed out after {self.timeout_s}s", reason="timeout"
            ) from exc
        except httpx.HTTPError as exc:
            raise ExternalClassifierError(
                f"classifier transport error: {type(exc).__name__}", reason="transport"
            ) from exc

        if response.status_code // 100 != 2:
            logger.warning(
                "classifier_upstream_error",
                status_code=response.status_code,
                model=self.model,
            )
            raise ExternalClassifierError(
                f"classifier returned HTTP {response.status_code}", reason="upstream_status"
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise ExternalClassifierError(
                "classifier response body is not JSON", reason="invalid_json"
            ) from exc

        return parse_verdict(extract_function_arguments(body))


def extract_function_arguments(body: Any) -> Any:
    """Pull the ``analyze_phishing`` arguments out of a Chat Completions body.

    Raises:
        ExternalClassifierError: reason ``"missing_function_call"``.
    """
    try:
        message = body["choices"][0]["message"]
    except (KeyError, IndexError, TypeError) as exc:
        raise ExternalClassifierError(
            "classifier response has no message", reason="missing_function_call"
        ) from exc

    if not isinstance(message, dict):
        raise ExternalClassifierError(
            "classifier response has no message", reason="missing_function_call"
        )

    for call in message.get("tool_calls") or []:
        function = call.get("function") if isinstance(call, dict) else None
        if isinstance(function, dict) and function.get("name") == FUNCTION_NAME:
            if function.get("arguments"):
                return function["arguments"]

    legacy = message.get("function_call")
    if isinstance(legacy, dict) and legacy.get("arguments"):
        return legacy["arguments"]

    raise ExternalClassifierError(
        f"classifier response has no {FUNCTION_NAME} call", reason="missing_function_call"
    )


# ─── Factory ──────────────────────────────────────────────────────────────────


def create_classifier(config: "Config", http_client: httpx.AsyncClient) -> OpenAIClassifier:
    """Build the classifier from ``config.llm`` and the OPENAI_API_KEY env var.

    A missing key is not a startup error: the service starts, /health reports
    ``classifier: unconfigured`` and analysis requests fail with 500.
    """
    api_key = os.getenv(_ENV_API_KEY)
    if not api_key:
        logger.warning("classifier_unconfigured", env_var=_ENV_API_KEY)

    classifier = OpenAIClassifier(
        http_client=http_client,
        api_key=api_key,
        base_url=config.llm.base_url,
        model=config.llm.model,
        timeout_s=config.llm.timeout_s,
        temperature=config.llm.temperature,
    )
    logger.info(
        "classifier_created",
        model=classifier.model,
        base_url=classifier.base_url,
        timeout_s=classifier.timeout_s,
        configured=classifier.configured,
    )
    return classifier
