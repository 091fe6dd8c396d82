"""Root test configuration for PhishScan.

Shared fixtures:
  - ``isolate_env``   — autouse; strips PhishScan / OpenAI / Supabase env vars so
                        a developer's shell never leaks into a test.
  - ``fake_clock``    — manually advanced epoch-millisecond clock.
  - ``frozen_time``   — fake_clock wired into ``time.time()`` for code that
                        reads the wall clock directly (rate limiter storage).
  - ``fake_classifier`` — scripted Classifier double (no network).
  - ``test_config``   — default Config with the memory cache backend.
"""

from __future__ import annotations

from typing import Any, Optional

import pytest

from phishscan.classifier.schema import LLMVerdict
from phishscan.config import Config
from phishscan.errors import ExternalClassifierError

_ISOLATED_ENV_VARS = (
    "PHISHSCAN_CONFIG",
    "PHISHSCAN_PORT",
    "PHISHSCAN_ENV",
    "PHISHSCAN_ALLOW_DEV_MODE",
    "OPENAI_API_KEY",
    "SUPABASE_URL",
    "SUPABASE_KEY",
)


@pytest.fixture(autouse=True)
def isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ISOLATED_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class FakeClock:
    """Epoch-millisecond clock that only moves when told to."""

    def __init__(self, start_ms: int = 1_700_000_000_000) -> None:
        self.now_ms = start_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


class FakeClassifier:
    """Classifier double returning a fixed verdict, or raising a fixed error.

    Records every ``(content, content_type)`` it was called with.
    """

    def __init__(
        self,
        verdict: Optional[dict[str, Any]] = None,
        error: Optional[Exception] = None,
        configured: bool = True,
    ) -> None:
        self._verdict = LLMVerdict.model_validate(
            verdict or {"score": "Safe", "highlights": [], "summary": "No phishing indicators."}
        )
        self._error = error
        self._configured = configured
        self.calls: list[tuple[str, Optional[str]]] = []

    @property
    def configured(self) -> bool:
        return self._configured

    async def classify(self, content: str, content_type: Optional[str]) -> LLMVerdict:
        self.calls.append((content, content_type))
        if self._error is not None:
            raise self._error
        return self._verdict


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def frozen_time(monkeypatch: pytest.MonkeyPatch, fake_clock: FakeClock) -> FakeClock:
    monkeypatch.setattr("time.time", lambda: fake_clock.now_ms / 1000)
    return fake_clock


@pytest.fixture
def fake_classifier() -> FakeClassifier:
    return FakeClassifier()


@pytest.fixture
def failing_classifier() -> FakeClassifier:
    return FakeClassifier(error=ExternalClassifierError("upstream down", reason="transport"))


@pytest.fixture
def test_config() -> Config:
    config = Config.defaults()
    config.environment = "test"
    config.cache.backend = "memory"
    return config


@pytest.fixture
def make_classifier() -> type[FakeClassifier]:
    """The FakeClassifier class, for tests that need a custom verdict."""
    return FakeClassifier
