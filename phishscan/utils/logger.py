"""Structured logging for PhishScan.

Every log line emitted while an analysis request is in flight carries that
request's ``analysis_id`` (the ULID also returned in ``X-Analysis-ID``), bound
through ``structlog.contextvars`` by ``analysis_context()``. A single verdict can
be traced from the rate-limit check through the LLM call to the cache write.

Submitted content must never reach a log line. ``redact_submissions`` replaces
any event field that could carry it with a length marker, so a careless
``logger.info(..., content=content)`` still leaks nothing.
"""

import logging
import sys
import time
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import structlog
from structlog.types import EventDict, Processor

#: Event fields that may hold raw submitted text or URLs.
REDACTED_FIELDS: frozenset[str] = frozenset({"content", "url", "body", "text"})


def redact_submissions(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    for key in REDACTED_FIELDS.intersection(event_dict):
        value = event_dict[key]
        if isinstance(value, (str, bytes)):
            event_dict[key] = f"<redacted {len(value)} chars>"
    return event_dict


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Configure structlog for the process.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL.
        json_output: JSON lines when True, coloured console output otherwise.
    """
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        redact_submissions,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = "phishscan") -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


@contextmanager
def analysis_context(analysis_id: str, **fields: Any) -> Iterator[None]:
    """Bind ``analysis_id`` (and any extra ``fields``) to every log line in the block.

    Bindings are restored on exit, so nested or concurrent requests never see
    each other's ids.
    """
    with structlog.contextvars.bound_contextvars(analysis_id=analysis_id, **fields):
        yield


class PerformanceLogger:
    """Times a block and logs ``<operation>_completed`` / ``<operation>_failed``.

    Runs slower than ``warn_ms`` log at WARNING, faster ones at DEBUG, failures
    at ERROR. Exceptions always propagate.
    """

    def __init__(
        self,
        operation: str,
        logger: Optional[structlog.stdlib.BoundLogger] = None,
        warn_ms: float = 50.0,
    ):
        self.operation = operation
        self.logger = logger or get_logger()
        self.warn_ms = warn_ms
        self.start_time: float = 0
        self.end_time: float = 0

    def __enter__(self) -> "PerformanceLogger":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.end_time = time.perf_counter()
        duration_ms = round(self.duration_ms, 2)

        if exc_type is not None:
            self.logger.error(
                f"{self.operation}_failed",
                duration_ms=duration_ms,
                error_type=exc_type.__name__,
            )
            return
        slow = duration_ms > self.warn_ms
        log_method = self.logger.warning if slow else self.logger.debug
        log_method(f"{self.operation}_completed", duration_ms=duration_ms, slow=slow)

    @property
    def duration_ms(self) -> float:
        """Elapsed milliseconds; still running if the block has not exited."""
        end = self.end_time or time.perf_counter()
        return (end - self.start_time) * 1000


# Sensible defaults until main.py reconfigures from the environment
configure_logging()
