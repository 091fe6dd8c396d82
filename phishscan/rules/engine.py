"""Static rule engine.

Provides:
  - ``scan()``: apply every rule in ``RULES`` to the content; one Finding per
    match occurrence; pure; never raises.

IMPORT RULES:
  - ``import re2`` ONLY (via definitions.py) — ``import re`` is PROHIBITED here.

PRECONDITION: content has already been size-checked by the caller
(``AnalysisOrchestrator`` rejects anything above ``analysis.max_content_bytes``).
This function does not truncate.
"""

from __future__ import annotations

import logging
from typing import Iterator, Sequence

from phishscan.models.analysis import Finding
from phishscan.rules.definitions import RULES, RuleEntry

logger = logging.getLogger(__name__)


def _matches(rule: RuleEntry, content: str) -> Iterator[str]:
    if rule.matcher is not None:
        return rule.matcher(rule.pattern, content)
    return (m.group(0) for m in rule.pattern.finditer(content))


def scan(content: str, rules: Sequence[RuleEntry] = RULES) -> list[Finding]:
    """Apply all rules to ``content`` in declaration order.

    INVARIANTS:
      - Synchronous — no async, no I/O.
      - Deterministic: the same content always yields the same list.
      - NEVER raises. A rule that errors is logged at ERROR and skipped; the
        remaining rules still run.
      - Empty content → ``[]``.

    Args:
        content: Text to scan.
        rules:   Rule list override (tests only).

    Returns:
        Findings in rule order, then match order within each rule.
    """
    if not content:
        return []

    findings: list[Finding] = []
    for rule in rules:
        try:
            for matched in _matches(rule, content):
                findings.append(
                    Finding(matched_text=matched, reason=rule.reason, severity=rule.severity)
                )
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "Rule %s failed: %s: %s — skipping",
                rule.slug,
                type(exc).__name__,
                exc,
                exc_info=True,
            )

    if findings:
        logger.debug("Static rules produced %d finding(s)", len(findings))
    return findings
