"""Phishing heuristic definitions for the static rule engine.

All patterns are pre-compiled at module load time using google-re2.
NO pattern compilation happens per-request, per-call, or lazily.

IMPORT RULES:
  - ``import re2`` ONLY — ``import re`` is PROHIBITED in this package.
    re2 runs in linear time, so no input can trigger catastrophic backtracking.

RULES is an ordered list. ``scan()`` evaluates it top to bottom and reports
findings in that order. The ``reason`` string is the rule identity; two rules
must never share one (enforced at import below).

re2 has no lookaround. The two rules that need "... not followed by a Korean
domain" (``KOREAN_SENDER_FOREIGN_LINK`` and ``FOREIGN_FORM_ACTION``) carry a
``matcher`` callable in addition to their pattern; the engine calls the matcher
instead of ``pattern.finditer``. See ``phishscan/rules/engine.py``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional

import re2  # google-re2, NOT stdlib re

from phishscan.models.analysis import Severity


# ─── RuleEntry dataclass ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class RuleEntry:
    """A single compiled phishing heuristic.

    Fields:
        pattern:  Pre-compiled re2 pattern object. Compiled at module load time.
        reason:   Human-readable reason; doubles as the rule identity.
        severity: Weight class of every finding this rule produces.
        slug:     Kebab-case short name, used in logs only.
        matcher:  Optional ``(pattern, text) -> Iterator[str]`` replacing the plain
                  ``finditer`` scan for rules that need a post-match check.
    """

    pattern: Any  # re2._Regexp, pre-compiled at module load
    reason: str
    severity: Severity
    slug: str
    matcher: Optional[Callable[[Any, str], Iterator[str]]] = None


# ─── Reason strings ──────────────────────────────────────────────────────────

REASON_KOREAN_SENDER_FOREIGN_LINK = "Email from Korean domain but links to foreign domain"
REASON_PUBLIC_WEBMAIL_SENDER = "Using public email service for official business communication"
REASON_FINANCIAL_SHORT_URL = "Financial content with shortened URL"
REASON_FOREIGN_FORM_ACTION = "HTML form submits to foreign domain"
REASON_URGENCY_LANGUAGE = "Suspicious urgency manipulation language"
REASON_FREE_DOMAIN_TLD = "Suspicious free domain extension"
REASON_SENSITIVE_QUERY_PARAM = "URL contains sensitive information parameters"


# ─── Shared fragments ────────────────────────────────────────────────────────

#: A ``.kr`` or ``.한국`` label anywhere in a string (case-insensitive).
KOREAN_TLD = re2.compile(r'(?i)\.(?:kr|한국)')

#: URL scheme prefix; match end is where the host begins.
URL_SCHEME = re2.compile(r'(?i)https?://')


# ─── Matchers for lookahead rules ────────────────────────────────────────────


def _line_tail(text: str, start: int) -> str:
    end = text.find("\n", start)
    return text[start:] if end == -1 else text[start:end]


def _korean_sender_foreign_link(pattern: Any, text: str) -> Iterator[str]:
    """Yield ``from: …@….kr … https://`` spans that end at a non-Korean link.

    The sender part is the earliest ``from:`` line whose address reaches a
    Korean TLD. The span then extends to the LAST ``http(s)://`` after it whose
    remaining line does not mention ``.kr`` / ``.한국``. At most one span per
    content: every later sender line sees a subset of the same links.
    """
    sender = pattern.search(text)
    if sender is None:
        return
    last_end = -1
    for scheme in URL_SCHEME.finditer(text, sender.end()):
        if not KOREAN_TLD.search(_line_tail(text, scheme.end())):
            last_end = scheme.end()
    if last_end != -1:
        yield text[sender.start():last_end]


def _foreign_form_action(pattern: Any, text: str) -> Iterator[str]:
    """Yield ``<form … action="https://…">`` spans whose target is not Korean.

    Group 1 of ``pattern`` ends at the ``://`` of the action URL; the rest of
    that line is checked for a Korean TLD.
    """
    for m in pattern.finditer(text):
        if not KOREAN_TLD.search(_line_tail(text, m.end(1))):
            yield m.group(0)


# ═══════════════════════════════════════════════════════════════════════════
# RULES, evaluated in this order
# COMPILED AT MODULE LOAD, never per-request
# ═══════════════════════════════════════════════════════════════════════════

RULES: list[RuleEntry] = [
    # ─── 1. Korean sender, foreign link ───────────────────────────────────
    RuleEntry(
        pattern=re2.compile(r'(?i)from:[^\n]*?@[^\n]*?\.(?:kr|한국)'),
        reason=REASON_KOREAN_SENDER_FOREIGN_LINK,
        severity=Severity.HIGH,
        slug="korean-sender-foreign-link",
        matcher=_korean_sender_foreign_link,
    ),
    # ─── 2. Public webmail sender ─────────────────────────────────────────
    RuleEntry(
        pattern=re2.compile(
            r'(?i)from:.*@(gmail|naver|daum|kakao|yahoo|hotmail|outlook)\.com'
        ),
        reason=REASON_PUBLIC_WEBMAIL_SENDER,
        severity=Severity.MEDIUM,
        slug="public-webmail-sender",
    ),
    # ─── 3. Financial keyword + URL shortener on one line ─────────────────
    RuleEntry(
        pattern=re2.compile(
            r'(?i)(은행|카드|결제|송금|계좌|입금|출금|환불'
            r'|\bbank|\bcard|\bpayment|\btransfer|\bdeposit|\bwithdraw|\brefund)'
            r'.*(?:bit\.ly|tinyurl|short\.link|t\.co)'
        ),
        reason=REASON_FINANCIAL_SHORT_URL,
        severity=Severity.HIGH,
        slug="financial-short-url",
    ),
    # ─── 4. Form posting to a foreign domain ──────────────────────────────
    RuleEntry(
        pattern=re2.compile(r'''(?i)<form[^>]+action\s*=\s*["'](https?://)[^"']*["']'''),
        reason=REASON_FOREIGN_FORM_ACTION,
        severity=Severity.HIGH,
        slug="foreign-form-action",
        matcher=_foreign_form_action,
    ),
    # ─── 5. Urgency manipulation, every occurrence counts ─────────────────
    RuleEntry(
        pattern=re2.compile(
            r'(?i)(긴급|즉시|오늘까지|24시간|마감|제한시간|차단|정지|만료|취소'
            r'|\burgent|\bimmediately|\bexpire[sd]\b|\bsuspended\b|\bcancell?ed\b'
            r'|\bwithin 24 hours\b)'
        ),
        reason=REASON_URGENCY_LANGUAGE,
        severity=Severity.MEDIUM,
        slug="urgency-language",
    ),
    # ─── 6. Free / low-reputation TLD in a URL host ───────────────────────
    RuleEntry(
        pattern=re2.compile(r'(?i)https?://[^/\s]*\.(tk|ml|ga|cf|pp\.ua)'),
        reason=REASON_FREE_DOMAIN_TLD,
        severity=Severity.HIGH,
        slug="free-domain-tld",
    ),
    # ─── 7. Credential-like query parameter, each one counts ──────────────
    RuleEntry(
        pattern=re2.compile(r'(?i)[?&](user|login|password|card|account|bank)='),
        reason=REASON_SENSITIVE_QUERY_PARAM,
        severity=Severity.HIGH,
        slug="sensitive-query-param",
    ),
]

# Rule identity is the reason string.
assert len({rule.reason for rule in RULES}) == len(RULES), "duplicate rule reason"
