"""Fixed prompt material for the external LLM classifier.

Provides:
  - ``SYSTEM_PROMPT``:       six analysis criteria + the five-level score scale.
  - ``FUNCTION_NAME``:       name of the forced function / tool call.
  - ``FUNCTION_DEFINITION``: JSON schema of ``{score, highlights, summary}``.
  - ``build_user_message()``: "Analyze the following email/URL" + content.
  - ``build_messages()``:    system + user message list for Chat Completions.
"""

from __future__ import annotations

from typing import Any, Optional

from phishscan.models.analysis import RISK_ORDER

FUNCTION_NAME = "analyze_phishing"

SYSTEM_PROMPT = """You are an expert in analysing phishing emails and URLs. Evaluate the content against these criteria:

1. Suspicious domains, links or attachments
2. Language that manufactures urgency
3. Requests for personal or financial information
4. Attempts to spoof or impersonate the sender
5. Spelling and grammar errors
6. Use of social-engineering techniques

Score scale:
- Critical: confirmed phishing
- High: phishing is likely
- Medium: suspicious elements present
- Low: minor risk factors
- Safe: a legitimate email or URL

Report every suspicious span you rely on as a highlight, quoting the exact text."""

FUNCTION_DEFINITION: dict[str, Any] = {
    "name": FUNCTION_NAME,
    "description": "Return phishing analysis results",
    "parameters": {
        "type": "object",
        "properties": {
            "score": {
                "type": "string",
                "enum": [level.value for level in RISK_ORDER],
                "description": "Phishing risk score",
            },
            "highlights": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "text": {"type": "string", "description": "Suspicious text"},
                        "reason": {"type": "string", "description": "Why suspicious"},
                    },
                    "required": ["text", "reason"],
                },
                "description": "List of suspicious elements",
            },
            "summary": {"type": "string", "description": "Analysis summary"},
        },
        "required": ["score", "highlights", "summary"],
    },
}


def build_user_message(content: str, content_type: Optional[str]) -> str:
    """User turn. Only ``"email"`` is phrased as an email; anything else as a URL."""
    noun = "email" if content_type == "email" else "URL"
    return f"Analyze the following {noun}:\n\n{content}"


def build_messages(content: str, content_type: Optional[str]) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": build_user_message(content, content_type)},
    ]
