"""Strict pydantic schema for the classifier's function-call arguments.

``parse_verdict()`` is the single gate between untrusted LLM output and the
merge step. Anything that does not validate becomes ``ExternalClassifierError``:

  - arguments that are not a JSON object
  - missing ``score`` / ``highlights`` / ``summary``
  - ``score`` outside Safe | Low | Medium | High | Critical (exact spelling)
  - highlights that are not ``{text: str, reason: str}`` objects

Extra keys are ignored.
"""

from __future__ import annotations

import json
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, StrictStr, ValidationError

from phishscan.errors import ExternalClassifierError
from phishscan.models.analysis import Highlight, RiskLevel


class LLMHighlight(BaseModel):
    model_config = ConfigDict(extra="ignore")

    text: StrictStr
    reason: StrictStr


class LLMVerdict(BaseModel):
    """Validated ``analyze_phishing`` arguments."""

    model_config = ConfigDict(extra="ignore")

    score: RiskLevel
    highlights: list[LLMHighlight]
    summary: StrictStr

    def to_highlights(self) -> list[Highlight]:
        return [Highlight(text=h.text, reason=h.reason) for h in self.highlights]


def parse_verdict(arguments: Union[str, dict[str, Any]]) -> LLMVerdict:
    """Decode and validate function-call arguments.

    Args:
        arguments: JSON string (Chat Completions format) or an already-decoded dict.

    Raises:
        ExternalClassifierError: reason ``"invalid_json"`` or ``"schema_violation"``.
    """
    if isinstance(arguments, str):
        try:
            arguments = json.loads(arguments)
        except ValueError as exc:
            raise ExternalClassifierError(
                "classifier arguments are not valid JSON", reason="invalid_json"
            ) from exc

    if not isinstance(arguments, dict):
        raise ExternalClassifierError(
            "classifier arguments are not a JSON object", reason="schema_violation"
        )

    try:
        return LLMVerdict.model_validate(arguments)
    except ValidationError as exc:
        raise ExternalClassifierError(
            f"classifier response failed validation ({exc.error_count()} error(s))",
            reason="schema_violation",
        ) from exc
