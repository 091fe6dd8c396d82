"""PhishScan external classifier package.

    prompt.py — system prompt, analyze_phishing function schema, message builders
    schema.py — LLMVerdict (strict pydantic) + parse_verdict()
    client.py — Classifier Protocol, OpenAIClassifier (httpx), create_http_client()
"""

from phishscan.classifier.client import (
    Classifier,
    OpenAIClassifier,
    create_classifier,
    create_http_client,
)
from phishscan.classifier.schema import LLMVerdict, parse_verdict

__all__ = [
    "Classifier",
    "LLMVerdict",
    "OpenAIClassifier",
    "create_classifier",
    "create_http_client",
    "parse_verdict",
]
