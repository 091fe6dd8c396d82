"""PhishScan static rule package.

Provides the deterministic half of the analysis pipeline:

  - definitions.py — RuleEntry + the ordered RULES list (google-re2, compiled at import)
  - engine.py      — scan(content) -> list[Finding]
"""

from phishscan.rules.definitions import RULES, RuleEntry
from phishscan.rules.engine import scan

__all__ = ["RULES", "RuleEntry", "scan"]
