"""ULID generation for analysis identifiers.

Every ``POST /api/analyze`` call is tagged with a ULID that is:
  - returned to the caller in the ``X-Analysis-ID`` response header
  - bound as ``analysis_id`` on every structured log line for that request

ULIDs are 26-character Crockford Base32 strings, lexicographically sortable by
creation time, so analysis IDs in logs sort in arrival order.

Uses the ``python-ulid`` library — do NOT hand-roll ULID generation.
"""

from __future__ import annotations

from ulid import ULID


def generate_ulid() -> str:
    """Generate a new ULID as a 26-character uppercase string.

    Returns:
        str: A 26-character ULID string (e.g., ``"01HXXXXXXXXXXXXXXXXXXXXXX"``).

    Example::

        analysis_id = generate_ulid()
        assert len(analysis_id) == 26
    """
    return str(ULID())
