"""ULID generation for admission operation IDs.

Every call to ``admit()`` is tagged with a ULID so the log lines emitted for
one gated operation (deploy, start, query) can be correlated, and so the
decision returned over HTTP can be matched against the audit log.

Uses the `python-ulid` library - do NOT hand-roll ULID generation.
"""

from __future__ import annotations

from ulid import ULID


def generate_ulid() -> str:
    """Generate a new ULID as a 26-character uppercase string.

    Returns:
        str: Crockford Base32 ULID, e.g. ``"01KJ0JRVHYA7KX32VPN5ZSCTMV"``.
    """
    return str(ULID())
