"""Entry normalization for the subgraph allowlist.

Addresses arrive in mixed case and with inconsistent prefixing, e.g.

    0xd26114cd6ee289accf82350c8d8487fedb8a0c07
    0x74467c63f3200A8a876E385d3e492aeB4b0D024B

Both the loader and the gate run every value through normalize() so that
membership is only ever tested between canonical forms. Without this, a
case-variant of an allowed address would compare unequal and a case-variant
of a denied one could slip past a naive comparison elsewhere.

IMPORT RULES:
  - `import re2` ONLY - `import re` is PROHIBITED in this file.
"""

from __future__ import annotations

import string

import re2  # google-re2. NEVER: import re

from subgraph_gate.allowlist.errors import MalformedEntry

# Optional 0x / 0X prefix followed by at least one hex digit, nothing else.
_HEX_ADDRESS = re2.compile(r"^(?:0[xX])?([0-9a-fA-F]+)$")

HEX_PREFIX = "0x"

# A-Z only. str.lower() also folds non-ASCII letters (KELVIN SIGN → "k"),
# which would let a look-alike identifier match a listed entry.
_ASCII_LOWER = str.maketrans(string.ascii_uppercase, string.ascii_lowercase)


def normalize(raw: object) -> str:
    """Canonicalize a raw allowlist entry or candidate identifier.

    Rules:
      1. Surrounding whitespace is trimmed.
      2. Hex-address shape → lower-case digits with exactly one ``0x`` prefix.
      3. Anything else is an opaque identifier (e.g. an IPFS deployment hash)
         and has its ASCII letters lower-cased. Other characters are kept as is.

    Raises:
        MalformedEntry: raw is not a string, or is empty after trimming.
    """
    if not isinstance(raw, str):
        raise MalformedEntry(
            f"Allowlist entry must be a string, got {type(raw).__name__}",
            raw=raw,
        )

    value = raw.strip()
    if not value:
        raise MalformedEntry("Allowlist entry is empty", raw=raw)

    match = _HEX_ADDRESS.match(value)
    if match is not None:
        return HEX_PREFIX + match.group(1).translate(_ASCII_LOWER)

    return value.translate(_ASCII_LOWER)


def is_hex_address(entry: str) -> bool:
    """True when a normalized entry is in canonical address form."""
    return entry.startswith(HEX_PREFIX) and _HEX_ADDRESS.match(entry) is not None
