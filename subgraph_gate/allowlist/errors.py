"""Error taxonomy for the subgraph allowlist.

    AllowlistError
      ├── SourceUnavailable  - file missing or unreadable
      ├── MalformedSource    - invalid JSON, wrong shape, or a bad entry
      └── MalformedEntry     - a single raw entry failed normalization

Startup treats any AllowlistError as fatal. The reload path catches it, keeps
the previous snapshot, and reports it.
"""

from __future__ import annotations

from typing import Optional


class AllowlistError(Exception):
    """Base class for every allowlist load / normalization failure."""

    def __init__(self, message: str, *, source: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.source = source

    def __str__(self) -> str:
        if self.source:
            return f"{self.message} (source: {self.source})"
        return self.message


class SourceUnavailable(AllowlistError):
    """The configured allowlist file does not exist or cannot be read."""


class MalformedSource(AllowlistError):
    """The allowlist source parsed badly or contained an invalid entry."""


class MalformedEntry(AllowlistError):
    """A raw entry could not be normalized (empty, blank, or not a string)."""

    def __init__(self, message: str, *, raw: object = None, index: Optional[int] = None) -> None:
        super().__init__(message)
        self.raw = raw
        self.index = index
