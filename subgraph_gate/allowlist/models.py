"""Data types for the subgraph allowlist.

All of them are frozen: an Allowlist is built once per successful load and
replaced, never edited. Readers holding an old snapshot keep a consistent view
until they drop it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

# Normalized identifier string - see allowlist/normalize.py
AllowlistEntry = str


class SourceKind(str, Enum):
    """Which configuration surface produced an Allowlist."""

    FILE = "file"
    INLINE = "inline"


class Verdict(str, Enum):
    """Outcome of an admission check."""

    PERMIT = "permit"
    DENY = "deny"


@dataclass(frozen=True)
class Allowlist:
    """Immutable set of normalized entries plus provenance.

    Fields:
        entries:          Normalized identifiers. Duplicate raw entries have
                          already collapsed; membership is an O(1) set lookup.
        source_kind:      FILE or INLINE.
        source_location:  File path (FILE) or environment variable name (INLINE).
        loaded_at:        UTC time the load completed.
        checksum:         sha256 hex digest of the raw source text. Used by the
                          reload trigger to tell a real change from a touch.
    """

    entries: frozenset[AllowlistEntry]
    source_kind: SourceKind
    source_location: str
    loaded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    checksum: Optional[str] = None

    def __contains__(self, entry: object) -> bool:
        return entry in self.entries

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def is_empty(self) -> bool:
        """A zero-entry allowlist denies every identifier."""
        return not self.entries


@dataclass(frozen=True)
class AllowlistSnapshot:
    """The published, versioned allowlist held by the store.

    version starts at 1 for the startup load and increases by one on every
    publish. It never goes backwards.
    """

    allowlist: Allowlist
    version: int
    published_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def describe(self) -> dict[str, Any]:
        """Metadata for logs and the admin API. Never includes entry contents."""
        return {
            "version": self.version,
            "entry_count": len(self.allowlist),
            "source_kind": self.allowlist.source_kind.value,
            "source_location": self.allowlist.source_location,
            "loaded_at": self.allowlist.loaded_at.isoformat(),
            "published_at": self.published_at.isoformat(),
            "checksum": self.allowlist.checksum,
        }


@dataclass(frozen=True)
class GateDecision:
    """Result of one admission check, kept by the caller for audit.

    Fields:
        verdict:             PERMIT or DENY.
        identifier:          Normalized form; None if the candidate could not be
                             normalized (always DENY in that case).
        raw_identifier:      What the caller passed in.
        snapshot_version:    Store version the decision was computed against.
        snapshot_loaded_at:  Load time of that snapshot's allowlist.
        reason:              "listed" | "not_listed" | "malformed_identifier".
    """

    verdict: Verdict
    identifier: Optional[AllowlistEntry]
    raw_identifier: str
    snapshot_version: int
    snapshot_loaded_at: datetime
    reason: str

    @property
    def permitted(self) -> bool:
        return self.verdict is Verdict.PERMIT

    def to_dict(self) -> dict[str, Any]:
        return {
            "verdict": self.verdict.value,
            "identifier": self.identifier,
            "raw_identifier": self.raw_identifier,
            "snapshot_version": self.snapshot_version,
            "snapshot_loaded_at": self.snapshot_loaded_at.isoformat(),
            "reason": self.reason,
        }
