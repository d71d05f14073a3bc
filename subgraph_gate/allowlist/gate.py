"""Admission check against the published allowlist.

check() is the ONLY function the indexing node needs: it is called on every
subgraph deploy, indexing start and query, so it must stay a pure in-memory
lookup. No I/O, no locks, no logging on the hot path (the admission layer
logs the decision).

INVARIANT:
  - NEVER raises for a bad identifier. An identifier that cannot be
    normalized is denied (fail-closed).
  - Same identifier + same snapshot → same decision.
"""

from __future__ import annotations

from subgraph_gate.allowlist.errors import MalformedEntry
from subgraph_gate.allowlist.models import AllowlistSnapshot, GateDecision, Verdict
from subgraph_gate.allowlist.normalize import normalize
from subgraph_gate.allowlist.store import AllowlistStore

REASON_LISTED = "listed"
REASON_NOT_LISTED = "not_listed"
REASON_MALFORMED = "malformed_identifier"


def decide(identifier: object, snapshot: AllowlistSnapshot) -> GateDecision:
    """Compute the decision for identifier against a specific snapshot."""
    raw = identifier if isinstance(identifier, str) else repr(identifier)

    try:
        normalized = normalize(identifier)
    except MalformedEntry:
        return GateDecision(
            verdict=Verdict.DENY,
            identifier=None,
            raw_identifier=raw,
            snapshot_version=snapshot.version,
            snapshot_loaded_at=snapshot.allowlist.loaded_at,
            reason=REASON_MALFORMED,
        )

    listed = normalized in snapshot.allowlist
    return GateDecision(
        verdict=Verdict.PERMIT if listed else Verdict.DENY,
        identifier=normalized,
        raw_identifier=raw,
        snapshot_version=snapshot.version,
        snapshot_loaded_at=snapshot.allowlist.loaded_at,
        reason=REASON_LISTED if listed else REASON_NOT_LISTED,
    )


class AllowlistGate:
    """Query surface over an AllowlistStore."""

    def __init__(self, store: AllowlistStore) -> None:
        self._store = store

    @property
    def store(self) -> AllowlistStore:
        return self._store

    def check(self, identifier: object) -> GateDecision:
        """Permit iff the normalized identifier is in the current snapshot."""
        return decide(identifier, self._store.current())
