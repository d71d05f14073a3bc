"""Process-wide holder of the active allowlist snapshot.

Thread-safety:
    current() is a plain attribute read. Rebinding a reference is atomic in
    CPython, and snapshots are frozen, so a reader sees either the old or the
    new snapshot in full, never a mix.
    publish() serialises writers with a threading.Lock so version numbers are
    assigned strictly in order.
"""

from __future__ import annotations

import threading

from subgraph_gate.allowlist.models import Allowlist, AllowlistSnapshot
from subgraph_gate.utils.logger import get_logger

logger = get_logger(__name__)


class AllowlistStore:
    """Holds exactly one published AllowlistSnapshot.

    Usage (in lifespan):
        store = AllowlistStore(load_allowlist(source))
        app.state.allowlist_store = store

    The store must be created with the startup allowlist; there is no
    "no snapshot yet" state for readers to trip over.
    """

    def __init__(self, initial: Allowlist) -> None:
        self._publish_lock = threading.Lock()
        self._snapshot = AllowlistSnapshot(allowlist=initial, version=1)

    def current(self) -> AllowlistSnapshot:
        """Return the latest published snapshot (no lock, no I/O)."""
        return self._snapshot

    @property
    def version(self) -> int:
        return self._snapshot.version

    def publish(self, allowlist: Allowlist) -> AllowlistSnapshot:
        """Atomically replace the active snapshot.

        Returns the newly published snapshot.
        """
        with self._publish_lock:
            previous = self._snapshot
            snapshot = AllowlistSnapshot(allowlist=allowlist, version=previous.version + 1)
            self._snapshot = snapshot

        logger.info(
            "Allowlist snapshot published",
            version=snapshot.version,
            previous_version=previous.version,
            count=len(allowlist),
            previous_count=len(previous.allowlist),
            source=allowlist.source_location,
        )
        return snapshot
