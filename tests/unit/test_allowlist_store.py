"""Tests for AllowlistStore.

Tests:
  - Initial snapshot is version 1
  - publish() replaces atomically and bumps the version
  - Versions never go backwards across concurrent publishers
  - Concurrent readers never see a mix of two loads
"""

from __future__ import annotations

import threading

from subgraph_gate.allowlist.loader import InlineList, load_allowlist
from subgraph_gate.allowlist.models import Allowlist, SourceKind
from subgraph_gate.allowlist.store import AllowlistStore


def _allowlist(*entries: str) -> Allowlist:
    return Allowlist(
        entries=frozenset(entries),
        source_kind=SourceKind.INLINE,
        source_location="test",
    )


class TestStoreBasics:
    def test_initial_snapshot(self):
        initial = _allowlist("0xaaa")
        store = AllowlistStore(initial)
        snapshot = store.current()
        assert snapshot.version == 1
        assert snapshot.allowlist is initial

    def test_publish_replaces_and_bumps_version(self):
        store = AllowlistStore(_allowlist("0xaaa"))
        new = _allowlist("0xbbb")
        published = store.publish(new)
        assert published.version == 2
        assert store.current() is published
        assert store.current().allowlist is new
        assert store.version == 2

    def test_current_is_stable_between_publishes(self):
        store = AllowlistStore(_allowlist("0xaaa"))
        assert store.current() is store.current()

    def test_old_snapshot_unaffected_by_publish(self):
        store = AllowlistStore(_allowlist("0xaaa"))
        old = store.current()
        store.publish(_allowlist("0xbbb"))
        assert "0xaaa" in old.allowlist
        assert old.version == 1

    def test_describe_excludes_entries(self):
        store = AllowlistStore(load_allowlist(InlineList("0xaaa,0xbbb")))
        described = store.current().describe()
        assert described["entry_count"] == 2
        assert described["source_kind"] == "inline"
        assert "0xaaa" not in str(described)


class TestStoreConcurrency:
    def test_concurrent_publishers_get_unique_increasing_versions(self):
        store = AllowlistStore(_allowlist("0x0"))
        versions: list[int] = []
        lock = threading.Lock()

        def publisher(n: int) -> None:
            for i in range(50):
                snapshot = store.publish(_allowlist(f"0x{n:x}{i:x}"))
                with lock:
                    versions.append(snapshot.version)

        threads = [threading.Thread(target=publisher, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(versions) == list(range(2, 2 + 8 * 50))
        assert store.version == 1 + 8 * 50

    def test_readers_never_see_mixed_or_older_snapshot(self):
        # Each load is a disjoint block of entries tagged by its generation.
        def generation(g: int) -> Allowlist:
            return _allowlist(*(f"gen{g}-{i}" for i in range(20)))

        store = AllowlistStore(generation(0))
        stop = threading.Event()
        errors: list[str] = []

        def reader() -> None:
            last_version = 0
            while not stop.is_set():
                snapshot = store.current()
                if snapshot.version < last_version:
                    errors.append(f"version went backwards: {snapshot.version} < {last_version}")
                last_version = snapshot.version
                prefixes = {entry.split("-")[0] for entry in snapshot.allowlist.entries}
                if len(prefixes) != 1:
                    errors.append(f"mixed snapshot: {sorted(prefixes)}")

        readers = [threading.Thread(target=reader) for _ in range(4)]
        for t in readers:
            t.start()
        for g in range(1, 200):
            store.publish(generation(g))
        stop.set()
        for t in readers:
            t.join()

        assert errors == []
        assert store.current().version == 200
