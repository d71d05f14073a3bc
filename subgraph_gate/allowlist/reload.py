"""Hot-reload of a file-backed allowlist.

Only used when the allowlist comes from SUBGRAPH_ALLOWLIST_FILEPATH. The
inline list lives in the process environment and cannot change underneath us.

State machine (one pass of refresh()):

    IDLE → CHECKING ─┬─ unchanged ────────────────────────────────→ IDLE
                     └─ changed → LOADING ─┬─ ok → PUBLISHING ──────→ IDLE
                                           └─ error → REPORTING_ERROR → IDLE

A failed load NEVER publishes. The previous snapshot stays authoritative and
the error is logged at ERROR and kept in ReloadStatus for GET /allowlist.

Change detection is a sha256 of the file contents compared with the checksum
of the published snapshot, so touch / chmod / editor swap-file noise resolves
to "unchanged". Events come from watchfiles.awatch() on the parent directory,
which also catches editors and ConfigMap mounts that replace the file by
rename rather than writing it in place.
"""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

import watchfiles

from subgraph_gate.allowlist.errors import AllowlistError
from subgraph_gate.allowlist.loader import FilePath, load_allowlist, read_source_checksum
from subgraph_gate.allowlist.store import AllowlistStore
from subgraph_gate.constants import (
    DEFAULT_DEBOUNCE_MS,
    DEFAULT_POLL_DELAY_MS,
    DEFAULT_RESCAN_INTERVAL_MS,
)
from subgraph_gate.utils.logger import get_logger

logger = get_logger(__name__)


class ReloadState(str, Enum):
    IDLE = "idle"
    CHECKING = "checking"
    LOADING = "loading"
    PUBLISHING = "publishing"
    REPORTING_ERROR = "reporting_error"


class ReloadOutcome(str, Enum):
    UNCHANGED = "unchanged"
    PUBLISHED = "published"
    FAILED = "failed"


@dataclass
class ReloadStatus:
    """Operator-visible record of reload activity."""

    state: ReloadState = ReloadState.IDLE
    last_checked_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None
    last_error: Optional[str] = None
    last_error_type: Optional[str] = None
    last_error_at: Optional[datetime] = None
    consecutive_failures: int = 0
    reload_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "last_checked_at": _iso(self.last_checked_at),
            "last_success_at": _iso(self.last_success_at),
            "last_error": self.last_error,
            "last_error_type": self.last_error_type,
            "last_error_at": _iso(self.last_error_at),
            "consecutive_failures": self.consecutive_failures,
            "reload_count": self.reload_count,
        }


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


class AllowlistReloader:
    """Watches the allowlist file and republishes it on change.

    Usage (in lifespan):
        reloader = AllowlistReloader(path, store)
        reloader.start()
        ...
        await reloader.stop()

    refresh() can also be awaited directly (tests, admin tooling) and runs a
    single pass of the state machine.
    """

    def __init__(
        self,
        path: str,
        store: AllowlistStore,
        *,
        force_polling: bool = False,
        poll_delay_ms: int = DEFAULT_POLL_DELAY_MS,
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
        rescan_interval_ms: int = DEFAULT_RESCAN_INTERVAL_MS,
    ) -> None:
        self._path = os.path.abspath(path)
        self._store = store
        self._force_polling = force_polling
        self._poll_delay_ms = poll_delay_ms
        self._debounce_ms = debounce_ms
        self._rescan_interval_ms = rescan_interval_ms
        self._status = ReloadStatus()
        self._refresh_lock = asyncio.Lock()
        self._stop_event: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def path(self) -> str:
        return self._path

    @property
    def status(self) -> ReloadStatus:
        return self._status

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ── One pass of the state machine ─────────────────────────────────────────

    async def refresh(self) -> ReloadOutcome:
        """Check the file once; load and publish it if its content changed."""
        async with self._refresh_lock:
            try:
                return await self._refresh_locked()
            finally:
                self._status.state = ReloadState.IDLE

    async def _refresh_locked(self) -> ReloadOutcome:
        status = self._status
        status.state = ReloadState.CHECKING
        status.last_checked_at = datetime.now(timezone.utc)

        try:
            checksum = await asyncio.to_thread(read_source_checksum, self._path)
        except AllowlistError as exc:
            return self._report_failure(exc)

        if checksum == self._store.current().allowlist.checksum:
            status.consecutive_failures = 0
            return ReloadOutcome.UNCHANGED

        status.state = ReloadState.LOADING
        try:
            allowlist = await asyncio.to_thread(load_allowlist, FilePath(self._path))
        except AllowlistError as exc:
            return self._report_failure(exc)

        status.state = ReloadState.PUBLISHING
        snapshot = self._store.publish(allowlist)
        status.last_success_at = datetime.now(timezone.utc)
        status.consecutive_failures = 0
        status.reload_count += 1
        logger.info(
            "Allowlist hot-reloaded",
            path=self._path,
            version=snapshot.version,
            count=len(allowlist),
        )
        return ReloadOutcome.PUBLISHED

    def _report_failure(self, exc: AllowlistError) -> ReloadOutcome:
        status = self._status
        status.state = ReloadState.REPORTING_ERROR
        status.last_error = str(exc)
        status.last_error_type = type(exc).__name__
        status.last_error_at = datetime.now(timezone.utc)
        status.consecutive_failures += 1
        logger.error(
            "Allowlist reload failed - keeping prior allowlist",
            path=self._path,
            error=str(exc),
            error_type=type(exc).__name__,
            active_version=self._store.version,
            consecutive_failures=status.consecutive_failures,
        )
        return ReloadOutcome.FAILED

    # ── Background watcher ────────────────────────────────────────────────────

    def _watch_filter(self, change: watchfiles.Change, path: str) -> bool:
        name = os.path.basename(path)
        # "..data" / "..2024_..." are the symlink swaps of a Kubernetes ConfigMap mount.
        return os.path.abspath(path) == self._path or name.startswith("..")

    async def run(self) -> None:
        """Watch until stopped or cancelled. Reload errors never stop the loop.

        awatch() also yields an empty change set every rescan_interval_ms
        without events. Each yield runs refresh(), so the first one covers
        edits made between the startup load and the watcher being armed, and
        later ones catch events the OS dropped.
        """
        self._stop_event = asyncio.Event()
        watch_dir = os.path.dirname(self._path)
        logger.info(
            "Allowlist file watcher started",
            path=self._path,
            force_polling=self._force_polling,
            rescan_interval_ms=self._rescan_interval_ms,
        )
        try:
            async for _changes in watchfiles.awatch(
                watch_dir,
                watch_filter=self._watch_filter,
                debounce=self._debounce_ms,
                force_polling=self._force_polling,
                poll_delay_ms=self._poll_delay_ms,
                recursive=False,
                stop_event=self._stop_event,
                rust_timeout=self._rescan_interval_ms,
                yield_on_timeout=True,
            ):
                try:
                    await self.refresh()
                except asyncio.CancelledError:
                    raise
                except Exception as exc:  # noqa: BLE001
                    logger.error(
                        "Allowlist reload handler error (non-fatal)",
                        path=self._path,
                        error=str(exc),
                        error_type=type(exc).__name__,
                    )
        except asyncio.CancelledError:
            logger.debug("Allowlist file watcher cancelled", path=self._path)
            raise
        except Exception as exc:  # noqa: BLE001
            # e.g. the watched directory was removed. The active snapshot stays.
            self._status.last_error = f"Watcher stopped: {exc}"
            self._status.last_error_type = type(exc).__name__
            self._status.last_error_at = datetime.now(timezone.utc)
            logger.error(
                "Allowlist file watcher error (watcher stopped)",
                path=self._path,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return
        logger.info("Allowlist file watcher stopped", path=self._path)

    def start(self) -> asyncio.Task[None]:
        """Start run() as a background task on the running event loop."""
        if self.running:
            raise RuntimeError("Allowlist reloader is already running")
        self._task = asyncio.create_task(self.run(), name="allowlist-reloader")
        return self._task

    async def stop(self) -> None:
        """Stop the watcher. An in-flight load is abandoned without publishing."""
        if self._stop_event is not None:
            self._stop_event.set()
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
