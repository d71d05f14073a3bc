"""Health endpoint for the allowlist gate.

GET /health - 503 until the startup allowlist is loaded and published,
200 afterwards with the active snapshot version and reload status.

Polled by container health probes and by the indexing node before it starts
routing admission checks here.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Request

from subgraph_gate.allowlist.reload import AllowlistReloader
from subgraph_gate.allowlist.store import AllowlistStore

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    """Primary health check endpoint.

    Response body (200):
        {
          "status": "ok" | "degraded",
          "allowlist_version": 3,
          "entry_count": 12,
          "source_kind": "file" | "inline",
          "reload": "disabled" | "watching" | "stopped" | "failing"
        }

    "degraded" means the latest reload failed (or the watcher died); the gate
    is still answering from the previous snapshot.
    """
    if not getattr(request.app.state, "ready", False):
        raise HTTPException(
            status_code=503,
            detail={
                "status": "starting",
                "message": "Allowlist gate is starting up. Loading allowlist...",
            },
        )

    store: AllowlistStore = request.app.state.allowlist_store
    reloader: Optional[AllowlistReloader] = getattr(request.app.state, "allowlist_reloader", None)
    snapshot = store.current()

    reload_state = _reload_state(reloader)
    return {
        "status": "degraded" if reload_state in ("failing", "stopped") else "ok",
        "allowlist_version": snapshot.version,
        "entry_count": len(snapshot.allowlist),
        "source_kind": snapshot.allowlist.source_kind.value,
        "reload": reload_state,
    }


def _reload_state(reloader: Optional[AllowlistReloader]) -> str:
    if reloader is None:
        return "disabled"
    if not reloader.running:
        return "stopped"
    if reloader.status.consecutive_failures > 0:
        return "failing"
    return "watching"
