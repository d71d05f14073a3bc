"""Admin / admission API for the allowlist gate.

Routes:
    GET  /allowlist                                - snapshot metadata + reload status
    GET  /allowlist/check/{identifier:path}        - decision, always HTTP 200
    POST /admission/{operation}/{identifier:path} - 200 permit / 403 deny

Entry contents are never returned. The allowlist itself is operator
configuration, not something to enumerate over HTTP.

require_admission() is a dependency factory for host routes that carry a
{deployment} path parameter. Declare it with the :path converter so subgraph
names such as "uniswap/uniswap-v2" match:

    @router.post("/subgraphs/{deployment:path}/start",
                 dependencies=[Depends(require_admission(GatedOperation.START))])
"""

from __future__ import annotations

from typing import Any, Callable, Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from subgraph_gate.admission import AdmissionDenied, GatedOperation, admit
from subgraph_gate.allowlist.gate import AllowlistGate
from subgraph_gate.allowlist.reload import AllowlistReloader
from subgraph_gate.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["allowlist"])


def _require_ready(request: Request) -> None:
    """Raise HTTP 503 if the startup allowlist has not been published yet."""
    if not getattr(request.app.state, "ready", False):
        raise HTTPException(
            status_code=503,
            detail={"status": "starting", "message": "Allowlist gate is starting up"},
        )


def _gate(request: Request) -> AllowlistGate:
    _require_ready(request)
    return request.app.state.allowlist_gate


def _denied_body(exc: AdmissionDenied) -> dict[str, Any]:
    return {
        "admitted": False,
        "operation": exc.operation.value,
        "operation_id": exc.operation_id,
        "decision": exc.decision.to_dict(),
    }


# ─── GET /allowlist ───────────────────────────────────────────────────────────


@router.get("/allowlist")
async def get_allowlist_status(request: Request) -> dict[str, Any]:
    """Active snapshot metadata and reload status.

    Response:
        snapshot: {version, entry_count, source_kind, source_location,
                   loaded_at, published_at, checksum}
        reload:   null (inline source / reload disabled) or
                  {state, last_checked_at, last_success_at, last_error,
                   last_error_type, last_error_at, consecutive_failures,
                   reload_count, running}
    """
    gate = _gate(request)
    reloader: Optional[AllowlistReloader] = getattr(request.app.state, "allowlist_reloader", None)

    reload_status: Optional[dict[str, Any]] = None
    if reloader is not None:
        reload_status = reloader.status.to_dict()
        reload_status["running"] = reloader.running

    return {
        "snapshot": gate.store.current().describe(),
        "reload": reload_status,
    }


# ─── GET /allowlist/check/{identifier:path} ───────────────────────────────────


@router.get("/allowlist/check/{identifier:path}")
async def check_identifier(identifier: str, request: Request) -> dict[str, Any]:
    """Dry-run decision for an identifier. Not logged as an admission."""
    return _gate(request).check(identifier).to_dict()


# ─── POST /admission/{operation}/{identifier:path} ────────────────────────────


@router.post("/admission/{operation}/{identifier:path}")
async def post_admission(
    operation: GatedOperation, identifier: str, request: Request
) -> JSONResponse:
    """Admission check for a gated node operation (deploy / start / query)."""
    gate = _gate(request)
    try:
        decision = admit(gate, operation, identifier)
    except AdmissionDenied as exc:
        return JSONResponse(status_code=403, content=_denied_body(exc))

    return JSONResponse(
        status_code=200,
        content={
            "admitted": True,
            "operation": operation.value,
            "decision": decision.to_dict(),
        },
    )


# ─── Dependency factory for host routes ───────────────────────────────────────


def require_admission(operation: GatedOperation) -> Callable[[Request], None]:
    """FastAPI dependency: 403 unless path param `deployment` is allowlisted."""

    def dependency(request: Request) -> None:
        gate = _gate(request)
        deployment = request.path_params.get("deployment")
        try:
            admit(gate, operation, deployment)
        except AdmissionDenied as exc:
            raise HTTPException(status_code=403, detail=_denied_body(exc)) from exc

    return dependency
