"""Integration tests for the gate HTTP surface and startup lifecycle.

Covers:
  - /health 503 before ready, 200 after lifespan startup
  - Startup with a missing / malformed allowlist file → SystemExit (fail-closed)
  - Startup with no allowlist source → SystemExit
  - GET /allowlist metadata (never entry contents)
  - GET /allowlist/check/{identifier}
  - POST /admission/{operation}/{identifier} → 200 / 403 / 422
  - require_admission() dependency on a host route, including slash-separated subgraph names
  - File edit with a malformed document during runtime → prior snapshot kept,
    error visible in /allowlist and /health
"""

from __future__ import annotations

import json
import os

import pytest
from fastapi import Depends
from httpx import ASGITransport, AsyncClient
from starlette.testclient import TestClient

from subgraph_gate.admission import GatedOperation
from subgraph_gate.api import require_admission
from subgraph_gate.constants import ENV_ALLOWEDLIST, ENV_ALLOWLIST_FILEPATH, ENV_GATE_RELOAD
from subgraph_gate.main import create_app, lifespan

ADDR_1 = "0xAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA1"
ADDR_2 = "0xbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbb2"


def _write_allowlist(tmp_path, entries, name="allowlist.json") -> str:
    path = os.path.join(str(tmp_path), name)
    with open(path, "w") as f:
        json.dump({"allowlist": entries}, f)
    return path


# ─── Before startup ───────────────────────────────────────────────────────────


class TestBeforeReady:
    @pytest.mark.asyncio
    async def test_health_returns_503_before_ready(self) -> None:
        application = create_app()
        # ASGITransport does not run the lifespan: ready stays False.
        transport = ASGITransport(app=application)  # type: ignore[arg-type]
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/health")
        assert response.status_code == 503
        assert response.json()["error"]["status"] == "starting"

    @pytest.mark.asyncio
    async def test_admission_returns_503_before_ready(self) -> None:
        transport = ASGITransport(app=create_app())  # type: ignore[arg-type]
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.post("/admission/deploy/0xaaa")
        assert response.status_code == 503


# ─── Startup policy ───────────────────────────────────────────────────────────


class TestStartupFailClosed:
    """The lifespan must exit before ready=True when the allowlist cannot load."""

    @pytest.mark.asyncio
    async def test_missing_file_refuses_to_start(self, monkeypatch, tmp_path, capsys):
        monkeypatch.setenv(ENV_ALLOWLIST_FILEPATH, os.path.join(str(tmp_path), "missing.json"))
        application = create_app()
        with pytest.raises(SystemExit) as exc_info:
            async with lifespan(application):
                pass
        assert exc_info.value.code == 1
        assert application.state.ready is False
        assert "SourceUnavailable" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_malformed_file_refuses_to_start(self, monkeypatch, tmp_path, capsys):
        path = os.path.join(str(tmp_path), "allowlist.json")
        with open(path, "w") as f:
            f.write('{"allowlist": ["0xaaa",]}')
        monkeypatch.setenv(ENV_ALLOWLIST_FILEPATH, path)
        with pytest.raises(SystemExit):
            async with lifespan(create_app()):
                pass
        assert "MalformedSource" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_malformed_inline_refuses_to_start(self, monkeypatch):
        monkeypatch.setenv(ENV_ALLOWEDLIST, "0xaaa,,0xbbb")
        with pytest.raises(SystemExit):
            async with lifespan(create_app()):
                pass

    @pytest.mark.asyncio
    async def test_no_source_refuses_to_start(self):
        with pytest.raises(SystemExit):
            async with lifespan(create_app()):
                pass

    @pytest.mark.asyncio
    async def test_lifespan_sets_and_clears_ready(self, monkeypatch):
        monkeypatch.setenv(ENV_ALLOWEDLIST, "0xaaa")
        application = create_app()
        async with lifespan(application):
            assert application.state.ready is True
            assert application.state.allowlist_reloader is None
        assert application.state.ready is False


# ─── Inline source ────────────────────────────────────────────────────────────


class TestInlineSource:
    def test_health_after_startup(self, monkeypatch):
        monkeypatch.setenv(ENV_ALLOWEDLIST, "0xAAA,0xBBB")
        with TestClient(create_app()) as client:
            response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["allowlist_version"] == 1
        assert body["entry_count"] == 2
        assert body["source_kind"] == "inline"
        assert body["reload"] == "disabled"

    def test_check_endpoint(self, monkeypatch):
        monkeypatch.setenv(ENV_ALLOWEDLIST, "0xAAA,0xBBB")
        with TestClient(create_app()) as client:
            assert client.get("/allowlist/check/0xaaa").json()["verdict"] == "permit"
            assert client.get("/allowlist/check/0xbbb").json()["verdict"] == "permit"
            denied = client.get("/allowlist/check/0xccc")
        assert denied.status_code == 200
        assert denied.json()["verdict"] == "deny"

    def test_empty_inline_denies_everything(self, monkeypatch):
        monkeypatch.setenv(ENV_ALLOWEDLIST, "")
        with TestClient(create_app()) as client:
            assert client.get("/health").json()["entry_count"] == 0
            for identifier in ("0xaaa", "QmHash", ADDR_1):
                response = client.post(f"/admission/query/{identifier}")
                assert response.status_code == 403

    def test_allowlist_status_hides_entries(self, monkeypatch):
        monkeypatch.setenv(ENV_ALLOWEDLIST, "0xAAA")
        with TestClient(create_app()) as client:
            response = client.get("/allowlist")
        body = response.json()
        assert body["snapshot"]["entry_count"] == 1
        assert body["snapshot"]["source_location"] == ENV_ALLOWEDLIST
        assert body["reload"] is None
        assert "0xaaa" not in response.text


class TestAdmissionEndpoint:
    @pytest.mark.parametrize("operation", ["deploy", "start", "query"])
    def test_permit_and_deny(self, monkeypatch, operation):
        monkeypatch.setenv(ENV_ALLOWEDLIST, ADDR_1)
        with TestClient(create_app()) as client:
            permitted = client.post(f"/admission/{operation}/{ADDR_1.lower()}")
            denied = client.post(f"/admission/{operation}/{ADDR_2}")

        assert permitted.status_code == 200
        assert permitted.json()["admitted"] is True
        assert permitted.json()["decision"]["identifier"] == ADDR_1.lower()

        assert denied.status_code == 403
        body = denied.json()
        assert body["admitted"] is False
        assert body["operation"] == operation
        assert body["decision"]["reason"] == "not_listed"
        assert body["operation_id"]

    def test_unknown_operation_rejected(self, monkeypatch):
        monkeypatch.setenv(ENV_ALLOWEDLIST, "0xaaa")
        with TestClient(create_app()) as client:
            response = client.post("/admission/delete/0xaaa")
        assert response.status_code == 422

    def test_subgraph_name_with_slash(self, monkeypatch):
        monkeypatch.setenv(ENV_ALLOWEDLIST, "Uniswap/Uniswap-V2")
        with TestClient(create_app()) as client:
            permitted = client.post("/admission/query/uniswap/uniswap-v2")
            denied = client.post("/admission/query/uniswap/other")
            checked = client.get("/allowlist/check/Uniswap/Uniswap-V2")

        assert permitted.status_code == 200
        assert permitted.json()["decision"]["identifier"] == "uniswap/uniswap-v2"
        assert denied.status_code == 403
        assert denied.json()["decision"]["raw_identifier"] == "uniswap/other"
        assert checked.status_code == 200
        assert checked.json()["verdict"] == "permit"


class TestRequireAdmission:
    def test_host_route_gated(self, monkeypatch):
        monkeypatch.setenv(ENV_ALLOWEDLIST, "QmAllowed")
        application = create_app()

        @application.post(
            "/subgraphs/{deployment}/start",
            dependencies=[Depends(require_admission(GatedOperation.START))],
        )
        async def start_subgraph(deployment: str) -> dict:
            return {"started": deployment}

        with TestClient(application) as client:
            allowed = client.post("/subgraphs/QmAllowed/start")
            refused = client.post("/subgraphs/QmOther/start")

        assert allowed.status_code == 200
        assert allowed.json() == {"started": "QmAllowed"}
        assert refused.status_code == 403
        assert refused.json()["error"]["decision"]["verdict"] == "deny"

    def test_host_route_with_subgraph_name(self, monkeypatch):
        monkeypatch.setenv(ENV_ALLOWEDLIST, "uniswap/uniswap-v2")
        application = create_app()

        @application.post(
            "/subgraphs/{deployment:path}/start",
            dependencies=[Depends(require_admission(GatedOperation.START))],
        )
        async def start_subgraph(deployment: str) -> dict:
            return {"started": deployment}

        with TestClient(application) as client:
            allowed = client.post("/subgraphs/uniswap/uniswap-v2/start")
            refused = client.post("/subgraphs/uniswap/uniswap-v3/start")

        assert allowed.status_code == 200
        assert allowed.json() == {"started": "uniswap/uniswap-v2"}
        assert refused.status_code == 403
        assert refused.json()["error"]["decision"]["reason"] == "not_listed"


# ─── File source ──────────────────────────────────────────────────────────────


class TestFileSource:
    def test_file_scenario(self, monkeypatch, tmp_path):
        monkeypatch.setenv(ENV_ALLOWLIST_FILEPATH, _write_allowlist(tmp_path, [ADDR_1]))
        monkeypatch.setenv(ENV_GATE_RELOAD, "false")
        with TestClient(create_app()) as client:
            assert client.post(f"/admission/deploy/{ADDR_1.lower()}").status_code == 200
            assert client.post(f"/admission/deploy/{ADDR_2}").status_code == 403
            assert client.get("/health").json()["reload"] == "disabled"

    def test_file_wins_over_inline(self, monkeypatch, tmp_path):
        monkeypatch.setenv(ENV_ALLOWLIST_FILEPATH, _write_allowlist(tmp_path, [ADDR_1]))
        monkeypatch.setenv(ENV_ALLOWEDLIST, ADDR_2)
        monkeypatch.setenv(ENV_GATE_RELOAD, "false")
        with TestClient(create_app()) as client:
            assert client.get("/health").json()["source_kind"] == "file"
            assert client.post(f"/admission/query/{ADDR_2}").status_code == 403

    def test_runtime_reload_failure_keeps_snapshot(self, monkeypatch, tmp_path):
        path = _write_allowlist(tmp_path, [ADDR_1])
        monkeypatch.setenv(ENV_ALLOWLIST_FILEPATH, path)
        application = create_app()

        with TestClient(application) as client:
            reloader = application.state.allowlist_reloader
            assert reloader is not None
            os.remove(path)
            # Drive one pass of the reload state machine on the app's loop.
            outcome = client.portal.call(reloader.refresh)

            status = client.get("/allowlist").json()
            health = client.get("/health").json()
            still_permitted = client.post(f"/admission/query/{ADDR_1}")

        assert outcome.value == "failed"
        assert status["snapshot"]["version"] == 1
        assert status["reload"]["last_error_type"] == "SourceUnavailable"
        assert status["reload"]["consecutive_failures"] >= 1
        assert health["status"] == "degraded"
        assert still_permitted.status_code == 200
