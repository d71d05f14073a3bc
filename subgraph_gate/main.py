"""Allowlist gate FastAPI application factory + lifespan lifecycle.

This module implements:
  - create_app() - testable application factory
  - lifespan - @asynccontextmanager startup/shutdown sequence
  - app = create_app() - module-level instance for uvicorn

Startup sequence:
  1. load_config()              → app.state.config (SystemExit on bad config /
                                  no allowlist source)
  2. load_allowlist(source)     → startup snapshot. Any AllowlistError is FATAL:
                                  the gate must never come up in an ambiguous
                                  access-control state.
  3. AllowlistStore(allowlist)  → app.state.allowlist_store
  4. AllowlistGate(store)       → app.state.allowlist_gate
  5. AllowlistReloader.start()  → app.state.allowlist_reloader
                                  (file source + reload.enabled only)
  6. app.state.ready = True

Shutdown (reverse):
  app.state.ready = False → stop reloader (in-flight load is abandoned, nothing
  is published)
"""

from __future__ import annotations

import os
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from subgraph_gate import __version__
from subgraph_gate.allowlist.errors import AllowlistError
from subgraph_gate.allowlist.gate import AllowlistGate
from subgraph_gate.allowlist.loader import FilePath, load_allowlist
from subgraph_gate.allowlist.reload import AllowlistReloader
from subgraph_gate.allowlist.store import AllowlistStore
from subgraph_gate.api import router as allowlist_router
from subgraph_gate.config import GateConfig, load_config
from subgraph_gate.health import router as health_router
from subgraph_gate.utils.logger import configure_logging, get_logger

# ─── Logging Setup ────────────────────────────────────────────────────────────
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if not DEBUG else "DEBUG")
JSON_LOGS = os.getenv("JSON_LOGS", "true").lower() == "true"

configure_logging(log_level=LOG_LEVEL, json_output=JSON_LOGS)
logger = get_logger(__name__)


# ─── Lifespan ─────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan - startup and shutdown sequence."""
    logger.info("Subgraph allowlist gate starting up...")

    # ── Step 1: Configuration ────────────────────────────────────────────────
    config: GateConfig = load_config()
    app.state.config = config
    assert config.source is not None  # load_config() exits otherwise

    # ── Step 2: Startup load (fatal on failure) ──────────────────────────────
    try:
        allowlist = load_allowlist(config.source)
    except AllowlistError as exc:
        logger.error(
            "Startup allowlist load failed - refusing to start",
            error=str(exc),
            error_type=type(exc).__name__,
        )
        print(
            f"ALLOWLIST ERROR: {type(exc).__name__}: {exc}\n"
            "The gate refuses to start without a valid allowlist.",
            file=sys.stderr,
        )
        raise SystemExit(1) from exc

    # ── Steps 3-4: Store + gate ──────────────────────────────────────────────
    store = AllowlistStore(allowlist)
    app.state.allowlist_store = store
    app.state.allowlist_gate = AllowlistGate(store)
    logger.info("Allowlist published", **store.current().describe())

    # ── Step 5: Reload trigger (file-backed only) ────────────────────────────
    reloader: Optional[AllowlistReloader] = None
    if isinstance(config.source, FilePath) and config.reload.enabled:
        reloader = AllowlistReloader(
            config.source.path,
            store,
            force_polling=config.reload.force_polling,
            poll_delay_ms=config.reload.poll_delay_ms,
            debounce_ms=config.reload.debounce_ms,
            rescan_interval_ms=config.reload.rescan_interval_ms,
        )
        reloader.start()
    else:
        logger.debug(
            "Allowlist reload watcher disabled",
            source_kind=allowlist.source_kind.value,
            reload_enabled=config.reload.enabled,
        )
    app.state.allowlist_reloader = reloader

    # ── Step 6: Mark as ready ────────────────────────────────────────────────
    app.state.ready = True
    logger.info("Subgraph allowlist gate ready", version=__version__)

    yield

    # ── Shutdown (reverse order) ─────────────────────────────────────────────
    logger.info("Subgraph allowlist gate shutting down...")
    app.state.ready = False

    if reloader is not None:
        await reloader.stop()

    logger.info("Subgraph allowlist gate shutdown complete")


# ─── Application Factory ──────────────────────────────────────────────────────


def create_app() -> FastAPI:
    """Create and configure the allowlist gate FastAPI application.

    Call this function directly in unit tests to get an isolated app instance.
    """
    _debug = os.getenv("DEBUG", "false").lower() == "true"

    application = FastAPI(
        title="Subgraph Allowlist Gate",
        description="Admission control for subgraph deploy, indexing and query serving",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if _debug else None,
        redoc_url="/redoc" if _debug else None,
        openapi_url="/openapi.json" if _debug else None,
    )

    # /health and /allowlist return 503 for anything arriving before startup completes.
    application.state.ready = False

    application.include_router(health_router)
    application.include_router(allowlist_router)

    @application.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        logger.warning(
            "HTTP exception",
            status_code=exc.status_code,
            path=str(request.url.path),
        )
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @application.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=str(request.url.path),
        )
        return JSONResponse(
            status_code=500, content={"error": "Internal server error"}
        )

    return application


# ─── Module-Level App (for uvicorn) ───────────────────────────────────────────

app = create_app()
