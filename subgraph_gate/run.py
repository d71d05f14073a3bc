"""Programmatic uvicorn entry point for the allowlist gate.

Usage:
    python -m subgraph_gate.run
    subgraph-gate                  # via pyproject.toml [project.scripts]

Host and port come from the gate config (127.0.0.1:8040 by default,
SUBGRAPH_GATE_PORT overrides). The allowlist itself is loaded by the app
lifespan, so a bad allowlist still stops the process before it serves.
"""

from __future__ import annotations

import uvicorn

from subgraph_gate.config import load_config

# Admission checks are tiny; keep the connection budget small.
UVICORN_LIMIT_CONCURRENCY: int = 100

UVICORN_BACKLOG: int = 50

UVICORN_TIMEOUT_KEEP_ALIVE: int = 5


def main() -> None:
    """Start the allowlist gate admin server.

    Raises:
        SystemExit: Propagated from load_config() on config errors.
    """
    config = load_config()

    uvicorn.run(
        "subgraph_gate.main:app",
        host=config.server.host,
        port=config.server.port,
        limit_concurrency=UVICORN_LIMIT_CONCURRENCY,
        backlog=UVICORN_BACKLOG,
        timeout_keep_alive=UVICORN_TIMEOUT_KEEP_ALIVE,
    )


if __name__ == "__main__":
    main()
