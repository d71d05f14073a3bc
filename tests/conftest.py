"""Root test configuration for the allowlist gate.

Clears every allowlist / gate environment variable before each test so a
developer's shell (or CI) cannot leak an allowlist source into a test that
sets its own.
"""

import pytest

from subgraph_gate.constants import (
    ENV_ALLOWEDLIST,
    ENV_ALLOWLIST_FILEPATH,
    ENV_GATE_CONFIG,
    ENV_GATE_PORT,
    ENV_GATE_RELOAD,
)


@pytest.fixture(autouse=True)
def clean_gate_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    """Start every test with no allowlist source and no gate config file.

    The working directory is moved to tmp_path so `.subgraph-gate/config.yaml`
    in the checkout is never picked up; HOME is pointed there as well.
    """
    for name in (ENV_ALLOWEDLIST, ENV_ALLOWLIST_FILEPATH, ENV_GATE_CONFIG, ENV_GATE_PORT, ENV_GATE_RELOAD):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
