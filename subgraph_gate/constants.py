"""Shared constants for the subgraph allowlist gate.

Environment variable names, file-format keys and reload timings used across
modules are defined here. No magic strings in other modules - import from here.
"""

# ─── Allowlist Configuration Surfaces ────────────────────────────────────────

# Path to a JSON file of the form {"allowlist": ["<address-or-id>", ...]}.
# Takes precedence over the inline list when both are set.
ENV_ALLOWLIST_FILEPATH: str = "SUBGRAPH_ALLOWLIST_FILEPATH"

# Inline comma-separated list of addresses / deployment identifiers.
# Note the spelling: ALLOWEDLIST, not ALLOWLIST.
ENV_ALLOWEDLIST: str = "SUBGRAPH_ALLOWEDLIST"

# The only recognised key in the JSON allowlist file.
ALLOWLIST_JSON_KEY: str = "allowlist"

# Separator for the inline list.
INLINE_SEPARATOR: str = ","

# ─── Gate Service Configuration ──────────────────────────────────────────────

# Explicit gate config file path (tried before the default search paths).
ENV_GATE_CONFIG: str = "SUBGRAPH_GATE_CONFIG"

# Port override for the admin HTTP surface.
ENV_GATE_PORT: str = "SUBGRAPH_GATE_PORT"

# "true" / "false" override for reload.enabled.
ENV_GATE_RELOAD: str = "SUBGRAPH_GATE_RELOAD"

# Admin surface binding. Loopback by default; the node's own ports
# (8000/8001/8020/8030) are deliberately not reused.
DEFAULT_HOST: str = "127.0.0.1"
DEFAULT_PORT: int = 8040

# ─── Reload Trigger Timings ──────────────────────────────────────────────────

# watchfiles polling interval when force_polling is enabled (network mounts,
# container bind mounts without inotify).
DEFAULT_POLL_DELAY_MS: int = 300

# watchfiles debounce window - editors often emit several events per save.
DEFAULT_DEBOUNCE_MS: int = 200

# Upper bound between checksum checks when no file event arrives. The first
# check runs once the watcher is armed and covers edits made during startup.
DEFAULT_RESCAN_INTERVAL_MS: int = 5000
