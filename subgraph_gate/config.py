"""Config loading for the subgraph allowlist gate.

Two kinds of configuration:

  1. The allowlist source - environment only, exactly the two surfaces the
     node documents:
       SUBGRAPH_ALLOWLIST_FILEPATH  JSON file {"allowlist": [...]}
       SUBGRAPH_ALLOWEDLIST         inline comma-separated list
     If both are set the file wins. If neither is set the gate refuses to
     start: running without an access-control list is not a state we can
     answer admission queries from.

  2. Gate service settings (reload behaviour, admin HTTP binding) from an
     optional YAML file. Search order:
       1. `config_path` argument (if provided - for testing or explicit override)
       2. SUBGRAPH_GATE_CONFIG environment variable (if set)
       3. `.subgraph-gate/config.yaml` (working directory)
       4. `~/.subgraph-gate/config.yaml` (home directory)
     No file found → defaults. A file that is found but invalid → SystemExit(1).

Environment variable overrides (applied after the file):
  SUBGRAPH_GATE_PORT   - overrides server.port
  SUBGRAPH_GATE_RELOAD - "true" / "false", overrides reload.enabled
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from typing import Any, Mapping, NoReturn, Optional

import yaml

from subgraph_gate.allowlist.loader import FilePath, InlineList, LoaderConfig
from subgraph_gate.constants import (
    DEFAULT_DEBOUNCE_MS,
    DEFAULT_HOST,
    DEFAULT_POLL_DELAY_MS,
    DEFAULT_PORT,
    DEFAULT_RESCAN_INTERVAL_MS,
    ENV_ALLOWEDLIST,
    ENV_ALLOWLIST_FILEPATH,
    ENV_GATE_CONFIG,
    ENV_GATE_PORT,
    ENV_GATE_RELOAD,
)
from subgraph_gate.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Version constants ────────────────────────────────────────────────────────

SUPPORTED_CONFIG_VERSION = 1

SUPPORTED_VERSIONS: frozenset[int] = frozenset({1})

DEFAULT_CONFIG_PATHS = [
    ".subgraph-gate/config.yaml",
    "~/.subgraph-gate/config.yaml",
]

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


# ─── Dataclasses ─────────────────────────────────────────────────────────────


@dataclass
class ReloadConfig:
    """Hot-reload settings for a file-backed allowlist.

    enabled:            Watch SUBGRAPH_ALLOWLIST_FILEPATH and republish on change.
    force_polling:      Poll instead of using OS notifications (NFS, some bind mounts).
    poll_delay_ms:      Poll interval when force_polling is on.
    debounce_ms:        Coalesce bursts of file events into one reload.
    rescan_interval_ms: Longest gap between checksum checks without events.
    """

    enabled: bool = True
    force_polling: bool = False
    poll_delay_ms: int = DEFAULT_POLL_DELAY_MS
    debounce_ms: int = DEFAULT_DEBOUNCE_MS
    rescan_interval_ms: int = DEFAULT_RESCAN_INTERVAL_MS


@dataclass
class ServerConfig:
    """Admin HTTP surface binding."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT


@dataclass
class GateConfig:
    """Root configuration object.

    source is None only until resolve_source() runs; load_config() never
    returns a GateConfig without one.
    """

    version: int = SUPPORTED_CONFIG_VERSION
    source: Optional[LoaderConfig] = None
    reload: ReloadConfig = field(default_factory=ReloadConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    path: Optional[str] = None  # Path to the loaded YAML file, if any

    @classmethod
    def defaults(cls) -> "GateConfig":
        return cls()

    @classmethod
    def from_dict(cls, raw: dict, path: Optional[str] = None) -> "GateConfig":
        """Construct GateConfig from a parsed YAML dict.

        Unknown keys are silently ignored.

        Raises:
            SystemExit(1): On a value of the wrong type.
        """
        reload_raw = _section(raw, "reload", path)
        reload = ReloadConfig(
            enabled=_typed(reload_raw, "enabled", bool, True, path),
            force_polling=_typed(reload_raw, "force_polling", bool, False, path),
            poll_delay_ms=_typed(reload_raw, "poll_delay_ms", int, DEFAULT_POLL_DELAY_MS, path),
            debounce_ms=_typed(reload_raw, "debounce_ms", int, DEFAULT_DEBOUNCE_MS, path),
            rescan_interval_ms=_typed(
                reload_raw, "rescan_interval_ms", int, DEFAULT_RESCAN_INTERVAL_MS, path
            ),
        )
        # watchfiles reads a zero timeout as "wait forever".
        if reload.rescan_interval_ms <= 0:
            _fail(
                f"CONFIG ERROR: 'rescan_interval_ms' in {path} must be positive, "
                f"got {reload.rescan_interval_ms}."
            )

        server_raw = _section(raw, "server", path)
        server = ServerConfig(
            host=_typed(server_raw, "host", str, DEFAULT_HOST, path),
            port=_typed(server_raw, "port", int, DEFAULT_PORT, path),
        )

        return cls(
            version=raw.get("version", SUPPORTED_CONFIG_VERSION),
            reload=reload,
            server=server,
            path=path,
        )


def _fail(msg: str) -> NoReturn:
    print(msg, file=sys.stderr)
    raise SystemExit(1)


def _section(raw: dict, name: str, path: Optional[str]) -> dict:
    value = raw.get(name)
    # "reload:" with nothing under it parses as None and means defaults.
    if value is None:
        return {}
    if not isinstance(value, dict):
        _fail(f"CONFIG ERROR: '{name}' in {path} must be a mapping, got {type(value).__name__}.")
    return value


def _typed(section: dict, key: str, expected: type, default: Any, path: Optional[str]) -> Any:
    value = section.get(key, default)
    # bool is a subclass of int; "port: true" is still a mistake.
    if not isinstance(value, expected) or (expected is int and isinstance(value, bool)):
        _fail(
            f"CONFIG ERROR: '{key}' in {path} must be of type {expected.__name__}, "
            f"got {type(value).__name__}: {value!r}"
        )
    return value


# ─── Allowlist source resolution ─────────────────────────────────────────────


def resolve_source(environ: Optional[Mapping[str, str]] = None) -> Optional[LoaderConfig]:
    """Pick the allowlist source from the environment.

    - SUBGRAPH_ALLOWLIST_FILEPATH set and non-blank → FilePath (wins over inline).
    - SUBGRAPH_ALLOWEDLIST present, even if empty   → InlineList (empty = deny all).
    - Neither                                        → None.
    """
    env = os.environ if environ is None else environ

    file_path = (env.get(ENV_ALLOWLIST_FILEPATH) or "").strip()
    inline = env.get(ENV_ALLOWEDLIST)

    if file_path:
        if inline is not None:
            logger.warning(
                "Both allowlist sources are set - using the file, ignoring the inline list",
                file_variable=ENV_ALLOWLIST_FILEPATH,
                inline_variable=ENV_ALLOWEDLIST,
                path=file_path,
            )
        return FilePath(path=os.path.expanduser(file_path))

    if inline is not None:
        return InlineList(text=inline, location=ENV_ALLOWEDLIST)

    return None


# ─── Config loading ───────────────────────────────────────────────────────────


def load_config(config_path: Optional[str] = None) -> GateConfig:
    """Load and validate gate configuration.

    Returns:
        GateConfig with source resolved and env overrides applied.

    Raises:
        SystemExit(1): YAML parse error, missing / unsupported ``version``,
                       wrongly typed values, invalid env overrides, or no
                       allowlist source configured.
    """
    search_paths: list[str] = []
    if config_path:
        search_paths.append(config_path)
    env_config = os.environ.get(ENV_GATE_CONFIG)
    if env_config:
        search_paths.append(env_config)
    search_paths.extend(DEFAULT_CONFIG_PATHS)

    found_path: Optional[str] = None
    for candidate in search_paths:
        expanded = os.path.expanduser(candidate)
        if os.path.isfile(expanded):
            found_path = expanded
            break

    if found_path is None:
        logger.info("No gate config file found - using defaults", searched=search_paths)
        config = GateConfig.defaults()
    else:
        config = _load_file(found_path)

    _apply_env_overrides(config)

    source = resolve_source()
    if source is None:
        _fail(
            f"CONFIG ERROR: No subgraph allowlist configured.\n"
            f"Set {ENV_ALLOWLIST_FILEPATH} to a JSON file or {ENV_ALLOWEDLIST} to a "
            "comma-separated list. An empty list is allowed and denies every subgraph."
        )
    config.source = source

    if isinstance(source, InlineList) and config.reload.enabled:
        logger.debug("Inline allowlist - reload watcher not applicable")

    if config.server.host == "0.0.0.0":
        logger.warning(
            "SECURITY WARNING: gate admin API is configured to bind on 0.0.0.0 (all interfaces). "
            "Recommended: server.host: '127.0.0.1'."
        )

    logger.info(
        "Gate config loaded",
        path=found_path,
        source_kind="file" if isinstance(source, FilePath) else "inline",
        reload_enabled=config.reload.enabled,
    )
    return config


def _load_file(found_path: str) -> GateConfig:
    logger.info("Loading gate config", path=found_path)

    try:
        with open(found_path) as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        _fail(
            f"CONFIG ERROR: Failed to parse {found_path}: {exc}\n"
            "The gate refuses to start with an invalid config."
        )
    except OSError as exc:
        _fail(f"CONFIG ERROR: Could not read {found_path}: {exc}")

    if not isinstance(raw, dict):
        if raw is None:
            _fail(
                f"CONFIG ERROR: {found_path} is missing the required 'version' field.\n"
                "Add 'version: 1' to the top of your config file."
            )
        _fail(
            f"CONFIG ERROR: {found_path} is not a valid YAML mapping.\n"
            "The config file must be a YAML dictionary at the top level."
        )

    version = raw.get("version")
    if version is None:
        _fail(
            f"CONFIG ERROR: {found_path} is missing the required 'version' field.\n"
            "Add 'version: 1' to the top of your config file."
        )
    if version not in SUPPORTED_VERSIONS:
        _fail(
            f"CONFIG ERROR: Unsupported config version: {version}. "
            f"Supported versions: {sorted(SUPPORTED_VERSIONS)}."
        )

    return GateConfig.from_dict(raw, path=found_path)


def _apply_env_overrides(config: GateConfig) -> None:
    """Apply SUBGRAPH_GATE_PORT / SUBGRAPH_GATE_RELOAD in-place."""
    env_port = os.environ.get(ENV_GATE_PORT)
    if env_port is not None:
        try:
            config.server.port = int(env_port)
        except ValueError:
            _fail(
                f"CONFIG ERROR: {ENV_GATE_PORT} environment variable is not a valid "
                f"integer: '{env_port}'"
            )

    env_reload = os.environ.get(ENV_GATE_RELOAD)
    if env_reload is not None:
        value = env_reload.strip().lower()
        if value in _TRUE_VALUES:
            config.reload.enabled = True
        elif value in _FALSE_VALUES:
            config.reload.enabled = False
        else:
            _fail(
                f"CONFIG ERROR: {ENV_GATE_RELOAD} must be true or false, got '{env_reload}'"
            )
