"""Allowlist loader for the subgraph gate.

Turns one of the two configuration surfaces into a normalized Allowlist:

    FilePath(path)     - SUBGRAPH_ALLOWLIST_FILEPATH, a strict JSON file:
                           {"allowlist": ["0xabc...", "Qm...", ...]}
    InlineList(text)   - SUBGRAPH_ALLOWEDLIST, a comma-separated list.

Both converge on a list of raw strings that go through normalize(). The loader
is fail-closed: any bad entry fails the whole load with MalformedSource, there
is no partial allowlist.

The loader never touches the store. Publishing is the caller's job (startup in
main.lifespan, reloads in allowlist/reload.py).
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from typing import Any, Union

from subgraph_gate.allowlist.errors import MalformedEntry, MalformedSource, SourceUnavailable
from subgraph_gate.allowlist.models import Allowlist, SourceKind
from subgraph_gate.allowlist.normalize import is_hex_address, normalize
from subgraph_gate.constants import ALLOWLIST_JSON_KEY, ENV_ALLOWEDLIST, INLINE_SEPARATOR
from subgraph_gate.utils.logger import get_logger

logger = get_logger(__name__)


# ─── Loader configuration variants ───────────────────────────────────────────


@dataclass(frozen=True)
class FilePath:
    """Load from a JSON file on disk."""

    path: str


@dataclass(frozen=True)
class InlineList:
    """Load from an inline comma-separated string.

    location names where the text came from (the env variable by default) and
    is only used for provenance.
    """

    text: str
    location: str = ENV_ALLOWEDLIST


LoaderConfig = Union[FilePath, InlineList]


# ─── Public API ──────────────────────────────────────────────────────────────


def load_allowlist(config: LoaderConfig) -> Allowlist:
    """Load and normalize an allowlist from either configuration surface.

    Raises:
        SourceUnavailable: FilePath points at a missing / unreadable file.
        MalformedSource:   Invalid JSON, wrong document shape, or any entry
                           that fails normalization.
    """
    if isinstance(config, FilePath):
        return _load_file(config.path)
    if isinstance(config, InlineList):
        return _load_inline(config.text, config.location)
    raise TypeError(f"Unsupported loader config: {type(config).__name__}")


def read_source_checksum(path: str) -> str:
    """sha256 hex digest of the file at path.

    Raises:
        SourceUnavailable: file missing or unreadable.
    """
    return _checksum(_read_bytes(path))


# ─── File mode ───────────────────────────────────────────────────────────────


def _load_file(path: str) -> Allowlist:
    data = _read_bytes(path)
    checksum = _checksum(data)

    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise MalformedSource(f"Allowlist file is not valid UTF-8: {exc}", source=path) from exc

    try:
        document = json.loads(text, object_pairs_hook=_reject_duplicate_keys)
    except json.JSONDecodeError as exc:
        # Strict JSON: trailing commas land here too.
        raise MalformedSource(
            f"Allowlist file is not valid JSON: {exc.msg} (line {exc.lineno}, column {exc.colno})",
            source=path,
        ) from exc
    except ValueError as exc:
        raise MalformedSource(str(exc), source=path) from exc

    raw_entries = _extract_entries(document, path)
    entries = _normalize_all(raw_entries, path)

    allowlist = Allowlist(
        entries=entries,
        source_kind=SourceKind.FILE,
        source_location=path,
        checksum=checksum,
    )
    _log_loaded(allowlist, raw_count=len(raw_entries))
    return allowlist


def _read_bytes(path: str) -> bytes:
    try:
        with open(path, "rb") as fh:
            return fh.read()
    except FileNotFoundError as exc:
        raise SourceUnavailable("Allowlist file not found", source=path) from exc
    except OSError as exc:
        raise SourceUnavailable(f"Could not read allowlist file: {exc.strerror or exc}", source=path) from exc


def _reject_duplicate_keys(pairs: list[tuple[str, Any]]) -> dict[str, Any]:
    """json object hook: a repeated key would silently drop one of the lists."""
    result: dict[str, Any] = {}
    for key, value in pairs:
        if key in result:
            raise ValueError(f"Duplicate key in allowlist file: {key!r}")
        result[key] = value
    return result


def _extract_entries(document: Any, path: str) -> list[Any]:
    if not isinstance(document, dict):
        raise MalformedSource(
            f"Allowlist file root must be a JSON object, got {type(document).__name__}",
            source=path,
        )

    if ALLOWLIST_JSON_KEY not in document:
        raise MalformedSource(f"Allowlist file has no '{ALLOWLIST_JSON_KEY}' key", source=path)

    unknown = sorted(key for key in document if key != ALLOWLIST_JSON_KEY)
    if unknown:
        logger.warning("Allowlist file has unrecognised keys - ignoring", path=path, keys=unknown)

    raw_entries = document[ALLOWLIST_JSON_KEY]
    if not isinstance(raw_entries, list):
        raise MalformedSource(
            f"'{ALLOWLIST_JSON_KEY}' must be a list, got {type(raw_entries).__name__}",
            source=path,
        )
    return raw_entries


# ─── Inline mode ─────────────────────────────────────────────────────────────


def _load_inline(text: str, location: str) -> Allowlist:
    if not isinstance(text, str):
        raise MalformedSource(f"Inline allowlist must be a string, got {type(text).__name__}", source=location)

    # Blank value is an explicit deny-all policy, not an error.
    if not text.strip():
        raw_entries: list[Any] = []
    else:
        raw_entries = text.split(INLINE_SEPARATOR)

    allowlist = Allowlist(
        entries=_normalize_all(raw_entries, location),
        source_kind=SourceKind.INLINE,
        source_location=location,
        checksum=_checksum(text.encode("utf-8")),
    )
    _log_loaded(allowlist, raw_count=len(raw_entries))
    return allowlist


# ─── Shared helpers ──────────────────────────────────────────────────────────


def _normalize_all(raw_entries: list[Any], source: str) -> frozenset[str]:
    normalized: set[str] = set()
    for index, raw in enumerate(raw_entries):
        try:
            normalized.add(normalize(raw))
        except MalformedEntry as exc:
            exc.index = index
            raise MalformedSource(f"Allowlist entry #{index} is invalid: {exc.message}", source=source) from exc
    return frozenset(normalized)


def _checksum(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _log_loaded(allowlist: Allowlist, raw_count: int) -> None:
    logger.debug(
        "Allowlist loaded",
        source_kind=allowlist.source_kind.value,
        source=allowlist.source_location,
        count=len(allowlist),
        addresses=sum(1 for entry in allowlist.entries if is_hex_address(entry)),
        duplicates=raw_count - len(allowlist),
    )
    if allowlist.is_empty:
        logger.warning(
            "Allowlist is empty - every subgraph will be denied",
            source=allowlist.source_location,
        )
