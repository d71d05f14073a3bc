"""Subgraph allowlist - normalizer, loader, store, gate and reload trigger.

Public API:
    normalize          - canonicalize a raw entry / candidate identifier
    load_allowlist     - FilePath | InlineList → Allowlist
    AllowlistStore     - holder of the published snapshot
    AllowlistGate      - check(identifier) → GateDecision
    AllowlistReloader  - file watcher that republishes on change
"""
from subgraph_gate.allowlist.errors import (
    AllowlistError,
    MalformedEntry,
    MalformedSource,
    SourceUnavailable,
)
from subgraph_gate.allowlist.gate import AllowlistGate, decide
from subgraph_gate.allowlist.loader import FilePath, InlineList, LoaderConfig, load_allowlist
from subgraph_gate.allowlist.models import (
    Allowlist,
    AllowlistSnapshot,
    GateDecision,
    SourceKind,
    Verdict,
)
from subgraph_gate.allowlist.normalize import normalize
from subgraph_gate.allowlist.reload import AllowlistReloader, ReloadOutcome, ReloadState, ReloadStatus
from subgraph_gate.allowlist.store import AllowlistStore

__all__ = [
    "Allowlist",
    "AllowlistError",
    "AllowlistGate",
    "AllowlistReloader",
    "AllowlistSnapshot",
    "AllowlistStore",
    "FilePath",
    "GateDecision",
    "InlineList",
    "LoaderConfig",
    "MalformedEntry",
    "MalformedSource",
    "ReloadOutcome",
    "ReloadState",
    "ReloadStatus",
    "SourceKind",
    "SourceUnavailable",
    "Verdict",
    "decide",
    "load_allowlist",
    "normalize",
]
