"""Subgraph allowlist gate for indexing nodes."""

__version__ = "0.1.0"
