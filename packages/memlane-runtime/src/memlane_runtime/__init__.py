"""Memlane Runtime: memory store protocol and pluggable backends."""
from __future__ import annotations

from memlane_runtime.builder import StoreBuilder
from memlane_runtime.protocols import MemoryStore

__all__ = [
    "MemoryStore",
    "StoreBuilder",
]
