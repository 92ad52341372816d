"""Protocol interfaces for pluggable memory persistence."""
from __future__ import annotations

from memlane_runtime.protocols.memory_store import MemoryStore

__all__ = [
    "MemoryStore",
]
