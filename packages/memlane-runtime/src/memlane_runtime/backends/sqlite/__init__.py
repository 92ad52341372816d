"""T1 SQLite Backend: persistent, zero external infrastructure."""
from __future__ import annotations

from memlane_runtime.backends.sqlite.memory_store import SQLiteMemoryStore

__all__ = [
    "SQLiteMemoryStore",
]
