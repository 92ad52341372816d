"""T0 In-Process Backend: zero dependencies, in-memory only."""
from __future__ import annotations

from memlane_runtime.backends.memory.memory_store import InProcessMemoryStore

__all__ = [
    "InProcessMemoryStore",
]
