"""T2 Redis Backend: shared, Redis-backed memory store."""
from __future__ import annotations

from memlane_runtime.backends.redis.memory_store import RedisMemoryStore

__all__ = [
    "RedisMemoryStore",
]
