from __future__ import annotations

from typing import TYPE_CHECKING

from memlane_core.errors import ConfigError
from memlane_core.logging import get_logger

if TYPE_CHECKING:
    from memlane_core.config import MemlaneConfig

    from memlane_runtime.protocols.memory_store import MemoryStore

logger = get_logger("builder")


class StoreBuilder:
    """Build a MemoryStore from configuration.

    Usage:
        config = MemlaneConfig.load()
        store = await StoreBuilder(config).build()
    """

    def __init__(self, config: MemlaneConfig) -> None:
        self._config = config

    async def build(self) -> MemoryStore:
        tier = self._config.backend.tier
        logger.info("Building memory store with %s backend", tier)

        if tier == "memory":
            return self._build_memory()
        elif tier == "sqlite":
            return await self._build_sqlite()
        elif tier == "redis":
            return await self._build_redis()
        else:
            raise ConfigError(f"Unknown backend tier: {tier!r}")

    def _build_memory(self) -> MemoryStore:
        from memlane_runtime.backends.memory import InProcessMemoryStore
        return InProcessMemoryStore()

    async def _build_sqlite(self) -> MemoryStore:
        from memlane_runtime.backends.sqlite import SQLiteMemoryStore
        backend = self._config.backend
        return await SQLiteMemoryStore.create(backend.sqlite_path, wal=backend.sqlite_wal)

    async def _build_redis(self) -> MemoryStore:
        from memlane_runtime.backends.redis import RedisMemoryStore
        backend = self._config.backend
        return await RedisMemoryStore.create(backend.redis_url, prefix=backend.redis_prefix)
