from __future__ import annotations

import pytest
from memlane_core.config import BackendConfig, MemlaneConfig
from memlane_core.errors import BackendUnavailableError, ConfigError
from memlane_runtime.backends.memory import InProcessMemoryStore
from memlane_runtime.backends.sqlite import SQLiteMemoryStore
from memlane_runtime.builder import StoreBuilder
from memlane_runtime.protocols import MemoryStore


class TestStoreBuilder:
    async def test_build_memory_backend(self):
        config = MemlaneConfig(backend=BackendConfig(tier="memory"))
        store = await StoreBuilder(config).build()
        assert isinstance(store, InProcessMemoryStore)
        assert isinstance(store, MemoryStore)

    async def test_build_sqlite_backend(self, tmp_path):
        db_path = str(tmp_path / "nested" / "test.db")
        config = MemlaneConfig(backend=BackendConfig(tier="sqlite", sqlite_path=db_path))
        store = await StoreBuilder(config).build()
        try:
            assert isinstance(store, SQLiteMemoryStore)
            assert (tmp_path / "nested" / "test.db").exists()
        finally:
            await store.close()

    async def test_build_unknown_tier_raises(self):
        config = MemlaneConfig(backend=BackendConfig(tier="unknown"))
        with pytest.raises(ConfigError, match="Unknown backend tier"):
            await StoreBuilder(config).build()

    async def test_build_redis_requires_connection(self):
        pytest.importorskip("redis")
        config = MemlaneConfig(backend=BackendConfig(tier="redis", redis_url="redis://localhost:1"))
        with pytest.raises(BackendUnavailableError):
            await StoreBuilder(config).build()

    async def test_sqlite_persists_across_connections(self, tmp_path, make_memory):
        db_path = str(tmp_path / "test.db")
        memory = make_memory("survives restarts")

        store = await SQLiteMemoryStore.create(db_path)
        await store.save_memory(memory)
        await store.close()

        reopened = await SQLiteMemoryStore.create(db_path)
        try:
            loaded = await reopened.get_memory(memory.memory_id)
            assert loaded.content == "survives restarts"
        finally:
            await reopened.close()
