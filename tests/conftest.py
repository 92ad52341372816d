from __future__ import annotations

from datetime import timedelta
from uuid import uuid4

import pytest
import pytest_asyncio
from memlane_core.types import (
    IngestionMetadata,
    MemoryObject,
    MemorySource,
    MemoryStatus,
    Namespace,
    SourceType,
    to_iso,
    utc_now,
)


@pytest.fixture
def namespace() -> Namespace:
    return Namespace(org_id="acme", app_id="support", agent_id="triage")


@pytest.fixture
def make_memory(namespace):
    """Factory for stored memories with sensible defaults."""

    def _make(
        content: str = "The user prefers dark mode",
        *,
        memory_id: str | None = None,
        ns: Namespace | None = None,
        tags: list[str] | None = None,
        importance: float = 0.5,
        task_criticality: float = 0.5,
        age_hours: float = 0.0,
        last_accessed_hours_ago: float | None = None,
        session_id: str | None = None,
        status: MemoryStatus = MemoryStatus.ACTIVE,
        ttl_seconds: int | None = None,
        source_type: SourceType = SourceType.USER_INPUT,
        embedding: list[float] | None = None,
    ) -> MemoryObject:
        now = utc_now()
        created_at = to_iso(now - timedelta(hours=age_hours))
        last_accessed_at = None
        if last_accessed_hours_ago is not None:
            last_accessed_at = to_iso(now - timedelta(hours=last_accessed_hours_ago))
        return MemoryObject(
            memory_id=memory_id or uuid4().hex,
            namespace=ns or namespace,
            content=content,
            content_type="text",
            source=MemorySource(type=source_type, identifier="user-1", timestamp=created_at),
            ingestion=IngestionMetadata(
                source_type=source_type,
                source_id="user-1",
                ingestion_timestamp=created_at,
                confidence_score=0.9,
            ),
            tags=list(tags or []),
            importance=importance,
            task_criticality=task_criticality,
            embedding=embedding,
            created_at=created_at,
            last_accessed_at=last_accessed_at,
            ttl_seconds=ttl_seconds,
            status=status,
            session_id=session_id,
        )

    return _make


# ---------------------------------------------------------------------------
# T0 In-process fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def memory_memory_store():
    from memlane_runtime.backends.memory import InProcessMemoryStore
    return InProcessMemoryStore()


# ---------------------------------------------------------------------------
# T1 SQLite fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def sqlite_db_path(tmp_path):
    return str(tmp_path / "test.db")


@pytest_asyncio.fixture
async def sqlite_memory_store(sqlite_db_path):
    from memlane_runtime.backends.sqlite import SQLiteMemoryStore
    store = await SQLiteMemoryStore.create(sqlite_db_path)
    yield store
    await store.close()


# ---------------------------------------------------------------------------
# T2 Redis fixtures
# ---------------------------------------------------------------------------

def _redis_prefix() -> str:
    return f"test_{uuid4().hex[:8]}:"


@pytest_asyncio.fixture
async def redis_memory_store():
    pytest.importorskip("redis")
    from memlane_runtime.backends.redis import RedisMemoryStore
    prefix = _redis_prefix()
    try:
        store = await RedisMemoryStore.create("redis://localhost:6379", prefix=prefix)
    except Exception:
        pytest.skip("Redis not available")
    yield store
    async for key in store._r.scan_iter(match=f"{prefix}*"):
        await store._r.delete(key)
    await store.close()


@pytest.fixture(params=["memory", "sqlite", "redis"])
def store(request):
    backends = {
        "memory": "memory_memory_store",
        "sqlite": "sqlite_memory_store",
        "redis": "redis_memory_store",
    }
    return request.getfixturevalue(backends[request.param])
