from __future__ import annotations

from memlane_core.types import (
    AuditAction,
    AuditEntry,
    ListMemoryOptions,
    MemoryQuery,
    MemoryStatus,
    Namespace,
    SourceType,
)
from memlane_runtime.protocols import MemoryStore


class TestMemoryStoreConformance:
    """Conformance tests for MemoryStore implementations."""

    async def test_implements_protocol(self, store):
        assert isinstance(store, MemoryStore)

    async def test_get_nonexistent_returns_none(self, store):
        assert await store.get_memory("missing") is None
        assert await store.get_quarantined("missing") is None

    async def test_save_and_get(self, store, make_memory):
        memory = make_memory("Deploys happen on Tuesdays", tags=["ops"])
        await store.save_memory(memory)

        loaded = await store.get_memory(memory.memory_id)
        assert loaded is not None
        assert loaded.content == "Deploys happen on Tuesdays"
        assert loaded.tags == ["ops"]
        assert loaded.namespace == memory.namespace

    async def test_returned_memory_is_a_copy(self, store, make_memory):
        memory = make_memory()
        await store.save_memory(memory)

        loaded = await store.get_memory(memory.memory_id)
        loaded.content = "mutated"
        assert (await store.get_memory(memory.memory_id)).content != "mutated"

    async def test_update_overwrites(self, store, make_memory):
        memory = make_memory("old")
        await store.save_memory(memory)
        memory.content = "new"
        memory.version = 2
        await store.update_memory(memory)

        loaded = await store.get_memory(memory.memory_id)
        assert loaded.content == "new"
        assert loaded.version == 2

    async def test_delete_memory(self, store, make_memory):
        memory = make_memory()
        await store.save_memory(memory)
        await store.delete_memory(memory.memory_id)
        assert await store.get_memory(memory.memory_id) is None

    async def test_delete_nonexistent(self, store):
        await store.delete_memory("missing")  # Should not raise
        await store.delete_quarantined("missing")

    async def test_partitions_are_separate(self, store, make_memory):
        memory = make_memory(status=MemoryStatus.QUARANTINED)
        await store.save_quarantined(memory)

        assert await store.get_memory(memory.memory_id) is None
        assert (await store.get_quarantined(memory.memory_id)).memory_id == memory.memory_id

        await store.delete_quarantined(memory.memory_id)
        assert await store.get_quarantined(memory.memory_id) is None

    async def test_list_scoped_to_namespace(self, store, make_memory, namespace):
        other = Namespace(org_id="acme", app_id="support", agent_id="billing")
        await store.save_memory(make_memory("mine"))
        await store.save_memory(make_memory("theirs", ns=other))

        listed = await store.list_memories(namespace)
        assert [m.content for m in listed] == ["mine"]

    async def test_list_orders_and_pages(self, store, make_memory, namespace):
        for hours in (3, 1, 2):
            await store.save_memory(make_memory(f"{hours}h old", age_hours=hours))

        newest_first = await store.list_memories(namespace)
        assert [m.content for m in newest_first] == ["1h old", "2h old", "3h old"]

        page = await store.list_memories(
            namespace, ListMemoryOptions(order="asc", limit=2, offset=1),
        )
        assert [m.content for m in page] == ["2h old", "1h old"]

    async def test_list_filters_status_and_expiry(self, store, make_memory, namespace):
        await store.save_memory(make_memory("active"))
        await store.save_memory(make_memory("deleted", status=MemoryStatus.DELETED))
        await store.save_memory(make_memory("expired", ttl_seconds=0))

        active = await store.list_memories(
            namespace, ListMemoryOptions(status=MemoryStatus.ACTIVE),
        )
        assert [m.content for m in active] == ["active"]

        with_expired = await store.list_memories(
            namespace, ListMemoryOptions(status=MemoryStatus.ACTIVE, include_expired=True),
        )
        assert sorted(m.content for m in with_expired) == ["active", "expired"]

    async def test_list_quarantined(self, store, make_memory, namespace):
        await store.save_quarantined(make_memory("suspicious", status=MemoryStatus.QUARANTINED))
        await store.save_memory(make_memory("fine"))

        quarantined = await store.list_quarantined(namespace)
        assert [m.content for m in quarantined] == ["suspicious"]


class TestMemoryStoreSearch:
    async def test_search_excludes_deleted_and_expired(self, store, make_memory, namespace):
        await store.save_memory(make_memory("kept"))
        await store.save_memory(make_memory("gone", status=MemoryStatus.DELETED))
        await store.save_memory(make_memory("timed out", ttl_seconds=0))

        results = await store.search_memories(MemoryQuery(namespace=namespace))
        assert [r.content for r in results] == ["kept"]

    async def test_search_filters(self, store, make_memory, namespace):
        await store.save_memory(make_memory("a", tags=["billing", "urgent"], importance=0.9))
        await store.save_memory(make_memory("b", tags=["billing"], importance=0.2))
        await store.save_memory(
            make_memory("c", tags=["billing", "urgent"], source_type=SourceType.WEB_SCRAPE),
        )

        results = await store.search_memories(MemoryQuery(
            namespace=namespace,
            tags=("billing", "urgent"),
            source_types=(SourceType.USER_INPUT,),
        ))
        assert [r.content for r in results] == ["a"]

        results = await store.search_memories(
            MemoryQuery(namespace=namespace, min_importance=0.5),
        )
        assert sorted(r.content for r in results) == ["a", "c"]

    async def test_search_max_age_uses_last_access(self, store, make_memory, namespace):
        await store.save_memory(make_memory("old", age_hours=48))
        await store.save_memory(
            make_memory("old but used", age_hours=48, last_accessed_hours_ago=1),
        )

        results = await store.search_memories(
            MemoryQuery(namespace=namespace, max_age_seconds=3600 * 24),
        )
        assert [r.content for r in results] == ["old but used"]

    async def test_search_ranks_and_limits(self, store, make_memory, namespace):
        await store.save_memory(make_memory("low", task_criticality=0.1, importance=0.1))
        await store.save_memory(make_memory("high", task_criticality=0.9, importance=0.9))
        await store.save_memory(make_memory("mid", task_criticality=0.5, importance=0.5))

        results = await store.search_memories(MemoryQuery(namespace=namespace, limit=2))
        assert [r.content for r in results] == ["high", "mid"]
        assert results[0].score >= results[1].score

        everything = await store.search_memories(MemoryQuery(namespace=namespace, limit=None))
        assert len(everything) == 3

    async def test_search_session_scoping(self, store, make_memory, namespace):
        await store.save_memory(make_memory("s1", session_id="s1"))
        await store.save_memory(make_memory("s2", session_id="s2"))

        pinned = await store.search_memories(MemoryQuery(namespace=namespace, session_id="s1"))
        assert [r.content for r in pinned] == ["s1"]

        local = await store.search_memories(MemoryQuery(
            namespace=namespace, current_session_id="s2", include_cross_session=False,
        ))
        assert [r.content for r in local] == ["s2"]

        shared = await store.search_memories(MemoryQuery(
            namespace=namespace, current_session_id="s2", include_cross_session=True,
        ))
        assert sorted(r.content for r in shared) == ["s1", "s2"]

    async def test_search_omits_content_on_request(self, store, make_memory, namespace):
        await store.save_memory(make_memory("secret"))
        results = await store.search_memories(
            MemoryQuery(namespace=namespace, include_content=False),
        )
        assert results[0].content is None


class TestMemoryStoreAudit:
    async def test_log_and_read_audit(self, store, namespace):
        for i in range(3):
            await store.log_audit(AuditEntry(
                namespace=namespace,
                action=AuditAction.CREATE,
                resource_type="memory",
                resource_id=f"m{i}",
                actor_id="tester",
            ))

        entries = await store.get_audit_log(namespace)
        assert [e.resource_id for e in entries] == ["m2", "m1", "m0"]
        assert all(e.id for e in entries)

        oldest = await store.get_audit_log(namespace, limit=1, order="asc")
        assert [e.resource_id for e in oldest] == ["m0"]

    async def test_memory_audit_log_is_provenance(self, store, make_memory):
        memory = make_memory()
        await store.save_memory(memory)
        assert await store.get_memory_audit_log(memory.memory_id) == list(memory.provenance)
        assert await store.get_memory_audit_log("missing") == []
