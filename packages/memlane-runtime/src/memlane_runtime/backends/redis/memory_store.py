from __future__ import annotations

import json
import uuid
from typing import TYPE_CHECKING

from memlane_core.logging import get_logger
from memlane_core.types import AuditEntry, MemoryObject

from memlane_runtime.backends._search import apply_list_options, search
from memlane_runtime.backends.redis._pool import create_pool

if TYPE_CHECKING:
    from memlane_core.types import (
        ListMemoryOptions,
        MemoryQuery,
        MemoryResult,
        Namespace,
        ProvenanceEntry,
    )
    from redis.asyncio import Redis

logger = get_logger("backend.redis.memory_store")


class RedisMemoryStore:
    """T2 memory store: one JSON string per memory plus namespace index sets.

    Keys::

        {prefix}memory:{id}             primary document
        {prefix}memories:{namespace}    set of primary ids
        {prefix}quarantine:{id}         quarantined document
        {prefix}quarantined:{namespace} set of quarantined ids
        {prefix}audit:{namespace}       list of audit entries, oldest first
    """

    def __init__(self, client: Redis, *, prefix: str = "memlane:") -> None:
        self._r = client
        self._prefix = prefix

    @classmethod
    async def create(cls, redis_url: str, *, prefix: str = "memlane:") -> RedisMemoryStore:
        client = await create_pool(redis_url)
        return cls(client, prefix=prefix)

    async def close(self) -> None:
        await self._r.aclose()

    # ── Key helpers ──────────────────────────────────────────────

    def _doc_key(self, kind: str, memory_id: str) -> str:
        return f"{self._prefix}{kind}:{memory_id}"

    def _index_key(self, kind: str, namespace_key: str) -> str:
        index = "memories" if kind == "memory" else "quarantined"
        return f"{self._prefix}{index}:{namespace_key}"

    def _audit_key(self, namespace_key: str) -> str:
        return f"{self._prefix}audit:{namespace_key}"

    # ── Document helpers ─────────────────────────────────────────

    async def _put(self, kind: str, memory: MemoryObject) -> None:
        async with self._r.pipeline(transaction=True) as pipe:
            pipe.set(self._doc_key(kind, memory.memory_id), json.dumps(memory.to_dict()))
            pipe.sadd(self._index_key(kind, memory.namespace.key), memory.memory_id)
            await pipe.execute()

    async def _get(self, kind: str, memory_id: str) -> MemoryObject | None:
        raw = await self._r.get(self._doc_key(kind, memory_id))
        if raw is None:
            return None
        return MemoryObject.from_dict(json.loads(raw))

    async def _delete(self, kind: str, memory_id: str) -> None:
        memory = await self._get(kind, memory_id)
        if memory is None:
            return
        async with self._r.pipeline(transaction=True) as pipe:
            pipe.delete(self._doc_key(kind, memory_id))
            pipe.srem(self._index_key(kind, memory.namespace.key), memory_id)
            await pipe.execute()

    async def _scan_namespace(self, kind: str, namespace_key: str) -> list[MemoryObject]:
        members = await self._r.smembers(self._index_key(kind, namespace_key))
        if not members:
            return []
        ids = sorted(m.decode() if isinstance(m, bytes) else m for m in members)
        raws = await self._r.mget([self._doc_key(kind, i) for i in ids])
        return [MemoryObject.from_dict(json.loads(raw)) for raw in raws if raw is not None]

    # ── Primary partition ────────────────────────────────────────

    async def save_memory(self, memory: MemoryObject) -> None:
        await self._put("memory", memory)

    async def get_memory(self, memory_id: str) -> MemoryObject | None:
        return await self._get("memory", memory_id)

    async def update_memory(self, memory: MemoryObject) -> None:
        await self._put("memory", memory)

    async def delete_memory(self, memory_id: str) -> None:
        await self._delete("memory", memory_id)

    async def list_memories(
        self, namespace: Namespace, options: ListMemoryOptions | None = None,
    ) -> list[MemoryObject]:
        return apply_list_options(await self._scan_namespace("memory", namespace.key), options)

    async def search_memories(self, query: MemoryQuery) -> list[MemoryResult]:
        return search(await self._scan_namespace("memory", query.namespace.key), query)

    # ── Quarantine partition ─────────────────────────────────────

    async def save_quarantined(self, memory: MemoryObject) -> None:
        await self._put("quarantine", memory)

    async def get_quarantined(self, memory_id: str) -> MemoryObject | None:
        return await self._get("quarantine", memory_id)

    async def list_quarantined(
        self, namespace: Namespace, options: ListMemoryOptions | None = None,
    ) -> list[MemoryObject]:
        return apply_list_options(
            await self._scan_namespace("quarantine", namespace.key), options,
        )

    async def delete_quarantined(self, memory_id: str) -> None:
        await self._delete("quarantine", memory_id)

    # ── Audit ────────────────────────────────────────────────────

    async def log_audit(self, entry: AuditEntry) -> None:
        data = entry.to_dict()
        data["id"] = entry.id or uuid.uuid4().hex
        await self._r.rpush(self._audit_key(entry.namespace.key), json.dumps(data))

    async def get_audit_log(
        self, namespace: Namespace, *, limit: int = 100, offset: int = 0, order: str = "desc",
    ) -> list[AuditEntry]:
        if limit <= 0:
            return []
        key = self._audit_key(namespace.key)
        if order == "asc":
            raws = await self._r.lrange(key, offset, offset + limit - 1)
        else:
            total = await self._r.llen(key)
            stop = total - 1 - offset
            if stop < 0:
                return []
            start = max(0, stop - limit + 1)
            raws = list(reversed(await self._r.lrange(key, start, stop)))
        return [AuditEntry.from_dict(json.loads(raw)) for raw in raws]

    async def get_memory_audit_log(self, memory_id: str) -> list[ProvenanceEntry]:
        memory = await self.get_memory(memory_id) or await self.get_quarantined(memory_id)
        if memory is None:
            return []
        return list(memory.provenance)
