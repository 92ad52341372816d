from __future__ import annotations

import dataclasses
import uuid
from typing import TYPE_CHECKING

from memlane_runtime.backends._search import apply_list_options, search

if TYPE_CHECKING:
    from memlane_core.types import (
        AuditEntry,
        ListMemoryOptions,
        MemoryObject,
        MemoryQuery,
        MemoryResult,
        Namespace,
        ProvenanceEntry,
    )


class InProcessMemoryStore:
    """T0 memory store: Python dicts holding deep copies."""

    def __init__(self) -> None:
        self._memories: dict[str, MemoryObject] = {}
        self._quarantine: dict[str, MemoryObject] = {}
        self._audit: list[AuditEntry] = []

    # ── Primary partition ────────────────────────────────────────

    async def save_memory(self, memory: MemoryObject) -> None:
        self._memories[memory.memory_id] = memory.copy()

    async def get_memory(self, memory_id: str) -> MemoryObject | None:
        memory = self._memories.get(memory_id)
        return memory.copy() if memory is not None else None

    async def update_memory(self, memory: MemoryObject) -> None:
        self._memories[memory.memory_id] = memory.copy()

    async def delete_memory(self, memory_id: str) -> None:
        self._memories.pop(memory_id, None)

    async def list_memories(
        self, namespace: Namespace, options: ListMemoryOptions | None = None,
    ) -> list[MemoryObject]:
        scoped = (m for m in self._memories.values() if m.namespace.key == namespace.key)
        return [m.copy() for m in apply_list_options(scoped, options)]

    async def search_memories(self, query: MemoryQuery) -> list[MemoryResult]:
        return search(self._memories.values(), query)

    # ── Quarantine partition ─────────────────────────────────────

    async def save_quarantined(self, memory: MemoryObject) -> None:
        self._quarantine[memory.memory_id] = memory.copy()

    async def get_quarantined(self, memory_id: str) -> MemoryObject | None:
        memory = self._quarantine.get(memory_id)
        return memory.copy() if memory is not None else None

    async def list_quarantined(
        self, namespace: Namespace, options: ListMemoryOptions | None = None,
    ) -> list[MemoryObject]:
        scoped = (m for m in self._quarantine.values() if m.namespace.key == namespace.key)
        return [m.copy() for m in apply_list_options(scoped, options)]

    async def delete_quarantined(self, memory_id: str) -> None:
        self._quarantine.pop(memory_id, None)

    # ── Audit ────────────────────────────────────────────────────

    async def log_audit(self, entry: AuditEntry) -> None:
        if not entry.id:
            entry = dataclasses.replace(entry, id=uuid.uuid4().hex)
        self._audit.append(entry)

    async def get_audit_log(
        self, namespace: Namespace, *, limit: int = 100, offset: int = 0, order: str = "desc",
    ) -> list[AuditEntry]:
        entries = [e for e in self._audit if e.namespace.key == namespace.key]
        if order != "asc":
            entries.reverse()
        return entries[offset:offset + limit]

    async def get_memory_audit_log(self, memory_id: str) -> list[ProvenanceEntry]:
        memory = self._memories.get(memory_id) or self._quarantine.get(memory_id)
        if memory is None:
            return []
        return list(memory.provenance)
