from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

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


@runtime_checkable
class MemoryStore(Protocol):
    """Persistence contract for memories, split into a primary and a
    quarantine partition, plus an append-only audit log.

    Implementations store and return independent copies: mutating an
    object after saving it, or one returned by a getter, never changes
    the stored record.
    """

    # Primary partition
    async def save_memory(self, memory: MemoryObject) -> None: ...
    async def get_memory(self, memory_id: str) -> MemoryObject | None: ...
    async def update_memory(self, memory: MemoryObject) -> None: ...
    async def delete_memory(self, memory_id: str) -> None: ...
    async def list_memories(
        self, namespace: Namespace, options: ListMemoryOptions | None = None,
    ) -> list[MemoryObject]: ...
    async def search_memories(self, query: MemoryQuery) -> list[MemoryResult]: ...

    # Quarantine partition
    async def save_quarantined(self, memory: MemoryObject) -> None: ...
    async def get_quarantined(self, memory_id: str) -> MemoryObject | None: ...
    async def list_quarantined(
        self, namespace: Namespace, options: ListMemoryOptions | None = None,
    ) -> list[MemoryObject]: ...
    async def delete_quarantined(self, memory_id: str) -> None: ...

    # Audit
    async def log_audit(self, entry: AuditEntry) -> None: ...
    async def get_audit_log(
        self, namespace: Namespace, *, limit: int = 100, offset: int = 0, order: str = "desc",
    ) -> list[AuditEntry]: ...
    async def get_memory_audit_log(self, memory_id: str) -> list[ProvenanceEntry]: ...
