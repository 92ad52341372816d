"""The memory state machine.

:class:`LifecycleManager` is the only writer of :class:`MemoryObject`
state. Every operation re-reads the memory from the store, checks its
preconditions, mutates it, appends exactly one provenance entry, persists
it and writes a best-effort audit entry.

Mutations of a memory are serialized per ``memory_id`` within the process.
Multi-step operations are safe to retry: ``merge`` derives the merged
memory's id from its inputs and finishes whatever a failed attempt left
undone, and ``promote_quarantined``/``quarantine`` write the destination
partition before removing the source.
"""
from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING

from memlane_core.config import LifecycleConfig
from memlane_core.errors import (
    AlreadyInStateError,
    InvalidTransitionError,
    MemoryNotFoundError,
    MergeInputError,
    NamespaceMismatchError,
    ValidationRejectedError,
    VersionNotFoundError,
)
from memlane_core.logging import get_logger
from memlane_core.types import (
    AuditAction,
    AuditEntry,
    IngestionMetadata,
    ListMemoryOptions,
    MemoryObject,
    MemorySource,
    MemoryStatus,
    MemoryVersion,
    ProvenanceAction,
    ProvenanceEntry,
    SourceType,
    to_iso,
    utc_now,
)

from memlane_engine._locks import KeyedLock
from memlane_engine.validation import HeuristicMemoryValidator

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from datetime import datetime

    from memlane_core.types import Namespace
    from memlane_runtime.protocols.memory_store import MemoryStore

    from memlane_engine.validation import MemoryValidator

logger = get_logger("engine.lifecycle")

SYSTEM_ACTOR = "system"

_MERGE_ID_NAMESPACE = uuid.UUID("6f1c2a52-8d0e-4c3b-9a57-3b1de0f4c9a1")


# ── Inputs & results ─────────────────────────────────────────────────

@dataclass(slots=True)
class CreateMemoryInput:
    namespace: Namespace
    content: str
    source: MemorySource
    content_type: str | None = None
    tags: list[str] = field(default_factory=list)
    importance: float = 0.5
    task_criticality: float = 0.5
    embedding: list[float] | None = None
    ttl_seconds: int | None = None
    session_id: str | None = None


@dataclass(frozen=True, slots=True)
class MemoryUpdate:
    """Fields to change in an edit; None leaves a field unchanged."""
    content: str | None = None
    content_type: str | None = None
    tags: list[str] | None = None
    importance: float | None = None
    task_criticality: float | None = None
    embedding: list[float] | None = None


@dataclass(frozen=True, slots=True)
class MergeOptions:
    """Overrides for the merged memory; defaults are tag union and means."""
    tags: list[str] | None = None
    importance: float | None = None
    task_criticality: float | None = None


@dataclass(frozen=True, slots=True)
class MergeResult:
    merged_memory: MemoryObject
    merged_ids: list[str]


@dataclass(frozen=True, slots=True)
class ExpireResult:
    expired_count: int
    expired_ids: list[str]


class _Partition(enum.Enum):
    PRIMARY = "primary"
    QUARANTINE = "quarantine"


def _snapshot(memory: MemoryObject, superseded_at: str, actor_id: str,
              reason: str | None) -> MemoryVersion:
    return MemoryVersion(
        version=memory.version,
        content=memory.content,
        content_type=memory.content_type,
        tags=tuple(memory.tags),
        importance=memory.importance,
        task_criticality=memory.task_criticality,
        superseded_at=superseded_at,
        superseded_by=actor_id,
        change_reason=reason,
    )


def merged_memory_id(namespace: Namespace, memory_ids: Sequence[str]) -> str:
    """Deterministic id of the memory produced by merging ``memory_ids``."""
    key = namespace.key + "|" + ",".join(sorted(set(memory_ids)))
    return str(uuid.uuid5(_MERGE_ID_NAMESPACE, key))


def _merge_reason(merged_id: str) -> str:
    return f"Merged into {merged_id}"


class LifecycleManager:
    """Create, edit, retire and restore memories in a :class:`MemoryStore`.

    Args:
        store: Persistence backend.
        validator: Content check run by :meth:`create`. Defaults to
            :class:`HeuristicMemoryValidator`.
        config: TTL defaults and sweep batch size.
        on_audit_error: Called with the entry and exception whenever an
            audit write fails. The triggering operation still succeeds.
    """

    def __init__(
        self,
        store: MemoryStore,
        validator: MemoryValidator | None = None,
        config: LifecycleConfig | None = None,
        on_audit_error: Callable[[AuditEntry, Exception], None] | None = None,
    ) -> None:
        self._store = store
        self._validator = validator or HeuristicMemoryValidator()
        self._config = config or LifecycleConfig()
        self._on_audit_error = on_audit_error
        self._locks = KeyedLock()

    # ── Store helpers ────────────────────────────────────────────

    async def _locate(self, memory_id: str) -> tuple[MemoryObject, _Partition]:
        memory = await self._store.get_memory(memory_id)
        if memory is not None:
            return memory, _Partition.PRIMARY
        memory = await self._store.get_quarantined(memory_id)
        if memory is not None:
            return memory, _Partition.QUARANTINE
        raise MemoryNotFoundError(f"Memory {memory_id} not found")

    async def _require_primary(self, memory_id: str) -> MemoryObject:
        memory = await self._store.get_memory(memory_id)
        if memory is None:
            raise MemoryNotFoundError(f"Memory {memory_id} not found")
        return memory

    async def _persist(self, memory: MemoryObject, partition: _Partition) -> None:
        if partition is _Partition.PRIMARY:
            await self._store.update_memory(memory)
        else:
            await self._store.save_quarantined(memory)

    async def _audit(
        self,
        namespace: Namespace,
        action: AuditAction,
        resource_id: str,
        actor_id: str,
        **metadata: object,
    ) -> None:
        entry = AuditEntry(
            namespace=namespace,
            action=action,
            resource_type="memory",
            resource_id=resource_id,
            actor_id=actor_id,
            metadata=metadata,
        )
        try:
            await self._store.log_audit(entry)
        except Exception as exc:
            logger.warning(
                "Audit write failed for %s on %s", action.value, resource_id, exc_info=True,
            )
            if self._on_audit_error is not None:
                try:
                    self._on_audit_error(entry, exc)
                except Exception:
                    logger.exception("on_audit_error callback failed for %s", resource_id)

    # ── Reads ────────────────────────────────────────────────────

    async def get(
        self, memory_id: str, *, include_quarantined: bool = False,
    ) -> MemoryObject | None:
        memory = await self._store.get_memory(memory_id)
        if memory is None and include_quarantined:
            memory = await self._store.get_quarantined(memory_id)
        return memory

    async def get_by_ids(self, memory_ids: Sequence[str]) -> list[MemoryObject]:
        """Fetch primary memories in the given order, skipping missing ids."""
        found = []
        for memory_id in memory_ids:
            memory = await self._store.get_memory(memory_id)
            if memory is not None:
                found.append(memory)
        return found

    async def list_memories(
        self, namespace: Namespace, options: ListMemoryOptions | None = None,
    ) -> list[MemoryObject]:
        return await self._store.list_memories(namespace, options)

    async def list_quarantined(
        self, namespace: Namespace, options: ListMemoryOptions | None = None,
    ) -> list[MemoryObject]:
        return await self._store.list_quarantined(namespace, options)

    async def audit_log(self, memory_id: str) -> list[ProvenanceEntry]:
        return await self._store.get_memory_audit_log(memory_id)

    # ── Create ───────────────────────────────────────────────────

    def _build(self, data: CreateMemoryInput, memory_id: str) -> MemoryObject:
        verdict = self._validator.validate(
            data.content, data.source.type, data.source.identifier, data.content_type,
        )
        if not verdict.accepted:
            raise ValidationRejectedError(
                verdict.rejection_reason or "Memory entry rejected by validation layer"
            )

        now = utc_now()
        created_at = to_iso(now)

        ttl_seconds = data.ttl_seconds
        if ttl_seconds is None and self._config.default_ttl_days is not None:
            ttl_seconds = int(self._config.default_ttl_days * 86400)
        expires_at = None
        if ttl_seconds:
            expires_at = to_iso(now + timedelta(seconds=ttl_seconds))

        reason = f"Created from {data.source.type.value}"
        if verdict.quarantined:
            reason += f" and quarantined ({round(verdict.confidence_score * 100)}% confidence)"

        return MemoryObject(
            memory_id=memory_id,
            namespace=data.namespace,
            content=verdict.normalized_content,
            content_type=verdict.normalized_content_type,
            source=MemorySource(
                type=data.source.type,
                identifier=data.source.identifier,
                timestamp=created_at,
                metadata=dict(data.source.metadata),
            ),
            ingestion=IngestionMetadata(
                source_type=verdict.source_type,
                source_id=verdict.source_id,
                ingestion_timestamp=created_at,
                confidence_score=verdict.confidence_score,
                detected_format=verdict.detected_format,
                anomaly_flags=list(verdict.anomaly_flags),
                quarantined=verdict.quarantined,
                validation_notes=list(verdict.validation_notes),
            ),
            provenance=[ProvenanceEntry(
                action=ProvenanceAction.CREATED,
                actor_id=data.source.identifier,
                timestamp=created_at,
                reason=reason,
            )],
            tags=list(data.tags),
            importance=data.importance,
            task_criticality=data.task_criticality,
            embedding=list(data.embedding) if data.embedding is not None else None,
            created_at=created_at,
            ttl_seconds=ttl_seconds,
            expires_at=expires_at,
            status=MemoryStatus.QUARANTINED if verdict.quarantined else MemoryStatus.ACTIVE,
            session_id=data.session_id,
        )

    async def _store_new(self, memory: MemoryObject) -> None:
        if memory.status is MemoryStatus.QUARANTINED:
            await self._store.save_quarantined(memory)
        else:
            await self._store.save_memory(memory)
        logger.info(
            "Created memory %s in %s (%s)",
            memory.memory_id, memory.namespace.key, memory.status.value,
            extra={"memory_id": memory.memory_id, "namespace": memory.namespace.key,
                   "action": "create"},
        )

    async def create(self, data: CreateMemoryInput) -> MemoryObject:
        """Validate and store a new memory.

        Low-confidence content is stored in the quarantine partition with
        ``status=quarantined``. Raises :class:`ValidationRejectedError` if
        the validator refuses the content.
        """
        memory = self._build(data, str(uuid.uuid4()))
        await self._store_new(memory)
        await self._audit(
            data.namespace, AuditAction.CREATE, memory.memory_id, data.source.identifier,
            quarantined=memory.ingestion.quarantined,
            confidence_score=memory.ingestion.confidence_score,
            anomaly_flags=list(memory.ingestion.anomaly_flags),
        )
        return memory

    # ── Edit / rollback ──────────────────────────────────────────

    async def edit(
        self,
        memory_id: str,
        updates: MemoryUpdate,
        actor_id: str,
        reason: str | None = None,
    ) -> MemoryObject:
        async with self._locks.hold(memory_id):
            memory, partition = await self._locate(memory_id)
            if memory.is_deleted:
                raise InvalidTransitionError(f"Cannot edit deleted memory {memory_id}")

            edited_at = to_iso(utc_now())
            memory.previous_versions.append(_snapshot(memory, edited_at, actor_id, reason))
            previous_content = memory.content

            if updates.content is not None:
                memory.content = updates.content
            if updates.content_type is not None:
                memory.content_type = updates.content_type
            if updates.tags is not None:
                memory.tags = list(updates.tags)
            if updates.importance is not None:
                memory.importance = updates.importance
            if updates.task_criticality is not None:
                memory.task_criticality = updates.task_criticality
            if updates.embedding is not None:
                memory.embedding = list(updates.embedding)

            memory.version += 1
            memory.provenance.append(ProvenanceEntry(
                action=ProvenanceAction.EDITED,
                actor_id=actor_id,
                timestamp=edited_at,
                reason=reason or "Memory edited",
                version=memory.version,
                previous_content=previous_content,
            ))
            await self._persist(memory, partition)

        logger.debug("Edited memory %s to version %d", memory_id, memory.version)
        await self._audit(
            memory.namespace, AuditAction.UPDATE, memory_id, actor_id,
            action_type="edit", new_version=memory.version, reason=reason,
        )
        return memory

    async def rollback(
        self, memory_id: str, target_version: int, actor_id: str,
    ) -> MemoryObject:
        """Restore content and metadata from an earlier version.

        The current state is snapshotted first, so a rollback can itself be
        rolled back. The version number keeps increasing.
        """
        async with self._locks.hold(memory_id):
            memory, partition = await self._locate(memory_id)
            if memory.is_deleted:
                raise InvalidTransitionError(f"Cannot rollback deleted memory {memory_id}")
            if not memory.previous_versions:
                raise VersionNotFoundError(
                    f"Memory {memory_id} has no previous versions to rollback to"
                )
            target = next(
                (v for v in memory.previous_versions if v.version == target_version), None,
            )
            if target is None:
                available = ", ".join(str(v.version) for v in memory.previous_versions)
                raise VersionNotFoundError(
                    f"Version {target_version} not found. Available versions: {available}"
                )

            reason = f"Rolled back to version {target_version}"
            rolled_back_at = to_iso(utc_now())
            memory.previous_versions.append(
                _snapshot(memory, rolled_back_at, actor_id, reason)
            )
            previous_content = memory.content

            memory.content = target.content
            memory.content_type = target.content_type
            memory.tags = list(target.tags)
            memory.importance = target.importance
            memory.task_criticality = target.task_criticality
            memory.version += 1

            memory.provenance.append(ProvenanceEntry(
                action=ProvenanceAction.ROLLED_BACK,
                actor_id=actor_id,
                timestamp=rolled_back_at,
                reason=reason,
                version=memory.version,
                previous_content=previous_content,
            ))
            await self._persist(memory, partition)

        logger.info(
            "Rolled back memory %s to version %d (now %d)",
            memory_id, target_version, memory.version,
        )
        await self._audit(
            memory.namespace, AuditAction.UPDATE, memory_id, actor_id,
            action_type="rollback", target_version=target_version,
            new_version=memory.version,
        )
        return memory

    # ── Delete / invalidate ──────────────────────────────────────

    async def delete(self, memory_id: str, actor_id: str, reason: str) -> MemoryObject:
        """Soft delete. Content and history are kept; deleted is terminal."""
        async with self._locks.hold(memory_id):
            memory, partition = await self._locate(memory_id)
            if memory.is_deleted:
                raise AlreadyInStateError(f"Memory {memory_id} is already deleted")

            memory.status = MemoryStatus.DELETED
            memory.provenance.append(ProvenanceEntry(
                action=ProvenanceAction.DELETED, actor_id=actor_id, reason=reason,
            ))
            await self._persist(memory, partition)

        logger.info(
            "Deleted memory %s", memory_id,
            extra={"memory_id": memory_id, "action": "delete", "actor_id": actor_id},
        )
        await self._audit(
            memory.namespace, AuditAction.DELETE, memory_id, actor_id,
            reason=reason, soft_delete=True,
        )
        return memory

    async def invalidate(self, memory_id: str, actor_id: str, reason: str) -> MemoryObject:
        """Mark a memory for retirement by the next :meth:`expire` sweep."""
        async with self._locks.hold(memory_id):
            memory, partition = await self._locate(memory_id)
            if memory.is_deleted:
                raise InvalidTransitionError(f"Cannot invalidate deleted memory {memory_id}")

            memory.ttl_seconds = 0
            memory.provenance.append(ProvenanceEntry(
                action=ProvenanceAction.INVALIDATED, actor_id=actor_id, reason=reason,
            ))
            await self._persist(memory, partition)

        await self._audit(
            memory.namespace, AuditAction.UPDATE, memory_id, actor_id,
            action_type="invalidate", reason=reason,
        )
        return memory

    # ── Quarantine / promote ─────────────────────────────────────

    async def quarantine(self, memory_id: str, actor_id: str, reason: str) -> MemoryObject:
        """Move an active memory into the quarantine partition."""
        async with self._locks.hold(memory_id):
            memory, partition = await self._locate(memory_id)
            if partition is _Partition.QUARANTINE or memory.status is MemoryStatus.QUARANTINED:
                raise AlreadyInStateError(f"Memory {memory_id} is already quarantined")
            if memory.is_deleted:
                raise InvalidTransitionError(f"Cannot quarantine deleted memory {memory_id}")

            memory.status = MemoryStatus.QUARANTINED
            memory.ingestion.quarantined = True
            memory.provenance.append(ProvenanceEntry(
                action=ProvenanceAction.QUARANTINED, actor_id=actor_id, reason=reason,
            ))
            await self._store.save_quarantined(memory)
            await self._store.delete_memory(memory_id)

        logger.info("Quarantined memory %s: %s", memory_id, reason)
        await self._audit(
            memory.namespace, AuditAction.UPDATE, memory_id, actor_id,
            action_type="quarantine", reason=reason,
        )
        return memory

    async def promote_quarantined(self, memory_id: str, actor_id: str) -> MemoryObject:
        """Move a quarantined memory back into primary retrieval."""
        async with self._locks.hold(memory_id):
            memory = await self._store.get_quarantined(memory_id)
            if memory is None:
                raise MemoryNotFoundError(f"Quarantined memory {memory_id} not found")
            if memory.is_deleted:
                raise InvalidTransitionError(f"Cannot promote deleted memory {memory_id}")

            memory.status = MemoryStatus.ACTIVE
            memory.ingestion.quarantined = False
            memory.provenance.append(ProvenanceEntry(
                action=ProvenanceAction.MODIFIED,
                actor_id=actor_id,
                reason="Promoted from quarantine",
            ))
            await self._store.save_memory(memory)
            await self._store.delete_quarantined(memory_id)

        logger.info("Promoted memory %s from quarantine", memory_id)
        await self._audit(
            memory.namespace, AuditAction.UPDATE, memory_id, actor_id,
            promoted_from_quarantine=True,
            confidence_score=memory.ingestion.confidence_score,
        )
        return memory

    # ── Merge ────────────────────────────────────────────────────

    async def merge(
        self,
        memory_ids: Sequence[str],
        merged_content: str,
        actor_id: str,
        options: MergeOptions | None = None,
    ) -> MergeResult:
        """Combine several memories into a new one and retire the sources.

        Retrying after a partial failure completes the merge: the merged
        memory's id is derived from the namespace and source ids, an
        existing merged memory is reused, and sources already deleted with
        ``Merged into <id>`` are skipped.
        """
        ids = list(dict.fromkeys(memory_ids))
        if len(ids) < 2:
            raise MergeInputError("At least 2 memories are required for merging")
        options = options or MergeOptions()

        first = await self._require_primary(ids[0])
        namespace = first.namespace
        merged_id = merged_memory_id(namespace, ids)

        async with self._locks.hold_many([*ids, merged_id]):
            sources = [await self._require_primary(i) for i in ids]
            for source in sources:
                if source.namespace != namespace:
                    raise NamespaceMismatchError(
                        "All memories must be in the same namespace to merge"
                    )

            merged, merged_partition = await self._find_merged(merged_id)
            for source in sources:
                if source.is_deleted and not (
                    merged is not None and _was_merged_into(source, merged_id)
                ):
                    raise InvalidTransitionError(
                        f"Cannot merge deleted memory {source.memory_id}"
                    )

            merged_at = to_iso(utc_now())
            created = merged is None
            if merged is None:
                merged = self._build_merged(
                    sources, ids, merged_id, merged_content, actor_id, options, merged_at,
                )
                merged_partition = (
                    _Partition.QUARANTINE if merged.status is MemoryStatus.QUARANTINED
                    else _Partition.PRIMARY
                )

            if not any(p.action is ProvenanceAction.MERGED for p in merged.provenance):
                merged.provenance.append(ProvenanceEntry(
                    action=ProvenanceAction.MERGED,
                    actor_id=actor_id,
                    timestamp=merged_at,
                    reason=f"Merged from {len(ids)} memories",
                    merged_from=tuple(ids),
                ))
            if created:
                await self._store_new(merged)
            else:
                await self._persist(merged, merged_partition)

            retired = 0
            for source in sources:
                if source.is_deleted:
                    continue
                source.status = MemoryStatus.DELETED
                source.provenance.append(ProvenanceEntry(
                    action=ProvenanceAction.DELETED,
                    actor_id=actor_id,
                    timestamp=merged_at,
                    reason=_merge_reason(merged_id),
                ))
                await self._store.update_memory(source)
                retired += 1

        if created:
            await self._audit(
                namespace, AuditAction.CREATE, merged_id, actor_id,
                quarantined=merged.ingestion.quarantined,
                confidence_score=merged.ingestion.confidence_score,
                anomaly_flags=list(merged.ingestion.anomaly_flags),
            )
        logger.info(
            "Merged %d memories into %s (%d retired on this attempt)",
            len(ids), merged_id, retired,
        )
        await self._audit(
            namespace, AuditAction.UPDATE, merged_id, actor_id,
            action_type="merge", merged_ids=ids, resumed=not created,
        )
        return MergeResult(merged_memory=merged, merged_ids=ids)

    async def _find_merged(
        self, merged_id: str,
    ) -> tuple[MemoryObject | None, _Partition | None]:
        try:
            return await self._locate(merged_id)
        except MemoryNotFoundError:
            return None, None

    def _build_merged(
        self,
        sources: list[MemoryObject],
        ids: list[str],
        merged_id: str,
        merged_content: str,
        actor_id: str,
        options: MergeOptions,
        merged_at: str,
    ) -> MemoryObject:
        tags = options.tags
        if tags is None:
            tags = list(dict.fromkeys(tag for source in sources for tag in source.tags))
        importance = options.importance
        if importance is None:
            importance = sum(s.importance for s in sources) / len(sources)
        criticality = options.task_criticality
        if criticality is None:
            criticality = sum(s.task_criticality for s in sources) / len(sources)

        return self._build(
            CreateMemoryInput(
                namespace=sources[0].namespace,
                content=merged_content,
                content_type="text",
                source=MemorySource(
                    type=SourceType.SYSTEM,
                    identifier=actor_id,
                    metadata={"merged_from": ids, "merge_timestamp": merged_at},
                ),
                tags=list(tags),
                importance=importance,
                task_criticality=criticality,
            ),
            merged_id,
        )

    # ── Access tracking ──────────────────────────────────────────

    async def record_access(
        self,
        memory_id: str,
        *,
        actor_id: str,
        checkpoint_id: str | None = None,
        session_id: str | None = None,
    ) -> MemoryObject:
        """Stamp a retrieval of a primary memory.

        A read from a session other than the memory's own counts once per
        distinct session toward ``cross_session_recall_count``.
        """
        async with self._locks.hold(memory_id):
            memory = await self._require_primary(memory_id)
            if memory.is_deleted:
                raise InvalidTransitionError(f"Cannot access deleted memory {memory_id}")

            accessed_at = to_iso(utc_now())
            memory.last_accessed_at = accessed_at
            if checkpoint_id is not None and checkpoint_id not in memory.checkpoint_refs:
                memory.checkpoint_refs.append(checkpoint_id)
            if (
                session_id is not None
                and memory.session_id is not None
                and session_id != memory.session_id
                and session_id not in memory.accessed_in_sessions
            ):
                memory.accessed_in_sessions.append(session_id)
                memory.cross_session_recall_count += 1

            memory.provenance.append(ProvenanceEntry(
                action=ProvenanceAction.ACCESSED,
                actor_id=actor_id,
                timestamp=accessed_at,
                checkpoint_id=checkpoint_id,
            ))
            await self._store.update_memory(memory)

        await self._audit(
            memory.namespace, AuditAction.READ, memory_id, actor_id,
            checkpoint_id=checkpoint_id, session_id=session_id,
        )
        return memory

    async def link_to_checkpoint(
        self, memory_id: str, checkpoint_id: str, actor_id: str,
    ) -> MemoryObject:
        async with self._locks.hold(memory_id):
            memory = await self._require_primary(memory_id)
            if memory.is_deleted:
                raise InvalidTransitionError(f"Cannot cite deleted memory {memory_id}")

            if checkpoint_id not in memory.checkpoint_refs:
                memory.checkpoint_refs.append(checkpoint_id)
            memory.provenance.append(ProvenanceEntry(
                action=ProvenanceAction.CITED,
                actor_id=actor_id,
                reason="Referenced in checkpoint",
                checkpoint_id=checkpoint_id,
            ))
            await self._store.update_memory(memory)

        await self._audit(
            memory.namespace, AuditAction.UPDATE, memory_id, actor_id,
            action_type="cite", checkpoint_id=checkpoint_id,
        )
        return memory

    # ── Expiry ───────────────────────────────────────────────────

    async def expire(
        self,
        namespace: Namespace,
        *,
        batch_size: int | None = None,
        now: datetime | None = None,
    ) -> ExpireResult:
        """Soft-delete every active memory whose TTL has run out.

        The namespace is scanned oldest first in pages of ``batch_size``.
        Each candidate is re-read under its lock before being retired.
        Raises :class:`ValueError` for a non-positive ``batch_size``.
        """
        if batch_size is None:
            batch_size = self._config.expire_batch_size
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        now = now or utc_now()
        expired_ids: list[str] = []
        offset = 0

        while True:
            page = await self._store.list_memories(namespace, ListMemoryOptions(
                status=MemoryStatus.ACTIVE,
                include_expired=True,
                limit=batch_size,
                offset=offset,
                order="asc",
            ))
            retired_in_page = 0
            for candidate in page:
                if not candidate.is_expired(now):
                    continue
                if await self._expire_one(candidate.memory_id, now):
                    expired_ids.append(candidate.memory_id)
                    retired_in_page += 1

            logger.debug(
                "Expiry sweep of %s: page at offset %d, %d of %d retired",
                namespace.key, offset, retired_in_page, len(page),
            )
            if len(page) < batch_size:
                break
            # Retired memories drop out of the active listing.
            offset += len(page) - retired_in_page

        if expired_ids:
            logger.info("Expired %d memories in %s", len(expired_ids), namespace.key)
            await self._audit(
                namespace, AuditAction.DELETE, f"batch:{len(expired_ids)}", SYSTEM_ACTOR,
                action_type="expire",
                expired_count=len(expired_ids),
                expired_ids=list(expired_ids),
            )
        return ExpireResult(expired_count=len(expired_ids), expired_ids=expired_ids)

    async def _expire_one(self, memory_id: str, now: datetime) -> bool:
        async with self._locks.hold(memory_id):
            memory = await self._store.get_memory(memory_id)
            if memory is None or memory.status is not MemoryStatus.ACTIVE:
                return False
            if not memory.is_expired(now):
                return False
            memory.status = MemoryStatus.DELETED
            memory.provenance.append(ProvenanceEntry(
                action=ProvenanceAction.EXPIRED,
                actor_id=SYSTEM_ACTOR,
                timestamp=to_iso(now),
                reason="TTL expired",
            ))
            await self._store.update_memory(memory)
            return True


def _was_merged_into(memory: MemoryObject, merged_id: str) -> bool:
    reason = _merge_reason(merged_id)
    return any(
        p.action is ProvenanceAction.DELETED and p.reason == reason
        for p in memory.provenance
    )
