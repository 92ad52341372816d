from __future__ import annotations

import json
import uuid
from typing import TYPE_CHECKING

from memlane_core.logging import get_logger
from memlane_core.types import AuditEntry, MemoryObject, MemoryStatus

from memlane_runtime.backends._search import apply_list_options, search
from memlane_runtime.backends.sqlite._db import get_connection

if TYPE_CHECKING:
    import aiosqlite
    from memlane_core.types import (
        ListMemoryOptions,
        MemoryQuery,
        MemoryResult,
        Namespace,
        ProvenanceEntry,
    )

logger = get_logger("backend.sqlite.memory_store")

_MEMORY_COLUMNS = """
    memory_id TEXT PRIMARY KEY,
    namespace_key TEXT NOT NULL,
    status TEXT NOT NULL,
    created_at TEXT NOT NULL,
    session_id TEXT,
    data TEXT NOT NULL
"""

_CREATE_TABLES = f"""
CREATE TABLE IF NOT EXISTS memories ({_MEMORY_COLUMNS});
CREATE INDEX IF NOT EXISTS idx_memories_ns ON memories(namespace_key, status);

CREATE TABLE IF NOT EXISTS quarantined_memories ({_MEMORY_COLUMNS});
CREATE INDEX IF NOT EXISTS idx_quarantined_ns ON quarantined_memories(namespace_key);

CREATE TABLE IF NOT EXISTS audit_log (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    namespace_key TEXT NOT NULL,
    action TEXT NOT NULL,
    resource_id TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    data TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_audit_ns ON audit_log(namespace_key, seq);
"""

_PRIMARY = "memories"
_QUARANTINE = "quarantined_memories"


class SQLiteMemoryStore:
    """T1 memory store: memories as JSON documents in SQLite tables.

    Namespace and status are indexed columns used to narrow reads; all
    other filters run in Python over the decoded documents.
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    @classmethod
    async def create(cls, db_path: str, *, wal: bool = True) -> SQLiteMemoryStore:
        conn = await get_connection(db_path, wal=wal)
        await conn.executescript(_CREATE_TABLES)
        await conn.commit()
        logger.debug("Opened SQLite memory store at %s", db_path)
        return cls(conn)

    async def close(self) -> None:
        await self._conn.close()

    # ── Row helpers ──────────────────────────────────────────────

    async def _upsert(self, table: str, memory: MemoryObject) -> None:
        await self._conn.execute(
            f"""INSERT INTO {table}
                   (memory_id, namespace_key, status, created_at, session_id, data)
               VALUES (?, ?, ?, ?, ?, ?)
               ON CONFLICT(memory_id) DO UPDATE SET
                   namespace_key = excluded.namespace_key,
                   status = excluded.status,
                   created_at = excluded.created_at,
                   session_id = excluded.session_id,
                   data = excluded.data""",
            (
                memory.memory_id,
                memory.namespace.key,
                memory.status.value,
                memory.created_at,
                memory.session_id,
                json.dumps(memory.to_dict()),
            ),
        )
        await self._conn.commit()

    async def _get(self, table: str, memory_id: str) -> MemoryObject | None:
        async with self._conn.execute(
            f"SELECT data FROM {table} WHERE memory_id = ?", (memory_id,),
        ) as cursor:
            row = await cursor.fetchone()
        return MemoryObject.from_dict(json.loads(row["data"])) if row else None

    async def _delete(self, table: str, memory_id: str) -> None:
        await self._conn.execute(f"DELETE FROM {table} WHERE memory_id = ?", (memory_id,))
        await self._conn.commit()

    async def _select(
        self, table: str, namespace_key: str, status: MemoryStatus | None = None,
    ) -> list[MemoryObject]:
        sql = f"SELECT data FROM {table} WHERE namespace_key = ?"
        params: tuple[str, ...] = (namespace_key,)
        if status is not None:
            sql += " AND status = ?"
            params += (status.value,)
        async with self._conn.execute(sql, params) as cursor:
            rows = await cursor.fetchall()
        return [MemoryObject.from_dict(json.loads(row["data"])) for row in rows]

    # ── Primary partition ────────────────────────────────────────

    async def save_memory(self, memory: MemoryObject) -> None:
        await self._upsert(_PRIMARY, memory)

    async def get_memory(self, memory_id: str) -> MemoryObject | None:
        return await self._get(_PRIMARY, memory_id)

    async def update_memory(self, memory: MemoryObject) -> None:
        await self._upsert(_PRIMARY, memory)

    async def delete_memory(self, memory_id: str) -> None:
        await self._delete(_PRIMARY, memory_id)

    async def list_memories(
        self, namespace: Namespace, options: ListMemoryOptions | None = None,
    ) -> list[MemoryObject]:
        status = options.status if options is not None else None
        rows = await self._select(_PRIMARY, namespace.key, status)
        return apply_list_options(rows, options)

    async def search_memories(self, query: MemoryQuery) -> list[MemoryResult]:
        rows = await self._select(_PRIMARY, query.namespace.key, MemoryStatus.ACTIVE)
        return search(rows, query)

    # ── Quarantine partition ─────────────────────────────────────

    async def save_quarantined(self, memory: MemoryObject) -> None:
        await self._upsert(_QUARANTINE, memory)

    async def get_quarantined(self, memory_id: str) -> MemoryObject | None:
        return await self._get(_QUARANTINE, memory_id)

    async def list_quarantined(
        self, namespace: Namespace, options: ListMemoryOptions | None = None,
    ) -> list[MemoryObject]:
        status = options.status if options is not None else None
        rows = await self._select(_QUARANTINE, namespace.key, status)
        return apply_list_options(rows, options)

    async def delete_quarantined(self, memory_id: str) -> None:
        await self._delete(_QUARANTINE, memory_id)

    # ── Audit ────────────────────────────────────────────────────

    async def log_audit(self, entry: AuditEntry) -> None:
        entry_id = entry.id or uuid.uuid4().hex
        data = entry.to_dict()
        data["id"] = entry_id
        await self._conn.execute(
            """INSERT INTO audit_log
                   (id, namespace_key, action, resource_id, timestamp, data)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (
                entry_id,
                entry.namespace.key,
                entry.action.value,
                entry.resource_id,
                entry.timestamp,
                json.dumps(data),
            ),
        )
        await self._conn.commit()

    async def get_audit_log(
        self, namespace: Namespace, *, limit: int = 100, offset: int = 0, order: str = "desc",
    ) -> list[AuditEntry]:
        direction = "ASC" if order == "asc" else "DESC"
        async with self._conn.execute(
            f"SELECT data FROM audit_log WHERE namespace_key = ?"
            f" ORDER BY seq {direction} LIMIT ? OFFSET ?",
            (namespace.key, limit, offset),
        ) as cursor:
            rows = await cursor.fetchall()
        return [AuditEntry.from_dict(json.loads(row["data"])) for row in rows]

    async def get_memory_audit_log(self, memory_id: str) -> list[ProvenanceEntry]:
        memory = await self.get_memory(memory_id) or await self.get_quarantined(memory_id)
        if memory is None:
            return []
        return list(memory.provenance)
