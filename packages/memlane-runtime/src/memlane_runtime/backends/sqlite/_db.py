from __future__ import annotations

from pathlib import Path

import aiosqlite


async def get_connection(db_path: str, *, wal: bool = True) -> aiosqlite.Connection:
    """Open a SQLite connection, creating the parent directory if needed.

    ``:memory:`` opens a private in-memory database.
    """
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = await aiosqlite.connect(db_path)
    if wal and db_path != ":memory:":
        await conn.execute("PRAGMA journal_mode=WAL")
        await conn.execute("PRAGMA synchronous=NORMAL")
    await conn.execute("PRAGMA busy_timeout=5000")
    conn.row_factory = aiosqlite.Row
    return conn
