"""Filtering shared by every backend.

Backends narrow candidates by namespace (and, where they can, by status)
at the storage layer; everything else is evaluated here so search and
listing behave identically across tiers.
"""
from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from memlane_core.ranking import rank_memories
from memlane_core.types import (
    ListMemoryOptions,
    MemoryStatus,
    parse_timestamp,
    utc_now,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from memlane_core.types import MemoryObject, MemoryQuery, MemoryResult

_EPOCH = datetime.fromtimestamp(0, UTC)


def matches_query(memory: MemoryObject, query: MemoryQuery, *, now: datetime) -> bool:
    """Apply every non-similarity filter of a query to one memory."""
    if memory.namespace.key != query.namespace.key:
        return False
    if memory.status is not MemoryStatus.ACTIVE or memory.is_expired(now):
        return False
    if query.tags and not all(tag in memory.tags for tag in query.tags):
        return False
    if query.source_types and memory.source.type not in query.source_types:
        return False
    if query.min_importance is not None and memory.importance < query.min_importance:
        return False

    if query.max_age_seconds is not None:
        stamps = [
            t for t in (
                parse_timestamp(memory.created_at),
                parse_timestamp(memory.last_accessed_at),
            ) if t is not None
        ]
        if not stamps:
            return False
        if (now - max(stamps)).total_seconds() > query.max_age_seconds:
            return False

    if query.session_id is not None:
        return memory.session_id == query.session_id
    if not query.include_cross_session and query.current_session_id is not None:
        return memory.session_id == query.current_session_id
    return True


def search(
    memories: Iterable[MemoryObject],
    query: MemoryQuery,
    *,
    now: datetime | None = None,
) -> list[MemoryResult]:
    now = now or utc_now()
    candidates = [m for m in memories if matches_query(m, query, now=now)]
    return rank_memories(candidates, query, now=now)


def _created_key(memory: MemoryObject) -> datetime:
    return parse_timestamp(memory.created_at) or _EPOCH


def apply_list_options(
    memories: Iterable[MemoryObject],
    options: ListMemoryOptions | None = None,
    *,
    now: datetime | None = None,
) -> list[MemoryObject]:
    """Filter by status and expiry, order by creation time, then page."""
    options = options or ListMemoryOptions()
    now = now or utc_now()

    selected = [
        m for m in memories
        if (options.status is None or m.status is options.status)
        and (options.include_expired or not m.is_expired(now))
    ]
    selected.sort(key=_created_key, reverse=options.order != "asc")

    end = None if options.limit is None else options.offset + options.limit
    return selected[options.offset:end]
