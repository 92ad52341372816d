from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from memlane_core.logging import get_logger
from memlane_core.types import ListMemoryOptions, MemoryStatus, parse_timestamp

from memlane_engine.drift import DriftMetrics, calculate_drift_metrics

if TYPE_CHECKING:
    from memlane_core.config import DriftConfig
    from memlane_core.types import MemoryObject, Namespace
    from memlane_runtime.protocols.memory_store import MemoryStore

    from memlane_engine.recall import MemorySearchResponse

logger = get_logger("engine.sessions")

DEFAULT_SESSION = "default"

_UNKNOWN_TIME = datetime.min.replace(tzinfo=UTC)

_ACTIVE = ListMemoryOptions(status=MemoryStatus.ACTIVE, order="asc")


@dataclass(slots=True)
class SessionHistoryEntry:
    session_id: str
    namespace_key: str
    started_at: str
    last_activity_at: str
    memory_ids: list[str] = field(default_factory=list)
    memory_count: int = 0
    cross_session_recalls: int = 0


@dataclass(frozen=True, slots=True)
class DriftCheck:
    session_id: str
    alert: bool
    metrics: DriftMetrics


@dataclass(frozen=True, slots=True)
class CrossSessionStats:
    """Cross-session recall figures for one namespace.

    ``attempts`` and ``successes`` count searches observed through
    :meth:`SessionTracker.record_search`; the remaining fields are derived
    from the stored memories.
    """
    namespace_key: str
    attempts: int
    successes: int
    session_count: int
    recalled_memories: int
    total_recalls: int

    @property
    def success_percent(self) -> float:
        return self.successes / self.attempts * 100 if self.attempts else 100.0


def _stamp_key(value: str) -> datetime:
    return parse_timestamp(value) or _UNKNOWN_TIME


class SessionTracker:
    """Group a namespace's active memories by originating session.

    All session state is derived from the store on demand. The only state
    held here is the per-namespace search counters fed by
    :meth:`record_search`, owned by this tracker instance.
    """

    def __init__(self, store: MemoryStore) -> None:
        self._store = store
        self._attempts: dict[str, int] = {}
        self._successes: dict[str, int] = {}

    async def _active(self, namespace: Namespace) -> list[MemoryObject]:
        return await self._store.list_memories(namespace, _ACTIVE)

    async def session_history(self, namespace: Namespace) -> list[SessionHistoryEntry]:
        """Sessions with their memories, newest session start first.

        Memories without a session are grouped under ``"default"``.
        """
        sessions: dict[str, SessionHistoryEntry] = {}
        for memory in await self._active(namespace):
            session_id = memory.session_id or DEFAULT_SESSION
            entry = sessions.get(session_id)
            if entry is None:
                entry = sessions[session_id] = SessionHistoryEntry(
                    session_id=session_id,
                    namespace_key=namespace.key,
                    started_at=memory.created_at,
                    last_activity_at=memory.created_at,
                )
            entry.memory_ids.append(memory.memory_id)
            entry.memory_count += 1
            entry.cross_session_recalls += memory.cross_session_recall_count
            if _stamp_key(memory.created_at) < _stamp_key(entry.started_at):
                entry.started_at = memory.created_at
            if _stamp_key(memory.created_at) > _stamp_key(entry.last_activity_at):
                entry.last_activity_at = memory.created_at

        return sorted(
            sessions.values(), key=lambda e: _stamp_key(e.started_at), reverse=True,
        )

    async def session_memories(
        self, namespace: Namespace, session_id: str,
    ) -> list[MemoryObject]:
        return [m for m in await self._active(namespace) if m.session_id == session_id]

    async def drift_score(
        self,
        namespace: Namespace,
        session_id: str,
        thresholds: DriftConfig | None = None,
    ) -> DriftMetrics:
        memories = await self.session_memories(namespace, session_id)
        return calculate_drift_metrics(memories, thresholds)

    async def check_drift(
        self,
        namespace: Namespace,
        session_id: str,
        thresholds: DriftConfig | None = None,
    ) -> DriftCheck:
        metrics = await self.drift_score(namespace, session_id, thresholds)
        if metrics.drift_detected:
            logger.warning(
                "Topic drift detected in session %s (%s): score=%.2f coherence=%.2f",
                session_id, namespace.key, metrics.drift_score, metrics.coherence_score,
            )
        return DriftCheck(session_id=session_id, alert=metrics.drift_detected, metrics=metrics)

    def record_search(self, namespace: Namespace, response: MemorySearchResponse) -> None:
        """Count a search toward the namespace's cross-session recall rate."""
        if not response.cross_session_attempted:
            return
        key = namespace.key
        self._attempts[key] = self._attempts.get(key, 0) + 1
        if response.cross_session_success:
            self._successes[key] = self._successes.get(key, 0) + 1

    async def cross_session_stats(self, namespace: Namespace) -> CrossSessionStats:
        memories = await self._active(namespace)
        sessions = {m.session_id or DEFAULT_SESSION for m in memories}
        return CrossSessionStats(
            namespace_key=namespace.key,
            attempts=self._attempts.get(namespace.key, 0),
            successes=self._successes.get(namespace.key, 0),
            session_count=len(sessions),
            recalled_memories=sum(1 for m in memories if m.cross_session_recall_count > 0),
            total_recalls=sum(m.cross_session_recall_count for m in memories),
        )
