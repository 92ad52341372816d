from __future__ import annotations

import copy
import enum
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

# ── Timestamps ───────────────────────────────────────────────────────


def utc_now() -> datetime:
    return datetime.now(UTC)


def to_iso(moment: datetime) -> str:
    """Render an aware datetime as ISO-8601 UTC with a ``Z`` suffix."""
    return moment.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utc_now_iso() -> str:
    return to_iso(utc_now())


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC.

    Returns None for missing or unparseable input instead of raising.
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


# ── Namespace ────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class Namespace:
    """Partition key scoping every memory operation."""
    org_id: str
    app_id: str
    agent_id: str
    user_id: str | None = None

    @property
    def key(self) -> str:
        parts = [self.org_id, self.app_id, self.agent_id]
        if self.user_id:
            parts.append(self.user_id)
        return ":".join(parts)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "org_id": self.org_id,
            "app_id": self.app_id,
            "agent_id": self.agent_id,
        }
        if self.user_id:
            data["user_id"] = self.user_id
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Namespace:
        return cls(
            org_id=data["org_id"],
            app_id=data["app_id"],
            agent_id=data["agent_id"],
            user_id=data.get("user_id"),
        )


def namespace_key(namespace: Namespace) -> str:
    return namespace.key


# ── Sources & Ingestion ──────────────────────────────────────────────

class SourceType(enum.Enum):
    USER_INPUT = "user_input"
    TOOL_OUTPUT = "tool_output"
    WEB_SCRAPE = "web_scrape"
    AGENT_INFERENCE = "agent_inference"
    EXTERNAL = "external"
    SYSTEM = "system"


class ContentFormat(enum.Enum):
    TEXT = "text"
    JSON = "json"
    HTML = "html"
    MARKDOWN = "markdown"


@dataclass(frozen=True, slots=True)
class MemorySource:
    """Where a memory came from."""
    type: SourceType
    identifier: str
    timestamp: str = field(default_factory=utc_now_iso)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "identifier": self.identifier,
            "timestamp": self.timestamp,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MemorySource:
        return cls(
            type=SourceType(data["type"]),
            identifier=data["identifier"],
            timestamp=data.get("timestamp", ""),
            metadata=data.get("metadata", {}),
        )


@dataclass(slots=True)
class IngestionMetadata:
    """Validation verdict captured once at creation time."""
    source_type: SourceType
    source_id: str
    ingestion_timestamp: str
    confidence_score: float
    detected_format: ContentFormat = ContentFormat.TEXT
    anomaly_flags: list[str] = field(default_factory=list)
    quarantined: bool = False
    validation_notes: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_type": self.source_type.value,
            "source_id": self.source_id,
            "ingestion_timestamp": self.ingestion_timestamp,
            "confidence_score": self.confidence_score,
            "detected_format": self.detected_format.value,
            "anomaly_flags": list(self.anomaly_flags),
            "quarantined": self.quarantined,
            "validation_notes": list(self.validation_notes),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IngestionMetadata:
        return cls(
            source_type=SourceType(data["source_type"]),
            source_id=data["source_id"],
            ingestion_timestamp=data["ingestion_timestamp"],
            confidence_score=data["confidence_score"],
            detected_format=ContentFormat(data.get("detected_format", "text")),
            anomaly_flags=list(data.get("anomaly_flags", [])),
            quarantined=data.get("quarantined", False),
            validation_notes=list(data.get("validation_notes", [])),
        )


# ── Provenance & Versions ────────────────────────────────────────────

class ProvenanceAction(enum.Enum):
    CREATED = "created"
    ACCESSED = "accessed"
    MODIFIED = "modified"
    CITED = "cited"
    INVALIDATED = "invalidated"
    EDITED = "edited"
    DELETED = "deleted"
    MERGED = "merged"
    QUARANTINED = "quarantined"
    ROLLED_BACK = "rolled_back"
    EXPIRED = "expired"


@dataclass(frozen=True, slots=True)
class ProvenanceEntry:
    """One immutable audit record of a lifecycle action."""
    action: ProvenanceAction
    actor_id: str
    timestamp: str = field(default_factory=utc_now_iso)
    reason: str | None = None
    version: int | None = None
    merged_from: tuple[str, ...] | None = None
    previous_content: str | None = None
    checkpoint_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "action": self.action.value,
            "actor_id": self.actor_id,
            "timestamp": self.timestamp,
        }
        if self.reason is not None:
            data["reason"] = self.reason
        if self.version is not None:
            data["version"] = self.version
        if self.merged_from is not None:
            data["merged_from"] = list(self.merged_from)
        if self.previous_content is not None:
            data["previous_content"] = self.previous_content
        if self.checkpoint_id is not None:
            data["checkpoint_id"] = self.checkpoint_id
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProvenanceEntry:
        merged_from = data.get("merged_from")
        return cls(
            action=ProvenanceAction(data["action"]),
            actor_id=data["actor_id"],
            timestamp=data["timestamp"],
            reason=data.get("reason"),
            version=data.get("version"),
            merged_from=tuple(merged_from) if merged_from is not None else None,
            previous_content=data.get("previous_content"),
            checkpoint_id=data.get("checkpoint_id"),
        )


@dataclass(frozen=True, slots=True)
class MemoryVersion:
    """Snapshot of a memory taken just before it was superseded."""
    version: int
    content: str
    content_type: str
    tags: tuple[str, ...]
    importance: float
    task_criticality: float
    superseded_at: str
    superseded_by: str
    change_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "version": self.version,
            "content": self.content,
            "content_type": self.content_type,
            "tags": list(self.tags),
            "importance": self.importance,
            "task_criticality": self.task_criticality,
            "superseded_at": self.superseded_at,
            "superseded_by": self.superseded_by,
        }
        if self.change_reason is not None:
            data["change_reason"] = self.change_reason
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MemoryVersion:
        return cls(
            version=data["version"],
            content=data["content"],
            content_type=data["content_type"],
            tags=tuple(data.get("tags", [])),
            importance=data["importance"],
            task_criticality=data["task_criticality"],
            superseded_at=data["superseded_at"],
            superseded_by=data["superseded_by"],
            change_reason=data.get("change_reason"),
        )


# ── Memory Object ────────────────────────────────────────────────────

class MemoryStatus(enum.Enum):
    ACTIVE = "active"
    QUARANTINED = "quarantined"
    DELETED = "deleted"


@dataclass(slots=True)
class MemoryObject:
    """A versioned, provenance-tracked memory fact.

    Only the lifecycle manager mutates these; stores persist what they
    are handed and return independent copies.
    """
    memory_id: str
    namespace: Namespace
    content: str
    content_type: str
    source: MemorySource
    ingestion: IngestionMetadata
    provenance: list[ProvenanceEntry] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    importance: float = 0.5
    task_criticality: float = 0.5
    embedding: list[float] | None = None
    created_at: str = field(default_factory=utc_now_iso)
    last_accessed_at: str | None = None
    ttl_seconds: int | None = None
    expires_at: str | None = None
    checkpoint_refs: list[str] = field(default_factory=list)
    version: int = 1
    previous_versions: list[MemoryVersion] = field(default_factory=list)
    status: MemoryStatus = MemoryStatus.ACTIVE
    session_id: str | None = None
    accessed_in_sessions: list[str] = field(default_factory=list)
    cross_session_recall_count: int = 0

    @property
    def is_deleted(self) -> bool:
        return self.status is MemoryStatus.DELETED

    def is_expired(self, now: datetime | None = None) -> bool:
        """Whether TTL policy says this memory should be retired.

        ``ttl_seconds == 0`` means expire immediately, ``None`` means no
        TTL. An ``expires_at`` in the past also expires the memory.
        """
        now = now or utc_now()
        expires_at = parse_timestamp(self.expires_at)
        if expires_at is not None and expires_at <= now:
            return True
        if self.ttl_seconds is None:
            return False
        if self.ttl_seconds == 0:
            return True
        created = parse_timestamp(self.created_at)
        if created is None:
            return False
        return now >= created + timedelta(seconds=self.ttl_seconds)

    def copy(self) -> MemoryObject:
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a dictionary for JSON serialization."""
        return {
            "memory_id": self.memory_id,
            "namespace": self.namespace.to_dict(),
            "content": self.content,
            "content_type": self.content_type,
            "source": self.source.to_dict(),
            "ingestion": self.ingestion.to_dict(),
            "provenance": [p.to_dict() for p in self.provenance],
            "tags": list(self.tags),
            "importance": self.importance,
            "task_criticality": self.task_criticality,
            "embedding": self.embedding,
            "created_at": self.created_at,
            "last_accessed_at": self.last_accessed_at,
            "ttl_seconds": self.ttl_seconds,
            "expires_at": self.expires_at,
            "checkpoint_refs": list(self.checkpoint_refs),
            "version": self.version,
            "previous_versions": [v.to_dict() for v in self.previous_versions],
            "status": self.status.value,
            "session_id": self.session_id,
            "accessed_in_sessions": list(self.accessed_in_sessions),
            "cross_session_recall_count": self.cross_session_recall_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MemoryObject:
        """Create a MemoryObject from a dictionary."""
        return cls(
            memory_id=data["memory_id"],
            namespace=Namespace.from_dict(data["namespace"]),
            content=data["content"],
            content_type=data.get("content_type", "text"),
            source=MemorySource.from_dict(data["source"]),
            ingestion=IngestionMetadata.from_dict(data["ingestion"]),
            provenance=[ProvenanceEntry.from_dict(p) for p in data.get("provenance", [])],
            tags=list(data.get("tags", [])),
            importance=data.get("importance", 0.5),
            task_criticality=data.get("task_criticality", 0.5),
            embedding=data.get("embedding"),
            created_at=data["created_at"],
            last_accessed_at=data.get("last_accessed_at"),
            ttl_seconds=data.get("ttl_seconds"),
            expires_at=data.get("expires_at"),
            checkpoint_refs=list(data.get("checkpoint_refs", [])),
            version=data.get("version", 1),
            previous_versions=[
                MemoryVersion.from_dict(v) for v in data.get("previous_versions", [])
            ],
            status=MemoryStatus(data.get("status", "active")),
            session_id=data.get("session_id"),
            accessed_in_sessions=list(data.get("accessed_in_sessions", [])),
            cross_session_recall_count=data.get("cross_session_recall_count", 0),
        )


# ── Retrieval Types ──────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class RankingWeights:
    """Weights of the composite ranking formula."""
    task_criticality: float = 0.45
    semantic_similarity: float = 0.25
    importance: float = 0.20
    recency_decay: float = 0.10


DEFAULT_RANKING_WEIGHTS = RankingWeights()


@dataclass(frozen=True, slots=True)
class ScoreComponents:
    """Weighted contribution of each ranking signal."""
    task_criticality: float
    semantic_similarity: float
    importance: float
    recency: float


@dataclass(frozen=True, slots=True)
class MemoryQuery:
    """Parameters for ranked memory retrieval.

    Attributes:
        namespace: Partition to search.
        query: Free-text query; enables semantic similarity scoring.
        tags: Required tags (AND logic).
        source_types: Allowed source types (OR logic).
        min_importance: Drop memories below this importance.
        min_semantic_similarity: Drop results below this similarity.
        max_age_seconds: Drop memories whose effective age exceeds this.
        limit: Maximum number of results (None for all).
        include_content: Whether results carry the memory content.
        ranking_weights: Override of the default ranking weights.
        session_id: Restrict to memories created in this session.
        include_cross_session: Allow memories from other sessions.
        current_session_id: Session issuing the query.
        semantic_scores: Externally computed similarity per memory id.
        query_embedding: Query vector, compared against memory embeddings.
    """
    namespace: Namespace
    query: str | None = None
    tags: tuple[str, ...] = ()
    source_types: tuple[SourceType, ...] = ()
    min_importance: float | None = None
    min_semantic_similarity: float | None = None
    max_age_seconds: float | None = None
    limit: int | None = 10
    include_content: bool = True
    ranking_weights: RankingWeights | None = None
    session_id: str | None = None
    include_cross_session: bool = True
    current_session_id: str | None = None
    semantic_scores: dict[str, float] | None = None
    query_embedding: tuple[float, ...] | None = None


@dataclass(frozen=True, slots=True)
class MemoryResult:
    """A ranked memory, optionally annotated with staleness metrics."""
    memory_id: str
    score: float
    score_components: ScoreComponents
    semantic_similarity: float
    tags: tuple[str, ...]
    source: MemorySource
    provenance: tuple[ProvenanceEntry, ...]
    created_at: str
    last_accessed_at: str | None = None
    content: str | None = None
    session_id: str | None = None
    staleness_score: float | None = None
    is_stale: bool | None = None
    age_hours: float | None = None
    age_days: float | None = None
    stale_reason: str | None = None
    time_until_stale_hours: float | None = None


@dataclass(frozen=True, slots=True)
class ListMemoryOptions:
    status: MemoryStatus | None = None
    include_expired: bool = False
    limit: int | None = None
    offset: int = 0
    order: str = "desc"  # "asc" | "desc" by created_at


# ── Audit Types ──────────────────────────────────────────────────────

class AuditAction(enum.Enum):
    CREATE = "create"
    READ = "read"
    RESTORE = "restore"
    SEARCH = "search"
    DELETE = "delete"
    UPDATE = "update"


@dataclass(frozen=True, slots=True)
class AuditEntry:
    """Store-level access/mutation record, separate from provenance."""
    namespace: Namespace
    action: AuditAction
    resource_type: str
    resource_id: str
    actor_id: str
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str = ""
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "namespace": self.namespace.to_dict(),
            "action": self.action.value,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "actor_id": self.actor_id,
            "metadata": self.metadata,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AuditEntry:
        return cls(
            namespace=Namespace.from_dict(data["namespace"]),
            action=AuditAction(data["action"]),
            resource_type=data["resource_type"],
            resource_id=data["resource_id"],
            actor_id=data["actor_id"],
            metadata=data.get("metadata", {}),
            id=data.get("id", ""),
            timestamp=data["timestamp"],
        )
