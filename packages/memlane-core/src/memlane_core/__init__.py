"""Memlane Core: shared types, config, errors, and logging."""
from __future__ import annotations

from memlane_core._version import __version__
from memlane_core.config import (
    BackendConfig,
    DriftConfig,
    FreshnessSLOConfig,
    LifecycleConfig,
    MemlaneConfig,
    RankingConfig,
    SLOConfig,
    ValidationConfig,
)
from memlane_core.errors import (
    AlreadyInStateError,
    BackendError,
    BackendUnavailableError,
    ConfigError,
    InvalidTransitionError,
    MemlaneError,
    MemoryLifecycleError,
    MemoryNotFoundError,
    MergeInputError,
    NamespaceMismatchError,
    ValidationRejectedError,
    VersionNotFoundError,
)
from memlane_core.logging import get_logger, setup_logging
from memlane_core.types import (
    DEFAULT_RANKING_WEIGHTS,
    AuditAction,
    AuditEntry,
    ContentFormat,
    IngestionMetadata,
    ListMemoryOptions,
    MemoryObject,
    MemoryQuery,
    MemoryResult,
    MemorySource,
    MemoryStatus,
    MemoryVersion,
    Namespace,
    ProvenanceAction,
    ProvenanceEntry,
    RankingWeights,
    ScoreComponents,
    SourceType,
    namespace_key,
)

__all__ = [
    "DEFAULT_RANKING_WEIGHTS",
    # Errors
    "AlreadyInStateError",
    # Types
    "AuditAction",
    "AuditEntry",
    # Config
    "BackendConfig",
    "BackendError",
    "BackendUnavailableError",
    "ConfigError",
    "ContentFormat",
    "DriftConfig",
    "FreshnessSLOConfig",
    "IngestionMetadata",
    "InvalidTransitionError",
    "LifecycleConfig",
    "ListMemoryOptions",
    "MemlaneConfig",
    "MemlaneError",
    "MemoryLifecycleError",
    "MemoryNotFoundError",
    "MemoryObject",
    "MemoryQuery",
    "MemoryResult",
    "MemorySource",
    "MemoryStatus",
    "MemoryVersion",
    "MergeInputError",
    "Namespace",
    "NamespaceMismatchError",
    "ProvenanceAction",
    "ProvenanceEntry",
    "RankingConfig",
    "RankingWeights",
    "SLOConfig",
    "ScoreComponents",
    "SourceType",
    "ValidationConfig",
    "ValidationRejectedError",
    "VersionNotFoundError",
    # Version
    "__version__",
    # Logging
    "get_logger",
    "namespace_key",
    "setup_logging",
]
