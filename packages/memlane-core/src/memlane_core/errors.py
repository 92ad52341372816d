from __future__ import annotations


class MemlaneError(Exception):
    """Base exception for all Memlane errors."""


# ── Runtime Errors ───────────────────────────────────────────────────

class BackendError(MemlaneError):
    """Error from a memory store backend."""


class BackendUnavailableError(BackendError):
    """Backend is not reachable or not configured."""


# ── Config Errors ────────────────────────────────────────────────────

class ConfigError(MemlaneError):
    """Invalid or missing configuration."""


# ── Lifecycle Errors ─────────────────────────────────────────────────

class MemoryLifecycleError(MemlaneError):
    """Base for memory lifecycle errors."""


class MemoryNotFoundError(MemoryLifecycleError):
    """Memory (or quarantine entry) does not exist."""


class AlreadyInStateError(MemoryLifecycleError):
    """Memory is already deleted or quarantined."""


class InvalidTransitionError(MemoryLifecycleError):
    """Requested transition is not allowed from the memory's status."""


class ValidationRejectedError(MemoryLifecycleError):
    """Content was rejected by the validation layer at creation."""


class VersionNotFoundError(MemoryLifecycleError):
    """Rollback target is not present in the version history."""


class NamespaceMismatchError(MemoryLifecycleError):
    """Memories from different namespaces cannot be combined."""


class MergeInputError(MemoryLifecycleError):
    """Merge needs at least two source memories."""
