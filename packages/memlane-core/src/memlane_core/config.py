from __future__ import annotations

import re
import tomllib
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from memlane_core.errors import ConfigError
from memlane_core.logging import get_logger
from memlane_core.types import RankingWeights

logger = get_logger("config")


def _load_toml(path: Path) -> dict:
    """Load a TOML file, returning empty dict if missing or unreadable."""
    if not path.exists():
        return {}
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError):
        logger.warning("Ignoring unreadable config file %s", path, exc_info=True)
        return {}


def _deep_merge(base: dict, override: dict) -> dict:
    """Merge override into base, recursing into nested tables."""
    merged = dict(base)
    for key, val in override.items():
        if (
            key in merged
            and isinstance(merged[key], dict)
            and isinstance(val, dict)
        ):
            merged[key] = _deep_merge(merged[key], val)
        else:
            merged[key] = val
    return merged


def _pick(section: dict, dc: type) -> dict:
    if not isinstance(section, dict):
        raise ConfigError(f"Expected a table for {dc.__name__}, got {section!r}")
    fields = dc.__dataclass_fields__
    return {k: v for k, v in section.items() if k in fields}


@dataclass(frozen=True, slots=True)
class BackendConfig:
    tier: str = "sqlite"  # memory | sqlite | redis
    sqlite_path: str = ".memlane/memlane.db"
    sqlite_wal: bool = True
    redis_url: str = "redis://localhost:6379"
    redis_prefix: str = "memlane:"


@dataclass(frozen=True, slots=True)
class RankingConfig:
    task_criticality: float = 0.45
    semantic_similarity: float = 0.25
    importance: float = 0.20
    recency_decay: float = 0.10

    @property
    def weights(self) -> RankingWeights:
        return RankingWeights(
            task_criticality=self.task_criticality,
            semantic_similarity=self.semantic_similarity,
            importance=self.importance,
            recency_decay=self.recency_decay,
        )


@dataclass(frozen=True, slots=True)
class FreshnessSLOConfig:
    max_age_hours: float = 2160.0  # 90 days
    relevance_threshold: float = 0.3
    recall_target_percent: float = 95.0


@dataclass(frozen=True, slots=True)
class SLOConfig:
    freshness: FreshnessSLOConfig = field(default_factory=FreshnessSLOConfig)
    enabled: bool = True
    alert_threshold_percent: float = 10.0
    evaluation_interval_minutes: int = 60


@dataclass(frozen=True, slots=True)
class DriftConfig:
    max_drift_score: float = 0.4
    min_coherence_score: float = 0.6
    max_fragmentation_score: float = 0.3


@dataclass(frozen=True, slots=True)
class ValidationConfig:
    max_entry_length: int = 16_000
    quarantine_threshold: float = 0.45
    max_json_depth: int = 12
    max_json_nodes: int = 5_000
    max_json_keys: int = 1_000
    max_json_array_items: int = 2_000
    max_json_string_length: int = 4_000


@dataclass(frozen=True, slots=True)
class LifecycleConfig:
    default_ttl_days: float | None = None  # None = permanent
    expire_batch_size: int = 500


def validate_slo_config(slo: SLOConfig) -> list[str]:
    """Return human-readable problems with an SLO config (empty if valid)."""
    errors: list[str] = []
    freshness = slo.freshness
    if freshness.max_age_hours <= 0:
        errors.append("slo.freshness.max_age_hours must be positive")
    if not 0 <= freshness.relevance_threshold <= 1:
        errors.append("slo.freshness.relevance_threshold must be between 0 and 1")
    if not 0 <= freshness.recall_target_percent <= 100:
        errors.append("slo.freshness.recall_target_percent must be between 0 and 100")
    if not 0 <= slo.alert_threshold_percent <= 100:
        errors.append("slo.alert_threshold_percent must be between 0 and 100")
    if slo.evaluation_interval_minutes <= 0:
        errors.append("slo.evaluation_interval_minutes must be positive")
    return errors


@dataclass(frozen=True, slots=True)
class MemlaneConfig:
    """Top-level configuration, parsed from memlane.toml."""
    project_name: str = "memlane-project"
    backend: BackendConfig = field(default_factory=BackendConfig)
    ranking: RankingConfig = field(default_factory=RankingConfig)
    slo: SLOConfig = field(default_factory=SLOConfig)
    drift: DriftConfig = field(default_factory=DriftConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    lifecycle: LifecycleConfig = field(default_factory=LifecycleConfig)

    @classmethod
    def from_toml(
        cls, path: Path | str = "memlane.toml"
    ) -> MemlaneConfig:
        path = Path(path)
        raw = _load_toml(path)
        return cls._from_raw(raw)

    @classmethod
    def load(
        cls, project_dir: Path | str | None = None, *, strict: bool = False
    ) -> MemlaneConfig:
        """Load config with global → project layering.

        Resolution order (later wins):
        1. Built-in defaults
        2. ~/.memlane/config.toml (global)
        3. .memlane/config.toml or memlane.toml (project)

        With ``strict=True`` an invalid result raises :class:`ConfigError`.
        """
        global_path = Path.home() / ".memlane" / "config.toml"

        project_dir = (
            Path.cwd() if project_dir is None else Path(project_dir)
        )

        project_path = project_dir / ".memlane" / "config.toml"
        if not project_path.exists():
            project_path = project_dir / "memlane.toml"

        merged = _deep_merge(_load_toml(global_path), _load_toml(project_path))
        config = cls._from_raw(merged)

        if strict:
            errors = config.validate()
            if errors:
                raise ConfigError("; ".join(errors))
        return config

    @classmethod
    def _from_raw(cls, raw: dict) -> MemlaneConfig:
        """Build MemlaneConfig from a raw TOML dict."""
        slo_raw = dict(raw.get("slo", {}))
        freshness_raw = slo_raw.pop("freshness", {})

        try:
            return cls(
                project_name=raw.get("project", {}).get(
                    "name", "memlane-project"
                ),
                backend=BackendConfig(**_pick(raw.get("backend", {}), BackendConfig)),
                ranking=RankingConfig(**_pick(raw.get("ranking", {}), RankingConfig)),
                slo=SLOConfig(
                    freshness=FreshnessSLOConfig(
                        **_pick(freshness_raw, FreshnessSLOConfig)
                    ),
                    **_pick(slo_raw, SLOConfig),
                ),
                drift=DriftConfig(**_pick(raw.get("drift", {}), DriftConfig)),
                validation=ValidationConfig(
                    **_pick(raw.get("validation", {}), ValidationConfig)
                ),
                lifecycle=LifecycleConfig(
                    **_pick(raw.get("lifecycle", {}), LifecycleConfig)
                ),
            )
        except TypeError as exc:
            raise ConfigError(f"Malformed memlane config: {exc}") from exc

    def validate(self) -> list[str]:
        errors = validate_slo_config(self.slo)
        if self.backend.tier not in {"memory", "sqlite", "redis"}:
            errors.append(f"backend.tier must be memory, sqlite or redis, got {self.backend.tier!r}")
        weights = (
            self.ranking.task_criticality,
            self.ranking.semantic_similarity,
            self.ranking.importance,
            self.ranking.recency_decay,
        )
        if any(w < 0 for w in weights):
            errors.append("ranking weights must be non-negative")
        for name in ("max_drift_score", "min_coherence_score", "max_fragmentation_score"):
            if not 0 <= getattr(self.drift, name) <= 1:
                errors.append(f"drift.{name} must be between 0 and 1")
        if not 0 <= self.validation.quarantine_threshold <= 1:
            errors.append("validation.quarantine_threshold must be between 0 and 1")
        if self.lifecycle.expire_batch_size <= 0:
            errors.append("lifecycle.expire_batch_size must be positive")
        return errors

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ── Duration helpers ─────────────────────────────────────────────────

_DURATION_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*([hdw])$", re.IGNORECASE)
_HOURS_PER_UNIT = {"h": 1, "d": 24, "w": 24 * 7}


def parse_duration(duration: str) -> float | None:
    """Parse "24h", "7d" or "1w" into hours; None if unrecognised."""
    match = _DURATION_RE.match(duration.strip())
    if not match:
        return None
    return float(match.group(1)) * _HOURS_PER_UNIT[match.group(2).lower()]


def format_duration(hours: float) -> str:
    """Render hours as "5h", "3d" or "3d 5h"."""
    if hours < 24:
        return f"{hours:g}h"
    days, remaining = divmod(hours, 24)
    if remaining == 0:
        return f"{int(days)}d"
    return f"{int(days)}d {remaining:g}h"
