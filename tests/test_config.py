from __future__ import annotations

import tempfile
from pathlib import Path

import pytest
from memlane_core.config import (
    FreshnessSLOConfig,
    MemlaneConfig,
    SLOConfig,
    format_duration,
    parse_duration,
    validate_slo_config,
)
from memlane_core.errors import ConfigError


class TestConfig:
    def test_default_config(self):
        config = MemlaneConfig()
        assert config.backend.tier == "sqlite"
        assert config.slo.freshness.max_age_hours == 2160
        assert config.slo.freshness.relevance_threshold == 0.3
        assert config.slo.freshness.recall_target_percent == 95
        assert config.drift.max_drift_score == 0.4
        assert config.validation.quarantine_threshold == 0.45
        assert config.lifecycle.default_ttl_days is None
        assert config.validate() == []

    def test_default_weights(self):
        weights = MemlaneConfig().ranking.weights
        assert (
            weights.task_criticality,
            weights.semantic_similarity,
            weights.importance,
            weights.recency_decay,
        ) == (0.45, 0.25, 0.20, 0.10)

    def test_from_toml_missing_file(self):
        config = MemlaneConfig.from_toml("/nonexistent/path/memlane.toml")
        assert config.backend.tier == "sqlite"  # Returns defaults

    def test_from_toml(self):
        with tempfile.NamedTemporaryFile(mode="w", suffix=".toml", delete=False) as f:
            f.write('''
[project]
name = "test-project"

[backend]
tier = "memory"

[ranking]
task_criticality = 0.5
unknown_key = "ignored"

[slo]
alert_threshold_percent = 5.0

[slo.freshness]
max_age_hours = 720

[lifecycle]
default_ttl_days = 30
''')
            f.flush()
            config = MemlaneConfig.from_toml(f.name)

        assert config.project_name == "test-project"
        assert config.backend.tier == "memory"
        assert config.ranking.task_criticality == 0.5
        assert config.ranking.importance == 0.20
        assert config.slo.alert_threshold_percent == 5.0
        assert config.slo.freshness.max_age_hours == 720
        assert config.slo.freshness.relevance_threshold == 0.3
        assert config.lifecycle.default_ttl_days == 30

        Path(f.name).unlink()

    def test_unreadable_toml_falls_back_to_defaults(self, tmp_path):
        path = tmp_path / "memlane.toml"
        path.write_text("[backend\ntier = ")
        assert MemlaneConfig.from_toml(path) == MemlaneConfig()

    def test_load_prefers_project_dir(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path / "home"))
        project = tmp_path / "project"
        (project / ".memlane").mkdir(parents=True)
        (project / "memlane.toml").write_text('[backend]\ntier = "redis"\n')
        (project / ".memlane" / "config.toml").write_text('[backend]\ntier = "memory"\n')

        assert MemlaneConfig.load(project).backend.tier == "memory"

    def test_load_layers_global_under_project(self, tmp_path, monkeypatch):
        home = tmp_path / "home"
        (home / ".memlane").mkdir(parents=True)
        (home / ".memlane" / "config.toml").write_text(
            '[backend]\ntier = "redis"\nredis_url = "redis://cache:6379"\n'
        )
        monkeypatch.setenv("HOME", str(home))
        project = tmp_path / "project"
        project.mkdir()
        (project / "memlane.toml").write_text('[backend]\ntier = "memory"\n')

        config = MemlaneConfig.load(project)
        assert config.backend.tier == "memory"
        assert config.backend.redis_url == "redis://cache:6379"

    def test_load_strict_rejects_invalid(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path / "home"))
        (tmp_path / "memlane.toml").write_text(
            '[slo.freshness]\nmax_age_hours = -1\n\n[backend]\ntier = "postgres"\n'
        )

        assert MemlaneConfig.load(tmp_path).slo.freshness.max_age_hours == -1
        with pytest.raises(ConfigError, match="max_age_hours"):
            MemlaneConfig.load(tmp_path, strict=True)

    def test_malformed_section_raises(self, tmp_path):
        path = tmp_path / "memlane.toml"
        path.write_text('backend = "sqlite"\n')
        with pytest.raises(ConfigError):
            MemlaneConfig.from_toml(path)

    def test_to_dict(self):
        data = MemlaneConfig().to_dict()
        assert data["slo"]["freshness"]["max_age_hours"] == 2160
        assert data["lifecycle"]["expire_batch_size"] == 500


class TestSLOValidation:
    def test_valid(self):
        assert validate_slo_config(SLOConfig()) == []

    def test_collects_every_problem(self):
        slo = SLOConfig(
            freshness=FreshnessSLOConfig(
                max_age_hours=0, relevance_threshold=1.5, recall_target_percent=120,
            ),
            alert_threshold_percent=-1,
            evaluation_interval_minutes=0,
        )
        assert len(validate_slo_config(slo)) == 5


class TestDurations:
    @pytest.mark.parametrize(("text", "hours"), [
        ("24h", 24.0),
        ("7d", 168.0),
        ("1w", 168.0),
        ("1.5D", 36.0),
        (" 90d ", 2160.0),
    ])
    def test_parse(self, text, hours):
        assert parse_duration(text) == hours

    @pytest.mark.parametrize("text", ["", "7", "d7", "7m", "-1d"])
    def test_parse_invalid(self, text):
        assert parse_duration(text) is None

    @pytest.mark.parametrize(("hours", "text"), [
        (5, "5h"),
        (72, "3d"),
        (77, "3d 5h"),
    ])
    def test_format(self, hours, text):
        assert format_duration(hours) == text
