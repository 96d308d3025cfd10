from __future__ import annotations

from pathlib import Path

import pytest

from block_harvester.config import (
    HarvesterConfig,
    RetentionConfig,
    ScheduleConfig,
    SourceConfig,
    StorageConfig,
)


def test_defaults_match_documented_values() -> None:
    config = HarvesterConfig()
    assert config.schedule.interval_seconds == 30
    assert config.retention.max_units == 10000
    assert config.retention.max_age_days == 30
    assert config.source.max_attempts == 3
    assert config.source.timeout_seconds == 10.0
    assert config.source.health_timeout_seconds == 5.0


def test_schedule_interval_has_a_floor() -> None:
    with pytest.raises(ValueError):
        ScheduleConfig(interval_seconds=4)
    assert ScheduleConfig(interval_seconds=5).interval_seconds == 5


def test_source_url_must_be_http() -> None:
    with pytest.raises(ValueError):
        SourceConfig(endpoint_url="ftp://example.com/latest")
    assert SourceConfig(endpoint_url="  https://example.com/x ").endpoint_url == "https://example.com/x"


@pytest.mark.parametrize(
    "overrides",
    [
        {"timeout_seconds": 0},
        {"health_timeout_seconds": -1},
        {"max_attempts": 0},
        {"backoff_base": -2},
    ],
)
def test_source_limits_are_validated(overrides: dict) -> None:
    with pytest.raises(ValueError):
        SourceConfig(**overrides)


def test_retention_thresholds() -> None:
    with pytest.raises(ValueError):
        RetentionConfig(max_units=0)
    with pytest.raises(ValueError):
        RetentionConfig(max_age_days=-1)
    disabled = RetentionConfig(max_units=None, max_age_days=0)
    assert disabled.max_units is None
    assert disabled.max_age_days == 0


def test_env_style_strings_are_coerced() -> None:
    config = HarvesterConfig.model_validate(
        {"schedule": {"interval_seconds": "15"}, "retention": {"max_units": "500"}}
    )
    assert config.schedule.interval_seconds == 15
    assert config.retention.max_units == 500


def test_storage_path_resolution(tmp_path: Path) -> None:
    relative = StorageConfig(db_path="data/blocks.db")
    assert relative.resolved_db_path(tmp_path) == (tmp_path / "data" / "blocks.db").resolve()
    absolute = StorageConfig(db_path=tmp_path / "elsewhere.db")
    assert absolute.resolved_db_path(Path("/unused")) == tmp_path / "elsewhere.db"
