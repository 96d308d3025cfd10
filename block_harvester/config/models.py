"""Pydantic models used across the block-harvester configuration flow."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

MIN_INTERVAL_SECONDS = 5
DEFAULT_ENDPOINT_URL = "http://127.0.0.1:8080/api/blocks/latest"


class SourceConfig(BaseModel):
    """Where the latest block is fetched from and how hard to try."""

    endpoint_url: str = DEFAULT_ENDPOINT_URL
    timeout_seconds: float = 10.0
    max_attempts: int = 3
    backoff_base: float = 2.0
    health_timeout_seconds: float = 5.0
    user_agent: str = "block-harvester/0.1"

    @field_validator("endpoint_url")
    @classmethod
    def _validate_url(cls, value: str) -> str:
        text = value.strip()
        if not text.startswith(("http://", "https://")):
            raise ValueError("endpoint_url must be an http(s) URL")
        return text

    @model_validator(mode="after")
    def _validate_limits(self) -> "SourceConfig":
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        if self.health_timeout_seconds <= 0:
            raise ValueError("health_timeout_seconds must be > 0")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.backoff_base < 0:
            raise ValueError("backoff_base must be >= 0")
        return self


class ScheduleConfig(BaseModel):
    """Fixed-period collection cadence."""

    interval_seconds: int = 30

    @field_validator("interval_seconds")
    @classmethod
    def _validate_interval(cls, value: int) -> int:
        if value < MIN_INTERVAL_SECONDS:
            raise ValueError(f"interval_seconds must be >= {MIN_INTERVAL_SECONDS}")
        return value


class RetentionConfig(BaseModel):
    """Size and age thresholds enforced by auto cleanup.

    ``None`` disables a threshold; ``max_age_days=0`` disables age based
    cleanup as well.
    """

    max_units: int | None = 10000
    max_age_days: int | None = 30

    @model_validator(mode="after")
    def _validate_non_negative(self) -> "RetentionConfig":
        if self.max_units is not None and self.max_units < 1:
            raise ValueError("max_units must be >= 1")
        if self.max_age_days is not None and self.max_age_days < 0:
            raise ValueError("max_age_days must be >= 0")
        return self


class StorageConfig(BaseModel):
    """Location of the SQLite block database."""

    db_path: Path = Field(default=Path("data/blocks.db"))

    @field_validator("db_path", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path:
        return Path(value)

    def resolved_db_path(self, base_dir: Path) -> Path:
        """Return the database path relative to the project root."""

        if not self.db_path.is_absolute():
            return (base_dir / self.db_path).resolve()
        return self.db_path


class HarvesterConfig(BaseModel):
    """Top level configuration document."""

    source: SourceConfig = Field(default_factory=SourceConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    retention: RetentionConfig = Field(default_factory=RetentionConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)


__all__ = [
    "DEFAULT_ENDPOINT_URL",
    "HarvesterConfig",
    "MIN_INTERVAL_SECONDS",
    "RetentionConfig",
    "ScheduleConfig",
    "SourceConfig",
    "StorageConfig",
]
