"""Configuration package exports."""

from .loader import ConfigLocator, ConfigRepository, apply_env_overrides
from .models import (
    MIN_INTERVAL_SECONDS,
    HarvesterConfig,
    RetentionConfig,
    ScheduleConfig,
    SourceConfig,
    StorageConfig,
)

__all__ = [
    "ConfigLocator",
    "ConfigRepository",
    "HarvesterConfig",
    "MIN_INTERVAL_SECONDS",
    "RetentionConfig",
    "ScheduleConfig",
    "SourceConfig",
    "StorageConfig",
    "apply_env_overrides",
]
