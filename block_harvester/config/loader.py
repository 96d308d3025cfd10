"""Configuration loading helpers for block-harvester."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

import yaml

from .models import HarvesterConfig

CONFIG_EXTENSIONS = (".yaml", ".yml", ".json")
CONFIG_FILENAME = "harvester_config.yaml"
HOME_ENV = "BLOCK_HARVESTER_HOME"

# environment variable -> (section, field)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "SOURCE_API_URL": ("source", "endpoint_url"),
    "FETCH_INTERVAL_SECONDS": ("schedule", "interval_seconds"),
    "MAX_STORED_BLOCKS": ("retention", "max_units"),
    "MAX_STORAGE_DAYS": ("retention", "max_age_days"),
}


def _read_file(path: Path) -> dict:
    if path.suffix not in CONFIG_EXTENSIONS:
        raise ValueError(f"Unsupported configuration format {path.suffix!r}: {path}")
    text = path.read_text(encoding="utf-8")
    if path.suffix in (".yaml", ".yml"):
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file must contain a mapping: {path}")
    return data


def _write_file(path: Path, payload: dict) -> None:
    with path.open("w", encoding="utf-8") as stream:
        if path.suffix in (".yaml", ".yml"):
            yaml.safe_dump(payload, stream, allow_unicode=True, sort_keys=False)
        else:
            json.dump(payload, stream, indent=2, ensure_ascii=False)


def apply_env_overrides(payload: dict, environ: Mapping[str, str]) -> dict:
    """Overlay environment-style settings onto a raw configuration mapping."""

    merged = {key: dict(value) if isinstance(value, dict) else value for key, value in payload.items()}
    for env_name, (section, field) in ENV_OVERRIDES.items():
        raw = environ.get(env_name)
        if raw is None or not raw.strip():
            continue
        target = merged.setdefault(section, {})
        target[field] = raw.strip()
    return merged


@dataclass(slots=True)
class ConfigLocator:
    """Resolve important paths from project root."""

    project_root: Path | None = None
    data_dir: Path | None = None
    logs_dir: Path | None = None

    def __post_init__(self) -> None:
        env_root = os.environ.get(HOME_ENV)
        if env_root:
            root = Path(env_root).expanduser().resolve()
        else:
            root = (self.project_root or Path(__file__).resolve().parents[2]).resolve()
        self.project_root = root
        self.data_dir = (root / "data").resolve()
        self.logs_dir = (root / "logs").resolve()
        self.ensure_directories()

    def ensure_directories(self) -> None:
        for directory in (self.data_dir, self.logs_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def config_path(self) -> Path:
        return self.data_dir / CONFIG_FILENAME


class ConfigRepository:
    """Repository encapsulating config IO, env overrides and validation."""

    def __init__(
        self,
        locator: ConfigLocator | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.locator = locator or ConfigLocator()
        self.environ = os.environ if environ is None else environ
        self._cache: HarvesterConfig | None = None

    def load_config(self) -> HarvesterConfig:
        if self._cache is not None:
            return self._cache
        path = self.locator.config_path()
        if path.exists():
            payload = _read_file(path)
        else:
            payload = {}
            self.save_config(HarvesterConfig())
        config = HarvesterConfig.model_validate(apply_env_overrides(payload, self.environ))
        self._cache = config
        return config

    def save_config(self, config: HarvesterConfig) -> Path:
        path = self.locator.config_path()
        _write_file(path, config.model_dump(mode="json"))
        self._cache = None
        return path

    def database_path(self, config: HarvesterConfig | None = None) -> Path:
        config = config or self.load_config()
        return config.storage.resolved_db_path(self.locator.project_root)


__all__ = [
    "CONFIG_EXTENSIONS",
    "ConfigLocator",
    "ConfigRepository",
    "ENV_OVERRIDES",
    "apply_env_overrides",
]
