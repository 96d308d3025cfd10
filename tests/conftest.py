"""Shared pytest fixtures for block-harvester."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, Iterable

import httpx
import pytest
from structlog.testing import capture_logs

from block_harvester.config import (
    ConfigLocator,
    ConfigRepository,
    HarvesterConfig,
    RetentionConfig,
    SourceConfig,
)
from block_harvester.engine import BlockStore, DataUnit, SourceClient
from block_harvester.errors import SourceUnreachable
from block_harvester.infra import SQLiteManager

ENDPOINT = "https://source.test/api/blocks/latest"
NOW = 1_700_000_000


class FrozenClock:
    """Callable clock returning a settable epoch second."""

    def __init__(self, value: float = NOW) -> None:
        self.value = value

    def __call__(self) -> float:
        return self.value


class ScriptedClient:
    """Stand-in for SourceClient replaying a list of units or errors."""

    def __init__(self, results: Iterable[DataUnit | Exception]) -> None:
        self.results = list(results)
        self.calls = 0
        self.health_checks = 0
        self.healthy = True

    def fetch_latest(self) -> DataUnit:
        self.calls += 1
        if not self.results:
            raise SourceUnreachable("script exhausted")
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    def check_health(self) -> bool:
        self.health_checks += 1
        return self.healthy

    def close(self) -> None:
        return


@pytest.fixture(autouse=True)
def harvester_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("BLOCK_HARVESTER_HOME", str(tmp_path))
    for name in ("SOURCE_API_URL", "FETCH_INTERVAL_SECONDS", "MAX_STORED_BLOCKS", "MAX_STORAGE_DAYS"):
        monkeypatch.delenv(name, raising=False)
    return tmp_path


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def store(tmp_path: Path, clock: FrozenClock) -> Iterable[BlockStore]:
    manager = SQLiteManager()
    block_store = BlockStore(manager, tmp_path / "blocks.db", clock=clock)
    yield block_store
    manager.close_all()


@pytest.fixture
def make_unit() -> Callable[..., DataUnit]:
    def _builder(sequence_number: int, **overrides: Any) -> DataUnit:
        base: dict[str, Any] = {
            "sequence_number": sequence_number,
            "timestamp": NOW - 1000 + sequence_number,
            "item_count": 1,
            "resource_used": 21000,
        }
        base.update(overrides)
        return DataUnit(**base)

    return _builder


@pytest.fixture
def bulk_insert() -> Callable[[BlockStore, Iterable[DataUnit]], None]:
    """Insert many rows in one transaction, bypassing per-row commits."""

    def _insert(block_store: BlockStore, units: Iterable[DataUnit]) -> None:
        conn = block_store.manager.connect(block_store.db_path)
        conn.executemany(
            "INSERT INTO blocks(sequence_number, timestamp, item_count, resource_used) "
            "VALUES (?, ?, ?, ?)",
            [(u.sequence_number, u.timestamp, u.item_count, u.resource_used) for u in units],
        )
        conn.commit()

    return _insert


@pytest.fixture
def source_config() -> SourceConfig:
    return SourceConfig(endpoint_url=ENDPOINT)


@pytest.fixture
def make_source_client(source_config: SourceConfig) -> Callable[..., tuple[SourceClient, list[float]]]:
    """Build a SourceClient over an httpx MockTransport; returns (client, sleeps)."""

    def _builder(handler: Callable[[httpx.Request], httpx.Response], **config_overrides: Any):
        config = source_config.model_copy(update=config_overrides)
        sleeps: list[float] = []
        http_client = httpx.Client(transport=httpx.MockTransport(handler))
        client = SourceClient(config, client=http_client, sleep=sleeps.append)
        return client, sleeps

    return _builder


def _json_response(payload: Any, status_code: int = 200) -> httpx.Response:
    return httpx.Response(
        status_code,
        content=json.dumps(payload).encode("utf-8"),
        headers={"Content-Type": "application/json"},
    )


@pytest.fixture
def json_response() -> Callable[..., httpx.Response]:
    return _json_response


@pytest.fixture
def scripted_client() -> Callable[[Iterable[DataUnit | Exception]], ScriptedClient]:
    return ScriptedClient


@pytest.fixture
def sample_config() -> HarvesterConfig:
    return HarvesterConfig(
        source=SourceConfig(endpoint_url=ENDPOINT),
        retention=RetentionConfig(max_units=100, max_age_days=30),
    )


@pytest.fixture
def temp_config_repository(tmp_path: Path) -> ConfigRepository:
    locator = ConfigLocator(project_root=tmp_path)
    return ConfigRepository(locator, environ={})


@pytest.fixture(autouse=True)
def log_events() -> Iterable[list[dict]]:
    """Capture structlog events so tests can assert on them and stdout stays clean."""

    with capture_logs() as events:
        yield events
