from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from block_harvester.config import RetentionConfig
from block_harvester.engine import (
    BlockStore,
    CleanupPredicate,
    Collector,
    RetentionManager,
    SourceClient,
)
from block_harvester.errors import NoPredicateSpecified, StorageFailure
from block_harvester.infra import SQLiteManager
from block_harvester.orchestrator import HarvestComponents, HarvestOrchestrator, build_components
from block_harvester.scheduler import CollectionScheduler


@pytest.fixture
def orchestrator(sample_config, store, scripted_client, make_unit, clock):
    client = scripted_client([make_unit(n) for n in range(1, 4)])
    collector = Collector(client, store)
    scheduler = CollectionScheduler(collector, client, scheduler_factory=MagicMock)
    components = HarvestComponents(
        storage=store.manager,
        store=store,
        client=client,
        collector=collector,
        scheduler=scheduler,
        retention=RetentionManager(store, RetentionConfig(max_units=2, max_age_days=0), clock=clock),
    )
    return HarvestOrchestrator(sample_config, components)


def test_build_components_wires_configuration(sample_config, tmp_path) -> None:
    components = build_components(sample_config, tmp_path / "db" / "blocks.db")
    try:
        assert isinstance(components.storage, SQLiteManager)
        assert isinstance(components.store, BlockStore)
        assert isinstance(components.client, SourceClient)
        assert components.collector.client is components.client
        assert components.collector.store is components.store
        assert components.scheduler.interval_seconds == sample_config.schedule.interval_seconds
        assert components.retention.policy.max_units == 100
        assert (tmp_path / "db" / "blocks.db").exists()
    finally:
        components.client.close()
        components.storage.close_all()


def test_from_repository_uses_configured_database(temp_config_repository) -> None:
    orchestrator = HarvestOrchestrator.from_repository(temp_config_repository)
    try:
        assert orchestrator.store.db_path == temp_config_repository.database_path()
        assert orchestrator.latest_sequence_number() == 0
        assert orchestrator.status().running is False
    finally:
        orchestrator.close()


def test_collection_and_block_queries(orchestrator) -> None:
    for _ in range(3):
        assert orchestrator.trigger_collection() is True

    page = orchestrator.list_blocks(limit=2)
    assert [unit.sequence_number for unit in page.units] == [3, 2]
    assert page.total == 3
    assert orchestrator.latest_sequence_number() == 3
    assert orchestrator.block_stats().latest_sequence_number == 3
    assert orchestrator.status().stats.total_stored == 3

    orchestrator.reset_stats()
    assert orchestrator.status().stats.total_stored == 0
    assert orchestrator.list_blocks().total == 3


def test_start_stop_and_interval(orchestrator) -> None:
    status = orchestrator.start()
    assert status.running is True
    assert status.stats.total_stored == 1
    assert orchestrator.update_interval(3) is False
    assert orchestrator.update_interval(45) is True
    assert orchestrator.status().interval_seconds == 45
    orchestrator.stop()
    assert orchestrator.status().running is False


def test_database_commands(orchestrator, store, make_unit) -> None:
    for number in range(1, 6):
        store.insert_if_absent(make_unit(number))

    assert orchestrator.database_stats().total_units == 5
    assert orchestrator.auto_cleanup() == 3
    assert [unit.sequence_number for unit in orchestrator.export()] == [5, 4]
    assert orchestrator.auto_cleanup() is None

    with pytest.raises(NoPredicateSpecified):
        orchestrator.cleanup(CleanupPredicate())
    assert orchestrator.cleanup(CleanupPredicate(before_sequence_number=5)) == 1
    assert orchestrator.cleanup(CleanupPredicate(before_sequence_number=5)) == 0

    orchestrator.optimize()
    assert orchestrator.clear_all() == 1
    assert orchestrator.database_stats().total_units == 0


def test_close_stops_running_scheduler(orchestrator) -> None:
    orchestrator.start()
    orchestrator.close()
    assert orchestrator.status().running is False


def test_failed_compaction_does_not_mask_deletion(orchestrator, store, make_unit, monkeypatch, log_events) -> None:
    for number in range(1, 4):
        store.insert_if_absent(make_unit(number))

    def broken_compact() -> None:
        raise StorageFailure("database is locked", operation="compact")

    monkeypatch.setattr(store, "compact", broken_compact)

    assert orchestrator.cleanup(CleanupPredicate(keep_latest_n=2)) == 1
    assert orchestrator.clear_all() == 2
    assert store.range(10).total == 0
    warnings = [event for event in log_events if event["event"] == "compact_after_cleanup_failed"]
    assert [event["deleted"] for event in warnings] == [1, 2]
