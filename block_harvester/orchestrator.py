"""Explicit wiring of the collection pipeline and its command surface."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import structlog

from .config import ConfigRepository, HarvesterConfig
from .engine import (
    BlockPage,
    BlockStats,
    BlockStore,
    CleanupPredicate,
    Collector,
    DatabaseStats,
    DataUnit,
    RetentionManager,
    SourceClient,
)
from .errors import StorageFailure
from .infra import SQLiteManager
from .scheduler import CollectionScheduler, SchedulerStatus


@dataclass(slots=True)
class HarvestComponents:
    """The constructed collaborators, handed to whichever layer needs them."""

    storage: SQLiteManager
    store: BlockStore
    client: SourceClient
    collector: Collector
    scheduler: CollectionScheduler
    retention: RetentionManager


def build_components(config: HarvesterConfig, db_path: Path) -> HarvestComponents:
    """Construct every pipeline component; store failures here are fatal."""

    storage = SQLiteManager()
    store = BlockStore(storage, db_path)
    client = SourceClient(config.source)
    collector = Collector(client, store)
    scheduler = CollectionScheduler(
        collector, client, interval_seconds=config.schedule.interval_seconds
    )
    retention = RetentionManager(store, config.retention)
    return HarvestComponents(
        storage=storage,
        store=store,
        client=client,
        collector=collector,
        scheduler=scheduler,
        retention=retention,
    )


class HarvestOrchestrator:
    """Central coordinator exposing block, collector and database commands."""

    def __init__(self, config: HarvesterConfig, components: HarvestComponents) -> None:
        self.config = config
        self.components = components
        self.logger = structlog.get_logger("block_harvester").bind(component="orchestrator")

    @classmethod
    def from_repository(cls, repository: ConfigRepository) -> "HarvestOrchestrator":
        config = repository.load_config()
        db_path = repository.database_path(config)
        return cls(config, build_components(config, db_path))

    @property
    def store(self) -> BlockStore:
        return self.components.store

    # ------------------------------------------------------------------
    # Blocks
    # ------------------------------------------------------------------
    def list_blocks(self, limit: int = 50) -> BlockPage:
        return self.store.range(limit)

    def block_stats(self, window: int = 100) -> BlockStats:
        return self.store.aggregate_stats(window)

    def latest_sequence_number(self) -> int:
        return self.store.latest_sequence_number()

    # ------------------------------------------------------------------
    # Collector
    # ------------------------------------------------------------------
    def status(self) -> SchedulerStatus:
        return self.components.scheduler.get_status()

    def trigger_collection(self) -> bool:
        return self.components.scheduler.trigger_manual_collection()

    def start(self) -> SchedulerStatus:
        self.components.scheduler.start()
        return self.status()

    def stop(self) -> None:
        self.components.scheduler.stop()

    def reset_stats(self) -> None:
        self.components.collector.reset_stats()

    def update_interval(self, seconds: int) -> bool:
        return self.components.scheduler.update_interval(seconds)

    # ------------------------------------------------------------------
    # Database administration
    # ------------------------------------------------------------------
    def database_stats(self) -> DatabaseStats:
        return self.store.database_stats()

    def clear_all(self) -> int:
        deleted = self.store.delete_all()
        self._compact_after_delete(deleted)
        return deleted

    def cleanup(self, predicate: CleanupPredicate) -> int:
        deleted = self.store.delete_where(predicate)
        if deleted:
            self._compact_after_delete(deleted)
        return deleted

    def _compact_after_delete(self, deleted: int) -> None:
        # rows are already committed; compaction only reclaims space
        try:
            self.store.compact()
        except StorageFailure as exc:
            self.logger.warning("compact_after_cleanup_failed", deleted=deleted, error=str(exc))

    def auto_cleanup(self) -> int | None:
        return self.components.retention.auto_cleanup()

    def optimize(self) -> None:
        self.store.compact()

    def export(self, limit: int | None = None) -> list[DataUnit]:
        return self.store.export(limit)

    def close(self) -> None:
        if self.components.scheduler.running:
            self.components.scheduler.stop()
        self.components.client.close()
        self.components.storage.close_all()
        self.logger.info("orchestrator_closed")


__all__ = ["HarvestComponents", "HarvestOrchestrator", "build_components"]
