"""One fetch → dedup → store cycle with cumulative counters."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from threading import Lock
from typing import Callable

import structlog

from ..errors import HarvesterError
from .block_store import BlockStore
from .fetcher import SourceClient
from .models import CollectorStats

SUMMARY_EVERY = 10


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Collector:
    """Pull the latest block from the source and persist it when new.

    ``run_cycle`` never raises: every failure ends up in ``total_errors``.
    Counter updates for a cycle are assembled locally and published as one
    snapshot, so ``get_stats`` never observes half a cycle.
    """

    def __init__(
        self,
        client: SourceClient,
        store: BlockStore,
        now: Callable[[], datetime] = _utcnow,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.client = client
        self.store = store
        self._now = now
        self.logger = logger or structlog.get_logger("block_harvester").bind(component="collector")
        self._stats = CollectorStats()
        self._stats_lock = Lock()

    def run_cycle(self) -> bool:
        fetch_time = self._now()
        fetched = stored = duplicates = errors = 0
        success_time: datetime | None = None
        stored_sequence: int | None = None
        ok = False
        try:
            unit = self.client.fetch_latest()
            fetched = 1
            latest = self.store.latest_sequence_number()
            if unit.sequence_number <= latest:
                if unit.sequence_number < latest:
                    self.logger.warning(
                        "sequence_regressed",
                        sequence_number=unit.sequence_number,
                        stored_latest=latest,
                    )
                else:
                    self.logger.info("block_duplicate", sequence_number=unit.sequence_number)
                duplicates = 1
                ok = True
            else:
                outcome = self.store.insert_if_absent(unit)
                if outcome.is_inserted:
                    self.logger.info(
                        "block_stored",
                        sequence_number=unit.sequence_number,
                        row_id=outcome.row_id,
                        block_timestamp=unit.timestamp,
                        item_count=unit.item_count,
                    )
                    stored = 1
                    success_time = self._now()
                    stored_sequence = unit.sequence_number
                else:
                    self.logger.info("block_already_stored", sequence_number=unit.sequence_number)
                    duplicates = 1
                ok = True
        except HarvesterError as exc:
            self.logger.error("collection_failed", error_type=type(exc).__name__, error=str(exc))
            errors = 1
        except Exception as exc:  # noqa: BLE001
            self.logger.exception("collection_crashed", error=str(exc))
            errors = 1

        with self._stats_lock:
            current = self._stats
            self._stats = replace(
                current,
                total_fetched=current.total_fetched + fetched,
                total_stored=current.total_stored + stored,
                total_duplicates=current.total_duplicates + duplicates,
                total_errors=current.total_errors + errors,
                last_fetch_time=fetch_time,
                last_success_time=success_time or current.last_success_time,
                last_stored_sequence_number=(
                    stored_sequence
                    if stored_sequence is not None
                    else current.last_stored_sequence_number
                ),
            )
            snapshot = self._stats
        if stored and snapshot.total_stored % SUMMARY_EVERY == 0:
            self._log_summary(snapshot)
        return ok

    def get_stats(self) -> CollectorStats:
        with self._stats_lock:
            return self._stats

    def reset_stats(self) -> None:
        with self._stats_lock:
            self._stats = CollectorStats()
        self.logger.info("collector_stats_reset")

    def _log_summary(self, stats: CollectorStats) -> None:
        self.logger.info(
            "collection_summary",
            total_fetched=stats.total_fetched,
            total_stored=stats.total_stored,
            total_duplicates=stats.total_duplicates,
            total_errors=stats.total_errors,
            success_rate=f"{stats.success_rate * 100:.1f}%",
            last_stored_sequence_number=stats.last_stored_sequence_number,
        )


__all__ = ["Collector"]
