"""APScheduler wrapper running the collector on a fixed cadence."""

from __future__ import annotations

from dataclasses import dataclass
from threading import RLock
from typing import Callable

import structlog
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config import MIN_INTERVAL_SECONDS
from ..engine.collector import Collector
from ..engine.fetcher import SourceClient
from ..engine.models import CollectorStats

JOB_ID = "collector::latest_block"
DEFAULT_INTERVAL_SECONDS = 30
# A cycle may outlive its period (3 attempts x 10s + backoff), let the next
# firing start anyway instead of being skipped.
MAX_CONCURRENT_CYCLES = 3


@dataclass(frozen=True, slots=True)
class SchedulerStatus:
    running: bool
    interval_seconds: int
    stats: CollectorStats

    def to_dict(self) -> dict:
        return {
            "running": self.running,
            "interval_seconds": self.interval_seconds,
            "stats": self.stats.to_dict(),
        }


class CollectionScheduler:
    """Own the repeating collection job and its Stopped/Running state."""

    def __init__(
        self,
        collector: Collector,
        client: SourceClient | None = None,
        interval_seconds: int = DEFAULT_INTERVAL_SECONDS,
        scheduler_factory: Callable[[], BackgroundScheduler] = BackgroundScheduler,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.collector = collector
        self.client = client
        self.logger = logger or structlog.get_logger("block_harvester").bind(component="scheduler")
        if interval_seconds < MIN_INTERVAL_SECONDS:
            self.logger.warning(
                "interval_below_minimum",
                requested=interval_seconds,
                applied=MIN_INTERVAL_SECONDS,
            )
            interval_seconds = MIN_INTERVAL_SECONDS
        self.interval_seconds = interval_seconds
        self._scheduler_factory = scheduler_factory
        self._scheduler: BackgroundScheduler | None = None
        self._lock = RLock()

    @property
    def running(self) -> bool:
        return self._scheduler is not None

    def start(self) -> None:
        with self._lock:
            if self.running:
                self.logger.warning("scheduler_already_running")
                return
            self._probe_source()
            self.logger.info("initial_collection_started")
            if not self._run_cycle():
                self.logger.warning("initial_collection_failed")

            scheduler = self._scheduler_factory()
            scheduler.add_job(
                self._run_cycle,
                trigger=IntervalTrigger(seconds=self.interval_seconds),
                id=JOB_ID,
                replace_existing=True,
                max_instances=MAX_CONCURRENT_CYCLES,
                coalesce=True,
            )
            scheduler.start()
            self._scheduler = scheduler
            self.logger.info("scheduler_started", interval_seconds=self.interval_seconds)

    def stop(self) -> None:
        with self._lock:
            scheduler = self._scheduler
            if scheduler is None:
                self.logger.warning("scheduler_not_running")
                return
            self._scheduler = None
            try:
                scheduler.remove_job(JOB_ID)
            except Exception as exc:  # noqa: BLE001
                self.logger.warning("job_remove_failed", job_id=JOB_ID, error=str(exc))
            # in-flight cycles finish on their own; only rescheduling stops
            scheduler.shutdown(wait=False)
            self.logger.info("scheduler_stopped")

    def update_interval(self, seconds: int) -> bool:
        if seconds < MIN_INTERVAL_SECONDS:
            self.logger.warning(
                "interval_rejected", requested=seconds, minimum=MIN_INTERVAL_SECONDS
            )
            return False
        with self._lock:
            self.interval_seconds = seconds
            if self.running:
                self.logger.info("scheduler_restarting", interval_seconds=seconds)
                self.stop()
                self.start()
            else:
                self.logger.info("interval_updated", interval_seconds=seconds)
        return True

    def trigger_manual_collection(self) -> bool:
        self.logger.info("manual_collection_triggered")
        return self._run_cycle()

    def get_status(self) -> SchedulerStatus:
        return SchedulerStatus(
            running=self.running,
            interval_seconds=self.interval_seconds,
            stats=self.collector.get_stats(),
        )

    # ------------------------------------------------------------------
    def _probe_source(self) -> None:
        if self.client is None:
            return
        try:
            healthy = self.client.check_health()
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("health_probe_error", error=str(exc))
            return
        if healthy:
            self.logger.info("source_healthy")
        else:
            self.logger.warning("source_unhealthy_starting_anyway")

    def _run_cycle(self) -> bool:
        try:
            return self.collector.run_cycle()
        except Exception as exc:  # noqa: BLE001
            self.logger.exception("scheduled_cycle_crashed", error=str(exc))
            return False


__all__ = ["CollectionScheduler", "DEFAULT_INTERVAL_SECONDS", "JOB_ID", "SchedulerStatus"]
