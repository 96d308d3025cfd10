"""Size/age based retention enforcement."""

from __future__ import annotations

import time
from typing import Callable

import structlog

from ..config import RetentionConfig
from ..errors import StorageFailure
from .block_store import SECONDS_PER_DAY, BlockStore
from .models import CleanupPredicate


class RetentionManager:
    """Evaluate the store against the retention policy and prune it."""

    def __init__(
        self,
        store: BlockStore,
        policy: RetentionConfig,
        clock: Callable[[], float] = time.time,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.store = store
        self.policy = policy
        self._clock = clock
        self.logger = logger or structlog.get_logger("block_harvester").bind(component="retention")

    def auto_cleanup(self) -> int | None:
        """Delete blocks beyond the configured limits.

        The unit-count limit is checked first and wins over the age limit.
        Returns the number of deleted blocks, or ``None`` when nothing had to
        be removed or the store could not be evaluated.
        """

        max_units = self.policy.max_units
        max_age_days = self.policy.max_age_days or 0
        try:
            stats = self.store.database_stats()
            predicate: CleanupPredicate | None = None
            if max_units is not None and stats.total_units > max_units:
                self.logger.info(
                    "auto_cleanup_triggered",
                    reason="max_units",
                    total_units=stats.total_units,
                    max_units=max_units,
                )
                predicate = CleanupPredicate(keep_latest_n=max_units)
            elif max_age_days > 0 and stats.oldest_timestamp is not None:
                max_age_seconds = max_age_days * SECONDS_PER_DAY
                cutoff = int(self._clock()) - max_age_seconds
                if stats.oldest_timestamp < cutoff:
                    self.logger.info(
                        "auto_cleanup_triggered",
                        reason="max_age_days",
                        oldest_timestamp=stats.oldest_timestamp,
                        max_age_days=max_age_days,
                    )
                    predicate = CleanupPredicate(older_than_seconds=max_age_seconds)
            if predicate is None:
                return None
            deleted = self.store.delete_where(predicate)
        except StorageFailure as exc:
            self.logger.error("auto_cleanup_failed", error=str(exc))
            return None

        if deleted:
            try:
                self.store.compact()
            except StorageFailure as exc:
                self.logger.warning("compact_after_cleanup_failed", error=str(exc))
        return deleted


__all__ = ["RetentionManager"]
