"""Durable, append-mostly block repository on top of SQLite."""

from __future__ import annotations

import sqlite3
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from threading import RLock
from typing import Callable, Iterator

import structlog

from ..errors import InvalidLimit, NoPredicateSpecified, StorageFailure
from ..infra.storage import BLOCKS_TABLE, SQLiteManager
from .models import (
    BlockPage,
    BlockStats,
    CleanupPredicate,
    DatabaseStats,
    DataUnit,
    InsertOutcome,
)

MAX_PAGE_LIMIT = 1000
MAX_EXPORT_LIMIT = 10000
DEFAULT_STATS_WINDOW = 100
SECONDS_PER_DAY = 24 * 60 * 60


def _row_to_unit(row: sqlite3.Row) -> DataUnit:
    stored_at = None
    if row["stored_at"]:
        stored_at = datetime.fromisoformat(row["stored_at"]).replace(tzinfo=timezone.utc)
    return DataUnit(
        sequence_number=row["sequence_number"],
        timestamp=row["timestamp"],
        item_count=row["item_count"],
        resource_used=row["resource_used"],
        stored_at=stored_at,
        row_id=row["id"],
    )


def _validate_predicate(predicate: CleanupPredicate) -> None:
    if predicate.keep_latest_n is not None and predicate.keep_latest_n < 1:
        raise InvalidLimit("keep_latest_n must be >= 1", value=predicate.keep_latest_n)
    if predicate.older_than_seconds is not None and predicate.older_than_seconds < 0:
        raise InvalidLimit("older_than_seconds must be >= 0", value=predicate.older_than_seconds)
    if predicate.before_sequence_number is not None and predicate.before_sequence_number < 0:
        raise InvalidLimit(
            "before_sequence_number must be >= 0", value=predicate.before_sequence_number
        )


class BlockStore:
    """Blocks keyed by their unique sequence number.

    ``sequence_number`` is the logical key; the ``id`` column is storage
    bookkeeping only. All access goes through one connection guarded by a
    re-entrant lock, and uniqueness is enforced by the database itself so
    racing inserts of the same block resolve to a single row.
    """

    def __init__(
        self,
        manager: SQLiteManager,
        db_path: Path,
        clock: Callable[[], float] = time.time,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.manager = manager
        self.db_path = db_path
        self._clock = clock
        self._lock = RLock()
        self.logger = logger or structlog.get_logger("block_harvester").bind(component="block_store")
        self._conn = self.manager.connect(db_path)

    @contextmanager
    def _guard(self, operation: str) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self._conn
            except (sqlite3.Error, OverflowError) as exc:
                self._conn.rollback()
                self.logger.error("storage_error", operation=operation, error=str(exc))
                raise StorageFailure(f"{operation} failed: {exc}", operation=operation) from exc

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def insert_if_absent(self, unit: DataUnit) -> InsertOutcome:
        with self._guard("insert") as conn:
            cur = conn.execute(
                f"INSERT OR IGNORE INTO {BLOCKS_TABLE}"
                "(sequence_number, timestamp, item_count, resource_used) VALUES (?, ?, ?, ?)",
                (unit.sequence_number, unit.timestamp, unit.item_count, unit.resource_used),
            )
            conn.commit()
            if cur.rowcount == 1:
                return InsertOutcome.inserted(cur.lastrowid)
            return InsertOutcome.already_exists()

    def delete_where(self, predicate: CleanupPredicate) -> int:
        """Delete blocks matching the first set predicate field.

        ``keep_latest_n`` must be at least 1; ``delete_all`` is the only way
        to empty the table. The other two fields must be non-negative.
        """

        _validate_predicate(predicate)
        if predicate.keep_latest_n is not None:
            where = (
                f"sequence_number NOT IN (SELECT sequence_number FROM {BLOCKS_TABLE} "
                "ORDER BY sequence_number DESC LIMIT ?)"
            )
            params: tuple[int, ...] = (predicate.keep_latest_n,)
        elif predicate.older_than_seconds is not None:
            cutoff = int(self._clock()) - predicate.older_than_seconds
            where = "timestamp < ?"
            params = (cutoff,)
        elif predicate.before_sequence_number is not None:
            where = "sequence_number < ?"
            params = (predicate.before_sequence_number,)
        else:
            raise NoPredicateSpecified(
                "At least one cleanup option must be specified: "
                "keep_latest_n, older_than_seconds or before_sequence_number"
            )

        with self._guard("delete_where") as conn:
            cur = conn.execute(f"DELETE FROM {BLOCKS_TABLE} WHERE {where}", params)
            conn.commit()
            deleted = max(cur.rowcount, 0)
        self.logger.info("blocks_deleted", where=where, params=list(params), deleted=deleted)
        return deleted

    def delete_all(self) -> int:
        with self._guard("delete_all") as conn:
            cur = conn.execute(f"DELETE FROM {BLOCKS_TABLE}")
            conn.execute("DELETE FROM sqlite_sequence WHERE name = ?", (BLOCKS_TABLE,))
            conn.commit()
            deleted = max(cur.rowcount, 0)
        self.logger.info("blocks_cleared", deleted=deleted)
        return deleted

    def compact(self) -> None:
        with self._guard("compact") as conn:
            conn.commit()
            conn.execute("ANALYZE")
            conn.commit()
            conn.execute("VACUUM")
            conn.execute("REINDEX")
            conn.commit()
        self.logger.info("database_compacted")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def range(self, limit: int = 50) -> BlockPage:
        if not 1 <= limit <= MAX_PAGE_LIMIT:
            raise InvalidLimit(f"Limit must be between 1 and {MAX_PAGE_LIMIT}", value=limit)
        with self._guard("range") as conn:
            total = conn.execute(f"SELECT COUNT(*) FROM {BLOCKS_TABLE}").fetchone()[0]
            rows = conn.execute(
                f"SELECT * FROM {BLOCKS_TABLE} ORDER BY sequence_number DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return BlockPage(units=[_row_to_unit(row) for row in rows], total=total)

    def latest_sequence_number(self) -> int:
        with self._guard("latest_sequence_number") as conn:
            row = conn.execute(f"SELECT MAX(sequence_number) FROM {BLOCKS_TABLE}").fetchone()
        return row[0] or 0

    def aggregate_stats(self, window: int = DEFAULT_STATS_WINDOW) -> BlockStats:
        if window < 1:
            raise InvalidLimit("Window must be >= 1", value=window)
        with self._guard("aggregate_stats") as conn:
            rows = conn.execute(
                f"SELECT sequence_number, timestamp, item_count, resource_used "
                f"FROM {BLOCKS_TABLE} ORDER BY sequence_number DESC LIMIT ?",
                (window,),
            ).fetchall()
        if not rows:
            return BlockStats()

        deltas = [
            newer["timestamp"] - older["timestamp"]
            for newer, older in zip(rows, rows[1:])
        ]
        positive = [delta for delta in deltas if delta > 0]
        avg_inter_arrival = sum(positive) / len(positive) if positive else 0.0
        return BlockStats(
            avg_inter_arrival_time=round(avg_inter_arrival, 2),
            total_items_in_window=sum(row["item_count"] for row in rows),
            avg_resource_used=round(sum(row["resource_used"] for row in rows) / len(rows), 2),
            latest_timestamp=rows[0]["timestamp"],
            latest_sequence_number=rows[0]["sequence_number"],
        )

    def database_stats(self) -> DatabaseStats:
        with self._guard("database_stats") as conn:
            row = conn.execute(
                f"""
                SELECT
                    COUNT(*) AS total,
                    MIN(sequence_number) AS oldest_sequence,
                    MAX(sequence_number) AS newest_sequence,
                    MIN(timestamp) AS oldest_timestamp,
                    MAX(timestamp) AS newest_timestamp
                FROM {BLOCKS_TABLE}
                """
            ).fetchone()
        total = row["total"] or 0
        avg_per_day = 0.0
        if total and row["oldest_timestamp"] is not None and row["newest_timestamp"] is not None:
            days = (row["newest_timestamp"] - row["oldest_timestamp"]) / SECONDS_PER_DAY
            if days > 0:
                avg_per_day = round(total / days, 2)
        return DatabaseStats(
            total_units=total,
            oldest_sequence_number=row["oldest_sequence"],
            newest_sequence_number=row["newest_sequence"],
            oldest_timestamp=row["oldest_timestamp"],
            newest_timestamp=row["newest_timestamp"],
            size_kb=self.size_estimate_kb(),
            avg_units_per_day=avg_per_day,
        )

    def export(self, limit: int | None = None) -> list[DataUnit]:
        if limit is not None and not 1 <= limit <= MAX_EXPORT_LIMIT:
            raise InvalidLimit(f"Limit must be between 1 and {MAX_EXPORT_LIMIT}", value=limit)
        sql = f"SELECT * FROM {BLOCKS_TABLE} ORDER BY sequence_number DESC"
        params: tuple[int, ...] = ()
        if limit is not None:
            sql += " LIMIT ?"
            params = (limit,)
        with self._guard("export") as conn:
            rows = conn.execute(sql, params).fetchall()
        self.logger.info("blocks_exported", count=len(rows), limit=limit)
        return [_row_to_unit(row) for row in rows]

    def size_estimate_kb(self) -> int:
        try:
            with self._lock:
                page_size = self._conn.execute("PRAGMA page_size").fetchone()[0]
                page_count = self._conn.execute("PRAGMA page_count").fetchone()[0]
        except sqlite3.Error as exc:
            self.logger.warning("size_estimate_failed", error=str(exc))
            return 0
        return round(page_size * page_count / 1024)

    def close(self) -> None:
        self.manager.close(self.db_path)


__all__ = ["BlockStore", "MAX_EXPORT_LIMIT", "MAX_PAGE_LIMIT"]
