"""Value objects passed between the fetcher, collector and block store."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


@dataclass(frozen=True, slots=True)
class DataUnit:
    """One block as produced by the source client or read back from the store.

    ``stored_at`` and ``row_id`` are only populated on rows returned by the
    store; candidates built from a fetched payload leave them unset.
    """

    sequence_number: int
    timestamp: int
    item_count: int = 0
    resource_used: int = 0
    stored_at: datetime | None = field(default=None, compare=False)
    row_id: int | None = field(default=None, compare=False)

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        if self.stored_at is not None:
            payload["stored_at"] = self.stored_at.isoformat()
        return payload


class InsertStatus(str, Enum):
    INSERTED = "inserted"
    ALREADY_EXISTS = "already_exists"


@dataclass(frozen=True, slots=True)
class InsertOutcome:
    status: InsertStatus
    row_id: int | None = None

    @classmethod
    def inserted(cls, row_id: int) -> "InsertOutcome":
        return cls(InsertStatus.INSERTED, row_id)

    @classmethod
    def already_exists(cls) -> "InsertOutcome":
        return cls(InsertStatus.ALREADY_EXISTS)

    @property
    def is_inserted(self) -> bool:
        return self.status is InsertStatus.INSERTED


@dataclass(frozen=True, slots=True)
class BlockPage:
    """Most recent blocks (descending) plus the total row count."""

    units: list[DataUnit]
    total: int


@dataclass(frozen=True, slots=True)
class BlockStats:
    avg_inter_arrival_time: float = 0.0
    total_items_in_window: int = 0
    avg_resource_used: float = 0.0
    latest_timestamp: int = 0
    latest_sequence_number: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class DatabaseStats:
    total_units: int
    oldest_sequence_number: int | None
    newest_sequence_number: int | None
    oldest_timestamp: int | None
    newest_timestamp: int | None
    size_kb: int
    avg_units_per_day: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class CleanupPredicate:
    """Bulk deletion criteria; the first populated field wins.

    Precedence: ``keep_latest_n`` > ``older_than_seconds`` >
    ``before_sequence_number``.
    """

    keep_latest_n: int | None = None
    older_than_seconds: int | None = None
    before_sequence_number: int | None = None

    @property
    def is_empty(self) -> bool:
        return (
            self.keep_latest_n is None
            and self.older_than_seconds is None
            and self.before_sequence_number is None
        )


@dataclass(frozen=True, slots=True)
class CollectorStats:
    """Immutable snapshot of the collector counters."""

    total_fetched: int = 0
    total_stored: int = 0
    total_duplicates: int = 0
    total_errors: int = 0
    last_fetch_time: datetime | None = None
    last_success_time: datetime | None = None
    last_stored_sequence_number: int | None = None

    @property
    def success_rate(self) -> float:
        if not self.total_fetched:
            return 0.0
        return self.total_stored / self.total_fetched

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        for key in ("last_fetch_time", "last_success_time"):
            value = payload[key]
            payload[key] = value.isoformat() if value is not None else None
        return payload


__all__ = [
    "BlockPage",
    "BlockStats",
    "CleanupPredicate",
    "CollectorStats",
    "DataUnit",
    "DatabaseStats",
    "InsertOutcome",
    "InsertStatus",
]
