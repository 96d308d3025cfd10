"""Engine components orchestrating fetch → parse → dedup → store → retention."""

from .block_store import BlockStore
from .collector import Collector
from .fetcher import SourceClient
from .models import (
    BlockPage,
    BlockStats,
    CleanupPredicate,
    CollectorStats,
    DatabaseStats,
    DataUnit,
    InsertOutcome,
    InsertStatus,
)
from .parser import BlockParser
from .retention import RetentionManager

__all__ = [
    "BlockPage",
    "BlockParser",
    "BlockStats",
    "BlockStore",
    "CleanupPredicate",
    "Collector",
    "CollectorStats",
    "DataUnit",
    "DatabaseStats",
    "InsertOutcome",
    "InsertStatus",
    "RetentionManager",
    "SourceClient",
]
