"""Periodic block collection with deduplicated SQLite storage and retention."""

__version__ = "0.1.0"
