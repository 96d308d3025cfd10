"""Infra layer utilities (SQLite connection management)."""

from .storage import SQLiteManager

__all__ = ["SQLiteManager"]
