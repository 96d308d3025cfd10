"""Exception hierarchy shared by the collection pipeline."""

from __future__ import annotations

from typing import Any


class HarvesterError(Exception):
    """Base class for every error raised by block-harvester."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
        }


class SourceUnreachable(HarvesterError):
    """Every fetch attempt against the source endpoint failed."""


class ParseFailure(HarvesterError):
    """The source payload did not contain a usable sequence number."""


class InvalidLimit(HarvesterError):
    """A caller supplied a limit or window outside the accepted range."""


class NoPredicateSpecified(HarvesterError):
    """A cleanup request carried no deletion predicate."""


class StorageFailure(HarvesterError):
    """The underlying SQLite database rejected an operation."""


__all__ = [
    "HarvesterError",
    "InvalidLimit",
    "NoPredicateSpecified",
    "ParseFailure",
    "SourceUnreachable",
    "StorageFailure",
]
