"""Tolerant JSON payload parsing for block sources.

Sources disagree on where the block lives and what its fields are called, so
every logical field is resolved through an ordered list of candidate rules.
The first rule yielding a usable value wins.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Sequence

from ..errors import ParseFailure
from .models import DataUnit

WRAPPER_KEYS: tuple[str, ...] = ("block", "result", "data")
# largest value an SQLite INTEGER column can hold
MAX_SQLITE_INTEGER = 2**63 - 1

Extractor = Callable[[Mapping[str, Any]], "int | None"]


def to_int(value: Any) -> int | None:
    """Normalise ints, floats, decimal strings and ``0x`` hex strings.

    Returns ``None`` for anything that is not an integer value between 0
    and ``MAX_SQLITE_INTEGER``.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        number = value
    elif isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            return None
        number = int(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            if text.lower().startswith("0x"):
                number = int(text, 16)
            else:
                number = _decimal(text)
        except (ValueError, OverflowError):
            return None
    else:
        return None
    if not 0 <= number <= MAX_SQLITE_INTEGER:
        return None
    return number


def _decimal(text: str) -> int:
    try:
        return int(text, 10)
    except ValueError:
        # "1.5e3", "1e3", "12.0"
        return int(float(text))


def _key(name: str) -> Extractor:
    def extract(payload: Mapping[str, Any]) -> int | None:
        return to_int(payload.get(name))

    return extract


def _length_of(name: str) -> Extractor:
    def extract(payload: Mapping[str, Any]) -> int | None:
        value = payload.get(name)
        if isinstance(value, (list, tuple)):
            return len(value)
        return None

    return extract


@dataclass(frozen=True, slots=True)
class FieldRule:
    """A candidate location for one logical field."""

    name: str
    extract: Extractor

    @classmethod
    def key(cls, name: str) -> "FieldRule":
        return cls(name, _key(name))

    @classmethod
    def length(cls, name: str) -> "FieldRule":
        return cls(f"len({name})", _length_of(name))


SEQUENCE_RULES: tuple[FieldRule, ...] = (
    FieldRule.key("number"),
    FieldRule.key("blockNumber"),
    FieldRule.key("height"),
)
TIMESTAMP_RULES: tuple[FieldRule, ...] = (
    FieldRule.key("timestamp"),
    FieldRule.key("time"),
)
ITEM_COUNT_RULES: tuple[FieldRule, ...] = (
    FieldRule.key("transactionCount"),
    FieldRule.key("txCount"),
    FieldRule.length("transactions"),
)
RESOURCE_RULES: tuple[FieldRule, ...] = (
    FieldRule.key("gasUsed"),
    FieldRule.key("gas"),
    FieldRule.key("gasLimit"),
)


def resolve(payload: Mapping[str, Any], rules: Sequence[FieldRule]) -> int | None:
    """Return the first value produced by ``rules`` or ``None``."""

    for rule in rules:
        value = rule.extract(payload)
        if value is not None:
            return value
    return None


def locate_block(payload: Any) -> Mapping[str, Any] | None:
    """Find the mapping holding block fields inside a response document."""

    if not isinstance(payload, Mapping):
        return None
    for key in WRAPPER_KEYS:
        nested = payload.get(key)
        if isinstance(nested, Mapping) and nested:
            return nested
    if any(rule.name in payload for rule in SEQUENCE_RULES):
        return payload
    return None


class BlockParser:
    """Turn a loosely structured JSON document into a :class:`DataUnit`."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock

    def parse(self, payload: Any) -> DataUnit:
        block = locate_block(payload)
        if block is None:
            keys = sorted(payload) if isinstance(payload, Mapping) else type(payload).__name__
            raise ParseFailure("Unrecognised payload structure", keys=keys)

        sequence_number = resolve(block, SEQUENCE_RULES)
        if sequence_number is None:
            raise ParseFailure(
                "No block number found in payload",
                candidates=[rule.name for rule in SEQUENCE_RULES],
            )
        timestamp = resolve(block, TIMESTAMP_RULES)
        if timestamp is None:
            timestamp = int(self._clock())
        return DataUnit(
            sequence_number=sequence_number,
            timestamp=timestamp,
            item_count=resolve(block, ITEM_COUNT_RULES) or 0,
            resource_used=resolve(block, RESOURCE_RULES) or 0,
        )

    def parse_text(self, text: str) -> DataUnit:
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ParseFailure("Response body is not valid JSON", error=str(exc)) from exc
        return self.parse(payload)


__all__ = [
    "BlockParser",
    "FieldRule",
    "ITEM_COUNT_RULES",
    "MAX_SQLITE_INTEGER",
    "RESOURCE_RULES",
    "SEQUENCE_RULES",
    "TIMESTAMP_RULES",
    "WRAPPER_KEYS",
    "locate_block",
    "resolve",
    "to_int",
]
