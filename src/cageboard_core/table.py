"""Parse delimited sensor tables into ordered, immutable records."""

from __future__ import annotations

import math
import re
from types import MappingProxyType
from typing import Iterable, Mapping, Sequence, Tuple, Union

__all__ = [
    "FieldValue",
    "Record",
    "VALUE_COLUMN",
    "coerce_field",
    "engage_channels",
    "is_numeric_text",
    "parse_table",
]


FieldValue = Union[float, str, None]
Record = Mapping[str, FieldValue]

VALUE_COLUMN = "value"

_LINE_SPLIT = re.compile(r"\r?\n")


def is_numeric_text(text: str) -> bool:
    """Return ``True`` when ``text`` parses as a finite number."""

    try:
        number = float(text)
    except (TypeError, ValueError):
        return False
    return math.isfinite(number)


def coerce_field(text: str | None) -> FieldValue:
    """Return a finite ``float`` for numeric text, else the trimmed text."""

    if text is None:
        return None
    stripped = text.strip()
    try:
        number = float(stripped)
    except ValueError:
        return stripped
    if not math.isfinite(number):
        return stripped
    return number


def _split_fields(line: str) -> list[str]:
    return [field.strip() for field in line.split(",")]


def _freeze(payload: dict[str, FieldValue]) -> Record:
    return MappingProxyType(payload)


def parse_table(text: str) -> Tuple[Record, ...]:
    """Parse ``text`` into one record per data line.

    The first line is treated as a header only when at least one of its
    comma separated fields is non-empty and non-numeric. Without a header
    every line becomes a single ``value`` column. Short rows leave the
    missing columns as ``None`` and extra fields are ignored.
    """

    stripped = text.strip()
    if not stripped:
        return ()
    lines = _LINE_SPLIT.split(stripped)
    headers = _split_fields(lines[0])
    has_header = any(field and not is_numeric_text(field) for field in headers)

    if not has_header:
        return tuple(_freeze({VALUE_COLUMN: coerce_field(line)}) for line in lines)

    records: list[Record] = []
    for line in lines[1:]:
        columns = _split_fields(line)
        payload: dict[str, FieldValue] = {}
        for position, header in enumerate(headers):
            raw = columns[position] if position < len(columns) else None
            payload[header] = coerce_field(raw)
        records.append(_freeze(payload))
    return tuple(records)


def engage_channels(records: Sequence[Record], channels: Iterable[str]) -> Tuple[Record, ...]:
    """Keep only the engaged ``channels`` of every record.

    Tables parsed without a header expose a single ``value`` column and are
    returned unchanged, since their columns are not addressable by name.
    """

    engaged = set(channels)
    if not records:
        return ()
    if all(tuple(record.keys()) == (VALUE_COLUMN,) for record in records):
        return tuple(records)
    return tuple(
        _freeze({key: value for key, value in record.items() if key in engaged})
        for record in records
    )
