"""Normalize raw rows from any backend into canonical records.

Rows arrive with whatever key spelling the backend produced: lower-camel
from the local blobs and Firestore, snake_case or all-lowercase from
Postgres. Every function here is pure and never raises; malformed input
degrades to field defaults.
"""

import dataclasses
import math
from collections.abc import Mapping
from enum import Enum
from typing import Any

from bizdesk.models.enums import EntityType
from bizdesk.models.records import (
    ENUM,
    FLOAT,
    INT,
    RECORD_TYPES,
    RECORDS,
    STR_LIST,
    Record,
    to_wire,
)


def candidate_keys(f: dataclasses.Field) -> list[str]:  # type: ignore[type-arg]
    """Ordered keys to try for a field: wire, snake, lowercase, then aliases."""
    wire = f.metadata["wire"]
    keys: list[str] = []
    for key in (wire, f.name, wire.lower(), *f.metadata["aliases"]):
        if key not in keys:
            keys.append(key)
    return keys


def _lookup(row: Mapping[str, Any], f: dataclasses.Field) -> tuple[bool, Any]:  # type: ignore[type-arg]
    for key in candidate_keys(f):
        if key in row and row[key] is not None:
            return True, row[key]
    return False, None


def to_number(value: Any, default: float = 0.0) -> float:
    """Coerce numbers and numeric strings; anything else yields ``default``."""
    if isinstance(value, bool) or value is None:
        return default
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return default
    else:
        return default
    return number if math.isfinite(number) else default


def coerce_enum(enum_cls: type[Enum], value: Any) -> Any:
    """Return the enum member matching ``value``, or the raw string.

    Exact value match first, then case-insensitive. Unknown values are
    passed through unchanged so a newer remote vocabulary is not lost.
    """
    if isinstance(value, enum_cls):
        return value
    text = value.value if isinstance(value, Enum) else str(value)
    try:
        return enum_cls(text)
    except ValueError:
        pass
    folded = text.casefold()
    for member in enum_cls:
        if str(member.value).casefold() == folded:
            return member
    return text


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    result: list[str] = []
    for item in value:
        if item is None or isinstance(item, (dict, list)):
            continue
        text = str(item)
        if text not in result:
            result.append(text)
    return result


def _coerce(f: dataclasses.Field, value: Any) -> Any:  # type: ignore[type-arg]
    kind = f.metadata["kind"]
    if kind == FLOAT:
        return to_number(value, f.default)
    if kind == INT:
        return int(to_number(value, f.default))
    if kind == STR_LIST:
        return _str_list(value)
    if kind == ENUM:
        # A blank enum column reads as unset
        if isinstance(value, str) and not value.strip():
            return f.default
        return coerce_enum(f.metadata["enum"], value)
    if kind == RECORDS:
        if not isinstance(value, list):
            return []
        item_cls = f.metadata["item"]
        return [map_record(item_cls, item) for item in value if isinstance(item, Mapping)]
    if isinstance(value, (dict, list)):
        return f.default
    return str(value)


def map_record(record_cls: type[Record], row: Any) -> Any:
    """Build a ``record_cls`` instance from a raw row, filling defaults."""
    if isinstance(row, record_cls):
        return row
    if isinstance(row, Record):
        row = row.to_dict()
    if not isinstance(row, Mapping):
        return record_cls()
    values: dict[str, Any] = {}
    for f in dataclasses.fields(record_cls):  # type: ignore[arg-type]
        found, raw = _lookup(row, f)
        if found:
            values[f.name] = _coerce(f, raw)
    return record_cls(**values)


def map_row(entity_type: EntityType, row: Any) -> Any:
    """Map one raw row of ``entity_type`` to its canonical record."""
    return map_record(RECORD_TYPES[EntityType(entity_type)], row)


def map_rows(entity_type: EntityType, rows: Any) -> list[Any]:
    """Map a list of raw rows; a non-list yields an empty list."""
    if not isinstance(rows, list):
        return []
    return [map_row(entity_type, row) for row in rows]


def to_row(record: Record) -> dict[str, Any]:
    """Canonical record to wire dict."""
    return record.to_dict()


def partial_to_row(entity_type: EntityType, partial: Any) -> dict[str, Any]:
    """Normalize a partial record to wire keys, keeping only provided fields.

    Accepts a canonical record or a mapping keyed by any supported spelling.
    An empty ``id`` is dropped so the backend can assign one.
    """
    record_cls = RECORD_TYPES[EntityType(entity_type)]
    if isinstance(partial, Record):
        row = partial.to_dict()
    elif isinstance(partial, Mapping):
        row = {}
        for f in dataclasses.fields(record_cls):  # type: ignore[arg-type]
            found, raw = _lookup(partial, f)
            if found:
                row[f.metadata["wire"]] = to_wire(_coerce(f, raw))
    else:
        row = {}
    if not row.get("id"):
        row.pop("id", None)
    return row

