# gremlin_connector/properties.py
# SPDX-License-Identifier: Apache-2.0
"""
Field ↔ column mapping and type-directed property writes.
"""

from __future__ import annotations

import datetime as _dt
import json
import logging
from typing import Any, Collection, Dict, Mapping, MutableMapping, Optional

from gremlin_python.process.traversal import T

from gremlin_connector.gremlin_base import UnsupportedType, ValidationError
from gremlin_connector.models import ModelDescriptor, PropertyType

LOG = logging.getLogger(__name__)

_TRUE_TEXT = frozenset({"true", "1"})
_FALSE_TEXT = frozenset({"false", "0"})


def to_storage_fields(model: ModelDescriptor, record: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    """Rename keys that have a configured column name, in place."""
    LOG.debug("Convert fields: %s", model.name)
    for key in list(record):
        column = model.column_for(key)
        if column and column != key:
            record[column] = record.pop(key)
    return record


def from_storage_fields(model: ModelDescriptor, record: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Project a storage record back onto declared fields.

    The column name wins when present; fields missing under both names are
    left out rather than filled with None.
    """
    LOG.debug("Revert fields: %s", model.name)
    result: Dict[str, Any] = {}
    for key in model.field_names:
        column = model.column_for(key)
        if column and column in record:
            result[key] = record[column]
        elif key in record:
            result[key] = record[key]
    return result


def coerce_number(value: Any) -> Any:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return float(text)
        except ValueError:
            pass
    raise ValidationError("value is not a number", details={"type": type(value).__name__})


def coerce_date(value: Any) -> _dt.datetime:
    """Accept a datetime/date, ISO-8601 text, or epoch milliseconds."""
    if isinstance(value, _dt.datetime):
        return value
    if isinstance(value, _dt.date):
        return _dt.datetime(value.year, value.month, value.day, tzinfo=_dt.timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return _dt.datetime.fromtimestamp(value / 1000.0, tz=_dt.timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return _dt.datetime.fromisoformat(text)
        except ValueError:
            pass
    raise ValidationError("value is not a date", details={"type": type(value).__name__})


def coerce_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_TEXT:
            return True
        if text in _FALSE_TEXT:
            return False
    raise ValidationError("value is not a boolean", details={"type": type(value).__name__})


def serialize_value(prop_type: Optional[PropertyType], value: Any) -> Any:
    """Coerce an application value into the scalar stored for ``prop_type``."""
    if prop_type in (PropertyType.OBJECT, PropertyType.ARRAY):
        return json.dumps(value, default=str)
    if prop_type is PropertyType.NUMBER:
        return coerce_number(value)
    if prop_type is PropertyType.DATE:
        return coerce_date(value)
    if prop_type is PropertyType.BOOLEAN:
        return coerce_boolean(value)
    if prop_type is PropertyType.STRING:
        return str(value)
    raise UnsupportedType(f"Type {prop_type} is not supported.")


def write_property(
    traversal: Any,
    prop_type: Optional[PropertyType],
    key: str,
    value: Any,
    ignore: Collection[str] = (),
    *,
    id_field: str = "id",
) -> Any:
    """
    Append one ``property()`` step and return the traversal.

    The primary-key field is written as ``T.id`` whatever its declared type.
    """
    if key in ignore:
        return traversal
    if key == id_field:
        return traversal.property(T.id, value)
    return traversal.property(key, serialize_value(prop_type, value))


def write_properties(
    traversal: Any,
    model: ModelDescriptor,
    types: Mapping[str, PropertyType],
    record: Mapping[str, Any],
    ignore: Collection[str] = (),
) -> Any:
    for key, value in record.items():
        traversal = write_property(
            traversal, _type_for(model, types, key), key, value, ignore, id_field=model.id_field
        )
    return traversal


def _type_for(model: ModelDescriptor, types: Mapping[str, PropertyType], key: str) -> Optional[PropertyType]:
    # records arrive already renamed to storage columns
    if key in types:
        return types[key]
    for name, prop in model.properties.items():
        if prop.column_name == key:
            return types.get(name)
    return None


__all__ = [
    "to_storage_fields", "from_storage_fields", "serialize_value",
    "write_property", "write_properties",
    "coerce_number", "coerce_date", "coerce_boolean",
]
