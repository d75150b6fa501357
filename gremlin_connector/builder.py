# gremlin_connector/builder.py
# SPDX-License-Identifier: Apache-2.0
"""
Query / mutation builder.

Turns a model name plus an ORM filter or payload into one traversal. Every
method takes the ``source`` to start from: the connection's traversal source,
or the pending traversal of an open pseudo-transaction so that mutations
chain onto it.

Validation happens before the first step is appended; a builder method
either raises or returns a complete traversal.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from gremlin_python.process.graph_traversal import __
from gremlin_python.process.traversal import Order

from gremlin_connector.gremlin_base import (
    InvalidReferenceFormat,
    MissingReference,
    ValidationError,
)
from gremlin_connector.models import ModelDescriptor, ModelRegistry
from gremlin_connector.properties import (
    serialize_value,
    to_storage_fields,
    write_properties,
)
from gremlin_connector.where import build_where, field_resolver

LOG = logging.getLogger(__name__)

EDGE_REFERENCE_FIELDS = ("from", "to")


def parse_reference(value: Any, name: str) -> Tuple[str, str]:
    """Split an edge endpoint reference ``"Model/id"``."""
    if value is None or value == "":
        raise MissingReference(
            "Edge entity requires FROM and TO fields!", details={"field": name}
        )
    parts = str(value).split("/")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise InvalidReferenceFormat(
            f"Relational field {name.upper()} must be MODEL/ID format",
            details={"field": name},
        )
    return parts[0], parts[1]


def parse_order(order: Any) -> List[Tuple[str, Order]]:
    """Normalize ``"field DIR"`` strings or ``(field, dir)`` pairs."""
    entries = order if isinstance(order, (list, tuple)) and not _is_pair(order) else [order]
    result: List[Tuple[str, Order]] = []
    for entry in entries:
        if isinstance(entry, str):
            parts = entry.split()
        elif _is_pair(entry):
            parts = [entry[0], entry[1]]
        else:
            raise ValidationError("order entries must be 'field ASC|DESC' strings")
        if not parts or len(parts) > 2:
            raise ValidationError(f"invalid order entry {entry!r}")
        direction = parts[1].lower() if len(parts) == 2 else "asc"
        if direction not in ("asc", "desc"):
            raise ValidationError(f"invalid order direction {parts[1]!r}")
        result.append((parts[0], Order.desc if direction == "desc" else Order.asc))
    return result


def _is_pair(value: Any) -> bool:
    return (
        isinstance(value, tuple)
        and len(value) == 2
        and isinstance(value[1], str)
        and value[1].lower() in ("asc", "desc")
    )


def _non_negative(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{name} must be a non-negative integer", details={name: value})
    return value


def projection_fields(filter: Mapping[str, Any]) -> Optional[List[str]]:
    """Explicit field list of a filter, or None when every field is projected."""
    fields = filter.get("fields")
    if fields is None:
        return None
    if isinstance(fields, Mapping):
        names = [k for k, keep in fields.items() if keep]
    elif isinstance(fields, str):
        names = [fields]
    else:
        names = list(fields)
    # an empty list selects nothing explicitly, so every field is projected
    return names or None


class QueryBuilder:
    """Builds traversals for registered models."""

    def __init__(self, registry: ModelRegistry) -> None:
        self._registry = registry

    # ---- reads ----------------------------------------------------------

    def build_query(self, model_name: str, filter: Optional[Mapping[str, Any]], source: Any) -> Any:
        LOG.debug("Query builder: %s", model_name)
        model = self._registry.get(model_name)

        if not filter:
            root = source.E() if model.is_edge else source.V()
            return root.has_label(model.name)

        fields = projection_fields(filter)
        order = parse_order(filter["order"]) if filter.get("order") else []
        if fields is not None:
            for name, _ in order:
                if name not in fields:
                    raise ValidationError(f'Field "{name}" must be in field list!')
        skip = _non_negative("skip", filter["skip"]) if filter.get("skip") is not None else None
        limit = _non_negative("limit", filter["limit"]) if filter.get("limit") is not None else None

        projected = model.field_names if fields is None else fields
        traversal = build_where(source, model, filter.get("where") or {})
        traversal = traversal.element_map(*self._storage_keys(model, projected))

        if order:
            resolve = field_resolver(model)
            traversal = traversal.order()
            for name, direction in order:
                traversal = traversal.by(resolve(name), direction)

        if skip is not None:
            traversal = traversal.skip(skip)
        if limit is not None:
            traversal = traversal.limit(limit)
        return traversal

    def build_count(self, model_name: str, where: Any, source: Any) -> Any:
        return build_where(source, self._registry.get(model_name), where).count()

    def build_exists(self, model_name: str, id: Any, source: Any) -> Any:
        """Id lookup reduced to a 0/1 count; nothing is projected."""
        model = self._registry.get(model_name)
        return build_where(source, model, {model.id_field: id}).limit(1).count()

    def build_drop(self, model_name: str, where: Any, source: Any) -> Any:
        return build_where(source, self._registry.get(model_name), where).drop()

    # ---- writes ---------------------------------------------------------

    def build_create(self, model_name: str, record: Mapping[str, Any], source: Any) -> Any:
        model = self._registry.get(model_name)
        types = self._registry.derive_types(model_name)
        data = to_storage_fields(model, dict(record))

        if not model.is_edge:
            LOG.debug("Create vertex: %s", model.name)
            return write_properties(source.add_v(model.name), model, types, data)

        LOG.debug("Create edge: %s", model.name)
        from_model, from_id = parse_reference(data.get("from"), "from")
        to_model, to_id = parse_reference(data.get("to"), "to")
        traversal = (
            source.V(from_id)
            .has_label(from_model)
            .add_e(model.name)
            .to(__.V(to_id).has_label(to_model))
        )
        return write_properties(traversal, model, types, data, ignore=EDGE_REFERENCE_FIELDS)

    def build_replace(self, model_name: str, id: Any, record: Mapping[str, Any], source: Any) -> Any:
        """Drop every property of the element, then write ``record``."""
        model = self._registry.get(model_name)
        types = self._registry.derive_types(model_name)
        data = self._payload(model, record)

        traversal = build_where(source, model, {model.id_field: id})
        traversal = traversal.side_effect(__.properties().drop())
        ignore = (model.id_field,) + EDGE_REFERENCE_FIELDS
        return write_properties(traversal, model, types, data, ignore=ignore)

    def build_update(self, model_name: str, where: Any, record: Mapping[str, Any], source: Any) -> Any:
        """Drop and rewrite only the named fields, then count the touched elements."""
        model = self._registry.get(model_name)
        types = self._registry.derive_types(model_name)
        data = self._payload(model, record)
        data.pop(model.id_field, None)

        columns = {prop.column_name or name: name for name, prop in model.properties.items()}
        writes: List[Tuple[str, Any]] = []
        for key, value in data.items():
            writes.append((key, serialize_value(types.get(columns.get(key, key)), value)))

        traversal = build_where(source, model, where)
        for key, value in writes:
            traversal = traversal.side_effect(__.properties(key).drop()).property(key, value)
        return traversal.count()

    # ---- helpers --------------------------------------------------------

    @staticmethod
    def _payload(model: ModelDescriptor, record: Mapping[str, Any]) -> Dict[str, Any]:
        data = dict(record)
        if model.is_edge:
            for key in EDGE_REFERENCE_FIELDS:
                data.pop(key, None)
        return to_storage_fields(model, data)

    @staticmethod
    def _storage_keys(model: ModelDescriptor, names: Sequence[str]) -> List[str]:
        # the element id is always part of an elementMap
        return [model.column_for(n) or n for n in names if n != model.id_field]


__all__ = ["QueryBuilder", "parse_reference", "parse_order", "projection_fields"]
