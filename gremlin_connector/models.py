# gremlin_connector/models.py
# SPDX-License-Identifier: Apache-2.0
"""
Model descriptors and the per-connector model registry.

A descriptor is derived once from an ORM-style definition::

    {
        "name": "Person",
        "settings": {"type": "vertex", "retry": {"max": 5, "delay": 50}},
        "properties": {
            "id": {"type": "String", "id": True},
            "name": {"type": "String", "neptune": {"columnName": "full_name"}},
            "age": "Number",
        },
    }

Property types may be given as names ("String", "number") or as Python
types (``str``, ``int``, ``float``, ``bool``, ``datetime``, ``dict``,
``list``). Anything else fails with UnsupportedType when the descriptor is
built, not on first write.
"""

from __future__ import annotations

import datetime as _dt
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from gremlin_connector.gremlin_base import (
    RetryPolicy,
    UnsupportedType,
    ValidationError,
)

LOG = logging.getLogger(__name__)


class ModelKind(str, enum.Enum):
    VERTEX = "vertex"
    EDGE = "edge"


class PropertyType(str, enum.Enum):
    """Closed set of semantic property types."""
    STRING = "String"
    NUMBER = "Number"
    BOOLEAN = "Boolean"
    DATE = "Date"
    OBJECT = "Object"
    ARRAY = "Array"

    @classmethod
    def resolve(cls, raw: Any) -> "PropertyType":
        """Map a type name or Python type onto a PropertyType."""
        if isinstance(raw, cls):
            return raw
        if isinstance(raw, type):
            for py_type, prop_type in _PYTHON_TYPES:
                if issubclass(raw, py_type):
                    return prop_type
            raise UnsupportedType(f"Type {raw.__name__} is not supported.")
        if isinstance(raw, (list, tuple)):
            # ORM shorthand: ["String"] declares an array property
            return cls.ARRAY
        if isinstance(raw, str):
            for member in cls:
                if member.value.lower() == raw.strip().lower():
                    return member
        raise UnsupportedType(f"Type {raw!r} is not supported.")


# bool before int: bool is a subclass of int
_PYTHON_TYPES: Tuple[Tuple[type, PropertyType], ...] = (
    (bool, PropertyType.BOOLEAN),
    (str, PropertyType.STRING),
    (int, PropertyType.NUMBER),
    (float, PropertyType.NUMBER),
    (_dt.datetime, PropertyType.DATE),
    (_dt.date, PropertyType.DATE),
    (dict, PropertyType.OBJECT),
    (list, PropertyType.ARRAY),
    (tuple, PropertyType.ARRAY),
)


@dataclass(frozen=True)
class PropertyDescriptor:
    type: PropertyType
    column_name: Optional[str] = None


@dataclass(frozen=True)
class ModelDescriptor:
    """
    Immutable description of one model.

    Attributes:
        name: Model name, also the vertex/edge label.
        kind: Vertex or edge.
        properties: Ordered field name → PropertyDescriptor.
        retry: Retry budget for transient storage failures.
        id_field: Name of the primary-key field.
    """
    name: str
    kind: ModelKind = ModelKind.VERTEX
    properties: Mapping[str, PropertyDescriptor] = field(default_factory=dict)
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    id_field: str = "id"

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise ValidationError("model name must be a non-empty string")

    @property
    def is_edge(self) -> bool:
        return self.kind is ModelKind.EDGE

    @property
    def field_names(self) -> Tuple[str, ...]:
        return tuple(self.properties)

    def column_for(self, name: str) -> Optional[str]:
        prop = self.properties.get(name)
        return prop.column_name if prop else None

    @classmethod
    def from_definition(cls, definition: Mapping[str, Any]) -> "ModelDescriptor":
        """Build a descriptor from an ORM-style model definition."""
        name = definition.get("name")
        settings = definition.get("settings") or {}
        try:
            kind = ModelKind(str(settings.get("type", "vertex")).lower())
        except ValueError:
            raise ValidationError(
                "model type must be 'vertex' or 'edge'",
                details={"model": name, "type": settings.get("type")},
            ) from None

        props: Dict[str, PropertyDescriptor] = {}
        id_field = "id"
        for key, prop in (definition.get("properties") or {}).items():
            if isinstance(prop, Mapping):
                raw_type = prop.get("type")
                column = (prop.get("neptune") or prop.get("gremlin") or {}).get("columnName")
                if prop.get("id") is True:
                    id_field = key
            else:
                raw_type, column = prop, None
            props[key] = PropertyDescriptor(type=PropertyType.resolve(raw_type), column_name=column)

        return cls(
            name=name,
            kind=kind,
            properties=props,
            retry=RetryPolicy.from_mapping(settings.get("retry")),
            id_field=id_field,
        )


class ModelRegistry:
    """
    Models known to one connector plus the lazily derived type cache.

    The type cache is populated on first access per model; an entry is
    only computed when absent and is dropped when its model is registered
    again.
    """

    def __init__(self, models: Iterable[ModelDescriptor] = ()) -> None:
        self._models: Dict[str, ModelDescriptor] = {}
        self._types: Dict[str, Dict[str, PropertyType]] = {}
        for model in models:
            self.register(model)

    def register(self, model: Any) -> ModelDescriptor:
        """Register a descriptor or an ORM-style definition mapping."""
        descriptor = model if isinstance(model, ModelDescriptor) else ModelDescriptor.from_definition(model)
        self._models[descriptor.name] = descriptor
        self._types.pop(descriptor.name, None)
        LOG.debug("Registered model %s (%s)", descriptor.name, descriptor.kind.value)
        return descriptor

    def get(self, name: str) -> ModelDescriptor:
        try:
            return self._models[name]
        except KeyError:
            raise ValidationError(f"Unknown model '{name}'", details={"model": name}) from None

    def __contains__(self, name: object) -> bool:
        return name in self._models

    def derive_types(self, name: str) -> Dict[str, PropertyType]:
        LOG.debug("Get model types: %s", name)
        cached = self._types.get(name)
        if cached is not None:
            return cached
        model = self.get(name)
        types = {key: prop.type for key, prop in model.properties.items()}
        self._types[name] = types
        return types


__all__ = ["ModelKind", "PropertyType", "PropertyDescriptor", "ModelDescriptor", "ModelRegistry"]
