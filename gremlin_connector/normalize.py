# gremlin_connector/normalize.py
# SPDX-License-Identifier: Apache-2.0
"""
Result normalization.

Strips driver shapes (``T``/``Direction`` enum keys, ``Vertex``/``Edge``/
``Property`` objects, traversers, paths, sets) into plain dicts, lists and
scalars. Pure: the input is never mutated and no global state is touched,
so concurrent normalizations are independent.
"""

from __future__ import annotations

import enum
from typing import Any, Dict, List, Mapping

from gremlin_python.process.traversal import Traverser
from gremlin_python.structure.graph import Edge, Element, Path, Property, VertexProperty

ENDPOINT_KEYS = ("IN", "OUT")


def normalize(value: Any) -> Any:
    if isinstance(value, Traverser):
        return normalize(value.object)
    if isinstance(value, Mapping):
        return {_key(k): normalize(v) for k, v in value.items()}
    if isinstance(value, VertexProperty):
        return normalize(value.value)
    if isinstance(value, Edge):
        return {
            "id": normalize(value.id),
            "label": value.label,
            "OUT": _element_ref(value.outV),
            "IN": _element_ref(value.inV),
        }
    if isinstance(value, Element):
        return _element_ref(value)
    if isinstance(value, Property):
        return normalize(value.value)
    if isinstance(value, Path):
        return [normalize(v) for v in value.objects]
    if isinstance(value, (list, tuple, set, frozenset)):
        return [normalize(v) for v in value]
    if isinstance(value, enum.Enum):
        return value.name
    return value


def _key(key: Any) -> Any:
    return key.name if isinstance(key, enum.Enum) else key


def _element_ref(element: Element) -> Dict[str, Any]:
    return {"id": normalize(element.id), "label": element.label}


def collapse_edge(record: Mapping[str, Any]) -> Dict[str, Any]:
    """Replace ``IN``/``OUT`` endpoint maps with ``to``/``from`` = ``"Label/id"``."""
    result = {k: v for k, v in record.items() if k not in ENDPOINT_KEYS and k != "label"}
    out_v, in_v = record.get("OUT"), record.get("IN")
    if isinstance(out_v, Mapping):
        result["from"] = f"{out_v.get('label')}/{out_v.get('id')}"
    if isinstance(in_v, Mapping):
        result["to"] = f"{in_v.get('label')}/{in_v.get('id')}"
    return result


def normalize_result(raw: Any, *, edge: bool = False) -> Any:
    """
    Normalize a raw driver result.

    Top-level records of a list lose their ``label`` (it is the model name);
    with ``edge=True`` endpoint maps are collapsed into references.
    """
    data = normalize(raw)
    if isinstance(data, list):
        return [_record(item, edge) for item in data]
    if edge and isinstance(data, dict):
        return collapse_edge(data)
    return data


def _record(item: Any, edge: bool) -> Any:
    if not isinstance(item, dict):
        return item
    if edge and any(k in item for k in ENDPOINT_KEYS):
        return collapse_edge(item)
    item.pop("label", None)
    return item


__all__ = ["normalize", "normalize_result", "collapse_edge"]
