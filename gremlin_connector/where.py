# gremlin_connector/where.py
# SPDX-License-Identifier: Apache-2.0
"""
Where-clause compiler.

Compilation runs in two passes so the grammar can be checked without a
traversal source:

1. ``parse_where`` turns the nested ORM filter into a small AST
   (``Compare``, ``And``, ``Or``) and raises for anything it cannot lower.
2. ``apply_where`` lowers the AST onto a traversal as ``has`` / ``or_`` /
   ``and_`` steps.

``build_where`` adds the root scope (label scan, or the id fast path).

Grammar
-------
- ``{"or": [clause, ...]}`` / ``{"and": [clause, ...]}``
- ``{field: scalar}``: implicit equality
- ``{field: {op: value, ...}}`` with op in eq, neq, gt, gte, lt, lte,
  between, inq, nin, like, nlike, ilike, nilike
- ``near`` and ``regexp`` raise UnsupportedOperator
- a list of clauses (or digit-string keys) are siblings, AND-ed in order
"""

from __future__ import annotations

import datetime as _dt
import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Mapping, Optional, Sequence, Tuple, Union

from gremlin_python.process.graph_traversal import GraphTraversal, __
from gremlin_python.process.traversal import P, T, TextP

from gremlin_connector.gremlin_base import UnsupportedOperator, ValidationError
from gremlin_connector.models import ModelDescriptor

LOG = logging.getLogger(__name__)

COMPARISON_OPERATORS = ("eq", "neq", "gt", "gte", "lt", "lte")
OPERATORS = frozenset(COMPARISON_OPERATORS + (
    "between", "inq", "nin", "like", "nlike", "ilike", "nilike",
))
UNSUPPORTED_OPERATORS = frozenset({"near", "regexp"})
LOGICAL_KEYS = frozenset({"and", "or"})

_SCALARS = (str, int, float, bool, _dt.datetime, _dt.date)


# =============================================================================
# AST
# =============================================================================

@dataclass(frozen=True)
class Compare:
    """
    One property test.

    ``field`` is a storage key, or ``T.id`` for the primary key.
    ``implicit`` marks plain ``{field: value}`` equality.
    """
    field: Any
    op: str
    value: Any
    implicit: bool = False


@dataclass(frozen=True)
class And:
    clauses: Tuple[Tuple["Node", ...], ...]


@dataclass(frozen=True)
class Or:
    clauses: Tuple[Tuple["Node", ...], ...]


Node = Union[Compare, And, Or]
FieldResolver = Callable[[str], Any]


def field_resolver(model: Optional[ModelDescriptor]) -> FieldResolver:
    """Map application field names to storage keys (``T.id`` for the primary key)."""
    id_field = model.id_field if model else "id"

    def resolve(name: str) -> Any:
        if name == id_field:
            return T.id
        if model is not None:
            return model.column_for(name) or name
        return name

    return resolve


# =============================================================================
# Pass 1: parse
# =============================================================================

def parse_where(where: Any, resolve: Optional[FieldResolver] = None) -> Tuple[Node, ...]:
    resolve = resolve or field_resolver(None)
    nodes: List[Node] = []
    _parse_clause(where, resolve, nodes)
    return tuple(nodes)


def _parse_clause(where: Any, resolve: FieldResolver, out: List[Node]) -> None:
    if where is None:
        return
    if isinstance(where, (list, tuple)):
        for sub in where:
            _parse_clause(sub, resolve, out)
        return
    if not isinstance(where, Mapping):
        raise ValidationError("where clause must be a mapping", details={"type": type(where).__name__})

    for key, value in where.items():
        if key in LOGICAL_KEYS:
            subs = value if isinstance(value, (list, tuple)) else [value]
            groups = tuple(parse_where(sub, resolve) for sub in subs)
            out.append(And(groups) if key == "and" else Or(groups))
        elif key in UNSUPPORTED_OPERATORS:
            raise UnsupportedOperator(f"{key.upper()} operator is not implemented on Gremlin!")
        elif key in OPERATORS:
            raise ValidationError(f"operator '{key}' must be nested under a field")
        elif _is_index(key):
            _parse_clause(value, resolve, out)
        elif isinstance(value, Mapping):
            _parse_operators(resolve(key), value, out)
        elif isinstance(value, _SCALARS):
            out.append(Compare(resolve(key), "eq", value, implicit=True))
        else:
            raise ValidationError(
                f"unsupported value for field '{key}'",
                details={"type": type(value).__name__},
            )


def _parse_operators(field: Any, ops: Mapping[str, Any], out: List[Node]) -> None:
    for op, value in ops.items():
        if op in UNSUPPORTED_OPERATORS:
            raise UnsupportedOperator(f"{op.upper()} operator is not implemented on Gremlin!")
        if op not in OPERATORS:
            raise ValidationError(f"unknown operator '{op}'")
        if value is None:
            raise ValidationError(f"operator '{op}' requires a value")
        if op == "between":
            if not isinstance(value, (list, tuple)) or len(value) != 2:
                raise ValidationError("between requires a [low, high] pair")
            value = (value[0], value[1])
        elif op in ("inq", "nin"):
            if not isinstance(value, (list, tuple, set, frozenset)):
                raise ValidationError(f"{op} requires a list of values")
            value = list(value)
        out.append(Compare(field, op, value))


def _is_index(key: Any) -> bool:
    if isinstance(key, bool):
        return False
    return isinstance(key, int) or (isinstance(key, str) and key.isdigit())


# =============================================================================
# Pass 2: lower
# =============================================================================

def predicate(node: Compare) -> Any:
    op = node.op
    if op in COMPARISON_OPERATORS:
        return getattr(P, op)(node.value)
    if op == "between":
        low, high = node.value
        return P.between(low, high)
    if op == "inq":
        return P.within(list(node.value))
    if op == "nin":
        return P.without(list(node.value))
    if op in ("like", "ilike"):
        return TextP.containing(node.value)
    if op in ("nlike", "nilike"):
        return TextP.not_containing(node.value)
    raise ValidationError(f"unknown operator '{op}'")


def anonymous() -> GraphTraversal:
    """Fresh anonymous child traversal (the ``__`` start)."""
    return __.start()


def apply_where(traversal: Any, nodes: Sequence[Node]) -> Any:
    for node in nodes:
        if isinstance(node, Compare):
            traversal = traversal.has(node.field, node.value if node.implicit else predicate(node))
            continue
        if not node.clauses:
            continue
        children = [_lower_group(group) for group in node.clauses]
        traversal = traversal.or_(*children) if isinstance(node, Or) else traversal.and_(*children)
    return traversal


def _lower_group(group: Sequence[Node]) -> GraphTraversal:
    if not group:
        return anonymous().identity()
    return apply_where(anonymous(), group)


# =============================================================================
# Root scope
# =============================================================================

def is_id_lookup(where: Any, id_field: str = "id") -> bool:
    """True for exactly ``{id_field: <scalar>}``."""
    return (
        isinstance(where, Mapping)
        and len(where) == 1
        and id_field in where
        and isinstance(where[id_field], _SCALARS)
    )


def build_where(source: Any, model: ModelDescriptor, where: Any = None) -> Any:
    """
    Scope ``source`` to ``model`` and attach the compiled where clause.

    ``source`` is the traversal source, or a pending transaction traversal
    that new steps are chained onto. The label is asserted even on the id
    fast path since ids may collide across models.
    """
    LOG.debug("Build where: %s", model.name)
    if is_id_lookup(where, model.id_field):
        value = where[model.id_field]
        root = source.E(value) if model.is_edge else source.V(value)
        return root.has_label(model.name)

    nodes = parse_where(where or {}, field_resolver(model))
    root = (source.E() if model.is_edge else source.V()).has_label(model.name)
    return apply_where(root, nodes)


__all__ = [
    "Compare", "And", "Or", "Node", "OPERATORS", "UNSUPPORTED_OPERATORS",
    "parse_where", "apply_where", "build_where", "predicate", "anonymous",
    "field_resolver", "is_id_lookup",
]
