# gremlin_connector/connector.py
# SPDX-License-Identifier: Apache-2.0
"""
Gremlin Connector - public CRUD surface

Purpose
-------
ORM-facing operations (create, all/find, count, destroy, replace, update,
pseudo-transactions, raw execute) over a remote Gremlin server. Each call
builds exactly one traversal per submission with ``QueryBuilder`` and hands
it to ``ExecutionEngine``; results come back as plain dicts keyed by
application field names.

Transactions
------------
With ``options={"transaction": tx_id}`` a mutation is chained onto the
transaction's pending traversal instead of being submitted, and the call
returns without a server result (``create`` → None, ``update_all`` →
``{"count": None}``). ``commit`` submits the accumulated traversal once.
Reads never join a transaction.

Example
-------
    async with GremlinConnector.from_settings({"url": "wss://db:8182/gremlin"},
                                               models=[person]) as db:
        pid = await db.create("Person", {"name": "Ada", "age": 36})
        rows = await db.all("Person", {"where": {"age": {"gt": 30}},
                                       "order": "age DESC"})
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Union

from gremlin_python.process.graph_traversal import GraphTraversal
from gremlin_python.process.traversal import Bytecode

from gremlin_connector.builder import QueryBuilder, projection_fields
from gremlin_connector.connection import DriverGremlinConnection, GremlinConnection
from gremlin_connector.execution import ExecutionEngine
from gremlin_connector.gremlin_base import (
    ConnectorError,
    ConnectorSettings,
    ExecutionMode,
    MetricsSink,
    NoopMetrics,
    OperationOptions,
    ValidationError,
)
from gremlin_connector.models import ModelDescriptor, ModelRegistry
from gremlin_connector.properties import from_storage_fields
from gremlin_connector.transactions import TransactionRegistry

LOG = logging.getLogger(__name__)

Options = Union[OperationOptions, Mapping[str, Any], None]


class GremlinConnector:
    """
    Async data-access connector for one Gremlin datasource.

    Model registry, type cache and transaction registry are instance state;
    two connectors never share any of them.
    """

    _component = "gremlin"

    def __init__(
        self,
        settings: Optional[ConnectorSettings] = None,
        models: Iterable[Any] = (),
        *,
        connection: Optional[GremlinConnection] = None,
        metrics: Optional[MetricsSink] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ) -> None:
        self._settings = settings or ConnectorSettings()
        self._registry = ModelRegistry()
        for model in models:
            self._registry.register(model)
        self._connection: GremlinConnection = connection or DriverGremlinConnection(self._settings)
        self._metrics: MetricsSink = metrics or NoopMetrics()
        self._builder = QueryBuilder(self._registry)
        self._transactions = TransactionRegistry(timeout_ms=self._settings.transaction_timeout_ms)
        self._engine = ExecutionEngine(
            self._connection,
            self._registry,
            self._transactions,
            metrics=self._metrics,
            sleep=sleep or asyncio.sleep,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Mapping[str, Any]] = None,
        models: Iterable[Any] = (),
        **kw: Any,
    ) -> "GremlinConnector":
        """Build from an ORM datasource mapping (environment fallbacks apply)."""
        return cls(ConnectorSettings.from_mapping(settings), models, **kw)

    @property
    def models(self) -> ModelRegistry:
        return self._registry

    @property
    def transactions(self) -> TransactionRegistry:
        return self._transactions

    def register_model(self, model: Any) -> ModelDescriptor:
        return self._registry.register(model)

    # ---- lifecycle ------------------------------------------------------

    async def __aenter__(self) -> "GremlinConnector":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def connect(self) -> None:
        open_ = getattr(self._connection, "open", None)
        if open_ is not None:
            await open_()

    async def close(self) -> None:
        """Discard open transactions and close the connection."""
        self._transactions.clear()
        await self._connection.close()

    # ---- create ---------------------------------------------------------

    async def create(self, model: str, record: Mapping[str, Any], options: Options = None) -> Any:
        """Create a vertex or edge; returns its id (None inside a transaction)."""
        LOG.debug("Create: %s", model)
        opts = OperationOptions.coerce(options)

        async def call() -> Any:
            traversal = self._builder.build_create(model, record, self._source(opts))
            result = await self._engine.execute(model, traversal, opts, ExecutionMode.NEXT)
            return result.get("id") if isinstance(result, Mapping) else None

        return await self._instrumented("create", call, model)

    async def save(self, model: str, record: Mapping[str, Any], options: Options = None) -> None:
        """Full overwrite of the element named by ``record[id]``."""
        descriptor = self._registry.get(model)
        await self.replace_by_id(model, record.get(descriptor.id_field), record, options)

    # ---- reads ----------------------------------------------------------

    async def all(
        self,
        model: str,
        filter: Optional[Mapping[str, Any]] = None,
        options: Options = None,
    ) -> List[Dict[str, Any]]:
        """Records matching ``filter`` as dicts keyed by application field names."""
        LOG.debug("All: %s", model)
        opts = OperationOptions.coerce(options)

        async def call() -> List[Dict[str, Any]]:
            descriptor = self._registry.get(model)
            # a bare label scan would yield element references only
            query = filter or {"where": {}}
            traversal = self._builder.build_query(model, query, self._connection.g)
            rows = await self._engine.execute(
                model, traversal, OperationOptions(parse=opts.parse, request_id=opts.request_id)
            )
            if not opts.parse:
                return rows
            fields = projection_fields(query)
            return [self._to_record(descriptor, row, fields) for row in rows or []]

        return await self._instrumented("all", call, model)

    find = all

    async def find_one(self, model: str, filter: Optional[Mapping[str, Any]] = None) -> Optional[Dict[str, Any]]:
        rows = await self.all(model, {**(filter or {}), "limit": 1, "skip": 0})
        return rows[0] if rows else None

    async def find_by_id(
        self,
        model: str,
        id: Any,
        filter: Optional[Mapping[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        descriptor = self._registry.get(model)
        _require_id(id)
        query = {**(filter or {}), "where": {descriptor.id_field: id}, "limit": 1, "skip": 0}
        rows = await self.all(model, query)
        return rows[0] if rows else None

    async def exists(self, model: str, id: Any) -> bool:
        LOG.debug("Exists: %s", model)

        async def call() -> bool:
            traversal = self._builder.build_exists(model, id, self._connection.g)
            result = await self._engine.execute(model, traversal, None, ExecutionMode.NEXT)
            return int(result or 0) > 0

        return await self._instrumented("exists", call, model)

    async def count(self, model: str, where: Any = None, options: Options = None) -> int:
        LOG.debug("Count: %s", model)

        async def call() -> int:
            traversal = self._builder.build_count(model, where, self._connection.g)
            result = await self._engine.execute(model, traversal, None, ExecutionMode.NEXT)
            return int(result or 0)

        return await self._instrumented("count", call, model)

    # ---- destroy --------------------------------------------------------

    async def destroy_all(self, model: str, where: Any = None, options: Options = None) -> Dict[str, Any]:
        """
        Count, then drop the matches unless there are none.

        The count is always taken outside any transaction, against the
        committed graph.
        """
        LOG.debug("Destroy all: %s", model)
        opts = OperationOptions.coerce(options)
        matched = await self.count(model, where)
        if matched == 0:
            return {"count": 0}

        async def call() -> Dict[str, Any]:
            traversal = self._builder.build_drop(model, where, self._source(opts))
            await self._engine.execute(model, traversal, opts, ExecutionMode.ITERATE)
            return {"count": matched}

        return await self._instrumented("destroy_all", call, model)

    async def destroy_by_id(self, model: str, id: Any, options: Options = None) -> Dict[str, Any]:
        descriptor = self._registry.get(model)
        _require_id(id)
        return await self.destroy_all(model, {descriptor.id_field: id}, options)

    # ---- replace / update -----------------------------------------------

    async def replace_by_id(
        self,
        model: str,
        id: Any,
        record: Mapping[str, Any],
        options: Options = None,
    ) -> None:
        """Drop every property of the element and write ``record`` in their place."""
        LOG.debug("Replace by id: %s", model)
        _require_id(id)
        opts = OperationOptions.coerce(options)

        async def call() -> None:
            traversal = self._builder.build_replace(model, id, record, self._source(opts))
            await self._engine.execute(model, traversal, opts, ExecutionMode.ITERATE)

        await self._instrumented("replace_by_id", call, model)

    async def update_all(
        self,
        model: str,
        where: Any,
        record: Mapping[str, Any],
        options: Options = None,
    ) -> Dict[str, Any]:
        """Rewrite only the named fields on every match; returns the match count."""
        LOG.debug("Update all: %s", model)
        opts = OperationOptions.coerce(options)

        async def call() -> Dict[str, Any]:
            traversal = self._builder.build_update(model, where, record, self._source(opts))
            result = await self._engine.execute(model, traversal, opts, ExecutionMode.NEXT)
            if opts.transaction:
                return {"count": None}
            return {"count": int(result or 0)}

        return await self._instrumented("update_all", call, model)

    update = update_all

    # ---- transactions ---------------------------------------------------

    async def begin_transaction(self, *, timeout_ms: Optional[int] = None) -> str:
        return self._transactions.begin(timeout_ms=timeout_ms)

    async def commit(self, tx_id: str) -> None:
        async def submit(traversal: Any) -> Any:
            return await self._engine.submit_once(traversal, ExecutionMode.ITERATE)

        async def call() -> None:
            await self._transactions.commit(tx_id, submit)

        await self._instrumented("commit", call)

    async def rollback(self, tx_id: str) -> None:
        self._transactions.rollback(tx_id)

    # ---- raw ------------------------------------------------------------

    async def execute(
        self,
        traversal: Any,
        options: Options = None,
        mode: Union[ExecutionMode, str] = ExecutionMode.TO_LIST,
    ) -> Any:
        """Run a caller-built traversal. No model context, so never retried."""

        async def call() -> Any:
            return await self._engine.execute(None, traversal, options, mode)

        return await self._instrumented("execute", call)

    # ---- internal helpers -----------------------------------------------

    def _source(self, opts: OperationOptions) -> Any:
        """
        Start point for a mutation: the traversal source, or a copy of the
        transaction's pending traversal.

        Pending steps may leave zero or many traversers (``drop`` / a
        multi-match replace), so a ``fold()`` barrier collapses them to one
        before the next mutation starts.
        """
        if not opts.transaction:
            return self._connection.g
        pending = self._transactions.pending(opts.transaction)
        if pending is None:
            return self._connection.g
        copy = GraphTraversal(pending.graph, pending.traversal_strategies, Bytecode(pending.bytecode))
        return copy.fold()

    @staticmethod
    def _to_record(
        model: ModelDescriptor,
        row: Any,
        fields: Optional[List[str]],
    ) -> Dict[str, Any]:
        if not isinstance(row, Mapping):
            return row
        record = from_storage_fields(model, row)
        if model.id_field not in record and "id" in row:
            record[model.id_field] = row["id"]
        if model.is_edge:
            for key in ("from", "to"):
                if key in row and key not in record:
                    record[key] = row[key]
        if fields is not None:
            record = {k: v for k, v in record.items() if k in fields}
        return record

    async def _instrumented(
        self,
        op: str,
        call: Callable[[], Awaitable[Any]],
        model: Optional[str] = None,
    ) -> Any:
        extra = {"model": model} if model else {}
        t0 = time.monotonic()
        try:
            result = await call()
            self._record(op, t0, True, **extra)
            return result
        except ConnectorError as e:
            self._record(op, t0, False, code=e.code or type(e).__name__, **extra)
            raise
        except Exception as e:
            self._record(op, t0, False, code=type(e).__name__, **extra)
            raise

    def _record(self, op: str, t0: float, ok: bool, *, code: str = "OK", **extra: Any) -> None:
        try:
            ms = (time.monotonic() - t0) * 1000.0
            self._metrics.observe(
                component=self._component,
                op=op,
                ms=ms,
                ok=ok,
                code=code,
                extra=dict(extra) or None,
            )
        except Exception:
            # never let metrics break caller
            pass


def _require_id(id: Any) -> None:
    if id is None or id == "":
        raise ValidationError("ID is required")


__all__ = ["GremlinConnector"]
