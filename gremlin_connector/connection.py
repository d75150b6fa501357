# gremlin_connector/connection.py
# SPDX-License-Identifier: Apache-2.0
"""
Connection layer between the execution engine and gremlinpython.

``GremlinConnection`` is the contract the engine needs: a traversal source
to build against, an awaitable ``submit``, and ``reconnect`` for transport
failures. ``DriverGremlinConnection`` implements it over
``DriverRemoteConnection``.

Traversals are re-bound to the current traversal source on every submit,
so a retry after ``reconnect`` goes out over the new socket even though the
traversal was built against the old one.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, Optional, Protocol, runtime_checkable

from gremlin_python.driver.driver_remote_connection import DriverRemoteConnection
from gremlin_python.driver.protocol import GremlinServerError
from gremlin_python.process.anonymous_traversal import traversal
from gremlin_python.process.graph_traversal import GraphTraversal, GraphTraversalSource
from gremlin_python.process.traversal import Bytecode

from gremlin_connector.gremlin_base import (
    ConnectorError,
    ConnectorSettings,
    ExecutionMode,
    TransportError,
)

LOG = logging.getLogger(__name__)


@runtime_checkable
class GremlinConnection(Protocol):
    """What the execution engine requires from the connection layer."""

    @property
    def g(self) -> GraphTraversalSource:
        ...

    async def submit(self, traversal: Any, mode: ExecutionMode) -> Any:
        ...

    async def reconnect(self) -> None:
        ...

    async def close(self) -> None:
        ...


def _first(t: Any) -> Any:
    items = t.next(1)
    return items[0] if items else None


_COMPLETERS: Dict[ExecutionMode, Callable[[Any], Any]] = {
    ExecutionMode.TO_LIST: lambda t: t.to_list(),
    ExecutionMode.NEXT: _first,
    ExecutionMode.ITERATE: lambda t: None,
}


class DriverGremlinConnection:
    """
    GremlinConnection over a websocket ``DriverRemoteConnection``.

    Opening and closing run on a worker thread: the driver's transport
    drives its own event loop and must not be started from inside ours.
    """

    def __init__(self, settings: ConnectorSettings) -> None:
        self._settings = settings
        self._remote: Optional[DriverRemoteConnection] = None
        self._g: Optional[GraphTraversalSource] = None

    @property
    def g(self) -> GraphTraversalSource:
        if self._g is None:
            raise ConnectorError("connection is not open", code="NOT_CONNECTED")
        return self._g

    @property
    def is_open(self) -> bool:
        return self._remote is not None

    def _open_sync(self) -> None:
        url = self._settings.resolve_url()
        kwargs: Dict[str, Any] = {}
        if self._settings.user and self._settings.password:
            kwargs["username"] = self._settings.user
            kwargs["password"] = self._settings.password
        if self._settings.headers:
            kwargs["headers"] = dict(self._settings.headers)
        LOG.info("Opening Gremlin connection (auth=%s)", bool(kwargs.get("username")))
        self._remote = DriverRemoteConnection(url, self._settings.traversal_source, **kwargs)
        self._g = traversal().with_remote(self._remote)

    def _close_sync(self) -> None:
        remote, self._remote, self._g = self._remote, None, None
        if remote is not None:
            LOG.info("Closing Gremlin connection")
            remote.close()

    async def open(self) -> None:
        if self._remote is None:
            await asyncio.to_thread(self._open_sync)

    async def close(self) -> None:
        await asyncio.to_thread(self._close_sync)

    async def reconnect(self) -> None:
        LOG.info("Reconnecting Gremlin connection")
        try:
            await self.close()
        except Exception as e:  # noqa: BLE001
            # the socket is already unusable; a failed close must not block reopening
            LOG.warning("Error while closing Gremlin connection: %r", e)
        await self.open()

    async def submit(self, traversal: Any, mode: ExecutionMode) -> Any:
        bound = GraphTraversal(self.g.graph, self.g.traversal_strategies, Bytecode(traversal.bytecode))
        try:
            future = bound.promise(_COMPLETERS[mode])
            return await asyncio.wrap_future(future)
        except (GremlinServerError, ConnectorError):
            raise
        except Exception as e:  # noqa: BLE001
            raise TransportError(str(e) or type(e).__name__) from e


__all__ = ["GremlinConnection", "DriverGremlinConnection"]
