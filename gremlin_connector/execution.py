# gremlin_connector/execution.py
# SPDX-License-Identifier: Apache-2.0
"""
Execution engine: submit, normalize, retry.

Retries are sequential: one outstanding submission per call, resubmitted
after the model's fixed delay while the failure stays retryable and the
model's budget is not used up. Exhaustion re-raises the last error as is.

Retryable failures are recognized by message text (``status_message`` of a
``GremlinServerError`` / ``TransportError``, else ``str(err)``):

- ``ConcurrentModificationException``: optimistic-concurrency collision
- ``ReadOnlyViolationException``: request routed to a read replica
- ``WebSocket is not open``: dead socket; reconnect before retrying

Anything else, and any failure without a model context, is surfaced at once.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

from gremlin_connector.connection import GremlinConnection
from gremlin_connector.gremlin_base import (
    ConnectorError,
    ExecutionMode,
    MetricsSink,
    NoopMetrics,
    OperationOptions,
    TransportError,
)
from gremlin_connector.models import ModelDescriptor, ModelRegistry
from gremlin_connector.normalize import normalize_result
from gremlin_connector.transactions import TransactionRegistry

LOG = logging.getLogger(__name__)

RETRYABLE_MARKERS = ("ConcurrentModificationException", "ReadOnlyViolationException")
RECONNECT_MARKER = "WebSocket is not open"


@dataclass(frozen=True)
class RetryDecision:
    retryable: bool
    reconnect: bool = False


NOT_RETRYABLE = RetryDecision(retryable=False)


def error_message(err: BaseException) -> Optional[str]:
    msg = getattr(err, "status_message", None)
    if isinstance(msg, str):
        return msg
    return str(err) or None


def classify_error(err: BaseException, model: Optional[ModelDescriptor]) -> RetryDecision:
    if model is None:
        return NOT_RETRYABLE
    # connector-side validation never reaches the server
    if isinstance(err, ConnectorError) and not isinstance(err, TransportError):
        return NOT_RETRYABLE
    msg = error_message(err)
    if not msg:
        return NOT_RETRYABLE
    if any(marker in msg for marker in RETRYABLE_MARKERS):
        return RetryDecision(retryable=True)
    if RECONNECT_MARKER in msg:
        return RetryDecision(retryable=True, reconnect=True)
    return NOT_RETRYABLE


class ExecutionEngine:
    """
    Submits traversals on behalf of the connector.

    ``sleep`` is the retry-delay primitive (``asyncio.sleep`` unless a test
    injects a recorder).
    """

    _component = "gremlin"

    def __init__(
        self,
        connection: GremlinConnection,
        registry: ModelRegistry,
        transactions: TransactionRegistry,
        *,
        metrics: Optional[MetricsSink] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._connection = connection
        self._registry = registry
        self._transactions = transactions
        self._metrics: MetricsSink = metrics or NoopMetrics()
        self._sleep = sleep

    async def execute(
        self,
        model_name: Optional[str],
        traversal: Any,
        options: Union[OperationOptions, Mapping[str, Any], None] = None,
        mode: Union[ExecutionMode, str] = ExecutionMode.TO_LIST,
    ) -> Any:
        """
        Run ``traversal`` and return the normalized result.

        With ``options.transaction`` set the traversal becomes that
        transaction's pending traversal and nothing is submitted.
        """
        mode = ExecutionMode.parse(mode)
        opts = OperationOptions.coerce(options)
        LOG.debug("Execute: model=%s mode=%s request_id=%s", model_name, mode.value, opts.request_id)

        if opts.transaction:
            self._transactions.store(opts.transaction, traversal)
            return None

        model = self._registry.get(model_name) if model_name else None
        raw = await self._submit_with_retry(model_name, traversal, mode)

        if mode is ExecutionMode.ITERATE:
            return None
        if not opts.parse:
            return raw
        return normalize_result(raw, edge=bool(model and model.is_edge))

    async def submit_once(self, traversal: Any, mode: Union[ExecutionMode, str]) -> Any:
        """Single submission, no retry (transaction commit)."""
        return await self._connection.submit(traversal, ExecutionMode.parse(mode))

    async def _submit_with_retry(self, model_name: Optional[str], traversal: Any, mode: ExecutionMode) -> Any:
        retries = 0
        while True:
            try:
                return await self._connection.submit(traversal, mode)
            except Exception as err:
                # budget and delay are re-read on every decision
                model = self._registry.get(model_name) if model_name else None
                decision = classify_error(err, model)
                if model is None or not decision.retryable or retries >= model.retry.max_attempts:
                    raise
                if decision.reconnect:
                    try:
                        await self._connection.reconnect()
                    except Exception as reconnect_err:
                        LOG.warning("Reconnect failed for %s: %r", model.name, reconnect_err)
                        raise err
                retries += 1
                LOG.warning(
                    "Retrying %s after transient failure (%d/%d): %s",
                    model.name, retries, model.retry.max_attempts, type(err).__name__,
                )
                self._count_retry(model.name)
                await self._sleep(model.retry.delay_ms / 1000.0)

    def _count_retry(self, model_name: str) -> None:
        try:
            self._metrics.counter(component=self._component, name="retries", extra={"model": model_name})
        except Exception:
            # never let metrics break caller
            pass


__all__ = ["ExecutionEngine", "RetryDecision", "classify_error", "error_message"]
