# gremlin_connector/transactions.py
# SPDX-License-Identifier: Apache-2.0
"""
Pseudo-transaction registry.

A transaction is a client-side holder for one pending traversal, submitted
on commit. It is not an ACID transaction on the server.

States
------
OPEN -> COMMITTED | ROLLED_BACK | EXPIRED. Terminal states remove the record,
so whichever of commit / rollback / expiry happens first wins; a later
commit fails with TransactionNotFound, a later rollback is a no-op.

Mutations issued under an open id are chained onto the pending traversal by
the builder and the result replaces it (last write wins).
"""

from __future__ import annotations

import asyncio
import enum
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from gremlin_connector.gremlin_base import (
    DEFAULT_TRANSACTION_TIMEOUT_MS,
    TransactionNotFound,
    ValidationError,
)

LOG = logging.getLogger(__name__)


class TransactionState(str, enum.Enum):
    OPEN = "open"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    EXPIRED = "expired"


@dataclass
class TransactionRecord:
    id: str
    traversal: Any = None
    timer: Optional[asyncio.TimerHandle] = None
    state: TransactionState = TransactionState.OPEN

    def finish(self, state: TransactionState) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None
        self.state = state


class TransactionRegistry:
    """Open transactions of one connector, keyed by id."""

    def __init__(self, *, timeout_ms: int = DEFAULT_TRANSACTION_TIMEOUT_MS) -> None:
        if timeout_ms <= 0:
            raise ValidationError("transaction timeout must be positive")
        self._timeout_ms = int(timeout_ms)
        self._records: Dict[str, TransactionRecord] = {}

    def __contains__(self, tx_id: object) -> bool:
        return tx_id in self._records

    def __len__(self) -> int:
        return len(self._records)

    def begin(self, *, timeout_ms: Optional[int] = None) -> str:
        """Open a transaction and arm its expiry timer. Needs a running loop."""
        loop = asyncio.get_running_loop()
        tx_id = str(uuid.uuid4())
        record = TransactionRecord(id=tx_id)
        delay_s = (timeout_ms or self._timeout_ms) / 1000.0
        record.timer = loop.call_later(delay_s, self._expire, tx_id)
        self._records[tx_id] = record
        LOG.debug("Begin transaction: %s", tx_id)
        return tx_id

    def get(self, tx_id: str) -> TransactionRecord:
        try:
            return self._records[tx_id]
        except KeyError:
            raise TransactionNotFound(
                "Transaction Expired or Does Not Exist", details={"transaction": tx_id}
            ) from None

    def pending(self, tx_id: str) -> Any:
        """Pending traversal of an open transaction (None before the first mutation)."""
        return self.get(tx_id).traversal

    def store(self, tx_id: str, traversal: Any) -> None:
        self.get(tx_id).traversal = traversal
        LOG.debug("Stored pending traversal for transaction %s", tx_id)

    async def commit(self, tx_id: str, submit: Callable[[Any], Awaitable[Any]]) -> None:
        """
        Remove the record and submit its pending traversal once.

        Submission failures propagate; the record is gone either way since
        the traversal may already have had side effects.
        """
        LOG.debug("Commit: %s", tx_id)
        record = self._records.pop(tx_id, None)
        if record is None:
            raise TransactionNotFound(
                "Transaction Expired or Does Not Exist", details={"transaction": tx_id}
            )
        record.finish(TransactionState.COMMITTED)
        if record.traversal is None:
            return None
        await submit(record.traversal)
        return None

    def rollback(self, tx_id: str) -> None:
        LOG.debug("Rollback: %s", tx_id)
        record = self._records.pop(tx_id, None)
        if record is not None:
            record.finish(TransactionState.ROLLED_BACK)

    def _expire(self, tx_id: str) -> None:
        record = self._records.pop(tx_id, None)
        if record is not None:
            record.timer = None
            record.finish(TransactionState.EXPIRED)
            LOG.info("Transaction %s expired before commit; discarded", tx_id)

    def clear(self) -> None:
        """Roll back everything (connector shutdown)."""
        for tx_id in list(self._records):
            self.rollback(tx_id)


__all__ = ["TransactionState", "TransactionRecord", "TransactionRegistry"]
