# SPDX-License-Identifier: Apache-2.0
"""
Pseudo-transactions - registry lifecycle and connector accumulation.

Asserts:
  • begin / commit / rollback / expiry transitions; first terminal event wins
  • commit submits the accumulated traversal exactly once, in iterate mode
  • mutations under a transaction are chained and invisible until commit
  • commit failures surface and are not retried
"""
import asyncio

import pytest

from gremlin_connector import (
    ExecutionMode,
    GremlinConnector,
    TransactionNotFound,
    TransactionRegistry,
    ValidationError,
)
from tests.mock.mock_gremlin_connection import CONCURRENT_MODIFICATION, server_error

pytestmark = pytest.mark.asyncio


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

async def test_begin_and_rollback_is_idempotent():
    reg = TransactionRegistry()
    tx = reg.begin()
    assert tx in reg
    assert reg.pending(tx) is None

    reg.rollback(tx)
    reg.rollback(tx)
    assert tx not in reg
    assert len(reg) == 0


async def test_commit_unknown_transaction():
    reg = TransactionRegistry()

    async def submit(traversal):
        raise AssertionError("must not submit")

    with pytest.raises(TransactionNotFound, match="Transaction Expired or Does Not Exist"):
        await reg.commit("missing", submit)


async def test_commit_submits_pending_once():
    reg = TransactionRegistry()
    submitted = []

    async def submit(traversal):
        submitted.append(traversal)

    tx = reg.begin()
    reg.store(tx, "first")
    reg.store(tx, "second")
    await reg.commit(tx, submit)

    assert submitted == ["second"]
    assert tx not in reg
    with pytest.raises(TransactionNotFound):
        await reg.commit(tx, submit)


async def test_commit_without_mutations_is_noop():
    reg = TransactionRegistry()

    async def submit(traversal):
        raise AssertionError("must not submit")

    tx = reg.begin()
    await reg.commit(tx, submit)
    assert tx not in reg


async def test_expiry_discards_transaction():
    reg = TransactionRegistry(timeout_ms=20)
    tx = reg.begin()
    reg.store(tx, "pending")

    await asyncio.sleep(0.08)

    assert tx not in reg
    with pytest.raises(TransactionNotFound):
        reg.store(tx, "late")
    reg.rollback(tx)


async def test_commit_cancels_expiry_timer():
    reg = TransactionRegistry(timeout_ms=20)
    tx = reg.begin()
    record = reg.get(tx)
    timer = record.timer

    async def submit(traversal):
        return None

    await reg.commit(tx, submit)
    assert timer.cancelled()


async def test_per_transaction_timeout_override():
    reg = TransactionRegistry(timeout_ms=60_000)
    tx = reg.begin(timeout_ms=10)
    await asyncio.sleep(0.05)
    assert tx not in reg


async def test_timeout_must_be_positive():
    with pytest.raises(ValidationError):
        TransactionRegistry(timeout_ms=0)


# ---------------------------------------------------------------------------
# Through the connector
# ---------------------------------------------------------------------------

async def test_creates_accumulate_until_commit(connector: GremlinConnector, conn):
    tx = await connector.begin_transaction()

    assert await connector.create("Person", {"id": "t1", "name": "Tx One"}, {"transaction": tx}) is None
    assert await connector.create("Person", {"id": "t2", "name": "Tx Two"}, {"transaction": tx}) is None
    assert "t1" not in conn.vertices
    assert conn.submissions == []

    await connector.commit(tx)

    assert conn.vertices["t1"].props == {"name": "Tx One"}
    assert conn.vertices["t2"].props == {"name": "Tx Two"}
    assert len(conn.submissions) == 1
    commit = conn.submissions[0]
    assert commit.mode is ExecutionMode.ITERATE
    assert commit.step_names.count("addV") == 2


async def test_mixed_mutations_in_one_transaction(connector: GremlinConnector, conn):
    tx = {"transaction": await connector.begin_transaction()}

    await connector.create("Person", {"id": "t3", "name": "Tx Three", "age": 20}, tx)
    assert await connector.update_all("Person", {"id": "p2"}, {"age": 46}, tx) == {"count": None}
    assert await connector.destroy_by_id("Person", "p5", tx) == {"count": 1}
    await connector.create("Knows", {"from": "Person/p1", "to": "Person/p2", "since": 2001}, tx)

    # nothing applied before commit; destroy only counted
    assert "p5" in conn.vertices
    assert conn.vertices["p2"].props["age"] == 45

    await connector.commit(tx["transaction"])

    assert conn.vertices["t3"].props["age"] == 20
    assert conn.vertices["p2"].props["age"] == 46
    assert "p5" not in conn.vertices
    assert any(e.out_v.id == "p1" and e.in_v.id == "p2" for e in conn.edges.values())


async def test_rollback_discards_pending(connector: GremlinConnector, conn):
    tx = await connector.begin_transaction()
    await connector.create("Person", {"id": "t9", "name": "Gone"}, {"transaction": tx})
    await connector.rollback(tx)

    with pytest.raises(TransactionNotFound):
        await connector.commit(tx)
    assert "t9" not in conn.vertices
    assert conn.submissions == []


async def test_commit_failure_is_not_retried(connector: GremlinConnector, conn, sleep):
    tx = await connector.begin_transaction()
    await connector.create("Person", {"id": "t4", "name": "Fails"}, {"transaction": tx})
    conn.fail_next(server_error(CONCURRENT_MODIFICATION))

    with pytest.raises(Exception) as exc:
        await connector.commit(tx)

    assert "ConcurrentModificationException" in exc.value.status_message
    assert len(conn.submissions) == 1
    assert sleep.calls == []
    assert tx not in connector.transactions


async def test_mutation_after_expiry_fails(connector: GremlinConnector, conn):
    tx = await connector.begin_transaction(timeout_ms=10)
    await asyncio.sleep(0.05)

    with pytest.raises(TransactionNotFound):
        await connector.create("Person", {"name": "Late"}, {"transaction": tx})
    with pytest.raises(TransactionNotFound):
        await connector.commit(tx)


async def test_close_discards_open_transactions(connector: GremlinConnector, conn):
    tx = await connector.begin_transaction()
    await connector.close()
    assert tx not in connector.transactions
    assert conn.closed
