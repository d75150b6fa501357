# SPDX-License-Identifier: Apache-2.0
"""
Connector CRUD surface against the mock graph.

Asserts:
  • create returns the element id; edges resolve their endpoints
  • reads map storage columns back to field names and honor fields / order / paging
  • destroy counts first and skips the drop when nothing matches
  • replace overwrites every property, update touches only the named fields
  • transient failures are retried through the public surface; raw execute is not
  • every public operation reports a metrics observation
"""
import pytest

from gremlin_connector import (
    GremlinConnector,
    MissingReference,
    ValidationError,
)
from tests.mock.mock_gremlin_connection import CONCURRENT_MODIFICATION, server_error

pytestmark = pytest.mark.asyncio


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------

async def test_create_vertex_with_id(connector: GremlinConnector, conn):
    pid = await connector.create("Person", {"id": "p9", "name": "Zed", "age": "30", "email": "z@z"})

    assert pid == "p9"
    assert conn.vertices["p9"].props == {"name": "Zed", "age": 30, "email_address": "z@z"}


async def test_create_vertex_generated_id(connector: GremlinConnector, conn):
    cid = await connector.create("Company", {"name": "Difference Engines"})
    assert conn.vertices[cid].label == "Company"


async def test_create_edge(connector: GremlinConnector, conn):
    eid = await connector.create("Knows", {"from": "Person/p4", "to": "Company/c1", "since": 1999})

    edge = conn.edges[eid]
    assert (edge.out_v.id, edge.in_v.id, edge.props) == ("p4", "c1", {"since": 1999})


async def test_create_edge_without_reference(connector: GremlinConnector, conn, metrics):
    with pytest.raises(MissingReference):
        await connector.create("Knows", {"from": "Person/p4"})
    assert conn.submissions == []
    assert metrics.observations[-1]["code"] == "MISSING_REFERENCE"


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------

async def test_all_maps_columns_back(connector: GremlinConnector):
    rows = await connector.all("Person", {"where": {"id": "p1"}})
    assert rows == [{"id": "p1", "name": "Ada", "age": 36, "active": True, "email": "ada@example.com"}]


async def test_all_without_filter_returns_records(connector: GremlinConnector):
    rows = await connector.all("Person")
    assert len(rows) == 6
    assert all("name" in row and "id" in row for row in rows)


async def test_empty_field_list_returns_complete_records(connector: GremlinConnector):
    rows = await connector.all("Person", {"where": {"id": "p1"}, "fields": []})
    assert rows == [{"id": "p1", "name": "Ada", "age": 36, "active": True, "email": "ada@example.com"}]


async def test_zero_limit_returns_no_rows(connector: GremlinConnector):
    assert await connector.all("Person", {"limit": 0}) == []


async def test_find_with_where_order_and_paging(connector: GremlinConnector):
    rows = await connector.find(
        "Person",
        {"where": {"age": {"gt": 40}}, "fields": ["name", "age"], "order": "age DESC", "skip": 1, "limit": 2},
    )
    assert rows == [{"name": "Donald", "age": 55}, {"name": "Grace", "age": 45}]


async def test_find_with_or_and_like(connector: GremlinConnector):
    rows = await connector.all(
        "Person",
        {"where": {"or": [{"email": {"like": "example.com"}}, {"age": {"gte": 70}}]}, "order": "name"},
    )
    assert [r["name"] for r in rows] == ["Ada", "Alan", "Edsger"]


async def test_all_edges_expose_references(connector: GremlinConnector):
    rows = await connector.all("Knows", {"order": "since ASC"})
    assert rows == [
        {"id": "k1", "from": "Person/p1", "to": "Person/p3", "since": 1936},
        {"id": "k2", "from": "Person/p2", "to": "Person/p1", "since": 1952},
    ]


async def test_find_one_and_find_by_id(connector: GremlinConnector):
    youngest = await connector.find_one("Person", {"order": "age ASC"})
    assert youngest["name"] == "Barbara"

    grace = await connector.find_by_id("Person", "p2", {"fields": ["name"]})
    assert grace == {"name": "Grace"}

    assert await connector.find_by_id("Person", "nobody") is None
    with pytest.raises(ValidationError, match="ID is required"):
        await connector.find_by_id("Person", None)


async def test_exists(connector: GremlinConnector):
    assert await connector.exists("Person", "p1") is True
    assert await connector.exists("Person", "c1") is False
    assert await connector.exists("Company", "c1") is True


async def test_exists_counts_without_projection(connector: GremlinConnector, conn):
    assert await connector.exists("Person", "p2") is True
    assert conn.submissions[-1].step_names == ["V", "hasLabel", "limit", "count"]


async def test_count(connector: GremlinConnector):
    assert await connector.count("Person") == 6
    assert await connector.count("Person", {"active": True}) == 4
    assert await connector.count("Person", {"age": {"between": [30, 50]}}) == 3


async def test_reads_never_join_transactions(connector: GremlinConnector, conn):
    tx = await connector.begin_transaction()
    rows = await connector.all("Person", {"where": {"id": "p1"}}, {"transaction": tx})
    assert rows[0]["name"] == "Ada"
    assert connector.transactions.pending(tx) is None
    await connector.rollback(tx)


# ---------------------------------------------------------------------------
# Destroy
# ---------------------------------------------------------------------------

async def test_destroy_all_counts_then_drops(connector: GremlinConnector, conn):
    assert await connector.destroy_all("Person", {"active": False}) == {"count": 2}
    assert set(conn.vertices) == {"p1", "p3", "p4", "p6", "c1"}
    assert [s.step_names[-1] for s in conn.submissions] == ["count", "drop"]


async def test_destroy_all_skips_drop_when_nothing_matches(connector: GremlinConnector, conn):
    assert await connector.destroy_all("Person", {"name": "Nobody"}) == {"count": 0}
    assert len(conn.submissions) == 1


async def test_destroy_by_id(connector: GremlinConnector, conn):
    assert await connector.destroy_by_id("Knows", "k2") == {"count": 1}
    assert "k2" not in conn.edges
    with pytest.raises(ValidationError):
        await connector.destroy_by_id("Knows", "")


# ---------------------------------------------------------------------------
# Replace / update
# ---------------------------------------------------------------------------

async def test_replace_by_id_overwrites_everything(connector: GremlinConnector, conn):
    await connector.replace_by_id("Person", "p1", {"id": "p1", "name": "Ada Lovelace"})
    assert conn.vertices["p1"].props == {"name": "Ada Lovelace"}


async def test_save_replaces_by_record_id(connector: GremlinConnector, conn):
    await connector.save("Person", {"id": "p3", "name": "Alan T", "age": "42"})
    assert conn.vertices["p3"].props == {"name": "Alan T", "age": 42}


async def test_replace_edge_keeps_endpoints(connector: GremlinConnector, conn):
    await connector.replace_by_id("Knows", "k1", {"from": "Person/p6", "to": "Person/p6", "since": 1940})
    edge = conn.edges["k1"]
    assert (edge.out_v.id, edge.in_v.id, edge.props) == ("p1", "p3", {"since": 1940})


async def test_update_all_touches_only_named_fields(connector: GremlinConnector, conn):
    before = {vid: dict(v.props) for vid, v in conn.vertices.items()}

    result = await connector.update_all("Person", {"active": True}, {"age": "50"})

    assert result == {"count": 4}
    for vid, vertex in conn.vertices.items():
        expected = dict(before[vid])
        if vertex.label == "Person" and before[vid].get("active") is True:
            expected["age"] = 50
        assert vertex.props == expected


async def test_update_renamed_field_and_boolean(connector: GremlinConnector, conn):
    assert await connector.update("Person", {"id": "p2"}, {"email": "grace@example.com", "active": "true"}) == {"count": 1}
    assert conn.vertices["p2"].props["email_address"] == "grace@example.com"
    assert conn.vertices["p2"].props["active"] is True
    assert "email" not in conn.vertices["p2"].props


async def test_update_no_match_counts_zero(connector: GremlinConnector):
    assert await connector.update_all("Person", {"name": "Nobody"}, {"age": 1}) == {"count": 0}


# ---------------------------------------------------------------------------
# Retry, raw execute, metrics, lifecycle
# ---------------------------------------------------------------------------

async def test_transient_failure_retried_through_connector(connector: GremlinConnector, conn, sleep, metrics):
    conn.fail_next(server_error(CONCURRENT_MODIFICATION))

    assert await connector.count("Person") == 6
    assert sleep.calls == [0.1]
    assert [c["name"] for c in metrics.counters] == ["retries"]


async def test_raw_execute_is_never_retried(connector: GremlinConnector, conn, sleep):
    conn.fail_next(server_error(CONCURRENT_MODIFICATION))
    with pytest.raises(Exception):
        await connector.execute(conn.g.V().count(), mode="next")
    assert len(conn.submissions) == 1
    assert sleep.calls == []

    assert await connector.execute(conn.g.V().has_label("Company").count(), mode="next") == 1


async def test_metrics_observations(connector: GremlinConnector, metrics):
    await connector.count("Person")
    obs = metrics.observations[-1]
    assert (obs["component"], obs["op"], obs["ok"], obs["code"]) == ("gremlin", "count", True, "OK")
    assert obs["extra"] == {"model": "Person"}


async def test_unknown_model(connector: GremlinConnector):
    with pytest.raises(ValidationError, match="Unknown model"):
        await connector.all("Nope")


async def test_register_model_at_runtime(connector: GremlinConnector, conn):
    connector.register_model({"name": "City", "properties": {"id": {"type": "String", "id": True}, "name": "String"}})
    cid = await connector.create("City", {"id": "x1", "name": "London"})
    assert await connector.find_by_id("City", cid) == {"id": "x1", "name": "London"}


async def test_async_context_manager_closes(connector: GremlinConnector, conn):
    async with connector as db:
        assert await db.count("Company") == 1
    assert conn.closed
