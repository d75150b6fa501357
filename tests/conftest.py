# SPDX-License-Identifier: Apache-2.0
"""
Shared fixtures for the Gremlin connector tests.

Everything runs against ``MockGremlinConnection``: no server is needed. The
fixture graph is small and fixed so compiled where-clauses can be checked
against a plain Python evaluation of the same filter.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

import pytest

from gremlin_connector import (
    ConnectorSettings,
    GremlinConnector,
    ModelRegistry,
)
from tests.mock.mock_gremlin_connection import MockGremlinConnection


PERSON = {
    "name": "Person",
    "settings": {"type": "vertex", "retry": {"max": 3, "delay": 100}},
    "properties": {
        "id": {"type": "String", "id": True},
        "name": "String",
        "age": "Number",
        "active": "Boolean",
        "email": {"type": "String", "neptune": {"columnName": "email_address"}},
        "profile": "Object",
    },
}

COMPANY = {
    "name": "Company",
    "settings": {"type": "vertex"},
    "properties": {
        "id": {"type": "String", "id": True},
        "name": "String",
        "founded": "Number",
    },
}

KNOWS = {
    "name": "Knows",
    "settings": {"type": "edge", "retry": {"max": 2, "delay": 25}},
    "properties": {
        "id": {"type": "String", "id": True},
        "from": "String",
        "to": "String",
        "since": "Number",
    },
}

MODELS = (PERSON, COMPANY, KNOWS)

PEOPLE: List[Dict[str, Any]] = [
    {"id": "p1", "name": "Ada", "age": 36, "active": True, "email_address": "ada@example.com"},
    {"id": "p2", "name": "Grace", "age": 45, "active": False, "email_address": "grace@navy.mil"},
    {"id": "p3", "name": "Alan", "age": 41, "active": True, "email_address": "alan@example.com"},
    {"id": "p4", "name": "Barbara", "age": 29, "active": True, "email_address": "barbara@mit.edu"},
    {"id": "p5", "name": "Edsger", "age": 72, "active": False, "email_address": "edsger@utexas.edu"},
    {"id": "p6", "name": "Donald", "age": 55, "active": True, "email_address": "don@stanford.edu"},
]


class SleepRecorder:
    """Stand-in for ``asyncio.sleep`` that records requested delays."""

    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class RecordingMetrics:
    """MetricsSink collecting observations and counters in memory."""

    def __init__(self) -> None:
        self.observations: List[Dict[str, Any]] = []
        self.counters: List[Dict[str, Any]] = []

    def observe(self, *, component: str, op: str, ms: float, ok: bool,
                code: str = "OK", extra: Optional[Mapping[str, Any]] = None) -> None:
        self.observations.append({"component": component, "op": op, "ok": ok, "code": code, "extra": extra})

    def counter(self, *, component: str, name: str, value: int = 1,
                extra: Optional[Mapping[str, Any]] = None) -> None:
        self.counters.append({"component": component, "name": name, "value": value, "extra": extra})


def seed_people(conn: MockGremlinConnection) -> None:
    for person in PEOPLE:
        props = {k: v for k, v in person.items() if k != "id"}
        conn.add_vertex("Person", id=person["id"], **props)


@pytest.fixture
def registry() -> ModelRegistry:
    reg = ModelRegistry()
    for model in MODELS:
        reg.register(model)
    return reg


@pytest.fixture
def conn() -> MockGremlinConnection:
    c = MockGremlinConnection()
    seed_people(c)
    c.add_vertex("Company", id="c1", name="Analytical Engines", founded=1834)
    c.add_edge("Knows", "p1", "p3", id="k1", since=1936)
    c.add_edge("Knows", "p2", "p1", id="k2", since=1952)
    return c


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def metrics() -> RecordingMetrics:
    return RecordingMetrics()


@pytest.fixture
def connector(conn: MockGremlinConnection, sleep: SleepRecorder, metrics: RecordingMetrics) -> GremlinConnector:
    settings = ConnectorSettings(url="ws://localhost:8182/gremlin", transaction_timeout_ms=5000)
    return GremlinConnector(settings, MODELS, connection=conn, metrics=metrics, sleep=sleep)
