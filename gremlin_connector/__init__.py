# gremlin_connector/__init__.py
# SPDX-License-Identifier: Apache-2.0

"""
Gremlin Connector - Public API

ORM-style data access over a remote Gremlin server. All public types are
re-exported here for clean imports.
"""

from gremlin_connector.gremlin_base import (
    # Error types
    ConnectorError,
    ValidationError,
    MissingReference,
    InvalidReferenceFormat,
    UnsupportedOperator,
    UnsupportedType,
    InvalidExecutionMode,
    TransactionNotFound,
    TransportError,

    # Options, metrics and settings
    ExecutionMode,
    OperationOptions,
    MetricsSink,
    NoopMetrics,
    RetryPolicy,
    ConnectorSettings,
)
from gremlin_connector.models import (
    ModelKind,
    PropertyType,
    PropertyDescriptor,
    ModelDescriptor,
    ModelRegistry,
)
from gremlin_connector.builder import QueryBuilder
from gremlin_connector.connection import GremlinConnection, DriverGremlinConnection
from gremlin_connector.execution import ExecutionEngine, RetryDecision, classify_error
from gremlin_connector.transactions import TransactionRegistry, TransactionState
from gremlin_connector.connector import GremlinConnector

__all__ = [
    "ConnectorError",
    "ValidationError",
    "MissingReference",
    "InvalidReferenceFormat",
    "UnsupportedOperator",
    "UnsupportedType",
    "InvalidExecutionMode",
    "TransactionNotFound",
    "TransportError",
    "ExecutionMode",
    "OperationOptions",
    "MetricsSink",
    "NoopMetrics",
    "RetryPolicy",
    "ConnectorSettings",
    "ModelKind",
    "PropertyType",
    "PropertyDescriptor",
    "ModelDescriptor",
    "ModelRegistry",
    "QueryBuilder",
    "GremlinConnection",
    "DriverGremlinConnection",
    "ExecutionEngine",
    "RetryDecision",
    "classify_error",
    "TransactionRegistry",
    "TransactionState",
    "GremlinConnector",
]

__version__ = "0.1.0"
