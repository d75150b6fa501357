# gremlin_connector/gremlin_base.py
# SPDX-License-Identifier: Apache-2.0
"""
Gremlin Connector - shared contract (errors, options, metrics, settings)

Purpose
-------
The small, stable surface every other module of the connector builds on:

- Structured, normalized error taxonomy (machine-readable ``code`` + details)
- Per-call options (pseudo-transaction id, raw-result toggle)
- Execution completion modes for submitted traversals
- Metrics sink protocol with a no-op default
- Connection settings resolution (explicit URL, host/port, environment)

Deliberate Non-Goals
--------------------
- No IAM / SigV4 request signing; pre-signed headers may be passed through.
- No connection pooling, circuit breaking or rate limiting.
- No nested multi-valued properties.

Error Propagation
-----------------
Validation and unsupported-feature errors are raised before any network
submission and are never retried. Errors coming back from the Gremlin server
are surfaced unchanged (``GremlinServerError``); driver-level failures that
are not server errors are wrapped in ``TransportError`` so that they carry a
``status_message`` like server errors do.
"""

from __future__ import annotations

import enum
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Protocol, Union

LOG = logging.getLogger(__name__)

DEFAULT_PORT = 8182
DEFAULT_TRANSACTION_TIMEOUT_MS = 5000
DEFAULT_RETRY_MAX = 3
DEFAULT_RETRY_DELAY_MS = 100


# =============================================================================
# Normalized Errors
# =============================================================================

class ConnectorError(Exception):
    """
    Base exception for connector errors.

    Attributes:
        message: Human-readable description.
        code: Machine-readable, UPPER_SNAKE_CASE error code.
        details: Additional machine context (never record values).
    """
    def __init__(
        self,
        message: str = "",
        *,
        code: Optional[str] = None,
        details: Optional[Mapping[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = dict(details or {})

    def __str__(self) -> str:
        base = self.message or self.__class__.__name__
        if self.code:
            base += f" [code={self.code}]"
        if self.details:
            base += f" details={self.details}"
        return base


class ValidationError(ConnectorError):
    """Invalid id, filter, payload or model definition."""
    def __init__(self, message: str, **kw: Any):
        kw.setdefault("code", "VALIDATION_ERROR")
        super().__init__(message, **kw)


class MissingReference(ValidationError):
    """Edge payload without a ``from`` or ``to`` reference."""
    def __init__(self, message: str, **kw: Any):
        kw.setdefault("code", "MISSING_REFERENCE")
        super().__init__(message, **kw)


class InvalidReferenceFormat(ValidationError):
    """Edge reference not of the form ``model/id``."""
    def __init__(self, message: str, **kw: Any):
        kw.setdefault("code", "INVALID_REFERENCE_FORMAT")
        super().__init__(message, **kw)


class UnsupportedOperator(ConnectorError):
    """Where-clause operator with no Gremlin lowering (``near``, ``regexp``)."""
    def __init__(self, message: str, **kw: Any):
        kw.setdefault("code", "UNSUPPORTED_OPERATOR")
        super().__init__(message, **kw)


class UnsupportedType(ConnectorError):
    """Property type without a coercion rule."""
    def __init__(self, message: str, **kw: Any):
        kw.setdefault("code", "UNSUPPORTED_TYPE")
        super().__init__(message, **kw)


class InvalidExecutionMode(ConnectorError):
    """Completion mode other than to_list / next / iterate."""
    def __init__(self, message: str, **kw: Any):
        kw.setdefault("code", "INVALID_EXECUTION_MODE")
        super().__init__(message, **kw)


class TransactionNotFound(ConnectorError):
    """Transaction expired, already finished, or never started."""
    def __init__(self, message: str, **kw: Any):
        kw.setdefault("code", "TRANSACTION_NOT_FOUND")
        super().__init__(message, **kw)


class TransportError(ConnectorError):
    """
    Driver-level failure while talking to the server.

    ``status_message`` mirrors ``GremlinServerError.status_message`` so the
    retry classifier can inspect both kinds of failure the same way.
    """
    def __init__(self, message: str, *, status_message: Optional[str] = None, **kw: Any):
        kw.setdefault("code", "TRANSPORT_ERROR")
        super().__init__(message, **kw)
        self.status_message = status_message if status_message is not None else message


# =============================================================================
# Execution modes + per-call options
# =============================================================================

class ExecutionMode(str, enum.Enum):
    """How a submitted traversal is completed."""
    TO_LIST = "to_list"
    NEXT = "next"
    ITERATE = "iterate"

    @classmethod
    def parse(cls, mode: Union[str, "ExecutionMode", None]) -> "ExecutionMode":
        if isinstance(mode, cls):
            return mode
        aliases = {"toList": "to_list", "tolist": "to_list"}
        raw = aliases.get(mode, mode) if isinstance(mode, str) else mode
        try:
            return cls(raw)
        except ValueError:
            raise InvalidExecutionMode(
                "Invalid method, should be to_list, next or iterate",
                details={"mode": str(mode)},
            ) from None


@dataclass(frozen=True)
class OperationOptions:
    """
    Per-call options.

    Attributes:
        transaction: Id of an open pseudo-transaction. Mutations issued with
            it are accumulated instead of submitted.
        parse: When False, ``execute`` returns the raw driver result.
        request_id: Correlation id, only used in log lines.
    """
    transaction: Optional[str] = None
    parse: bool = True
    request_id: Optional[str] = None

    @classmethod
    def coerce(cls, options: Union["OperationOptions", Mapping[str, Any], None]) -> "OperationOptions":
        """
        Accept an ``OperationOptions``, ``None`` or an ORM-style mapping.

        Mapping form follows the ORM shim: ``{"transaction": "<id>"}`` or
        ``{"transaction": {"connection": "<id>"}}``.
        """
        if options is None:
            return cls()
        if isinstance(options, cls):
            return options
        if not isinstance(options, Mapping):
            raise ValidationError("options must be a mapping or OperationOptions")
        tx = options.get("transaction")
        if isinstance(tx, Mapping):
            tx = tx.get("connection")
        return cls(
            transaction=str(tx) if tx else None,
            parse=options.get("parse", True) is not False,
            request_id=options.get("request_id"),
        )


# =============================================================================
# Metrics
# =============================================================================

class MetricsSink(Protocol):
    """
    Metrics collection protocol (low-cardinality).
    """
    def observe(
        self,
        *,
        component: str,
        op: str,
        ms: float,
        ok: bool,
        code: str = "OK",
        extra: Optional[Mapping[str, Any]] = None,
    ) -> None:
        ...

    def counter(
        self,
        *,
        component: str,
        name: str,
        value: int = 1,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> None:
        ...


class NoopMetrics:
    def observe(self, **_: Any) -> None:
        ...
    def counter(self, **_: Any) -> None:
        ...


# =============================================================================
# Settings
# =============================================================================

@dataclass(frozen=True)
class RetryPolicy:
    """
    Per-model retry budget.

    Attributes:
        max_attempts: Retries allowed after the first submission.
        delay_ms: Fixed wait before each retry.
    """
    max_attempts: int = DEFAULT_RETRY_MAX
    delay_ms: int = DEFAULT_RETRY_DELAY_MS

    def __post_init__(self) -> None:
        if self.max_attempts < 0:
            raise ValidationError("retry max_attempts must be >= 0")
        if self.delay_ms < 0:
            raise ValidationError("retry delay_ms must be >= 0")

    @classmethod
    def from_mapping(cls, raw: Optional[Mapping[str, Any]]) -> "RetryPolicy":
        """Read ``{"max": n, "delay": ms}``; falsy values fall back to defaults."""
        raw = raw or {}
        return cls(
            max_attempts=int(raw.get("max") or DEFAULT_RETRY_MAX),
            delay_ms=int(raw.get("delay") or DEFAULT_RETRY_DELAY_MS),
        )


@dataclass(frozen=True)
class ConnectorSettings:
    """
    Connection and connector-wide settings.

    ``url`` wins over ``host``/``port``; ``secure`` selects ``wss`` vs ``ws``.
    """
    url: Optional[str] = None
    host: Optional[str] = None
    port: int = DEFAULT_PORT
    secure: bool = True
    user: Optional[str] = None
    password: Optional[str] = None
    headers: Mapping[str, str] = field(default_factory=dict)
    traversal_source: str = "g"
    transaction_timeout_ms: int = DEFAULT_TRANSACTION_TIMEOUT_MS

    def __post_init__(self) -> None:
        if self.transaction_timeout_ms <= 0:
            raise ValidationError("transaction_timeout_ms must be positive")

    @classmethod
    def from_mapping(cls, settings: Optional[Mapping[str, Any]] = None) -> "ConnectorSettings":
        """
        Build settings from an ORM datasource mapping with environment fallbacks
        (GREMLIN_URL, GREMLIN_HOST, GREMLIN_PORT, GREMLIN_USER, GREMLIN_PASSWORD).
        """
        s: Dict[str, Any] = dict(settings or {})
        timeout = s.get("transaction_timeout_ms", s.get("transactionClearTimeout"))
        return cls(
            url=s.get("url") or os.getenv("GREMLIN_URL"),
            host=s.get("host") or os.getenv("GREMLIN_HOST"),
            port=int(s.get("port") or os.getenv("GREMLIN_PORT") or DEFAULT_PORT),
            secure=s.get("secure", True) is not False,
            user=s.get("user") or os.getenv("GREMLIN_USER"),
            password=s.get("password") or os.getenv("GREMLIN_PASSWORD"),
            headers=dict(s.get("headers") or {}),
            traversal_source=s.get("traversal_source") or "g",
            transaction_timeout_ms=int(timeout if timeout is not None else DEFAULT_TRANSACTION_TIMEOUT_MS),
        )

    def resolve_url(self) -> str:
        if self.url:
            LOG.debug("Using URL to connect")
            return self.url
        if not self.host:
            raise ValidationError("either url or host must be configured")
        scheme = "wss" if self.secure else "ws"
        LOG.debug("Using %s host and port to connect", scheme.upper())
        return f"{scheme}://{self.host}:{self.port}/gremlin"


__all__ = [
    "ConnectorError", "ValidationError", "MissingReference", "InvalidReferenceFormat",
    "UnsupportedOperator", "UnsupportedType", "InvalidExecutionMode",
    "TransactionNotFound", "TransportError", "ExecutionMode", "OperationOptions",
    "MetricsSink", "NoopMetrics", "RetryPolicy", "ConnectorSettings",
    "DEFAULT_TRANSACTION_TIMEOUT_MS", "DEFAULT_RETRY_MAX", "DEFAULT_RETRY_DELAY_MS",
]
