"""
libSQL SDK - An async Python client for remote libSQL servers.

This SDK talks to libSQL / Turso servers over the Hrana-over-HTTP pipeline
protocol, without any native library.

Supports:
- Single statements with positional or named arguments
- Ordered, non-atomic statement sequences and raw scripts
- Conditional batches
- Transactional batches (all-or-nothing, one round trip)
- Cancellation through an asyncio.Event
"""

from typing import Any

from .config import SDK_VERSION, ConnectionContext, normalize_url
from .connection.base import BaseTransport
from .connection.http import HTTPTransport
from .client import LibSQLClient, TransactionalBatchState, to_statement
from .transaction import BatchTransaction
from .protocol.hrana import (
    And,
    BatchStep,
    IsError,
    IsOk,
    Not,
    Or,
    PipelineRequest,
    PipelineResponse,
    ProtocolError,
    Statement,
)
from .protocol.values import Value, ValueKind
from .types import (
    BatchResult,
    Column,
    ResultSet,
    SequenceResult,
    StepOutcome,
    StepStatus,
    TransactionBehavior,
)
from .exceptions import (
    AuthenticationError,
    BusyError,
    CancellationError,
    ConfigurationError,
    ConnectivityError,
    ConstraintError,
    ConstraintType,
    DecodingError,
    EncodingError,
    ExecutionError,
    LibSQLError,
    LockType,
    ProtocolViolationError,
    TimeoutError,
    TransactionError,
    TransportError,
)

__version__ = SDK_VERSION
__all__ = [
    # Client
    "LibSQL",
    "LibSQLClient",
    "TransactionalBatchState",
    "TransactionBehavior",
    "BatchTransaction",
    "to_statement",
    # Connection
    "BaseTransport",
    "ConnectionContext",
    "HTTPTransport",
    "normalize_url",
    # Protocol
    "And",
    "BatchStep",
    "IsError",
    "IsOk",
    "Not",
    "Or",
    "PipelineRequest",
    "PipelineResponse",
    "ProtocolError",
    "Statement",
    "Value",
    "ValueKind",
    # Results
    "BatchResult",
    "Column",
    "ResultSet",
    "SequenceResult",
    "StepOutcome",
    "StepStatus",
    # Exceptions
    "AuthenticationError",
    "BusyError",
    "CancellationError",
    "ConfigurationError",
    "ConnectivityError",
    "ConstraintError",
    "ConstraintType",
    "DecodingError",
    "EncodingError",
    "ExecutionError",
    "LibSQLError",
    "LockType",
    "ProtocolViolationError",
    "TimeoutError",
    "TransactionError",
    "TransportError",
]


class LibSQL:
    """
    Factory class for creating libSQL clients.

    Usage:
        async with LibSQL.http("libsql://my-db.turso.io", auth_token=token) as db:
            rs = await db.execute("SELECT * FROM users")

        # Configuration from LIBSQL_URL / LIBSQL_AUTH_TOKEN
        async with LibSQL.from_env() as db:
            await db.execute_script("CREATE TABLE t (x); INSERT INTO t VALUES (1);")
    """

    @staticmethod
    def http(url: str, auth_token: str | None = None, **kwargs: Any) -> LibSQLClient:
        """Create an HTTP client (stateless)."""
        return LibSQLClient(url, auth_token, **kwargs)

    @staticmethod
    def from_env(**kwargs: Any) -> LibSQLClient:
        """Create an HTTP client configured from the environment."""
        return LibSQLClient.from_env(**kwargs)
