"""
libSQL SDK Exceptions.

Typed exception hierarchy for the remote SQL client. Callers can branch on
the class (connectivity vs. bad SQL vs. broken server contract) without
parsing messages; the original server or transport message is always kept
verbatim in ``message``.
"""

from enum import StrEnum


class LibSQLError(Exception):
    """Base exception for all libSQL SDK errors."""

    def __init__(self, message: str, code: str | None = None):
        self.message = message
        self.code = code
        super().__init__(message)


class ConfigurationError(LibSQLError):
    """Raised when the endpoint configuration is malformed or unsupported.

    Always raised before any network call is made.
    """

    pass


class EncodingError(LibSQLError):
    """Raised when a native value cannot be represented on the wire."""

    pass


class TransportError(LibSQLError):
    """Base class for failures reported by the HTTP layer."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
        request_body: str | None = None,
    ):
        self.status_code = status_code
        self.response_body = response_body
        self.request_body = request_body
        super().__init__(message)


class ConnectivityError(TransportError):
    """Raised on DNS/TCP/TLS failures, refused connections and 5xx responses."""

    pass


class TimeoutError(ConnectivityError):
    """Raised when the HTTP stack gives up waiting for the server."""

    pass


class AuthenticationError(TransportError):
    """Raised when the server answers 401 or 403."""

    pass


class ProtocolViolationError(LibSQLError):
    """Raised when a response does not match the expected envelope shape.

    The raw response body is attached for diagnosis.
    """

    def __init__(self, message: str, raw_body: str | None = None, status_code: int | None = None):
        self.raw_body = raw_body
        self.status_code = status_code
        super().__init__(message)


class DecodingError(ProtocolViolationError):
    """Raised when a wire value cannot be decoded (bad base64, bad integer text, unknown type)."""

    pass


class ExecutionError(LibSQLError):
    """Raised when the server reports an error for a submitted statement."""

    def __init__(
        self,
        message: str,
        statement: str | None = None,
        code: str | None = None,
        step: int | None = None,
    ):
        self.statement = statement
        self.step = step
        super().__init__(message, code)


class ConstraintType(StrEnum):
    """Kind of constraint reported by a constraint violation."""

    UNKNOWN = "unknown"
    PRIMARY_KEY = "primary_key"
    UNIQUE = "unique"
    FOREIGN_KEY = "foreign_key"
    NOT_NULL = "not_null"
    CHECK = "check"
    ROWID = "rowid"


class ConstraintError(ExecutionError):
    """Raised when a statement violates a constraint.

    ``table_name``, ``column_names`` and ``constraint_name`` are reconstructed
    from the server message on a best-effort basis and may be ``None``/empty.
    """

    def __init__(
        self,
        message: str,
        constraint_type: ConstraintType = ConstraintType.UNKNOWN,
        table_name: str | None = None,
        column_names: tuple[str, ...] = (),
        constraint_name: str | None = None,
        statement: str | None = None,
        code: str | None = None,
        step: int | None = None,
    ):
        self.constraint_type = constraint_type
        self.table_name = table_name
        self.column_names = column_names
        self.constraint_name = constraint_name
        super().__init__(message, statement=statement, code=code, step=step)

    @property
    def column_name(self) -> str | None:
        """First column involved in the violation, if known."""
        return self.column_names[0] if self.column_names else None


class LockType(StrEnum):
    """Granularity of the lock that made a statement fail."""

    DATABASE = "database"
    TABLE = "table"


class BusyError(ExecutionError):
    """Raised when the server reports the database or a table as locked."""

    def __init__(
        self,
        message: str,
        lock_type: LockType = LockType.DATABASE,
        statement: str | None = None,
        code: str | None = None,
        step: int | None = None,
    ):
        self.lock_type = lock_type
        super().__init__(message, statement=statement, code=code, step=step)


class CancellationError(LibSQLError):
    """Raised when the caller cancelled an operation before it completed."""

    pass


class TransactionError(LibSQLError):
    """Raised when a queued transaction is misused or fails to commit."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        rollback_succeeded: bool | None = None,
    ):
        self.rollback_succeeded = rollback_succeeded
        super().__init__(message, code)
