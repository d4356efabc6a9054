"""
Error translation.

Maps HTTP failures, httpx transport exceptions and server-reported protocol
errors onto the typed exception hierarchy in :mod:`libsql_sdk.exceptions`.
Server messages are never paraphrased.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

import httpx

from .exceptions import (
    AuthenticationError,
    BusyError,
    ConnectivityError,
    ConstraintError,
    ConstraintType,
    ExecutionError,
    LibSQLError,
    LockType,
    ProtocolViolationError,
    TimeoutError,
)
from .protocol.hrana import ProtocolError

logger = logging.getLogger(__name__)

AUTH_STATUSES = frozenset({401, 403})
# Transient statuses, surfaced as connectivity problems
RETRYABLE_STATUSES = frozenset({408, 429})

# Extended SQLite result codes as reported in Hrana error codes
_CONSTRAINT_CODES = {
    "SQLITE_CONSTRAINT_PRIMARYKEY": ConstraintType.PRIMARY_KEY,
    "SQLITE_CONSTRAINT_UNIQUE": ConstraintType.UNIQUE,
    "SQLITE_CONSTRAINT_FOREIGNKEY": ConstraintType.FOREIGN_KEY,
    "SQLITE_CONSTRAINT_NOTNULL": ConstraintType.NOT_NULL,
    "SQLITE_CONSTRAINT_CHECK": ConstraintType.CHECK,
    "SQLITE_CONSTRAINT_ROWID": ConstraintType.ROWID,
}

_CONSTRAINT_PHRASES = {
    "UNIQUE": ConstraintType.UNIQUE,
    "PRIMARY KEY": ConstraintType.PRIMARY_KEY,
    "NOT NULL": ConstraintType.NOT_NULL,
    "FOREIGN KEY": ConstraintType.FOREIGN_KEY,
    "CHECK": ConstraintType.CHECK,
}

# "UNIQUE constraint failed: users.email, users.org" / "CHECK constraint failed: positive_amount"
_CONSTRAINT_RE = re.compile(
    r"(?P<kind>UNIQUE|PRIMARY KEY|NOT NULL|FOREIGN KEY|CHECK)\s+constraint\s+failed(?::\s*(?P<detail>[^\n]+))?",
    re.IGNORECASE,
)
_GENERIC_CONSTRAINT_RE = re.compile(r"constraint\s+failed", re.IGNORECASE)

_LOCK_PATTERNS = {
    "database table is locked": LockType.TABLE,
    "database is locked": LockType.DATABASE,
    "database is busy": LockType.DATABASE,
}


@dataclass
class HTTPFailure:
    """
    A non-2xx HTTP response, captured by the transport.

    Attributes:
        status_code: HTTP status code
        response_body: Response body text
        request_body: Request body that was sent, when available
        reason: HTTP reason phrase
    """

    status_code: int
    response_body: str = ""
    request_body: str | None = None
    reason: str = ""

    @property
    def message(self) -> str:
        head = f"HTTP {self.status_code}"
        if self.reason:
            head += f" {self.reason}"
        return f"{head}: {self.response_body}" if self.response_body else head


def translate_http_failure(failure: HTTPFailure) -> LibSQLError:
    """Map a non-2xx response to a typed error."""
    status = failure.status_code
    kwargs = {
        "status_code": status,
        "response_body": failure.response_body,
        "request_body": failure.request_body,
    }
    error: LibSQLError
    if status in AUTH_STATUSES:
        error = AuthenticationError(f"Authentication failed: {failure.message}", **kwargs)
    elif status >= 500 or status in RETRYABLE_STATUSES:
        error = ConnectivityError(f"Server unavailable: {failure.message}", **kwargs)
    else:
        error = ProtocolViolationError(
            f"Request rejected by server: {failure.message}",
            raw_body=failure.response_body,
            status_code=status,
        )
    logger.debug(f"Translated HTTP {status} into {type(error).__name__}")
    return error


def translate_transport_exception(exc: httpx.HTTPError, request_body: str | None = None) -> LibSQLError:
    """Map an httpx timeout/network exception to a connectivity error."""
    if isinstance(exc, httpx.TimeoutException):
        error: LibSQLError = TimeoutError(f"Request timed out: {exc}", request_body=request_body)
    else:
        error = ConnectivityError(f"Failed to connect to remote libSQL server: {exc}", request_body=request_body)
    logger.debug(f"Translated {type(exc).__name__} into {type(error).__name__}")
    return error


def translate_protocol_error(
    error: ProtocolError,
    statement: str | None = None,
    step: int | None = None,
) -> ExecutionError:
    """
    Map a server-reported error to an execution error.

    Constraint violations become :class:`ConstraintError` with whatever
    table/column/constraint names can be recovered from the message;
    lock contention becomes :class:`BusyError`.
    """
    translated: ExecutionError
    constraint = _constraint_error(error, statement, step)
    if constraint is not None:
        translated = constraint
    else:
        lock_type = _lock_type(error)
        if lock_type is not None:
            translated = BusyError(error.message, lock_type, statement=statement, code=error.code, step=step)
        else:
            translated = ExecutionError(error.message, statement=statement, code=error.code, step=step)
    logger.debug(f"Translated server error {error.code or '-'} into {type(translated).__name__}: {error.message}")
    return translated


def translate(
    failure: HTTPFailure | ProtocolError | ProtocolViolationError,
    statement: str | None = None,
    step: int | None = None,
) -> LibSQLError:
    """Translate any failure the protocol client can observe."""
    if isinstance(failure, HTTPFailure):
        return translate_http_failure(failure)
    if isinstance(failure, ProtocolError):
        return translate_protocol_error(failure, statement, step)
    return failure


def _constraint_error(error: ProtocolError, statement: str | None, step: int | None) -> ConstraintError | None:
    code = (error.code or "").upper()
    match = _CONSTRAINT_RE.search(error.message)
    if not (code.startswith("SQLITE_CONSTRAINT") or match or _GENERIC_CONSTRAINT_RE.search(error.message)):
        return None

    constraint_type = _CONSTRAINT_CODES.get(code, ConstraintType.UNKNOWN)
    table: str | None = None
    columns: tuple[str, ...] = ()
    name: str | None = None

    if match:
        if constraint_type is ConstraintType.UNKNOWN:
            constraint_type = _CONSTRAINT_PHRASES[match.group("kind").upper()]
        detail = (match.group("detail") or "").strip()
        if detail:
            table, columns, name = _parse_constraint_detail(detail, constraint_type)

    # A UNIQUE violation naming the rowid column is reported as a rowid conflict
    if constraint_type is ConstraintType.UNIQUE and columns and columns[0].lower() == "rowid":
        constraint_type = ConstraintType.ROWID

    return ConstraintError(
        error.message,
        constraint_type=constraint_type,
        table_name=table,
        column_names=columns,
        constraint_name=name,
        statement=statement,
        code=error.code,
        step=step,
    )


def _parse_constraint_detail(
    detail: str, constraint_type: ConstraintType
) -> tuple[str | None, tuple[str, ...], str | None]:
    """Split ``table.col, table.col2`` (or a bare constraint name) into parts."""
    if constraint_type is ConstraintType.CHECK:
        return None, (), detail

    tables: list[str] = []
    columns: list[str] = []
    for part in (p.strip() for p in detail.split(",")):
        if not part:
            continue
        if "." in part:
            table, column = part.split(".", 1)
            tables.append(table)
            columns.append(column)
        else:
            columns.append(part)
    return (tables[0] if tables else None), tuple(columns), None


def _lock_type(error: ProtocolError) -> LockType | None:
    code = (error.code or "").upper()
    if code.startswith("SQLITE_LOCKED"):
        return LockType.TABLE
    if code.startswith("SQLITE_BUSY"):
        return LockType.DATABASE
    message = error.message.lower()
    for phrase, lock_type in _LOCK_PATTERNS.items():
        if phrase in message:
            return lock_type
    return None


__all__ = [
    "HTTPFailure",
    "translate",
    "translate_http_failure",
    "translate_protocol_error",
    "translate_transport_exception",
]
