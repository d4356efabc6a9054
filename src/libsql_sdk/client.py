"""
libSQL client.

The public operation surface: execute-one, execute-sequence, execute-batch and
execute-transactional-batch over a stateless HTTP transport. Every operation
performs exactly one pipeline round trip and accepts an optional
:class:`asyncio.Event` as cancellation signal.
"""

import asyncio
import logging
from collections.abc import Mapping, Sequence
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Self

import httpx

from .config import DEFAULT_TIMEOUT, ConnectionContext
from .connection.base import BaseTransport
from .connection.http import HTTPTransport
from .exceptions import CancellationError, LibSQLError, TransactionError
from .protocol.hrana import (
    And,
    BatchStep,
    IsOk,
    Not,
    PipelineRequest,
    PipelineResponse,
    ProtocolError,
    Statement,
)
from .translator import translate_protocol_error
from .types import BatchResult, ResultSet, SequenceResult, TransactionBehavior

if TYPE_CHECKING:
    from .transaction import BatchTransaction

logger = logging.getLogger(__name__)

StatementInput = Statement | str | tuple[str, Sequence[Any] | Mapping[str, Any]]


class TransactionalBatchState(StrEnum):
    """Lifecycle of a transactional batch."""

    IDLE = "idle"
    BATCH_SENT = "batch_sent"
    ALL_COMMITTED = "all_committed"
    ROLLED_BACK = "rolled_back"
    TRANSPORT_FAILED = "transport_failed"


def to_statement(statement: StatementInput, args: Sequence[Any] | Mapping[str, Any] | None = None) -> Statement:
    """
    Coerce a statement input to a :class:`Statement`.

    Accepts a prepared statement, SQL text (with optional ``args``) or an
    ``(sql, args)`` tuple.
    """
    if isinstance(statement, Statement):
        if args is not None:
            raise TypeError("args cannot be given together with a prepared Statement")
        return statement
    if isinstance(statement, str):
        return Statement.of(statement, args)
    if isinstance(statement, tuple) and len(statement) == 2:
        sql, stmt_args = statement
        return Statement.of(sql, stmt_args)
    raise TypeError(f"Expected a Statement, SQL string or (sql, args) tuple, got {type(statement).__name__}")


class LibSQLClient:
    """
    Client for a remote libSQL server speaking Hrana over HTTP.

    Usage:
        async with LibSQLClient("libsql://my-db.turso.io", auth_token=token) as db:
            rs = await db.execute("SELECT * FROM users WHERE id = ?", [1])
            await db.execute_transactional_batch([
                ("INSERT INTO users (name) VALUES (?)", ["Alice"]),
                ("INSERT INTO users (name) VALUES (?)", ["Bob"]),
            ])

    The client holds no state between calls other than the transport and the
    informational :attr:`last_batch_state`.
    """

    def __init__(
        self,
        url: str,
        auth_token: str | None = None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the client.

        Args:
            url: Server URL (``libsql://``, ``https://`` or ``http://``)
            auth_token: Bearer token, if the server requires one
            timeout: HTTP timeout in seconds
            transport: Custom httpx transport, mainly for tests

        Raises:
            ConfigurationError: If the URL is malformed
        """
        self._transport: BaseTransport = HTTPTransport(url, auth_token, timeout=timeout, transport=transport)
        self.last_batch_state = TransactionalBatchState.IDLE

    @classmethod
    def from_transport(cls, transport: BaseTransport) -> Self:
        """Create a client over an existing transport."""
        client = cls.__new__(cls)
        client._transport = transport
        client.last_batch_state = TransactionalBatchState.IDLE
        return client

    @classmethod
    def from_context(cls, context: ConnectionContext, transport: httpx.AsyncBaseTransport | None = None) -> Self:
        """Create a client from a prepared connection context."""
        return cls.from_transport(HTTPTransport(context, transport=transport))

    @classmethod
    def from_env(cls, transport: httpx.AsyncBaseTransport | None = None) -> Self:
        """Create a client from ``LIBSQL_URL``/``LIBSQL_AUTH_TOKEN``/``LIBSQL_TIMEOUT``."""
        return cls.from_context(ConnectionContext.from_env(), transport=transport)

    @classmethod
    async def open(cls, url: str, auth_token: str | None = None, **kwargs: Any) -> Self:
        """Create a client and open its transport."""
        client = cls(url, auth_token, **kwargs)
        await client.connect()
        return client

    @property
    def transport(self) -> BaseTransport:
        return self._transport

    @property
    def url(self) -> str:
        return self._transport.url

    async def connect(self) -> Self:
        """Open the underlying transport. Returns self for fluent API."""
        await self._transport.connect()
        return self

    async def close(self) -> None:
        """Close the underlying transport."""
        await self._transport.close()

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # Round trip

    async def _send(self, request: PipelineRequest, cancel: asyncio.Event | None) -> PipelineResponse:
        """
        Send one request, aborting it when ``cancel`` fires first.

        Raises:
            CancellationError: If ``cancel`` is set before the response arrives
        """
        if cancel is None:
            return await self._transport.send(request)
        if cancel.is_set():
            raise CancellationError("Operation cancelled before the request was sent")

        send_task = asyncio.ensure_future(self._transport.send(request))
        cancel_task = asyncio.ensure_future(cancel.wait())
        try:
            done, _ = await asyncio.wait({send_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            send_task.cancel()
            cancel_task.cancel()
            raise

        if send_task in done:
            cancel_task.cancel()
            return send_task.result()

        send_task.cancel()
        # Wait for the request to unwind; its outcome is discarded
        await asyncio.wait({send_task})
        if not send_task.cancelled() and send_task.exception() is not None:
            logger.debug(f"Request failed while being cancelled: {send_task.exception()!r}")
        raise CancellationError("Operation cancelled while waiting for the server")

    @staticmethod
    def _raise_request_error(response: PipelineResponse, statement: str | None = None) -> None:
        if response.error is not None:
            raise translate_protocol_error(response.error, statement=statement)

    # Operations

    async def execute(
        self,
        statement: StatementInput,
        args: Sequence[Any] | Mapping[str, Any] | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> ResultSet:
        """
        Execute a single statement.

        Args:
            statement: Statement, SQL text or ``(sql, args)`` tuple
            args: Positional (sequence) or named (mapping) arguments for SQL text
            cancel: Cancellation signal

        Returns:
            The statement's result set

        Raises:
            ExecutionError: If the server rejects the statement
            CancellationError: If cancelled before the response arrived
        """
        stmt = to_statement(statement, args)
        logger.debug(f"Executing statement: {stmt.sql}")
        response = await self._send(PipelineRequest.execute(stmt), cancel)
        self._raise_request_error(response, stmt.sql)
        result = response.execute_result()
        if isinstance(result, ProtocolError):
            raise translate_protocol_error(result, statement=stmt.sql)
        return result

    async def execute_sequence(
        self,
        statements: Sequence[StatementInput],
        *,
        cancel: asyncio.Event | None = None,
    ) -> SequenceResult:
        """
        Execute statements in order, each independently of the others.

        There is no atomicity: a failing statement does not prevent the others
        from being applied. The last statement's result is the surfaced result.

        Raises:
            ExecutionError: The first failing statement's error, after the round trip
        """
        stmts = [to_statement(s) for s in statements]
        logger.debug(f"Executing sequence of {len(stmts)} statement(s)")
        response = await self._send(PipelineRequest.sequence(stmts), cancel)
        self._raise_request_error(response)

        results: list[ResultSet] = []
        failure: LibSQLError | None = None
        for index, (stmt, outcome) in enumerate(zip(stmts, response.sequence_results())):
            if isinstance(outcome, ProtocolError):
                logger.debug(f"Sequence statement {index} failed: {outcome.message}")
                if failure is None:
                    failure = translate_protocol_error(outcome, statement=stmt.sql, step=index)
            else:
                results.append(outcome)
        if failure is not None:
            raise failure
        return SequenceResult(results=results)

    async def execute_batch(
        self,
        steps: Sequence[BatchStep | StatementInput],
        *,
        cancel: asyncio.Event | None = None,
    ) -> BatchResult:
        """
        Execute a conditional batch.

        Steps whose condition is false are skipped. Step failures are reported
        in the returned :class:`BatchResult`, not raised.

        Raises:
            ValueError: If a condition references the step itself or a later step
            ExecutionError: If the server rejects the batch as a whole
        """
        batch_steps = [s if isinstance(s, BatchStep) else BatchStep(to_statement(s)) for s in steps]
        logger.debug(f"Executing batch of {len(batch_steps)} step(s)")
        response = await self._send(PipelineRequest.batch(batch_steps), cancel)
        self._raise_request_error(response)
        outcomes = response.batch_result(len(batch_steps))
        if isinstance(outcomes, ProtocolError):
            raise translate_protocol_error(outcomes)
        return BatchResult(outcomes=outcomes)

    async def execute_transactional_batch(
        self,
        statements: Sequence[StatementInput],
        *,
        behavior: TransactionBehavior = TransactionBehavior.DEFERRED,
        cancel: asyncio.Event | None = None,
    ) -> int:
        """
        Execute statements atomically in a single request.

        The batch is ``BEGIN <behavior>``, each statement guarded by the success
        of the previous step, ``COMMIT`` guarded by the success of every prior step
        and ``ROLLBACK`` guarded by the failure of the commit.

        Args:
            statements: Statements to run, in order
            behavior: Locking behavior of the opening ``BEGIN``
            cancel: Cancellation signal

        Returns:
            Total affected row count of the given statements

        Raises:
            ExecutionError: The first failing statement's error; nothing was committed
            TransactionError: If the server neither committed nor reported a failing step
        """
        stmts = [to_statement(s) for s in statements]
        if not stmts:
            raise ValueError("A transactional batch needs at least one statement")

        commit_index = len(stmts) + 1
        steps = [BatchStep(Statement(TransactionBehavior(behavior).begin_sql, want_rows=False))]
        steps += [BatchStep(stmt, IsOk(index)) for index, stmt in enumerate(stmts)]
        steps.append(BatchStep(Statement("COMMIT", want_rows=False), And([IsOk(i) for i in range(commit_index)])))
        steps.append(BatchStep(Statement("ROLLBACK", want_rows=False), Not(IsOk(commit_index))))

        self.last_batch_state = TransactionalBatchState.IDLE
        request = PipelineRequest.batch(steps)
        logger.debug(f"Executing transactional batch of {len(stmts)} statement(s)")
        try:
            if cancel is not None and cancel.is_set():
                raise CancellationError("Operation cancelled before the request was sent")
            self.last_batch_state = TransactionalBatchState.BATCH_SENT
            response = await self._send(request, cancel)
            self._raise_request_error(response)
            outcomes = response.batch_result(len(steps))
        except BaseException as e:
            if self.last_batch_state is TransactionalBatchState.BATCH_SENT:
                self.last_batch_state = TransactionalBatchState.TRANSPORT_FAILED
            logger.warning(f"Transactional batch failed before completion: {e!r}")
            raise

        if isinstance(outcomes, ProtocolError):
            self.last_batch_state = TransactionalBatchState.ROLLED_BACK
            logger.warning(f"Transactional batch rejected by server: {outcomes.message}")
            raise translate_protocol_error(outcomes)

        result = BatchResult(outcomes=outcomes)
        if result[commit_index].is_ok:
            self.last_batch_state = TransactionalBatchState.ALL_COMMITTED
            affected = sum(o.result.affected_row_count for o in outcomes[1:commit_index] if o.result is not None)
            logger.info(f"Transactional batch committed: {len(stmts)} statement(s), {affected} row(s) affected")
            return affected

        self.last_batch_state = TransactionalBatchState.ROLLED_BACK
        rollback = result[commit_index + 1]
        if rollback.is_error and rollback.error is not None:
            logger.warning(f"Rollback step reported an error: {rollback.error.message}")

        for outcome in outcomes[:commit_index + 1]:
            if outcome.error is None:
                continue
            if 1 <= outcome.index < commit_index:
                position = outcome.index - 1
                logger.warning(f"Transactional batch rolled back: statement {position} failed: {outcome.error.message}")
                raise translate_protocol_error(outcome.error, statement=stmts[position].sql, step=position)
            sql = steps[outcome.index].statement.sql
            logger.warning(f"Transactional batch rolled back: {sql} failed: {outcome.error.message}")
            raise translate_protocol_error(outcome.error, statement=sql)

        logger.warning("Transactional batch was not committed and no step reported an error")
        raise TransactionError(
            "Transactional batch was not committed",
            rollback_succeeded=rollback.is_ok,
        )

    async def execute_script(self, sql: str, *, cancel: asyncio.Event | None = None) -> None:
        """
        Execute a raw multi-statement SQL script.

        Raises:
            ExecutionError: If any statement of the script fails
        """
        logger.debug("Executing script")
        response = await self._send(PipelineRequest.script(sql), cancel)
        self._raise_request_error(response, sql)
        error = response.script_result()
        if error is not None:
            raise translate_protocol_error(error, statement=sql)

    async def ping(self) -> bool:
        """
        Check that the server answers a trivial query.

        Returns:
            True if ``SELECT 1`` succeeded
        """
        try:
            await self.execute("SELECT 1")
        except LibSQLError as e:
            logger.debug(f"Ping failed: {e}")
            return False
        return True

    # Transaction support

    def transaction(self, behavior: TransactionBehavior = TransactionBehavior.DEFERRED) -> "BatchTransaction":
        """
        Create a queued-statement transaction.

        Statements are collected and executed atomically on exit through
        :meth:`execute_transactional_batch`, opened with ``BEGIN <behavior>``.

        Usage:
            async with db.transaction() as tx:
                await tx.execute("INSERT INTO users (name) VALUES (?)", ["Alice"])
                await tx.execute("UPDATE stats SET users = users + 1")
                # Committed on exit, discarded on exception

        Returns:
            BatchTransaction context manager
        """
        from .transaction import BatchTransaction

        return BatchTransaction(self, behavior)

    def __repr__(self) -> str:
        return f"LibSQLClient({self.url!r})"
