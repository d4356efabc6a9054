"""
Transaction support for libSQL SDK.

Since Hrana over HTTP closes its stream after every request, a transaction
is a queue of statements committed as one transactional batch.
"""

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any, Self

from .exceptions import TransactionError
from .protocol.hrana import Statement
from .types import TransactionBehavior

if TYPE_CHECKING:
    from .client import LibSQLClient, StatementInput


def quote_identifier(name: str) -> str:
    """Quote an SQL identifier, doubling embedded quotes."""
    return '"' + name.replace('"', '""') + '"'


class BatchTransaction:
    """
    Transaction that batches statements.

    All statements are collected and executed atomically on commit, wrapped
    in ``BEGIN``/``COMMIT`` with a conditional ``ROLLBACK``, as a single request.

    Usage:
        async with db.transaction() as tx:
            await tx.execute("UPDATE accounts SET balance = balance - ? WHERE id = ?", [10, 1])
            await tx.execute("UPDATE accounts SET balance = balance + ? WHERE id = ?", [10, 2])
            # Auto-commit on success, discarded on exception
    """

    def __init__(self, client: "LibSQLClient", behavior: TransactionBehavior = TransactionBehavior.DEFERRED):
        self._client = client
        self.behavior = TransactionBehavior(behavior)
        self._statements: list[Statement] = []
        self._committed = False
        self._rolled_back = False
        self._active = False
        self.affected_row_count = 0

    @property
    def is_active(self) -> bool:
        """Check if transaction is active."""
        return self._active and not self._committed and not self._rolled_back

    @property
    def is_committed(self) -> bool:
        return self._committed

    @property
    def is_rolled_back(self) -> bool:
        return self._rolled_back

    @property
    def statements(self) -> list[Statement]:
        """Queued statements, in order."""
        return list(self._statements)

    async def __aenter__(self) -> Self:
        """Begin transaction on context entry."""
        await self.begin()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> bool:
        """Commit on success, rollback on exception."""
        if exc_type is not None:
            await self.rollback()
            return False
        if self.is_active:
            await self.commit()
        return False

    async def begin(self) -> None:
        """Mark transaction as active (no server call needed for HTTP)."""
        if self._active:
            raise TransactionError("Transaction already active")
        self._active = True
        self._statements = []

    async def commit(self) -> int:
        """
        Execute all queued statements atomically.

        Returns:
            Total affected row count

        Raises:
            TransactionError: If the transaction is not active
            ExecutionError: If a statement failed; nothing was committed
        """
        if not self.is_active:
            raise TransactionError("Transaction not active")

        if not self._statements:
            self._committed = True
            self._active = False
            return 0

        try:
            self.affected_row_count = await self._client.execute_transactional_batch(
                self._statements, behavior=self.behavior
            )
        except BaseException:
            self._active = False
            self._rolled_back = True
            raise
        self._committed = True
        self._active = False
        return self.affected_row_count

    async def rollback(self) -> None:
        """Discard queued statements (nothing was sent to the server)."""
        self._statements = []
        self._rolled_back = True
        self._active = False

    def _queue_statement(self, statement: Statement) -> None:
        if not self.is_active:
            raise TransactionError("Transaction not active")
        self._statements.append(statement)

    async def execute(
        self,
        statement: "StatementInput",
        args: Sequence[Any] | Mapping[str, Any] | None = None,
    ) -> None:
        """Queue a statement for execution on commit."""
        from .client import to_statement

        self._queue_statement(to_statement(statement, args))

    async def insert(self, table: str, data: Mapping[str, Any] | Sequence[Mapping[str, Any]]) -> None:
        """Queue one ``INSERT`` per row."""
        rows = [data] if isinstance(data, Mapping) else list(data)
        for row in rows:
            if not row:
                raise ValueError("Cannot insert an empty row")
            columns = ", ".join(quote_identifier(k) for k in row)
            placeholders = ", ".join("?" for _ in row)
            sql = f"INSERT INTO {quote_identifier(table)} ({columns}) VALUES ({placeholders})"
            self._queue_statement(Statement.of(sql, list(row.values()), want_rows=False))

    async def delete(self, table: str, where: str | None = None, args: Sequence[Any] | None = None) -> None:
        """Queue a ``DELETE``, optionally restricted by a ``WHERE`` clause."""
        sql = f"DELETE FROM {quote_identifier(table)}"
        if where:
            sql += f" WHERE {where}"
        self._queue_statement(Statement.of(sql, args, want_rows=False))
