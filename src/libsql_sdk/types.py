"""
Type definitions for libSQL SDK results.

Provides strongly-typed wrappers around decoded Hrana responses instead of raw dicts.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .protocol.hrana import ProtocolError
    from .protocol.values import Native


@dataclass(frozen=True)
class Column:
    """A result column as described by the server."""

    name: str | None
    decltype: str | None = None


@dataclass
class ResultSet:
    """
    Result of a single statement.

    Attributes:
        columns: Column descriptions, in order
        rows: Decoded rows; each row holds one native value per column
        affected_row_count: Rows changed by the statement
        last_insert_rowid: Rowid of the last inserted row, if the server reported one
        rows_read: Rows read by the server, when reported
        rows_written: Rows written by the server, when reported
        query_duration_ms: Server-side execution time, when reported
        replication_index: Replication frame index, when reported
    """

    columns: list[Column] = field(default_factory=list)
    rows: list[tuple[Native, ...]] = field(default_factory=list)
    affected_row_count: int = 0
    last_insert_rowid: int | None = None
    rows_read: int = 0
    rows_written: int = 0
    query_duration_ms: float | None = None
    replication_index: str | None = None

    @property
    def column_names(self) -> list[str | None]:
        """Column names, in order."""
        return [c.name for c in self.columns]

    @property
    def is_empty(self) -> bool:
        """Check if no rows were returned."""
        return not self.rows

    @property
    def first(self) -> tuple[Native, ...] | None:
        """Get first row or None."""
        return self.rows[0] if self.rows else None

    @property
    def scalar(self) -> Native:
        """Get the first column of the first row, or None."""
        row = self.first
        return row[0] if row else None

    def as_dicts(self) -> list[dict[str, Any]]:
        """Return rows as dicts keyed by column name (``column<i>`` for unnamed columns)."""
        names = [name if name is not None else f"column{i}" for i, name in enumerate(self.column_names)]
        return [dict(zip(names, row)) for row in self.rows]

    def __iter__(self) -> Iterator[tuple[Native, ...]]:
        return iter(self.rows)

    def __len__(self) -> int:
        return len(self.rows)


class StepStatus(StrEnum):
    """Outcome of one batch step."""

    OK = "ok"
    ERROR = "error"
    SKIPPED = "skipped"


@dataclass
class StepOutcome:
    """
    Outcome of a single batch step.

    A step whose condition evaluated to false has neither a result nor an error.
    """

    index: int
    result: ResultSet | None = None
    error: ProtocolError | None = None

    @property
    def status(self) -> StepStatus:
        if self.error is not None:
            return StepStatus.ERROR
        if self.result is not None:
            return StepStatus.OK
        return StepStatus.SKIPPED

    @property
    def is_ok(self) -> bool:
        return self.status == StepStatus.OK

    @property
    def is_error(self) -> bool:
        return self.status == StepStatus.ERROR

    @property
    def is_skipped(self) -> bool:
        return self.status == StepStatus.SKIPPED


@dataclass
class BatchResult:
    """Ordered per-step outcomes of a batch."""

    outcomes: list[StepOutcome] = field(default_factory=list)

    @property
    def is_ok(self) -> bool:
        """True if no step reported an error."""
        return not any(o.is_error for o in self.outcomes)

    @property
    def errors(self) -> list[StepOutcome]:
        """Steps that failed, in order."""
        return [o for o in self.outcomes if o.is_error]

    @property
    def first_error(self) -> StepOutcome | None:
        errors = self.errors
        return errors[0] if errors else None

    @property
    def results(self) -> list[ResultSet | None]:
        """Per-step result sets; None for failed or skipped steps."""
        return [o.result for o in self.outcomes]

    def __getitem__(self, index: int) -> StepOutcome:
        return self.outcomes[index]

    def __iter__(self) -> Iterator[StepOutcome]:
        return iter(self.outcomes)

    def __len__(self) -> int:
        return len(self.outcomes)


@dataclass
class SequenceResult:
    """
    Results of an ordered, non-atomic statement sequence.

    The last executed statement's result is the result of the call;
    every per-statement result stays available in ``results``.
    """

    results: list[ResultSet] = field(default_factory=list)

    @property
    def last(self) -> ResultSet | None:
        return self.results[-1] if self.results else None

    @property
    def first(self) -> ResultSet | None:
        return self.results[0] if self.results else None

    @property
    def affected_row_count(self) -> int:
        """Affected row count of the last statement."""
        last = self.last
        return last.affected_row_count if last else 0

    @property
    def last_insert_rowid(self) -> int | None:
        last = self.last
        return last.last_insert_rowid if last else None

    @property
    def total_affected_row_count(self) -> int:
        return sum(r.affected_row_count for r in self.results)


class TransactionBehavior(StrEnum):
    """Locking behavior of the ``BEGIN`` that opens a transactional batch."""

    DEFERRED = "deferred"
    IMMEDIATE = "immediate"
    EXCLUSIVE = "exclusive"
    READONLY = "readonly"

    @property
    def begin_sql(self) -> str:
        return f"BEGIN {self.name}"
