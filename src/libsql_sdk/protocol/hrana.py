"""
Hrana-over-HTTP pipeline protocol.

Builds ``/v2/pipeline`` request bodies and parses the responses. A pipeline
carries a list of stream requests; every pipeline built here ends with a
``close`` request, so no server-side stream (baton) survives the call.

Request::

    {"baton": null, "requests": [{"type": "execute", "stmt": {...}}, {"type": "close"}]}

Response::

    {"baton": null, "base_url": null, "results": [
        {"type": "ok", "response": {"type": "execute", "result": {...}}},
        {"type": "ok", "response": {"type": "close"}}]}

The parser also accepts the flattened form where ``results`` holds statement
results directly and a failed call is a top-level ``{"error": {...}}``.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, ValidationError

from ..exceptions import DecodingError, ProtocolViolationError
from ..types import Column, ResultSet, StepOutcome
from .values import Value

PIPELINE_PATH = "/v2/pipeline"


class RequestType:
    """Stream request type constants."""

    EXECUTE = "execute"
    BATCH = "batch"
    SEQUENCE = "sequence"
    CLOSE = "close"


# Statements


@dataclass(frozen=True)
class Statement:
    """
    A SQL statement with its bound arguments.

    Attributes:
        sql: SQL text
        args: Positional arguments
        named_args: Named arguments as ``(name, value)`` pairs
        want_rows: Whether the server should return rows
    """

    sql: str
    args: tuple[Value, ...] = ()
    named_args: tuple[tuple[str, Value], ...] = ()
    want_rows: bool = True

    def __post_init__(self) -> None:
        if not self.sql or not self.sql.strip():
            raise ValueError("Statement SQL must not be empty")

    @classmethod
    def of(
        cls,
        sql: str,
        args: Sequence[Any] | Mapping[str, Any] | None = None,
        want_rows: bool = True,
    ) -> Statement:
        """
        Build a statement, encoding native arguments.

        Args:
            sql: SQL text
            args: Positional (sequence) or named (mapping) arguments

        Raises:
            EncodingError: If an argument cannot be encoded
        """
        if args is None:
            return cls(sql=sql, want_rows=want_rows)
        if isinstance(args, Mapping):
            named = tuple((name, Value.from_native(v)) for name, v in args.items())
            return cls(sql=sql, named_args=named, want_rows=want_rows)
        if isinstance(args, (str, bytes)):
            raise TypeError("Statement args must be a sequence or a mapping, not a single value")
        return cls(sql=sql, args=tuple(Value.from_native(v) for v in args), want_rows=want_rows)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"sql": self.sql, "want_rows": self.want_rows}
        if self.args:
            data["args"] = [v.to_wire() for v in self.args]
        if self.named_args:
            data["named_args"] = [{"name": name, "value": v.to_wire()} for name, v in self.named_args]
        return data


# Batch step conditions


@dataclass(frozen=True)
class IsOk:
    """True if step ``step`` succeeded."""

    step: int

    def to_dict(self) -> dict[str, Any]:
        return {"type": "ok", "step": self.step}

    def referenced_steps(self) -> set[int]:
        return {self.step}


@dataclass(frozen=True)
class IsError:
    """True if step ``step`` failed."""

    step: int

    def to_dict(self) -> dict[str, Any]:
        return {"type": "error", "step": self.step}

    def referenced_steps(self) -> set[int]:
        return {self.step}


@dataclass(frozen=True)
class Not:
    cond: StepCondition

    def to_dict(self) -> dict[str, Any]:
        return {"type": "not", "cond": self.cond.to_dict()}

    def referenced_steps(self) -> set[int]:
        return self.cond.referenced_steps()


@dataclass(frozen=True)
class And:
    conds: tuple[StepCondition, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "conds", tuple(self.conds))

    def to_dict(self) -> dict[str, Any]:
        return {"type": "and", "conds": [c.to_dict() for c in self.conds]}

    def referenced_steps(self) -> set[int]:
        return set().union(*(c.referenced_steps() for c in self.conds))


@dataclass(frozen=True)
class Or:
    conds: tuple[StepCondition, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "conds", tuple(self.conds))

    def to_dict(self) -> dict[str, Any]:
        return {"type": "or", "conds": [c.to_dict() for c in self.conds]}

    def referenced_steps(self) -> set[int]:
        return set().union(*(c.referenced_steps() for c in self.conds))


StepCondition = IsOk | IsError | Not | And | Or


@dataclass(frozen=True)
class BatchStep:
    """A batch step: a statement, optionally guarded by a condition on earlier steps."""

    statement: Statement
    condition: StepCondition | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"stmt": self.statement.to_dict()}
        if self.condition is not None:
            data["condition"] = self.condition.to_dict()
        return data


# Errors


@dataclass
class ProtocolError:
    """
    Error reported by the server for a request or batch step.

    Attributes:
        message: Server message, verbatim
        code: Server error code (e.g. ``SQLITE_CONSTRAINT_UNIQUE``), if any
    """

    message: str
    code: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ProtocolError:
        """Create from dictionary."""
        return cls(
            message=data.get("message") or "Unknown error",
            code=data.get("code"),
        )


# Requests


@dataclass
class PipelineRequest:
    """
    Pipeline request body.

    Attributes:
        requests: Stream requests, not counting the trailing ``close``
        baton: Stream baton; always None since every pipeline closes its stream
    """

    requests: list[dict[str, Any]] = field(default_factory=list)
    baton: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "baton": self.baton,
            "requests": [*self.requests, {"type": RequestType.CLOSE}],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), allow_nan=False)

    @classmethod
    def execute(cls, statement: Statement) -> PipelineRequest:
        """Create a single-statement request."""
        return cls(requests=[{"type": RequestType.EXECUTE, "stmt": statement.to_dict()}])

    @classmethod
    def sequence(cls, statements: Sequence[Statement]) -> PipelineRequest:
        """Create a request executing each statement independently, in order."""
        if not statements:
            raise ValueError("A sequence needs at least one statement")
        return cls(requests=[{"type": RequestType.EXECUTE, "stmt": s.to_dict()} for s in statements])

    @classmethod
    def script(cls, sql: str) -> PipelineRequest:
        """Create a request running a raw multi-statement SQL script."""
        if not sql or not sql.strip():
            raise ValueError("Script SQL must not be empty")
        return cls(requests=[{"type": RequestType.SEQUENCE, "sql": sql}])

    @classmethod
    def batch(cls, steps: Sequence[BatchStep]) -> PipelineRequest:
        """
        Create a conditional batch request.

        Raises:
            ValueError: If the batch is empty or a condition references
                the step itself or a later step
        """
        if not steps:
            raise ValueError("A batch needs at least one step")
        for index, step in enumerate(steps):
            if step.condition is None:
                continue
            referenced = step.condition.referenced_steps()
            if any(s < 0 or s >= index for s in referenced):
                raise ValueError(f"Condition of step {index} may only reference earlier steps, got {sorted(referenced)}")
        return cls(
            requests=[
                {
                    "type": RequestType.BATCH,
                    "batch": {"steps": [s.to_dict() for s in steps]},
                }
            ]
        )


# Response envelope validation


class _WireModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class _WireError(_WireModel):
    message: str | None = None
    code: str | None = None


class _WireColumn(_WireModel):
    name: str | None = None
    decltype: str | None = None


class _WireStmtResult(_WireModel):
    cols: list[_WireColumn | str] = []
    rows: list[list[Any]] = []
    affected_row_count: int = 0
    last_insert_rowid: str | int | None = None
    rows_read: int | None = None
    rows_written: int | None = None
    query_duration_ms: float | None = None
    replication_index: str | None = None


class _WireStreamResult(_WireModel):
    type: Literal["ok", "error"]
    response: dict[str, Any] | None = None
    error: _WireError | None = None


class _WirePipelineResponse(_WireModel):
    baton: str | None = None
    base_url: str | None = None
    results: list[_WireStreamResult]


class _WireBatchResult(_WireModel):
    step_results: list[_WireStmtResult | None]
    step_errors: list[_WireError | None]


def _violation(message: str, raw: str | None, cause: Exception | None = None) -> ProtocolViolationError:
    error = ProtocolViolationError(message, raw_body=raw)
    error.__cause__ = cause
    return error


def _normalize_entry(entry: Any) -> Any:
    """Rewrite a flattened result entry into the stream-result shape."""
    if not isinstance(entry, dict) or "type" in entry:
        return entry
    if "error" in entry:
        return {"type": "error", "error": entry["error"]}
    return {"type": "ok", "response": {"type": RequestType.EXECUTE, "result": entry}}


def _is_close_result(entry: _WireStreamResult) -> bool:
    return entry.type == "ok" and entry.response is not None and entry.response.get("type") == RequestType.CLOSE


@dataclass
class StreamResult:
    """Outcome of one stream request: a response payload or a server error."""

    response: dict[str, Any] | None = None
    error: ProtocolError | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None


@dataclass
class PipelineResponse:
    """
    Parsed pipeline response.

    Attributes:
        results: One entry per stream request (the trailing ``close`` is dropped)
        error: Top-level server error, when the whole call failed
        raw: Raw response body, kept for diagnostics
    """

    results: list[StreamResult] = field(default_factory=list)
    error: ProtocolError | None = None
    raw: str | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @classmethod
    def from_json(cls, raw: str | bytes, expected_results: int) -> PipelineResponse:
        """
        Parse and validate a response body.

        Args:
            raw: Response body
            expected_results: Number of stream requests sent, not counting ``close``

        Raises:
            ProtocolViolationError: If the body is not a well-formed envelope
        """
        text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise _violation(f"Response is not valid JSON: {e}", text, e) from e
        return cls.from_dict(data, expected_results, raw=text)

    @classmethod
    def from_dict(cls, data: Any, expected_results: int, raw: str | None = None) -> PipelineResponse:
        """Validate a decoded response body. See :meth:`from_json`."""
        if raw is None:
            raw = json.dumps(data, default=str)
        if not isinstance(data, dict):
            raise _violation(f"Response must be a JSON object, got {type(data).__name__}", raw)

        if "results" not in data and "error" in data:
            body = data["error"]
            if isinstance(body, str):
                body = {"message": body}
            try:
                error = _WireError.model_validate(body)
            except ValidationError as e:
                raise _violation(f"Malformed error object: {e}", raw, e) from e
            return cls(error=ProtocolError.from_dict(error.model_dump()), raw=raw)

        if isinstance(data.get("results"), list):
            data = {**data, "results": [_normalize_entry(r) for r in data["results"]]}
        try:
            envelope = _WirePipelineResponse.model_validate(data)
        except ValidationError as e:
            raise _violation(f"Malformed pipeline response: {e}", raw, e) from e

        entries = envelope.results
        # Servers answering in the flattened form omit the close result
        if len(entries) == expected_results + 1 and _is_close_result(entries[-1]):
            entries = entries[:expected_results]
        if len(entries) != expected_results:
            raise _violation(
                f"Expected {expected_results} result(s) in response, got {len(envelope.results)}",
                raw,
            )

        results: list[StreamResult] = []
        for entry in entries:
            if entry.type == "error":
                if entry.error is None:
                    raise _violation("Error result without an error object", raw)
                results.append(StreamResult(error=ProtocolError.from_dict(entry.error.model_dump())))
            else:
                if entry.response is None:
                    raise _violation("Ok result without a response object", raw)
                results.append(StreamResult(response=entry.response))
        return cls(results=results, raw=raw)

    # Per-request payload parsing

    def _payload(self, result: StreamResult, expected_type: str) -> dict[str, Any]:
        response = result.response or {}
        if response.get("type") != expected_type:
            raise _violation(
                f"Expected a {expected_type!r} response, got {response.get('type')!r}",
                self.raw,
            )
        return response

    def execute_result(self, index: int = 0) -> ResultSet | ProtocolError:
        """Return the result set (or server error) of an ``execute`` request."""
        result = self.results[index]
        if result.error is not None:
            return result.error
        payload = self._payload(result, RequestType.EXECUTE)
        if "result" not in payload:
            raise _violation("Execute response without a result", self.raw)
        return self._result_set(payload["result"])

    def sequence_results(self) -> list[ResultSet | ProtocolError]:
        """Return the outcome of every ``execute`` request, in order."""
        return [self.execute_result(i) for i in range(len(self.results))]

    def script_result(self) -> ProtocolError | None:
        """Return the server error of a ``sequence`` (script) request, if any."""
        result = self.results[0]
        if result.error is not None:
            return result.error
        self._payload(result, RequestType.SEQUENCE)
        return None

    def batch_result(self, step_count: int) -> list[StepOutcome] | ProtocolError:
        """
        Return per-step outcomes of a ``batch`` request.

        Raises:
            ProtocolViolationError: If the step counts do not match ``step_count``
        """
        result = self.results[0]
        if result.error is not None:
            return result.error
        payload = self._payload(result, RequestType.BATCH)
        try:
            batch = _WireBatchResult.model_validate(payload.get("result"))
        except ValidationError as e:
            raise _violation(f"Malformed batch result: {e}", self.raw, e) from e

        if len(batch.step_results) != step_count or len(batch.step_errors) != step_count:
            raise _violation(
                f"Expected {step_count} step outcome(s), got "
                f"{len(batch.step_results)} result(s) and {len(batch.step_errors)} error(s)",
                self.raw,
            )

        outcomes: list[StepOutcome] = []
        for index, (step_result, step_error) in enumerate(zip(batch.step_results, batch.step_errors)):
            if step_error is not None:
                outcomes.append(StepOutcome(index=index, error=ProtocolError.from_dict(step_error.model_dump())))
            elif step_result is not None:
                outcomes.append(StepOutcome(index=index, result=self._convert(step_result)))
            else:
                outcomes.append(StepOutcome(index=index))
        return outcomes

    def _result_set(self, data: Any) -> ResultSet:
        try:
            wire = _WireStmtResult.model_validate(data)
        except ValidationError as e:
            raise _violation(f"Malformed statement result: {e}", self.raw, e) from e
        return self._convert(wire)

    def _convert(self, wire: _WireStmtResult) -> ResultSet:
        columns = [Column(name=c) if isinstance(c, str) else Column(name=c.name, decltype=c.decltype) for c in wire.cols]
        try:
            rows: list[tuple[Any, ...]] = []
            for row in wire.rows:
                if len(row) != len(columns):
                    raise _violation(f"Row has {len(row)} value(s) but result has {len(columns)} column(s)", self.raw)
                rows.append(tuple(Value.from_wire(cell).to_native() for cell in row))
            rowid = self._rowid(wire.last_insert_rowid)
        except DecodingError as e:
            if e.raw_body is None:
                e.raw_body = self.raw
            raise
        return ResultSet(
            columns=columns,
            rows=rows,
            affected_row_count=wire.affected_row_count,
            last_insert_rowid=rowid,
            rows_read=wire.rows_read or 0,
            rows_written=wire.rows_written or 0,
            query_duration_ms=wire.query_duration_ms,
            replication_index=wire.replication_index,
        )

    @staticmethod
    def _rowid(raw: str | int | None) -> int | None:
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError:
            raise DecodingError(f"Invalid last_insert_rowid {raw!r}") from None


__all__ = [
    "PIPELINE_PATH",
    "And",
    "BatchStep",
    "IsError",
    "IsOk",
    "Not",
    "Or",
    "PipelineRequest",
    "PipelineResponse",
    "ProtocolError",
    "RequestType",
    "Statement",
    "StepCondition",
    "StreamResult",
]
