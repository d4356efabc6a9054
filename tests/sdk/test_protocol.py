"""Tests for the Hrana pipeline protocol module."""

import json

import pytest

from libsql_sdk.exceptions import DecodingError, EncodingError, ProtocolViolationError
from libsql_sdk.protocol.hrana import (
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
from libsql_sdk.protocol.values import Value
from libsql_sdk.types import ResultSet
from tests.conftest import execute_response, pipeline_ok


class TestStatement:
    """Tests for Statement."""

    def test_positional_args(self) -> None:
        stmt = Statement.of("SELECT ?, ?", [1, "a"])
        assert stmt.args == (Value.integer(1), Value.text("a"))
        assert stmt.to_dict() == {
            "sql": "SELECT ?, ?",
            "want_rows": True,
            "args": [{"type": "integer", "value": "1"}, {"type": "text", "value": "a"}],
        }

    def test_named_args(self) -> None:
        stmt = Statement.of("SELECT :a", {":a": None})
        assert stmt.to_dict()["named_args"] == [{"name": ":a", "value": {"type": "null"}}]
        assert "args" not in stmt.to_dict()

    def test_no_args(self) -> None:
        stmt = Statement.of("SELECT 1")
        assert stmt.to_dict() == {"sql": "SELECT 1", "want_rows": True}

    def test_empty_sql_rejected(self) -> None:
        with pytest.raises(ValueError):
            Statement("  ")

    def test_single_string_arg_rejected(self) -> None:
        with pytest.raises(TypeError):
            Statement.of("SELECT ?", "abc")

    def test_unencodable_arg(self) -> None:
        with pytest.raises(EncodingError):
            Statement.of("SELECT ?", [object()])

    def test_immutable(self) -> None:
        stmt = Statement.of("SELECT 1")
        with pytest.raises(AttributeError):
            stmt.sql = "SELECT 2"  # type: ignore[misc]


class TestConditions:
    """Tests for batch step conditions."""

    def test_ok_and_error(self) -> None:
        assert IsOk(0).to_dict() == {"type": "ok", "step": 0}
        assert IsError(2).to_dict() == {"type": "error", "step": 2}

    def test_nested(self) -> None:
        cond = And([IsOk(0), Not(IsError(1)), Or([IsOk(2), IsOk(3)])])
        assert cond.to_dict() == {
            "type": "and",
            "conds": [
                {"type": "ok", "step": 0},
                {"type": "not", "cond": {"type": "error", "step": 1}},
                {"type": "or", "conds": [{"type": "ok", "step": 2}, {"type": "ok", "step": 3}]},
            ],
        }
        assert cond.referenced_steps() == {0, 1, 2, 3}

    def test_list_converted_to_tuple(self) -> None:
        assert And([IsOk(0)]).conds == (IsOk(0),)


class TestPipelineRequest:
    """Tests for request body construction."""

    def test_execute_appends_close(self) -> None:
        body = PipelineRequest.execute(Statement.of("SELECT 1")).to_dict()
        assert body == {
            "baton": None,
            "requests": [
                {"type": "execute", "stmt": {"sql": "SELECT 1", "want_rows": True}},
                {"type": "close"},
            ],
        }

    def test_sequence_one_execute_per_statement(self) -> None:
        request = PipelineRequest.sequence([Statement.of("CREATE TABLE a (x)"), Statement.of("CREATE TABLE b (x)")])
        assert [r["type"] for r in request.to_dict()["requests"]] == ["execute", "execute", "close"]
        assert len(request.requests) == 2

    def test_empty_sequence_rejected(self) -> None:
        with pytest.raises(ValueError):
            PipelineRequest.sequence([])

    def test_script(self) -> None:
        request = PipelineRequest.script("CREATE TABLE a (x); CREATE TABLE b (x);")
        assert request.requests == [{"type": "sequence", "sql": "CREATE TABLE a (x); CREATE TABLE b (x);"}]

    def test_batch(self) -> None:
        steps = [BatchStep(Statement.of("BEGIN")), BatchStep(Statement.of("SELECT 1"), IsOk(0))]
        request = PipelineRequest.batch(steps)
        batch = request.requests[0]["batch"]
        assert batch["steps"][0] == {"stmt": {"sql": "BEGIN", "want_rows": True}}
        assert batch["steps"][1]["condition"] == {"type": "ok", "step": 0}

    def test_batch_forward_reference_rejected(self) -> None:
        steps = [BatchStep(Statement.of("SELECT 1"), IsOk(1)), BatchStep(Statement.of("SELECT 2"))]
        with pytest.raises(ValueError, match="earlier steps"):
            PipelineRequest.batch(steps)

    def test_batch_self_reference_rejected(self) -> None:
        steps = [BatchStep(Statement.of("SELECT 1")), BatchStep(Statement.of("SELECT 2"), Not(IsOk(1)))]
        with pytest.raises(ValueError):
            PipelineRequest.batch(steps)

    def test_to_json_is_valid_json(self) -> None:
        request = PipelineRequest.execute(Statement.of("SELECT ?", [b"\xff"]))
        assert json.loads(request.to_json())["requests"][0]["stmt"]["args"][0] == {"type": "blob", "base64": "/w=="}


class TestPipelineResponse:
    """Tests for response parsing."""

    def test_execute_result(self) -> None:
        body = pipeline_ok(
            execute_response(
                ["id", "name"],
                [[{"type": "integer", "value": "1"}, {"type": "text", "value": "Alice"}]],
                affected_row_count=1,
                last_insert_rowid="1",
            )
        )
        result = PipelineResponse.from_dict(body, 1).execute_result()
        assert isinstance(result, ResultSet)
        assert result.column_names == ["id", "name"]
        assert result.rows == [(1, "Alice")]
        assert result.affected_row_count == 1
        assert result.last_insert_rowid == 1

    def test_flattened_scenario(self) -> None:
        """A flattened ``results`` entry is an execute result."""
        raw = '{"results":[{"cols":["1"],"rows":[[{"type":"integer","value":"1"}]]}]}'
        result = PipelineResponse.from_json(raw, 1).execute_result()
        assert isinstance(result, ResultSet)
        assert result.rows == [(1,)]
        assert result.scalar == 1
        assert isinstance(result.scalar, int)

    def test_top_level_error(self) -> None:
        response = PipelineResponse.from_dict({"error": {"message": "UNIQUE constraint failed", "code": None}}, 1)
        assert response.is_error
        assert response.error == ProtocolError("UNIQUE constraint failed")

    def test_top_level_error_string(self) -> None:
        response = PipelineResponse.from_dict({"error": "boom"}, 1)
        assert response.error == ProtocolError("boom")

    def test_stream_error(self) -> None:
        body = {
            "baton": None,
            "results": [
                {"type": "error", "error": {"message": "no such table: x", "code": "SQLITE_ERROR"}},
                {"type": "ok", "response": {"type": "close"}},
            ],
        }
        result = PipelineResponse.from_dict(body, 1).execute_result()
        assert result == ProtocolError("no such table: x", "SQLITE_ERROR")

    def test_error_without_message(self) -> None:
        body = {"results": [{"type": "error", "error": {}}]}
        result = PipelineResponse.from_dict(body, 1).execute_result()
        assert isinstance(result, ProtocolError)
        assert result.message == "Unknown error"

    def test_result_count_mismatch(self) -> None:
        body = pipeline_ok(execute_response(["a"], []), execute_response(["a"], []))
        with pytest.raises(ProtocolViolationError, match="Expected 1 result"):
            PipelineResponse.from_dict(body, 1)

    def test_flattened_extra_result_rejected(self) -> None:
        """A surplus flattened result is not mistaken for the close result."""
        row = {"cols": ["1"], "rows": [[{"type": "integer", "value": "1"}]]}
        with pytest.raises(ProtocolViolationError, match="Expected 1 result"):
            PipelineResponse.from_dict({"results": [row, row]}, 1)

    def test_extra_execute_without_close_rejected(self) -> None:
        body = pipeline_ok(execute_response(["a"], []), execute_response(["a"], []))
        body["results"].pop()
        with pytest.raises(ProtocolViolationError, match="Expected 1 result"):
            PipelineResponse.from_dict(body, 1)

    def test_trailing_error_not_dropped(self) -> None:
        body = pipeline_ok(execute_response(["a"], []))
        body["results"][-1] = {"type": "error", "error": {"message": "stream closed"}}
        with pytest.raises(ProtocolViolationError):
            PipelineResponse.from_dict(body, 1)

    def test_close_result_dropped(self) -> None:
        response = PipelineResponse.from_dict(pipeline_ok(execute_response(["a"], [])), 1)
        assert len(response.results) == 1

    def test_missing_results(self) -> None:
        body = pipeline_ok()
        with pytest.raises(ProtocolViolationError):
            PipelineResponse.from_dict(body, 2)

    def test_malformed_json(self) -> None:
        with pytest.raises(ProtocolViolationError) as exc_info:
            PipelineResponse.from_json("not json{", 1)
        assert exc_info.value.raw_body == "not json{"

    def test_not_an_object(self) -> None:
        with pytest.raises(ProtocolViolationError):
            PipelineResponse.from_json("[1, 2]", 1)

    def test_ok_without_response(self) -> None:
        with pytest.raises(ProtocolViolationError):
            PipelineResponse.from_dict({"results": [{"type": "ok"}]}, 1)

    def test_unexpected_response_type(self) -> None:
        body = pipeline_ok({"type": "batch", "result": {"step_results": [], "step_errors": []}})
        with pytest.raises(ProtocolViolationError, match="'execute'"):
            PipelineResponse.from_dict(body, 1).execute_result()

    def test_row_width_mismatch(self) -> None:
        body = pipeline_ok(execute_response(["a", "b"], [[{"type": "null"}]]))
        with pytest.raises(ProtocolViolationError, match="column"):
            PipelineResponse.from_dict(body, 1).execute_result()

    def test_bad_cell_is_decoding_error(self) -> None:
        body = pipeline_ok(execute_response(["a"], [[{"type": "integer", "value": "x"}]]))
        with pytest.raises(DecodingError) as exc_info:
            PipelineResponse.from_dict(body, 1).execute_result()
        assert exc_info.value.raw_body is not None

    def test_unpadded_blob_cell(self) -> None:
        body = pipeline_ok(execute_response(["b"], [[{"type": "blob", "base64": "AA"}]]))
        result = PipelineResponse.from_dict(body, 1).execute_result()
        assert isinstance(result, ResultSet)
        assert result.rows == [(b"\x00",)]

    def test_batch_outcomes(self) -> None:
        body = pipeline_ok(
            {
                "type": "batch",
                "result": {
                    "step_results": [
                        {"cols": [], "rows": [], "affected_row_count": 0},
                        None,
                        None,
                    ],
                    "step_errors": [None, {"message": "NOT NULL constraint failed: t.x"}, None],
                },
            }
        )
        outcomes = PipelineResponse.from_dict(body, 1).batch_result(3)
        assert not isinstance(outcomes, ProtocolError)
        assert [o.status for o in outcomes] == ["ok", "error", "skipped"]
        assert outcomes[1].error == ProtocolError("NOT NULL constraint failed: t.x")

    def test_batch_step_count_mismatch(self) -> None:
        body = pipeline_ok({"type": "batch", "result": {"step_results": [None], "step_errors": [None]}})
        with pytest.raises(ProtocolViolationError, match="step outcome"):
            PipelineResponse.from_dict(body, 1).batch_result(2)

    def test_script_result(self) -> None:
        body = pipeline_ok({"type": "sequence"})
        assert PipelineResponse.from_dict(body, 1).script_result() is None
