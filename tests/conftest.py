"""
Pytest configuration for libSQL SDK tests.

Unit tests talk to an in-process fake Hrana server (``FakeHranaServer``),
wired into the client through ``httpx.MockTransport`` and backed by an
in-memory ``sqlite3`` database, so SQL semantics (constraints, transactions)
are real.

Integration tests (marked ``integration``) need a running libSQL server
(``sqld``). The server container is managed here:
- Checks if the test container is already running
- Starts it if needed before integration tests
- Stops it after tests only if we started it
"""

import base64
import json
import os
import sqlite3
import subprocess
import time
from collections.abc import AsyncGenerator, Callable, Generator
from typing import Any

import httpx
import pytest
import pytest_asyncio

from libsql_sdk import LibSQLClient

# ---------------------------------------------------------------------------
# Shared connection constants (import these in test files)
# ---------------------------------------------------------------------------
TEST_PORT = int(os.getenv("LIBSQL_PORT", "8080"))
LIBSQL_TEST_URL = os.getenv("LIBSQL_TEST_URL", f"http://localhost:{TEST_PORT}")
LIBSQL_TEST_TOKEN = os.getenv("LIBSQL_TEST_TOKEN") or None
FAKE_URL = "http://fake-libsql.local"

# Container configuration
CONTAINER_NAME = "libsql-sdk-sqld"
COMPOSE_FILE = "devops/docker-compose.yml"
HEALTH_CHECK_TIMEOUT = 30  # seconds
SKIP_CONTAINER = os.getenv("LIBSQL_SKIP_CONTAINER", "").lower() in ("1", "true", "yes")


# ---------------------------------------------------------------------------
# Fake Hrana server
# ---------------------------------------------------------------------------


def wire_value(value: Any) -> dict[str, Any]:
    """Encode a sqlite3 value the way sqld does (blobs without padding)."""
    if value is None:
        return {"type": "null"}
    if isinstance(value, int):
        return {"type": "integer", "value": str(value)}
    if isinstance(value, float):
        return {"type": "float", "value": value}
    if isinstance(value, str):
        return {"type": "text", "value": value}
    return {"type": "blob", "base64": base64.b64encode(value).decode("ascii").rstrip("=")}


def native_value(data: dict[str, Any]) -> Any:
    match data["type"]:
        case "null":
            return None
        case "integer":
            return int(data["value"])
        case "float":
            return float(data["value"])
        case "text":
            return data["value"]
        case "blob":
            encoded = data["base64"]
            return base64.b64decode(encoded + "=" * (-len(encoded) % 4))
    raise AssertionError(f"unexpected value {data!r}")


class FakeHranaServer:
    """
    Minimal Hrana v2 pipeline server over sqlite3.

    Records every request body in ``requests`` and every request's headers
    in ``headers``.
    """

    def __init__(self) -> None:
        self.db = sqlite3.connect(":memory:", isolation_level=None)
        self.requests: list[dict[str, Any]] = []
        self.headers: list[httpx.Headers] = []
        self.paths: list[str] = []

    def close(self) -> None:
        self.db.close()

    def count(self, table: str) -> int:
        return self.db.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]

    def table_names(self) -> set[str]:
        rows = self.db.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
        return {r[0] for r in rows}

    @staticmethod
    def _error(e: sqlite3.Error) -> dict[str, Any]:
        return {"message": str(e), "code": getattr(e, "sqlite_errorname", None)}

    def _execute(self, stmt: dict[str, Any]) -> dict[str, Any]:
        params: Any = [native_value(a) for a in stmt.get("args", [])]
        if stmt.get("named_args"):
            params = {a["name"].lstrip(":@$"): native_value(a["value"]) for a in stmt["named_args"]}
        cursor = self.db.execute(stmt["sql"], params)
        cols = [{"name": d[0], "decltype": None} for d in cursor.description or []]
        rows = [[wire_value(v) for v in row] for row in cursor.fetchall()] if cursor.description else []
        return {
            "cols": cols,
            "rows": rows if stmt.get("want_rows", True) else [],
            "affected_row_count": max(cursor.rowcount, 0) if not cursor.description else 0,
            "last_insert_rowid": str(cursor.lastrowid) if cursor.lastrowid else None,
        }

    def _holds(self, cond: dict[str, Any] | None, results: list[Any], errors: list[Any]) -> bool:
        if cond is None:
            return True
        match cond["type"]:
            case "ok":
                return results[cond["step"]] is not None
            case "error":
                return errors[cond["step"]] is not None
            case "not":
                return not self._holds(cond["cond"], results, errors)
            case "and":
                return all(self._holds(c, results, errors) for c in cond["conds"])
            case "or":
                return any(self._holds(c, results, errors) for c in cond["conds"])
        raise AssertionError(f"unexpected condition {cond!r}")

    def _batch(self, steps: list[dict[str, Any]]) -> dict[str, Any]:
        results: list[Any] = []
        errors: list[Any] = []
        for step in steps:
            if not self._holds(step.get("condition"), results, errors):
                results.append(None)
                errors.append(None)
                continue
            try:
                results.append(self._execute(step["stmt"]))
                errors.append(None)
            except sqlite3.Error as e:
                results.append(None)
                errors.append(self._error(e))
        return {"step_results": results, "step_errors": errors}

    def _stream_request(self, req: dict[str, Any]) -> dict[str, Any]:
        try:
            match req["type"]:
                case "execute":
                    response = {"type": "execute", "result": self._execute(req["stmt"])}
                case "batch":
                    response = {"type": "batch", "result": self._batch(req["batch"]["steps"])}
                case "sequence":
                    self.db.executescript(req["sql"])
                    response = {"type": "sequence"}
                case "close":
                    response = {"type": "close"}
                case other:
                    raise AssertionError(f"unexpected request type {other!r}")
        except sqlite3.Error as e:
            return {"type": "error", "error": self._error(e)}
        return {"type": "ok", "response": response}

    def handle(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append(body)
        self.headers.append(request.headers)
        self.paths.append(request.url.path)
        results = [self._stream_request(r) for r in body["requests"]]
        return httpx.Response(200, json={"baton": None, "base_url": None, "results": results})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)


def pipeline_ok(*responses: dict[str, Any]) -> dict[str, Any]:
    """Build a pipeline response body from stream responses (close appended)."""
    results = [{"type": "ok", "response": r} for r in responses]
    results.append({"type": "ok", "response": {"type": "close"}})
    return {"baton": None, "base_url": None, "results": results}


def execute_response(cols: list[str], rows: list[list[dict[str, Any]]], **extra: Any) -> dict[str, Any]:
    result = {
        "cols": [{"name": c, "decltype": None} for c in cols],
        "rows": rows,
        "affected_row_count": 0,
        "last_insert_rowid": None,
        **extra,
    }
    return {"type": "execute", "result": result}


def json_transport(body: Any, status_code: int = 200) -> httpx.MockTransport:
    """Transport answering every request with the same JSON body."""
    return httpx.MockTransport(lambda request: httpx.Response(status_code, json=body))


@pytest.fixture
def fake_server() -> Generator[FakeHranaServer, None, None]:
    server = FakeHranaServer()
    yield server
    server.close()


@pytest_asyncio.fixture
async def client(fake_server: FakeHranaServer) -> AsyncGenerator[LibSQLClient, None]:
    """Client wired to the fake server."""
    async with LibSQLClient(FAKE_URL, "test-token", transport=fake_server.transport()) as db:
        yield db


@pytest.fixture
def make_client() -> Callable[[httpx.MockTransport], LibSQLClient]:
    """Factory for clients over an arbitrary mock transport."""

    def factory(transport: httpx.MockTransport, auth_token: str | None = None) -> LibSQLClient:
        return LibSQLClient(FAKE_URL, auth_token, transport=transport)

    return factory


# ---------------------------------------------------------------------------
# Integration server (sqld) lifecycle
# ---------------------------------------------------------------------------


def is_libsql_healthy(url: str = LIBSQL_TEST_URL) -> bool:
    """Check if sqld is healthy via its /health endpoint."""
    try:
        response = httpx.get(f"{url}/health", timeout=2)
        return response.status_code == 200
    except httpx.HTTPError:
        return False


def start_container() -> bool:
    """Start the sqld test container."""
    try:
        result = subprocess.run(
            ["docker", "compose", "-f", COMPOSE_FILE, "up", "-d", "sqld"],
            capture_output=True,
            text=True,
            timeout=60,
        )
        if result.returncode != 0:
            print(f"Failed to start container: {result.stderr}")
            return False

        start_time = time.time()
        while time.time() - start_time < HEALTH_CHECK_TIMEOUT:
            if is_libsql_healthy():
                return True
            time.sleep(0.5)

        print(f"Container did not become healthy within {HEALTH_CHECK_TIMEOUT}s")
        return False
    except (subprocess.TimeoutExpired, FileNotFoundError) as e:
        print(f"Failed to start container: {e}")
        return False


def stop_container() -> None:
    """Stop the sqld test container."""
    try:
        subprocess.run(
            ["docker", "compose", "-f", COMPOSE_FILE, "stop", "sqld"],
            capture_output=True,
            text=True,
            timeout=30,
        )
    except (subprocess.TimeoutExpired, FileNotFoundError) as e:
        print(f"Failed to stop container: {e}")


# Track if we started the container (so we know whether to stop it)
_container_started_by_tests = False


def pytest_configure(config: pytest.Config) -> None:
    """
    Start the sqld container, but only when integration tests are selected
    and no server is already healthy.
    """
    global _container_started_by_tests

    config.addinivalue_line("markers", "integration: needs a running libSQL server")

    markers = config.getoption("-m", default="")
    if "integration" not in (markers or "") or "not integration" in markers:
        return

    if SKIP_CONTAINER or is_libsql_healthy():
        return

    print(f"\n[conftest] Starting sqld container on port {TEST_PORT}...")
    _container_started_by_tests = start_container()
    if not _container_started_by_tests:
        print("[conftest] WARNING: Could not start sqld container. Integration tests will be skipped.")


def pytest_unconfigure(config: pytest.Config) -> None:
    """Stop the sqld container only if we started it."""
    global _container_started_by_tests

    if _container_started_by_tests:
        print("\n[conftest] Stopping sqld container (started by tests)...")
        stop_container()
        _container_started_by_tests = False


@pytest.fixture(scope="session")
def libsql_available() -> Generator[bool, None, None]:
    """Session-scoped flag telling whether a real libSQL server answers."""
    yield is_libsql_healthy()
