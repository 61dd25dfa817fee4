"""Shared fixtures: an in-memory FileMaker Data API behind an httpx transport."""

from __future__ import annotations

import base64
import json
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
import pytest

from src.bridge.services.call_log_sync import CallLogSyncService
from src.bridge.services.filemaker_auth import FileMakerSessionManager
from src.clients.filemaker import FileMakerClient

FM_BASE_URL = "https://fm.example.com/fmi/data/vLatest/databases/Calls"
FM_LAYOUT = "CallLog"


def _fm_reply(status_code: int, code: str, message: str, response: dict | None = None):
    return httpx.Response(
        status_code,
        json={"response": response or {}, "messages": [{"code": code, "message": message}]},
    )


def _unescape_find(value: str) -> str:
    value = value.removeprefix("==")
    out, escaped = [], False
    for ch in value:
        if ch == "\\" and not escaped:
            escaped = True
            continue
        out.append(ch)
        escaped = False
    return "".join(out)


class FakeFileMakerServer(httpx.AsyncBaseTransport):
    """Just enough of the Data API: sessions, _find, create, edit, layouts."""

    def __init__(self, username: str = "api", password: str = "secret") -> None:
        self.username = username
        self.password = password
        self.records: dict[str, dict[str, Any]] = {}
        self.valid_tokens: set[str] = set()
        self.requests: list[tuple[str, str]] = []
        self.login_count = 0
        self.reject_next_tokens = 0
        self.reject_creates = False
        self.stale_mod_ids = False
        self._next_record_id = 1

    # -- test helpers -------------------------------------------------
    def expire_all_tokens(self) -> None:
        self.valid_tokens.clear()

    def count(self, method: str, suffix: str) -> int:
        return sum(1 for m, path in self.requests if m == method and path.endswith(suffix))

    @property
    def data_calls(self) -> list[tuple[str, str]]:
        return [(m, p) for m, p in self.requests if "/layouts/" in p]

    # -- transport ----------------------------------------------------
    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        method = request.method
        self.requests.append((method, path))
        relative = path.removeprefix("/fmi/data/vLatest/databases/Calls")

        if method == "POST" and relative == "/sessions":
            return self._login(request)
        if method == "DELETE" and relative.startswith("/sessions/"):
            self.valid_tokens.discard(relative.rsplit("/", 1)[1])
            return _fm_reply(200, "0", "OK")

        token = request.headers.get("Authorization", "").removeprefix("Bearer ")
        if token not in self.valid_tokens or self.reject_next_tokens > 0:
            self.reject_next_tokens = max(self.reject_next_tokens - 1, 0)
            return _fm_reply(401, "952", "Invalid FileMaker Data API token (*)")

        body = json.loads(request.content) if request.content else {}

        if method == "GET" and relative == "/layouts":
            return _fm_reply(200, "0", "OK", {"layouts": [{"name": FM_LAYOUT}]})
        if method == "POST" and relative == f"/layouts/{FM_LAYOUT}/_find":
            return self._find(body)
        if method == "POST" and relative == f"/layouts/{FM_LAYOUT}/records":
            return self._create(body)
        if method == "PATCH" and relative.startswith(f"/layouts/{FM_LAYOUT}/records/"):
            return self._update(relative.rsplit("/", 1)[1], body)

        return _fm_reply(404, "105", "Layout is missing")

    def _login(self, request: httpx.Request) -> httpx.Response:
        expected = base64.b64encode(f"{self.username}:{self.password}".encode()).decode()
        if request.headers.get("Authorization") != f"Basic {expected}":
            return _fm_reply(401, "212", "Invalid user account and/or password; please try again")

        self.login_count += 1
        token = f"token-{self.login_count}"
        self.valid_tokens.add(token)
        return _fm_reply(200, "0", "OK", {"token": token})

    def _find(self, body: dict[str, Any]) -> httpx.Response:
        wanted = _unescape_find(body["query"][0]["call_id"])
        matches = [
            {"recordId": rid, "modId": rec["modId"], "fieldData": rec["fieldData"]}
            for rid, rec in self.records.items()
            if rec["fieldData"].get("call_id") == wanted
        ]
        if not matches:
            return _fm_reply(500, "401", "No records match the request")
        return _fm_reply(200, "0", "OK", {"data": matches})

    def _create(self, body: dict[str, Any]) -> httpx.Response:
        if self.reject_creates:
            return _fm_reply(500, "102", "Field is missing")

        record_id = str(self._next_record_id)
        self._next_record_id += 1
        self.records[record_id] = {"fieldData": dict(body["fieldData"]), "modId": "0"}
        return _fm_reply(200, "0", "OK", {"recordId": record_id, "modId": "0"})

    def _update(self, record_id: str, body: dict[str, Any]) -> httpx.Response:
        record = self.records.get(record_id)
        if record is None:
            return _fm_reply(500, "101", "Record is missing")
        if self.stale_mod_ids or ("modId" in body and body["modId"] != record["modId"]):
            return _fm_reply(500, "306", "Record modification ID does not match")

        record["fieldData"].update(body["fieldData"])
        record["modId"] = str(int(record["modId"]) + 1)
        return _fm_reply(200, "0", "OK", {"modId": record["modId"]})


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 6, 1, 9, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def fm_server() -> FakeFileMakerServer:
    return FakeFileMakerServer()


@pytest.fixture
def fm_client(fm_server: FakeFileMakerServer) -> FileMakerClient:
    http_client = httpx.AsyncClient(transport=fm_server, base_url=FM_BASE_URL)
    return FileMakerClient(
        server_url="https://fm.example.com",
        database="Calls",
        layout=FM_LAYOUT,
        username="api",
        password="secret",
        http_client=http_client,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sessions(fm_client: FileMakerClient, clock: FakeClock) -> FileMakerSessionManager:
    return FileMakerSessionManager(fm_client, lease=timedelta(minutes=13), clock=clock)


@pytest.fixture
def sync_service(
    fm_client: FileMakerClient, sessions: FileMakerSessionManager
) -> CallLogSyncService:
    return CallLogSyncService(fm_client, sessions)
