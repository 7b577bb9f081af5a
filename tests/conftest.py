"""Pytest configuration and shared fixtures."""

import asyncio
import json
from collections import defaultdict
from collections.abc import Callable
from typing import Any
from urllib.parse import unquote

import httpx
import pytest
import pytest_asyncio

from localchat.core.credentials import Credentials
from localchat.core.preferences import PreferencesStore
from localchat.entities import QuotaConfig
from localchat.services.repository import ChatRepository
from localchat.storage.embedded import EmbeddedBackend
from localchat.storage.networked import NetworkedBackend
from localchat.sync.broadcast import LocalBroadcastChannel, LocalBroadcastHub
from localchat.sync.bus import SyncBus
from localchat.sync.context import SyncContext

TEST_QUOTA = QuotaConfig(max_file_bytes=1024, max_total_bytes=4096)
TEST_CHANNEL = "localchat-test"


@pytest.fixture(autouse=True)
def mock_settings(monkeypatch):
    """Keep settings independent of the developer's environment."""
    for name in ("STORAGE_BACKEND", "REMOTE_URL", "REMOTE_API_KEY", "REDIS_URL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setenv("PREFERENCES_URL", "sqlite+aiosqlite:///:memory:")


def _sort_key(value: Any) -> Any:
    return value if isinstance(value, int) else str(value)


class FakeRemoteService:
    """In-memory stand-in for the REST tables and the blob bucket."""

    UNIQUE = {"chats": "direct_key"}
    SEQUENCES = {"messages": "seq"}

    def __init__(self) -> None:
        self.tables: dict[str, dict[str, dict[str, Any]]] = defaultdict(dict)
        self.objects: dict[str, bytes] = {}
        self.requests: list[tuple[str, str]] = []
        self.fail: Callable[[httpx.Request], httpx.Response | None] | None = None
        self._next_seq = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append((request.method, request.url.path))
        if self.fail is not None:
            response = self.fail(request)
            if response is not None:
                return response

        path = request.url.path
        if path.startswith("/storage/v1/object/"):
            _bucket, _, key = path[len("/storage/v1/object/"):].partition("/")
            return self._object(request, unquote(key))
        if path.startswith("/rest/v1/"):
            return self._table(request, path[len("/rest/v1/"):])
        return httpx.Response(404, json={"message": "unknown route"})

    def _object(self, request: httpx.Request, key: str) -> httpx.Response:
        if request.method == "GET":
            if key not in self.objects:
                return httpx.Response(404, json={"message": "Object not found"})
            return httpx.Response(200, content=self.objects[key])
        if request.method == "POST":
            self.objects[key] = request.content
            return httpx.Response(200, json={"Key": key})
        if request.method == "DELETE":
            self.objects.pop(key, None)
            return httpx.Response(200, json=[])
        return httpx.Response(405)

    @staticmethod
    def _matches(row: dict[str, Any], params: httpx.QueryParams) -> bool:
        for field, condition in params.multi_items():
            if field in ("select", "order", "limit"):
                continue
            if not condition.startswith("eq.") or str(row.get(field)) != condition[3:]:
                return False
        return True

    def _table(self, request: httpx.Request, table: str) -> httpx.Response:
        rows = self.tables[table]
        params = request.url.params

        if request.method == "GET":
            found = [row for row in rows.values() if self._matches(row, params)]
            for clause in reversed(params.get("order", "").split(",")):
                if clause:
                    column = clause.split(".")[0]
                    found.sort(key=lambda row: _sort_key(row.get(column)))
            if "limit" in params:
                found = found[: int(params["limit"])]
            select = params.get("select", "*")
            if select != "*":
                columns = select.split(",")
                found = [{c: row.get(c) for c in columns} for row in found]
            return httpx.Response(200, json=found)

        if request.method == "POST":
            incoming = json.loads(request.content)
            unique = self.UNIQUE.get(table)
            for row in incoming:
                if unique and row.get(unique) is not None:
                    for existing in rows.values():
                        if existing["id"] != row["id"] and existing.get(unique) == row[unique]:
                            return httpx.Response(409, json={"code": "23505"})
            sequence = self.SEQUENCES.get(table)
            for row in incoming:
                existing = rows.get(row["id"])
                if existing is None and sequence:
                    self._next_seq += 1
                    row = {**row, sequence: self._next_seq}
                rows[row["id"]] = {**(existing or {}), **row}
            return httpx.Response(201)

        if request.method == "DELETE":
            for key in [k for k, row in rows.items() if self._matches(row, params)]:
                del rows[key]
            return httpx.Response(204)

        return httpx.Response(405)


async def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.01)


@pytest.fixture
def wait_until():
    """Yield to the event loop until a predicate holds."""
    return _wait_until


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'chat.db'}"


@pytest.fixture
def preferences_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'prefs.db'}"


@pytest_asyncio.fixture
async def embedded_backend(database_url):
    backend = EmbeddedBackend(database_url)
    await backend.connect()
    yield backend
    await backend.close()


@pytest.fixture
def remote_service():
    return FakeRemoteService()


@pytest_asyncio.fixture
async def networked_backend(remote_service):
    backend = NetworkedBackend(
        "https://chat.example.test",
        api_key="test-key",
        transport=httpx.MockTransport(remote_service.handler),
    )
    await backend.connect()
    yield backend
    await backend.close()


@pytest.fixture
def hub():
    return LocalBroadcastHub()


@pytest_asyncio.fixture
async def make_context(preferences_url, hub):
    """Factory for started sync contexts sharing one device."""
    contexts: list[SyncContext] = []

    async def factory(name: str, poll_interval: float = 0, connected: bool = True) -> SyncContext:
        preferences = PreferencesStore(preferences_url)
        # A context on a private hub hears nobody and must rely on polling
        channel_hub = hub if connected else LocalBroadcastHub()
        bus = SyncBus(
            LocalBroadcastChannel(channel_hub, TEST_CHANNEL),
            preferences=preferences,
            context_id=name,
            poll_interval=poll_interval,
        )
        context = SyncContext(bus, preferences)
        await context.start()
        contexts.append(context)
        return context

    yield factory
    for context in contexts:
        await context.dispose()


@pytest_asyncio.fixture
async def sync_context(make_context):
    context = await make_context("primary")
    yield context
    await context.dispose()


@pytest.fixture
def credentials():
    return Credentials(iterations=1000)


@pytest_asyncio.fixture(params=["embedded", "networked"])
async def backend(request, database_url, remote_service):
    """Each repository test runs against both storage variants."""
    if request.param == "embedded":
        store = EmbeddedBackend(database_url)
    else:
        store = NetworkedBackend(
            "https://chat.example.test",
            transport=httpx.MockTransport(remote_service.handler),
        )
    await store.connect()
    yield store
    await store.close()


@pytest.fixture
def repository(backend, sync_context, credentials):
    return ChatRepository(backend, sync_context, TEST_QUOTA, credentials)
