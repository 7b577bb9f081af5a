"""Networked store: relational REST API plus object storage for blobs.

The relational side speaks the PostgREST dialect (``/rest/v1/<table>``,
``col=eq.value`` filters, upserts through ``Prefer: resolution=merge-duplicates``);
blobs live in a bucket under ``/storage/v1/object/<bucket>/<key>``.
There is no multi-request transaction, so ``run_atomic`` buffers the
writer's writes and replays them in order once the writer has returned.
"""

from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from localchat.core.errors import BackendError, ConflictError, NetworkError
from localchat.core.logging import get_logger, log_error
from localchat.core.retry import is_retryable_http_error, retry_with_backoff
from localchat.entities import Record
from localchat.storage.base import (
    ATTACHMENTS,
    BLOBS,
    CHATS,
    MEMBERSHIPS,
    MESSAGES,
    PROFILES,
    R,
    StorageBackend,
    Transaction,
    Writer,
    index_spec,
    record_type,
)

logger = get_logger(__name__)

REMOTE_TABLES = {
    PROFILES: "profiles",
    CHATS: "chats",
    MEMBERSHIPS: "chat_memberships",
    MESSAGES: "messages",
    ATTACHMENTS: "attachments",
}

UPSERT_HEADERS = {"Prefer": "resolution=merge-duplicates,return=minimal"}


def _table_path(store: str) -> str:
    record_type(store)
    return f"/rest/v1/{REMOTE_TABLES[store]}"


def _eq(value: Any) -> str:
    return f"eq.{value}"


@dataclass
class _PendingWrite:
    store: str
    record: Record


class _NetworkedTransaction(Transaction):
    """Collects writes; ``commit`` replays them against the service."""

    def __init__(self, backend: "NetworkedBackend", stores: Iterable[str]) -> None:
        super().__init__(stores)
        self._backend = backend
        self._writes: list[_PendingWrite] = []
        self._blobs: dict[str, bytes] = {}
        # Version of each touched row before this transaction; None when it is new
        self._prior: dict[tuple[str, str], Record | None] = {}

    async def get(self, store: str, key: Any) -> Record | None:
        self._check_scope(store)
        for pending in reversed(self._writes):
            if pending.store == store and str(pending.record.id) == str(key):
                return pending.record
        return await self._backend.get(store, key)

    async def put(self, store: str, record: Record) -> None:
        self._check_scope(store)
        ident = (store, str(record.id))
        if ident not in self._prior:
            self._prior[ident] = await self._backend.get(store, record.id)
        self._writes.append(_PendingWrite(store, record))

    async def insert(self, store: str, record: Record) -> None:
        self._check_scope(store)
        self._prior.setdefault((store, str(record.id)), None)
        self._writes.append(_PendingWrite(store, record))

    async def put_blob(self, key: str, data: bytes) -> None:
        self._check_scope(BLOBS)
        self._blobs[key] = data

    async def commit(self) -> None:
        uploaded: list[str] = []
        applied: dict[tuple[str, str], None] = {}
        try:
            for key, data in self._blobs.items():
                await self._backend.put_blob(key, data)
                uploaded.append(key)
            for pending in self._writes:
                await self._backend.put(pending.store, pending.record)
                applied[(pending.store, str(pending.record.id))] = None
        except BackendError:
            await self._compensate(uploaded, list(applied))
            raise

    async def _compensate(self, blob_keys: list[str], rows: list[tuple[str, str]]) -> None:
        """Best-effort undo: new rows are deleted, updated rows get their prior version back."""
        # Reverse order of first write removes children before their parents
        for store, key in reversed(rows):
            prior = self._prior.get((store, key))
            try:
                if prior is None:
                    await self._backend.delete(store, key)
                else:
                    await self._backend.put(store, prior)
            except BackendError as e:
                log_error(logger, f"Could not roll back {store} {key}", e)
        for blob_key in blob_keys:
            try:
                await self._backend.delete_blob(blob_key)
            except BackendError as e:
                log_error(logger, f"Could not roll back blob {blob_key}", e)


class NetworkedBackend(StorageBackend):
    """Chat data on a remote relational service; blobs in object storage."""

    name = "networked"

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        bucket: str = "chat-files",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.bucket = bucket
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def connect(self) -> None:
        if self._client is not None:
            return
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
            headers["Authorization"] = f"Bearer {self.api_key}"
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=self.timeout,
            transport=self._transport,
        )
        logger.info(
            "Networked store ready",
            extra={"event_type": "storage", "base_url": self.base_url, "bucket": self.bucket},
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
        self._client = None

    @retry_with_backoff()
    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        await self.connect()
        assert self._client is not None
        response = await self._client.request(method, url, **kwargs)
        response.raise_for_status()
        return response

    @asynccontextmanager
    async def _errors(self, action: str) -> AsyncIterator[None]:
        try:
            yield
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 409:
                logger.warning(f"{action} rejected with 409: {e.response.text[:200]}")
                raise ConflictError(f"{action} conflicts with an existing record") from e
            log_error(logger, f"{action} failed", e, {"status": status})
            if is_retryable_http_error(e):
                raise NetworkError(f"{action} failed: service unavailable (HTTP {status})") from e
            raise BackendError(f"{action} failed with HTTP {status}") from e
        except httpx.TransportError as e:
            log_error(logger, f"{action} failed", e)
            raise NetworkError(f"{action} failed: network unavailable ({e})") from e

    def _blob_path(self, key: str) -> str:
        return f"/storage/v1/object/{quote(self.bucket)}/{quote(key)}"

    def _parse(self, store: str, rows: list[dict[str, Any]]) -> list[Record]:
        model = record_type(store)
        return [model.model_validate(row) for row in rows]

    async def get(self, store: str, key: Any) -> Record | None:
        async with self._errors(f"get {store}"):
            response = await self._send(
                "GET", _table_path(store), params={"select": "*", "id": _eq(key), "limit": "1"}
            )
        rows = self._parse(store, response.json())
        return rows[0] if rows else None

    async def get_all(self, store: str) -> list[Record]:
        async with self._errors(f"get_all {store}"):
            response = await self._send("GET", _table_path(store), params={"select": "*"})
        return self._parse(store, response.json())

    async def put(self, store: str, record: Record) -> None:
        async with self._errors(f"put {store}"):
            await self._send(
                "POST",
                _table_path(store),
                json=[record.model_dump(mode="json")],
                headers=UPSERT_HEADERS,
            )

    async def delete(self, store: str, key: Any) -> None:
        async with self._errors(f"delete {store}"):
            await self._send("DELETE", _table_path(store), params={"id": _eq(key)})

    async def query(self, store: str, index: str, value: Any) -> list[Record]:
        spec = index_spec(store, index)
        params = {"select": "*", spec.field: _eq(value)}
        if spec.order_by:
            params["order"] = ",".join(f"{column}.asc" for column in spec.order_by)
        async with self._errors(f"query {store}.{index}"):
            response = await self._send("GET", _table_path(store), params=params)
        return self._parse(store, response.json())

    async def run_atomic(self, stores: Iterable[str], writer: Writer[R]) -> R:
        tx = _NetworkedTransaction(self, stores)
        result = await writer(tx)
        await tx.commit()
        return result

    async def put_blob(self, key: str, data: bytes) -> None:
        async with self._errors("upload blob"):
            await self._send(
                "POST",
                self._blob_path(key),
                content=data,
                headers={"Content-Type": "application/octet-stream", "x-upsert": "true"},
            )

    async def get_blob(self, key: str) -> bytes | None:
        async with self._errors("download blob"):
            try:
                response = await self._send("GET", self._blob_path(key))
            except httpx.HTTPStatusError as e:
                if e.response.status_code == 404:
                    return None
                raise
        return response.content

    async def delete_blob(self, key: str) -> None:
        async with self._errors("delete blob"):
            await self._send("DELETE", self._blob_path(key))

    async def total_attachment_bytes(self) -> int:
        async with self._errors("sum attachment sizes"):
            response = await self._send(
                "GET", _table_path(ATTACHMENTS), params={"select": "size_bytes"}
            )
        return sum(int(row["size_bytes"]) for row in response.json())
