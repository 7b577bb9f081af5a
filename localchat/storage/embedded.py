"""Embedded device-local store on SQLAlchemy async + SQLite."""

from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from localchat.core.errors import BackendError, ConflictError
from localchat.core.logging import get_logger, log_error
from localchat.db.base import Base
from localchat.db.models import (
    AttachmentRow,
    BlobRow,
    ChatRow,
    MembershipRow,
    MessageRow,
    ProfileRow,
)
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

STORE_TABLES: dict[str, type[Base]] = {
    PROFILES: ProfileRow,
    CHATS: ChatRow,
    MEMBERSHIPS: MembershipRow,
    MESSAGES: MessageRow,
    ATTACHMENTS: AttachmentRow,
}

CHAT_TABLES = [table.__table__ for table in (*STORE_TABLES.values(), BlobRow)]


def _table(store: str) -> Any:
    record_type(store)
    return STORE_TABLES[store]


def _to_row(store: str, record: Record) -> Any:
    values = {
        key: value.value if isinstance(value, Enum) else value
        for key, value in record.model_dump().items()
    }
    return _table(store)(**values)


def _to_record(store: str, row: Any) -> Record:
    return record_type(store).model_validate(row, from_attributes=True)


class _EmbeddedTransaction(Transaction):
    """Transaction bound to one SQLAlchemy session."""

    def __init__(self, session: AsyncSession, stores: Iterable[str]) -> None:
        super().__init__(stores)
        self._session = session

    async def get(self, store: str, key: Any) -> Record | None:
        self._check_scope(store)
        row = await self._session.get(_table(store), key)
        return _to_record(store, row) if row is not None else None

    async def put(self, store: str, record: Record) -> None:
        self._check_scope(store)
        await self._session.merge(_to_row(store, record))

    async def put_blob(self, key: str, data: bytes) -> None:
        self._check_scope(BLOBS)
        await self._session.merge(BlobRow(key=key, data=data))


class EmbeddedBackend(StorageBackend):
    """Single-device store: records and blobs share one SQLite file."""

    name = "embedded"

    def __init__(self, database_url: str, echo: bool = False) -> None:
        self.database_url = database_url
        self.echo = echo
        self._engine: AsyncEngine | None = None
        self._sessionmaker: async_sessionmaker[AsyncSession] | None = None

    async def connect(self) -> None:
        if self._engine is not None:
            return

        engine_kwargs: dict[str, Any] = {"echo": self.echo}
        if ":memory:" in self.database_url:
            # One shared connection, otherwise every session sees an empty database
            engine_kwargs["poolclass"] = StaticPool
            engine_kwargs["connect_args"] = {"check_same_thread": False}

        engine = create_async_engine(self.database_url, **engine_kwargs)
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all, tables=CHAT_TABLES)
        except SQLAlchemyError as e:
            await engine.dispose()
            log_error(logger, "Could not open embedded store", e, {"url": self.database_url})
            raise BackendError(f"Could not open the local database: {e}") from e

        self._engine = engine
        self._sessionmaker = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        logger.info("Embedded store ready", extra={"event_type": "storage"})

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
        self._engine = None
        self._sessionmaker = None

    @asynccontextmanager
    async def _session(self, action: str) -> AsyncIterator[AsyncSession]:
        await self.connect()
        assert self._sessionmaker is not None
        try:
            async with self._sessionmaker() as session:
                yield session
        except IntegrityError as e:
            logger.warning(f"{action} rejected by a uniqueness constraint: {e.orig}")
            raise ConflictError(f"{action} conflicts with an existing record") from e
        except SQLAlchemyError as e:
            log_error(logger, f"{action} failed", e)
            raise BackendError(f"{action} failed: {e}") from e

    async def get(self, store: str, key: Any) -> Record | None:
        async with self._session(f"get {store}") as session:
            row = await session.get(_table(store), key)
            return _to_record(store, row) if row is not None else None

    async def get_all(self, store: str) -> list[Record]:
        async with self._session(f"get_all {store}") as session:
            result = await session.execute(select(_table(store)))
            return [_to_record(store, row) for row in result.scalars().all()]

    async def put(self, store: str, record: Record) -> None:
        async with self._session(f"put {store}") as session:
            await session.merge(_to_row(store, record))
            await session.commit()

    async def query(self, store: str, index: str, value: Any) -> list[Record]:
        spec = index_spec(store, index)
        table = _table(store)
        stmt = select(table).where(getattr(table, spec.field) == value)
        if spec.order_by:
            stmt = stmt.order_by(*(getattr(table, column) for column in spec.order_by))
        async with self._session(f"query {store}.{index}") as session:
            result = await session.execute(stmt)
            return [_to_record(store, row) for row in result.scalars().all()]

    async def run_atomic(self, stores: Iterable[str], writer: Writer[R]) -> R:
        tx_stores = list(stores)
        async with self._session(f"transaction on {tx_stores}") as session:
            async with session.begin():
                result = await writer(_EmbeddedTransaction(session, tx_stores))
            return result

    async def put_blob(self, key: str, data: bytes) -> None:
        async with self._session("put blob") as session:
            await session.merge(BlobRow(key=key, data=data))
            await session.commit()

    async def get_blob(self, key: str) -> bytes | None:
        async with self._session("get blob") as session:
            row = await session.get(BlobRow, key)
            return bytes(row.data) if row is not None else None

    async def total_attachment_bytes(self) -> int:
        stmt = select(func.coalesce(func.sum(AttachmentRow.size_bytes), 0))
        async with self._session("sum attachment sizes") as session:
            result = await session.execute(stmt)
            return int(result.scalar_one())
