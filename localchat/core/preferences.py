"""Durable device preferences."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from localchat.core.errors import BackendError
from localchat.core.logging import get_logger, log_error
from localchat.db.base import Base
from localchat.db.models import PreferenceRow

logger = get_logger(__name__)

ACTIVE_PROFILE = "active_profile_id"
AUTHENTICATED_PROFILE = "authenticated_profile_id"
SELECTED_CHAT_BY_PROFILE = "selected_chat_by_profile"
HAS_SEEDED_DEMO_DATA = "has_seeded_demo_data"
LAST_SYNC_EVENT = "sync:last_event"


class PreferencesStore:
    """Key/value pairs that survive restarts, shared by every context on the device.

    Values must be JSON serializable.
    """

    def __init__(self, database_url: str) -> None:
        self.database_url = database_url
        self._engine: AsyncEngine | None = None
        self._sessionmaker: async_sessionmaker[AsyncSession] | None = None

    async def _ensure_initialized(self) -> None:
        if self._engine is not None:
            return

        engine_kwargs: dict[str, Any] = {}
        if ":memory:" in self.database_url:
            engine_kwargs["poolclass"] = StaticPool
            engine_kwargs["connect_args"] = {"check_same_thread": False}
        engine = create_async_engine(self.database_url, **engine_kwargs)
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all, tables=[PreferenceRow.__table__])
        except SQLAlchemyError as e:
            await engine.dispose()
            log_error(logger, "Could not open preferences store", e)
            raise BackendError(f"Could not open preferences: {e}") from e

        self._engine = engine
        self._sessionmaker = async_sessionmaker(engine, expire_on_commit=False)

    @asynccontextmanager
    async def _session(self, action: str) -> AsyncIterator[AsyncSession]:
        await self._ensure_initialized()
        assert self._sessionmaker is not None
        try:
            async with self._sessionmaker() as session:
                yield session
        except SQLAlchemyError as e:
            log_error(logger, f"Preferences {action} failed", e)
            raise BackendError(f"Preferences {action} failed: {e}") from e

    async def get(self, key: str, default: Any = None) -> Any:
        """Get a stored value, or ``default`` when the key is absent."""
        async with self._session("get") as session:
            row = await session.get(PreferenceRow, key)
            if row is None or row.value is None:
                return default
            return row.value

    async def set(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
        async with self._session("set") as session:
            await session.merge(PreferenceRow(key=key, value=value))
            await session.commit()

    async def clear(self, key: str) -> None:
        """Remove ``key``; clearing a missing key is a no-op."""
        async with self._session("clear") as session:
            await session.execute(delete(PreferenceRow).where(PreferenceRow.key == key))
            await session.commit()

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
        self._engine = None
        self._sessionmaker = None
