"""Change-notification bus shared by every context on the device.

Events only say which class of records changed; listeners re-query the
repository. The broadcast channel is the primary transport. Every publish
also overwrites one durable preference key, and contexts that cannot hear
the channel pick the latest event up by polling that key. The key keeps
only the last event, which is enough for level-triggered listeners.
"""

import asyncio
import inspect
import uuid
from collections import deque
from collections.abc import Awaitable, Callable
from datetime import datetime
from enum import Enum

import pydantic
from pydantic import BaseModel, ConfigDict, Field

from localchat.core.datetime_utils import utc_now_naive
from localchat.core.errors import BackendError
from localchat.core.logging import get_logger
from localchat.core.preferences import LAST_SYNC_EVENT, PreferencesStore
from localchat.sync.broadcast import BroadcastChannel

logger = get_logger(__name__)


class SyncEventType(str, Enum):
    PROFILES = "profiles.changed"
    CHATS = "chats.changed"
    MEMBERSHIPS = "memberships.changed"
    MESSAGES = "messages.changed"
    SEED_COMPLETED = "seed.completed"


class SyncEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    type: SyncEventType
    at: datetime = Field(default_factory=utc_now_naive)
    origin: str


Handler = Callable[[SyncEvent], Awaitable[None] | None]


class SyncBus:
    """Publish/subscribe over a broadcast channel with a durable fallback slot."""

    SEEN_LIMIT = 512

    def __init__(
        self,
        channel: BroadcastChannel,
        preferences: PreferencesStore | None = None,
        context_id: str | None = None,
        poll_interval: float = 1.0,
    ) -> None:
        self.channel = channel
        self.preferences = preferences
        self.context_id = context_id or uuid.uuid4().hex
        self.poll_interval = poll_interval
        self._handlers: list[Handler] = []
        self._seen: set[uuid.UUID] = set()
        self._seen_order: deque[uuid.UUID] = deque()
        self._poll_task: asyncio.Task[None] | None = None
        self._started = False
        self._disposed = False

    async def start(self) -> None:
        """Listen on the channel and start polling the fallback slot."""
        if self._started:
            return
        self._started = True
        self.channel.on_message(self._on_channel_message)
        await self.channel.start()

        if self.preferences is not None:
            # Whatever is in the slot predates this context; startup reads ground truth anyway
            last = await self._read_slot()
            if last is not None:
                self._mark_seen(last.id)
            if self.poll_interval > 0:
                self._poll_task = asyncio.create_task(
                    self._poll_loop(), name=f"sync-poll:{self.context_id}"
                )

    def subscribe(self, handler: Handler) -> Callable[[], None]:
        """Register ``handler``; the returned callable unsubscribes it."""
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    async def publish(self, event_type: SyncEventType) -> SyncEvent:
        """Announce a change to every context, this one included."""
        event = SyncEvent(type=event_type, origin=self.context_id)
        self._mark_seen(event.id)
        payload = event.model_dump_json()

        try:
            await self.channel.post(payload)
        except Exception as e:
            logger.warning(
                "Sync broadcast failed, relying on fallback slot",
                extra={"event_type": "sync", "sync_event": event.type.value, "error": str(e)},
            )

        if self.preferences is not None:
            try:
                await self.preferences.set(LAST_SYNC_EVENT, event.model_dump(mode="json"))
            except BackendError as e:
                logger.warning(
                    "Could not write sync fallback slot",
                    extra={"event_type": "sync", "error": e.reason},
                )

        await self._emit(event)
        return event

    async def poll_fallback(self) -> bool:
        """Deliver the slot's event if it is new and from another context."""
        event = await self._read_slot()
        if event is None or event.origin == self.context_id or event.id in self._seen:
            return False
        await self._emit(event)
        return True

    async def dispose(self) -> None:
        """Stop polling, close the channel and drop all handlers."""
        if self._disposed:
            return
        self._disposed = True
        if self._poll_task is not None:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None
        await self.channel.close()
        self._handlers.clear()

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            try:
                await self.poll_fallback()
            except BackendError as e:
                logger.warning(f"Sync fallback poll failed: {e.reason}")

    async def _read_slot(self) -> SyncEvent | None:
        if self.preferences is None:
            return None
        raw = await self.preferences.get(LAST_SYNC_EVENT)
        if not raw:
            return None
        try:
            return SyncEvent.model_validate(raw)
        except pydantic.ValidationError:
            logger.warning("Ignoring malformed sync fallback payload")
            return None

    async def _on_channel_message(self, payload: str) -> None:
        try:
            event = SyncEvent.model_validate_json(payload)
        except pydantic.ValidationError:
            logger.warning("Ignoring malformed sync broadcast payload")
            return
        if event.id in self._seen:
            return
        await self._emit(event)

    def _mark_seen(self, event_id: uuid.UUID) -> None:
        if event_id in self._seen:
            return
        self._seen.add(event_id)
        self._seen_order.append(event_id)
        if len(self._seen_order) > self.SEEN_LIMIT:
            self._seen.discard(self._seen_order.popleft())

    async def _emit(self, event: SyncEvent) -> None:
        self._mark_seen(event.id)
        for handler in list(self._handlers):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning(
                    "Sync listener failed",
                    extra={"event_type": "sync", "sync_event": event.type.value, "error": str(e)},
                )
