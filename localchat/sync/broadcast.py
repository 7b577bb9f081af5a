"""Broadcast channels with a Redis backend and an in-process fallback."""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

import redis.asyncio as redis

from localchat.core.config import Settings
from localchat.core.logging import get_logger, log_error

logger = get_logger(__name__)

MessageHandler = Callable[[str], Awaitable[None]]


class BroadcastChannel(ABC):
    """Named channel; payloads posted by one member reach the others."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._handler: MessageHandler | None = None

    def on_message(self, handler: MessageHandler) -> None:
        self._handler = handler

    async def _dispatch(self, payload: str) -> None:
        if self._handler is None:
            return
        try:
            await self._handler(payload)
        except Exception as e:
            logger.warning(
                "Broadcast handler failed",
                extra={"event_type": "sync", "channel": self.name, "error": str(e)},
            )

    @abstractmethod
    async def start(self) -> None:
        """Begin receiving messages."""

    @abstractmethod
    async def post(self, payload: str) -> None:
        """Send ``payload`` to the other members of the channel."""

    @abstractmethod
    async def close(self) -> None:
        """Stop receiving and release resources."""


class LocalBroadcastHub:
    """Routes payloads between channels of the same name inside one process."""

    def __init__(self) -> None:
        self._members: dict[str, set["LocalBroadcastChannel"]] = {}

    def join(self, channel: "LocalBroadcastChannel") -> None:
        self._members.setdefault(channel.name, set()).add(channel)

    def leave(self, channel: "LocalBroadcastChannel") -> None:
        members = self._members.get(channel.name)
        if members is None:
            return
        members.discard(channel)
        if not members:
            del self._members[channel.name]

    def deliver(self, sender: "LocalBroadcastChannel", payload: str) -> int:
        peers = [m for m in self._members.get(sender.name, ()) if m is not sender]
        for peer in peers:
            peer.enqueue(payload)
        return len(peers)


class LocalBroadcastChannel(BroadcastChannel):
    """In-process channel; never delivers back to the posting instance."""

    def __init__(self, hub: LocalBroadcastHub, name: str) -> None:
        super().__init__(name)
        self._hub = hub
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._task: asyncio.Task[None] | None = None

    def enqueue(self, payload: str) -> None:
        self._queue.put_nowait(payload)

    async def start(self) -> None:
        if self._task is not None:
            return
        self._hub.join(self)
        self._task = asyncio.create_task(self._pump(), name=f"broadcast:{self.name}")

    async def _pump(self) -> None:
        while True:
            payload = await self._queue.get()
            await self._dispatch(payload)

    async def post(self, payload: str) -> None:
        self._hub.deliver(self, payload)

    async def close(self) -> None:
        self._hub.leave(self)
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None


class RedisBroadcastChannel(BroadcastChannel):
    """Redis pub/sub channel for contexts living in different processes.

    Redis echoes a publisher's own messages back to it; the sync bus drops
    those by event id.
    """

    def __init__(self, client: redis.Redis, name: str) -> None:
        super().__init__(name)
        self._client = client
        self._pubsub: redis.client.PubSub | None = None
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        if self._task is not None:
            return
        self._pubsub = self._client.pubsub(ignore_subscribe_messages=True)
        await self._pubsub.subscribe(self.name)
        self._task = asyncio.create_task(self._listen(), name=f"broadcast:{self.name}")

    async def _listen(self) -> None:
        assert self._pubsub is not None
        try:
            async for message in self._pubsub.listen():
                if message.get("type") != "message":
                    continue
                data = message["data"]
                await self._dispatch(data.decode() if isinstance(data, bytes) else data)
        except (redis.RedisError, OSError) as e:
            log_error(
                logger,
                "Redis broadcast channel lost",
                e,
                {"event_type": "sync", "channel": self.name},
            )
            return
        logger.warning(
            "Redis broadcast subscription ended",
            extra={"event_type": "sync", "channel": self.name},
        )

    async def post(self, payload: str) -> None:
        await self._client.publish(self.name, payload)

    async def close(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._pubsub is not None:
            await self._pubsub.unsubscribe(self.name)
            await self._pubsub.aclose()
            self._pubsub = None
        await self._client.aclose()


async def open_channel(settings: Settings, hub: LocalBroadcastHub) -> BroadcastChannel:
    """Redis channel when ``redis_url`` is set and reachable, otherwise in-process."""
    if settings.redis_url:
        client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=5,
        )
        try:
            await asyncio.wait_for(client.ping(), timeout=5.0)
            logger.info("Sync bus using Redis broadcast channel")
            return RedisBroadcastChannel(client, settings.sync_channel)
        except Exception as e:
            logger.warning(f"Redis not available for sync, using in-process channel: {e}")
            await client.aclose()

    return LocalBroadcastChannel(hub, settings.sync_channel)
