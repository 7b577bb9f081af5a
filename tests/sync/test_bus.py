"""Tests for the sync bus and broadcast channels."""

import logging
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import redis.asyncio as redis

from localchat.core.config import Settings
from localchat.core.preferences import LAST_SYNC_EVENT
from localchat.sync import (
    LocalBroadcastChannel,
    LocalBroadcastHub,
    RedisBroadcastChannel,
    SyncBus,
    SyncEvent,
    SyncEventType,
    open_channel,
)


class TestLocalBroadcast:
    """Test the in-process broadcast channel."""

    @pytest.mark.asyncio
    async def test_delivers_to_peers_not_sender(self, wait_until):
        """Test that a post reaches other channels of the same name only."""
        hub = LocalBroadcastHub()
        sender = LocalBroadcastChannel(hub, "sync")
        peer = LocalBroadcastChannel(hub, "sync")
        stranger = LocalBroadcastChannel(hub, "other")
        received = {"sender": [], "peer": [], "stranger": []}
        for name, channel in (("sender", sender), ("peer", peer), ("stranger", stranger)):
            channel.on_message(AsyncMock(side_effect=received[name].append))
            await channel.start()

        await sender.post("hello")
        await wait_until(lambda: received["peer"])

        assert received == {"sender": [], "peer": ["hello"], "stranger": []}
        for channel in (sender, peer, stranger):
            await channel.close()

    @pytest.mark.asyncio
    async def test_closed_channel_stops_receiving(self):
        hub = LocalBroadcastHub()
        sender = LocalBroadcastChannel(hub, "sync")
        peer = LocalBroadcastChannel(hub, "sync")
        await sender.start()
        await peer.start()
        await peer.close()

        await sender.post("hello")
        assert hub.deliver(sender, "again") == 0
        await sender.close()

    @pytest.mark.asyncio
    async def test_open_channel_without_redis(self):
        """Test that an empty redis_url selects the in-process channel."""
        channel = await open_channel(Settings(_env_file=None), LocalBroadcastHub())
        assert isinstance(channel, LocalBroadcastChannel)
        assert channel.name == "localchat-sync"

    @pytest.mark.asyncio
    async def test_open_channel_falls_back_when_redis_unreachable(self):
        """Test the fallback when Redis cannot be reached."""
        settings = Settings(_env_file=None, redis_url="redis://127.0.0.1:1/0")
        channel = await open_channel(settings, LocalBroadcastHub())
        assert isinstance(channel, LocalBroadcastChannel)


def _redis_client(messages, error=None):
    """Mocked redis.asyncio client whose subscription yields ``messages``."""

    async def listen():
        for message in messages:
            yield message
        if error is not None:
            raise error

    pubsub = MagicMock()
    pubsub.listen = listen
    pubsub.subscribe = AsyncMock()
    pubsub.unsubscribe = AsyncMock()
    pubsub.aclose = AsyncMock()

    client = MagicMock()
    client.pubsub.return_value = pubsub
    client.publish = AsyncMock()
    client.ping = AsyncMock(return_value=True)
    client.aclose = AsyncMock()
    return client


class TestRedisBroadcast:
    """Test the Redis pub/sub channel against a mocked client."""

    @pytest.mark.asyncio
    async def test_dispatches_published_messages(self, wait_until):
        client = _redis_client(
            [
                {"type": "subscribe", "data": 1},
                {"type": "message", "data": b"first"},
                {"type": "message", "data": "second"},
            ]
        )
        channel = RedisBroadcastChannel(client, "sync")
        received = []
        channel.on_message(AsyncMock(side_effect=received.append))

        await channel.start()
        await wait_until(lambda: len(received) == 2)
        await channel.post("hello")
        await channel.close()

        assert received == ["first", "second"]
        client.pubsub.return_value.subscribe.assert_awaited_once_with("sync")
        client.publish.assert_awaited_once_with("sync", "hello")
        client.pubsub.return_value.aclose.assert_awaited_once()
        client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_lost_connection_is_logged(self, caplog, wait_until):
        """Test that a dropped subscription is reported instead of ending silently."""
        client = _redis_client(
            [{"type": "message", "data": "before"}],
            error=redis.ConnectionError("Connection closed by server."),
        )
        channel = RedisBroadcastChannel(client, "sync")
        received = []
        channel.on_message(AsyncMock(side_effect=received.append))

        with caplog.at_level(logging.ERROR, logger="localchat.sync.broadcast"):
            await channel.start()
            await wait_until(lambda: any("channel lost" in r.getMessage() for r in caplog.records))

        assert received == ["before"]
        [record] = [r for r in caplog.records if "channel lost" in r.getMessage()]
        assert "Connection closed by server." in record.getMessage()
        assert record.channel == "sync"
        await channel.close()

    @pytest.mark.asyncio
    async def test_open_channel_uses_reachable_redis(self):
        client = _redis_client([])
        settings = Settings(_env_file=None, redis_url="redis://cache.example.test:6379/0")
        with patch("localchat.sync.broadcast.redis.from_url", return_value=client) as from_url:
            channel = await open_channel(settings, LocalBroadcastHub())

        assert isinstance(channel, RedisBroadcastChannel)
        assert channel.name == "localchat-sync"
        assert from_url.call_args.args == ("redis://cache.example.test:6379/0",)
        client.ping.assert_awaited_once()


class TestSyncBus:
    """Test publish/subscribe across contexts."""

    @pytest.mark.asyncio
    async def test_publish_reaches_origin_and_peers(self, make_context, wait_until):
        """Test that every context, the origin included, is notified."""
        first = await make_context("first")
        second = await make_context("second")
        seen_first, seen_second = [], []
        first.bus.subscribe(seen_first.append)
        second.bus.subscribe(seen_second.append)

        event = await first.bus.publish(SyncEventType.MESSAGES)
        await wait_until(lambda: seen_second)

        assert seen_first == [event]
        assert seen_second == [event]
        assert event.origin == "first"

    @pytest.mark.asyncio
    async def test_event_delivered_once_per_bus(self, make_context, wait_until):
        """Test that the broadcast copy and the fallback copy are deduplicated."""
        first = await make_context("first")
        second = await make_context("second")
        seen = []
        second.bus.subscribe(seen.append)

        await first.bus.publish(SyncEventType.CHATS)
        await wait_until(lambda: seen)

        assert await second.bus.poll_fallback() is False
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_fallback_poll_reaches_disconnected_context(self, make_context):
        """Test that a context without the channel catches up by polling."""
        first = await make_context("first")
        isolated = await make_context("isolated", connected=False)
        seen = []
        isolated.bus.subscribe(seen.append)

        event = await first.bus.publish(SyncEventType.PROFILES)

        assert await isolated.bus.poll_fallback() is True
        assert seen == [event]
        assert await isolated.bus.poll_fallback() is False

    @pytest.mark.asyncio
    async def test_background_poll(self, make_context, wait_until):
        """Test that the periodic poll delivers without an explicit call."""
        first = await make_context("first")
        isolated = await make_context("isolated", poll_interval=0.02, connected=False)
        seen = []
        isolated.bus.subscribe(seen.append)

        await first.bus.publish(SyncEventType.MEMBERSHIPS)
        await wait_until(lambda: seen)
        assert seen[0].type == SyncEventType.MEMBERSHIPS

    @pytest.mark.asyncio
    async def test_own_event_in_slot_ignored(self, make_context):
        context = await make_context("solo")
        seen = []
        context.bus.subscribe(seen.append)

        await context.bus.publish(SyncEventType.MESSAGES)
        assert await context.bus.poll_fallback() is False
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_stale_slot_not_replayed_on_start(self, make_context):
        """Test that an event written before a context started is not delivered."""
        first = await make_context("first")
        await first.bus.publish(SyncEventType.CHATS)

        late = await make_context("late", connected=False)
        seen = []
        late.bus.subscribe(seen.append)
        assert await late.bus.poll_fallback() is False
        assert seen == []

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_block_others(self, make_context):
        context = await make_context("solo")
        seen = []

        def broken(event):
            raise RuntimeError("listener bug")

        context.bus.subscribe(broken)
        context.bus.subscribe(seen.append)

        await context.bus.publish(SyncEventType.MESSAGES)
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_async_handler_and_unsubscribe(self, make_context):
        context = await make_context("solo")
        handler = AsyncMock()
        unsubscribe = context.bus.subscribe(handler)

        event = await context.bus.publish(SyncEventType.CHATS)
        unsubscribe()
        await context.bus.publish(SyncEventType.CHATS)

        handler.assert_awaited_once_with(event)

    @pytest.mark.asyncio
    async def test_slot_holds_last_event(self, make_context):
        context = await make_context("solo")
        await context.bus.publish(SyncEventType.CHATS)
        last = await context.bus.publish(SyncEventType.MESSAGES)

        stored = await context.preferences.get(LAST_SYNC_EVENT)
        assert SyncEvent.model_validate(stored) == last

    @pytest.mark.asyncio
    async def test_dispose_is_idempotent(self, make_context):
        """Test that disposing twice is safe and drops handlers."""
        context = await make_context("solo", poll_interval=0.05)
        seen = []
        context.bus.subscribe(seen.append)

        await context.dispose()
        await context.dispose()
        assert context.bus._handlers == []

    @pytest.mark.asyncio
    async def test_bus_without_preferences(self):
        """Test a channel-only bus."""
        bus = SyncBus(LocalBroadcastChannel(LocalBroadcastHub(), "sync"), context_id="x")
        await bus.start()
        seen = []
        bus.subscribe(seen.append)
        await bus.publish(SyncEventType.PROFILES)
        assert await bus.poll_fallback() is False
        assert len(seen) == 1
        await bus.dispose()
