"""Cross-context change notification."""

from localchat.sync.broadcast import (
    BroadcastChannel,
    LocalBroadcastChannel,
    LocalBroadcastHub,
    RedisBroadcastChannel,
    open_channel,
)
from localchat.sync.bus import SyncBus, SyncEvent, SyncEventType
from localchat.sync.context import SyncContext

__all__ = [
    "BroadcastChannel",
    "LocalBroadcastChannel",
    "LocalBroadcastHub",
    "RedisBroadcastChannel",
    "SyncBus",
    "SyncContext",
    "SyncEvent",
    "SyncEventType",
    "open_channel",
]
