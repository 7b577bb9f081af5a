"""Storage backends."""

from localchat.storage.base import (
    ALL_STORES,
    ATTACHMENTS,
    BLOBS,
    CHATS,
    MEMBERSHIPS,
    MESSAGES,
    PROFILES,
    StorageBackend,
    Transaction,
)
from localchat.storage.embedded import EmbeddedBackend
from localchat.storage.networked import NetworkedBackend

__all__ = [
    "ALL_STORES",
    "ATTACHMENTS",
    "BLOBS",
    "CHATS",
    "MEMBERSHIPS",
    "MESSAGES",
    "PROFILES",
    "EmbeddedBackend",
    "NetworkedBackend",
    "StorageBackend",
    "Transaction",
]
