"""Storage backend contract shared by the embedded and networked stores."""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from types import TracebackType
from typing import Any, TypeVar

from localchat.core.errors import BackendError
from localchat.entities import (
    AttachmentMeta,
    Chat,
    ChatMembership,
    Message,
    Profile,
    Record,
)

PROFILES = "profiles"
CHATS = "chats"
MEMBERSHIPS = "memberships"
MESSAGES = "messages"
ATTACHMENTS = "attachments"
BLOBS = "blobs"

RECORD_TYPES: dict[str, type[Record]] = {
    PROFILES: Profile,
    CHATS: Chat,
    MEMBERSHIPS: ChatMembership,
    MESSAGES: Message,
    ATTACHMENTS: AttachmentMeta,
}

ALL_STORES = (*RECORD_TYPES, BLOBS)


@dataclass(frozen=True)
class IndexSpec:
    """Secondary index: equality on ``field``, results ordered by ``order_by``."""

    field: str
    order_by: tuple[str, ...] = ()


INDEXES: dict[str, dict[str, IndexSpec]] = {
    CHATS: {
        "by_direct_key": IndexSpec("direct_key"),
    },
    MEMBERSHIPS: {
        "by_chat": IndexSpec("chat_id", ("joined_at",)),
        "by_profile": IndexSpec("profile_id", ("joined_at",)),
    },
    MESSAGES: {
        "by_chat": IndexSpec("chat_id", ("created_at", "seq")),
    },
    ATTACHMENTS: {
        "by_message": IndexSpec("message_id", ("created_at",)),
        "by_chat": IndexSpec("chat_id", ("created_at",)),
    },
}

R = TypeVar("R")


def record_type(store: str) -> type[Record]:
    try:
        return RECORD_TYPES[store]
    except KeyError:
        raise ValueError(f"Unknown store: {store}") from None


def index_spec(store: str, index: str) -> IndexSpec:
    try:
        return INDEXES[store][index]
    except KeyError:
        raise ValueError(f"Unknown index {index!r} on store {store!r}") from None


class Transaction(ABC):
    """Write handle passed to ``StorageBackend.run_atomic`` writers."""

    def __init__(self, stores: Iterable[str]) -> None:
        self.stores = frozenset(stores)
        unknown = self.stores - set(ALL_STORES)
        if unknown:
            raise ValueError(f"Unknown stores: {sorted(unknown)}")

    def _check_scope(self, store: str) -> None:
        if store not in self.stores:
            raise BackendError(
                f"Store {store!r} is not part of this transaction ({sorted(self.stores)})"
            )

    @abstractmethod
    async def get(self, store: str, key: Any) -> Record | None:
        """Read a record, seeing writes already made in this transaction."""

    @abstractmethod
    async def put(self, store: str, record: Record) -> None:
        """Insert or replace a record by primary key."""

    async def insert(self, store: str, record: Record) -> None:
        """Write a record this transaction creates.

        Behaves like ``put``; stores that cannot roll back use the marker
        to remove the record again when a later write fails.
        """
        await self.put(store, record)

    @abstractmethod
    async def put_blob(self, key: str, data: bytes) -> None:
        """Store attachment bytes under ``key``."""


Writer = Callable[[Transaction], Awaitable[R]]


class StorageBackend(ABC):
    """Durable record store plus a blob area.

    Implementations translate their native failures into ``BackendError``
    (``ConflictError`` for uniqueness violations, ``NetworkError`` for
    transport failures). Exceptions raised by a ``run_atomic`` writer abort
    the transaction and propagate unchanged.
    """

    name = "abstract"

    async def __aenter__(self) -> "StorageBackend":
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    @abstractmethod
    async def connect(self) -> None:
        """Prepare the store (create schema, open clients)."""

    @abstractmethod
    async def close(self) -> None:
        """Release connections."""

    @abstractmethod
    async def get(self, store: str, key: Any) -> Record | None: ...

    @abstractmethod
    async def get_all(self, store: str) -> list[Record]:
        """All records of a store, in no particular order."""

    @abstractmethod
    async def put(self, store: str, record: Record) -> None: ...

    @abstractmethod
    async def query(self, store: str, index: str, value: Any) -> list[Record]:
        """Records whose indexed field equals ``value``, in index order."""

    @abstractmethod
    async def run_atomic(self, stores: Iterable[str], writer: Writer[R]) -> R:
        """Run ``writer`` so that all of its writes commit together or not at all."""

    @abstractmethod
    async def put_blob(self, key: str, data: bytes) -> None: ...

    @abstractmethod
    async def get_blob(self, key: str) -> bytes | None: ...

    async def total_attachment_bytes(self) -> int:
        """Sum of ``size_bytes`` over all attachment records."""
        metas = await self.get_all(ATTACHMENTS)
        return sum(meta.size_bytes for meta in metas if isinstance(meta, AttachmentMeta))
