"""Entity records and derived read models.

Records are frozen pydantic models; an update is a ``model_copy`` with the
changed fields, which keeps every write an explicit ``put``.
"""

import mimetypes
import uuid
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from localchat.core.datetime_utils import to_utc_naive

AVATAR_COLORS = (
    "#0ea5e9",
    "#10b981",
    "#f59e0b",
    "#ef4444",
    "#6366f1",
    "#14b8a6",
    "#f97316",
    "#22c55e",
)

DEFAULT_MIME_TYPE = "application/octet-stream"


class ChatKind(str, Enum):
    DIRECT = "direct"
    GROUP = "group"


class MembershipRole(str, Enum):
    OWNER = "owner"
    MEMBER = "member"


class MessageKind(str, Enum):
    TEXT = "text"
    SYSTEM = "system"
    FILE = "file"
    IMAGE = "image"
    MIXED = "mixed"


class AttachmentKind(str, Enum):
    IMAGE = "image"
    FILE = "file"


class Record(BaseModel):
    """Base for stored records."""

    model_config = ConfigDict(frozen=True)

    id: uuid.UUID = Field(default_factory=uuid.uuid4)

    @field_validator("*", mode="after")
    @classmethod
    def normalize_datetimes(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            return to_utc_naive(value)
        return value


class Profile(Record):
    display_name: str
    avatar_color: str
    created_at: datetime
    updated_at: datetime
    password_salt: str | None = None
    password_hash: str | None = None
    password_iterations: int | None = None

    @property
    def has_password(self) -> bool:
        return bool(self.password_salt and self.password_hash and self.password_iterations)


class Chat(Record):
    kind: ChatKind
    title: str | None = None
    created_by: uuid.UUID
    created_at: datetime
    updated_at: datetime
    last_message_at: datetime | None = None
    # Sorted member pair for direct chats, backed by a unique index
    direct_key: str | None = None

    @property
    def last_activity(self) -> datetime:
        return self.last_message_at or self.updated_at


class ChatMembership(Record):
    chat_id: uuid.UUID
    profile_id: uuid.UUID
    role: MembershipRole = MembershipRole.MEMBER
    joined_at: datetime
    left_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.left_at is None


class Message(Record):
    chat_id: uuid.UUID
    sender_id: uuid.UUID
    kind: MessageKind
    body: str | None = None
    attachment_ids: list[uuid.UUID] = Field(default_factory=list)
    created_at: datetime


class AttachmentMeta(Record):
    message_id: uuid.UUID
    chat_id: uuid.UUID
    kind: AttachmentKind
    file_name: str
    mime_type: str
    size_bytes: int = Field(ge=0)
    blob_key: str
    created_at: datetime


class AttachmentWithBlob(AttachmentMeta):
    data: bytes


class MessageWithAttachments(Message):
    attachments: list[AttachmentWithBlob] = Field(default_factory=list)


class ChatListItem(BaseModel):
    """One row of a profile's conversation list."""

    model_config = ConfigDict(frozen=True)

    chat: Chat
    title: str
    subtitle: str
    last_message_at: datetime | None
    member_count: int


class IncomingFile(BaseModel):
    """A file handed to ``send_message``."""

    model_config = ConfigDict(frozen=True)

    file_name: str
    data: bytes
    mime_type: str = ""

    @model_validator(mode="before")
    @classmethod
    def sniff_mime_type(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("mime_type"):
            guessed, _ = mimetypes.guess_type(str(data.get("file_name", "")))
            data = {**data, "mime_type": guessed or DEFAULT_MIME_TYPE}
        return data

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    @property
    def is_image(self) -> bool:
        return is_image_mime(self.mime_type)


class QuotaConfig(BaseModel):
    """Attachment storage limits."""

    model_config = ConfigDict(frozen=True)

    max_file_bytes: int = Field(gt=0)
    max_total_bytes: int = Field(gt=0)


def is_image_mime(mime_type: str) -> bool:
    return mime_type.startswith("image/")


def pick_avatar_color(seed: str) -> str:
    """Deterministic palette color for a display name."""
    h = 0
    for ch in seed:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return AVATAR_COLORS[abs(h) % len(AVATAR_COLORS)]


def direct_key_for(a: uuid.UUID, b: uuid.UUID) -> str:
    """Order-independent key for the direct chat between two profiles."""
    first, second = sorted((str(a), str(b)))
    return f"{first}:{second}"


def derive_message_kind(text: str, files: list[IncomingFile]) -> MessageKind:
    if not files:
        return MessageKind.TEXT
    if len(files) == 1 and not text:
        return MessageKind.IMAGE if files[0].is_image else MessageKind.FILE
    return MessageKind.MIXED
