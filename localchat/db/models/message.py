"""Message table."""

import uuid
from datetime import datetime

from sqlalchemy import BigInteger, Index, String, Text, literal_column
from sqlalchemy.orm import Mapped, mapped_column

from localchat.db.base import Base
from localchat.db.types import PortableUUID, UUIDArray


class MessageRow(Base):
    """Chat message; immutable once the send completes."""

    __tablename__ = "messages"

    id: Mapped[uuid.UUID] = mapped_column(PortableUUID(), primary_key=True)
    chat_id: Mapped[uuid.UUID] = mapped_column(PortableUUID(), nullable=False)
    sender_id: Mapped[uuid.UUID] = mapped_column(PortableUUID(), nullable=False)
    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    body: Mapped[str | None] = mapped_column(Text, nullable=True)
    attachment_ids: Mapped[list[uuid.UUID]] = mapped_column(UUIDArray(), nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    # Insertion order, assigned once by the INSERT; orders messages sharing a timestamp
    seq: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=literal_column("(SELECT COALESCE(MAX(seq), 0) + 1 FROM messages)"),
    )

    __table_args__ = (
        Index("idx_messages_chat_created", "chat_id", "created_at", "seq"),
    )
