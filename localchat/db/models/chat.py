"""Chat table."""

import uuid
from datetime import datetime

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from localchat.db.base import Base
from localchat.db.types import PortableUUID


class ChatRow(Base):
    """Conversation, direct or group."""

    __tablename__ = "chats"

    id: Mapped[uuid.UUID] = mapped_column(PortableUUID(), primary_key=True)
    kind: Mapped[str] = mapped_column(String(16), nullable=False)  # 'direct' or 'group'
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_by: Mapped[uuid.UUID] = mapped_column(PortableUUID(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)
    last_message_at: Mapped[datetime | None] = mapped_column(nullable=True)
    direct_key: Mapped[str | None] = mapped_column(String(80), nullable=True)

    __table_args__ = (
        Index("idx_chats_updated_at", "updated_at"),
        Index("uq_chats_direct_key", "direct_key", unique=True),
    )
