"""Chat membership table."""

import uuid
from datetime import datetime

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from localchat.db.base import Base
from localchat.db.types import PortableUUID


class MembershipRow(Base):
    """Join record between a chat and a profile; soft-closed on leave."""

    __tablename__ = "chat_memberships"

    id: Mapped[uuid.UUID] = mapped_column(PortableUUID(), primary_key=True)
    chat_id: Mapped[uuid.UUID] = mapped_column(PortableUUID(), nullable=False)
    profile_id: Mapped[uuid.UUID] = mapped_column(PortableUUID(), nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="member")
    joined_at: Mapped[datetime] = mapped_column(nullable=False)
    left_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        Index("idx_memberships_chat_id", "chat_id"),
        Index("idx_memberships_profile_id", "profile_id"),
    )
