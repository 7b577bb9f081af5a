"""Profile table."""

import uuid
from datetime import datetime

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from localchat.db.base import Base
from localchat.db.types import PortableUUID


class ProfileRow(Base):
    """Identity record."""

    __tablename__ = "profiles"

    id: Mapped[uuid.UUID] = mapped_column(PortableUUID(), primary_key=True)
    display_name: Mapped[str] = mapped_column(String(64), nullable=False)
    avatar_color: Mapped[str] = mapped_column(String(16), nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)
    password_salt: Mapped[str | None] = mapped_column(String(64), nullable=True)
    password_hash: Mapped[str | None] = mapped_column(String(128), nullable=True)
    password_iterations: Mapped[int | None] = mapped_column(Integer, nullable=True)
