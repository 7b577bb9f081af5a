"""Attachment metadata and blob tables."""

import uuid
from datetime import datetime

from sqlalchemy import BigInteger, Index, LargeBinary, String
from sqlalchemy.orm import Mapped, mapped_column

from localchat.db.base import Base
from localchat.db.types import PortableUUID


class AttachmentRow(Base):
    """Metadata for a file sent with a message."""

    __tablename__ = "attachments"

    id: Mapped[uuid.UUID] = mapped_column(PortableUUID(), primary_key=True)
    message_id: Mapped[uuid.UUID] = mapped_column(PortableUUID(), nullable=False)
    chat_id: Mapped[uuid.UUID] = mapped_column(PortableUUID(), nullable=False)
    kind: Mapped[str] = mapped_column(String(16), nullable=False)  # 'image' or 'file'
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(255), nullable=False)
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)
    blob_key: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    __table_args__ = (
        Index("idx_attachments_message_id", "message_id"),
        Index("idx_attachments_chat_id", "chat_id"),
    )


class BlobRow(Base):
    """Attachment bytes, keyed by ``AttachmentRow.blob_key``."""

    __tablename__ = "attachment_blobs"

    key: Mapped[str] = mapped_column(String(128), primary_key=True)
    data: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
