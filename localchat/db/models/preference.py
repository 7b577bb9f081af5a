"""Device preference table."""

from datetime import datetime
from typing import Any

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from localchat.core.datetime_utils import utc_now_naive
from localchat.db.base import Base
from localchat.db.types import JSONType


class PreferenceRow(Base):
    """Persistent key/value pair."""

    __tablename__ = "preferences"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[Any] = mapped_column(JSONType(), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(default=utc_now_naive, onupdate=utc_now_naive)
