"""Database models."""

from localchat.db.models.attachment import AttachmentRow, BlobRow
from localchat.db.models.chat import ChatRow
from localchat.db.models.membership import MembershipRow
from localchat.db.models.message import MessageRow
from localchat.db.models.preference import PreferenceRow
from localchat.db.models.profile import ProfileRow

__all__ = [
    "AttachmentRow",
    "BlobRow",
    "ChatRow",
    "MembershipRow",
    "MessageRow",
    "PreferenceRow",
    "ProfileRow",
]
