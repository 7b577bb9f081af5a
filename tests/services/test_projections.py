"""Tests for the conversation-list projection."""

import uuid
from datetime import datetime, timedelta

from localchat.entities import (
    Chat,
    ChatKind,
    ChatMembership,
    Message,
    MessageKind,
    Profile,
)
from localchat.services.projections import (
    build_chat_list,
    chat_subtitle,
    chat_title,
    sort_messages,
)

T0 = datetime(2026, 5, 1, 12, 0)


def _profile(name):
    return Profile(display_name=name, avatar_color="#0ea5e9", created_at=T0, updated_at=T0)


def _chat(kind=ChatKind.GROUP, title="Team", last=None, updated=T0):
    return Chat(
        kind=kind,
        title=title,
        created_by=uuid.uuid4(),
        created_at=T0,
        updated_at=updated,
        last_message_at=last,
    )


def _member(chat, profile, left=False):
    return ChatMembership(
        chat_id=chat.id,
        profile_id=profile.id,
        joined_at=T0,
        left_at=T0 + timedelta(minutes=1) if left else None,
    )


def _message(chat, sender, body, minutes=0, kind=MessageKind.TEXT, attachments=()):
    return Message(
        chat_id=chat.id,
        sender_id=sender.id,
        kind=kind,
        body=body,
        attachment_ids=list(attachments),
        created_at=T0 + timedelta(minutes=minutes),
    )


class TestTitles:
    """Test chat title and subtitle rules."""

    def test_group_title(self):
        chat = _chat(title="Weekend Plans")
        assert chat_title(chat, uuid.uuid4(), [], {}) == "Weekend Plans"

    def test_group_without_title(self):
        chat = _chat(title=None)
        assert chat_title(chat, uuid.uuid4(), [], {}) == "Untitled Group"

    def test_direct_title_is_other_member(self):
        alex, sam = _profile("Alex"), _profile("Sam")
        chat = _chat(kind=ChatKind.DIRECT, title=None)
        members = [_member(chat, alex), _member(chat, sam)]
        profiles = {alex.id: alex, sam.id: sam}
        assert chat_title(chat, alex.id, members, profiles) == "Sam"
        assert chat_title(chat, sam.id, members, profiles) == "Alex"

    def test_direct_title_unknown_profile(self):
        alex, ghost = _profile("Alex"), _profile("Ghost")
        chat = _chat(kind=ChatKind.DIRECT, title=None)
        members = [_member(chat, alex), _member(chat, ghost)]
        assert chat_title(chat, alex.id, members, {alex.id: alex}) == "Unknown"

    def test_subtitles(self):
        chat, alex = _chat(), _profile("Alex")
        assert chat_subtitle(None) == "No messages yet"
        assert chat_subtitle(_message(chat, alex, "  hi there ")) == "hi there"
        assert chat_subtitle(_message(chat, alex, "Group created", kind=MessageKind.SYSTEM)) == "Group created"
        attachment = _message(chat, alex, None, kind=MessageKind.FILE, attachments=[uuid.uuid4()])
        assert chat_subtitle(attachment) == "Attachment"


class TestSortMessages:
    def test_stable_for_equal_timestamps(self):
        chat, alex = _chat(), _profile("Alex")
        first = _message(chat, alex, "first")
        second = _message(chat, alex, "second")
        earliest = _message(chat, alex, "earliest", minutes=-1)
        assert [m.body for m in sort_messages([first, second, earliest])] == [
            "earliest",
            "first",
            "second",
        ]


class TestBuildChatList:
    """Test visibility and ordering of the chat list."""

    def test_only_active_memberships_visible(self):
        """Test that chats the viewer left or never joined are hidden."""
        alex, sam = _profile("Alex"), _profile("Sam")
        joined, left, foreign = _chat(title="Joined"), _chat(title="Left"), _chat(title="Foreign")
        memberships = [
            _member(joined, alex),
            _member(left, alex, left=True),
            _member(left, sam),
            _member(foreign, sam),
        ]

        items = build_chat_list(alex.id, [joined, left, foreign], memberships, [], [alex, sam])
        assert [item.title for item in items] == ["Joined"]
        assert items[0].member_count == 1
        assert items[0].subtitle == "No messages yet"

    def test_sorted_by_last_activity(self):
        """Test most recent activity first, falling back to updated_at."""
        alex = _profile("Alex")
        quiet = _chat(title="Quiet", updated=T0 + timedelta(hours=1))
        busy = _chat(title="Busy", last=T0 + timedelta(hours=2))
        stale = _chat(title="Stale", last=T0)
        chats = [stale, quiet, busy]
        memberships = [_member(chat, alex) for chat in chats]

        items = build_chat_list(alex.id, chats, memberships, [], [alex])
        assert [item.title for item in items] == ["Busy", "Quiet", "Stale"]

    def test_subtitle_from_latest_message(self):
        alex = _profile("Alex")
        chat = _chat(last=T0 + timedelta(minutes=5))
        messages = [
            _message(chat, alex, "newest", minutes=5),
            _message(chat, alex, "older", minutes=1),
        ]
        items = build_chat_list(alex.id, [chat], [_member(chat, alex)], messages, [alex])
        assert items[0].subtitle == "newest"
        assert items[0].last_message_at == T0 + timedelta(minutes=5)
