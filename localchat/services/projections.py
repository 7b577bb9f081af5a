"""Conversation-list projection.

Pure functions over records the repository has already fetched, so the
title/subtitle rules can be tested without a backend.
"""

import uuid
from collections import defaultdict
from collections.abc import Iterable

from localchat.entities import (
    Chat,
    ChatKind,
    ChatListItem,
    ChatMembership,
    Message,
    MessageKind,
    Profile,
)

NO_MESSAGES = "No messages yet"
ATTACHMENT = "Attachment"
UNKNOWN_PROFILE = "Unknown"


def sort_messages(messages: Iterable[Message]) -> list[Message]:
    """Ascending by creation time; equal timestamps keep their input order."""
    return sorted(messages, key=lambda message: message.created_at)


def chat_title(
    chat: Chat,
    viewer_id: uuid.UUID,
    active_members: list[ChatMembership],
    profiles_by_id: dict[uuid.UUID, Profile],
) -> str:
    if chat.kind == ChatKind.GROUP:
        return chat.title or "Untitled Group"
    other = next((m for m in active_members if m.profile_id != viewer_id), None)
    if other is None:
        return "Direct message"
    profile = profiles_by_id.get(other.profile_id)
    return profile.display_name if profile else UNKNOWN_PROFILE


def chat_subtitle(last_message: Message | None) -> str:
    if last_message is None:
        return NO_MESSAGES
    if last_message.kind == MessageKind.SYSTEM:
        return last_message.body or "System"
    text = (last_message.body or "").strip()
    if text:
        return text
    return ATTACHMENT if last_message.attachment_ids else "Message"


def build_chat_list(
    viewer_id: uuid.UUID,
    chats: Iterable[Chat],
    memberships: Iterable[ChatMembership],
    messages: Iterable[Message],
    profiles: Iterable[Profile],
) -> list[ChatListItem]:
    """Chats the viewer actively belongs to, most recent activity first."""
    profiles_by_id = {profile.id: profile for profile in profiles}

    active_by_chat: dict[uuid.UUID, list[ChatMembership]] = defaultdict(list)
    for membership in memberships:
        if membership.is_active:
            active_by_chat[membership.chat_id].append(membership)

    messages_by_chat: dict[uuid.UUID, list[Message]] = defaultdict(list)
    for message in messages:
        messages_by_chat[message.chat_id].append(message)

    items = []
    for chat in chats:
        members = active_by_chat.get(chat.id, [])
        if not any(m.profile_id == viewer_id for m in members):
            continue
        ordered = sort_messages(messages_by_chat.get(chat.id, []))
        items.append(
            ChatListItem(
                chat=chat,
                title=chat_title(chat, viewer_id, members, profiles_by_id),
                subtitle=chat_subtitle(ordered[-1] if ordered else None),
                last_message_at=chat.last_message_at,
                member_count=len(members),
            )
        )

    items.sort(key=lambda item: item.chat.last_activity, reverse=True)
    return items
