"""First-run demo conversations."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from localchat.entities import (
    AttachmentKind,
    AttachmentMeta,
    Chat,
    ChatKind,
    ChatMembership,
    Message,
    MessageKind,
    MembershipRole,
    Profile,
    direct_key_for,
    pick_avatar_color,
)

DEMO_NAMES = ("Alex", "Sam", "Jordan", "Casey")
GROUP_TITLE = "Weekend Plans"

MOCKUP_SVG = (
    '<svg xmlns="http://www.w3.org/2000/svg" width="320" height="180" viewBox="0 0 320 180">'
    '<rect width="320" height="180" rx="16" fill="#0ea5e9"/>'
    '<rect x="24" y="24" width="272" height="28" rx="6" fill="#e0f2fe"/>'
    '<rect x="24" y="68" width="180" height="16" rx="4" fill="#bae6fd"/>'
    '<rect x="24" y="96" width="220" height="16" rx="4" fill="#bae6fd"/>'
    '<rect x="24" y="132" width="96" height="28" rx="14" fill="#f59e0b"/>'
    "</svg>"
).encode()

CHECKLIST_TEXT = b"Weekend checklist\n- Snacks\n- Speakers\n- Charger\n"


@dataclass
class DemoDataset:
    profiles: list[Profile] = field(default_factory=list)
    chats: list[Chat] = field(default_factory=list)
    memberships: list[ChatMembership] = field(default_factory=list)
    messages: list[Message] = field(default_factory=list)
    attachments: list[AttachmentMeta] = field(default_factory=list)
    blobs: dict[str, bytes] = field(default_factory=dict)

    @property
    def owner(self) -> Profile:
        return self.profiles[0]

    @property
    def featured_chat(self) -> Chat:
        return next(chat for chat in self.chats if chat.kind == ChatKind.GROUP)


def build_demo_dataset(now: datetime) -> DemoDataset:
    """Records for the demo conversations, timestamped back from ``now``."""

    def ago(minutes: float) -> datetime:
        return now - timedelta(minutes=minutes)

    data = DemoDataset()
    alex, sam, jordan, casey = (
        Profile(
            display_name=name,
            avatar_color=pick_avatar_color(name),
            created_at=ago(24 * 60),
            updated_at=ago(24 * 60),
        )
        for name in DEMO_NAMES
    )
    data.profiles.extend([alex, sam, jordan, casey])

    def add_chat(chat: Chat, members: list[Profile], joined_at: datetime) -> Chat:
        data.chats.append(chat)
        for member in members:
            data.memberships.append(
                ChatMembership(
                    chat_id=chat.id,
                    profile_id=member.id,
                    role=MembershipRole.OWNER if member.id == chat.created_by else MembershipRole.MEMBER,
                    joined_at=joined_at,
                )
            )
        return chat

    def say(chat: Chat, sender: Profile, body: str | None, at: datetime, **fields) -> Message:
        message = Message(chat_id=chat.id, sender_id=sender.id, body=body, created_at=at, **fields)
        data.messages.append(message)
        return message

    def attach(
        chat: Chat,
        sender: Profile,
        body: str | None,
        at: datetime,
        file_name: str,
        mime_type: str,
        payload: bytes,
        kind: AttachmentKind,
    ) -> None:
        message = Message(
            chat_id=chat.id,
            sender_id=sender.id,
            kind=MessageKind.IMAGE if kind == AttachmentKind.IMAGE else MessageKind.FILE,
            body=body,
            created_at=at,
        )
        meta = AttachmentMeta(
            message_id=message.id,
            chat_id=chat.id,
            kind=kind,
            file_name=file_name,
            mime_type=mime_type,
            size_bytes=len(payload),
            blob_key="",
            created_at=at,
        )
        meta = meta.model_copy(update={"blob_key": f"blob_{meta.id}"})
        data.messages.append(message.model_copy(update={"attachment_ids": [meta.id]}))
        data.attachments.append(meta)
        data.blobs[meta.blob_key] = payload

    direct_sam = add_chat(
        Chat(
            kind=ChatKind.DIRECT,
            created_by=alex.id,
            created_at=ago(180),
            updated_at=ago(170),
            last_message_at=ago(170),
            direct_key=direct_key_for(alex.id, sam.id),
        ),
        [alex, sam],
        ago(180),
    )
    say(direct_sam, sam, "Hey Alex, did you see the draft?", ago(175), kind=MessageKind.TEXT)
    say(direct_sam, alex, "Yes, looks good. I left comments.", ago(170), kind=MessageKind.TEXT)

    direct_jordan = add_chat(
        Chat(
            kind=ChatKind.DIRECT,
            created_by=alex.id,
            created_at=ago(120),
            updated_at=ago(90),
            last_message_at=ago(90),
            direct_key=direct_key_for(alex.id, jordan.id),
        ),
        [alex, jordan],
        ago(120),
    )
    say(direct_jordan, jordan, "Sending the checklist in a sec.", ago(90), kind=MessageKind.TEXT)

    group = add_chat(
        Chat(
            kind=ChatKind.GROUP,
            title=GROUP_TITLE,
            created_by=alex.id,
            created_at=ago(60),
            updated_at=ago(5),
            last_message_at=ago(5),
        ),
        [alex, sam, casey],
        ago(60),
    )
    say(group, alex, "Group created", ago(60), kind=MessageKind.SYSTEM)
    say(group, casey, "Saturday works for me.", ago(30), kind=MessageKind.TEXT)
    attach(
        group, sam, "Mockup preview", ago(15),
        "mockup-preview.svg", "image/svg+xml", MOCKUP_SVG, AttachmentKind.IMAGE,
    )
    attach(
        group, alex, None, ago(5),
        "weekend-checklist.txt", "text/plain", CHECKLIST_TEXT, AttachmentKind.FILE,
    )
    return data
