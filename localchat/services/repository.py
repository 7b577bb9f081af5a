"""Chat repository: every domain operation over a storage backend.

Each mutation validates its input, writes through ``run_atomic`` and then
publishes the change classes it touched on the sync bus. Validation always
happens before the first write, so a rejected call leaves no trace.
"""

import uuid
from collections import defaultdict
from collections.abc import Iterable, Sequence
from typing import Any, cast

from localchat.core.credentials import Credentials, PasswordRecord
from localchat.core.errors import (
    AccessDeniedError,
    AuthError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from localchat.core.logging import get_logger
from localchat.core.preferences import (
    ACTIVE_PROFILE,
    AUTHENTICATED_PROFILE,
    HAS_SEEDED_DEMO_DATA,
    SELECTED_CHAT_BY_PROFILE,
    PreferencesStore,
)
from localchat.entities import (
    AttachmentKind,
    AttachmentMeta,
    AttachmentWithBlob,
    Chat,
    ChatKind,
    ChatListItem,
    ChatMembership,
    IncomingFile,
    MembershipRole,
    Message,
    MessageKind,
    MessageWithAttachments,
    Profile,
    QuotaConfig,
    derive_message_kind,
    direct_key_for,
    pick_avatar_color,
)
from localchat.services.projections import build_chat_list, sort_messages
from localchat.services.seed import build_demo_dataset
from localchat.storage.base import (
    ALL_STORES,
    ATTACHMENTS,
    BLOBS,
    CHATS,
    MEMBERSHIPS,
    MESSAGES,
    PROFILES,
    StorageBackend,
    Transaction,
)
from localchat.sync.bus import SyncBus, SyncEventType
from localchat.sync.context import SyncContext

logger = get_logger(__name__)

MAX_NAME_LENGTH = 64
DEFAULT_GROUP_TITLE = "Untitled Group"
UNKNOWN_NAME = "User"


def format_bytes(size: int) -> str:
    """Human-readable size, e.g. ``10 MB``."""
    if size < 1024:
        return f"{size} B"
    value = float(size)
    for unit in ("KB", "MB", "GB"):
        value /= 1024
        if value < 1024 or unit == "GB":
            break
    return f"{value:.0f} {unit}" if value >= 10 else f"{value:.1f} {unit}"


def _as_uuid(entity: str, value: uuid.UUID | str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise NotFoundError(entity, value) from None


def clean_display_name(name: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Display name cannot be empty")
    if len(cleaned) > MAX_NAME_LENGTH:
        raise ValidationError(f"Display name must be at most {MAX_NAME_LENGTH} characters")
    return cleaned


class ChatRepository:
    """Domain operations for profiles, chats, memberships and messages."""

    def __init__(
        self,
        backend: StorageBackend,
        context: SyncContext,
        limits: QuotaConfig,
        credentials: Credentials | None = None,
    ) -> None:
        self.backend = backend
        self.context = context
        self.limits = limits
        self.credentials = credentials or Credentials()

    @property
    def bus(self) -> SyncBus:
        return self.context.bus

    @property
    def preferences(self) -> PreferencesStore:
        return self.context.preferences

    async def _publish(self, *event_types: SyncEventType) -> None:
        for event_type in event_types:
            await self.bus.publish(event_type)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_profiles(self) -> list[Profile]:
        """All profiles, sorted by display name."""
        profiles = cast(list[Profile], await self.backend.get_all(PROFILES))
        return sorted(profiles, key=lambda p: (p.display_name.casefold(), p.created_at))

    async def get_profile(self, profile_id: uuid.UUID | str) -> Profile | None:
        try:
            key = _as_uuid("Profile", profile_id)
        except NotFoundError:
            return None
        return cast(Profile | None, await self.backend.get(PROFILES, key))

    async def get_chat(self, chat_id: uuid.UUID | str) -> Chat | None:
        try:
            key = _as_uuid("Chat", chat_id)
        except NotFoundError:
            return None
        return cast(Chat | None, await self.backend.get(CHATS, key))

    async def _require_profile(self, profile_id: uuid.UUID | str) -> Profile:
        profile = await self.get_profile(profile_id)
        if profile is None:
            raise NotFoundError("Profile", profile_id)
        return profile

    async def _require_chat(self, chat_id: uuid.UUID | str) -> Chat:
        chat = await self.get_chat(chat_id)
        if chat is None:
            raise NotFoundError("Chat", chat_id)
        return chat

    async def _chat_memberships(self, chat_id: uuid.UUID) -> list[ChatMembership]:
        return cast(list[ChatMembership], await self.backend.query(MEMBERSHIPS, "by_chat", chat_id))

    async def _active_membership(
        self, chat_id: uuid.UUID, profile_id: uuid.UUID
    ) -> ChatMembership | None:
        for membership in await self._chat_memberships(chat_id):
            if membership.profile_id == profile_id and membership.is_active:
                return membership
        return None

    async def _find_direct(self, key: str) -> Chat | None:
        chats = cast(list[Chat], await self.backend.query(CHATS, "by_direct_key", key))
        return chats[0] if chats else None

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    async def create_profile(self, name: str) -> Profile:
        """Create an identity with a color derived from its name."""
        display_name = clean_display_name(name)
        now = self.context.clock.now()
        profile = Profile(
            display_name=display_name,
            avatar_color=pick_avatar_color(display_name),
            created_at=now,
            updated_at=now,
        )
        await self.backend.put(PROFILES, profile)
        logger.info("Profile created", extra={"event_type": "profile", "profile_id": str(profile.id)})
        await self._publish(SyncEventType.PROFILES)
        return profile

    async def rename_profile(self, profile_id: uuid.UUID | str, name: str) -> Profile:
        display_name = clean_display_name(name)
        profile = await self._require_profile(profile_id)
        updated = profile.model_copy(
            update={
                "display_name": display_name,
                "avatar_color": pick_avatar_color(display_name),
                "updated_at": self.context.clock.now(),
            }
        )
        await self.backend.put(PROFILES, updated)
        await self._publish(SyncEventType.PROFILES)
        return updated

    async def upsert_profiles(self, profiles: Sequence[Profile]) -> None:
        """Import profile records as-is, e.g. from a remote directory."""
        if not profiles:
            return

        async def write(tx: Transaction) -> None:
            for profile in profiles:
                await tx.put(PROFILES, profile)

        await self.backend.run_atomic([PROFILES], write)
        await self._publish(SyncEventType.PROFILES)

    # ------------------------------------------------------------------
    # Local account
    # ------------------------------------------------------------------

    async def sign_up(self, name: str, password: str) -> Profile:
        """Create the single password-protected account of this device."""
        display_name = clean_display_name(name)
        if not password:
            raise ValidationError("Password cannot be empty")
        if await self.backend.get_all(PROFILES):
            raise AuthError("This device already has an account. Sign in instead.")

        record = self.credentials.derive(password)
        now = self.context.clock.now()
        profile = Profile(
            display_name=display_name,
            avatar_color=pick_avatar_color(display_name),
            created_at=now,
            updated_at=now,
            password_salt=record.salt,
            password_hash=record.hash,
            password_iterations=record.iterations,
        )
        await self.backend.put(PROFILES, profile)
        await self._remember_sign_in(profile)
        logger.info("Local account created", extra={"event_type": "auth", "profile_id": str(profile.id)})
        await self._publish(SyncEventType.PROFILES)
        return profile

    async def _account(self) -> Profile | None:
        profiles = cast(list[Profile], await self.backend.get_all(PROFILES))
        if not profiles:
            return None
        with_password = [p for p in profiles if p.has_password]
        candidates = with_password or profiles
        active_id = await self.active_profile_id()
        for profile in candidates:
            if profile.id == active_id:
                return profile
        return min(candidates, key=lambda p: p.created_at)

    async def sign_in(self, password: str) -> Profile:
        """Unlock the device account."""
        profile = await self._account()
        if profile is None:
            raise AuthError("No account found on this device. Sign up first.")
        if not profile.has_password:
            raise AuthError("This local account has no password set.")

        record = PasswordRecord(
            salt=cast(str, profile.password_salt),
            hash=cast(str, profile.password_hash),
            iterations=cast(int, profile.password_iterations),
        )
        if not self.credentials.verify(password, record):
            logger.warning("Sign-in rejected", extra={"event_type": "security", "profile_id": str(profile.id)})
            raise AuthError("Incorrect password")

        if self.credentials.needs_upgrade(record):
            profile = await self._store_password(profile, password)

        await self._remember_sign_in(profile)
        return profile

    async def set_password(self, password: str) -> Profile:
        """Set or change the password of the device account."""
        if not password:
            raise ValidationError("Password cannot be empty")
        profile = await self._account()
        if profile is None:
            raise AuthError("No local account found.")
        updated = await self._store_password(profile, password)
        await self._remember_sign_in(updated)
        return updated

    async def _store_password(self, profile: Profile, password: str) -> Profile:
        record = self.credentials.derive(password)
        updated = profile.model_copy(
            update={
                "password_salt": record.salt,
                "password_hash": record.hash,
                "password_iterations": record.iterations,
                "updated_at": self.context.clock.now(),
            }
        )
        await self.backend.put(PROFILES, updated)
        await self._publish(SyncEventType.PROFILES)
        return updated

    async def _remember_sign_in(self, profile: Profile) -> None:
        await self.set_active_profile_id(profile.id)
        await self.preferences.set(AUTHENTICATED_PROFILE, str(profile.id))

    async def sign_out(self) -> None:
        await self.preferences.clear(AUTHENTICATED_PROFILE)

    async def authenticated_profile_id(self) -> uuid.UUID | None:
        value = await self.preferences.get(AUTHENTICATED_PROFILE)
        return uuid.UUID(value) if value else None

    # ------------------------------------------------------------------
    # Preferences
    # ------------------------------------------------------------------

    async def active_profile_id(self) -> uuid.UUID | None:
        value = await self.preferences.get(ACTIVE_PROFILE)
        return uuid.UUID(value) if value else None

    async def set_active_profile_id(self, profile_id: uuid.UUID | str | None) -> None:
        if profile_id is None:
            await self.preferences.clear(ACTIVE_PROFILE)
        else:
            await self.preferences.set(ACTIVE_PROFILE, str(profile_id))

    async def selected_chat_for(self, profile_id: uuid.UUID | str) -> uuid.UUID | None:
        selected: dict[str, Any] = await self.preferences.get(SELECTED_CHAT_BY_PROFILE, {})
        value = selected.get(str(profile_id))
        return uuid.UUID(value) if value else None

    async def set_selected_chat(
        self, profile_id: uuid.UUID | str, chat_id: uuid.UUID | str | None
    ) -> None:
        selected: dict[str, Any] = dict(await self.preferences.get(SELECTED_CHAT_BY_PROFILE, {}))
        selected[str(profile_id)] = str(chat_id) if chat_id else None
        await self.preferences.set(SELECTED_CHAT_BY_PROFILE, selected)

    # ------------------------------------------------------------------
    # Chats and membership
    # ------------------------------------------------------------------

    async def create_direct(self, a: uuid.UUID | str, b: uuid.UUID | str) -> Chat:
        """Return the direct chat between two profiles, creating it if needed."""
        first = _as_uuid("Profile", a)
        second = _as_uuid("Profile", b)
        if first == second:
            raise ValidationError("A direct chat needs two different profiles")
        await self._require_profile(first)
        await self._require_profile(second)

        key = direct_key_for(first, second)
        existing = await self._find_direct(key)
        if existing is not None:
            return existing

        now = self.context.clock.now()
        chat = Chat(
            kind=ChatKind.DIRECT,
            created_by=first,
            created_at=now,
            updated_at=now,
            direct_key=key,
        )
        memberships = [
            ChatMembership(
                chat_id=chat.id,
                profile_id=profile_id,
                role=MembershipRole.OWNER if index == 0 else MembershipRole.MEMBER,
                joined_at=now,
            )
            for index, profile_id in enumerate((first, second))
        ]

        async def write(tx: Transaction) -> None:
            await tx.insert(CHATS, chat)
            for membership in memberships:
                await tx.insert(MEMBERSHIPS, membership)

        try:
            await self.backend.run_atomic([CHATS, MEMBERSHIPS], write)
        except ConflictError:
            # Another context created the pair between our lookup and insert
            winner = await self._find_direct(key)
            if winner is None:
                raise
            logger.info("Direct chat already created elsewhere", extra={"event_type": "chat", "chat_id": str(winner.id)})
            return winner

        logger.info("Direct chat created", extra={"event_type": "chat", "chat_id": str(chat.id)})
        await self._publish(SyncEventType.CHATS, SyncEventType.MEMBERSHIPS)
        return chat

    async def create_group(
        self,
        title: str,
        owner_id: uuid.UUID | str,
        member_ids: Iterable[uuid.UUID | str] = (),
    ) -> Chat:
        """Create a group owned by ``owner_id``; the owner is always a member."""
        owner = _as_uuid("Profile", owner_id)
        unique = list(dict.fromkeys([owner, *(_as_uuid("Profile", m) for m in member_ids)]))
        for profile_id in unique:
            await self._require_profile(profile_id)

        now = self.context.clock.now()
        chat = Chat(
            kind=ChatKind.GROUP,
            title=(title or "").strip() or DEFAULT_GROUP_TITLE,
            created_by=owner,
            created_at=now,
            updated_at=now,
            last_message_at=now,
        )
        memberships = [
            ChatMembership(
                chat_id=chat.id,
                profile_id=profile_id,
                role=MembershipRole.OWNER if profile_id == owner else MembershipRole.MEMBER,
                joined_at=now,
            )
            for profile_id in unique
        ]
        created_message = Message(
            chat_id=chat.id,
            sender_id=owner,
            kind=MessageKind.SYSTEM,
            body="Group created",
            created_at=now,
        )

        async def write(tx: Transaction) -> None:
            await tx.insert(CHATS, chat)
            for membership in memberships:
                await tx.insert(MEMBERSHIPS, membership)
            await tx.insert(MESSAGES, created_message)

        await self.backend.run_atomic([CHATS, MEMBERSHIPS, MESSAGES], write)
        logger.info(
            "Group created",
            extra={"event_type": "chat", "chat_id": str(chat.id), "member_count": len(unique)},
        )
        await self._publish(SyncEventType.CHATS, SyncEventType.MEMBERSHIPS, SyncEventType.MESSAGES)
        return chat

    async def add_members(
        self,
        chat_id: uuid.UUID | str,
        actor_id: uuid.UUID | str,
        member_ids: Iterable[uuid.UUID | str],
    ) -> list[Profile]:
        """Add profiles to a group; returns the profiles that were actually added."""
        chat = await self._require_chat(chat_id)
        actor = _as_uuid("Profile", actor_id)
        if chat.kind != ChatKind.GROUP:
            raise ValidationError("Members can only be added to group chats")

        memberships = await self._chat_memberships(chat.id)
        active_ids = {m.profile_id for m in memberships if m.is_active}
        if actor not in active_ids:
            raise AccessDeniedError("Only members of this chat can add people to it")

        requested = dict.fromkeys(_as_uuid("Profile", m) for m in member_ids)
        to_add = [profile_id for profile_id in requested if profile_id not in active_ids]
        if not to_add:
            return []
        profiles = [await self._require_profile(profile_id) for profile_id in to_add]

        new_memberships: list[ChatMembership] = []
        notices: list[Message] = []
        for profile in profiles:
            now = self.context.clock.now()
            new_memberships.append(
                ChatMembership(chat_id=chat.id, profile_id=profile.id, joined_at=now)
            )
            notices.append(
                Message(
                    chat_id=chat.id,
                    sender_id=actor,
                    kind=MessageKind.SYSTEM,
                    body=f"{profile.display_name or UNKNOWN_NAME} was added to the group",
                    created_at=now,
                )
            )
        last_at = notices[-1].created_at

        async def write(tx: Transaction) -> None:
            for membership, notice in zip(new_memberships, notices):
                await tx.insert(MEMBERSHIPS, membership)
                await tx.insert(MESSAGES, notice)
            current = cast(Chat | None, await tx.get(CHATS, chat.id)) or chat
            await tx.put(
                CHATS, current.model_copy(update={"updated_at": last_at, "last_message_at": last_at})
            )

        await self.backend.run_atomic([MEMBERSHIPS, MESSAGES, CHATS], write)
        logger.info(
            "Members added",
            extra={"event_type": "chat", "chat_id": str(chat.id), "added": len(profiles)},
        )
        await self._publish(SyncEventType.MEMBERSHIPS, SyncEventType.MESSAGES, SyncEventType.CHATS)
        return profiles

    async def leave_group(self, chat_id: uuid.UUID | str, profile_id: uuid.UUID | str) -> bool:
        """Close the profile's membership; False when it had none to close."""
        chat = await self._require_chat(chat_id)
        member = _as_uuid("Profile", profile_id)
        if chat.kind != ChatKind.GROUP:
            raise ValidationError("Direct chats cannot be left")

        membership = await self._active_membership(chat.id, member)
        if membership is None:
            logger.debug("Leave ignored, no active membership", extra={"chat_id": str(chat.id)})
            return False

        profile = await self.get_profile(member)
        name = profile.display_name if profile else UNKNOWN_NAME
        now = self.context.clock.now()
        notice = Message(
            chat_id=chat.id,
            sender_id=member,
            kind=MessageKind.SYSTEM,
            body=f"{name} left the group",
            created_at=now,
        )

        async def write(tx: Transaction) -> None:
            await tx.put(MEMBERSHIPS, membership.model_copy(update={"left_at": now}))
            await tx.insert(MESSAGES, notice)
            current = cast(Chat | None, await tx.get(CHATS, chat.id)) or chat
            await tx.put(CHATS, current.model_copy(update={"updated_at": now, "last_message_at": now}))

        await self.backend.run_atomic([MEMBERSHIPS, MESSAGES, CHATS], write)
        logger.info("Member left group", extra={"event_type": "chat", "chat_id": str(chat.id)})
        await self._publish(SyncEventType.MEMBERSHIPS, SyncEventType.MESSAGES, SyncEventType.CHATS)
        return True

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def validate_file(self, incoming: IncomingFile) -> None:
        """Check one file against the per-file cap before it is offered for sending.

        Raises:
            ValidationError: the file is larger than ``limits.max_file_bytes``
        """
        if incoming.size_bytes > self.limits.max_file_bytes:
            raise ValidationError(
                f'File "{incoming.file_name}" is larger than '
                f"{format_bytes(self.limits.max_file_bytes)}."
            )

    async def send_message(
        self,
        chat_id: uuid.UUID | str,
        sender_id: uuid.UUID | str,
        text: str = "",
        files: Sequence[IncomingFile] = (),
    ) -> Message:
        """Store a message and its attachments as one unit."""
        body = (text or "").strip()
        files = list(files)
        if not body and not files:
            raise ValidationError("Cannot send an empty message")

        for incoming in files:
            self.validate_file(incoming)

        chat = await self._require_chat(chat_id)
        sender = _as_uuid("Profile", sender_id)
        if await self._active_membership(chat.id, sender) is None:
            raise AccessDeniedError("Only members of this chat can send messages to it")

        if files:
            incoming_bytes = sum(f.size_bytes for f in files)
            stored_bytes = await self.backend.total_attachment_bytes()
            if stored_bytes + incoming_bytes > self.limits.max_total_bytes:
                raise ValidationError(
                    "Attachment storage limit reached. Delete data or use smaller files."
                )

        now = self.context.clock.now()
        message = Message(
            chat_id=chat.id,
            sender_id=sender,
            kind=derive_message_kind(body, files),
            body=body or None,
            created_at=now,
        )
        metas = []
        for incoming in files:
            attachment_id = uuid.uuid4()
            metas.append(
                AttachmentMeta(
                    id=attachment_id,
                    message_id=message.id,
                    chat_id=chat.id,
                    kind=AttachmentKind.IMAGE if incoming.is_image else AttachmentKind.FILE,
                    file_name=incoming.file_name,
                    mime_type=incoming.mime_type,
                    size_bytes=incoming.size_bytes,
                    blob_key=f"blob_{attachment_id}",
                    created_at=now,
                )
            )
        stored = message.model_copy(update={"attachment_ids": [meta.id for meta in metas]})

        async def write(tx: Transaction) -> None:
            # Message row first, then attachments referencing it, then the id list
            await tx.insert(MESSAGES, message)
            for meta, incoming in zip(metas, files):
                await tx.put_blob(meta.blob_key, incoming.data)
                await tx.insert(ATTACHMENTS, meta)
            if metas:
                await tx.put(MESSAGES, stored)
            current = cast(Chat | None, await tx.get(CHATS, chat.id)) or chat
            await tx.put(CHATS, current.model_copy(update={"updated_at": now, "last_message_at": now}))

        stores = [MESSAGES, CHATS, ATTACHMENTS, BLOBS] if files else [MESSAGES, CHATS]
        await self.backend.run_atomic(stores, write)
        logger.info(
            "Message sent",
            extra={
                "event_type": "message",
                "chat_id": str(chat.id),
                "message_kind": stored.kind.value,
                "attachments": len(metas),
            },
        )
        await self._publish(SyncEventType.MESSAGES, SyncEventType.CHATS)
        return stored

    async def get_messages(self, chat_id: uuid.UUID | str) -> list[MessageWithAttachments]:
        """Messages of a chat, oldest first, with attachment bytes resolved."""
        key = _as_uuid("Chat", chat_id)
        messages = sort_messages(
            cast(list[Message], await self.backend.query(MESSAGES, "by_chat", key))
        )
        metas = cast(list[AttachmentMeta], await self.backend.query(ATTACHMENTS, "by_chat", key))
        metas_by_message: dict[uuid.UUID, dict[uuid.UUID, AttachmentMeta]] = defaultdict(dict)
        for meta in metas:
            metas_by_message[meta.message_id][meta.id] = meta

        result = []
        for message in messages:
            attachments = []
            for attachment_id in message.attachment_ids:
                meta = metas_by_message[message.id].get(attachment_id)
                if meta is None:
                    continue
                data = await self.backend.get_blob(meta.blob_key)
                if data is None:
                    logger.warning(
                        "Attachment blob missing",
                        extra={"event_type": "storage", "blob_key": meta.blob_key},
                    )
                    continue
                attachments.append(AttachmentWithBlob(**meta.model_dump(), data=data))
            result.append(MessageWithAttachments(**message.model_dump(), attachments=attachments))
        return result

    # ------------------------------------------------------------------
    # Projections and access
    # ------------------------------------------------------------------

    async def get_visible_chats(self, profile_id: uuid.UUID | str) -> list[ChatListItem]:
        """Conversation list for a profile, most recent activity first."""
        viewer = _as_uuid("Profile", profile_id)
        own = cast(list[ChatMembership], await self.backend.query(MEMBERSHIPS, "by_profile", viewer))
        chat_ids = list(dict.fromkeys(m.chat_id for m in own if m.is_active))

        chats: list[Chat] = []
        memberships: list[ChatMembership] = []
        messages: list[Message] = []
        for chat_id in chat_ids:
            chat = cast(Chat | None, await self.backend.get(CHATS, chat_id))
            if chat is None:
                continue
            chats.append(chat)
            memberships.extend(await self._chat_memberships(chat_id))
            messages.extend(cast(list[Message], await self.backend.query(MESSAGES, "by_chat", chat_id)))

        profiles = cast(list[Profile], await self.backend.get_all(PROFILES))
        return build_chat_list(viewer, chats, memberships, messages, profiles)

    async def get_members(self, chat_id: uuid.UUID | str) -> list[Profile]:
        """Profiles with an active membership in the chat."""
        key = _as_uuid("Chat", chat_id)
        members = []
        for membership in await self._chat_memberships(key):
            if not membership.is_active:
                continue
            profile = cast(Profile | None, await self.backend.get(PROFILES, membership.profile_id))
            if profile is not None:
                members.append(profile)
        return members

    async def can_access(self, profile_id: uuid.UUID | str, chat_id: uuid.UUID | str) -> bool:
        """True iff the profile holds an active membership in the chat."""
        try:
            profile_key = _as_uuid("Profile", profile_id)
            chat_key = _as_uuid("Chat", chat_id)
        except NotFoundError:
            return False
        return await self._active_membership(chat_key, profile_key) is not None

    async def candidates_for_add(self, chat_id: uuid.UUID | str) -> list[Profile]:
        """Every profile that is not currently an active member."""
        member_ids = {profile.id for profile in await self.get_members(chat_id)}
        return [p for p in await self.get_profiles() if p.id not in member_ids]

    async def total_attachment_bytes(self) -> int:
        return await self.backend.total_attachment_bytes()

    # ------------------------------------------------------------------
    # First run
    # ------------------------------------------------------------------

    async def seed_demo_data_if_needed(self) -> bool:
        """Write the demo conversations once per device; True if it seeded."""
        if await self.preferences.get(HAS_SEEDED_DEMO_DATA, False):
            return False
        if await self.backend.get_all(PROFILES):
            await self.preferences.set(HAS_SEEDED_DEMO_DATA, True)
            return False

        dataset = build_demo_dataset(self.context.clock.now())

        async def write(tx: Transaction) -> None:
            for profile in dataset.profiles:
                await tx.insert(PROFILES, profile)
            for chat in dataset.chats:
                await tx.insert(CHATS, chat)
            for membership in dataset.memberships:
                await tx.insert(MEMBERSHIPS, membership)
            for message in dataset.messages:
                await tx.insert(MESSAGES, message)
            for meta in dataset.attachments:
                await tx.put_blob(meta.blob_key, dataset.blobs[meta.blob_key])
                await tx.insert(ATTACHMENTS, meta)

        await self.backend.run_atomic(ALL_STORES, write)

        await self.set_active_profile_id(dataset.owner.id)
        await self.set_selected_chat(dataset.owner.id, dataset.featured_chat.id)
        await self.preferences.set(HAS_SEEDED_DEMO_DATA, True)
        logger.info("Demo data seeded", extra={"event_type": "seed"})
        await self._publish(
            SyncEventType.SEED_COMPLETED,
            SyncEventType.PROFILES,
            SyncEventType.CHATS,
            SyncEventType.MEMBERSHIPS,
            SyncEventType.MESSAGES,
        )
        return True
