"""Tests for entity records and helpers."""

import uuid
from datetime import UTC, datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from localchat.entities import (
    AVATAR_COLORS,
    Chat,
    ChatKind,
    ChatMembership,
    IncomingFile,
    MessageKind,
    Profile,
    QuotaConfig,
    derive_message_kind,
    direct_key_for,
    pick_avatar_color,
)


class TestAvatarColor:
    """Test avatar color derivation."""

    def test_known_value(self):
        """Test the rolling hash against a hand-computed value."""
        assert pick_avatar_color("Alex") == "#f97316"

    def test_deterministic_and_in_palette(self):
        """Test that the same name always maps to the same palette color."""
        for name in ("Sam", "Jordan", "Casey", "", "x" * 200):
            color = pick_avatar_color(name)
            assert color in AVATAR_COLORS
            assert pick_avatar_color(name) == color


class TestIncomingFile:
    """Test MIME detection for incoming files."""

    def test_sniffs_from_file_name(self):
        """Test that a blank MIME type is guessed from the extension."""
        file = IncomingFile(file_name="photo.png", data=b"\x89PNG")
        assert file.mime_type == "image/png"
        assert file.is_image
        assert file.size_bytes == 4

    def test_explicit_type_kept(self):
        """Test that a supplied MIME type wins."""
        file = IncomingFile(file_name="photo.png", data=b"", mime_type="text/plain")
        assert file.mime_type == "text/plain"
        assert not file.is_image

    def test_unknown_extension_defaults(self):
        """Test the fallback for unknown extensions."""
        file = IncomingFile(file_name="blob.unknownext", data=b"abc")
        assert file.mime_type == "application/octet-stream"


class TestMessageKind:
    """Test message kind derivation."""

    def test_text_only(self):
        assert derive_message_kind("hello", []) == MessageKind.TEXT

    def test_single_image(self):
        image = IncomingFile(file_name="a.png", data=b"1")
        assert derive_message_kind("", [image]) == MessageKind.IMAGE

    def test_single_file(self):
        doc = IncomingFile(file_name="a.txt", data=b"1")
        assert derive_message_kind("", [doc]) == MessageKind.FILE

    def test_text_with_file_is_mixed(self):
        doc = IncomingFile(file_name="a.txt", data=b"1")
        assert derive_message_kind("see attached", [doc]) == MessageKind.MIXED

    def test_two_files_is_mixed(self):
        image = IncomingFile(file_name="a.png", data=b"1")
        doc = IncomingFile(file_name="a.txt", data=b"1")
        assert derive_message_kind("", [image, doc]) == MessageKind.MIXED


class TestRecords:
    """Test record behavior."""

    def test_records_are_frozen(self):
        """Test that records cannot be mutated in place."""
        now = datetime(2026, 1, 1)
        profile = Profile(display_name="Alex", avatar_color="#fff", created_at=now, updated_at=now)
        with pytest.raises(ValidationError):
            profile.display_name = "Sam"

    def test_aware_datetimes_normalized_to_naive_utc(self):
        """Test that timezone-aware input is stored as naive UTC."""
        aware = datetime(2026, 1, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))
        membership = ChatMembership(
            chat_id=uuid.uuid4(), profile_id=uuid.uuid4(), joined_at=aware
        )
        assert membership.joined_at == datetime(2026, 1, 1, 10, 0)
        assert membership.joined_at.tzinfo is None
        assert membership.is_active

    def test_last_activity_falls_back_to_updated_at(self):
        """Test chat activity ordering key."""
        now = datetime.now(UTC)
        chat = Chat(kind=ChatKind.GROUP, created_by=uuid.uuid4(), created_at=now, updated_at=now)
        assert chat.last_activity == chat.updated_at
        later = chat.model_copy(update={"last_message_at": datetime(2030, 1, 1)})
        assert later.last_activity == datetime(2030, 1, 1)

    def test_has_password(self):
        now = datetime(2026, 1, 1)
        profile = Profile(display_name="Alex", avatar_color="#fff", created_at=now, updated_at=now)
        assert not profile.has_password
        secured = profile.model_copy(
            update={"password_salt": "s", "password_hash": "h", "password_iterations": 1}
        )
        assert secured.has_password

    def test_direct_key_is_order_independent(self):
        a, b = uuid.uuid4(), uuid.uuid4()
        assert direct_key_for(a, b) == direct_key_for(b, a)

    def test_quota_must_be_positive(self):
        with pytest.raises(ValidationError):
            QuotaConfig(max_file_bytes=0, max_total_bytes=10)
