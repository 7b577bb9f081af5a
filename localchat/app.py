"""Wiring: build backends, sync contexts and repositories from settings."""

import uuid

from localchat.core.config import Settings, get_settings
from localchat.core.credentials import Credentials
from localchat.core.logging import get_logger, setup_logging
from localchat.core.preferences import PreferencesStore
from localchat.entities import QuotaConfig
from localchat.services.repository import ChatRepository
from localchat.storage.base import StorageBackend
from localchat.storage.embedded import EmbeddedBackend
from localchat.storage.networked import NetworkedBackend
from localchat.sync.broadcast import LocalBroadcastHub, open_channel
from localchat.sync.bus import SyncBus
from localchat.sync.context import SyncContext

logger = get_logger(__name__)


def configure_logging(settings: Settings | None = None) -> None:
    settings = settings or get_settings()
    setup_logging(
        level=settings.log_level,
        json_logs=settings.environment == "production",
    )


def build_backend(settings: Settings | None = None) -> StorageBackend:
    """Storage backend selected by ``storage_backend``."""
    settings = settings or get_settings()
    if settings.storage_backend == "networked":
        return NetworkedBackend(
            settings.remote_url,
            api_key=settings.remote_api_key,
            bucket=settings.remote_bucket,
            timeout=settings.remote_timeout,
        )
    return EmbeddedBackend(settings.async_database_url, echo=settings.debug)


def quota_from_settings(settings: Settings) -> QuotaConfig:
    return QuotaConfig(
        max_file_bytes=settings.max_file_bytes,
        max_total_bytes=settings.max_total_bytes,
    )


async def create_sync_context(
    settings: Settings | None = None,
    hub: LocalBroadcastHub | None = None,
    context_id: str | None = None,
) -> SyncContext:
    """Build and start a sync context.

    Pass the same ``hub`` to contexts that should hear each other through
    the in-process channel.
    """
    settings = settings or get_settings()
    context_id = context_id or uuid.uuid4().hex
    preferences = PreferencesStore(settings.preferences_url)
    channel = await open_channel(settings, hub or LocalBroadcastHub())
    bus = SyncBus(
        channel,
        preferences=preferences,
        context_id=context_id,
        poll_interval=settings.sync_poll_interval,
    )
    context = SyncContext(bus, preferences)
    await context.start()
    return context


async def create_repository(
    context: SyncContext,
    settings: Settings | None = None,
    backend: StorageBackend | None = None,
) -> ChatRepository:
    """Connect a backend and wrap it in a repository bound to ``context``."""
    settings = settings or get_settings()
    backend = backend or build_backend(settings)
    await backend.connect()
    logger.info(
        f"Repository ready ({backend.name} backend)",
        extra={"event_type": "startup"},
    )
    return ChatRepository(
        backend,
        context,
        quota_from_settings(settings),
        Credentials(iterations=settings.password_iterations),
    )
