"""Process-wide sync state shared by the repositories of one context."""

from types import TracebackType

from localchat.core.datetime_utils import MonotonicClock
from localchat.core.logging import get_logger, set_context_id
from localchat.core.preferences import PreferencesStore
from localchat.sync.bus import SyncBus

logger = get_logger(__name__)


class SyncContext:
    """Owns the sync bus, the preferences store and the repository clock.

    Construct one per execution context and hand it to every repository
    created there; ``dispose`` releases the broadcast subscription and the
    preferences connection.
    """

    def __init__(
        self,
        bus: SyncBus,
        preferences: PreferencesStore,
        clock: MonotonicClock | None = None,
    ) -> None:
        self.bus = bus
        self.preferences = preferences
        self.clock = clock or MonotonicClock()
        self._disposed = False

    @property
    def context_id(self) -> str:
        return self.bus.context_id

    async def start(self) -> None:
        set_context_id(self.context_id)
        await self.bus.start()
        logger.info("Sync context started", extra={"event_type": "startup"})

    async def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        await self.bus.dispose()
        await self.preferences.close()
        logger.info("Sync context disposed", extra={"event_type": "shutdown"})

    async def __aenter__(self) -> "SyncContext":
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.dispose()
