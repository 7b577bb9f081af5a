"""Typed failures raised by the chat data layer.

Every error carries a human-readable ``reason`` that callers can show
verbatim. Validation and auth failures are raised before the first write
of an operation; only ``BackendError`` can occur once writes have begun.
"""


class LocalChatError(Exception):
    """Base class for all localchat failures."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class ValidationError(LocalChatError):
    """Input rejected before any state was touched."""


class AuthError(LocalChatError):
    """Credential or identity failure."""


class AccessDeniedError(AuthError):
    """The acting profile holds no active membership in the chat."""


class NotFoundError(LocalChatError):
    """No record backs the given id."""

    def __init__(self, entity: str, key: object) -> None:
        super().__init__(f"{entity} {key} not found")
        self.entity = entity
        self.key = key


class BackendError(LocalChatError):
    """Storage or network failure, propagated unchanged."""

    kind = "storage"


class ConflictError(BackendError):
    """A uniqueness constraint rejected the write."""

    kind = "conflict"


class NetworkError(BackendError):
    """The networked store could not be reached or timed out."""

    kind = "network"
