"""Password derivation and verification for local accounts."""

from typing import cast

from passlib.hash import pbkdf2_sha256
from pydantic import BaseModel, ConfigDict

from localchat.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_ITERATIONS = 120_000
_SCHEME = "pbkdf2-sha256"


class PasswordRecord(BaseModel):
    """Salted PBKDF2-SHA256 digest, in passlib's adapted base64."""

    model_config = ConfigDict(frozen=True)

    salt: str
    hash: str
    iterations: int


class Credentials:
    """Derives and checks salted, iterated password digests.

    The iteration count is stored next to the digest, so raising
    ``iterations`` later keeps old records verifiable while
    ``needs_upgrade`` reports which ones should be re-derived.
    """

    def __init__(self, iterations: int = DEFAULT_ITERATIONS) -> None:
        self.iterations = iterations
        self._handler = pbkdf2_sha256.using(rounds=iterations)

    def derive(self, password: str) -> PasswordRecord:
        """Derive a fresh record with a random salt."""
        encoded = cast(str, self._handler.hash(password))
        # $pbkdf2-sha256$<rounds>$<salt>$<checksum>
        _, _, rounds, salt, checksum = encoded.split("$")
        return PasswordRecord(salt=salt, hash=checksum, iterations=int(rounds))

    def verify(self, password: str, record: PasswordRecord) -> bool:
        """Check a password against a stored record."""
        encoded = f"${_SCHEME}${record.iterations}${record.salt}${record.hash}"
        try:
            return cast(bool, pbkdf2_sha256.verify(password, encoded))
        except ValueError as e:
            logger.warning(f"Malformed password record: {e}")
            return False

    def needs_upgrade(self, record: PasswordRecord) -> bool:
        """True when the record was derived with fewer iterations than configured."""
        return record.iterations < self.iterations
