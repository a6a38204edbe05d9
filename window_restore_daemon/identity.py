"""Privacy-preserving window identity.

App names and titles are reduced to HMAC-SHA256 digests keyed with a random
per-installation salt, so stored snapshots cannot be reversed with a
dictionary of common application names.
"""

import hashlib
import hmac
import logging
import secrets
from typing import Optional, Tuple

from .constants import SALT_BYTES, SALT_KEY
from .interfaces import KeyValueStore
from .models import LiveWindow, WindowIdentity

logger = logging.getLogger(__name__)


def load_or_create_salt(store: KeyValueStore) -> Tuple[bytes, bool]:
    """Return the installation salt, generating it on first use.

    The salt is never regenerated once stored. When it cannot be read or
    written, an ephemeral salt is returned and the second element is False;
    the caller must then keep snapshots in memory only, because digests made
    with a throwaway salt would not match after restart.

    Returns:
        (salt, persistent)
    """
    try:
        stored = store.get(SALT_KEY)
    except OSError as e:
        logger.error(f"Cannot read installation salt: {e}; using ephemeral salt")
        return secrets.token_bytes(SALT_BYTES), False

    if stored is not None:
        try:
            salt = bytes.fromhex(stored.decode("ascii").strip())
        except (UnicodeDecodeError, ValueError) as e:
            logger.error(f"Stored salt is corrupt ({e}); using ephemeral salt, persistence disabled")
            return secrets.token_bytes(SALT_BYTES), False
        if len(salt) == SALT_BYTES:
            return salt, True
        logger.error(f"Stored salt has {len(salt)} bytes, expected {SALT_BYTES}; persistence disabled")
        return secrets.token_bytes(SALT_BYTES), False

    salt = secrets.token_bytes(SALT_BYTES)
    try:
        store.set(SALT_KEY, salt.hex().encode("ascii"))
    except OSError as e:
        logger.error(f"Cannot store installation salt: {e}; using ephemeral salt")
        return salt, False
    logger.info("Generated new installation salt")
    return salt, True


class IdentityHasher:
    """Turns live window names into salted digests and window keys."""

    def __init__(self, salt: bytes):
        self._salt = salt

    def digest(self, value: str) -> str:
        return hmac.new(self._salt, value.encode("utf-8"), hashlib.sha256).hexdigest()

    def identity_for(self, window: LiveWindow) -> WindowIdentity:
        title_hash = self.digest(window.title) if window.title else None
        return WindowIdentity(app_name_hash=self.digest(window.owner_name), title_hash=title_hash)

    @staticmethod
    def window_key(identity: WindowIdentity, window_number: Optional[int], ordinal: int = 0) -> str:
        """Key correlating a saved record with a live window.

        ``<appNameHash>_<windowNumber>``, or ``<appNameHash>_n<ordinal>`` when
        the enumerator reports no window number.
        """
        if window_number is None:
            return f"{identity.app_name_hash}_n{ordinal}"
        return f"{identity.app_name_hash}_{window_number}"
