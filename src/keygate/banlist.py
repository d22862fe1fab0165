"""Process-wide list of banned client identities."""

import threading

import structlog

from keygate.metrics import metrics

logger = structlog.get_logger()


class BanList:
    """Set of identities flagged as abusive.

    Entries live until the process stops; there is no eviction.
    """

    def __init__(self) -> None:
        self._banned: set[str] = set()
        self._lock = threading.Lock()

    def is_banned(self, identity: str) -> bool:
        with self._lock:
            return identity in self._banned

    def ban(self, identity: str, reason: str = "unspecified") -> bool:
        """Ban ``identity``. Returns True if it was not banned before."""
        with self._lock:
            if identity in self._banned:
                return False
            self._banned.add(identity)
            size = len(self._banned)

        metrics.banned_identities.set(size)
        logger.warning("client_banned", identity=identity, reason=reason)
        return True

    def __contains__(self, identity: object) -> bool:
        return isinstance(identity, str) and self.is_banned(identity)

    def __len__(self) -> int:
        with self._lock:
            return len(self._banned)
