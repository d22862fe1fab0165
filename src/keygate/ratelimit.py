"""Fixed-window rate limiter keyed by client identity."""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field

import structlog

from keygate.config import Settings
from keygate.models import RateDecision

logger = structlog.get_logger()


@dataclass
class RateWindow:
    """Request count for one identity in its current window."""

    count: int = 0
    window_start: float = 0.0
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)


class RateLimiter:
    """In-memory rate limiter.

    Each identity owns a ``RateWindow``; the read-increment-compare sequence
    for an identity runs under that window's lock, so concurrent requests
    from one client cannot both observe a stale count. Identities never
    share a lock.
    """

    def __init__(
        self,
        window_seconds: float,
        max_requests: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._window_seconds = window_seconds
        self._max_requests = max_requests
        self._clock = clock
        self._windows: dict[str, RateWindow] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "RateLimiter":
        return cls(settings.rate_limit_window_seconds, settings.rate_limit_max_requests)

    @property
    def max_requests(self) -> int:
        return self._max_requests

    async def admit(self, identity: str) -> RateDecision:
        """Count a request for ``identity`` and decide whether it may proceed."""
        while True:
            # setdefault has no await point, so one record is created per identity
            window = self._windows.setdefault(identity, RateWindow())

            async with window.lock:
                # purged while this request waited for the lock
                if self._windows.get(identity) is not window:
                    continue

                now = self._clock()
                if window.count == 0 or now - window.window_start >= self._window_seconds:
                    window.count = 1
                    window.window_start = now
                else:
                    window.count += 1

                count = window.count
                reset_after = max(0.0, window.window_start + self._window_seconds - now)
                break

        allowed = count <= self._max_requests
        if not allowed:
            logger.info("rate_limit_exceeded", count=count)

        return RateDecision(
            allowed=allowed,
            limit=self._max_requests,
            remaining=max(0, self._max_requests - count),
            reset_after=reset_after,
        )

    def count(self, identity: str) -> int:
        """Requests counted for ``identity`` in its live window."""
        window = self._windows.get(identity)
        if window is None or self._expired(window, self._clock()):
            return 0
        return window.count

    def reset(self, identity: str) -> None:
        """Forget the window for ``identity``."""
        self._windows.pop(identity, None)

    def purge_expired(self) -> int:
        """Drop windows that have elapsed. Returns the number removed."""
        now = self._clock()
        stale = [
            identity
            for identity, window in self._windows.items()
            if not window.lock.locked() and self._expired(window, now)
        ]
        for identity in stale:
            del self._windows[identity]

        if stale:
            logger.debug("rate_windows_purged", removed=len(stale))
        return len(stale)

    def _expired(self, window: RateWindow, now: float) -> bool:
        return now - window.window_start >= self._window_seconds

    def __len__(self) -> int:
        return len(self._windows)
