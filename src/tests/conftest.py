"""Pytest configuration and fixtures."""

import time
from datetime import datetime, timezone

import pytest

from keygate.admission import AdmissionFilter
from keygate.banlist import BanList
from keygate.broker import StaticCredentialBroker
from keygate.config import STATIC_DIR
from keygate.gateway import KeyGateService
from keygate.pages import PageStore
from keygate.ratelimit import RateLimiter
from keygate.tokens import TokenService

SECRET = "test-signing-secret-0123456789abcdef"
CURRENT_KEY = "STARX-1234-ABCD"
ALLOWED_REFERERS = ["linkvertise.com", "work.ink", "loot-link.com", "direct-link.net"]
BROWSER_UA = "Mozilla/5.0 (X11; Linux x86_64) Gecko/20100101 Firefox/128.0"


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    """Create a controllable clock."""
    return FakeClock()


@pytest.fixture
def ban_list():
    """Create an empty ban list."""
    return BanList()


@pytest.fixture
def broker():
    """Create a broker that always reports the current key."""
    return StaticCredentialBroker(CURRENT_KEY)


@pytest.fixture
def token_service():
    """Create a token service with a test secret."""
    return TokenService(SECRET, ttl_seconds=30)


@pytest.fixture
def make_service(ban_list, broker, token_service):
    """Factory for services with small, test friendly limits."""

    def _make(max_requests: int = 100, window_seconds: float = 300.0, clock=None, **overrides):
        components = {
            "rate_limiter": RateLimiter(window_seconds, max_requests, clock=clock or time.monotonic),
            "ban_list": ban_list,
            "admission": AdmissionFilter(ban_list, ALLOWED_REFERERS, 10),
            "broker": broker,
            "tokens": token_service,
            "pages": PageStore(STATIC_DIR),
            "now": lambda: datetime(2026, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc),
        }
        components.update(overrides)
        return KeyGateService(**components)

    return _make


@pytest.fixture
def service(make_service):
    """Create a service with default limits."""
    return make_service()


@pytest.fixture
def current_key():
    """Key the stub broker reports as current."""
    return CURRENT_KEY


@pytest.fixture
def browser_ua():
    """A plausible browser user-agent."""
    return BROWSER_UA
