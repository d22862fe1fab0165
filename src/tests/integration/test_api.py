"""Integration tests for the API endpoints."""

from unittest.mock import patch

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from keygate.app import app
from keygate.broker import HttpCredentialBroker

REFERER = "https://work.ink/r/abc"


def upstream(keys):
    """Mock key service answering with successive keys."""
    calls = []
    keys = iter(keys)

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        value = next(keys)
        if isinstance(value, Exception):
            raise value
        return httpx.Response(200, json={"key": value})

    return handler, calls


@pytest.fixture
def key_service():
    """Key service that issues the same key for a few calls."""
    return upstream(["LIVE-KEY"] * 5)


@pytest.fixture
def gateway(make_service, key_service):
    """Service wired to the mock key service over HTTP."""
    handler, _ = key_service
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    broker = HttpCredentialBroker("https://keys.test/generate", client=client)
    return make_service(broker=broker)


@pytest.fixture
async def client(gateway):
    """Create test client bound to the gateway service."""
    with patch("keygate.app.get_service", return_value=gateway):
        # Skip the real lifespan
        app.router.lifespan_context = lambda _: _mock_lifespan()

        transport = ASGITransport(app=app, raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac


async def _mock_lifespan():
    """Mock lifespan that does nothing."""
    yield


class TestKeyFlow:
    """Full visitor flow: key page, key check, token validation."""

    @pytest.mark.asyncio
    async def test_get_check_validate(self, client, key_service, browser_ua):
        """Test that a visitor can go from key page to a valid token."""
        _, calls = key_service

        page = await client.get("/get-key", headers={"Referer": REFERER, "User-Agent": browser_ua})
        assert page.status_code == 200
        assert "LIVE-KEY" in page.text

        check = await client.post("/check-key", json={"key": "LIVE-KEY"})
        assert check.status_code == 200
        token = check.json()["token"]

        validate = await client.post("/validate-token", json={"token": token})
        assert validate.json() == {"valid": True}

        assert len(calls) == 2
        assert all(call.url.params["expired"] == "1d" for call in calls)

    @pytest.mark.asyncio
    async def test_wrong_key_has_no_side_effect(self, client, gateway):
        """Test that a wrong key neither bans nor issues a token."""
        response = await client.post("/check-key", json={"key": "STALE-KEY"})

        assert response.json() == {"valid": False}
        assert len(gateway.ban_list) == 0

    @pytest.mark.asyncio
    async def test_expired_token(self, client):
        """Test that an expired token is invalid, not an error."""
        from keygate.tokens import TokenService

        stale = TokenService(
            "test-signing-secret-0123456789abcdef", clock=lambda: 1_000_000
        ).issue()

        response = await client.post("/validate-token", json={"token": stale})

        assert response.status_code == 200
        assert response.json() == {"valid": False}


class TestUpstreamTimeout:
    """Upstream timeouts must not leak state or crash."""

    @pytest.fixture
    def key_service(self):
        """Key service that times out once, then recovers."""
        return upstream([httpx.ReadTimeout("timed out"), "LIVE-KEY"])

    @pytest.mark.asyncio
    async def test_timeout_then_recover(self, client, gateway):
        """Test that a timeout is a generic 500 and the next check works."""
        failed = await client.post("/check-key", json={"key": "LIVE-KEY"})

        assert failed.status_code == 500
        assert failed.json() == {"error": "Internal Server Error"}
        assert len(gateway.ban_list) == 0

        recovered = await client.post("/check-key", json={"key": "LIVE-KEY"})

        assert recovered.json()["valid"] is True


class TestBanFlow:
    """Bot detection bans the caller for every later request."""

    @pytest.mark.asyncio
    async def test_bot_banned_everywhere(self, client, gateway):
        """Test that a banned client is denied on every route."""
        bot = await client.get("/get-key", headers={"Referer": REFERER, "User-Agent": "a"})
        assert bot.status_code == 403

        for method, path in [("GET", "/get-key"), ("POST", "/check-key"), ("GET", "/unknown")]:
            response = await client.request(method, path, json={"key": "LIVE-KEY"})
            assert response.status_code == 403
            assert response.json() == {"error": "Access Denied"}

        assert "127.0.0.1" in gateway.ban_list
