"""Clients for the external key-issuing service."""

import time
from abc import ABC, abstractmethod
from typing import Any

import httpx
import structlog

from keygate.config import Settings
from keygate.errors import UpstreamUnavailable
from keygate.metrics import metrics

logger = structlog.get_logger()


class CredentialBroker(ABC):
    """Source of truth for the currently valid access key."""

    @abstractmethod
    async def fetch_current_key(self) -> str:
        """Return the current key or raise ``UpstreamUnavailable``."""

    async def connect(self) -> None:
        """Acquire long-lived resources."""

    async def disconnect(self) -> None:
        """Release long-lived resources."""


class HttpCredentialBroker(CredentialBroker):
    """Fetch the key over HTTP.

    Issues ``GET <url>?expired=<expiry>`` and expects a JSON object with a
    non-empty string ``key``. Every call goes upstream; nothing is cached
    and nothing is retried.
    """

    def __init__(
        self,
        url: str,
        expiry: str = "1d",
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._expiry = expiry
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    @classmethod
    def from_settings(cls, settings: Settings) -> "HttpCredentialBroker":
        return cls(settings.key_service_url, settings.key_expiry, settings.upstream_timeout)

    async def connect(self) -> None:
        """Open a pooled client for the lifetime of the app."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
            self._owns_client = True
            logger.info("key_service_client_opened", url=self._url)

    async def disconnect(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
            logger.info("key_service_client_closed")

    async def fetch_current_key(self) -> str:
        start_time = time.perf_counter()
        try:
            payload = await self._get()
        except UpstreamUnavailable as e:
            metrics.upstream_requests_total.labels(status="error").inc()
            logger.error("upstream_fetch_failed", url=self._url, details=e.details)
            raise
        finally:
            metrics.upstream_latency.observe(time.perf_counter() - start_time)

        key = payload.get("key") if isinstance(payload, dict) else None
        if not isinstance(key, str) or not key:
            metrics.upstream_requests_total.labels(status="invalid").inc()
            logger.error("upstream_key_missing", url=self._url)
            raise UpstreamUnavailable("key_missing")

        metrics.upstream_requests_total.labels(status="ok").inc()
        logger.debug("upstream_key_fetched", url=self._url)
        return key

    async def _get(self) -> Any:
        params = {"expired": self._expiry}
        try:
            if self._client is not None:
                response = await self._client.get(self._url, params=params, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.get(self._url, params=params)
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException as e:
            raise UpstreamUnavailable("timeout", {"error": str(e)}) from e
        except httpx.HTTPStatusError as e:
            raise UpstreamUnavailable("bad_status", {"status_code": e.response.status_code}) from e
        except httpx.HTTPError as e:
            raise UpstreamUnavailable("transport_error", {"error": str(e)}) from e
        except ValueError as e:
            raise UpstreamUnavailable("invalid_json", {"error": str(e)}) from e


class StaticCredentialBroker(CredentialBroker):
    """Broker that always reports the same key."""

    def __init__(self, key: str) -> None:
        self._key = key

    async def fetch_current_key(self) -> str:
        return self._key
