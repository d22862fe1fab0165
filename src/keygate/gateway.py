"""Request admission and route logic for KeyGate."""

import hmac
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Optional

import structlog

from keygate.admission import AdmissionFilter
from keygate.banlist import BanList
from keygate.broker import CredentialBroker, HttpCredentialBroker
from keygate.config import Settings, get_settings
from keygate.errors import AccessDenied, RateLimited, ValidationError
from keygate.metrics import metrics
from keygate.models import (
    CheckKeyResponse,
    Outcome,
    RateDecision,
    ValidateTokenResponse,
)
from keygate.pages import PageStore
from keygate.ratelimit import RateLimiter
from keygate.tokens import TokenService

logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class KeyGateService:
    """Runs the admission pipeline and the three gateway operations."""

    def __init__(
        self,
        rate_limiter: RateLimiter,
        ban_list: BanList,
        admission: AdmissionFilter,
        broker: CredentialBroker,
        tokens: TokenService,
        pages: PageStore,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.rate_limiter = rate_limiter
        self.ban_list = ban_list
        self.admission = admission
        self.broker = broker
        self.tokens = tokens
        self.pages = pages
        self._now = now

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        broker: Optional[CredentialBroker] = None,
    ) -> "KeyGateService":
        """Build a service with every component configured from ``settings``."""
        settings = settings or get_settings()
        ban_list = BanList()
        return cls(
            rate_limiter=RateLimiter.from_settings(settings),
            ban_list=ban_list,
            admission=AdmissionFilter.from_settings(settings, ban_list),
            broker=broker or HttpCredentialBroker.from_settings(settings),
            tokens=TokenService.from_settings(settings),
            pages=PageStore.from_settings(settings),
        )

    async def screen(self, identity: str) -> RateDecision:
        """Rate limit then ban check, applied to every request."""
        decision = await self.rate_limiter.admit(identity)
        if not decision.allowed:
            metrics.admission_total.labels(stage="rate_limit", result="rejected").inc()
            raise RateLimited(decision)

        if self.ban_list.is_banned(identity):
            metrics.admission_total.labels(stage="ban_list", result="rejected").inc()
            logger.info("banned_client_rejected")
            raise AccessDenied("Access Denied", details={"identity": identity})

        return decision

    async def check_key(self, key: str) -> CheckKeyResponse:
        """Compare a submitted key with the current one and issue a token on match."""
        if not key:
            raise ValidationError("Key is required", {"field": "key"})

        current = await self.broker.fetch_current_key()
        if not hmac.compare_digest(key.encode(), current.encode()):
            metrics.key_checks_total.labels(result="invalid").inc()
            logger.info("key_checked", valid=False)
            return CheckKeyResponse(valid=False)

        token = self.tokens.issue()
        metrics.key_checks_total.labels(result="valid").inc()
        logger.info("key_checked", valid=True)
        return CheckKeyResponse(valid=True, token=token)

    def validate_token(self, token: str) -> ValidateTokenResponse:
        if not token:
            raise ValidationError("Token is required", {"field": "token"})
        return ValidateTokenResponse(valid=self.tokens.verify(token))

    async def get_key(self, referer: str | None, user_agent: str | None, identity: str) -> str:
        """Screen the visit and render the key page for an admitted browser."""
        outcome = self.admission.evaluate(referer, user_agent, identity)
        if outcome is Outcome.DENY_REFERER:
            raise AccessDenied("Access Denied", outcome=outcome)
        if outcome is Outcome.DENY_BOT:
            raise AccessDenied("Suspicious activity detected", outcome=outcome)

        key = await self.broker.fetch_current_key()
        logger.info("key_page_served")
        return self.pages.key_page(key, self._now())


# Singleton instance
_service: Optional[KeyGateService] = None


def get_service() -> KeyGateService:
    """Get the service singleton."""
    global _service
    if _service is None:
        _service = KeyGateService.from_settings()
    return _service
