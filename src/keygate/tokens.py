"""Short-lived session tokens proving a successful key check."""

import time
from collections.abc import Callable

import jwt
import structlog

from keygate.config import Settings
from keygate.errors import ConfigurationError
from keygate.metrics import metrics

logger = structlog.get_logger()

ALGORITHM = "HS256"


class TokenService:
    """Issue and verify HS256 JWTs carrying only ``iat`` and ``exp``."""

    def __init__(
        self,
        secret: str,
        ttl_seconds: int = 30,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._secret = secret
        self._ttl_seconds = ttl_seconds
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenService":
        return cls(settings.secret_key, settings.token_ttl_seconds)

    @property
    def configured(self) -> bool:
        return bool(self._secret)

    def issue(self) -> str:
        """Sign a new token that expires ``ttl_seconds`` from now."""
        self._require_secret()
        issued_at = int(self._clock())
        token = jwt.encode(
            {"iat": issued_at, "exp": issued_at + self._ttl_seconds},
            self._secret,
            algorithm=ALGORITHM,
        )
        metrics.tokens_total.labels(operation="issue", result="ok").inc()
        return token

    def verify(self, token: str) -> bool:
        """Return whether ``token`` is well formed, signed by us and unexpired."""
        self._require_secret()
        try:
            jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                options={"require": ["iat", "exp"]},
            )
        except jwt.InvalidTokenError as e:
            metrics.tokens_total.labels(operation="verify", result="invalid").inc()
            logger.debug("token_rejected", error=str(e))
            return False

        metrics.tokens_total.labels(operation="verify", result="valid").inc()
        return True

    def _require_secret(self) -> None:
        if not self._secret:
            raise ConfigurationError("signing secret is not configured")
