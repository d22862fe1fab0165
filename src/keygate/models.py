"""Domain models for KeyGate."""

from dataclasses import dataclass
from enum import StrEnum

from pydantic import BaseModel, ConfigDict


class Outcome(StrEnum):
    """Result of referer / user-agent screening."""

    ALLOW = "ALLOW"
    DENY_REFERER = "DENY_REFERER"
    DENY_BOT = "DENY_BOT"


@dataclass(frozen=True)
class RateDecision:
    """Result of a rate limiter admit."""

    allowed: bool
    limit: int
    remaining: int
    reset_after: float

    def headers(self) -> dict[str, str]:
        """Rate limit headers for the response."""
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(round(self.reset_after))),
        }


class CheckKeyRequest(BaseModel):
    """Key submitted for checking."""

    key: str = ""


class CheckKeyResponse(BaseModel):
    """Result of a key check."""

    valid: bool
    token: str | None = None


class ValidateTokenRequest(BaseModel):
    """Session token submitted for validation."""

    token: str = ""


class ValidateTokenResponse(BaseModel):
    """Result of a token validation."""

    valid: bool


class ErrorBody(BaseModel):
    """JSON error body returned to clients."""

    error: str

    model_config = ConfigDict(frozen=True)
