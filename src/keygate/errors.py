"""Error taxonomy for KeyGate."""

from typing import Any, Optional

from keygate.models import ErrorBody, Outcome, RateDecision


class KeyGateError(Exception):
    """Base exception for gateway failures.

    ``message`` is what the client sees. ``details`` is for logs only.
    """

    code = "KEYGATE_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorBody:
        """Convert to the client-facing error body."""
        return ErrorBody(error=self.message)


class ValidationError(KeyGateError):
    """Missing or malformed request input."""

    code = "VALIDATION_ERROR"
    status_code = 400


class AccessDenied(KeyGateError):
    """Request refused by the ban list or the admission filter."""

    code = "ACCESS_DENIED"
    status_code = 403

    def __init__(
        self,
        message: str = "Access Denied",
        outcome: Optional[Outcome] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        self.outcome = outcome
        super().__init__(message, details)


class RateLimited(KeyGateError):
    """Identity exceeded its request budget for the current window."""

    code = "RATE_LIMITED"
    status_code = 429

    def __init__(self, decision: RateDecision):
        self.decision = decision
        super().__init__("Rate limit exceeded. Please try again later.")


class UpstreamUnavailable(KeyGateError):
    """Key-issuing service failed, timed out or answered without a key."""

    code = "UPSTREAM_UNAVAILABLE"
    status_code = 500

    def __init__(self, reason: str, details: Optional[dict[str, Any]] = None):
        self.reason = reason
        super().__init__("Internal Server Error", {"reason": reason, **(details or {})})


class ConfigurationError(KeyGateError):
    """Required configuration is missing."""

    code = "CONFIGURATION_ERROR"
    status_code = 500

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__("Internal Server Error", {"reason": reason})
