"""Referer and user-agent screening for the key page."""

from collections.abc import Sequence

import structlog

from keygate.banlist import BanList
from keygate.config import Settings
from keygate.metrics import metrics
from keygate.models import Outcome

logger = structlog.get_logger()


class AdmissionFilter:
    """Decide whether a browser visit may see a freshly issued key.

    The referer is checked before the user-agent: a visit without an
    approved referer is turned away without a ban, and only a bot-like
    user-agent from an approved referer gets the identity banned.
    """

    def __init__(
        self,
        ban_list: BanList,
        allowed_referers: Sequence[str],
        min_user_agent_length: int,
    ) -> None:
        self._ban_list = ban_list
        self._allowed_referers = tuple(allowed_referers)
        self._min_user_agent_length = min_user_agent_length

    @classmethod
    def from_settings(cls, settings: Settings, ban_list: BanList) -> "AdmissionFilter":
        return cls(ban_list, settings.allowed_referers, settings.min_user_agent_length)

    def classify(self, referer: str | None, user_agent: str | None) -> Outcome:
        """Classify the headers without touching any state."""
        referer = referer or ""
        user_agent = user_agent or ""

        if not referer or not any(allowed in referer for allowed in self._allowed_referers):
            return Outcome.DENY_REFERER

        if not user_agent or len(user_agent) < self._min_user_agent_length:
            return Outcome.DENY_BOT

        return Outcome.ALLOW

    def evaluate(self, referer: str | None, user_agent: str | None, identity: str) -> Outcome:
        """Classify the headers and ban ``identity`` on a bot signature."""
        outcome = self.classify(referer, user_agent)
        metrics.admission_total.labels(stage="admission", result=outcome.value).inc()

        if outcome is Outcome.DENY_BOT:
            self._ban_list.ban(identity, reason="bot_user_agent")
        elif outcome is Outcome.DENY_REFERER:
            logger.info("referer_rejected", referer=referer)

        return outcome
