"""
Verifier Role

Fast URL safety check run before the agent navigates somewhere
untrusted. Local policy vetoes happen before this role is consulted
(see taskpilot.security.url_policy). A Verifier that cannot answer does
not block the task: the URL is treated as safe and the reason says so.
"""

import logging

from ..llm import CapacityExhaustedError, DecisionClient, DecisionServiceError
from .base import DecisionRole
from .decisions import VerifierDecision
from .definitions import VERIFIER_ROLE

logger = logging.getLogger(__name__)


class VerifierRole(DecisionRole):
    """URL safety verifier (haiku tier)."""

    def __init__(self, client: DecisionClient):
        super().__init__(client, VERIFIER_ROLE)

    async def verify(self, url: str) -> VerifierDecision:
        """
        Judge whether a URL is safe to visit.

        Args:
            url: Target URL

        Returns:
            VerifierDecision (safe with an explanatory reason when the call fails)
        """
        try:
            return await self._ask(self.definition.prompt.format(url=url), VerifierDecision)
        except CapacityExhaustedError:
            raise
        except DecisionServiceError as e:
            logger.warning("Verifier failed for %s, defaulting to safe: %s", url, e)
            return VerifierDecision(is_safe=True, reason="Verifier unavailable, defaulting to safe.")
