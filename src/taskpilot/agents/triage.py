"""
Triage Role

Routes a goal to the standard research/plan/execute flow or to the
multi-persona deliberation flow. Any failure other than exhausted
capacity falls back to the standard flow.
"""

import logging

from ..llm import CapacityExhaustedError, DecisionClient, DecisionServiceError
from .base import DecisionRole
from .decisions import TriageDecision
from .definitions import TRIAGE_ROLE

logger = logging.getLogger(__name__)


class TriageRole(DecisionRole):
    """Fast goal classifier (haiku tier)."""

    def __init__(self, client: DecisionClient):
        super().__init__(client, TRIAGE_ROLE)

    async def classify(self, goal: str) -> TriageDecision:
        """
        Classify a goal.

        Args:
            goal: The user's goal

        Returns:
            TriageDecision (standard flow when the call fails)
        """
        try:
            return await self._ask(self.definition.prompt.format(goal=goal), TriageDecision)
        except CapacityExhaustedError:
            raise
        except DecisionServiceError as e:
            logger.warning("Triage failed, defaulting to the standard flow: %s", e)
            return TriageDecision()
