"""
Presenter Role

Synthesizes the user-facing final answer. It reads only the goal, the
scratchpad and the research facts, never raw environment state.

A full answer never carries a call to action; a partial success always
does, pointing the user at the recovery options.
"""

import logging
from typing import Literal, Optional

from ..llm import CapacityExhaustedError, DecisionClient, DecisionServiceError
from .base import DecisionRole, to_json
from .decisions import PresenterDecision, ResearchFact
from .definitions import PRESENTER_ROLE

logger = logging.getLogger(__name__)

PresentationKind = Literal["ANSWER", "PARTIAL_SUCCESS"]

DEFAULT_CALL_TO_ACTION = (
    "I can attempt to continue autonomously if you use 'Replan From Here', "
    "you can use 'Take Over' and I will learn from you, or you can start a new task."
)


class PresenterRole(DecisionRole):
    """Final answer synthesizer (sonnet tier)."""

    def __init__(self, client: DecisionClient):
        super().__init__(client, PRESENTER_ROLE)

    async def synthesize(
        self,
        goal: str,
        scratchpad: list[str],
        research: list[ResearchFact],
        kind: PresentationKind,
        reason: Optional[str] = None,
    ) -> Optional[PresenterDecision]:
        """
        Build the final answer.

        Args:
            goal: The user's goal
            scratchpad: Full execution log
            research: Researcher facts
            kind: ANSWER or PARTIAL_SUCCESS
            reason: Why the task ended

        Returns:
            PresenterDecision, or None when the Presenter could not answer

        Raises:
            CapacityExhaustedError: Quota exhausted
        """
        prompt = self.definition.prompt.format(
            goal=goal,
            research=to_json(research),
            scratchpad="\n".join(scratchpad) or "(empty)",
            kind=kind,
            reason=reason or "N/A",
        )
        try:
            decision = await self._ask(prompt, PresenterDecision)
        except CapacityExhaustedError:
            raise
        except DecisionServiceError as e:
            logger.error("Presenter failed: %s", e)
            return None

        if kind == "ANSWER":
            decision.call_to_action = None
        elif not decision.call_to_action:
            decision.call_to_action = DEFAULT_CALL_TO_ACTION
        return decision
