"""
Teacher Role

Condenses a recorded user demonstration into a short procedural summary
that is shown to the user when a teaching session ends.
"""

import logging
from typing import Any, Optional

from ..llm import CapacityExhaustedError, DecisionClient, DecisionServiceError
from .base import DecisionRole, to_json
from .decisions import TeacherSummary
from .definitions import TEACHER_ROLE

logger = logging.getLogger(__name__)


class TeacherRole(DecisionRole):
    """Demonstration summarizer (haiku tier)."""

    def __init__(self, client: DecisionClient):
        super().__init__(client, TEACHER_ROLE)

    async def summarize(self, goal: str, actions: list[dict[str, Any]]) -> Optional[str]:
        """Summarize recorded actions, or None when the call fails."""
        prompt = self.definition.prompt.format(goal=goal, actions=to_json(actions))
        try:
            return (await self._ask(prompt, TeacherSummary)).summary
        except CapacityExhaustedError:
            raise
        except DecisionServiceError as e:
            logger.warning("Teacher summary failed: %s", e)
            return None
