"""
Researcher Role

Gathers real-time facts with web search and decides whether the goal
needs browser automation or the credential vault. Errors propagate: a
task cannot continue without research.
"""

from ..llm import DecisionClient
from .base import DecisionRole, Preflight
from .decisions import ResearcherDecision
from .definitions import RESEARCHER_ROLE


class ResearcherRole(DecisionRole):
    """Search-enabled fact finder (sonnet tier)."""

    def __init__(self, client: DecisionClient):
        super().__init__(client, RESEARCHER_ROLE)

    async def research(self, goal: str, preflight: Preflight) -> ResearcherDecision:
        """
        Research a goal.

        Args:
            goal: The user's goal
            preflight: Date, agent version and location

        Returns:
            ResearcherDecision with facts and routing flags

        Raises:
            DecisionServiceError: The call failed or the answer was unusable
        """
        prompt = self.definition.prompt.format(
            preflight=preflight.render(),
            goal=goal,
            location=preflight.location,
        )
        return await self._ask(prompt, ResearcherDecision)
