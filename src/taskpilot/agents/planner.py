"""
Planner Role

Turns a goal plus research into an ordered list of browser steps, and
rebuilds that list when execution gets stuck.

Three prompt variants:
1. Initial planning (research facts, similar completed tasks, deliberate flag)
2. Failure replanning (failed plan, failing step, recent history, host strikes)
3. Hand-back replanning after the user demonstrated steps during a takeover

Failures return None; the orchestrator turns that into a failed task.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from ..knowledge.records import CompletedTask
from ..llm import CapacityExhaustedError, DecisionClient, DecisionServiceError
from .base import DecisionRole, Preflight, numbered, to_json
from .decisions import PlannerDecision, ResearchFact
from .definitions import HANDBACK_PROMPT, PLANNER_ROLE, REPLANNER_PROMPT

logger = logging.getLogger(__name__)


@dataclass
class ReplanContext:
    """
    What the Planner needs to know about a plan that stopped working.

    Attributes:
        failed_plan: The plan being replaced
        failing_step: 1-based index of the step that could not be completed
        history: Recent scratchpad entries
        website_failures: Failure tally per host
        excluded_hosts: Hosts that reached the strike limit
        user_initiated: True when the user hands control back after a takeover
    """

    failed_plan: list[str]
    failing_step: int
    history: list[str]
    website_failures: dict[str, int] = field(default_factory=dict)
    excluded_hosts: list[str] = field(default_factory=list)
    user_initiated: bool = False


class PlannerRole(DecisionRole):
    """Strategic planner (sonnet tier)."""

    def __init__(self, client: DecisionClient):
        super().__init__(client, PLANNER_ROLE)

    def build_prompt(
        self,
        goal: str,
        research: list[ResearchFact],
        preflight: Preflight,
        *,
        similar_tasks: Optional[list[CompletedTask]] = None,
        is_deliberate: bool = False,
        replan: Optional[ReplanContext] = None,
    ) -> str:
        """Render the prompt variant matching the situation."""
        if replan is None:
            similar = "\n\n".join(
                f"Goal: {t.goal}\nAnswer: {t.answer}" for t in (similar_tasks or [])
            ) or "(none)"
            return self.definition.prompt.format(
                preflight=preflight.render(),
                goal=goal,
                is_deliberate=str(is_deliberate).lower(),
                research=to_json(research),
                similar=similar,
            )

        excluded = ", ".join(sorted(replan.excluded_hosts)) or "(none)"
        if replan.user_initiated:
            index = replan.failing_step - 1
            step_text = replan.failed_plan[index] if 0 <= index < len(replan.failed_plan) else "N/A"
            return HANDBACK_PROMPT.format(
                preflight=preflight.render(),
                goal=goal,
                failed_plan=numbered(replan.failed_plan),
                failing_step=replan.failing_step,
                failing_step_text=step_text,
                history="\n".join(replan.history),
                excluded=excluded,
            )

        return REPLANNER_PROMPT.format(
            preflight=preflight.render(),
            goal=goal,
            research=to_json(research),
            failed_plan=numbered(replan.failed_plan),
            failing_step=replan.failing_step,
            history="\n".join(replan.history),
            website_failures=to_json(replan.website_failures),
            excluded=excluded,
        )

    async def plan(
        self,
        goal: str,
        research: list[ResearchFact],
        preflight: Preflight,
        *,
        similar_tasks: Optional[list[CompletedTask]] = None,
        is_deliberate: bool = False,
        replan: Optional[ReplanContext] = None,
    ) -> Optional[PlannerDecision]:
        """
        Produce a plan.

        Args:
            goal: The user's goal
            research: Facts gathered by the Researcher
            preflight: Date, agent version and location
            similar_tasks: Completed tasks with overlapping goals
            is_deliberate: The plan came out of deliberation
            replan: Failure context when replacing an existing plan

        Returns:
            PlannerDecision, or None when the Planner could not answer
        """
        prompt = self.build_prompt(
            goal,
            research,
            preflight,
            similar_tasks=similar_tasks,
            is_deliberate=is_deliberate,
            replan=replan,
        )
        try:
            return await self._ask(prompt, PlannerDecision)
        except CapacityExhaustedError:
            raise
        except DecisionServiceError as e:
            logger.error("Planner failed: %s", e)
            return None
