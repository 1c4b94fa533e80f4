"""
Manager Role

Chooses the single next primitive action for the current plan step,
given a truncated page snapshot, recent scratchpad and any learned tool
for the current website. The answer is validated into one ManagerAction
variant; an unknown or incomplete action raises MalformedResponseError.
"""

from dataclasses import dataclass
from typing import Any, Optional

from pydantic import ValidationError

from ..llm import DecisionClient, MalformedResponseError
from .base import DecisionRole, Preflight, numbered, to_json
from .decisions import ManagerActionBase, parse_manager_action
from .definitions import MANAGER_ROLE

SCRATCHPAD_WINDOW = 5


@dataclass
class ManagerContext:
    """Everything the Manager sees for one turn."""

    plan: list[str]
    current_step: int
    scratchpad: list[str]
    tabs: dict[str, int]
    active_tab: str
    snapshot: dict[str, Any]
    preflight: Preflight
    learned_tool: Optional[dict[str, Any]] = None
    is_deliberate: bool = False

    @property
    def current_step_text(self) -> str:
        if 0 <= self.current_step < len(self.plan):
            return self.plan[self.current_step]
        return "(no step)"


class ManagerRole(DecisionRole):
    """Turn-level action selector (sonnet tier)."""

    def __init__(self, client: DecisionClient):
        super().__init__(client, MANAGER_ROLE)

    def build_prompt(self, context: ManagerContext) -> str:
        return self.definition.prompt.format(
            preflight=context.preflight.render(),
            plan=numbered(context.plan),
            current_step=context.current_step_text,
            is_deliberate=str(context.is_deliberate).lower(),
            scratchpad="\n".join(context.scratchpad[-SCRATCHPAD_WINDOW:]) or "(empty)",
            tabs=to_json(context.tabs),
            active_tab=context.active_tab,
            snapshot=to_json(context.snapshot),
            learned_tool=to_json(context.learned_tool or {}),
        )

    async def decide(self, context: ManagerContext) -> ManagerActionBase:
        """
        Pick the next action.

        Raises:
            DecisionServiceError: The call failed or the answer was unusable
        """
        raw = await self.client.call(
            self.build_prompt(context),
            tier=self.definition.tier,
            use_search=self.definition.use_search,
        )
        return self._validate_action(raw)

    def _validate_action(self, raw: Any) -> ManagerActionBase:
        try:
            return parse_manager_action(raw)
        except ValidationError as e:
            raise MalformedResponseError(f"Manager returned an invalid action: {e}") from e
