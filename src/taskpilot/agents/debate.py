"""
Debate Orchestrator

Multi-persona deliberation for strategic goals:
1. Generate three expert personas for the problem
2. Each persona independently ranks candidate solutions
3. Each persona reviews its peers' tables and commits to one solution
4. A synthesizer merges the revisions into an HTML strategy and a plan

Calls inside a phase run concurrently under a semaphore and are joined
before the next phase starts. The result is advisory: the orchestrator
only executes the plan when the user opts in.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from ..llm import CapacityExhaustedError, DecisionClient, MalformedResponseError, ModelTier
from .base import DecisionRole, to_json
from .decisions import ConsensusDecision, ExpertPersona, SolutionCandidate
from .definitions import (
    CONSENSUS_PROMPT,
    DEBATE_ROLE,
    PERSONAS_PROMPT,
    REVISION_PROMPT,
    SOLUTION_TABLE_PROMPT,
)

logger = logging.getLogger(__name__)

PERSONA_COUNT = 3


class DeliberationCancelled(Exception):
    """The task that requested the deliberation is no longer active."""


def _first_list(raw: Any) -> list[Any]:
    """Accept a bare array or an object wrapping one."""
    if isinstance(raw, list):
        return raw
    if isinstance(raw, dict):
        for value in raw.values():
            if isinstance(value, list):
                return value
    raise MalformedResponseError(f"Expected a JSON array, got: {raw!r:.200}")


class DebateOrchestrator(DecisionRole):
    """
    Runs the four deliberation phases.

    Usage:
        >>> debate = DebateOrchestrator(client, fanout=3)
        >>> consensus = await debate.deliberate("Improve customer retention")
    """

    def __init__(self, client: DecisionClient, fanout: int = 3):
        super().__init__(client, DEBATE_ROLE)
        self.fanout = max(1, fanout)

    async def deliberate(
        self,
        problem: str,
        *,
        progress: Optional[Callable[[str], None]] = None,
        is_active: Callable[[], bool] = lambda: True,
    ) -> ConsensusDecision:
        """
        Deliberate on a problem.

        Args:
            problem: The user's goal
            progress: Receives one line per finished phase
            is_active: Checked between phases; False aborts

        Returns:
            ConsensusDecision with the HTML strategy and a plan

        Raises:
            DeliberationCancelled: is_active turned False
            DecisionServiceError: A phase produced nothing usable
        """
        report = progress or (lambda line: None)

        personas = await self.generate_personas(problem)
        self._check(is_active)
        report("Expert panel: " + ", ".join(f"{p.name} ({p.title})" for p in personas))

        async def table_for(persona: ExpertPersona) -> tuple[ExpertPersona, list[SolutionCandidate]]:
            return persona, await self.solution_table(persona, problem)

        panel = await self._phase([lambda p=p: table_for(p) for p in personas], "solution table")
        tables = [table for _, table in panel]
        self._check(is_active)
        report(f"Collected {len(tables)} solution tables.")

        revisions = await self._phase(
            [
                lambda i=i, p=p: self.revise(
                    p, problem, [t for j, t in enumerate(tables) if j != i]
                )
                for i, (p, _) in enumerate(panel)
            ],
            "revision",
        )
        self._check(is_active)
        report(f"Collected {len(revisions)} revised solutions.")

        consensus = await self.consensus(problem, revisions)
        self._check(is_active)
        report("Consensus reached.")
        return consensus

    async def generate_personas(self, problem: str) -> list[ExpertPersona]:
        raw = await self.client.call(PERSONAS_PROMPT.format(problem=problem), tier=ModelTier.HAIKU)
        personas = [self._validate(item, ExpertPersona) for item in _first_list(raw)]
        if not personas:
            raise MalformedResponseError("No personas were generated")
        return personas[:PERSONA_COUNT]

    async def solution_table(self, persona: ExpertPersona, problem: str) -> list[SolutionCandidate]:
        prompt = SOLUTION_TABLE_PROMPT.format(
            name=persona.name, title=persona.title, persona=persona.persona, problem=problem
        )
        raw = await self.client.call(prompt, tier=self.definition.tier)
        return [self._validate(row, SolutionCandidate) for row in _first_list(raw)]

    async def revise(
        self,
        persona: ExpertPersona,
        problem: str,
        other_tables: list[list[SolutionCandidate]],
    ) -> dict[str, Any]:
        prompt = REVISION_PROMPT.format(
            name=persona.name,
            title=persona.title,
            problem=problem,
            other_tables=to_json([[row.model_dump(by_alias=True) for row in t] for t in other_tables]),
        )
        raw = await self.client.call(prompt, tier=self.definition.tier)
        revision = raw if isinstance(raw, dict) else {"solution": raw}
        return {"expert": persona.name, **revision}

    async def consensus(self, problem: str, revisions: list[dict[str, Any]]) -> ConsensusDecision:
        prompt = CONSENSUS_PROMPT.format(problem=problem, solutions=to_json(revisions))
        raw = await self.client.call(prompt, tier=ModelTier.OPUS)
        return self._validate(raw, ConsensusDecision)

    async def _phase(self, calls: list[Callable[[], Awaitable[Any]]], label: str) -> list[Any]:
        """Run calls concurrently (bounded by fanout); keep the ones that succeed."""
        semaphore = asyncio.Semaphore(self.fanout)

        async def bounded(call: Callable[[], Awaitable[Any]]) -> Any:
            async with semaphore:
                return await call()

        results = await asyncio.gather(*(bounded(call) for call in calls), return_exceptions=True)

        kept = []
        for result in results:
            if isinstance(result, CapacityExhaustedError):
                raise result
            if isinstance(result, Exception):
                logger.warning("Deliberation %s failed: %s", label, result)
                continue
            kept.append(result)

        if not kept:
            raise MalformedResponseError(f"Every deliberation {label} failed")
        return kept

    @staticmethod
    def _check(is_active: Callable[[], bool]) -> None:
        if not is_active():
            raise DeliberationCancelled("Task was replaced during deliberation")
