"""
Decision Role Set

Bundles every decision role the orchestrator talks to, so the
orchestrator receives one object and tests can swap individual roles
for mocks.
"""

from dataclasses import dataclass
from typing import Optional

from ..config import AgentSettings
from ..llm import DecisionClient
from .debate import DebateOrchestrator
from .manager import ManagerRole
from .planner import PlannerRole
from .presenter import PresenterRole
from .researcher import ResearcherRole
from .teacher import TeacherRole
from .triage import TriageRole
from .verifier import VerifierRole


@dataclass
class DecisionRoles:
    """The eight roles used by the orchestrator."""

    triage: TriageRole
    researcher: ResearcherRole
    planner: PlannerRole
    manager: ManagerRole
    verifier: VerifierRole
    presenter: PresenterRole
    teacher: TeacherRole
    debate: DebateOrchestrator


def create_roles(client: DecisionClient, settings: Optional[AgentSettings] = None) -> DecisionRoles:
    """
    Factory function to build every role on one DecisionClient.

    Args:
        client: Shared decision client
        settings: Agent settings (defaults when None)

    Returns:
        DecisionRoles instance
    """
    settings = settings or AgentSettings()
    return DecisionRoles(
        triage=TriageRole(client),
        researcher=ResearcherRole(client),
        planner=PlannerRole(client),
        manager=ManagerRole(client),
        verifier=VerifierRole(client),
        presenter=PresenterRole(client),
        teacher=TeacherRole(client),
        debate=DebateOrchestrator(client, fanout=settings.debate_fanout),
    )
