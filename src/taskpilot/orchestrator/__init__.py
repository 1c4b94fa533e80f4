"""
Orchestrator Module

The task state machine and the runner for environment actions.
"""

from typing import Any, Optional

from ..agents import DecisionRoles
from ..browser.gateway import EnvironmentGateway
from ..config import AgentSettings
from ..knowledge import KnowledgeStore
from ..security import CredentialVault, create_url_policy
from .actions import DIRECT_PRIMITIVES, RUNNER_KINDS, ActionRunner
from .engine import DELIBERATION_CALL_TO_ACTION, STOP_REASON, Orchestrator


def create_orchestrator(
    roles: DecisionRoles,
    gateway: EnvironmentGateway,
    knowledge: KnowledgeStore,
    vault: CredentialVault,
    settings: Optional[AgentSettings] = None,
    companion: Optional[Any] = None,
) -> Orchestrator:
    """
    Factory function to create an orchestrator.

    Args:
        roles: Decision roles
        gateway: Browser gateway
        knowledge: Knowledge store
        vault: Credential vault
        settings: Agent settings (read from the environment when None)
        companion: Optional companion relay

    Returns:
        Configured Orchestrator
    """
    settings = settings or AgentSettings.from_env()
    return Orchestrator(
        roles,
        gateway,
        knowledge,
        vault,
        settings=settings,
        url_policy=create_url_policy(settings.trusted),
        companion=companion,
    )


__all__ = [
    "ActionRunner",
    "DIRECT_PRIMITIVES",
    "RUNNER_KINDS",
    "DELIBERATION_CALL_TO_ACTION",
    "STOP_REASON",
    "Orchestrator",
    "create_orchestrator",
]
