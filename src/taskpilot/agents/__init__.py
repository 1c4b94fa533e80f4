"""
Decision Roles Module

Each role renders its prompt, calls the DecisionClient at its model tier
and validates the answer into a pydantic model:
- Triage: standard vs deliberate flow (haiku tier)
- Researcher: web-search facts and routing flags (sonnet tier)
- Planner: plans and replans (sonnet tier)
- Manager: one action per turn (sonnet tier)
- Verifier: URL safety (haiku tier)
- Presenter: final answer synthesis (sonnet tier)
- Teacher: demonstration summaries (haiku tier)
- Debate: multi-persona deliberation (sonnet/opus tiers)
"""

from .base import DecisionRole, Preflight, numbered, to_json
from .decisions import (
    ACTION_KINDS,
    MANAGER_ACTION_TYPES,
    AnswerAction,
    ChangeTabAction,
    ClickAction,
    ConsensusDecision,
    ExpertPersona,
    ExtractTextAction,
    FailAction,
    Flow,
    GotoAction,
    HelpReplanAction,
    LongWaitAction,
    ManagerAction,
    ManagerActionBase,
    OpenTabAction,
    PartialSuccessAction,
    PlannerDecision,
    PresenterDecision,
    PressEscapeAction,
    ReadAction,
    ResearcherDecision,
    ResearchFact,
    SaveCredentialValueAction,
    ScrollDownAction,
    SearchAction,
    SearchPageAction,
    SolutionCandidate,
    SubmitAction,
    TeacherSummary,
    TriageDecision,
    TypeAction,
    VerifierDecision,
    WaitAction,
    parse_manager_action,
)
from .definitions import ALL_ROLES, RoleDefinition
from .debate import DebateOrchestrator, DeliberationCancelled
from .manager import ManagerContext, ManagerRole
from .planner import PlannerRole, ReplanContext
from .presenter import DEFAULT_CALL_TO_ACTION, PresentationKind, PresenterRole
from .researcher import ResearcherRole
from .teacher import TeacherRole
from .triage import TriageRole
from .verifier import VerifierRole
from .roles import DecisionRoles, create_roles

__all__ = [
    # Shared plumbing
    "DecisionRole",
    "Preflight",
    "numbered",
    "to_json",
    "ALL_ROLES",
    "RoleDefinition",
    # Decision models
    "ConsensusDecision",
    "ExpertPersona",
    "Flow",
    "PlannerDecision",
    "PresenterDecision",
    "ResearcherDecision",
    "ResearchFact",
    "SolutionCandidate",
    "TeacherSummary",
    "TriageDecision",
    "VerifierDecision",
    # Manager actions
    "ACTION_KINDS",
    "MANAGER_ACTION_TYPES",
    "ManagerAction",
    "ManagerActionBase",
    "parse_manager_action",
    "AnswerAction",
    "ChangeTabAction",
    "ClickAction",
    "ExtractTextAction",
    "FailAction",
    "GotoAction",
    "HelpReplanAction",
    "LongWaitAction",
    "OpenTabAction",
    "PartialSuccessAction",
    "PressEscapeAction",
    "ReadAction",
    "SaveCredentialValueAction",
    "ScrollDownAction",
    "SearchAction",
    "SearchPageAction",
    "SubmitAction",
    "TypeAction",
    "WaitAction",
    # Roles
    "DebateOrchestrator",
    "DeliberationCancelled",
    "ManagerContext",
    "ManagerRole",
    "PlannerRole",
    "ReplanContext",
    "DEFAULT_CALL_TO_ACTION",
    "PresentationKind",
    "PresenterRole",
    "ResearcherRole",
    "TeacherRole",
    "TriageRole",
    "VerifierRole",
    "DecisionRoles",
    "create_roles",
]
