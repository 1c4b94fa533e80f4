"""
Orchestrator Events

Control events arrive from the user interface (or any client); internal
events are continuations the orchestrator posts to its own queue. Every
internal event carries the generation of the task it belongs to.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from ..agents.decisions import ManagerActionBase


class Event:
    """Base class for everything that goes through the orchestrator queue."""


# =============================================================================
# Control events
# =============================================================================


@dataclass
class StartTask(Event):
    goal: str


@dataclass
class StopTask(Event):
    pass


@dataclass
class ResetTaskSession(Event):
    pass


@dataclass
class TakeOver(Event):
    pass


@dataclass
class GoAutonomous(Event):
    pass


@dataclass
class RecordedAction(Event):
    """A user action captured by the environment while recording."""

    payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class AttemptStrategy(Event):
    plan: list[str] = field(default_factory=list)


@dataclass
class StartTeaching(Event):
    goal: str


@dataclass
class StopTeaching(Event):
    pass


@dataclass
class UnlockVault(Event):
    passphrase: str = field(repr=False)


@dataclass
class SaveCredential(Event):
    name: str


@dataclass
class DeleteHistoricalTask(Event):
    """Timestamp in epoch milliseconds, as stored in the history."""

    timestamp: int


# Events applied at dispatch time instead of waiting in the queue
PREEMPTIVE_EVENTS = (StopTask, ResetTaskSession)


# =============================================================================
# Internal continuations
# =============================================================================


@dataclass
class InternalEvent(Event):
    generation: int


@dataclass
class RunNextTurn(InternalEvent):
    pass


@dataclass
class StepSucceeded(InternalEvent):
    pass


@dataclass
class StepFailed(InternalEvent):
    action: Optional[ManagerActionBase] = None
    reason: str = ""
    host: Optional[str] = None


@dataclass
class Replan(InternalEvent):
    reason: str = ""
    user_initiated: bool = False


@dataclass
class WaitElapsed(InternalEvent):
    pass
