"""
Task State

The Task model, its lifecycle states, the per-orchestrator TaskStore
and the event types that drive the orchestrator.
"""

from .task import (
    Task,
    TaskStatus,
    ResumePoint,
    TERMINAL_STATUSES,
    EXECUTION_STATUSES,
    host_of,
)
from .store import TaskStore
from .events import (
    Event,
    StartTask,
    StopTask,
    ResetTaskSession,
    TakeOver,
    GoAutonomous,
    RecordedAction,
    AttemptStrategy,
    StartTeaching,
    StopTeaching,
    UnlockVault,
    SaveCredential,
    DeleteHistoricalTask,
    PREEMPTIVE_EVENTS,
    InternalEvent,
    RunNextTurn,
    StepSucceeded,
    StepFailed,
    Replan,
    WaitElapsed,
)

__all__ = [
    "Task",
    "TaskStatus",
    "ResumePoint",
    "TERMINAL_STATUSES",
    "EXECUTION_STATUSES",
    "host_of",
    "TaskStore",
    "Event",
    "StartTask",
    "StopTask",
    "ResetTaskSession",
    "TakeOver",
    "GoAutonomous",
    "RecordedAction",
    "AttemptStrategy",
    "StartTeaching",
    "StopTeaching",
    "UnlockVault",
    "SaveCredential",
    "DeleteHistoricalTask",
    "PREEMPTIVE_EVENTS",
    "InternalEvent",
    "RunNextTurn",
    "StepSucceeded",
    "StepFailed",
    "Replan",
    "WaitElapsed",
]
