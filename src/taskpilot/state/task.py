"""
Task Model

The single in-flight task and its lifecycle states.

Invariants kept by the methods here:
- ``goal`` never changes after creation
- the scratchpad only grows (``log``)
- ``current_step`` stays within ``[0, max(len(plan) - 1, 0)]``
"""

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional
from urllib.parse import urlparse

from ..agents.decisions import ManagerActionBase, ResearcherDecision, ResearchFact


class TaskStatus(str, Enum):
    """Lifecycle states of a task."""

    RESEARCHING = "RESEARCHING"
    PLANNING = "PLANNING"
    THINKING = "THINKING"
    VERIFYING = "VERIFYING"
    EXECUTING = "EXECUTING"
    WAITING = "WAITING"
    REPLANNING = "REPLANNING"
    TEACHING = "TEACHING"
    USER_INPUT_PENDING = "USER_INPUT_PENDING"
    AWAITING_CREDENTIAL_NAME = "AWAITING_CREDENTIAL_NAME"
    AWAITING_PASSPHRASE = "AWAITING_PASSPHRASE"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    STOPPED = "STOPPED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.STOPPED})

# States in which the turn loop may run
EXECUTION_STATUSES = frozenset({
    TaskStatus.PLANNING,
    TaskStatus.THINKING,
    TaskStatus.VERIFYING,
    TaskStatus.EXECUTING,
    TaskStatus.REPLANNING,
})


class ResumePoint(str, Enum):
    """What to continue with once the vault is unlocked."""

    PLAN = "plan"
    TURN = "turn"
    SAVE_CREDENTIAL = "save_credential"


def host_of(url: Optional[str]) -> Optional[str]:
    """Lower-cased host of a URL, without a leading ``www.``."""
    if not url:
        return None
    hostname = urlparse(url).hostname
    if not hostname:
        return None
    hostname = hostname.lower()
    return hostname[4:] if hostname.startswith("www.") else hostname


@dataclass
class Task:
    """
    One autonomous task.

    ``generation`` identifies this task instance; continuations carrying a
    different generation belong to a replaced task and are dropped.
    """

    goal: str
    generation: int
    status: TaskStatus = TaskStatus.RESEARCHING
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    plan: list[str] = field(default_factory=list)
    current_step: int = 0
    turn: int = 0
    scratchpad: list[str] = field(default_factory=list)
    research_data: list[ResearchFact] = field(default_factory=list)
    researcher_decision: Optional[ResearcherDecision] = None
    step_failure_count: int = 0
    website_failures: dict[str, int] = field(default_factory=dict)
    tabs: dict[str, int] = field(default_factory=dict)
    active_tab_name: str = "main"
    is_training: bool = False
    is_deliberate_plan: bool = False
    is_partial_success: bool = False
    final_answer: Optional[str] = None
    failure_reason: Optional[str] = None
    pending_wait_handle: Optional[asyncio.TimerHandle] = field(default=None, repr=False)
    last_failed_action: Optional[ManagerActionBase] = None
    recorded_actions: list[dict[str, Any]] = field(default_factory=list)
    initial_strategy: Optional[str] = None
    last_url: Optional[str] = None
    replans: int = 0
    resume_after_unlock: Optional[ResumePoint] = None
    created_at: float = field(default_factory=time.time)

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "goal" and "goal" in self.__dict__:
            raise AttributeError("Task goal is immutable")
        super().__setattr__(name, value)

    def log(self, entry: str) -> None:
        """Append an entry to the scratchpad."""
        self.scratchpad.append(entry)

    @property
    def active_tab(self) -> Optional[int]:
        return self.tabs.get(self.active_tab_name)

    @property
    def current_step_text(self) -> Optional[str]:
        if 0 <= self.current_step < len(self.plan):
            return self.plan[self.current_step]
        return None

    def advance_step(self) -> None:
        """Move to the next plan step, never past the last one."""
        if self.current_step < len(self.plan) - 1:
            self.current_step += 1

    def set_plan(self, plan: list[str]) -> None:
        """Install a fresh plan and restart step tracking."""
        self.plan = list(plan)
        self.current_step = 0
        self.step_failure_count = 0
        self.last_failed_action = None

    def record_host_failure(self, host: Optional[str]) -> int:
        """Count a failure against a host; returns the new tally."""
        if not host:
            return 0
        self.website_failures[host] = self.website_failures.get(host, 0) + 1
        return self.website_failures[host]

    def excluded_hosts(self, threshold: int) -> set[str]:
        return {host for host, count in self.website_failures.items() if count >= threshold}

    def cancel_wait(self) -> None:
        if self.pending_wait_handle is not None:
            self.pending_wait_handle.cancel()
            self.pending_wait_handle = None

    def next_tab_name(self) -> str:
        """First unused ``tab_N`` name, counting from the number of open tabs."""
        number = len(self.tabs) + 1
        while f"tab_{number}" in self.tabs:
            number += 1
        return f"tab_{number}"

    def snapshot(self) -> dict[str, Any]:
        """Plain-data view of the task for listeners and queries."""
        return {
            "id": self.id,
            "goal": self.goal,
            "status": self.status.value,
            "plan": list(self.plan),
            "current_step": self.current_step,
            "turn": self.turn,
            "scratchpad": list(self.scratchpad),
            "research_data": [fact.model_dump() for fact in self.research_data],
            "step_failure_count": self.step_failure_count,
            "website_failures": dict(self.website_failures),
            "tabs": dict(self.tabs),
            "active_tab_name": self.active_tab_name,
            "is_training": self.is_training,
            "is_deliberate_plan": self.is_deliberate_plan,
            "is_partial_success": self.is_partial_success,
            "final_answer": self.final_answer,
            "failure_reason": self.failure_reason,
            "initial_strategy": self.initial_strategy,
            "created_at": self.created_at,
        }
