"""
Task State Store

Owns the single active task for one orchestrator instance. Every
``create`` bumps a generation counter so callers can tell whether a
continuation still belongs to the task it started with.

The store hands out the live Task object. The orchestrator changes it in
place from its own event loop (one event at a time), after checking the
generation; ``mutate`` is for one-off edits from outside the orchestrator
that must be a no-op when no task is active.
"""

from typing import Callable, Optional, TypeVar

from .task import Task, TaskStatus

T = TypeVar("T")


class TaskStore:
    """Holder of at most one active task."""

    def __init__(self):
        self._task: Optional[Task] = None
        self._generation = 0

    @property
    def generation(self) -> int:
        """Generation of the most recently created task."""
        return self._generation

    def create(self, goal: str, status: TaskStatus = TaskStatus.RESEARCHING) -> Task:
        """Replace any active task with a new one."""
        self._generation += 1
        self._task = Task(goal=goal, generation=self._generation, status=status)
        return self._task

    def get(self) -> Optional[Task]:
        return self._task

    def is_current(self, generation: int) -> bool:
        """True when a task exists and it was created with this generation."""
        return self._task is not None and self._task.generation == generation

    def mutate(self, fn: Callable[[Task], T]) -> Optional[T]:
        """Apply ``fn`` to the active task; no-op when there is none."""
        if self._task is None:
            return None
        return fn(self._task)

    def clear(self) -> Optional[Task]:
        """Drop the active task and return it."""
        task, self._task = self._task, None
        return task
