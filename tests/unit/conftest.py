"""
Shared fixtures for unit tests: an in-memory gateway and mocked roles.
"""

from typing import Any, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from taskpilot.agents import (
    PlannerDecision,
    PresenterDecision,
    ResearcherDecision,
    ResearchFact,
    TriageDecision,
    VerifierDecision,
)
from taskpilot.browser import ActionOutcome, EnvironmentGateway, PageSnapshot, PrimitiveAction
from taskpilot.config import AgentSettings
from taskpilot.knowledge import KnowledgeStore
from taskpilot.security import SessionVault


class FakeGateway(EnvironmentGateway):
    """
    In-memory browser.

    ``outcomes`` is consumed one entry per ``execute`` call; when it runs
    out every primitive succeeds. ``snapshot_errors`` works the same way
    for observations.
    """

    def __init__(self):
        self.urls: dict[int, str] = {}
        self.front: Optional[int] = None
        self.executed: list[tuple[int, PrimitiveAction]] = []
        self.outcomes: list[ActionOutcome] = []
        self.snapshot_errors: list[Exception] = []
        self.search_results: list[str] = ["passage one", "passage two"]
        self.learning: set[int] = set()
        self.recorder = None
        self._next = 1

    async def snapshot(self, handle: int) -> PageSnapshot:
        if self.snapshot_errors:
            raise self.snapshot_errors.pop(0)
        return PageSnapshot(url=self.urls.get(handle, ""), title="Page", main_content="content")

    async def execute(self, handle: int, action: PrimitiveAction) -> ActionOutcome:
        self.executed.append((handle, action))
        if self.outcomes:
            return self.outcomes.pop(0)
        if action.action == "GOTO":
            self.urls[handle] = action.url
        if action.action == "EXTRACT_TEXT":
            return ActionOutcome(success=True, text="extracted page text")
        return ActionOutcome(success=True)

    async def create_tab(self, url: str) -> int:
        handle = self._next
        self._next += 1
        self.urls[handle] = url
        self.front = handle
        return handle

    async def switch_tab(self, handle: int) -> None:
        self.front = handle

    async def wait_for_load(self, handle: int) -> None:
        pass

    async def semantic_search(self, handle: int, query: str, top_k: int = 5) -> list[str]:
        return list(self.search_results)

    async def current_tab(self) -> Optional[int]:
        return self.front

    async def tab_url(self, handle: int) -> Optional[str]:
        return self.urls.get(handle)

    async def start_learning(self, handle: int) -> None:
        self.learning.add(handle)

    async def stop_learning(self, handle: int) -> None:
        self.learning.discard(handle)

    def set_recorder(self, callback) -> None:
        self.recorder = callback

    def emit(self, payload: dict[str, Any]) -> None:
        """Simulate a user action captured in the page."""
        self.recorder(payload)

    @property
    def kinds(self) -> list[str]:
        return [action.action for _, action in self.executed]


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def settings(tmp_path):
    return AgentSettings(
        data_dir=tmp_path,
        start_url="https://start.example",
        observation_timeout=1.0,
        long_wait_seconds=60.0,
        new_tab_settle_seconds=0.0,
    )


@pytest.fixture
def knowledge(tmp_path, settings):
    return KnowledgeStore(tmp_path, settings=settings)


@pytest.fixture
def vault():
    return SessionVault(passphrase="open sesame")


@pytest.fixture
def roles():
    """
    DecisionRoles double with sensible defaults: standard flow, browser
    needed, a one-step plan, safe URLs and a plain answer.
    """
    mock = MagicMock()
    mock.triage.classify = AsyncMock(return_value=TriageDecision())
    mock.researcher.research = AsyncMock(
        return_value=ResearcherDecision(
            thought="Needs the browser",
            facts=[ResearchFact(question="Q", answer="A")],
            requires_browser=True,
        )
    )
    mock.planner.plan = AsyncMock(return_value=PlannerDecision(plan=["Do the thing"]))
    mock.manager.decide = AsyncMock()
    mock.verifier.verify = AsyncMock(return_value=VerifierDecision(is_safe=True))
    mock.presenter.synthesize = AsyncMock(return_value=PresenterDecision(summary="All done."))
    mock.teacher.summarize = AsyncMock(return_value="Clicks the button.")
    mock.debate.deliberate = AsyncMock()
    return mock
