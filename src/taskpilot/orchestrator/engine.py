"""
Task Orchestrator

The event-driven state machine that runs one task at a time.

Events go through a single asyncio.Queue and are handled one after the
other. A handler returns the follow-up internal event (RunNextTurn,
StepSucceeded, StepFailed, Replan, WaitElapsed) instead of calling the
next handler itself, so a long task never grows the call stack.

Every internal event and every continuation after an await is checked
against the task generation; anything that belongs to a replaced or
cleared task is dropped. StopTask and ResetTaskSession bypass the queue
so that an in-flight decision call cannot delay cancellation.

Usage:
    >>> orchestrator = Orchestrator(roles, gateway, knowledge, vault, settings)
    >>> orchestrator.subscribe(print)
    >>> await orchestrator.dispatch(StartTask(goal="What is the boiling point of water?"))
    >>> await orchestrator.run_until_idle()
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Union

from ..agents import (
    DecisionRoles,
    DeliberationCancelled,
    ManagerActionBase,
    ManagerContext,
    Preflight,
    PresentationKind,
    ReplanContext,
    ResearcherDecision,
)
from ..browser.gateway import ActionOutcome, EnvironmentGateway
from ..config import AgentSettings
from ..knowledge import KnowledgeStore
from ..llm import CapacityExhaustedError, DecisionServiceError
from ..security import CredentialVault, UrlPolicy, VaultError, VaultLockedError
from ..state import (
    EXECUTION_STATUSES,
    PREEMPTIVE_EVENTS,
    AttemptStrategy,
    DeleteHistoricalTask,
    Event,
    GoAutonomous,
    RecordedAction,
    Replan,
    ResetTaskSession,
    ResumePoint,
    RunNextTurn,
    SaveCredential,
    StartTask,
    StartTeaching,
    StepFailed,
    StepSucceeded,
    StopTask,
    StopTeaching,
    TakeOver,
    Task,
    TaskStatus,
    TaskStore,
    UnlockVault,
    WaitElapsed,
    host_of,
)
from .actions import RUNNER_KINDS, ActionRunner

logger = logging.getLogger(__name__)

STOP_REASON = "You have requested to stop the autonomous goal."

DELIBERATION_CALL_TO_ACTION = (
    "Would you like me to attempt this strategy autonomously? "
    "Choose 'Attempt Strategy' to execute the plan."
)

PARTIAL_SUCCESS_STEP = (
    "PARTIAL_SUCCESS: the remaining steps depend on websites that failed repeatedly; "
    "report what was achieved."
)

REPLAN_HISTORY = 10

# Marker for "notify with the active task's snapshot"
_CURRENT = object()

Listener = Callable[[Any], Union[None, Awaitable[None]]]
FollowUp = Optional[Event]


class Orchestrator:
    """
    Runs tasks through research, planning, the turn loop and presentation.

    Owns the TaskStore and the single pending-credential slot; there is no
    module-level state, so several orchestrators can coexist in one
    process (tests do this).
    """

    def __init__(
        self,
        roles: DecisionRoles,
        gateway: EnvironmentGateway,
        knowledge: KnowledgeStore,
        vault: CredentialVault,
        settings: Optional[AgentSettings] = None,
        url_policy: Optional[UrlPolicy] = None,
        companion: Optional[Any] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the orchestrator.

        Args:
            roles: Decision roles
            gateway: Browser gateway
            knowledge: History, completed tasks and learned tools
            vault: Credential vault
            settings: Limits and timeouts (defaults when None)
            url_policy: Navigation policy (trusted hosts from settings when None)
            companion: Optional relay with a ``push(snapshot)`` method
            sleep: Sleep function used by WAIT
        """
        self.roles = roles
        self.gateway = gateway
        self.knowledge = knowledge
        self.vault = vault
        self.settings = settings or AgentSettings()
        self.url_policy = url_policy or UrlPolicy(trusted=self.settings.trusted)
        self.companion = companion
        self.runner = ActionRunner(gateway, vault, self.settings, sleep=sleep)

        self.store = TaskStore()
        self._queue: asyncio.Queue = asyncio.Queue()
        self._listeners: list[Listener] = []
        self._history_listeners: list[Listener] = []

        self._pending_credential: Optional[str] = None
        self._pending_credential_name: Optional[str] = None

        self._handlers: dict[type, Callable[[Any], Awaitable[FollowUp]]] = {
            StartTask: self._on_start_task,
            StopTask: self._on_stop_task,
            ResetTaskSession: self._on_reset,
            TakeOver: self._on_take_over,
            GoAutonomous: self._on_go_autonomous,
            RecordedAction: self._on_recorded_action,
            AttemptStrategy: self._on_attempt_strategy,
            StartTeaching: self._on_start_teaching,
            StopTeaching: self._on_stop_teaching,
            UnlockVault: self._on_unlock_vault,
            SaveCredential: self._on_save_credential,
            DeleteHistoricalTask: self._on_delete_historical,
            RunNextTurn: self._on_run_next_turn,
            StepSucceeded: self._on_step_succeeded,
            StepFailed: self._on_step_failed,
            Replan: self._on_replan,
            WaitElapsed: self._on_wait_elapsed,
        }

        # One handler per Manager action kind
        self._action_handlers: dict[str, Callable[[Task, ManagerActionBase], Awaitable[FollowUp]]] = {
            kind: self._run_environment_action for kind in RUNNER_KINDS
        }
        self._action_handlers.update({
            "EXTRACT_TEXT": self._on_extract_text,
            "LONG_WAIT": self._on_long_wait,
            "SAVE_CREDENTIAL_VALUE": self._on_save_credential_value,
            "HELP_REPLAN": self._on_help_replan,
            "ANSWER": self._on_answer,
            "PARTIAL_SUCCESS": self._on_partial_success,
            "FAIL": self._on_fail,
        })

        gateway.set_recorder(self._on_gateway_recorded)

    # =========================================================================
    # Public API
    # =========================================================================

    @property
    def action_kinds(self) -> frozenset[str]:
        return frozenset(self._action_handlers)

    @property
    def has_pending_credential(self) -> bool:
        return self._pending_credential is not None

    def subscribe(self, listener: Listener) -> None:
        """Receive every task snapshot (or None when the task is discarded)."""
        self._listeners.append(listener)

    def subscribe_history(self, listener: Listener) -> None:
        """Receive the history list whenever it changes through an event."""
        self._history_listeners.append(listener)

    def get_task(self) -> Optional[dict[str, Any]]:
        task = self.store.get()
        return task.snapshot() if task else None

    async def get_history(self) -> list[dict[str, Any]]:
        return [entry.model_dump() for entry in await self.knowledge.list_historical()]

    async def dispatch(self, event: Event) -> None:
        """
        Submit an event.

        StopTask and ResetTaskSession are applied immediately; everything
        else is queued.
        """
        if isinstance(event, PREEMPTIVE_EVENTS):
            await self._process(event)
        else:
            await self._queue.put(event)

    async def run_until_idle(self) -> None:
        """Process queued events until the queue is empty."""
        while not self._queue.empty():
            await self._process(self._queue.get_nowait())

    async def serve(self) -> None:
        """Process events forever (cancel the surrounding task to stop)."""
        while True:
            event = await self._queue.get()
            try:
                await self._process(event)
            except Exception:
                logger.exception("Unhandled error while processing %s", type(event).__name__)

    @property
    def idle(self) -> bool:
        return self._queue.empty()

    # =========================================================================
    # Event plumbing
    # =========================================================================

    async def _process(self, event: Event) -> None:
        handler = self._handlers.get(type(event))
        if handler is None:
            logger.warning("No handler for event %s", type(event).__name__)
            return

        try:
            follow_up = await handler(event)
        except CapacityExhaustedError as e:
            follow_up = await self._on_capacity_exhausted(e)

        if follow_up is not None:
            self._queue.put_nowait(follow_up)

    def _current(self, generation: int) -> Optional[Task]:
        """The active task, if it still has this generation."""
        if self.store.is_current(generation):
            return self.store.get()
        return None

    def _live(self, generation: int) -> Optional[Task]:
        """The active task, if it has this generation and may run turns."""
        task = self._current(generation)
        if task is None or task.status not in EXECUTION_STATUSES:
            return None
        return task

    def _on_gateway_recorded(self, payload: dict[str, Any]) -> None:
        self._queue.put_nowait(RecordedAction(payload=payload))

    def _log(self, task: Task, entry: str) -> None:
        task.log(entry)
        logger.info(entry)

    async def _set_status(self, task: Task, status: TaskStatus) -> None:
        task.status = status
        await self._notify()

    async def _notify(self, snapshot: Any = _CURRENT) -> None:
        """Send a snapshot (the active task's by default) to every listener."""
        if snapshot is _CURRENT:
            snapshot = self.get_task()
        for listener in list(self._listeners):
            await self._call_listener(listener, snapshot)
        if self.companion is not None and snapshot is not None:
            self.companion.push(snapshot)

    async def _notify_history(self, history: list[dict[str, Any]]) -> None:
        for listener in list(self._history_listeners):
            await self._call_listener(listener, history)

    @staticmethod
    async def _call_listener(listener: Listener, payload: Any) -> None:
        try:
            result = listener(payload)
            if asyncio.iscoroutine(result):
                await result
        except Exception:
            logger.warning("Task listener failed", exc_info=True)

    def _preflight(self) -> Preflight:
        return Preflight.now(self.settings.agent_version, self.settings.default_location)

    # =========================================================================
    # Task lifecycle
    # =========================================================================

    async def _discard_task(self) -> Optional[Task]:
        """
        Clear the active task.

        Cancels its pending wait, drops the pending credential and archives
        the goal when the task was waiting for the user.
        """
        task = self.store.clear()
        self._clear_pending_credential()
        if task is None:
            return None

        task.cancel_wait()
        if task.is_training or task.status == TaskStatus.TEACHING:
            await self._stop_learning(task)
        if task.status == TaskStatus.USER_INPUT_PENDING:
            history = await self.knowledge.save_historical(task.goal)
            await self._notify_history([entry.model_dump() for entry in history])
        return task

    def _clear_pending_credential(self) -> None:
        self._pending_credential = None
        self._pending_credential_name = None

    async def _stop_learning(self, task: Task) -> None:
        if task.active_tab is None:
            return
        try:
            await self.gateway.stop_learning(task.active_tab)
        except Exception as e:
            logger.warning("Could not stop learning on tab %s: %s", task.active_tab, e)

    async def _finish(self, task: Task) -> None:
        """Release everything a terminal task may still hold."""
        task.cancel_wait()
        self._clear_pending_credential()
        if task.is_training:
            await self._stop_learning(task)
            task.is_training = False

    async def _complete(self, task: Task) -> None:
        await self._finish(task)
        task.status = TaskStatus.COMPLETED
        await self._notify()
        if task.final_answer:
            await self.knowledge.save_completed(task.goal, task.final_answer)

    async def _fail(self, task: Task, reason: str) -> None:
        await self._finish(task)
        task.failure_reason = reason
        self._log(task, f"Error: {reason}")
        task.status = TaskStatus.FAILED
        await self._notify()

    async def _present(
        self,
        task: Task,
        kind: PresentationKind,
        reason: Optional[str] = None,
        fallback: Optional[str] = None,
    ) -> None:
        """Ask the Presenter for the final answer and finish the task."""
        generation = task.generation
        decision = await self.roles.presenter.synthesize(
            task.goal, list(task.scratchpad), list(task.research_data), kind, reason
        )
        if self._current(generation) is None:
            return None

        if decision is None:
            if fallback is None:
                await self._fail(task, "Presenter failed to synthesize a final answer.")
                return None
            task.final_answer = fallback
        else:
            task.final_answer = decision.render()

        task.is_partial_success = kind == "PARTIAL_SUCCESS"
        self._log(task, f"Final Answer: {task.final_answer}")
        await self._complete(task)
        return None

    async def _on_capacity_exhausted(self, error: CapacityExhaustedError) -> FollowUp:
        task = self.store.get()
        if task is None or task.status.is_terminal:
            logger.error("Decision service capacity exhausted with no running task: %s", error)
            return None

        generation = task.generation
        reason = f"Decision service capacity exhausted: {error}"
        self._log(task, f"Error: {reason}")
        try:
            decision = await self.roles.presenter.synthesize(
                task.goal, list(task.scratchpad), list(task.research_data), "PARTIAL_SUCCESS", reason
            )
        except DecisionServiceError as e:
            logger.error("Presenter unavailable after capacity exhaustion: %s", e)
            decision = None

        if self._current(generation) is None:
            return None

        if decision is None:
            await self._finish(task)
            task.failure_reason = reason
            task.status = TaskStatus.STOPPED
            await self._notify()
            return None

        task.final_answer = decision.render()
        task.is_partial_success = True
        self._log(task, f"Final Answer: {task.final_answer}")
        await self._complete(task)
        return None

    # =========================================================================
    # Control events
    # =========================================================================

    async def _on_start_task(self, event: StartTask) -> FollowUp:
        await self._discard_task()
        task = self.store.create(event.goal)
        generation = task.generation
        self._log(task, f"Goal: {event.goal}")
        await self._notify()

        triage = await self.roles.triage.classify(event.goal)
        if self._current(generation) is None:
            return None
        if triage.is_deliberate:
            return await self._deliberate(task)

        try:
            research = await self.roles.researcher.research(event.goal, self._preflight())
        except CapacityExhaustedError:
            raise
        except DecisionServiceError as e:
            if self._current(generation) is not None:
                await self._fail(task, f"Researcher failed: {e}")
            return None
        if self._current(generation) is None:
            return None

        return await self._apply_research(task, research)

    async def _apply_research(self, task: Task, research: ResearcherDecision) -> FollowUp:
        task.researcher_decision = research
        task.research_data = list(research.facts)
        if research.thought:
            self._log(task, f"Researcher: {research.thought}")
        for fact in research.facts:
            self._log(task, f"Fact: {fact.question} -> {fact.answer}")

        if research.requires_vault and not self.vault.is_unlocked:
            task.resume_after_unlock = ResumePoint.PLAN
            self._log(task, "The credential vault is locked. Waiting for the passphrase.")
            await self._set_status(task, TaskStatus.AWAITING_PASSPHRASE)
            return None

        if not research.requires_browser:
            fallback = "\n".join(fact.answer for fact in research.facts) or None
            return await self._present(task, "ANSWER", "Research answered the goal.", fallback=fallback)

        return await self._plan(task)

    async def _plan(self, task: Task) -> FollowUp:
        generation = task.generation
        await self._set_status(task, TaskStatus.PLANNING)

        similar = await self.knowledge.similar_completed(task.goal)
        decision = await self.roles.planner.plan(
            task.goal,
            list(task.research_data),
            self._preflight(),
            similar_tasks=similar,
            is_deliberate=task.is_deliberate_plan,
        )
        if self._current(generation) is None:
            return None
        if decision is None:
            await self._fail(task, "Planner failed to create a plan.")
            return None

        if decision.thought:
            self._log(task, f"Planner: {decision.thought}")
        plan = self._filter_plan(task, decision.plan)
        if not plan:
            return await self._present(task, "ANSWER", "The plan needed no browser steps.")

        task.set_plan(plan)
        self._log(task, "Plan: " + " | ".join(plan))
        await self._set_status(task, TaskStatus.THINKING)
        return RunNextTurn(generation)

    def _filter_plan(self, task: Task, steps: list[str]) -> list[str]:
        """Drop steps that mention an excluded host."""
        excluded = task.excluded_hosts(self.settings.host_failure_threshold)
        if not excluded:
            return list(steps)

        kept = []
        for step in steps:
            hit = next((host for host in excluded if host in step.lower()), None)
            if hit:
                self._log(task, f"Dropped plan step using excluded site {hit}: {step}")
            else:
                kept.append(step)

        if steps and not kept:
            return [PARTIAL_SUCCESS_STEP]
        return kept

    async def _deliberate(self, task: Task) -> FollowUp:
        generation = task.generation
        task.is_deliberate_plan = True
        self._log(task, "This goal needs deliberation. Convening an expert panel.")
        await self._notify()

        try:
            consensus = await self.roles.debate.deliberate(
                task.goal,
                progress=lambda line: self._log(task, line),
                is_active=lambda: self.store.is_current(generation),
            )
        except DeliberationCancelled:
            logger.info("Deliberation for '%s' abandoned", task.goal)
            return None
        except CapacityExhaustedError:
            raise
        except DecisionServiceError as e:
            if self._current(generation) is not None:
                await self._fail(task, f"Deliberation failed: {e}")
            return None
        if self._current(generation) is None:
            return None

        task.set_plan(consensus.plan)
        task.final_answer = f"{consensus.html}\n\n{DELIBERATION_CALL_TO_ACTION}"
        task.is_partial_success = False
        self._log(task, "Consensus strategy ready. Waiting for the user to opt in.")
        await self._complete(task)
        return None

    async def _on_stop_task(self, event: StopTask) -> FollowUp:
        task = self.store.get()
        if task is None:
            return None
        await self._discard_task()
        if not task.status.is_terminal:
            task.failure_reason = STOP_REASON
            task.log(STOP_REASON)
            task.status = TaskStatus.STOPPED
        logger.info("Task stopped: %s", task.goal)
        await self._notify(task.snapshot())
        await self._notify(None)
        return None

    async def _on_reset(self, event: ResetTaskSession) -> FollowUp:
        task = await self._discard_task()
        if task is not None:
            logger.info("Task session reset: %s", task.goal)
            await self._notify(None)
        return None

    async def _on_take_over(self, event: TakeOver) -> FollowUp:
        task = self.store.get()
        if task is None or not self._can_hand_over(task):
            logger.info("TakeOver ignored in state %s", task.status.value if task else "no task")
            return None

        task.cancel_wait()
        task.is_training = True
        if task.is_partial_success:
            task.is_partial_success = False
            task.final_answer = None
        self._log(task, "User took over control. Recording your actions.")
        if task.active_tab is not None:
            try:
                await self.gateway.start_learning(task.active_tab)
            except Exception as e:
                logger.warning("Could not start learning on tab %s: %s", task.active_tab, e)
        await self._set_status(task, TaskStatus.USER_INPUT_PENDING)
        return None

    async def _on_go_autonomous(self, event: GoAutonomous) -> FollowUp:
        task = self.store.get()
        if task is None or not self._can_hand_over(task):
            logger.info("GoAutonomous ignored in state %s", task.status.value if task else "no task")
            return None

        task.cancel_wait()
        if task.is_training:
            await self._stop_learning(task)
            task.is_training = False
        task.is_partial_success = False
        task.final_answer = None
        self._log(task, "Control handed back. Replanning from the current page.")
        await self._set_status(task, TaskStatus.REPLANNING)
        return Replan(task.generation, reason="User handed control back", user_initiated=True)

    @staticmethod
    def _can_hand_over(task: Task) -> bool:
        if task.status in (
            TaskStatus.TEACHING,
            TaskStatus.AWAITING_CREDENTIAL_NAME,
            TaskStatus.AWAITING_PASSPHRASE,
        ):
            return False
        if task.status == TaskStatus.COMPLETED:
            return task.is_partial_success
        return not task.status.is_terminal

    async def _on_recorded_action(self, event: RecordedAction) -> FollowUp:
        task = self.store.get()
        if task is None:
            logger.debug("Recorded action with no task")
            return None

        payload = dict(event.payload)
        if task.status == TaskStatus.TEACHING:
            task.recorded_actions.append(payload)
            self._log(task, f"Recorded: {payload.get('action')} {payload.get('selector', '')}".rstrip())
            await self._notify()
            return None

        if not (task.is_training and task.status == TaskStatus.USER_INPUT_PENDING):
            logger.debug("Recorded action ignored in state %s", task.status.value)
            return None

        host = host_of(payload.get("url") or await self._active_url(task))
        if host is None:
            logger.debug("Recorded action on a non-website tab ignored")
            return None
        description = task.current_step_text or task.goal
        await self.knowledge.record_learned_action(host, description, payload)
        self._log(task, f"Learned action on {host}: {payload.get('action')} {payload.get('selector', '')}".rstrip())
        await self._notify()
        return None

    async def _active_url(self, task: Task) -> Optional[str]:
        if task.active_tab is None:
            return task.last_url
        try:
            return await self.gateway.tab_url(task.active_tab)
        except Exception as e:
            logger.debug("Could not read tab URL: %s", e)
            return task.last_url

    async def _on_attempt_strategy(self, event: AttemptStrategy) -> FollowUp:
        task = self.store.get()
        if task is None or task.status != TaskStatus.COMPLETED or not task.is_deliberate_plan:
            logger.info("AttemptStrategy ignored: no completed deliberation")
            return None

        plan = self._filter_plan(task, event.plan or task.plan)
        if not plan:
            logger.info("AttemptStrategy ignored: empty plan")
            return None

        task.initial_strategy = task.final_answer
        task.final_answer = None
        task.set_plan(plan)
        self._log(task, "Attempting the strategy. Plan: " + " | ".join(plan))
        await self._set_status(task, TaskStatus.THINKING)
        return RunNextTurn(task.generation)

    async def _on_start_teaching(self, event: StartTeaching) -> FollowUp:
        await self._discard_task()
        task = self.store.create(event.goal, status=TaskStatus.TEACHING)
        generation = task.generation
        task.is_training = True
        self._log(task, f"Teaching: {event.goal}")

        try:
            handle = await self.gateway.current_tab()
            if handle is None:
                handle = await self.gateway.create_tab(self.settings.start_url)
            if self._current(generation) is None:
                return None
            task.tabs["main"] = handle
            task.active_tab_name = "main"
            await self.gateway.start_learning(handle)
        except Exception as e:
            if self._current(generation) is not None:
                await self._fail(task, f"Could not start recording: {e}")
            return None

        await self._notify()
        return None

    async def _on_stop_teaching(self, event: StopTeaching) -> FollowUp:
        task = self.store.get()
        if task is None or task.status != TaskStatus.TEACHING:
            logger.info("StopTeaching ignored: no teaching session")
            return None

        generation = task.generation
        await self._stop_learning(task)
        task.is_training = False
        actions = list(task.recorded_actions)
        url = await self._active_url(task)

        summary = await self.roles.teacher.summarize(task.goal, actions)
        if self._current(generation) is None:
            logger.info("Teaching summary discarded: task was replaced")
            return None

        summary = summary or f"Recorded {len(actions)} actions for '{task.goal}'."
        host = host_of(url) if url and url.startswith("http") else None
        if host and actions:
            await self.knowledge.save_learned_tool(host, task.goal, actions)
            if self._current(generation) is None:
                return None
        else:
            self._log(task, "Nothing was saved: no actions on a website were recorded.")

        task.final_answer = summary
        self._log(task, f"Teaching summary: {summary}")
        await self._complete(task)
        return None

    async def _on_unlock_vault(self, event: UnlockVault) -> FollowUp:
        task = self.store.get()
        if task is None or task.status != TaskStatus.AWAITING_PASSPHRASE:
            logger.info("UnlockVault ignored: no task waiting for the passphrase")
            return None

        generation = task.generation
        try:
            unlocked = await self.vault.unlock(event.passphrase)
        except VaultError as e:
            unlocked = False
            logger.warning("Vault unlock error: %s", e)
        if self._current(generation) is None:
            return None
        if not unlocked:
            self._log(task, "Error: Incorrect passphrase. The vault is still locked.")
            await self._notify()
            return None

        resume = task.resume_after_unlock
        task.resume_after_unlock = None
        self._log(task, "Vault unlocked.")

        if resume == ResumePoint.PLAN:
            return await self._plan(task)
        if resume == ResumePoint.SAVE_CREDENTIAL and self._pending_credential_name:
            return await self._save_pending_credential(task, self._pending_credential_name)
        await self._set_status(task, TaskStatus.THINKING)
        return RunNextTurn(generation)

    async def _on_save_credential(self, event: SaveCredential) -> FollowUp:
        task = self.store.get()
        if (
            task is None
            or task.status != TaskStatus.AWAITING_CREDENTIAL_NAME
            or self._pending_credential is None
        ):
            logger.info("SaveCredential ignored: no credential waiting for a name")
            return None
        return await self._save_pending_credential(task, event.name)

    async def _save_pending_credential(self, task: Task, name: str) -> FollowUp:
        generation = task.generation
        try:
            placeholder = await self.vault.store(name, self._pending_credential)
        except VaultLockedError:
            if self._current(generation) is None:
                return None
            self._pending_credential_name = name
            task.resume_after_unlock = ResumePoint.SAVE_CREDENTIAL
            self._log(task, "The credential vault is locked. Waiting for the passphrase.")
            await self._set_status(task, TaskStatus.AWAITING_PASSPHRASE)
            return None
        except VaultError as e:
            if self._current(generation) is None:
                return None
            self._log(task, f"Error: Could not save the credential: {e}")
            await self._set_status(task, TaskStatus.AWAITING_CREDENTIAL_NAME)
            return None
        if self._current(generation) is None:
            return None

        self._clear_pending_credential()
        self._log(task, f"Saved credential '{name}' as {placeholder}")
        await self._set_status(task, TaskStatus.THINKING)
        return RunNextTurn(generation)

    async def _on_delete_historical(self, event: DeleteHistoricalTask) -> FollowUp:
        history = await self.knowledge.delete_historical(event.timestamp)
        await self._notify_history([entry.model_dump() for entry in history])
        return None

    # =========================================================================
    # Turn loop
    # =========================================================================

    async def _on_run_next_turn(self, event: RunNextTurn) -> FollowUp:
        generation = event.generation
        task = self._live(generation)
        if task is None:
            logger.debug("Stale or paused turn dropped")
            return None

        if task.turn >= self.settings.max_turns:
            return await self._present(
                task, "PARTIAL_SUCCESS", f"Stopped after the limit of {self.settings.max_turns} turns."
            )

        if not task.tabs:
            try:
                handle = await self.gateway.create_tab(self.settings.start_url)
            except Exception as e:
                if self._current(generation) is not None:
                    await self._fail(task, f"Could not open a browser tab: {e}")
                return None
            if self._live(generation) is None:
                return None
            task.tabs["main"] = handle
            task.active_tab_name = "main"

        task.turn += 1
        await self._set_status(task, TaskStatus.THINKING)

        try:
            snapshot = await asyncio.wait_for(
                self.gateway.snapshot(task.active_tab), timeout=self.settings.observation_timeout
            )
        except asyncio.TimeoutError:
            return self._observation_failed(task, "Observing the page timed out.")
        except Exception as e:
            return self._observation_failed(task, f"Could not observe the page: {e}")
        if self._live(generation) is None:
            return None

        task.last_url = snapshot.url or task.last_url
        learned_tool = await self._learned_tool(task)
        if self._live(generation) is None:
            return None

        context = ManagerContext(
            plan=list(task.plan),
            current_step=task.current_step,
            scratchpad=list(task.scratchpad),
            tabs=dict(task.tabs),
            active_tab=task.active_tab_name,
            snapshot=snapshot.truncated().model_dump(),
            preflight=self._preflight(),
            learned_tool=learned_tool,
            is_deliberate=task.is_deliberate_plan,
        )
        try:
            action = await self.roles.manager.decide(context)
        except CapacityExhaustedError:
            raise
        except DecisionServiceError as e:
            return await self._manager_failed(task, generation, e)
        except Exception as e:
            logger.exception("Manager raised an unexpected error")
            return await self._manager_failed(task, generation, e)
        if self._live(generation) is None:
            return None

        if action.thought:
            self._log(task, f"Thought: {action.thought}")
        return await self._dispatch_action(task, action)

    async def _manager_failed(self, task: Task, generation: int, error: Exception) -> FollowUp:
        if self._live(generation) is None:
            return None
        self._log(task, f"Error: Manager failed: {error}")
        await self._set_status(task, TaskStatus.REPLANNING)
        return Replan(generation, reason=f"Manager failed: {error}")

    def _observation_failed(self, task: Task, reason: str) -> FollowUp:
        if self._live(task.generation) is None:
            return None
        host = host_of(task.last_url)
        strikes = task.record_host_failure(host)
        if host and strikes == self.settings.host_failure_threshold:
            self._log(task, f"Excluding {host} after {strikes} failures.")
        self._log(task, f"Error: {reason}")
        task.status = TaskStatus.REPLANNING
        return Replan(task.generation, reason=reason)

    async def _learned_tool(self, task: Task) -> Optional[dict[str, Any]]:
        """Best learned tool for the current step (then the goal); None on any lookup error."""
        host = host_of(task.last_url)
        if not host:
            return None
        try:
            tools = await self.knowledge.learned_tools_for_host(host)
            if not tools:
                return None
            query = task.current_step_text or task.goal
            match = await self.knowledge.find_relevant_tool(query, tools)
            if match is None and query != task.goal:
                match = await self.knowledge.find_relevant_tool(task.goal, tools)
        except Exception:
            logger.warning("Learned tool lookup failed for %s", host, exc_info=True)
            return None
        return match

    async def _dispatch_action(self, task: Task, action: ManagerActionBase) -> FollowUp:
        generation = task.generation

        if action.requires_verification:
            try:
                veto = await self._verify(task, action.target_url)
            except CapacityExhaustedError:
                raise
            except Exception as e:
                logger.warning("Verification of %s failed", action.target_url, exc_info=True)
                veto = f"verification failed: {e}"
            if self._live(generation) is None:
                return None
            if veto:
                return StepFailed(
                    generation,
                    action=action,
                    reason=f"Navigation to {action.target_url} blocked: {veto}",
                    host=host_of(action.target_url),
                )

        await self._set_status(task, TaskStatus.EXECUTING)
        handler = self._action_handlers[action.kind]
        return await handler(task, action)

    async def _verify(self, task: Task, url: str) -> Optional[str]:
        """Return a veto reason, or None when the URL may be visited."""
        check = self.url_policy.check(url, excluded=task.excluded_hosts(self.settings.host_failure_threshold))
        if not check.allowed:
            return check.reason
        if check.trusted:
            return None

        await self._set_status(task, TaskStatus.VERIFYING)
        verdict = await self.roles.verifier.verify(url)
        if not verdict.is_safe:
            return verdict.reason or "The verifier judged the URL unsafe."
        return None

    # -------------------------------------------------------------------------
    # Action handlers
    # -------------------------------------------------------------------------

    async def _execute(self, task: Task, action: ManagerActionBase) -> Optional[ActionOutcome]:
        """Run an environment action; None when the task was suspended or replaced."""
        generation = task.generation
        try:
            outcome = await self.runner.run(task, action)
        except VaultLockedError:
            if self._live(generation) is None:
                return None
            task.resume_after_unlock = ResumePoint.TURN
            self._log(task, "The credential vault is locked. Waiting for the passphrase.")
            await self._set_status(task, TaskStatus.AWAITING_PASSPHRASE)
            return None
        except VaultError as e:
            outcome = ActionOutcome(success=False, error=f"Credential error: {e}")
        except Exception as e:
            outcome = ActionOutcome(success=False, error=f"{action.kind} failed: {e}")
        if self._live(generation) is None:
            return None
        return outcome

    def _failure_host(self, task: Task, action: ManagerActionBase) -> Optional[str]:
        return host_of(action.target_url) or host_of(task.last_url)

    async def _run_environment_action(self, task: Task, action: ManagerActionBase) -> FollowUp:
        outcome = await self._execute(task, action)
        if outcome is None:
            return None
        if not outcome.success:
            return StepFailed(
                task.generation,
                action=action,
                reason=outcome.error or "Action failed",
                host=self._failure_host(task, action),
            )

        self._log(task, f"Action: {action.describe()}")
        if action.kind == "READ" and outcome.text:
            self._log(task, f"Read Text: {outcome.text[:2000]}")
        elif action.kind == "SEARCH_PAGE" and outcome.text:
            self._log(task, f"Page Search Results: {outcome.text[:2000]}")
        return StepSucceeded(task.generation)

    async def _on_extract_text(self, task: Task, action: ManagerActionBase) -> FollowUp:
        outcome = await self._execute(task, action)
        if outcome is None:
            return None
        if not outcome.success:
            return StepFailed(
                task.generation,
                action=action,
                reason=outcome.error or "Text extraction failed",
                host=self._failure_host(task, action),
            )

        # The Manager reads the text on its next turn; the step does not advance
        self._log(task, "Extracted Text: " + (outcome.text or "")[:200])
        await self._set_status(task, TaskStatus.THINKING)
        return RunNextTurn(task.generation)

    async def _on_long_wait(self, task: Task, action: ManagerActionBase) -> FollowUp:
        generation = task.generation
        delay = self.settings.long_wait_seconds
        loop = asyncio.get_running_loop()
        task.cancel_wait()
        task.pending_wait_handle = loop.call_later(delay, self._queue.put_nowait, WaitElapsed(generation))
        self._log(task, f"Waiting {delay:.0f} seconds before continuing.")
        await self._set_status(task, TaskStatus.WAITING)
        return None

    async def _on_save_credential_value(self, task: Task, action: ManagerActionBase) -> FollowUp:
        value = getattr(action, "value", None)
        if not value:
            return StepFailed(task.generation, action=action, reason="No credential value was provided.")

        self._pending_credential = value
        self._pending_credential_name = None
        self._log(task, "Captured a credential. Waiting for a name to save it under.")
        await self._set_status(task, TaskStatus.AWAITING_CREDENTIAL_NAME)
        return None

    async def _on_help_replan(self, task: Task, action: ManagerActionBase) -> FollowUp:
        reason = getattr(action, "reason", "") or "Manager asked for a new plan."
        self._log(task, f"Manager requested a replan: {reason}")
        await self._set_status(task, TaskStatus.REPLANNING)
        return Replan(task.generation, reason=reason)

    async def _on_answer(self, task: Task, action: ManagerActionBase) -> FollowUp:
        answer = getattr(action, "answer", None)
        if answer:
            self._log(task, f"Answer: {answer}")
        return await self._present(task, "ANSWER", getattr(action, "reason", None))

    async def _on_partial_success(self, task: Task, action: ManagerActionBase) -> FollowUp:
        return await self._present(task, "PARTIAL_SUCCESS", getattr(action, "reason", None))

    async def _on_fail(self, task: Task, action: ManagerActionBase) -> FollowUp:
        await self._fail(task, getattr(action, "reason", "") or "The agent could not complete the goal.")
        return None

    # -------------------------------------------------------------------------
    # Step results
    # -------------------------------------------------------------------------

    async def _on_step_succeeded(self, event: StepSucceeded) -> FollowUp:
        task = self._current(event.generation)
        if task is None or task.status not in EXECUTION_STATUSES | {TaskStatus.WAITING}:
            return None

        task.advance_step()
        task.step_failure_count = 0
        task.last_failed_action = None
        await self._set_status(task, TaskStatus.THINKING)
        return RunNextTurn(event.generation)

    async def _on_step_failed(self, event: StepFailed) -> FollowUp:
        task = self._live(event.generation)
        if task is None:
            return None

        task.step_failure_count += 1
        task.last_failed_action = event.action
        strikes = task.record_host_failure(event.host)
        if event.host and strikes == self.settings.host_failure_threshold:
            self._log(task, f"Excluding {event.host} after {strikes} failures.")

        threshold = self.settings.step_failure_threshold
        self._log(task, f"Error: {event.reason} (failure {task.step_failure_count}/{threshold})")

        if task.step_failure_count >= threshold:
            await self._set_status(task, TaskStatus.REPLANNING)
            return Replan(event.generation, reason=event.reason)

        await self._set_status(task, TaskStatus.THINKING)
        return RunNextTurn(event.generation)

    async def _on_wait_elapsed(self, event: WaitElapsed) -> FollowUp:
        task = self._current(event.generation)
        if task is None or task.status != TaskStatus.WAITING:
            return None
        task.pending_wait_handle = None
        self._log(task, "Finished waiting.")
        return StepSucceeded(event.generation)

    async def _on_replan(self, event: Replan) -> FollowUp:
        generation = event.generation
        task = self._live(generation)
        if task is None:
            return None

        if task.replans >= self.settings.max_replans:
            return await self._present(
                task, "PARTIAL_SUCCESS", f"Gave up after {task.replans} replans. Last problem: {event.reason}"
            )

        task.replans += 1
        failed_plan = list(task.plan)
        failing_step = task.current_step + 1
        await self._set_status(task, TaskStatus.REPLANNING)

        context = ReplanContext(
            failed_plan=failed_plan,
            failing_step=failing_step,
            history=task.scratchpad[-REPLAN_HISTORY:],
            website_failures=dict(task.website_failures),
            excluded_hosts=sorted(task.excluded_hosts(self.settings.host_failure_threshold)),
            user_initiated=event.user_initiated,
        )
        try:
            decision = await self.roles.planner.plan(
                task.goal,
                list(task.research_data),
                self._preflight(),
                is_deliberate=task.is_deliberate_plan,
                replan=context,
            )
        except CapacityExhaustedError:
            raise
        except Exception:
            logger.exception("Planner raised an unexpected error while replanning")
            decision = None
        if self._live(generation) is None:
            return None
        if decision is None:
            await self._fail(task, "Planner failed to create a new plan.")
            return None

        if decision.thought:
            self._log(task, f"Planner: {decision.thought}")
        plan = self._filter_plan(task, decision.plan)
        if not plan:
            return await self._present(task, "PARTIAL_SUCCESS", "The new plan had no remaining steps.")

        task.set_plan(plan)
        self._log(task, f"Replanned from step {failing_step}: " + " | ".join(plan))
        await self._set_status(task, TaskStatus.THINKING)
        return RunNextTurn(generation)
