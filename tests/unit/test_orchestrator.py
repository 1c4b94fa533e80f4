"""
Unit tests for the task orchestrator state machine.

Roles are AsyncMocks and the browser is the in-memory FakeGateway, so
every scenario runs the real event loop, queue and generation checks
without a model or a browser.
"""

import asyncio
import dataclasses
import json
from unittest.mock import AsyncMock

import pytest

from taskpilot.agents import (
    ConsensusDecision,
    PlannerDecision,
    PresenterDecision,
    ResearcherDecision,
    ResearchFact,
    TriageDecision,
    VerifierDecision,
    parse_manager_action,
)
from taskpilot.browser import ActionOutcome
from taskpilot.llm import CapacityExhaustedError, MalformedResponseError
from taskpilot.orchestrator import STOP_REASON, Orchestrator
from taskpilot.security import VaultError, VaultLockedError
from taskpilot.state import (
    AttemptStrategy,
    DeleteHistoricalTask,
    GoAutonomous,
    ResetTaskSession,
    RunNextTurn,
    SaveCredential,
    StartTask,
    StartTeaching,
    StopTask,
    StopTeaching,
    TakeOver,
    UnlockVault,
)


def act(**raw):
    return parse_manager_action(raw)


ANSWER = act(action="ANSWER", answer="42", reason="found it")


@pytest.fixture
def snapshots():
    return []


@pytest.fixture
def orchestrator(roles, gateway, knowledge, vault, settings, snapshots):
    orch = Orchestrator(roles, gateway, knowledge, vault, settings)
    orch.subscribe(snapshots.append)
    return orch


async def start(orchestrator, goal="Find the answer"):
    await orchestrator.dispatch(StartTask(goal=goal))
    await orchestrator.run_until_idle()
    return orchestrator.store.get()


def statuses(snapshots):
    return [s["status"] for s in snapshots if s is not None]


class TestInformationalGoal:
    """Goals the Researcher answers without a browser."""

    @pytest.mark.asyncio
    async def test_completes_without_opening_a_tab(self, orchestrator, roles, gateway, knowledge):
        roles.researcher.research.return_value = ResearcherDecision(
            facts=[ResearchFact(question="Boiling point?", answer="100 °C at sea level")],
            requires_browser=False,
        )

        task = await start(orchestrator, "What is the boiling point of water?")

        assert task.status.value == "COMPLETED"
        assert task.final_answer == "All done."
        assert gateway.urls == {}
        roles.planner.plan.assert_not_awaited()
        roles.manager.decide.assert_not_awaited()
        assert [h.goal for h in await knowledge.list_historical()] == ["What is the boiling point of water?"]

    @pytest.mark.asyncio
    async def test_presenter_failure_falls_back_to_facts(self, orchestrator, roles):
        roles.researcher.research.return_value = ResearcherDecision(
            facts=[ResearchFact(question="Capital?", answer="Paris")],
            requires_browser=False,
        )
        roles.presenter.synthesize.return_value = None

        task = await start(orchestrator, "Capital of France?")

        assert task.status.value == "COMPLETED"
        assert task.final_answer == "Paris"

    @pytest.mark.asyncio
    async def test_researcher_failure_fails_task(self, orchestrator, roles):
        roles.researcher.research.side_effect = MalformedResponseError("garbage")

        task = await start(orchestrator)

        assert task.status.value == "FAILED"
        assert task.failure_reason.startswith("Researcher failed")
        assert task.scratchpad[-1].startswith("Error:")


class TestTurnLoop:
    """Planning, turns, step advancement and replanning."""

    @pytest.mark.asyncio
    async def test_opens_start_tab_and_answers(self, orchestrator, roles, gateway, settings, snapshots):
        roles.manager.decide.side_effect = [ANSWER]

        task = await start(orchestrator)

        assert gateway.urls[task.tabs["main"]] == settings.start_url
        assert task.status.value == "COMPLETED"
        assert "Answer: 42" in task.scratchpad
        seen = statuses(snapshots)
        assert seen.index("PLANNING") < seen.index("THINKING") < seen.index("EXECUTING")
        assert seen[-1] == "COMPLETED"

    @pytest.mark.asyncio
    async def test_planner_failure(self, orchestrator, roles):
        roles.planner.plan.return_value = None

        task = await start(orchestrator)

        assert task.status.value == "FAILED"
        assert task.failure_reason == "Planner failed to create a plan."

    @pytest.mark.asyncio
    async def test_replan_after_three_failures_on_step_two(self, orchestrator, roles, gateway):
        """Step 2 of 3 fails three times: replan with failing_step=2, then restart at step 0."""
        roles.planner.plan.side_effect = [
            PlannerDecision(plan=["Open the site", "Click the missing button", "Read the result"]),
            PlannerDecision(plan=["Use the search box", "Read the result"]),
        ]
        roles.manager.decide.side_effect = [
            act(action="SCROLL_DOWN"),
            act(action="CLICK", selector="#missing"),
            act(action="CLICK", selector="#missing"),
            act(action="CLICK", selector="#missing"),
            ANSWER,
        ]
        gateway.outcomes = [ActionOutcome(success=True)] + [
            ActionOutcome(success=False, error="Element not found")
        ] * 3

        task = await start(orchestrator)

        replan = roles.planner.plan.await_args_list[1].kwargs["replan"]
        assert replan.failing_step == 2
        assert replan.failed_plan == ["Open the site", "Click the missing button", "Read the result"]
        assert task.plan == ["Use the search box", "Read the result"]
        assert task.current_step == 0
        assert task.status.value == "COMPLETED"
        assert any("(failure 3/3)" in line for line in task.scratchpad)

    @pytest.mark.asyncio
    async def test_escalation_happens_at_exactly_three(self, orchestrator, roles, gateway):
        roles.planner.plan.return_value = PlannerDecision(plan=["Click it", "Read it"])
        roles.manager.decide.side_effect = [
            act(action="CLICK", selector="#flaky"),
            act(action="CLICK", selector="#flaky"),
            act(action="CLICK", selector="#flaky"),
            ANSWER,
        ]
        gateway.outcomes = [
            ActionOutcome(success=False, error="Timeout"),
            ActionOutcome(success=False, error="Timeout"),
            ActionOutcome(success=True),
        ]

        task = await start(orchestrator)

        # Two failures then success: no replan, step advanced, counter reset
        assert roles.planner.plan.await_count == 1
        assert task.current_step == 1
        assert task.step_failure_count == 0

    @pytest.mark.asyncio
    async def test_third_host_failure_excludes_host(self, orchestrator, roles, gateway):
        roles.planner.plan.side_effect = [
            PlannerDecision(plan=["Look it up on bad.example"]),
            PlannerDecision(plan=["Look it up on bad.example", "Search on good.example"]),
        ]
        goto_bad = act(action="GOTO", url="https://bad.example/page")
        roles.manager.decide.side_effect = [goto_bad, goto_bad, goto_bad, goto_bad, ANSWER]
        gateway.outcomes = [ActionOutcome(success=False, error="net::ERR_TIMED_OUT")] * 3

        task = await start(orchestrator)

        assert task.website_failures["bad.example"] >= 3
        replan = roles.planner.plan.await_args_list[1].kwargs["replan"]
        assert replan.excluded_hosts == ["bad.example"]
        assert replan.website_failures["bad.example"] == 3
        # Steps naming the excluded host are dropped from the new plan
        assert task.plan == ["Search on good.example"]
        # The fourth GOTO is refused locally without asking the Verifier
        assert roles.verifier.verify.await_count == 3
        assert gateway.kinds.count("GOTO") == 3
        assert task.status.value == "COMPLETED"

    @pytest.mark.asyncio
    async def test_observation_failure_triggers_replan(self, orchestrator, roles, gateway):
        gateway.snapshot_errors = [RuntimeError("page crashed")]
        roles.manager.decide.side_effect = [ANSWER]

        task = await start(orchestrator)

        assert roles.planner.plan.await_count == 2
        assert any(line.startswith("Error: Could not observe the page") for line in task.scratchpad)
        assert task.status.value == "COMPLETED"

    @pytest.mark.asyncio
    async def test_manager_failure_triggers_replan(self, orchestrator, roles):
        roles.manager.decide.side_effect = [MalformedResponseError("bad action"), ANSWER]

        task = await start(orchestrator)

        assert roles.planner.plan.await_count == 2
        assert task.status.value == "COMPLETED"

    @pytest.mark.asyncio
    async def test_extract_text_does_not_advance(self, orchestrator, roles):
        roles.planner.plan.return_value = PlannerDecision(plan=["Read", "Answer"])
        roles.manager.decide.side_effect = [act(action="EXTRACT_TEXT"), ANSWER]

        task = await start(orchestrator)

        assert "Extracted Text: extracted page text" in task.scratchpad
        assert task.current_step == 0

    @pytest.mark.asyncio
    async def test_turn_limit_ends_in_partial_success(self, roles, gateway, knowledge, vault, settings):
        orchestrator = Orchestrator(roles, gateway, knowledge, vault, dataclasses.replace(settings, max_turns=2))
        roles.manager.decide.return_value = act(action="SCROLL_DOWN")

        task = await start(orchestrator)

        assert roles.manager.decide.await_count == 2
        assert task.status.value == "COMPLETED"
        assert task.is_partial_success
        assert roles.presenter.synthesize.await_args.args[3] == "PARTIAL_SUCCESS"

    @pytest.mark.asyncio
    async def test_fail_action(self, orchestrator, roles):
        roles.manager.decide.side_effect = [act(action="FAIL", reason="Site requires a paid account")]

        task = await start(orchestrator)

        assert task.status.value == "FAILED"
        assert task.failure_reason == "Site requires a paid account"

    @pytest.mark.asyncio
    async def test_learned_tool_reaches_manager(self, orchestrator, roles, knowledge):
        await knowledge.save_learned_tool("start.example", "Do the thing", [{"action": "CLICK", "selector": "#go"}])
        roles.manager.decide.side_effect = [ANSWER]

        await start(orchestrator)

        context = roles.manager.decide.await_args.args[0]
        assert context.learned_tool == {"Do the thing": [{"action": "CLICK", "selector": "#go"}]}



class TestVerification:

    @pytest.mark.asyncio
    async def test_unsafe_url_is_vetoed(self, orchestrator, roles, gateway):
        roles.verifier.verify.return_value = VerifierDecision(is_safe=False, reason="Phishing page")
        roles.manager.decide.side_effect = [act(action="GOTO", url="https://evil.example/login"), ANSWER]

        task = await start(orchestrator)

        assert "GOTO" not in gateway.kinds
        assert any("blocked" in line and "Phishing page" in line for line in task.scratchpad)

    @pytest.mark.asyncio
    async def test_trusted_host_skips_verifier(self, orchestrator, roles, gateway):
        roles.manager.decide.side_effect = [act(action="GOTO", url="https://start.example/page"), ANSWER]

        await start(orchestrator)

        roles.verifier.verify.assert_not_awaited()
        assert "GOTO" in gateway.kinds


class TestLongWait:

    @pytest.mark.asyncio
    async def test_stop_cancels_pending_wait(self, roles, gateway, knowledge, vault, settings, snapshots):
        orchestrator = Orchestrator(
            roles, gateway, knowledge, vault, dataclasses.replace(settings, long_wait_seconds=0.02)
        )
        orchestrator.subscribe(snapshots.append)
        roles.manager.decide.side_effect = [act(action="LONG_WAIT"), ANSWER]

        task = await start(orchestrator)
        assert task.status.value == "WAITING"
        assert task.pending_wait_handle is not None

        await orchestrator.dispatch(StopTask())
        await asyncio.sleep(0.05)
        await orchestrator.run_until_idle()

        assert task.status.value == "STOPPED"
        assert task.failure_reason == STOP_REASON
        assert task.pending_wait_handle is None
        assert orchestrator.get_task() is None
        assert orchestrator.idle
        assert roles.manager.decide.await_count == 1
        assert snapshots[-1] is None
        assert snapshots[-2]["status"] == "STOPPED"

    @pytest.mark.asyncio
    async def test_wait_elapses_and_advances(self, roles, gateway, knowledge, vault, settings):
        orchestrator = Orchestrator(
            roles, gateway, knowledge, vault, dataclasses.replace(settings, long_wait_seconds=0.01)
        )
        roles.planner.plan.return_value = PlannerDecision(plan=["Wait for the page", "Answer"])
        roles.manager.decide.side_effect = [act(action="LONG_WAIT"), ANSWER]

        task = await start(orchestrator)
        await asyncio.sleep(0.05)
        await orchestrator.run_until_idle()

        assert task.current_step == 1
        assert task.status.value == "COMPLETED"


class TestStopAndReset:

    @pytest.mark.asyncio
    async def test_reset_without_task_is_noop(self, orchestrator, snapshots):
        await orchestrator.dispatch(ResetTaskSession())
        await orchestrator.dispatch(ResetTaskSession())
        assert snapshots == []

    @pytest.mark.asyncio
    async def test_reset_is_idempotent(self, orchestrator, roles, snapshots):
        roles.manager.decide.side_effect = [act(action="LONG_WAIT")]
        await start(orchestrator)

        await orchestrator.dispatch(ResetTaskSession())
        await orchestrator.dispatch(ResetTaskSession())

        assert orchestrator.get_task() is None
        assert snapshots.count(None) == 1

    @pytest.mark.asyncio
    async def test_stop_without_task_is_noop(self, orchestrator, snapshots):
        await orchestrator.dispatch(StopTask())
        assert snapshots == []

    @pytest.mark.asyncio
    async def test_stale_turn_is_dropped(self, orchestrator, roles):
        roles.manager.decide.side_effect = [act(action="LONG_WAIT")]
        task = await start(orchestrator)
        await orchestrator.dispatch(ResetTaskSession())

        await orchestrator.dispatch(RunNextTurn(generation=task.generation))
        await orchestrator.run_until_idle()

        assert roles.manager.decide.await_count == 1

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_task(self, orchestrator, roles):
        def broken(snapshot):
            raise RuntimeError("listener bug")

        orchestrator.subscribe(broken)
        roles.manager.decide.side_effect = [ANSWER]

        task = await start(orchestrator)

        assert task.status.value == "COMPLETED"


class TestCredentials:

    @pytest.mark.asyncio
    async def test_value_is_not_persisted_until_named(self, orchestrator, roles, vault, snapshots):
        roles.manager.decide.side_effect = [act(action="SAVE_CREDENTIAL_VALUE", value="s3cret-value"), ANSWER]

        task = await start(orchestrator)

        assert task.status.value == "AWAITING_CREDENTIAL_NAME"
        assert orchestrator.has_pending_credential
        assert vault.names() == []
        assert "s3cret-value" not in json.dumps([s for s in snapshots if s], default=str)

        # Vault is locked: naming suspends for the passphrase
        await orchestrator.dispatch(SaveCredential(name="shop login"))
        await orchestrator.run_until_idle()
        assert task.status.value == "AWAITING_PASSPHRASE"

        await orchestrator.dispatch(UnlockVault(passphrase="wrong"))
        await orchestrator.run_until_idle()
        assert task.status.value == "AWAITING_PASSPHRASE"
        assert "Error: Incorrect passphrase. The vault is still locked." in task.scratchpad

        await orchestrator.dispatch(UnlockVault(passphrase="open sesame"))
        await orchestrator.run_until_idle()

        assert vault.names() == ["shop login"]
        assert not orchestrator.has_pending_credential
        assert task.status.value == "COMPLETED"
        assert "s3cret-value" not in json.dumps([s for s in snapshots if s], default=str)

    @pytest.mark.asyncio
    async def test_stop_discards_pending_value(self, orchestrator, roles, vault):
        roles.manager.decide.side_effect = [act(action="SAVE_CREDENTIAL_VALUE", value="s3cret-value")]
        await start(orchestrator)

        await orchestrator.dispatch(StopTask())

        assert not orchestrator.has_pending_credential
        assert vault.names() == []

    @pytest.mark.asyncio
    async def test_missing_value_fails_step(self, orchestrator, roles):
        roles.manager.decide.side_effect = [act(action="SAVE_CREDENTIAL_VALUE"), ANSWER]

        task = await start(orchestrator)

        assert any("No credential value" in line for line in task.scratchpad)
        assert task.status.value == "COMPLETED"

    @pytest.mark.asyncio
    async def test_locked_vault_during_typing_suspends(self, orchestrator, roles, vault, gateway):
        await vault.unlock("open sesame")
        placeholder = await vault.store("shop", "hunter2")
        vault.lock()
        roles.manager.decide.side_effect = [act(action="TYPE", selector="#pw", text=placeholder), ANSWER]

        task = await start(orchestrator)
        assert task.status.value == "AWAITING_PASSPHRASE"

        await orchestrator.dispatch(UnlockVault(passphrase="open sesame"))
        await orchestrator.run_until_idle()

        assert task.status.value == "COMPLETED"
        assert gateway.executed == []

    @pytest.mark.asyncio
    async def test_research_requiring_vault_waits_for_passphrase(self, orchestrator, roles):
        roles.researcher.research.return_value = ResearcherDecision(requires_browser=True, requires_vault=True)
        roles.manager.decide.side_effect = [ANSWER]

        task = await start(orchestrator)
        assert task.status.value == "AWAITING_PASSPHRASE"
        roles.planner.plan.assert_not_awaited()

        await orchestrator.dispatch(UnlockVault(passphrase="open sesame"))
        await orchestrator.run_until_idle()

        assert task.status.value == "COMPLETED"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [VaultLockedError("locked"), VaultError("disk full")])
    async def test_stop_while_saving_leaves_task_stopped(self, orchestrator, roles, vault, error):
        roles.manager.decide.side_effect = [act(action="SAVE_CREDENTIAL_VALUE", value="s3cret-value")]
        task = await start(orchestrator)

        async def stopped_mid_save(name, value):
            await orchestrator.dispatch(StopTask())
            raise error

        vault.store = stopped_mid_save
        await orchestrator.dispatch(SaveCredential(name="shop login"))
        await orchestrator.run_until_idle()

        assert task.status.value == "STOPPED"
        assert task.resume_after_unlock is None
        assert not orchestrator.has_pending_credential
        assert orchestrator.get_task() is None
        assert not any("Waiting for the passphrase" in line for line in task.scratchpad)


class TestUserControl:

    @pytest.mark.asyncio
    async def test_take_over_records_and_go_autonomous_replans(self, orchestrator, roles, gateway, knowledge):
        roles.manager.decide.side_effect = [act(action="LONG_WAIT"), ANSWER]
        task = await start(orchestrator)

        await orchestrator.dispatch(TakeOver())
        await orchestrator.run_until_idle()
        assert task.status.value == "USER_INPUT_PENDING"
        assert task.pending_wait_handle is None
        assert task.active_tab in gateway.learning

        gateway.emit({"action": "CLICK", "selector": "#buy", "url": "https://www.shop.example/cart"})
        await orchestrator.run_until_idle()
        tools = await knowledge.learned_tools_for_host("shop.example")
        assert tools["Do the thing"] == [{"action": "CLICK", "selector": "#buy", "url": "https://www.shop.example/cart"}]

        await orchestrator.dispatch(GoAutonomous())
        await orchestrator.run_until_idle()

        replan = roles.planner.plan.await_args_list[-1].kwargs["replan"]
        assert replan.user_initiated
        assert gateway.learning == set()
        assert task.status.value == "COMPLETED"

    @pytest.mark.asyncio
    async def test_starting_a_new_task_archives_pending_one(self, orchestrator, roles, knowledge):
        history_updates = []
        orchestrator.subscribe_history(history_updates.append)
        roles.manager.decide.side_effect = [act(action="LONG_WAIT"), ANSWER]
        await start(orchestrator, "First goal")
        await orchestrator.dispatch(TakeOver())
        await orchestrator.run_until_idle()

        await start(orchestrator, "Second goal")

        goals = [h.goal for h in await knowledge.list_historical()]
        assert "First goal" in goals
        assert history_updates[0][0]["goal"] == "First goal"
        assert orchestrator.get_task()["goal"] == "Second goal"

    @pytest.mark.asyncio
    async def test_take_over_ignored_on_full_success(self, orchestrator, roles):
        roles.manager.decide.side_effect = [ANSWER]
        task = await start(orchestrator)

        await orchestrator.dispatch(TakeOver())
        await orchestrator.run_until_idle()

        assert task.status.value == "COMPLETED"
        assert not task.is_training

    @pytest.mark.asyncio
    async def test_take_over_after_partial_success(self, orchestrator, roles):
        roles.manager.decide.side_effect = [act(action="PARTIAL_SUCCESS", reason="Captcha")]
        task = await start(orchestrator)
        assert task.is_partial_success

        await orchestrator.dispatch(TakeOver())
        await orchestrator.run_until_idle()

        assert task.status.value == "USER_INPUT_PENDING"
        assert task.final_answer is None

    @pytest.mark.asyncio
    async def test_delete_historical_task(self, orchestrator, knowledge):
        history = await knowledge.save_historical("Old goal")
        updates = []
        orchestrator.subscribe_history(updates.append)

        await orchestrator.dispatch(DeleteHistoricalTask(timestamp=history[0].timestamp))
        await orchestrator.run_until_idle()

        assert updates == [[]]
        assert await orchestrator.get_history() == []


class TestDeliberation:

    @pytest.mark.asyncio
    async def test_strategy_waits_for_opt_in(self, orchestrator, roles, gateway):
        roles.triage.classify.return_value = TriageDecision(flow="Deliberate_Flow")
        roles.debate.deliberate.return_value = ConsensusDecision(html="<h1>Strategy</h1>", plan=["Step A", "Step B"])
        roles.manager.decide.side_effect = [ANSWER]

        task = await start(orchestrator, "Grow my newsletter")

        assert task.status.value == "COMPLETED"
        assert task.is_deliberate_plan
        assert "<h1>Strategy</h1>" in task.final_answer
        assert "Attempt Strategy" in task.final_answer
        assert gateway.urls == {}
        roles.researcher.research.assert_not_awaited()

        await orchestrator.dispatch(AttemptStrategy())
        await orchestrator.run_until_idle()

        assert task.initial_strategy.startswith("<h1>Strategy</h1>")
        assert task.plan == ["Step A", "Step B"]
        assert roles.manager.decide.await_count == 1
        assert task.status.value == "COMPLETED"
        assert task.final_answer == "All done."

    @pytest.mark.asyncio
    async def test_attempt_strategy_ignored_for_standard_tasks(self, orchestrator, roles):
        roles.manager.decide.side_effect = [ANSWER]
        await start(orchestrator)

        await orchestrator.dispatch(AttemptStrategy(plan=["x"]))
        await orchestrator.run_until_idle()

        assert roles.manager.decide.await_count == 1


class TestTeaching:

    @pytest.mark.asyncio
    async def test_demonstration_becomes_learned_tool(self, orchestrator, roles, gateway, knowledge):
        await orchestrator.dispatch(StartTeaching(goal="Log in to the shop"))
        await orchestrator.run_until_idle()
        task = orchestrator.store.get()
        assert task.status.value == "TEACHING"

        handle = task.tabs["main"]
        assert handle in gateway.learning
        gateway.urls[handle] = "https://www.shop.example/login"
        gateway.emit({"action": "CLICK", "selector": "#login"})
        gateway.emit({"action": "TYPE", "selector": "#user", "value": "alice"})
        await orchestrator.run_until_idle()

        await orchestrator.dispatch(StopTeaching())
        await orchestrator.run_until_idle()

        assert task.status.value == "COMPLETED"
        assert task.final_answer == "Clicks the button."
        tools = await knowledge.learned_tools_for_host("shop.example")
        assert [a["action"] for a in tools["Log in to the shop"]] == ["CLICK", "TYPE"]
        assert gateway.learning == set()

    @pytest.mark.asyncio
    async def test_summary_discarded_when_task_replaced(self, orchestrator, roles, gateway, knowledge):
        await orchestrator.dispatch(StartTeaching(goal="Log in to the shop"))
        await orchestrator.run_until_idle()
        handle = orchestrator.store.get().tabs["main"]
        gateway.urls[handle] = "https://shop.example/login"
        gateway.emit({"action": "CLICK", "selector": "#login"})
        await orchestrator.run_until_idle()

        async def summarize_then_reset(goal, actions):
            await orchestrator.dispatch(ResetTaskSession())
            return "Too late"

        roles.teacher.summarize.side_effect = summarize_then_reset
        await orchestrator.dispatch(StopTeaching())
        await orchestrator.run_until_idle()

        assert orchestrator.get_task() is None
        assert await knowledge.learned_tools_for_host("shop.example") == {}

    @pytest.mark.asyncio
    async def test_fallback_summary(self, orchestrator, roles, gateway):
        roles.teacher.summarize.return_value = None
        await orchestrator.dispatch(StartTeaching(goal="Open settings"))
        await orchestrator.run_until_idle()
        await orchestrator.dispatch(StopTeaching())
        await orchestrator.run_until_idle()

        assert orchestrator.get_task()["final_answer"] == "Recorded 0 actions for 'Open settings'."


class TestCapacityExhaustion:

    @pytest.mark.asyncio
    async def test_ends_in_partial_success(self, orchestrator, roles):
        roles.manager.decide.side_effect = CapacityExhaustedError("credit balance is too low")
        roles.presenter.synthesize.return_value = PresenterDecision(summary="Got part of the way.")

        task = await start(orchestrator)

        assert task.status.value == "COMPLETED"
        assert task.is_partial_success
        assert task.final_answer == "Got part of the way."

    @pytest.mark.asyncio
    async def test_stops_when_presenter_is_unavailable(self, orchestrator, roles):
        roles.manager.decide.side_effect = CapacityExhaustedError("quota")
        roles.presenter.synthesize.side_effect = CapacityExhaustedError("quota")

        task = await start(orchestrator)

        assert task.status.value == "STOPPED"
        assert "capacity exhausted" in task.failure_reason


class TestUnexpectedErrors:
    """Role errors outside the decision-service hierarchy never strand a task."""

    @pytest.mark.asyncio
    async def test_manager_error_triggers_replan(self, orchestrator, roles):
        roles.manager.decide.side_effect = [RuntimeError("boom"), ANSWER]

        task = await start(orchestrator)

        assert task.status.value == "COMPLETED"
        assert roles.planner.plan.await_count == 2
        assert "Error: Manager failed: boom" in task.scratchpad

    @pytest.mark.asyncio
    async def test_served_task_recovers_from_manager_error(self, orchestrator, roles):
        roles.manager.decide.side_effect = [RuntimeError("boom"), ANSWER]

        async def finished():
            while True:
                task = orchestrator.store.get()
                if task is not None and task.status.is_terminal:
                    return task
                await asyncio.sleep(0.01)

        server = asyncio.create_task(orchestrator.serve())
        try:
            await orchestrator.dispatch(StartTask(goal="Find the answer"))
            task = await asyncio.wait_for(finished(), timeout=2)
        finally:
            server.cancel()

        assert task.status.value == "COMPLETED"

    @pytest.mark.asyncio
    async def test_verifier_error_fails_the_step(self, orchestrator, roles, gateway):
        roles.verifier.verify.side_effect = ValueError("bad verdict")
        roles.manager.decide.side_effect = [act(action="GOTO", url="https://other.example/x"), ANSWER]

        task = await start(orchestrator)

        assert "GOTO" not in gateway.kinds
        assert any("verification failed: bad verdict" in line and "(failure 1/" in line for line in task.scratchpad)
        assert task.website_failures == {"other.example": 1}
        assert task.status.value == "COMPLETED"

    @pytest.mark.asyncio
    async def test_learned_tool_lookup_error_is_ignored(self, orchestrator, roles, knowledge):
        knowledge.learned_tools_for_host = AsyncMock(side_effect=RuntimeError("index corrupted"))
        roles.manager.decide.side_effect = [ANSWER]

        task = await start(orchestrator)

        assert task.status.value == "COMPLETED"
        context = roles.manager.decide.await_args.args[0]
        assert context.learned_tool is None

    @pytest.mark.asyncio
    async def test_planner_error_while_replanning_fails_task(self, orchestrator, roles):
        roles.planner.plan.side_effect = [PlannerDecision(plan=["Do the thing"]), RuntimeError("bad plan")]
        roles.manager.decide.side_effect = [act(action="HELP_REPLAN", reason="stuck")]

        task = await start(orchestrator)

        assert task.status.value == "FAILED"
        assert task.failure_reason == "Planner failed to create a new plan."
