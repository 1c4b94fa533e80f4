"""
Action Runner

Turns environment-facing Manager actions into gateway calls:
- SEARCH is TYPE followed by SUBMIT
- READ is EXTRACT_TEXT on the selector (body by default)
- OPEN_TAB / CHANGE_TAB update the task's tab map
- Tabs opened by a CLICK or SUBMIT are registered as ``tab_N`` and
  become active
- Credential placeholders in typed text are resolved through the vault
  just before execution
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from ..agents.decisions import ManagerActionBase
from ..browser.gateway import ActionOutcome, EnvironmentGateway, PrimitiveAction
from ..config import AgentSettings
from ..security.vault import CredentialVault
from ..state.task import Task

logger = logging.getLogger(__name__)

# Manager action kinds handled here
RUNNER_KINDS = frozenset({
    "CLICK",
    "TYPE",
    "GOTO",
    "SUBMIT",
    "SEARCH",
    "SCROLL_DOWN",
    "PRESS_ESCAPE",
    "READ",
    "EXTRACT_TEXT",
    "SEARCH_PAGE",
    "OPEN_TAB",
    "CHANGE_TAB",
    "WAIT",
})

# Kinds passed to the gateway unchanged
DIRECT_PRIMITIVES = frozenset({"CLICK", "TYPE", "GOTO", "SUBMIT", "SCROLL_DOWN", "PRESS_ESCAPE", "EXTRACT_TEXT"})


class ActionRunner:
    """
    Executes Manager actions against the gateway.

    Vault errors propagate so the orchestrator can suspend the task;
    gateway failures come back as a failed ActionOutcome.
    """

    def __init__(
        self,
        gateway: EnvironmentGateway,
        vault: CredentialVault,
        settings: Optional[AgentSettings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.gateway = gateway
        self.vault = vault
        self.settings = settings or AgentSettings()
        self.sleep = sleep

    async def run(self, task: Task, action: ManagerActionBase) -> ActionOutcome:
        """
        Execute one action for a task.

        Args:
            task: Active task (its tab map may be updated)
            action: Manager action whose kind is in RUNNER_KINDS

        Returns:
            ActionOutcome of the last primitive run

        Raises:
            VaultLockedError: Typed text references a credential and the vault is locked
            VaultError: Typed text references an unknown credential
        """
        kind = action.kind

        if kind == "OPEN_TAB":
            return await self._open_tab(task, action)
        if kind == "CHANGE_TAB":
            return await self._change_tab(task, action.tab_name)

        handle = task.active_tab
        if handle is None:
            return ActionOutcome(success=False, error="No active tab")

        if kind == "WAIT":
            duration_ms = action.duration or self.settings.default_wait_ms
            await self.sleep(duration_ms / 1000)
            return ActionOutcome(success=True)

        if kind == "SEARCH_PAGE":
            passages = await self.gateway.semantic_search(handle, action.query)
            return ActionOutcome(success=True, text="\n---\n".join(passages))

        if kind == "READ":
            return await self.gateway.execute(
                handle, PrimitiveAction("EXTRACT_TEXT", selector=action.selector or "body")
            )

        if kind == "SEARCH":
            text = await self.vault.resolve(action.text)
            typed = await self.gateway.execute(handle, PrimitiveAction("TYPE", selector=action.selector, text=text))
            if not typed.success:
                return typed
            return await self._execute(task, handle, PrimitiveAction("SUBMIT", selector=action.selector))

        if kind in DIRECT_PRIMITIVES:
            text = getattr(action, "text", None)
            if text is not None:
                text = await self.vault.resolve(text)
            primitive = PrimitiveAction(
                kind,
                selector=getattr(action, "selector", None),
                text=text,
                url=getattr(action, "url", None),
            )
            return await self._execute(task, handle, primitive)

        return ActionOutcome(success=False, error=f"{kind} is not an environment action")

    async def _execute(self, task: Task, handle: int, primitive: PrimitiveAction) -> ActionOutcome:
        outcome = await self.gateway.execute(handle, primitive)
        if outcome.success and outcome.opened_tab is not None:
            name = task.next_tab_name()
            task.tabs[name] = outcome.opened_tab
            task.active_tab_name = name
            await self.gateway.switch_tab(outcome.opened_tab)
            logger.info("Registered new tab %s", name)
        return outcome

    async def _open_tab(self, task: Task, action: ManagerActionBase) -> ActionOutcome:
        handle = await self.gateway.create_tab(action.url)
        name = action.tab_name or task.next_tab_name()
        task.tabs[name] = handle
        task.active_tab_name = name
        await self.gateway.wait_for_load(handle)
        return ActionOutcome(success=True)

    async def _change_tab(self, task: Task, name: Optional[str]) -> ActionOutcome:
        handle = task.tabs.get(name or "")
        if handle is None:
            known = ", ".join(task.tabs) or "none"
            return ActionOutcome(success=False, error=f"Unknown tab '{name}' (known: {known})")
        await self.gateway.switch_tab(handle)
        task.active_tab_name = name
        return ActionOutcome(success=True)
