"""
Task Orchestrator CLI Entry Point

Provides the command-line interface for running autonomous browser tasks,
teaching the agent by demonstration and managing the task history.

Usage:
    taskpilot "Your goal"
    taskpilot "Your goal" --verbose --headless
    taskpilot --teach "Log in to the staff portal"
    taskpilot --history
    taskpilot --delete-history 1718000000000
"""

import argparse
import asyncio
import logging
import os
import sys
from contextlib import AsyncExitStack
from typing import Any, Optional

from .agents import create_roles
from .browser import BrowserConfig, PlaywrightGateway, create_browser
from .companion import create_companion
from .config import AgentSettings, configure_logging
from .knowledge import KnowledgeStore, create_embedder_from_env
from .llm import create_decision_client
from .orchestrator import Orchestrator, create_orchestrator
from .security import SessionVault
from .state import (
    AttemptStrategy,
    GoAutonomous,
    SaveCredential,
    StartTask,
    StartTeaching,
    StopTask,
    StopTeaching,
    TakeOver,
    UnlockVault,
)
from .tui import (
    RecoveryChoice,
    TaskView,
    UserPrompts,
    action_spinner,
    create_prompts,
    get_console,
    print_error,
    print_history,
)

logger = logging.getLogger(__name__)

TERMINAL = ("COMPLETED", "FAILED", "STOPPED")


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Autonomous browser task orchestrator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    taskpilot "Find the opening hours of the nearest library"
    taskpilot --teach "Download last month's invoice"
    taskpilot --history
        """,
    )

    parser.add_argument(
        "goal",
        nargs="?",
        help="Natural language goal (interactive session when omitted)",
    )

    parser.add_argument(
        "--teach",
        metavar="GOAL",
        default=None,
        help="Record a demonstration of GOAL and save it as a learned tool",
    )

    parser.add_argument(
        "--history",
        action="store_true",
        help="List archived goals and exit",
    )

    parser.add_argument(
        "--delete-history",
        metavar="TIMESTAMP",
        type=int,
        default=None,
        help="Delete the archived goal with this timestamp and exit",
    )

    parser.add_argument(
        "--headless",
        action="store_true",
        help="Run browser in headless mode",
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Use the detailed log format",
    )

    parser.add_argument(
        "--dev",
        action="store_true",
        help="Development mode with debug logging",
    )

    return parser.parse_args(argv)


class Session:
    """
    One front-end session: the orchestrator, its browser and its listener.

    Snapshots broadcast by the orchestrator go to the TaskView (printing)
    and to a queue the prompt loop reads from.
    """

    def __init__(self, orchestrator: Orchestrator, vault: SessionVault, prompts: UserPrompts):
        self.orchestrator = orchestrator
        self.vault = vault
        self.prompts = prompts
        self.updates: asyncio.Queue = asyncio.Queue()
        self.view = TaskView()
        orchestrator.subscribe(self.view)
        orchestrator.subscribe(self.updates.put_nowait)

    def _drain(self) -> None:
        while not self.updates.empty():
            self.updates.get_nowait()

    async def _send(self, event: Any) -> None:
        self._drain()
        await self.orchestrator.dispatch(event)

    async def run_goal(self, goal: str) -> Optional[dict[str, Any]]:
        await self._send(StartTask(goal=goal))
        return await self.follow()

    async def teach(self, goal: str) -> Optional[dict[str, Any]]:
        await self._send(StartTeaching(goal=goal))
        while True:
            snapshot = await self.updates.get()
            if snapshot is None or snapshot["status"] in TERMINAL:
                return snapshot
            if snapshot["status"] == "TEACHING":
                break

        finished = await asyncio.to_thread(self.prompts.wait_for_demonstration, goal)
        await self._send(StopTeaching() if finished else StopTask())
        return await self.follow()

    async def follow(self) -> Optional[dict[str, Any]]:
        """
        React to status changes until the task ends.

        Returns:
            Final snapshot, or None when the task was discarded
        """
        last_status = None
        while True:
            snapshot = await self.updates.get()
            if snapshot is None:
                return None
            status = snapshot["status"]
            if status == last_status:
                continue
            last_status = status

            if status == "AWAITING_PASSPHRASE":
                passphrase = await asyncio.to_thread(self.prompts.ask_passphrase, not self.vault.is_initialized)
                await self._send(UnlockVault(passphrase=passphrase) if passphrase else StopTask())
                last_status = None

            elif status == "AWAITING_CREDENTIAL_NAME":
                name = await asyncio.to_thread(self.prompts.ask_credential_name)
                await self._send(SaveCredential(name=name) if name else StopTask())
                last_status = None

            elif status == "USER_INPUT_PENDING":
                handed_back = await asyncio.to_thread(self.prompts.wait_for_hand_back)
                await self._send(GoAutonomous() if handed_back else StopTask())

            elif status == "COMPLETED":
                if snapshot["is_deliberate_plan"] and snapshot["initial_strategy"] is None and snapshot["plan"]:
                    if await asyncio.to_thread(self.prompts.confirm_strategy):
                        await self._send(AttemptStrategy(plan=snapshot["plan"]))
                        continue
                elif snapshot["is_partial_success"]:
                    choice = await asyncio.to_thread(self.prompts.choose_recovery)
                    if choice == RecoveryChoice.TAKE_OVER:
                        await self._send(TakeOver())
                        continue
                return snapshot

            elif status in TERMINAL:
                return snapshot


async def list_history(settings: AgentSettings) -> None:
    store = KnowledgeStore(settings.data_dir, settings=settings)
    print_history([entry.model_dump() for entry in await store.list_historical()])


async def delete_history(settings: AgentSettings, timestamp: int) -> None:
    store = KnowledgeStore(settings.data_dir, settings=settings)
    remaining = await store.delete_historical(timestamp)
    print_history([entry.model_dump() for entry in remaining])


async def run(
    goal: Optional[str],
    teach: Optional[str] = None,
    headless: bool = False,
) -> bool:
    """
    Run a goal, a teaching session or an interactive session.

    Args:
        goal: Goal to run (interactive session when None and teach is None)
        teach: Goal to demonstrate instead of running
        headless: Run browser in headless mode

    Returns:
        True if the last task completed, False otherwise
    """
    console = get_console()
    settings = AgentSettings.from_env()
    browser_config = BrowserConfig.from_env()
    if headless:
        browser_config.headless = True

    async with AsyncExitStack() as stack:
        client = create_decision_client(settings=settings)
        stack.push_async_callback(client.provider.close)

        embedder = create_embedder_from_env()
        if embedder is not None:
            stack.push_async_callback(embedder.close)

        browser = create_browser(browser_config)
        with action_spinner("Starting browser...", console=console):
            await browser.initialize()
        gateway = PlaywrightGateway(browser, embedder=embedder, new_tab_settle_seconds=settings.new_tab_settle_seconds)
        stack.push_async_callback(gateway.close)

        companion = create_companion(settings)
        if companion is not None:
            stack.push_async_callback(companion.aclose)

        vault = SessionVault()
        orchestrator = create_orchestrator(
            create_roles(client, settings),
            gateway,
            KnowledgeStore(settings.data_dir, embedder=embedder, settings=settings),
            vault,
            settings=settings,
            companion=companion,
        )
        session = Session(orchestrator, vault, create_prompts(console.console))

        server = asyncio.create_task(orchestrator.serve())
        stack.callback(server.cancel)

        if teach:
            snapshot = await session.teach(teach)
            return bool(snapshot and snapshot["status"] == "COMPLETED")
        if goal:
            snapshot = await session.run_goal(goal)
            return bool(snapshot and snapshot["status"] == "COMPLETED")
        return await interactive(session)


async def interactive(session: Session) -> bool:
    """Prompt for goals until the user quits."""
    console = get_console()
    console.print("[bold]Task Orchestrator[/bold] (interactive session)")
    console.print("Enter a goal. Commands: 'teach <goal>', 'history', 'quit'\n")

    completed = True
    while True:
        line = (await asyncio.to_thread(console.console.input, "[bold green]>[/bold green] ")).strip()
        if not line:
            continue
        if line.lower() in ("quit", "exit", "q"):
            return completed
        if line.lower() == "history":
            print_history(await session.orchestrator.get_history(), console=console)
            continue
        if line.lower().startswith("teach "):
            snapshot = await session.teach(line[6:].strip())
        else:
            snapshot = await session.run_goal(line)
        completed = bool(snapshot and snapshot["status"] == "COMPLETED")


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    if args.dev:
        level = logging.DEBUG
    elif os.getenv("LOG_LEVEL"):
        level = None
    else:
        # The TUI already shows every scratchpad line
        level = logging.WARNING
    configure_logging(level=level, verbose=args.verbose)

    settings = AgentSettings.from_env()
    if args.history:
        asyncio.run(list_history(settings))
        return 0
    if args.delete_history is not None:
        asyncio.run(delete_history(settings, args.delete_history))
        return 0

    try:
        success = asyncio.run(run(args.goal, teach=args.teach, headless=args.headless))
    except KeyboardInterrupt:
        get_console().print("\n[yellow]Interrupted by user[/yellow]")
        return 130
    except Exception as e:
        logger.debug("Session failed", exc_info=True)
        print_error(str(e), error_type=type(e).__name__)
        return 1

    return 0 if success else 1


if __name__ == "__main__":
    sys.exit(main())
