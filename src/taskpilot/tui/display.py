"""
Task snapshot display.

Renders the snapshots the orchestrator broadcasts: new scratchpad lines,
status changes and the final answer or failure reason.
"""

from typing import Any, Optional

from rich.markdown import Markdown
from rich.table import Table
from rich.text import Text

from .console import AgentConsole, get_console

STATUS_LABELS = {
    "RESEARCHING": "Researching the goal",
    "PLANNING": "Planning",
    "THINKING": "Thinking",
    "VERIFYING": "Verifying a URL",
    "EXECUTING": "Executing",
    "WAITING": "Waiting",
    "REPLANNING": "Replanning",
    "TEACHING": "Recording your demonstration",
    "USER_INPUT_PENDING": "You are in control",
    "AWAITING_CREDENTIAL_NAME": "Waiting for a credential name",
    "AWAITING_PASSPHRASE": "Waiting for the vault passphrase",
    "COMPLETED": "Completed",
    "FAILED": "Failed",
    "STOPPED": "Stopped",
}


def line_style(entry: str) -> str:
    """Style for one scratchpad line."""
    if entry.startswith("Error:"):
        return "bold red"
    if entry.startswith(("Thought:", "Planner:", "Researcher:")):
        return "italic"
    if entry.startswith(("Action:", "Plan:", "Replanned")):
        return "green"
    return ""


def print_log_lines(entries: list[str], *, console: Optional[AgentConsole] = None) -> None:
    console = console or get_console()
    for entry in entries:
        console.print(Text(f"  {entry}", style=line_style(entry)))


def print_status(status: str, *, console: Optional[AgentConsole] = None) -> None:
    console = console or get_console()
    label = STATUS_LABELS.get(status, status)
    console.print(Text(f"● {label}", style=f"bold {console.color_for('status')}"))


def print_plan(plan: list[str], current_step: int, *, console: Optional[AgentConsole] = None) -> None:
    """Print the plan with the current step highlighted."""
    console = console or get_console()
    content = Text()
    for i, step in enumerate(plan):
        marker = "▶" if i == current_step else " "
        style = "bold" if i == current_step else "dim" if i < current_step else ""
        content.append(f"{marker} {i + 1}. {step}\n", style=style)
    console.print_block(content, "status", title="[PLAN]")


def print_final_answer(snapshot: dict[str, Any], *, console: Optional[AgentConsole] = None) -> None:
    """
    Print the final answer of a completed task.

    Partial successes get their own title so the user knows recovery
    options follow.
    """
    console = console or get_console()
    answer = snapshot.get("final_answer") or "(no answer)"
    title = "[PARTIAL SUCCESS]" if snapshot.get("is_partial_success") else "[ANSWER]"
    console.print_block(Markdown(answer), "answer", title=title)


def print_error(
    error_message: str,
    *,
    error_type: Optional[str] = None,
    console: Optional[AgentConsole] = None,
) -> None:
    """
    Print an error block.

    Args:
        error_message: The error message
        error_type: Type/category of error
        console: Console to use (defaults to global console)
    """
    console = console or get_console()

    content = Text()
    content.append("Error", style="bold red")
    if error_type:
        content.append(f" ({error_type})", style="dim red")
    content.append("\n\n")
    content.append(error_message)

    console.print_block(content, "error")


def print_history(entries: list[dict[str, Any]], *, console: Optional[AgentConsole] = None) -> None:
    """Print the archived goals with the timestamps used to delete them."""
    console = console or get_console()
    if not entries:
        console.print("[dim]No historical tasks.[/dim]")
        return

    table = Table(show_header=True, header_style="bold", box=None)
    table.add_column("Timestamp", style="dim")
    table.add_column("Goal")
    for entry in entries:
        table.add_row(str(entry.get("timestamp")), str(entry.get("goal")))
    console.print_block(table, "log", title="[HISTORY]")


class TaskView:
    """
    Orchestrator listener that prints what changed since the last snapshot.

    Usage:
        view = TaskView()
        orchestrator.subscribe(view)
    """

    def __init__(self, console: Optional[AgentConsole] = None):
        self.console = console or get_console()
        self.last: Optional[dict[str, Any]] = None
        self._task_id: Optional[str] = None
        self._printed = 0
        self._status: Optional[str] = None
        self._plan: list[str] = []

    def __call__(self, snapshot: Optional[dict[str, Any]]) -> None:
        if snapshot is None:
            self._task_id = None
            return

        if snapshot["id"] != self._task_id:
            self._task_id = snapshot["id"]
            self._printed = 0
            self._status = None
            self._plan = []
            self.console.print(Text(f"\nGoal: {snapshot['goal']}", style="bold"))

        scratchpad = snapshot.get("scratchpad") or []
        print_log_lines(scratchpad[self._printed:], console=self.console)
        self._printed = len(scratchpad)

        plan = snapshot.get("plan") or []
        if plan and plan != self._plan and snapshot["status"] not in ("COMPLETED", "FAILED", "STOPPED"):
            self._plan = list(plan)
            print_plan(plan, snapshot.get("current_step", 0), console=self.console)

        status = snapshot["status"]
        if status != self._status:
            self._status = status
            print_status(status, console=self.console)
            if status == "COMPLETED":
                print_final_answer(snapshot, console=self.console)
            elif status in ("FAILED", "STOPPED") and snapshot.get("failure_reason"):
                print_error(snapshot["failure_reason"], error_type=status.lower(), console=self.console)

        self.last = snapshot
