"""
User Prompts

Terminal prompts for the points where a task waits on the user:
- the vault passphrase
- a name for a captured credential
- opting in to a deliberated strategy
- recovering from a partial success
- handing control back after a takeover

Every prompt returns None when the user cancels with Ctrl+C.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.text import Text


class RecoveryChoice(Enum):
    """What to do after a partial success."""

    TAKE_OVER = "take_over"
    FINISH = "finish"


@dataclass
class UserPrompts:
    """Rich prompts used by the terminal front-end."""

    console: Console = None

    def __post_init__(self):
        """Initialize console if not provided."""
        if self.console is None:
            self.console = Console()

    def ask_passphrase(self, first_time: bool = False) -> Optional[str]:
        """Ask for the vault passphrase (input is hidden)."""
        message = (
            "Choose a passphrase for the credential vault."
            if first_time
            else "The credential vault is locked. Enter the passphrase to continue."
        )
        self._panel("🔐 Vault Locked", message, "yellow")
        try:
            return Prompt.ask("[yellow]Passphrase[/]", password=True, console=self.console)
        except KeyboardInterrupt:
            self.console.print("\n[yellow]Cancelled[/]")
            return None

    def ask_credential_name(self) -> Optional[str]:
        """
        Ask for the name a captured credential is saved under.

        The value itself is never shown.
        """
        self._panel(
            "🔑 Save Credential",
            "The agent captured a credential. Give it a name to store it in the vault.",
            "yellow",
        )
        try:
            name = Prompt.ask("[yellow]Credential name[/]", console=self.console).strip()
        except KeyboardInterrupt:
            self.console.print("\n[yellow]Cancelled[/]")
            return None
        return name or None

    def confirm_strategy(self) -> bool:
        """Ask whether a deliberated strategy should be executed."""
        try:
            return Confirm.ask(
                "[magenta]Attempt this strategy autonomously?[/]",
                default=False,
                console=self.console,
            )
        except KeyboardInterrupt:
            self.console.print("\n[yellow]Cancelled[/]")
            return False

    def choose_recovery(self) -> RecoveryChoice:
        """Offer the options after a partial success."""
        content = Text()
        content.append("The goal was only partly achieved.\n\n", style="bold")
        content.append("Options:\n", style="bold yellow")
        content.append("  1. Take over and show me how to finish\n")
        content.append("  0. Finish here\n")
        self.console.print(
            Panel(
                content,
                title="[bold yellow]Choose an Option[/]",
                border_style="yellow",
                padding=(1, 2),
            )
        )
        try:
            choice = Prompt.ask("Enter choice", choices=["0", "1"], default="0", console=self.console)
        except KeyboardInterrupt:
            self.console.print("\n[yellow]Cancelled[/]")
            return RecoveryChoice.FINISH
        return RecoveryChoice.TAKE_OVER if choice == "1" else RecoveryChoice.FINISH

    def wait_for_hand_back(self) -> bool:
        """
        Wait while the user works in the browser.

        Returns:
            True when the user hands control back, False when they cancel
        """
        self._panel(
            "🖐 You Are in Control",
            "Use the browser; your actions on the page are recorded.\n"
            "Press Enter to hand control back to the agent.",
            "cyan",
        )
        try:
            Prompt.ask("[cyan]Press Enter when done[/]", default="", show_default=False, console=self.console)
            return True
        except KeyboardInterrupt:
            self.console.print("\n[yellow]Cancelled[/]")
            return False

    def wait_for_demonstration(self, goal: str) -> bool:
        """Wait while the user demonstrates a goal in teaching mode."""
        self._panel(
            "🎓 Teaching",
            f"Show the agent how to: {goal}\nPress Enter when the demonstration is finished.",
            "cyan",
        )
        try:
            Prompt.ask("[cyan]Press Enter to stop recording[/]", default="", show_default=False, console=self.console)
            return True
        except KeyboardInterrupt:
            self.console.print("\n[yellow]Cancelled[/]")
            return False

    def _panel(self, title: str, message: str, color: str) -> None:
        content = Text()
        content.append(message, style="white")
        self.console.print(
            Panel(
                content,
                title=f"[bold {color}]{title}[/]",
                border_style=color,
                padding=(1, 2),
            )
        )


def create_prompts(console: Optional[Console] = None) -> UserPrompts:
    """
    Factory function to create the prompt handler.

    Args:
        console: Optional Rich console to use

    Returns:
        Configured UserPrompts instance
    """
    return UserPrompts(console=console)
