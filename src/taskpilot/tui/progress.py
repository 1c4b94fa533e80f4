"""
Live progress indicators.

Spinner shown while the front-end waits on something slow (browser
startup, shutdown) so the user can tell work is in progress.
"""

from contextlib import contextmanager
from typing import Generator, Optional

from .console import AgentConsole, get_console


@contextmanager
def action_spinner(
    message: str,
    *,
    spinner: str = "dots",
    console: Optional[AgentConsole] = None,
) -> Generator[None, None, None]:
    """
    Context manager that shows a spinner while an action is in progress.

    Args:
        message: Message to display next to spinner
        spinner: Spinner style (dots, line, arc, etc.)
        console: Console to use (defaults to global console)

    Usage:
        with action_spinner("Starting browser..."):
            await controller.initialize()
    """
    console = console or get_console()

    with console.console.status(
        f"[{console.config.color_status}]{message}[/]",
        spinner=spinner,
    ):
        yield
