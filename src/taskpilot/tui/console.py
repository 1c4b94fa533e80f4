"""
Rich TUI Console Setup

Provides the core console infrastructure for the task orchestrator's
terminal front-end. Configured via environment variables for
customizable appearance.
"""

import os
from dataclasses import dataclass
from datetime import datetime
from typing import Literal, Optional

from rich.console import Console
from rich.panel import Panel
from rich.style import Style
from rich.theme import Theme


# Block types for orchestrator output
BlockType = Literal["log", "status", "answer", "error"]


@dataclass
class TUIConfig:
    """
    TUI configuration loaded from environment variables.

    Attributes:
        color_log: Color for scratchpad lines
        color_status: Color for status changes
        color_answer: Color for final answers
        show_timestamps: Whether to display timestamps
    """

    color_log: str = "blue"
    color_status: str = "green"
    color_answer: str = "yellow"
    show_timestamps: bool = True

    @classmethod
    def from_env(cls) -> "TUIConfig":
        """Load configuration from environment variables."""
        return cls(
            color_log=os.getenv("COLOR_LOG", "blue"),
            color_status=os.getenv("COLOR_STATUS", "green"),
            color_answer=os.getenv("COLOR_ANSWER", "yellow"),
            show_timestamps=os.getenv("SHOW_TIMESTAMPS", "true").lower() == "true",
        )


def create_theme(config: TUIConfig) -> Theme:
    """Create a Rich theme from TUI configuration."""
    return Theme(
        {
            "log": Style(color=config.color_log, bold=True),
            "log.text": Style(color=config.color_log),
            "status": Style(color=config.color_status, bold=True),
            "answer": Style(color=config.color_answer, bold=True),
            "error": Style(color="red", bold=True),
            "timestamp": Style(dim=True),
            "label": Style(bold=True),
        }
    )


class AgentConsole:
    """
    Rich console wrapper for orchestrator output.

    Provides formatted panels for scratchpad lines, status changes,
    final answers and errors with consistent styling and optional
    timestamps.
    """

    def __init__(self, config: Optional[TUIConfig] = None, console: Optional[Console] = None):
        """
        Initialize the agent console.

        Args:
            config: TUI configuration. If None, loads from environment.
            console: Rich console to wrap (tests pass a recording console)
        """
        self.config = config or TUIConfig.from_env()
        self._theme = create_theme(self.config)
        self.console = console or Console(theme=self._theme)

    def timestamp(self) -> str:
        """Get formatted timestamp if enabled."""
        if self.config.show_timestamps:
            return datetime.now().strftime("%H:%M:%S")
        return ""

    def color_for(self, block_type: BlockType) -> str:
        colors = {
            "log": self.config.color_log,
            "status": self.config.color_status,
            "answer": self.config.color_answer,
            "error": "red",
        }
        return colors[block_type]

    def print_block(
        self,
        content,
        block_type: BlockType,
        title: Optional[str] = None,
    ) -> None:
        """
        Print a styled block to the console.

        Args:
            content: Text or renderable to display
            block_type: Type of block (log, status, answer, error)
            title: Optional title to override default label
        """
        block_title = title or f"[{block_type.upper()}]"

        timestamp = self.timestamp()
        if timestamp:
            block_title = f"{timestamp} {block_title}"

        panel = Panel(
            content,
            title=block_title,
            title_align="left",
            border_style=self.color_for(block_type),
            padding=(0, 1),
        )
        self.console.print(panel)

    def print(self, *args, **kwargs) -> None:
        """Passthrough to underlying Rich console."""
        self.console.print(*args, **kwargs)

    def status(self, message: str):
        """Create a status context for progress indication."""
        return self.console.status(message)


# Global console instance
_console: Optional[AgentConsole] = None


def get_console() -> AgentConsole:
    """Get or create the global console instance."""
    global _console
    if _console is None:
        _console = AgentConsole()
    return _console


def create_console(config: Optional[TUIConfig] = None, console: Optional[Console] = None) -> AgentConsole:
    """
    Create a new console instance with optional configuration.

    Args:
        config: TUI configuration. If None, loads from environment.
        console: Optional Rich console to wrap
    """
    return AgentConsole(config, console)
