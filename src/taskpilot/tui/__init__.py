"""
Rich TUI Interface Module

Provides the terminal front-end for the task orchestrator.
Uses the Rich library for formatted, colorful output.

Components:
- AgentConsole: Main console wrapper with themed output
- TUIConfig: Configuration for colors and display options
- TaskView: Listener that prints task snapshots as they change
- UserPrompts: Passphrase, credential name, opt-in and hand-back prompts
"""

from .console import (
    AgentConsole,
    BlockType,
    TUIConfig,
    create_console,
    get_console,
)
from .display import (
    TaskView,
    print_error,
    print_final_answer,
    print_history,
    print_log_lines,
    print_plan,
    print_status,
)
from .progress import action_spinner
from .prompts import RecoveryChoice, UserPrompts, create_prompts

__all__ = [
    # Console infrastructure
    "AgentConsole",
    "BlockType",
    "TUIConfig",
    "create_console",
    "get_console",
    # Snapshot display
    "TaskView",
    "print_error",
    "print_final_answer",
    "print_history",
    "print_log_lines",
    "print_plan",
    "print_status",
    # Progress
    "action_spinner",
    # Prompts
    "RecoveryChoice",
    "UserPrompts",
    "create_prompts",
]
