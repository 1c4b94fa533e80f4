"""
Configuration and Logging Setup

Provides centralized configuration and logging for the task orchestrator.
Reads LOG_LEVEL from environment variables for configurable logging, and
builds AgentSettings from the environment (and .env file).

Usage:
    from taskpilot.config import AgentSettings, configure_logging, get_logger

    # Configure at application startup
    configure_logging()
    settings = AgentSettings.from_env()

    # Get logger in any module
    logger = get_logger(__name__)
"""

import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Default configuration
DEFAULT_LOG_LEVEL = "INFO"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FORMAT_SIMPLE = "%(levelname)s: %(message)s"

# Valid log levels
VALID_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

AGENT_VERSION = "1.0.0"


def get_log_level() -> int:
    """
    Get the log level from LOG_LEVEL environment variable.

    Returns:
        Logging level constant (e.g., logging.INFO)

    Supported values:
        DEBUG, INFO, WARNING, ERROR, CRITICAL
    """
    level_str = os.getenv("LOG_LEVEL", DEFAULT_LOG_LEVEL).upper()

    if level_str not in VALID_LEVELS:
        print(
            f"Warning: Invalid LOG_LEVEL '{level_str}'. "
            f"Valid values: {', '.join(VALID_LEVELS.keys())}. "
            f"Using {DEFAULT_LOG_LEVEL}.",
            file=sys.stderr,
        )
        return VALID_LEVELS[DEFAULT_LOG_LEVEL]

    return VALID_LEVELS[level_str]


def configure_logging(
    level: Optional[int] = None,
    verbose: bool = False,
) -> None:
    """
    Configure logging for the task orchestrator.

    Should be called once at application startup, before other modules
    import their loggers.

    Args:
        level: Override log level (default: from LOG_LEVEL env var)
        verbose: Use detailed format with timestamps (default: simple format)

    Environment Variables:
        LOG_LEVEL: Set to DEBUG, INFO, WARNING, ERROR, or CRITICAL
    """
    if level is None:
        level = get_log_level()

    log_format = LOG_FORMAT if verbose else LOG_FORMAT_SIMPLE

    logging.basicConfig(
        level=level,
        format=log_format,
        stream=sys.stderr,
        force=True,  # Override any existing configuration
    )

    logging.getLogger("taskpilot").setLevel(level)

    # Quiet noisy third-party loggers in non-debug mode
    if level > logging.DEBUG:
        logging.getLogger("playwright").setLevel(logging.WARNING)
        logging.getLogger("asyncio").setLevel(logging.WARNING)
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)
        logging.getLogger("anthropic").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a module.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


def _env_list(name: str) -> list[str]:
    raw = os.getenv(name, "")
    return [item.strip().lower() for item in raw.split(",") if item.strip()]


@dataclass
class AgentSettings:
    """
    Runtime settings for the orchestrator and its collaborators.

    Reads from environment variables with sensible defaults.
    Timeouts are in seconds unless the name says otherwise.
    """

    # Persisted knowledge (history, completed tasks, learned tools)
    data_dir: Path = field(default_factory=lambda: Path(".taskpilot"))

    # Tab opened when a task needs the browser and has none yet
    start_url: str = "https://www.google.com"

    # Decision service
    decision_max_attempts: int = 5
    decision_attempt_timeout: float = 90.0
    decision_backoff_base: float = 1.0

    # Turn loop
    observation_timeout: float = 120.0
    step_failure_threshold: int = 3
    host_failure_threshold: int = 3
    max_turns: int = 100
    max_replans: int = 8
    default_wait_ms: int = 3000
    long_wait_seconds: float = 300.0
    new_tab_settle_seconds: float = 1.5

    # Knowledge store
    history_limit: int = 10
    completed_limit: int = 50
    similar_task_limit: int = 3
    learned_tool_threshold: float = 0.7

    # Deliberation
    debate_fanout: int = 3

    # Companion relay (disabled when no URL)
    companion_url: Optional[str] = None
    companion_cooldown: float = 5.0

    # Security
    trusted_hosts: list[str] = field(default_factory=list)

    # Preflight context
    default_location: str = "unknown"
    agent_version: str = AGENT_VERSION

    @property
    def trusted(self) -> set[str]:
        """Trusted hosts including the start page host."""
        hosts = set(self.trusted_hosts)
        start_host = urlparse(self.start_url).hostname
        if start_host:
            hosts.add(start_host.lower())
        return hosts

    @classmethod
    def from_env(cls) -> "AgentSettings":
        """
        Create AgentSettings from environment variables.

        Environment variables:
            TASKPILOT_DATA_DIR: path (default: .taskpilot)
            TASKPILOT_START_URL: url (default: https://www.google.com)
            DECISION_MAX_ATTEMPTS: int (default: 5)
            DECISION_TIMEOUT: seconds per attempt (default: 90)
            OBSERVATION_TIMEOUT: seconds (default: 120)
            MAX_TURNS: int (default: 100)
            MAX_REPLANS: int (default: 8)
            LONG_WAIT_SECONDS: seconds (default: 300)
            DEBATE_FANOUT: int (default: 3)
            COMPANION_URL: url of the companion relay (default: disabled)
            COMPANION_COOLDOWN: seconds (default: 5)
            TRUSTED_HOSTS: comma separated host names
            DEFAULT_LOCATION: free text location hint
        """
        return cls(
            data_dir=Path(os.getenv("TASKPILOT_DATA_DIR", ".taskpilot")),
            start_url=os.getenv("TASKPILOT_START_URL", "https://www.google.com"),
            decision_max_attempts=int(os.getenv("DECISION_MAX_ATTEMPTS", "5")),
            decision_attempt_timeout=float(os.getenv("DECISION_TIMEOUT", "90")),
            observation_timeout=float(os.getenv("OBSERVATION_TIMEOUT", "120")),
            max_turns=int(os.getenv("MAX_TURNS", "100")),
            max_replans=int(os.getenv("MAX_REPLANS", "8")),
            long_wait_seconds=float(os.getenv("LONG_WAIT_SECONDS", "300")),
            debate_fanout=int(os.getenv("DEBATE_FANOUT", "3")),
            companion_url=os.getenv("COMPANION_URL") or None,
            companion_cooldown=float(os.getenv("COMPANION_COOLDOWN", "5")),
            trusted_hosts=_env_list("TRUSTED_HOSTS"),
            default_location=os.getenv("DEFAULT_LOCATION", "unknown"),
        )
