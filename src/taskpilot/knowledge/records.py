"""
Knowledge Records

Immutable summaries persisted between runs. Timestamps are epoch
milliseconds so they survive a JSON round trip exactly.
"""

import time

from pydantic import BaseModel, ConfigDict, Field


def now_ms() -> int:
    return int(time.time() * 1000)


class HistoricalTask(BaseModel):
    """A goal the user started, kept for the history list."""

    model_config = ConfigDict(frozen=True)

    goal: str
    timestamp: int = Field(default_factory=now_ms)


class CompletedTask(BaseModel):
    """A goal that reached a final answer; used as planning examples."""

    model_config = ConfigDict(frozen=True)

    goal: str
    answer: str
    timestamp: int = Field(default_factory=now_ms)
