"""
Knowledge Store

Persists what the agent keeps between tasks, as JSON files in the data
directory:

- history.json: recently started goals (bounded, most recent first,
  de-duplicated by goal)
- completed.json: goals with their final answers (bounded, most recent
  first), used as planning examples
- learned_tools.json: host -> task description -> recorded actions

All access goes through one asyncio.Lock and files are replaced
atomically, so sequential callers always see a consistent document.

Usage:
    >>> store = KnowledgeStore(Path(".taskpilot"))
    >>> await store.save_historical("Find flights to Lisbon")
    >>> await store.list_historical()
"""

import asyncio
import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Optional

from pydantic import TypeAdapter, ValidationError

from ..config import AgentSettings
from .embeddings import Embedder, EmbeddingError, batch_cosine_similarity
from .records import CompletedTask, HistoricalTask

logger = logging.getLogger(__name__)

HISTORY_FILE = "history.json"
COMPLETED_FILE = "completed.json"
LEARNED_TOOLS_FILE = "learned_tools.json"

LearnedTools = dict[str, dict[str, list[dict[str, Any]]]]

_HISTORY_ADAPTER = TypeAdapter(list[HistoricalTask])
_COMPLETED_ADAPTER = TypeAdapter(list[CompletedTask])
_TOOLS_ADAPTER = TypeAdapter(LearnedTools)

_WORD = re.compile(r"\w+")


def keywords(text: str) -> list[str]:
    return _WORD.findall(text.lower())


def keyword_overlap(query: str, candidate: str) -> float:
    """Share of the query's words that also appear in the candidate."""
    query_words = keywords(query)
    if not query_words:
        return 0.0
    candidate_words = set(keywords(candidate))
    common = [word for word in query_words if word in candidate_words]
    return len(common) / len(query_words)


class KnowledgeStore:
    """File-backed history, completed tasks and learned tools."""

    def __init__(
        self,
        data_dir: Path,
        embedder: Optional[Embedder] = None,
        settings: Optional[AgentSettings] = None,
    ):
        """
        Initialize the store.

        Args:
            data_dir: Directory holding the JSON files (created on first write)
            embedder: Optional embedder for learned-tool matching
            settings: Limits and thresholds (defaults when None)
        """
        self.data_dir = Path(data_dir)
        self.embedder = embedder
        self.settings = settings or AgentSettings()
        self._lock = asyncio.Lock()

    # -------------------------------------------------------------------------
    # History
    # -------------------------------------------------------------------------

    async def list_historical(self) -> list[HistoricalTask]:
        async with self._lock:
            return await self._read(HISTORY_FILE, _HISTORY_ADAPTER, [])

    async def save_historical(self, goal: str) -> list[HistoricalTask]:
        """
        Put a goal at the front of the history.

        Blank goals and goals already present are ignored.

        Returns:
            The history after the update
        """
        async with self._lock:
            history = await self._read(HISTORY_FILE, _HISTORY_ADAPTER, [])
            if not goal or not goal.strip():
                return history
            if any(entry.goal == goal for entry in history):
                return history
            history = [HistoricalTask(goal=goal)] + history
            history = history[: self.settings.history_limit]
            await self._write(HISTORY_FILE, _HISTORY_ADAPTER, history)
            logger.debug("Saved historical task: %s", goal)
            return history

    async def delete_historical(self, timestamp: int) -> list[HistoricalTask]:
        """Remove every history entry with this timestamp; returns the new history."""
        async with self._lock:
            history = await self._read(HISTORY_FILE, _HISTORY_ADAPTER, [])
            kept = [entry for entry in history if entry.timestamp != timestamp]
            if len(kept) != len(history):
                await self._write(HISTORY_FILE, _HISTORY_ADAPTER, kept)
            return kept

    # -------------------------------------------------------------------------
    # Completed tasks
    # -------------------------------------------------------------------------

    async def save_completed(self, goal: str, answer: str) -> None:
        """Record a finished goal and add it to the history."""
        async with self._lock:
            completed = await self._read(COMPLETED_FILE, _COMPLETED_ADAPTER, [])
            completed = [CompletedTask(goal=goal, answer=answer)] + completed
            completed = completed[: self.settings.completed_limit]
            await self._write(COMPLETED_FILE, _COMPLETED_ADAPTER, completed)
            logger.debug("Saved completed task: %s", goal)
        await self.save_historical(goal)

    async def similar_completed(self, goal: str) -> list[CompletedTask]:
        """
        Completed tasks sharing more than half of the goal's keywords.

        Returns:
            Up to ``similar_task_limit`` matches, most recent first
        """
        async with self._lock:
            completed = await self._read(COMPLETED_FILE, _COMPLETED_ADAPTER, [])
        matches = [task for task in completed if keyword_overlap(goal, task.goal) > 0.5]
        return matches[: self.settings.similar_task_limit]

    # -------------------------------------------------------------------------
    # Learned tools
    # -------------------------------------------------------------------------

    async def record_learned_action(self, host: str, description: str, action: dict[str, Any]) -> None:
        """Append one recorded user action under (host, description)."""
        async with self._lock:
            tools = await self._read(LEARNED_TOOLS_FILE, _TOOLS_ADAPTER, {})
            tools.setdefault(host, {}).setdefault(description, []).append(action)
            await self._write(LEARNED_TOOLS_FILE, _TOOLS_ADAPTER, tools)
        logger.info("Saved learned action for %s: %s", host, description)

    async def save_learned_tool(self, host: str, description: str, actions: list[dict[str, Any]]) -> None:
        """Store a full demonstration under (host, description)."""
        if not actions:
            return
        async with self._lock:
            tools = await self._read(LEARNED_TOOLS_FILE, _TOOLS_ADAPTER, {})
            tools.setdefault(host, {})[description] = list(actions)
            await self._write(LEARNED_TOOLS_FILE, _TOOLS_ADAPTER, tools)
        logger.info("Saved learned tool for %s: %s", host, description)

    async def learned_tools_for_host(self, host: str) -> dict[str, list[dict[str, Any]]]:
        async with self._lock:
            tools = await self._read(LEARNED_TOOLS_FILE, _TOOLS_ADAPTER, {})
        return tools.get(host, {})

    async def find_relevant_tool(
        self,
        query: str,
        tools: dict[str, list[dict[str, Any]]],
    ) -> Optional[dict[str, list[dict[str, Any]]]]:
        """
        Pick the learned tool whose description best matches the query.

        Embedding cosine similarity is used when an embedder is configured,
        keyword overlap otherwise (or when embedding fails). The best match
        must score above ``learned_tool_threshold``.

        Returns:
            ``{description: actions}`` for the best match, or None
        """
        if not tools or not query:
            return None

        descriptions = list(tools)
        scores: Optional[list[float]] = None
        if self.embedder is not None:
            try:
                vectors = await self.embedder.embed([query] + descriptions)
                scores = batch_cosine_similarity(vectors[0], vectors[1:])
            except EmbeddingError as e:
                logger.warning("Learned tool embedding failed, using keyword overlap: %s", e)
        if scores is None:
            scores = [keyword_overlap(query, description) for description in descriptions]

        best = max(range(len(descriptions)), key=lambda i: scores[i])
        if scores[best] <= self.settings.learned_tool_threshold:
            return None

        description = descriptions[best]
        logger.info("Found learned tool '%s' (score %.2f)", description, scores[best])
        return {description: tools[description]}

    # -------------------------------------------------------------------------
    # File access (callers hold the lock)
    # -------------------------------------------------------------------------

    async def _read(self, name: str, adapter: TypeAdapter, default: Any) -> Any:
        path = self.data_dir / name
        if not path.exists():
            return default
        try:
            raw = await asyncio.to_thread(path.read_text, encoding="utf-8")
            return adapter.validate_json(raw)
        except (OSError, ValidationError) as e:
            logger.error("Could not read %s, starting empty: %s", path, e)
            return default

    async def _write(self, name: str, adapter: TypeAdapter, value: Any) -> None:
        path = self.data_dir / name
        payload = json.dumps(adapter.dump_python(value, mode="json"), indent=2, ensure_ascii=False)
        await asyncio.to_thread(_atomic_write, path, payload)


def _atomic_write(path: Path, payload: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(payload, encoding="utf-8")
    os.replace(tmp, path)
