"""
Companion Relay

Pushes task snapshots to an optional companion endpoint (a phone app or
dashboard) so progress can be followed away from the terminal.

Each push is a fire-and-forget asyncio task that POSTs
``{goal, status, answer}``. A failed push opens a short circuit: pushes
are skipped until the cooldown has passed, and only the first failure of
a streak is logged as a warning.

Usage:
    relay = CompanionRelay("http://localhost:8765/task")
    orchestrator = Orchestrator(..., companion=relay)
    ...
    await relay.aclose()
"""

import asyncio
import logging
import time
from typing import Any, Optional

import httpx

from .config import AgentSettings

logger = logging.getLogger(__name__)


class CompanionRelay:
    """HTTP relay with a cooldown circuit breaker."""

    def __init__(
        self,
        url: str,
        cooldown: float = 5.0,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the relay.

        Args:
            url: Endpoint receiving the POSTs
            cooldown: Seconds to skip pushes after a failure
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests use MockTransport)
            client: Optional preconfigured client
        """
        self.url = url
        self.cooldown = cooldown
        self._client = client or httpx.AsyncClient(timeout=timeout, transport=transport)
        self._owns_client = client is None
        self._pending: set[asyncio.Task] = set()
        self._open_until = 0.0
        self._failing = False

    @property
    def circuit_open(self) -> bool:
        return time.monotonic() < self._open_until

    @staticmethod
    def payload(snapshot: dict[str, Any]) -> dict[str, Any]:
        return {
            "goal": snapshot.get("goal"),
            "status": snapshot.get("status"),
            "answer": snapshot.get("final_answer"),
        }

    def push(self, snapshot: Optional[dict[str, Any]]) -> None:
        """Schedule a push; returns immediately."""
        if snapshot is None or self.circuit_open:
            return
        task = asyncio.create_task(self.send(self.payload(snapshot)))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def send(self, payload: dict[str, Any]) -> bool:
        """
        POST one payload.

        Returns:
            True when the companion answered ``{"status": "OK"}``
        """
        if self.circuit_open:
            return False
        try:
            response = await self._client.post(self.url, json=payload)
            response.raise_for_status()
            body = response.json()
            if not isinstance(body, dict) or body.get("status") != "OK":
                raise ValueError(f"unexpected reply {body!r:.200}")
        except (httpx.HTTPError, ValueError) as e:
            self._trip(e)
            return False

        if self._failing:
            logger.info("Companion relay reachable again")
        self._failing = False
        return True

    def _trip(self, error: Exception) -> None:
        self._open_until = time.monotonic() + self.cooldown
        if not self._failing:
            logger.warning("Companion relay push failed, pausing for %.0fs: %s", self.cooldown, error)
        else:
            logger.debug("Companion relay push failed again: %s", error)
        self._failing = True

    async def drain(self) -> None:
        """Wait for pushes still in flight."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    async def aclose(self) -> None:
        await self.drain()
        if self._owns_client:
            await self._client.aclose()


def create_companion(settings: AgentSettings) -> Optional[CompanionRelay]:
    """
    Factory function to create the relay configured in settings.

    Returns:
        CompanionRelay, or None when no companion URL is configured
    """
    if not settings.companion_url:
        return None
    return CompanionRelay(settings.companion_url, cooldown=settings.companion_cooldown)
