"""
Unit tests for the companion relay.
"""

import json

import httpx
import pytest

from taskpilot.companion import CompanionRelay, create_companion
from taskpilot.config import AgentSettings

SNAPSHOT = {"goal": "Book a table", "status": "COMPLETED", "final_answer": "Booked for 8pm", "scratchpad": ["x"]}


class TestCompanionRelay:
    """Fire-and-forget pushes with a cooldown circuit."""

    @pytest.mark.asyncio
    async def test_push_posts_goal_status_answer(self):
        received = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append(json.loads(request.content))
            return httpx.Response(200, json={"status": "OK"})

        relay = CompanionRelay("https://companion.example/task", transport=httpx.MockTransport(handler))
        relay.push(SNAPSHOT)
        await relay.aclose()

        assert received == [{"goal": "Book a table", "status": "COMPLETED", "answer": "Booked for 8pm"}]

    @pytest.mark.asyncio
    async def test_failure_opens_circuit(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(503)

        relay = CompanionRelay("https://companion.example/task", cooldown=60, transport=httpx.MockTransport(handler))
        assert await relay.send(relay.payload(SNAPSHOT)) is False
        assert relay.circuit_open

        relay.push(SNAPSHOT)
        assert await relay.send(relay.payload(SNAPSHOT)) is False
        await relay.aclose()

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_reply_must_be_ok(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"status": "BUSY"}))
        relay = CompanionRelay("https://companion.example/task", transport=transport)

        assert await relay.send(relay.payload(SNAPSHOT)) is False
        await relay.aclose()

    @pytest.mark.asyncio
    async def test_circuit_closes_after_cooldown(self):
        replies = [httpx.Response(500), httpx.Response(200, json={"status": "OK"})]
        transport = httpx.MockTransport(lambda request: replies.pop(0))
        relay = CompanionRelay("https://companion.example/task", cooldown=0, transport=transport)

        assert await relay.send(relay.payload(SNAPSHOT)) is False
        assert await relay.send(relay.payload(SNAPSHOT)) is True
        await relay.aclose()

    @pytest.mark.asyncio
    async def test_none_snapshot_is_ignored(self):
        transport = httpx.MockTransport(lambda request: pytest.fail("no request expected"))
        relay = CompanionRelay("https://companion.example/task", transport=transport)
        relay.push(None)
        await relay.aclose()


class TestCreateCompanion:

    def test_disabled_without_url(self):
        assert create_companion(AgentSettings()) is None

    def test_uses_settings(self):
        relay = create_companion(AgentSettings(companion_url="https://c.example", companion_cooldown=9))
        assert relay.url == "https://c.example"
        assert relay.cooldown == 9
