"""
Unit tests for the decision service client.

Covers retry/backoff, the per-attempt timeout, capacity exhaustion,
JSON repair and the single remote correction call.
"""

import asyncio
from typing import Any, List, Optional

import pytest

from taskpilot.llm import (
    CapacityExhaustedError,
    DecisionClient,
    DecisionServiceError,
    LLMConfig,
    LLMProvider,
    LLMResponse,
    MalformedResponseError,
    Message,
    ModelTier,
    TransientServiceError,
    classify_status,
    extract_json_block,
    repair_json,
)


class ScriptedProvider(LLMProvider):
    """Provider that replays a script of contents or exceptions."""

    def __init__(self, script: list):
        super().__init__(LLMConfig(api_key="test"))
        self.script = list(script)
        self.calls: list[dict[str, Any]] = []

    async def initialize(self) -> None:
        pass

    async def complete(
        self,
        messages: List[Message],
        tier: Optional[ModelTier] = None,
        *,
        json_mode: bool = False,
        use_search: bool = False,
        **kwargs: Any,
    ) -> LLMResponse:
        self.calls.append({"messages": messages, "tier": tier, "json_mode": json_mode, "use_search": use_search})
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return await item()
        return LLMResponse(content=item, model="test-model")

    async def close(self) -> None:
        pass


@pytest.fixture
def sleeps():
    return []


def make_client(script: list, sleeps: list, **kwargs) -> tuple[DecisionClient, ScriptedProvider]:
    provider = ScriptedProvider(script)

    async def fake_sleep(delay: float) -> None:
        sleeps.append(delay)

    client = DecisionClient(provider, sleep=fake_sleep, jitter=lambda: 0.0, **kwargs)
    return client, provider


class TestJsonRepair:
    """Local repair helpers."""

    def test_extract_object_from_prose(self):
        text = 'Sure! Here it is:\n```json\n{"plan": ["a", "b"]}\n```\nHope that helps.'
        assert extract_json_block(text) == '{"plan": ["a", "b"]}'

    def test_extract_array_when_no_object(self):
        assert extract_json_block("rows: [1, 2, 3] done") == "[1, 2, 3]"

    def test_repair_strips_raw_newlines_inside_strings(self):
        text = '{"summary": "line one\nline two"}'
        assert repair_json(text) == {"summary": "line oneline two"}


class TestRetryPolicy:
    """Retry, backoff and timeout behaviour."""

    @pytest.mark.asyncio
    async def test_transient_errors_are_retried(self, sleeps):
        """Two transient failures then success: three attempts, two backoffs."""
        client, provider = make_client(
            [TransientServiceError("503"), TransientServiceError("429"), '{"ok": true}'],
            sleeps,
            backoff_base=1.0,
        )

        result = await client.call("prompt")

        assert result == {"ok": True}
        assert len(provider.calls) == 3
        assert sleeps == [2.0, 4.0]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, sleeps):
        client, provider = make_client([TransientServiceError("503")] * 3, sleeps, max_attempts=3)

        with pytest.raises(TransientServiceError):
            await client.call("prompt")

        assert len(provider.calls) == 3
        assert len(sleeps) == 2

    @pytest.mark.asyncio
    async def test_capacity_exhaustion_is_not_retried(self, sleeps):
        client, provider = make_client([CapacityExhaustedError("quota")], sleeps)

        with pytest.raises(CapacityExhaustedError):
            await client.call("prompt")

        assert len(provider.calls) == 1
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_non_retryable_error_propagates(self, sleeps):
        client, provider = make_client([DecisionServiceError("bad request", 400)], sleeps)

        with pytest.raises(DecisionServiceError):
            await client.call("prompt")

        assert len(provider.calls) == 1

    @pytest.mark.asyncio
    async def test_attempt_timeout_counts_as_transient(self, sleeps):
        async def hang() -> LLMResponse:
            await asyncio.sleep(10)
            return LLMResponse(content="{}", model="test-model")

        client, provider = make_client([hang, '{"late": false}'], sleeps, attempt_timeout=0.01)

        result = await client.call("prompt")

        assert result == {"late": False}
        assert len(provider.calls) == 2


class TestStructuredResponses:
    """Structured parsing and correction."""

    @pytest.mark.asyncio
    async def test_unstructured_returns_text(self, sleeps):
        client, provider = make_client(["plain words"], sleeps)

        assert await client.call("prompt", structured=False) == "plain words"
        assert provider.calls[0]["json_mode"] is False

    @pytest.mark.asyncio
    async def test_flags_are_forwarded(self, sleeps):
        client, provider = make_client(['{"a": 1}'], sleeps)

        await client.call("prompt", use_search=True, tier=ModelTier.HAIKU)

        call = provider.calls[0]
        assert call["use_search"] is True
        assert call["json_mode"] is True
        assert call["tier"] == ModelTier.HAIKU

    @pytest.mark.asyncio
    async def test_local_repair_avoids_correction_call(self, sleeps):
        client, provider = make_client(['Here you go: {"flow": "Standard_Flow"} thanks'], sleeps)

        assert await client.call("prompt") == {"flow": "Standard_Flow"}
        assert len(provider.calls) == 1

    @pytest.mark.asyncio
    async def test_one_correction_call(self, sleeps):
        client, provider = make_client(["{not json at all", '{"fixed": 1}'], sleeps)

        assert await client.call("prompt") == {"fixed": 1}
        assert len(provider.calls) == 2
        assert "could not be parsed" in provider.calls[1]["messages"][-1].content

    @pytest.mark.asyncio
    async def test_malformed_after_correction(self, sleeps):
        client, provider = make_client(["{broken", "{still broken"], sleeps)

        with pytest.raises(MalformedResponseError):
            await client.call("prompt")

        assert len(provider.calls) == 2


class TestClassifyStatus:
    """HTTP status mapping onto the error taxonomy."""

    def test_rate_limit_is_transient(self):
        assert isinstance(classify_status(429, "slow down"), TransientServiceError)

    def test_quota_body_is_capacity(self):
        assert isinstance(classify_status(429, "You exceeded your current quota"), CapacityExhaustedError)

    def test_payment_required_is_capacity(self):
        assert isinstance(classify_status(402), CapacityExhaustedError)

    def test_bad_request_is_permanent(self):
        error = classify_status(400, "invalid")
        assert type(error) is DecisionServiceError
        assert error.status_code == 400
