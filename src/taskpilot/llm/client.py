"""
Decision Service Client

Single entry point every decision role uses to talk to the LLM backend.

Responsibilities:
- Bounded retry with exponential backoff and jitter for transient failures
- A hard timeout per attempt
- Structured (JSON) responses with local repair and exactly one
  remote correction call before giving up

Capacity exhaustion is surfaced immediately so the orchestrator can end
the task gracefully instead of burning attempts.
"""

import asyncio
import json
import logging
import random
from typing import Any, Awaitable, Callable, Optional

from .errors import (
    CapacityExhaustedError,
    DecisionServiceError,
    MalformedResponseError,
    TransientServiceError,
)
from .provider import LLMProvider, Message, ModelTier

logger = logging.getLogger(__name__)

REPAIR_PROMPT = """The following text was supposed to be valid JSON but it could not be parsed.
Return the same content as strictly valid JSON. Do not add commentary,
code fences or explanations.

Text:
{text}"""


def extract_json_block(text: str) -> str:
    """
    Cut the outermost JSON object or array out of a free-text answer.

    Objects win over arrays when both are present, matching how decision
    answers are shaped (objects at top level, arrays only for tables).

    Args:
        text: Raw model output

    Returns:
        The substring from the first opening bracket to the last closing one,
        or the stripped input when no bracket pair is found
    """
    for opener, closer in (("{", "}"), ("[", "]")):
        start = text.find(opener)
        end = text.rfind(closer)
        if start != -1 and end > start:
            return text[start:end + 1]
    return text.strip()


def strip_control_chars(text: str) -> str:
    """Remove raw newlines, carriage returns and tabs that break JSON strings."""
    return text.replace("\n", "").replace("\r", "").replace("\t", "")


def repair_json(text: str) -> Any:
    """
    Parse JSON after local repair.

    Raises:
        json.JSONDecodeError: When the repaired text is still invalid
    """
    return json.loads(strip_control_chars(extract_json_block(text)))


class DecisionClient:
    """
    Retrying, self-repairing wrapper around an LLMProvider.

    Usage:
        >>> client = DecisionClient(provider)
        >>> data = await client.call("Classify this goal ...")
        >>> text = await client.call("Summarize ...", structured=False)
    """

    def __init__(
        self,
        provider: LLMProvider,
        max_attempts: int = 5,
        attempt_timeout: float = 90.0,
        backoff_base: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        jitter: Callable[[], float] = random.random,
    ):
        """
        Initialize the client.

        Args:
            provider: Transport used for every attempt
            max_attempts: Attempts per call before giving up
            attempt_timeout: Seconds each attempt may take
            backoff_base: Base delay in seconds for the backoff formula
            sleep: Awaitable sleep (injectable for tests)
            jitter: Source of [0, 1) jitter (injectable for tests)
        """
        self.provider = provider
        self.max_attempts = max_attempts
        self.attempt_timeout = attempt_timeout
        self.backoff_base = backoff_base
        self._sleep = sleep
        self._jitter = jitter

    def backoff_delay(self, attempt: int) -> float:
        """Delay before the next attempt: 2**attempt * base plus up to one base of jitter."""
        return (2 ** attempt) * self.backoff_base + self._jitter() * self.backoff_base

    async def call(
        self,
        prompt: str,
        *,
        structured: bool = True,
        use_search: bool = False,
        tier: Optional[ModelTier] = None,
        system: Optional[str] = None,
    ) -> Any:
        """
        Send one decision request.

        Args:
            prompt: User prompt
            structured: Parse and return JSON instead of raw text
            use_search: Let the backend consult web search
            tier: Model tier override
            system: Optional system prompt

        Returns:
            Parsed JSON (dict or list) when structured, else the text

        Raises:
            CapacityExhaustedError: Quota exhausted (never retried)
            TransientServiceError: All attempts failed transiently
            MalformedResponseError: JSON could not be recovered
            DecisionServiceError: Non-retryable service failure
        """
        text = await self._send(
            prompt, structured=structured, use_search=use_search, tier=tier, system=system
        )
        if not structured:
            return text
        return await self._parse_structured(text, tier=tier)

    async def _send(
        self,
        prompt: str,
        *,
        structured: bool,
        use_search: bool,
        tier: Optional[ModelTier],
        system: Optional[str],
    ) -> str:
        messages = []
        if system:
            messages.append(Message(role="system", content=system))
        messages.append(Message(role="user", content=prompt))

        last_error: Optional[DecisionServiceError] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                response = await asyncio.wait_for(
                    self.provider.complete(
                        messages, tier, json_mode=structured, use_search=use_search
                    ),
                    timeout=self.attempt_timeout,
                )
                return response.content
            except asyncio.TimeoutError:
                last_error = TransientServiceError(
                    f"Decision call timed out after {self.attempt_timeout}s"
                )
            except CapacityExhaustedError:
                raise
            except TransientServiceError as e:
                last_error = e
            except DecisionServiceError:
                raise

            if attempt < self.max_attempts:
                delay = self.backoff_delay(attempt)
                logger.warning(
                    "Decision call attempt %d/%d failed (%s), retrying in %.1fs",
                    attempt, self.max_attempts, last_error, delay,
                )
                await self._sleep(delay)

        raise TransientServiceError(
            f"Decision call failed after {self.max_attempts} attempts: {last_error}"
        )

    async def _parse_structured(self, text: str, tier: Optional[ModelTier]) -> Any:
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            pass

        try:
            return repair_json(text)
        except json.JSONDecodeError:
            logger.warning("Local JSON repair failed, asking the decision service to correct it")

        corrected = await self._send(
            REPAIR_PROMPT.format(text=text),
            structured=True,
            use_search=False,
            tier=tier,
            system=None,
        )
        try:
            return json.loads(extract_json_block(corrected))
        except json.JSONDecodeError as e:
            raise MalformedResponseError(
                f"Decision response is not valid JSON after correction: {e}"
            ) from e
