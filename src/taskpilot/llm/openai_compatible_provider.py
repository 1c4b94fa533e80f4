"""
OpenAI-Compatible LLM Provider

Universal provider for any API that follows the OpenAI API format.
Supports OpenRouter, local models (Ollama, LM Studio), and other
OpenAI-compatible services.
"""

from typing import List, Any, Optional

import httpx

from .errors import (
    DecisionServiceError,
    TransientServiceError,
    classify_status,
)
from .provider import (
    LLMProvider,
    LLMConfig,
    LLMResponse,
    Message,
    ModelTier,
)


class OpenAICompatibleProvider(LLMProvider):
    """
    OpenAI-compatible API provider.

    Works with any API that follows the OpenAI chat completion format:
    - OpenRouter (https://openrouter.ai)
    - Local models (Ollama, LM Studio)
    - Other OpenAI-compatible services

    Web search is not part of the generic protocol; use_search is
    accepted and ignored.
    """

    def __init__(self, config: LLMConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(config)
        self._client: Optional[httpx.AsyncClient] = None
        self._transport = transport

    async def initialize(self) -> None:
        """Initialize the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                headers={
                    "Authorization": f"Bearer {self.config.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self.config.timeout,
                transport=self._transport,
            )

    async def complete(
        self,
        messages: List[Message],
        tier: Optional[ModelTier] = None,
        *,
        json_mode: bool = False,
        use_search: bool = False,
        **kwargs: Any,
    ) -> LLMResponse:
        """
        Generate a completion using OpenAI-compatible API.

        Args:
            messages: List of chat messages
            tier: Model tier to use
            json_mode: Request response_format json_object
            use_search: Ignored by this provider
            **kwargs: Additional parameters

        Returns:
            LLMResponse with generated content
        """
        await self.initialize()

        model = self.get_model_for_tier(tier)

        openai_messages = [
            {"role": msg.role, "content": msg.content}
            for msg in messages
        ]

        payload = {
            "model": model,
            "messages": openai_messages,
            "max_tokens": kwargs.get("max_tokens", self.config.max_tokens),
            "temperature": kwargs.get("temperature", self.config.temperature),
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        try:
            response = await self._client.post("/chat/completions", json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            raise TransientServiceError(
                f"LLM request timed out after {self.config.timeout}s"
            ) from e
        except httpx.HTTPStatusError as e:
            raise classify_status(e.response.status_code, e.response.text) from e
        except httpx.TransportError as e:
            raise TransientServiceError(f"Decision service unreachable: {e}") from e
        except ValueError as e:
            raise DecisionServiceError(f"Decision service returned non-JSON body: {e}") from e

        try:
            choice = data["choices"][0]
            content = choice["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise DecisionServiceError(f"Unexpected completion payload: {data!r:.300}") from e

        usage = data.get("usage") or {}
        return LLMResponse(
            content=content,
            model=data.get("model", model),
            usage={
                "prompt_tokens": usage.get("prompt_tokens", 0),
                "completion_tokens": usage.get("completion_tokens", 0),
                "total_tokens": usage.get("total_tokens", 0),
            },
            stop_reason=choice.get("finish_reason"),
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
