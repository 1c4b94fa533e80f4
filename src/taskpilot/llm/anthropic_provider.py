"""
Anthropic Claude LLM Provider

Native implementation for Anthropic's Claude API.
Uses the Anthropic Python SDK and its server-side web search tool
for grounded research calls.
"""

from typing import List, Any, Optional

import anthropic
from anthropic import AsyncAnthropic
from anthropic.types import Message as AnthropicMessage

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

WEB_SEARCH_TOOL = {"type": "web_search_20250305", "name": "web_search", "max_uses": 5}


class AnthropicProvider(LLMProvider):
    """
    Anthropic Claude API provider.

    Provides native integration with Anthropic's Claude models
    using the official Anthropic Python SDK.
    """

    def __init__(self, config: LLMConfig):
        super().__init__(config)
        self._client: Optional[AsyncAnthropic] = None

    async def initialize(self) -> None:
        """Initialize the Anthropic async client."""
        if self._client is None:
            self._client = AsyncAnthropic(
                api_key=self.config.api_key,
                base_url=self.config.base_url,  # Can override for proxy
                timeout=self.config.timeout,
                max_retries=0,  # DecisionClient owns the retry policy
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
        Generate a completion using Anthropic's API.

        Args:
            messages: List of chat messages
            tier: Model tier to use (sonnet/haiku/opus)
            json_mode: Append a JSON-only instruction to the system prompt
            use_search: Attach the web search server tool
            **kwargs: Additional parameters (max_tokens, temperature, etc.)

        Returns:
            LLMResponse with generated content
        """
        await self.initialize()

        model = self.get_model_for_tier(tier)

        # Anthropic takes the system prompt separately
        system_message = None
        anthropic_messages = []

        for msg in messages:
            if msg.role == "system":
                system_message = msg.content
            else:
                anthropic_messages.append(
                    {"role": msg.role, "content": msg.content}
                )

        if json_mode:
            instruction = "Respond with a single valid JSON value and nothing else."
            system_message = f"{system_message}\n\n{instruction}" if system_message else instruction

        params = {
            "model": model,
            "messages": anthropic_messages,
            "max_tokens": kwargs.get("max_tokens", self.config.max_tokens),
            "temperature": kwargs.get("temperature", self.config.temperature),
        }

        if system_message:
            params["system"] = system_message
        if use_search:
            params["tools"] = [WEB_SEARCH_TOOL]

        try:
            response: AnthropicMessage = await self._client.messages.create(**params)
        except (anthropic.APITimeoutError, anthropic.APIConnectionError) as e:
            raise TransientServiceError(f"Decision service unreachable: {e}") from e
        except anthropic.APIStatusError as e:
            raise classify_status(e.status_code, str(e.message)) from e
        except anthropic.AnthropicError as e:
            raise DecisionServiceError(f"Decision service error: {e}") from e

        # Search responses interleave tool blocks with text blocks
        content = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )

        return LLMResponse(
            content=content,
            model=response.model,
            usage={
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
                "total_tokens": response.usage.input_tokens + response.usage.output_tokens,
            },
            stop_reason=response.stop_reason,
        )

    async def close(self) -> None:
        """Close the Anthropic client."""
        if self._client:
            await self._client.close()
            self._client = None
