"""
LLM Provider Abstraction

Supports multiple LLM providers through a unified interface:
- Anthropic Claude (native, with web search)
- OpenAI-compatible APIs (OpenRouter, local models, etc.)

DecisionClient adds retry, timeout and JSON repair on top of a provider.
"""

from .provider import LLMProvider, LLMConfig, ModelTier, Message, LLMResponse
from .errors import (
    DecisionServiceError,
    TransientServiceError,
    CapacityExhaustedError,
    MalformedResponseError,
    classify_status,
)
from .anthropic_provider import AnthropicProvider
from .openai_compatible_provider import OpenAICompatibleProvider
from .client import DecisionClient, extract_json_block, repair_json
from .factory import create_provider_from_env, create_provider, create_decision_client

__all__ = [
    "LLMProvider",
    "LLMConfig",
    "ModelTier",
    "Message",
    "LLMResponse",
    "DecisionServiceError",
    "TransientServiceError",
    "CapacityExhaustedError",
    "MalformedResponseError",
    "classify_status",
    "AnthropicProvider",
    "OpenAICompatibleProvider",
    "DecisionClient",
    "extract_json_block",
    "repair_json",
    "create_provider_from_env",
    "create_provider",
    "create_decision_client",
]
