"""
LLM Provider Factory

Factory functions for creating LLM provider instances and the
DecisionClient that wraps them.
"""

import os
from typing import Optional
from dotenv import load_dotenv

from ..config import AgentSettings
from .client import DecisionClient
from .provider import LLMConfig, LLMProvider, ModelTier
from .anthropic_provider import AnthropicProvider
from .openai_compatible_provider import OpenAICompatibleProvider

# Load environment variables
load_dotenv()


def _tier_models_from_env() -> dict[ModelTier, str]:
    return {
        ModelTier.SONNET: os.getenv("PLANNER_MODEL", "claude-sonnet-4-20250514"),
        ModelTier.HAIKU: os.getenv("FAST_MODEL", "claude-haiku-4-20250514"),
        ModelTier.OPUS: os.getenv("SYNTHESIS_MODEL", "claude-opus-4-20250514"),
    }


def create_provider_from_env() -> LLMProvider:
    """
    Create an LLM provider instance from environment variables.

    Reads configuration from .env file:
    - ANTHROPIC_API_KEY: Anthropic API key (for AnthropicProvider)
    - OPENAI_API_BASE + OPENAI_API_KEY: OpenAI-compatible endpoint
    - PLANNER_MODEL, FAST_MODEL, SYNTHESIS_MODEL: Model tier mappings

    Returns:
        Configured LLM provider instance
    """
    base_url = os.getenv("OPENAI_API_BASE")
    api_key = os.getenv("OPENAI_API_KEY")

    if base_url and api_key:
        config = LLMConfig(
            api_key=api_key,
            base_url=base_url,
            provider_type="openai-compatible",
            model=os.getenv("PLANNER_MODEL", "claude-sonnet-4-20250514"),
            tier_models=_tier_models_from_env(),
        )
        return OpenAICompatibleProvider(config)

    api_key = os.getenv("ANTHROPIC_API_KEY")
    if not api_key:
        raise ValueError(
            "No LLM provider configured. Set either:\n"
            "  - ANTHROPIC_API_KEY for Anthropic Claude\n"
            "  - OPENAI_API_BASE + OPENAI_API_KEY for OpenAI-compatible provider"
        )

    config = LLMConfig(
        api_key=api_key,
        base_url=os.getenv("ANTHROPIC_BASE_URL"),  # Optional, for proxy
        provider_type="anthropic",
        model=os.getenv("PLANNER_MODEL", "claude-sonnet-4-20250514"),
        tier_models=_tier_models_from_env(),
    )

    return AnthropicProvider(config)


def create_provider(
    provider_type: str = "anthropic",
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
    model: str = "claude-sonnet-4-20250514",
    tier_models: Optional[dict[ModelTier, str]] = None,
    **kwargs,
) -> LLMProvider:
    """
    Create an LLM provider with explicit configuration.

    Args:
        provider_type: "anthropic" or "openai-compatible"
        api_key: API key for the provider
        base_url: Base URL (optional, for proxy or OpenAI-compatible endpoint)
        model: Default model name
        tier_models: Mapping of ModelTier to model names
        **kwargs: Additional LLMConfig parameters

    Returns:
        Configured LLM provider instance
    """
    if tier_models is None:
        tier_models = {
            ModelTier.SONNET: model,
            ModelTier.HAIKU: "claude-haiku-4-20250514",
            ModelTier.OPUS: "claude-opus-4-20250514",
        }

    config = LLMConfig(
        api_key=api_key,
        base_url=base_url,
        model=model,
        tier_models=tier_models,
        provider_type=provider_type,
        **kwargs,
    )

    if provider_type == "openai-compatible":
        return OpenAICompatibleProvider(config)
    return AnthropicProvider(config)


def create_decision_client(
    provider: Optional[LLMProvider] = None,
    settings: Optional[AgentSettings] = None,
) -> DecisionClient:
    """
    Create a DecisionClient with the retry policy from settings.

    Args:
        provider: Provider to wrap (from environment if None)
        settings: Agent settings (from environment if None)

    Returns:
        Configured DecisionClient instance
    """
    settings = settings or AgentSettings.from_env()
    return DecisionClient(
        provider or create_provider_from_env(),
        max_attempts=settings.decision_max_attempts,
        attempt_timeout=settings.decision_attempt_timeout,
        backoff_base=settings.decision_backoff_base,
    )
