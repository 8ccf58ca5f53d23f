"""Promoto — AI Provider Selection."""

from typing import Dict, Tuple, Type

from promoto.ai.base_provider import AIProvider
from promoto.ai.claude_provider import ClaudeProvider
from promoto.ai.openai_provider import OpenAIProvider
from promoto.ai.sarvam_provider import SarvamProvider
from promoto.config import settings
from promoto.core.errors import ConfigurationError

PROVIDERS: Dict[str, Type[AIProvider]] = {
    "claude": ClaudeProvider,
    "openai": OpenAIProvider,
    "sarvam": SarvamProvider,
}


def select_provider(provider_name: str = "auto") -> Tuple[str, AIProvider]:
    """Select and return an available AI provider.

    When provider_name is 'auto', tries DEFAULT_AI_PROVIDER first,
    then falls through remaining providers.
    """
    if provider_name == "auto":
        default = settings.default_ai_provider
        if default in PROVIDERS:
            p = PROVIDERS[default]()
            if p.is_available():
                return default, p
        for name, cls in PROVIDERS.items():
            if name == default:
                continue  # already tried
            provider = cls()
            if provider.is_available():
                return name, provider
        raise ConfigurationError(
            "No AI provider configured. Set ANTHROPIC_API_KEY, OPENAI_API_KEY, or SARVAM_API_KEY in .env."
        )
    if provider_name in PROVIDERS:
        provider = PROVIDERS[provider_name]()
        if not provider.is_available():
            raise ConfigurationError(f"{provider_name} provider not configured.")
        return provider_name, provider
    raise ConfigurationError(f"Unknown provider: {provider_name}.")
