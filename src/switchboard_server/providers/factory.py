"""Construction of the configured provider adapters."""

import logging

from switchboard_server.config import SwitchboardSettings
from switchboard_server.providers.anthropic import AnthropicAdapter
from switchboard_server.providers.base import ProviderAdapter
from switchboard_server.providers.google import GoogleAdapter
from switchboard_server.providers.ollama import OllamaAdapter
from switchboard_server.providers.openai_compat import OpenAICompatibleAdapter

logger = logging.getLogger(__name__)


def build_providers(settings: SwitchboardSettings) -> list[ProviderAdapter]:
    """Create one adapter per supported backend.

    Adapters are created even without an API key so a key can be supplied
    later through set_api_key().

    Args:
        settings: Application settings

    Returns:
        list[ProviderAdapter]: Adapters in preference order
    """
    timeout = settings.request_timeout

    openrouter_headers = {"X-Title": settings.openrouter_title}
    if settings.openrouter_referer:
        openrouter_headers["HTTP-Referer"] = settings.openrouter_referer

    providers: list[ProviderAdapter] = [
        OpenAICompatibleAdapter(
            "openai",
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            timeout=timeout,
        ),
        AnthropicAdapter(
            api_key=settings.anthropic_api_key,
            base_url=settings.anthropic_base_url,
            timeout=timeout,
            max_tokens=settings.anthropic_max_tokens,
        ),
        GoogleAdapter(
            api_key=settings.google_api_key,
            base_url=settings.google_base_url,
            timeout=timeout,
        ),
        OpenAICompatibleAdapter(
            "openrouter",
            api_key=settings.openrouter_api_key,
            base_url=settings.openrouter_base_url,
            timeout=timeout,
            extra_headers=openrouter_headers,
        ),
        OpenAICompatibleAdapter(
            "meta",
            api_key=settings.meta_api_key,
            base_url=settings.meta_base_url,
            timeout=timeout,
        ),
    ]

    if settings.ollama_enabled:
        providers.append(
            OllamaAdapter(
                host=settings.ollama_host,
                default_model=settings.ollama_default_model,
                timeout=timeout,
            )
        )

    logger.debug(f"Built {len(providers)} provider adapters")
    return providers
