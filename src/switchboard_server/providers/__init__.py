"""LLM provider adapters.

This package provides one adapter per backend behind the ProviderAdapter
protocol. All vendor calls are async.
"""

from switchboard_server.providers.anthropic import AnthropicAdapter
from switchboard_server.providers.base import (
    BaseProviderAdapter,
    HttpProviderAdapter,
    ProviderAdapter,
)
from switchboard_server.providers.factory import build_providers
from switchboard_server.providers.google import GoogleAdapter
from switchboard_server.providers.ollama import OllamaAdapter
from switchboard_server.providers.openai_compat import OpenAICompatibleAdapter
from switchboard_server.providers.types import Model, ProviderProfile

__all__ = [
    "AnthropicAdapter",
    "BaseProviderAdapter",
    "GoogleAdapter",
    "HttpProviderAdapter",
    "Model",
    "OllamaAdapter",
    "OpenAICompatibleAdapter",
    "ProviderAdapter",
    "ProviderProfile",
    "build_providers",
]
