"""Pytest configuration and shared fixtures for switchboard-server tests.

This module provides common fixtures used across all test modules,
including a scripted provider adapter, test app creation and async client
setup.
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from switchboard_server import create_app
from switchboard_server.config import SwitchboardSettings
from switchboard_server.conversation import Message
from switchboard_server.errors import GatewayError
from switchboard_server.providers import BaseProviderAdapter, Model, ProviderProfile
from switchboard_server.providers.base import emit_delta
from switchboard_server.tools import FunctionCapabilityProvider


class StreamFailure:
    """Scripted streaming reply that emits chunks and then fails."""

    def __init__(self, chunks, error):
        self.chunks = list(chunks)
        self.error = error


class ScriptedProvider(BaseProviderAdapter):
    """Provider adapter replaying a fixed list of replies.

    Each reply is a Message, a GatewayError to raise, or (for streaming) a
    StreamFailure. Streamed messages are delivered word by word.
    """

    def __init__(self, replies=(), name="scripted", tools=True, requires_api_key=False):
        super().__init__(
            ProviderProfile(
                name=name,
                requires_api_key=requires_api_key,
                available_models=[
                    Model("scripted-1", supports_tool_calls=tools),
                    Model("scripted-2", supports_tool_calls=tools),
                ],
            )
        )
        self.replies = list(replies)
        self.calls = []

    def _next(self):
        if not self.replies:
            raise AssertionError(f"{self.provider_name} ran out of scripted replies")
        item = self.replies.pop(0)
        if isinstance(item, GatewayError):
            raise item
        return item

    async def send_message(self, conversation, system_prompt=None):
        self.calls.append(("send", conversation.copy(), None))
        return self._next()

    async def send_message_with_tools(self, conversation, capabilities, system_prompt=None):
        self._require_tool_support()
        self.calls.append(("tools", conversation.copy(), [c.name for c in capabilities]))
        return self._next()

    async def send_message_streaming(self, conversation, system_prompt=None, on_delta=None):
        self.calls.append(("stream", conversation.copy(), None))
        item = self._next()
        if isinstance(item, StreamFailure):
            for chunk in item.chunks:
                await emit_delta(on_delta, chunk)
            raise item.error
        words = item.content.split(" ")
        for i, word in enumerate(words):
            await emit_delta(on_delta, word if i == 0 else f" {word}")
        return item


def reply(content="", tool_calls=()):
    """Build a scripted assistant reply."""
    return Message.assistant(content, tool_calls=tool_calls, model="scripted-1")


@pytest.fixture
def scripted_provider():
    """Factory for ScriptedProvider instances."""
    return ScriptedProvider


@pytest.fixture
def stream_failure():
    return StreamFailure


@pytest.fixture
def make_reply():
    return reply


@pytest.fixture
def math_tools():
    """Capability provider exposing add and a failing divide."""
    provider = FunctionCapabilityProvider("math")

    @provider.capability(description="Add two integers")
    def add(a: int, b: int) -> int:
        return a + b

    @provider.capability(description="Divide a by b")
    def divide(a: float, b: float) -> float:
        return a / b

    return provider


@pytest.fixture
def test_settings():
    """Create test settings without external side effects.

    Returns:
        SwitchboardSettings: Settings instance configured for testing.
    """
    return SwitchboardSettings(
        host="127.0.0.1",
        port=8000,
        default_provider=None,
        model_refresh_interval=0,
        transport_retries=1,
        transport_retry_backoff=0,
        tool_server_enabled=True,
        tool_server_autostart=False,
        capability_providers=[],
        log_level="DEBUG",
        cors_origins=["*"],
    )


@pytest.fixture
def test_providers():
    """Provider adapters injected into the test app."""
    return [ScriptedProvider(name="scripted"), ScriptedProvider(name="backup")]


@pytest.fixture
def test_app(test_settings, test_providers, math_tools):
    """Create a FastAPI test application instance.

    Returns:
        FastAPI: Configured test application.
    """
    return create_app(
        settings=test_settings,
        provider_adapters=test_providers,
        capability_providers=[math_tools],
    )


@pytest_asyncio.fixture
async def async_client(test_app):
    """Create an async HTTP client for testing FastAPI endpoints.

    Yields:
        AsyncClient: Async HTTP client for making test requests.
    """
    # Trigger the lifespan startup manually for tests
    async with test_app.router.lifespan_context(test_app):
        transport = ASGITransport(app=test_app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
