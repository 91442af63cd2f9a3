"""Conversation orchestration across providers and capabilities.

The Gateway sends a conversation to a provider adapter and, when the model
requests tools, executes them and re-asks the model until it answers without
tool calls. The tool loop is a bounded while loop.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Sequence, Union

from switchboard_server.conversation import Conversation, Message
from switchboard_server.errors import (
    CapabilityNotFoundError,
    ToolLoopLimitError,
    TransportError,
)
from switchboard_server.providers.base import DeltaCallback, ProviderAdapter, emit_delta
from switchboard_server.tools import (
    CapabilityDescriptor,
    CapabilityRegistry,
    CapabilityResult,
)
from switchboard_server.toolserver.lifecycle import ToolServerLifecycle

logger = logging.getLogger(__name__)

MessageCallback = Callable[[Message], Union[Awaitable[None], None]]
CapabilityRef = Union[str, CapabilityDescriptor]


class Gateway:
    """Runs conversations, including multi-step tool calling.

    Attributes:
        registry: In-process capability registry
        tool_server: Optional tool server lifecycle for out-of-process tools
        max_tool_iterations: Maximum number of tool rounds per converse()
        transport_retries: Retries of a provider call after a TransportError
        transport_retry_backoff: Base delay in seconds, doubled per retry
    """

    def __init__(
        self,
        registry: CapabilityRegistry,
        tool_server: ToolServerLifecycle | None = None,
        *,
        max_tool_iterations: int = 10,
        transport_retries: int = 1,
        transport_retry_backoff: float = 0.5,
    ) -> None:
        self.registry = registry
        self.tool_server = tool_server
        self.max_tool_iterations = max_tool_iterations
        self.transport_retries = transport_retries
        self.transport_retry_backoff = transport_retry_backoff

    async def converse(
        self,
        conversation: Conversation,
        provider: ProviderAdapter,
        capabilities: Sequence[CapabilityRef] | None = None,
        *,
        system_prompt: str | None = None,
        on_delta: DeltaCallback | None = None,
        on_message: MessageCallback | None = None,
    ) -> Conversation:
        """Continue a conversation with one provider.

        The caller's conversation is not modified; the extended copy is
        returned.

        Args:
            conversation: The conversation so far
            provider: The adapter to send it to
            capabilities: Capability names (or descriptors) the model may call
            system_prompt: Optional system prompt
            on_delta: Streams partial text when no capabilities are offered
            on_message: Called with every message appended to the conversation

        Returns:
            Conversation: The conversation extended with the new messages

        Raises:
            AuthError, UnsupportedCapabilityError, ProtocolError: Immediately
            TransportError: After the configured retries
            CapabilityNotFoundError: If a named capability is unknown
            ToolLoopLimitError: If the model keeps requesting tools
        """
        working = conversation.copy()

        if not capabilities:
            if on_delta is not None:
                reply = await self._send_streaming(working, provider, system_prompt, on_delta)
            else:
                reply = await self._with_retry(
                    provider, lambda: provider.send_message(working, system_prompt)
                )
            await self._append(working, reply, on_message)
            return working

        descriptors = self.resolve_capabilities(capabilities)
        rounds = 0
        while True:
            reply = await self._with_retry(
                provider,
                lambda: provider.send_message_with_tools(working, descriptors, system_prompt),
            )
            await self._append(working, reply, on_message)
            if not reply.tool_calls:
                return working

            if rounds >= self.max_tool_iterations:
                raise ToolLoopLimitError(
                    f"Model still requested tools after {rounds} rounds",
                    provider=provider.provider_name,
                    conversation=working,
                )
            rounds += 1

            for call in reply.tool_calls:
                logger.info(f"Executing tool {call.name} (round {rounds})")
                result = await self.execute_tool(call.name, call.arguments)
                await self._append(
                    working, Message.tool(result.serialize(), call.id, call.name), on_message
                )

    def resolve_capabilities(
        self, capabilities: Sequence[CapabilityRef]
    ) -> list[CapabilityDescriptor]:
        """Turn capability names into descriptors.

        Names are looked up in the registry first, then among the tools
        hosted by a running tool server.

        Raises:
            CapabilityNotFoundError: If a name is unknown to both
        """
        hosted = {}
        if self.tool_server is not None:
            hosted = {d.name: d for d in self.tool_server.hosted_capabilities}

        descriptors = []
        for capability in capabilities:
            if isinstance(capability, CapabilityDescriptor):
                descriptors.append(capability)
            elif self.registry.has(capability):
                descriptors.extend(self.registry.describe([capability]))
            elif capability in hosted:
                descriptors.append(hosted[capability])
            else:
                raise CapabilityNotFoundError(
                    f"Capability '{capability}' is not registered", capability=capability
                )
        return descriptors

    def available_capabilities(self) -> list[CapabilityDescriptor]:
        """Every capability the gateway can currently execute."""
        descriptors = self.registry.describe_all()
        if self.tool_server is not None:
            names = {d.name for d in descriptors}
            descriptors.extend(
                d for d in self.tool_server.hosted_capabilities if d.name not in names
            )
        return descriptors

    async def execute_tool(self, name: str, arguments: dict[str, Any]) -> CapabilityResult:
        """Execute one tool call; failures are returned, never raised."""
        if self.registry.has(name):
            return await self.registry.execute(name, arguments)

        if self.tool_server is not None and self.tool_server.hosts(name):
            try:
                return await self.tool_server.execute(name, arguments)
            except TransportError as e:
                logger.warning(f"Tool server execution of {name} failed: {e}")
                return CapabilityResult.error(e.message)

        return CapabilityResult.error(f"Capability '{name}' is not available")

    async def _send_streaming(
        self,
        conversation: Conversation,
        provider: ProviderAdapter,
        system_prompt: str | None,
        on_delta: DeltaCallback,
    ) -> Message:
        delivered = False

        async def forward(text: str) -> None:
            nonlocal delivered
            delivered = True
            await emit_delta(on_delta, text)

        return await self._with_retry(
            provider,
            lambda: provider.send_message_streaming(conversation, system_prompt, forward),
            retryable=lambda: not delivered,
        )

    async def _with_retry(
        self,
        provider: ProviderAdapter,
        call: Callable[[], Awaitable[Message]],
        retryable: Callable[[], bool] = lambda: True,
    ) -> Message:
        attempt = 0
        while True:
            try:
                return await call()
            except TransportError as e:
                if attempt >= self.transport_retries or not retryable():
                    raise
                delay = self.transport_retry_backoff * (2**attempt)
                attempt += 1
                logger.warning(
                    f"{provider.provider_name} transport error "
                    f"(attempt {attempt}/{self.transport_retries + 1}), "
                    f"retrying in {delay:.2f}s: {e}"
                )
                await asyncio.sleep(delay)

    @staticmethod
    async def _append(
        conversation: Conversation, message: Message, on_message: MessageCallback | None
    ) -> None:
        conversation.append(message)
        if on_message is not None:
            outcome = on_message(message)
            if inspect.isawaitable(outcome):
                await outcome
