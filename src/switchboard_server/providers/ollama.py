"""Adapter for a local Ollama daemon.

This adapter wraps ollama.AsyncClient instead of speaking HTTP directly. It
needs no credential and learns its model list from the daemon itself.
"""

import logging
from typing import Any, AsyncIterator, Sequence

import httpx
import ollama

from switchboard_server.conversation import (
    Conversation,
    Message,
    Role,
    ToolCallRequest,
    Usage,
    new_tool_call_id,
    parse_arguments,
)
from switchboard_server.errors import (
    AuthError,
    GatewayError,
    ProtocolError,
    TransportError,
)
from switchboard_server.providers.base import (
    RETRYABLE_STATUS_CODES,
    BaseProviderAdapter,
    DeltaCallback,
    emit_delta,
)
from switchboard_server.providers.common import (
    OPENAI_ROLES,
    render_function_tools,
    role_from_wire,
)
from switchboard_server.providers.types import Model, ProviderProfile
from switchboard_server.streaming import MessageAssembler, OllamaStreamDecoder, StreamEvent
from switchboard_server.tools.types import CapabilityDescriptor

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT_LENGTH = 2048


def _get_value(obj: Any, key: str, default: Any = None) -> Any:
    """Read a field from either an ollama response object or a dict."""
    if hasattr(obj, key):
        return getattr(obj, key, default)
    if isinstance(obj, dict):
        return obj.get(key, default)
    return default


def _as_dict(obj: Any) -> dict[str, Any]:
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if isinstance(obj, dict):
        return obj
    return vars(obj)


def model_from_show(model_name: str, show_response: Any) -> Model:
    """Build a Model from an ollama show() response.

    The context length is read from the family-specific modelinfo key
    (e.g., "llama.context_length") and defaults to 2048.
    """
    capabilities = _get_value(show_response, "capabilities") or ["completion"]
    details = _get_value(show_response, "details", {})
    family = _get_value(details, "family", "unknown")
    modelinfo = _get_value(show_response, "modelinfo") or {}

    context_length = DEFAULT_CONTEXT_LENGTH
    context_key = f"{family}.context_length"
    if isinstance(modelinfo, dict) and context_key in modelinfo:
        context_length = int(modelinfo[context_key])
    elif isinstance(modelinfo, dict) and "context_length" in modelinfo:
        context_length = int(modelinfo["context_length"])

    return Model(
        id=model_name,
        name=model_name,
        context_length=context_length,
        supports_tool_calls="tools" in capabilities,
        supports_vision="vision" in capabilities,
    )


class OllamaAdapter(BaseProviderAdapter):
    """Adapter for models served by Ollama.

    Attributes:
        host: The Ollama server URL (e.g., "http://localhost:11434")
    """

    def __init__(
        self,
        *,
        host: str = "http://localhost:11434",
        default_model: str | None = None,
        timeout: float = 60.0,
        client: ollama.AsyncClient | None = None,
    ) -> None:
        """Initialize the adapter.

        Args:
            host: The Ollama server URL
            default_model: Model to select before the daemon was queried
            timeout: Request timeout in seconds
            client: Optional pre-built ollama.AsyncClient
        """
        models = (
            [Model(default_model, default_model, DEFAULT_CONTEXT_LENGTH, True, False)]
            if default_model
            else []
        )
        super().__init__(
            ProviderProfile(
                name="ollama",
                requires_api_key=False,
                supports_streaming=True,
                available_models=models,
            )
        )
        self.host = host
        self._owns_client = client is None
        self._client = client or ollama.AsyncClient(host=host, timeout=timeout)
        logger.info(f"OllamaAdapter initialized with host: {host}")

    async def check_connection(self) -> bool:
        """Check if the Ollama server is reachable."""
        try:
            await self._client.list()
            return True
        except Exception as e:
            logger.warning(f"Ollama connection check failed: {e}")
            return False

    async def initialize(self) -> None:
        if not await self.check_connection():
            logger.warning("Could not connect to Ollama - check if server is running")
            return
        await super().initialize()

    async def fetch_available_models(self) -> list[Model]:
        """List completion-capable models from the daemon.

        Embedding-only models are excluded. On failure the cached list is
        returned.
        """
        try:
            response = await self._client.list()
        except Exception as e:
            logger.warning(f"Failed to list Ollama models: {e}")
            return list(self.profile.available_models)

        models: list[Model] = []
        for model_obj in _get_value(response, "models", []):
            model_name = _get_value(model_obj, "model") or _get_value(model_obj, "name")
            if not model_name:
                continue
            try:
                show_response = await self._client.show(model_name)
            except Exception as e:
                logger.warning(f"Failed to get details for model {model_name}: {e}")
                continue

            capabilities = _get_value(show_response, "capabilities") or ["completion"]
            if "completion" not in capabilities:
                logger.debug(f"Skipped non-completion model: {model_name}")
                continue
            models.append(model_from_show(model_name, show_response))

        if models:
            self.profile.replace_models(models)
            logger.info(f"Listed {len(models)} completion-capable Ollama models")
        return list(self.profile.available_models)

    # --- wire translation ---

    def to_wire_messages(
        self, conversation: Conversation, system_prompt: str | None = None
    ) -> list[dict[str, Any]]:
        wire: list[dict[str, Any]] = []
        if system_prompt:
            wire.append({"role": "system", "content": system_prompt})
        for message in conversation:
            item: dict[str, Any] = {
                "role": OPENAI_ROLES[message.role],
                "content": message.content,
            }
            if message.tool_calls:
                item["tool_calls"] = [
                    {
                        "id": call.id,
                        "function": {"name": call.name, "arguments": dict(call.arguments)},
                    }
                    for call in message.tool_calls
                ]
            if message.role is Role.TOOL:
                item["tool_call_id"] = message.tool_call_id
                if message.name:
                    item["tool_name"] = message.name
            wire.append(item)
        return wire

    def from_wire_messages(self, wire: Sequence[dict[str, Any]]) -> Conversation:
        conversation = Conversation()
        pending: list[ToolCallRequest] = []
        for item in wire:
            role = role_from_wire(item["role"], OPENAI_ROLES, self.provider_name)
            if role is Role.TOOL:
                name = item.get("tool_name")
                call_id = item.get("tool_call_id")
                if not call_id:
                    match = next((c for c in pending if c.name == name), None)
                    if match is None and pending:
                        match = pending[0]
                    call_id = match.id if match else new_tool_call_id()
                pending = [c for c in pending if c.id != call_id]
                conversation.append(
                    Message.tool(
                        item.get("content") or "",
                        call_id,
                        name or conversation.tool_call_names().get(call_id),
                    )
                )
            elif role is Role.ASSISTANT:
                calls = self._parse_tool_calls(item.get("tool_calls"))
                pending = list(calls)
                conversation.append(
                    Message.assistant(item.get("content") or "", tool_calls=calls)
                )
            else:
                conversation.append(Message(role=role, content=item.get("content") or ""))
        return conversation

    @staticmethod
    def _parse_tool_calls(raw_calls: Any) -> list[ToolCallRequest]:
        calls = []
        for raw in raw_calls or []:
            raw = _as_dict(raw)
            function = raw.get("function") or {}
            calls.append(
                ToolCallRequest(
                    id=raw.get("id") or new_tool_call_id(),
                    name=function["name"],
                    arguments=parse_arguments(function.get("arguments"), function["name"]),
                )
            )
        return calls

    def _parse_response(self, data: dict[str, Any]) -> Message:
        message = data.get("message")
        if not message:
            raise ProtocolError("Response has no message", provider=self.provider_name)
        usage = None
        if data.get("prompt_eval_count") is not None or data.get("eval_count") is not None:
            usage = Usage(
                prompt_tokens=data.get("prompt_eval_count") or 0,
                completion_tokens=data.get("eval_count") or 0,
            )
        return Message.assistant(
            message.get("content") or "",
            tool_calls=self._parse_tool_calls(message.get("tool_calls")),
            model=data.get("model") or self.model_id,
            usage=usage,
            finish_reason=data.get("done_reason"),
        )

    # --- operations ---

    def _map_error(self, error: Exception) -> GatewayError:
        if isinstance(error, ollama.ResponseError):
            status = error.status_code
            if status in (401, 403):
                return AuthError(error.error, provider=self.provider_name, status_code=status)
            if status in RETRYABLE_STATUS_CODES or status >= 500 or status < 0:
                return TransportError(
                    error.error, provider=self.provider_name, status_code=status
                )
            return ProtocolError(error.error, provider=self.provider_name, status_code=status)
        return TransportError(f"Request failed: {error}", provider=self.provider_name)

    async def _chat(
        self,
        conversation: Conversation,
        system_prompt: str | None,
        capabilities: Sequence[CapabilityDescriptor] | None,
    ) -> Message:
        kwargs: dict[str, Any] = {
            "model": self.model_id,
            "messages": self.to_wire_messages(conversation, system_prompt),
            "stream": False,
        }
        if capabilities:
            kwargs["tools"] = render_function_tools(capabilities)
        try:
            response = await self._client.chat(**kwargs)
        except (ollama.ResponseError, ConnectionError, httpx.HTTPError) as e:
            raise self._map_error(e) from e
        try:
            return self._parse_response(_as_dict(response))
        except (KeyError, TypeError, ValueError) as e:
            raise ProtocolError(
                f"Unexpected response shape: {e}", provider=self.provider_name
            ) from e

    async def send_message(
        self, conversation: Conversation, system_prompt: str | None = None
    ) -> Message:
        return await self._chat(conversation, system_prompt, None)

    async def send_message_with_tools(
        self,
        conversation: Conversation,
        capabilities: Sequence[CapabilityDescriptor],
        system_prompt: str | None = None,
    ) -> Message:
        self._require_tool_support()
        return await self._chat(conversation, system_prompt, list(capabilities))

    async def send_message_streaming(
        self,
        conversation: Conversation,
        system_prompt: str | None = None,
        on_delta: DeltaCallback | None = None,
    ) -> Message:
        self._require_streaming()
        assembler = MessageAssembler(model=self.model_id)
        async for event in self._stream_events(conversation, system_prompt):
            text = assembler.feed(event)
            if text:
                await emit_delta(on_delta, text)
        return self._build_streamed(assembler)

    async def _stream_events(
        self, conversation: Conversation, system_prompt: str | None
    ) -> AsyncIterator[StreamEvent]:
        decoder = OllamaStreamDecoder()
        try:
            chunks = await self._client.chat(
                model=self.model_id,
                messages=self.to_wire_messages(conversation, system_prompt),
                stream=True,
            )
            async for event in decoder.decode_frames(chunks):
                yield event
        except (ollama.ResponseError, ConnectionError, httpx.HTTPError) as e:
            raise self._map_error(e) from e

    async def close(self) -> None:
        if self._owns_client:
            # ollama.AsyncClient keeps its httpx.AsyncClient in _client
            await self._client._client.aclose()
        logger.debug("OllamaAdapter closed")
