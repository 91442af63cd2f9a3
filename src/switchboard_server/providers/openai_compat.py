"""Adapter for OpenAI-compatible chat completion APIs.

OpenAI, OpenRouter and the Meta Llama API speak the same wire dialect, so
they share this one adapter, configured by a preset instead of subclassed.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

import httpx

from switchboard_server.conversation import (
    Conversation,
    Message,
    Role,
    ToolCallRequest,
    Usage,
    new_tool_call_id,
    parse_arguments,
)
from switchboard_server.providers.base import HttpProviderAdapter
from switchboard_server.providers.common import (
    OPENAI_ROLES,
    dump_arguments,
    render_function_tools,
    role_from_wire,
)
from switchboard_server.providers.types import Model, ProviderProfile
from switchboard_server.streaming import OpenAIStreamDecoder
from switchboard_server.tools.types import CapabilityDescriptor

logger = logging.getLogger(__name__)

OPENAI_DEFAULT_MODELS = [
    Model("gpt-4o", "GPT-4o", 128000, True, True),
    Model("gpt-4-turbo", "GPT-4 Turbo", 128000, True, False),
    Model("gpt-3.5-turbo", "GPT-3.5 Turbo", 16000, True, False),
]

OPENROUTER_DEFAULT_MODELS = [
    Model("anthropic/claude-3-opus", "Claude 3 Opus", 200000, True, True),
    Model("anthropic/claude-3-sonnet", "Claude 3 Sonnet", 200000, True, True),
    Model("anthropic/claude-3-haiku", "Claude 3 Haiku", 200000, True, True),
    Model("openai/gpt-4o", "GPT-4o", 128000, True, True),
    Model("google/gemini-1.5-pro", "Gemini 1.5 Pro", 128000, True, True),
    Model("meta-llama/llama-3-70b-instruct", "Llama 3 70B", 128000, True, False),
]

META_DEFAULT_MODELS = [
    Model("llama-3-70b-instruct", "Llama 3 70B Instruct", 128000, True, False),
    Model("llama-3-8b-instruct", "Llama 3 8B Instruct", 128000, True, False),
    Model("llama-2-70b-chat", "Llama 2 70B Chat", 4096, False, False),
]


def is_openai_chat_model(model_id: str) -> bool:
    """Keep GPT chat models, dropping instruct, vision and preview variants."""
    return model_id.startswith("gpt-") and not any(
        marker in model_id for marker in ("instruct", "vision", "preview")
    )


def openai_model_from_id(model_id: str) -> Model:
    """Infer capabilities of an OpenAI model from its id family."""
    if model_id.startswith("gpt-4o"):
        return Model(model_id, model_id, 128000, True, True)
    if model_id.startswith("gpt-4"):
        return Model(model_id, model_id, 128000, True, False)
    if model_id.startswith("gpt-3.5"):
        return Model(model_id, model_id, 16000, True, False)
    return Model(model_id, model_id, 128000, True, False)


@dataclass(frozen=True)
class OpenAICompatiblePreset:
    """Configuration of one OpenAI-compatible vendor.

    Attributes:
        name: Provider name
        base_url: Default API base URL
        default_models: Fallback model list
        model_filter: Predicate applied to fetched model ids
        model_factory: Builds a Model for a fetched id without metadata
        stream_usage: Request usage in the final stream chunk
    """

    name: str
    base_url: str
    default_models: list[Model] = field(default_factory=list)
    model_filter: Callable[[str], bool] | None = None
    model_factory: Callable[[str], Model] | None = None
    stream_usage: bool = True


PRESETS: dict[str, OpenAICompatiblePreset] = {
    "openai": OpenAICompatiblePreset(
        name="openai",
        base_url="https://api.openai.com/v1",
        default_models=OPENAI_DEFAULT_MODELS,
        model_filter=is_openai_chat_model,
        model_factory=openai_model_from_id,
    ),
    "openrouter": OpenAICompatiblePreset(
        name="openrouter",
        base_url="https://openrouter.ai/api/v1",
        default_models=OPENROUTER_DEFAULT_MODELS,
    ),
    "meta": OpenAICompatiblePreset(
        name="meta",
        base_url="https://llama.meta.ai/v1",
        default_models=META_DEFAULT_MODELS,
        stream_usage=False,
    ),
}


class OpenAICompatibleAdapter(HttpProviderAdapter):
    """Adapter for any vendor speaking the OpenAI chat completions dialect.

    Example:
        >>> adapter = OpenAICompatibleAdapter("openrouter", api_key="sk-or-...")
        >>> reply = await adapter.send_message(Conversation([Message.user("Hi")]))
    """

    decoder_class = OpenAIStreamDecoder

    def __init__(
        self,
        preset: str = "openai",
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
        extra_headers: dict[str, str] | None = None,
    ) -> None:
        """Initialize the adapter from a preset.

        Args:
            preset: One of "openai", "openrouter", "meta"
            api_key: Optional credential
            base_url: Override of the preset base URL
            timeout: Request timeout in seconds
            client: Optional shared httpx client
            extra_headers: Additional headers (e.g., OpenRouter HTTP-Referer / X-Title)

        Raises:
            ValueError: If the preset is unknown
        """
        if preset not in PRESETS:
            raise ValueError(f"Unknown OpenAI-compatible preset '{preset}'")
        self.preset = PRESETS[preset]
        super().__init__(
            ProviderProfile(
                name=self.preset.name,
                requires_api_key=True,
                supports_streaming=True,
                available_models=list(self.preset.default_models),
            ),
            base_url=base_url or self.preset.base_url,
            api_key=api_key,
            timeout=timeout,
            client=client,
        )
        self.extra_headers = dict(extra_headers or {})

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", **self.extra_headers}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _completion_url(self, stream: bool) -> str:
        return f"{self.base_url}/chat/completions"

    def _models_url(self) -> str:
        return f"{self.base_url}/models"

    # --- wire translation ---

    def to_wire_messages(
        self, conversation: Conversation, system_prompt: str | None = None
    ) -> list[dict[str, Any]]:
        """Translate a conversation into chat completion messages."""
        wire: list[dict[str, Any]] = []
        if system_prompt:
            wire.append({"role": "system", "content": system_prompt})

        for message in conversation:
            item: dict[str, Any] = {"role": OPENAI_ROLES[message.role]}
            if message.role is Role.ASSISTANT and message.tool_calls:
                item["content"] = message.content or None
                item["tool_calls"] = [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {
                            "name": call.name,
                            "arguments": dump_arguments(call.arguments),
                        },
                    }
                    for call in message.tool_calls
                ]
            else:
                item["content"] = message.content
            if message.role is Role.TOOL:
                item["tool_call_id"] = message.tool_call_id
            wire.append(item)
        return wire

    def from_wire_messages(self, wire: Sequence[dict[str, Any]]) -> Conversation:
        """Translate chat completion messages back into a conversation."""
        conversation = Conversation()
        for item in wire:
            role = role_from_wire(item["role"], OPENAI_ROLES, self.provider_name)
            if role is Role.TOOL:
                call_id = item["tool_call_id"]
                conversation.append(
                    Message.tool(
                        item.get("content") or "",
                        call_id,
                        item.get("name") or conversation.tool_call_names().get(call_id),
                    )
                )
            elif role is Role.ASSISTANT:
                conversation.append(
                    Message.assistant(
                        item.get("content") or "",
                        tool_calls=self._parse_tool_calls(item.get("tool_calls")),
                    )
                )
            else:
                conversation.append(Message(role=role, content=item.get("content") or ""))
        return conversation

    @staticmethod
    def _parse_tool_calls(raw_calls: list[dict[str, Any]] | None) -> list[ToolCallRequest]:
        calls = []
        for raw in raw_calls or []:
            function = raw.get("function") or {}
            calls.append(
                ToolCallRequest(
                    id=raw.get("id") or new_tool_call_id(),
                    name=function["name"],
                    arguments=parse_arguments(function.get("arguments"), function["name"]),
                )
            )
        return calls

    def _build_payload(
        self,
        conversation: Conversation,
        system_prompt: str | None,
        capabilities: Sequence[CapabilityDescriptor] | None,
        stream: bool,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model_id,
            "messages": self.to_wire_messages(conversation, system_prompt),
            "stream": stream,
        }
        if stream and self.preset.stream_usage:
            payload["stream_options"] = {"include_usage": True}
        if capabilities:
            payload["tools"] = render_function_tools(capabilities)
            payload["tool_choice"] = "auto"
        return payload

    def _parse_response(self, data: dict[str, Any]) -> Message:
        choice = data["choices"][0]
        message = choice["message"]
        usage = data.get("usage")
        return Message.assistant(
            message.get("content") or "",
            tool_calls=self._parse_tool_calls(message.get("tool_calls")),
            model=data.get("model") or self.model_id,
            usage=Usage(
                prompt_tokens=usage.get("prompt_tokens", 0),
                completion_tokens=usage.get("completion_tokens", 0),
            )
            if usage
            else None,
            finish_reason=choice.get("finish_reason"),
        )

    def _parse_models(self, data: Any) -> list[Model]:
        models = []
        for item in data["data"]:
            model_id = item["id"]
            if self.preset.model_filter and not self.preset.model_filter(model_id):
                continue
            known = next(
                (m for m in self.preset.default_models if m.id == model_id), None
            )
            if known is not None:
                models.append(known)
            elif "context_length" in item:
                # OpenRouter style listing with metadata
                modalities = (item.get("architecture") or {}).get("input_modalities") or []
                models.append(
                    Model(
                        id=model_id,
                        name=item.get("name") or model_id,
                        context_length=int(item.get("context_length") or 4096),
                        supports_tool_calls="tools"
                        in (item.get("supported_parameters") or []),
                        supports_vision="image" in modalities,
                    )
                )
            elif self.preset.model_factory is not None:
                models.append(self.preset.model_factory(model_id))
            else:
                models.append(Model(model_id, model_id, 4096, True, False))
        return models
