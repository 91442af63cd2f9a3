"""Adapter for the Anthropic Messages API."""

import logging
from typing import Any, Sequence

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
from switchboard_server.providers.common import ANTHROPIC_ROLES, role_from_wire
from switchboard_server.providers.types import Model, ProviderProfile
from switchboard_server.streaming import AnthropicStreamDecoder
from switchboard_server.tools.types import CapabilityDescriptor

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"

ANTHROPIC_DEFAULT_MODELS = [
    Model("claude-3-opus-20240229", "Claude 3 Opus", 200000, True, True),
    Model("claude-3-sonnet-20240229", "Claude 3 Sonnet", 200000, True, True),
    Model("claude-3-haiku-20240307", "Claude 3 Haiku", 200000, True, True),
]


class AnthropicAdapter(HttpProviderAdapter):
    """Adapter for Claude models.

    The Messages API has no system role: system content is hoisted into the
    top-level "system" field. Tool results travel as tool_result blocks inside
    a user turn, and consecutive results share one turn.
    """

    decoder_class = AnthropicStreamDecoder

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str = "https://api.anthropic.com/v1",
        timeout: float = 60.0,
        max_tokens: int = 4096,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(
            ProviderProfile(
                name="anthropic",
                requires_api_key=True,
                supports_streaming=True,
                available_models=list(ANTHROPIC_DEFAULT_MODELS),
            ),
            base_url=base_url,
            api_key=api_key,
            timeout=timeout,
            client=client,
        )
        self.max_tokens = max_tokens

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "anthropic-version": ANTHROPIC_VERSION,
        }
        if self._api_key:
            headers["x-api-key"] = self._api_key
        return headers

    def _completion_url(self, stream: bool) -> str:
        return f"{self.base_url}/messages"

    def _models_url(self) -> str:
        return f"{self.base_url}/models"

    # --- wire translation ---

    def to_wire_messages(
        self, conversation: Conversation, system_prompt: str | None = None
    ) -> dict[str, Any]:
        """Translate a conversation into {"system": ..., "messages": [...]}."""
        system_parts = [system_prompt] if system_prompt else []
        messages: list[dict[str, Any]] = []

        for message in conversation:
            if message.role is Role.SYSTEM:
                system_parts.append(message.content)
                continue

            if message.role is Role.TOOL:
                block = {
                    "type": "tool_result",
                    "tool_use_id": message.tool_call_id,
                    "content": message.content,
                }
                previous = messages[-1] if messages else None
                if (
                    previous is not None
                    and previous["role"] == "user"
                    and isinstance(previous["content"], list)
                    and all(b.get("type") == "tool_result" for b in previous["content"])
                ):
                    previous["content"].append(block)
                else:
                    messages.append({"role": "user", "content": [block]})
                continue

            if message.role is Role.ASSISTANT and message.tool_calls:
                blocks: list[dict[str, Any]] = []
                if message.content:
                    blocks.append({"type": "text", "text": message.content})
                blocks.extend(
                    {
                        "type": "tool_use",
                        "id": call.id,
                        "name": call.name,
                        "input": dict(call.arguments),
                    }
                    for call in message.tool_calls
                )
                messages.append({"role": "assistant", "content": blocks})
                continue

            messages.append(
                {"role": ANTHROPIC_ROLES[message.role], "content": message.content}
            )

        wire: dict[str, Any] = {"messages": messages}
        if system_parts:
            wire["system"] = "\n\n".join(system_parts)
        return wire

    def from_wire_messages(self, wire: dict[str, Any]) -> Conversation:
        """Translate {"system": ..., "messages": [...]} back into a conversation."""
        conversation = Conversation()
        if wire.get("system"):
            conversation.append(Message.system(wire["system"]))

        for item in wire["messages"]:
            role = role_from_wire(item["role"], ANTHROPIC_ROLES, self.provider_name)
            content = item.get("content")
            if isinstance(content, str):
                conversation.append(Message(role=role, content=content))
                continue

            blocks = content or []
            if role is Role.USER and blocks and all(
                block.get("type") == "tool_result" for block in blocks
            ):
                names = conversation.tool_call_names()
                for block in blocks:
                    conversation.append(
                        Message.tool(
                            self._block_text(block.get("content")),
                            block["tool_use_id"],
                            names.get(block["tool_use_id"]),
                        )
                    )
                continue

            text, calls = self._split_blocks(blocks)
            if role is Role.ASSISTANT:
                conversation.append(Message.assistant(text, tool_calls=calls))
            else:
                conversation.append(Message(role=role, content=text))
        return conversation

    @staticmethod
    def _block_text(content: Any) -> str:
        if isinstance(content, str):
            return content
        return "".join(
            block.get("text", "") for block in content or [] if block.get("type") == "text"
        )

    @staticmethod
    def _split_blocks(blocks: list[dict[str, Any]]) -> tuple[str, list[ToolCallRequest]]:
        text_parts = []
        calls = []
        for block in blocks:
            if block.get("type") == "text":
                text_parts.append(block.get("text", ""))
            elif block.get("type") == "tool_use":
                calls.append(
                    ToolCallRequest(
                        id=block.get("id") or new_tool_call_id(),
                        name=block["name"],
                        arguments=parse_arguments(block.get("input"), block["name"]),
                    )
                )
        return "".join(text_parts), calls

    def _build_payload(
        self,
        conversation: Conversation,
        system_prompt: str | None,
        capabilities: Sequence[CapabilityDescriptor] | None,
        stream: bool,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model_id,
            "max_tokens": self.max_tokens,
            "stream": stream,
            **self.to_wire_messages(conversation, system_prompt),
        }
        if capabilities:
            payload["tools"] = [
                {
                    "name": descriptor.name,
                    "description": descriptor.description,
                    "input_schema": descriptor.to_json_schema(),
                }
                for descriptor in capabilities
            ]
        return payload

    def _parse_response(self, data: dict[str, Any]) -> Message:
        text, calls = self._split_blocks(data["content"])
        usage = data.get("usage")
        return Message.assistant(
            text,
            tool_calls=calls,
            model=data.get("model") or self.model_id,
            usage=Usage(
                prompt_tokens=usage.get("input_tokens", 0),
                completion_tokens=usage.get("output_tokens", 0),
            )
            if usage
            else None,
            finish_reason=data.get("stop_reason"),
        )

    def _parse_models(self, data: Any) -> list[Model]:
        models = []
        for item in data["data"]:
            model_id = item["id"]
            known = next((m for m in ANTHROPIC_DEFAULT_MODELS if m.id == model_id), None)
            if known is not None:
                models.append(known)
                continue
            legacy = model_id.startswith("claude-2") or "instant" in model_id
            models.append(
                Model(
                    id=model_id,
                    name=item.get("display_name") or model_id,
                    context_length=100000 if legacy else 200000,
                    supports_tool_calls=True,
                    supports_vision=not legacy,
                )
            )
        return models
