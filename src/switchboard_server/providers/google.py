"""Adapter for the Google Gemini generateContent API."""

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
from switchboard_server.errors import ProtocolError
from switchboard_server.providers.base import HttpProviderAdapter
from switchboard_server.providers.common import GOOGLE_ROLES, role_from_wire
from switchboard_server.providers.types import Model, ProviderProfile
from switchboard_server.streaming import GoogleStreamDecoder
from switchboard_server.tools.types import CapabilityDescriptor

logger = logging.getLogger(__name__)

GOOGLE_DEFAULT_MODELS = [
    Model("gemini-1.5-pro", "Gemini 1.5 Pro", 1000000, True, True),
    Model("gemini-1.5-flash", "Gemini 1.5 Flash", 1000000, True, True),
    Model("gemini-1.0-pro", "Gemini 1.0 Pro", 32000, True, True),
]


class GoogleAdapter(HttpProviderAdapter):
    """Adapter for Gemini models.

    Gemini calls the assistant "model", carries the system prompt in
    systemInstruction and exchanges tool calls as functionCall /
    functionResponse parts. Call ids are optional on the wire and are
    synthesized when absent.
    """

    decoder_class = GoogleStreamDecoder

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(
            ProviderProfile(
                name="google",
                requires_api_key=True,
                supports_streaming=True,
                available_models=list(GOOGLE_DEFAULT_MODELS),
            ),
            base_url=base_url,
            api_key=api_key,
            timeout=timeout,
            client=client,
        )

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["x-goog-api-key"] = self._api_key
        return headers

    def _completion_url(self, stream: bool) -> str:
        if stream:
            return f"{self.base_url}/models/{self.model_id}:streamGenerateContent?alt=sse"
        return f"{self.base_url}/models/{self.model_id}:generateContent"

    def _models_url(self) -> str:
        return f"{self.base_url}/models"

    # --- wire translation ---

    def to_wire_messages(
        self, conversation: Conversation, system_prompt: str | None = None
    ) -> dict[str, Any]:
        """Translate a conversation into {"systemInstruction": ..., "contents": [...]}."""
        system_parts = [system_prompt] if system_prompt else []
        contents: list[dict[str, Any]] = []

        for message in conversation:
            if message.role is Role.SYSTEM:
                system_parts.append(message.content)
                continue

            if message.role is Role.TOOL:
                part = {
                    "functionResponse": {
                        "id": message.tool_call_id,
                        "name": message.name or "",
                        "response": {"content": message.content},
                    }
                }
                previous = contents[-1] if contents else None
                if (
                    previous is not None
                    and previous["role"] == "user"
                    and all("functionResponse" in p for p in previous["parts"])
                ):
                    previous["parts"].append(part)
                else:
                    contents.append({"role": "user", "parts": [part]})
                continue

            parts: list[dict[str, Any]] = []
            if message.content or not message.tool_calls:
                parts.append({"text": message.content})
            parts.extend(
                {
                    "functionCall": {
                        "id": call.id,
                        "name": call.name,
                        "args": dict(call.arguments),
                    }
                }
                for call in message.tool_calls
            )
            contents.append({"role": GOOGLE_ROLES[message.role], "parts": parts})

        wire: dict[str, Any] = {"contents": contents}
        if system_parts:
            wire["systemInstruction"] = {"parts": [{"text": "\n\n".join(system_parts)}]}
        return wire

    def from_wire_messages(self, wire: dict[str, Any]) -> Conversation:
        """Translate {"systemInstruction": ..., "contents": [...]} into a conversation."""
        conversation = Conversation()
        instruction = wire.get("systemInstruction")
        if instruction:
            conversation.append(
                Message.system("".join(p.get("text", "") for p in instruction["parts"]))
            )

        for item in wire["contents"]:
            role = role_from_wire(item["role"], GOOGLE_ROLES, self.provider_name)
            parts = item.get("parts") or []

            if parts and all("functionResponse" in part for part in parts):
                pending = self._unanswered_calls(conversation)
                for part in parts:
                    response = part["functionResponse"]
                    call_id = response.get("id") or self._match_call(
                        pending, response.get("name")
                    )
                    content = response.get("response") or {}
                    conversation.append(
                        Message.tool(
                            str(content.get("content", "")),
                            call_id,
                            response.get("name") or None,
                        )
                    )
                continue

            text, calls = self._split_parts(parts)
            if role is Role.ASSISTANT:
                conversation.append(Message.assistant(text, tool_calls=calls))
            else:
                conversation.append(Message(role=role, content=text))
        return conversation

    @staticmethod
    def _unanswered_calls(conversation: Conversation) -> list[ToolCallRequest]:
        answered = {m.tool_call_id for m in conversation if m.role is Role.TOOL}
        for message in reversed(conversation.messages):
            if message.role is Role.ASSISTANT:
                return [call for call in message.tool_calls if call.id not in answered]
        return []

    @staticmethod
    def _match_call(pending: list[ToolCallRequest], name: str | None) -> str:
        for call in pending:
            if call.name == name:
                pending.remove(call)
                return call.id
        return new_tool_call_id()

    @staticmethod
    def _split_parts(parts: list[dict[str, Any]]) -> tuple[str, list[ToolCallRequest]]:
        text_parts = []
        calls = []
        for part in parts:
            if "text" in part:
                text_parts.append(part["text"])
            function_call = part.get("functionCall")
            if function_call:
                calls.append(
                    ToolCallRequest(
                        id=function_call.get("id") or new_tool_call_id(),
                        name=function_call["name"],
                        arguments=parse_arguments(
                            function_call.get("args"), function_call["name"]
                        ),
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
        payload = self.to_wire_messages(conversation, system_prompt)
        if capabilities:
            declarations = []
            for descriptor in capabilities:
                declaration: dict[str, Any] = {
                    "name": descriptor.name,
                    "description": descriptor.description,
                }
                # Gemini rejects "default" keys and empty parameter objects
                if descriptor.parameters:
                    declaration["parameters"] = descriptor.to_json_schema(
                        include_defaults=False
                    )
                declarations.append(declaration)
            payload["tools"] = [{"functionDeclarations": declarations}]
        return payload

    def _parse_response(self, data: dict[str, Any]) -> Message:
        candidates = data.get("candidates") or []
        if not candidates:
            feedback = data.get("promptFeedback") or {}
            raise ProtocolError(
                f"No candidates in response (block reason: {feedback.get('blockReason')})",
                provider=self.provider_name,
            )
        candidate = candidates[0]
        text, calls = self._split_parts((candidate.get("content") or {}).get("parts") or [])
        usage = data.get("usageMetadata")
        return Message.assistant(
            text,
            tool_calls=calls,
            model=data.get("modelVersion") or self.model_id,
            usage=Usage(
                prompt_tokens=usage.get("promptTokenCount", 0),
                completion_tokens=usage.get("candidatesTokenCount", 0),
            )
            if usage
            else None,
            finish_reason=candidate.get("finishReason"),
        )

    def _parse_models(self, data: Any) -> list[Model]:
        models = []
        for item in data["models"]:
            methods = item.get("supportedGenerationMethods") or []
            model_id = item["name"].removeprefix("models/")
            if "generateContent" not in methods or "gemini" not in model_id:
                continue
            known = next((m for m in GOOGLE_DEFAULT_MODELS if m.id == model_id), None)
            models.append(
                known
                or Model(
                    id=model_id,
                    name=item.get("displayName") or model_id,
                    context_length=int(item.get("inputTokenLimit") or 32000),
                    supports_tool_calls=True,
                    supports_vision="vision" in model_id or "1.5" in model_id,
                )
            )
        return models
