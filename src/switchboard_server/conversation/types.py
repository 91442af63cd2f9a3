"""Vendor-neutral conversation types.

This module defines the message model shared by every provider adapter:
roles, messages, tool call requests, token usage, and the append-only
Conversation container.
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Iterator, overload

logger = logging.getLogger(__name__)


class Role(str, Enum):
    """Participant role of a message."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


def new_tool_call_id() -> str:
    """Synthesize a tool call id for vendors that do not provide one."""
    return f"call_{uuid.uuid4().hex[:24]}"


def parse_arguments(raw: Any, name: str | None = None) -> dict[str, Any]:
    """Normalize tool call arguments into a mapping.

    Vendors send arguments either as a JSON object or as JSON text. Anything
    that does not decode to an object is logged and replaced by {}.

    Args:
        raw: Argument payload as received from the vendor
        name: Capability name, used for logging only

    Returns:
        dict: The decoded arguments
    """
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return dict(raw)
    if isinstance(raw, str):
        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Invalid JSON arguments for tool call {name}: {e}")
            return {}
        if isinstance(decoded, dict):
            return decoded
    logger.warning(
        f"Tool call {name} arguments are not an object ({type(raw).__name__}), using {{}}"
    )
    return {}


@dataclass(frozen=True)
class ToolCallRequest:
    """A model-issued request to invoke a capability.

    Attributes:
        id: Opaque token, unique within one assistant turn
        name: Capability name
        arguments: Structured arguments, validated lazily by the capability
    """

    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "arguments": dict(self.arguments)}

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "ToolCallRequest":
        return ToolCallRequest(
            id=data.get("id") or new_tool_call_id(),
            name=data["name"],
            arguments=dict(data.get("arguments") or {}),
        )


@dataclass(frozen=True)
class Usage:
    """Token accounting reported by a vendor."""

    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def to_dict(self) -> dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass(frozen=True)
class Message:
    """A single conversation message.

    Messages are immutable. Assistant messages may carry tool calls (and may
    have empty content when the model only called a function); tool messages
    reference the call they answer through tool_call_id.

    Attributes:
        role: The message role
        content: Text content
        tool_calls: Tool calls requested by the assistant
        tool_call_id: Back-reference to the originating call (tool role only)
        name: Capability name the tool message answers (tool role only)
        model: Model that produced the message (assistant role only)
        usage: Token usage of the completion that produced the message
        finish_reason: Vendor finish/stop reason
    """

    role: Role
    content: str = ""
    tool_calls: tuple[ToolCallRequest, ...] = ()
    tool_call_id: str | None = None
    name: str | None = None
    model: str | None = None
    usage: Usage | None = None
    finish_reason: str | None = None

    def __post_init__(self) -> None:
        """Normalize role and tool call container, validate role-specific fields."""
        object.__setattr__(self, "role", Role(self.role))
        object.__setattr__(self, "tool_calls", tuple(self.tool_calls))
        if self.content is None:
            object.__setattr__(self, "content", "")

        if self.tool_calls and self.role is not Role.ASSISTANT:
            raise ValueError("Only assistant messages can carry tool calls")
        if self.role is Role.TOOL and not self.tool_call_id:
            raise ValueError("Tool messages require a tool_call_id")

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(
        cls,
        content: str = "",
        tool_calls: Iterable[ToolCallRequest] = (),
        **metadata: Any,
    ) -> "Message":
        return cls(
            role=Role.ASSISTANT, content=content, tool_calls=tuple(tool_calls), **metadata
        )

    @classmethod
    def tool(cls, content: str, tool_call_id: str, name: str | None = None) -> "Message":
        return cls(role=Role.TOOL, content=content, tool_call_id=tool_call_id, name=name)

    def to_dict(self) -> dict[str, Any]:
        """Convert the message to a JSON-serializable dictionary."""
        data: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.tool_calls:
            data["tool_calls"] = [call.to_dict() for call in self.tool_calls]
        if self.tool_call_id is not None:
            data["tool_call_id"] = self.tool_call_id
        if self.name is not None:
            data["name"] = self.name
        if self.model is not None:
            data["model"] = self.model
        if self.usage is not None:
            data["usage"] = self.usage.to_dict()
        if self.finish_reason is not None:
            data["finish_reason"] = self.finish_reason
        return data

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "Message":
        """Create a Message from a dictionary produced by to_dict().

        Raises:
            ValueError: If the role is unknown or role-specific fields are invalid
        """
        usage = data.get("usage")
        return Message(
            role=Role(data.get("role")),
            content=data.get("content") or "",
            tool_calls=tuple(
                ToolCallRequest.from_dict(call) for call in data.get("tool_calls") or []
            ),
            tool_call_id=data.get("tool_call_id"),
            name=data.get("name"),
            model=data.get("model"),
            usage=Usage(
                prompt_tokens=usage.get("prompt_tokens", 0),
                completion_tokens=usage.get("completion_tokens", 0),
            )
            if usage
            else None,
            finish_reason=data.get("finish_reason"),
        )


class Conversation:
    """Ordered, append-only sequence of messages.

    The conversation is owned by the caller; the gateway never persists it.
    Messages can be appended but never replaced or removed.
    """

    def __init__(self, messages: Iterable[Message] = ()) -> None:
        self._messages: list[Message] = []
        self.extend(messages)

    def append(self, message: Message) -> None:
        if not isinstance(message, Message):
            raise TypeError(f"Expected Message, got {type(message).__name__}")
        self._messages.append(message)

    def extend(self, messages: Iterable[Message]) -> None:
        for message in messages:
            self.append(message)

    def copy(self) -> "Conversation":
        return Conversation(self._messages)

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def last(self) -> Message | None:
        return self._messages[-1] if self._messages else None

    def tool_call_names(self) -> dict[str, str]:
        """Map every tool call id in the conversation to its capability name."""
        return {
            call.id: call.name for message in self._messages for call in message.tool_calls
        }

    def to_list(self) -> list[dict[str, Any]]:
        return [message.to_dict() for message in self._messages]

    @staticmethod
    def from_list(data: Iterable[dict[str, Any]]) -> "Conversation":
        return Conversation(Message.from_dict(item) for item in data)

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._messages))

    @overload
    def __getitem__(self, index: int) -> Message: ...

    @overload
    def __getitem__(self, index: slice) -> list[Message]: ...

    def __getitem__(self, index: int | slice) -> Message | list[Message]:
        return self._messages[index]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Conversation):
            return NotImplemented
        return self._messages == other._messages

    def __repr__(self) -> str:
        return f"Conversation({len(self._messages)} messages)"
