"""Pydantic models for chat API requests and responses.

This module defines the request and response schemas for the chat endpoints,
including the SSE event payloads of the streaming endpoint.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from switchboard_server.conversation import (
    Conversation,
    Message,
    Role,
    ToolCallRequest,
    Usage,
)


class ToolCallSchema(BaseModel):
    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class UsageSchema(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class MessageSchema(BaseModel):
    """A conversation message as exchanged over the API."""

    role: Role = Field(description="Message role")
    content: str = Field(default="", description="Message content")
    tool_calls: list[ToolCallSchema] = Field(
        default_factory=list, description="Tool calls requested by the assistant"
    )
    tool_call_id: str | None = Field(
        default=None, description="Tool call answered by a tool message"
    )
    name: str | None = Field(default=None, description="Capability name (tool messages)")
    model: str | None = Field(default=None, description="Model that produced the message")
    usage: UsageSchema | None = None
    finish_reason: str | None = None

    @classmethod
    def from_message(cls, message: Message) -> "MessageSchema":
        return cls.model_validate(message.to_dict())

    def to_message(self) -> Message:
        """Convert to a domain Message.

        Raises:
            ValueError: If role-specific fields are inconsistent
        """
        return Message(
            role=self.role,
            content=self.content,
            tool_calls=tuple(
                ToolCallRequest(id=call.id, name=call.name, arguments=call.arguments)
                for call in self.tool_calls
            ),
            tool_call_id=self.tool_call_id,
            name=self.name,
            model=self.model,
            usage=Usage(self.usage.prompt_tokens, self.usage.completion_tokens)
            if self.usage
            else None,
            finish_reason=self.finish_reason,
        )


class ChatRequest(BaseModel):
    """Request body for POST /api/v1/chat and POST /api/v1/chat/stream."""

    messages: list[MessageSchema] = Field(
        default_factory=list, description="Conversation so far"
    )
    message: str | None = Field(
        default=None, description="User message appended to the conversation"
    )
    provider: str | None = Field(
        default=None, description="Provider to use (defaults to the active provider)"
    )
    system_prompt: str | None = Field(default=None, description="Optional system prompt")
    tools: list[str] | None = Field(
        default=None, description="Capabilities the model may call"
    )
    use_all_tools: bool = Field(
        default=False, description="Offer every available capability"
    )

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {"message": "What is 2+2?", "tools": ["add"]},
                {
                    "messages": [{"role": "user", "content": "Hello"}],
                    "provider": "anthropic",
                },
            ]
        }
    )

    def to_conversation(self) -> Conversation:
        conversation = Conversation(schema.to_message() for schema in self.messages)
        if self.message is not None:
            conversation.append(Message.user(self.message))
        return conversation


class ChatResponse(BaseModel):
    """Response body of the non-streaming chat endpoint."""

    provider: str = Field(description="Provider that answered")
    model: str | None = Field(default=None, description="Model that answered")
    messages: list[MessageSchema] = Field(description="The extended conversation")
    new_messages: list[MessageSchema] = Field(description="Messages added by this turn")


class ContentDeltaEvent(BaseModel):
    """SSE event: a fragment of assistant text."""

    content: str


class MessageEvent(BaseModel):
    """SSE event: a message appended to the conversation."""

    message: MessageSchema


class DoneEvent(BaseModel):
    """SSE event: the turn is complete."""

    provider: str
    message_count: int


class ErrorEvent(BaseModel):
    """SSE event: the turn failed."""

    code: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)
