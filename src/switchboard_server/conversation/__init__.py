"""Vendor-neutral conversation model.

This package provides the message, role, tool call and usage types shared by
all provider adapters, plus the append-only Conversation container.
"""

from switchboard_server.conversation.types import (
    Conversation,
    Message,
    Role,
    ToolCallRequest,
    Usage,
    new_tool_call_id,
    parse_arguments,
)

__all__ = [
    "Conversation",
    "Message",
    "Role",
    "ToolCallRequest",
    "Usage",
    "new_tool_call_id",
    "parse_arguments",
]
