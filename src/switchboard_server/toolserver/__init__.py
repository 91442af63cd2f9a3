"""Tool server helper process: wire models, client, app and lifecycle."""

from switchboard_server.toolserver.client import ToolServerClient
from switchboard_server.toolserver.lifecycle import (
    ServerLifecycleState,
    ToolServerLifecycle,
)

__all__ = ["ServerLifecycleState", "ToolServerClient", "ToolServerLifecycle"]
