"""Pydantic models for API request and response schemas.

This package contains all Pydantic models used for validating and
serializing API requests and responses across all endpoints.
"""

from switchboard_server.models.chat import (
    ChatRequest,
    ChatResponse,
    ContentDeltaEvent,
    DoneEvent,
    ErrorEvent,
    MessageEvent,
    MessageSchema,
)
from switchboard_server.models.health import HealthResponse
from switchboard_server.models.providers import (
    ModelDetail,
    ModelListResponse,
    ProviderDetail,
    ProviderListResponse,
)
from switchboard_server.models.tools import (
    CapabilityDetail,
    ToolListResponse,
    ToolServerStatusResponse,
)

__all__ = [
    "CapabilityDetail",
    "ChatRequest",
    "ChatResponse",
    "ContentDeltaEvent",
    "DoneEvent",
    "ErrorEvent",
    "HealthResponse",
    "MessageEvent",
    "MessageSchema",
    "ModelDetail",
    "ModelListResponse",
    "ProviderDetail",
    "ProviderListResponse",
    "ToolListResponse",
    "ToolServerStatusResponse",
]
