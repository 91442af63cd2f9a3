"""Pydantic models for the tools API."""

from typing import Any

from pydantic import BaseModel, Field

from switchboard_server.tools import CapabilityDescriptor


class ParameterDetail(BaseModel):
    type: str = "string"
    description: str = ""
    required: bool = False
    default: Any = None
    enum: list[Any] | None = None


class CapabilityDetail(BaseModel):
    """A capability the gateway can execute."""

    name: str
    description: str = ""
    parameters: dict[str, ParameterDetail] = Field(default_factory=dict)
    return_description: str = ""
    source: str = Field(description="'registry' or 'toolserver'")
    provider: str | None = Field(default=None, description="Owning capability provider")

    @classmethod
    def from_descriptor(
        cls, descriptor: CapabilityDescriptor, source: str, provider: str | None = None
    ) -> "CapabilityDetail":
        return cls(source=source, provider=provider, **descriptor.to_dict())


class ToolListResponse(BaseModel):
    tools: list[CapabilityDetail]


class ExecuteToolRequest(BaseModel):
    name: str = Field(..., min_length=1)
    arguments: dict[str, Any] = Field(default_factory=dict)


class ExecuteToolResponse(BaseModel):
    success: bool
    data: Any = None
    error_message: str | None = None
    content: str = Field(description="Serialized result as sent to the model")


class ToolServerStatusResponse(BaseModel):
    """State of the tool server helper."""

    state: str
    url: str
    pid: int | None = None
    adopted: bool = False
    remote_stale: bool = False
    hosted_tools: list[str] = Field(default_factory=list)
