"""Pydantic models for the tool server wire format.

The tool server speaks camelCase JSON; these models accept either spelling
and always serialize with aliases.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from switchboard_server.tools.types import (
    CapabilityDescriptor,
    CapabilityResult,
    ParameterSpec,
)


class WireModel(BaseModel):
    """Base model with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class ParameterModel(WireModel):
    """One parameter of a tool descriptor."""

    type: str = "string"
    description: str = ""
    required: bool = False
    default: Any = None
    enum: list[Any] | None = None


class ToolDescriptorModel(WireModel):
    """A tool descriptor as exchanged with the tool server."""

    name: str
    description: str = ""
    parameters: dict[str, ParameterModel] = Field(default_factory=dict)
    return_description: str = ""
    hosted: bool = False

    @classmethod
    def from_descriptor(
        cls, descriptor: CapabilityDescriptor, hosted: bool = False
    ) -> "ToolDescriptorModel":
        return cls(
            name=descriptor.name,
            description=descriptor.description,
            parameters={
                name: ParameterModel(
                    type=spec.type,
                    description=spec.description,
                    required=spec.required,
                    default=spec.default,
                    enum=list(spec.enum) if spec.enum else None,
                )
                for name, spec in descriptor.parameters.items()
            },
            return_description=descriptor.return_description,
            hosted=hosted,
        )

    def to_descriptor(self) -> CapabilityDescriptor:
        return CapabilityDescriptor(
            name=self.name,
            description=self.description,
            parameters={
                name: ParameterSpec(
                    type=param.type,
                    description=param.description,
                    required=param.required,
                    default=param.default,
                    enum=tuple(param.enum) if param.enum else None,
                )
                for name, param in self.parameters.items()
            },
            return_description=self.return_description,
        )


class HealthResponse(WireModel):
    status: str = "ok"
    tools: int = 0


class RegisterToolsResponse(WireModel):
    message: str
    count: int


class ExecuteToolRequest(WireModel):
    tool_name: str
    parameters: dict[str, Any] = Field(default_factory=dict)


class ExecuteToolResponse(WireModel):
    """Result of a tool execution: {success, data} or {success, errorMessage}."""

    success: bool
    data: Any = None
    error_message: str | None = None

    @classmethod
    def from_result(cls, result: CapabilityResult) -> "ExecuteToolResponse":
        return cls(
            success=result.success, data=result.data, error_message=result.error_message
        )

    def to_result(self) -> CapabilityResult:
        if self.success:
            return CapabilityResult.ok(self.data)
        return CapabilityResult.error(self.error_message or "Unknown tool server error")

    def to_wire(self) -> dict[str, Any]:
        if self.success:
            return {"success": True, "data": self.data}
        return {"success": False, "errorMessage": self.error_message}
