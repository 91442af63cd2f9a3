"""Capability descriptor and result types.

A capability is a named, schema-described operation that a tool provider can
execute on the model's behalf. Descriptors are rendered into JSON Schema for
every vendor; results are a tagged union that is never raised.
"""

import json
from dataclasses import dataclass, field
from typing import Any

# JSON Schema type names accepted in ParameterSpec.type
PARAMETER_TYPES = ("string", "integer", "number", "boolean", "array", "object")


@dataclass(frozen=True)
class ParameterSpec:
    """Schema of a single capability parameter.

    Attributes:
        type: JSON Schema type name (e.g., "string", "integer")
        description: Human-readable description shown to the model
        required: Whether the model must provide the parameter
        default: Default value used when the parameter is omitted
        enum: Optional list of allowed values
    """

    type: str = "string"
    description: str = ""
    required: bool = False
    default: Any = None
    enum: tuple[Any, ...] | None = None

    def to_json_schema(self, include_default: bool = True) -> dict[str, Any]:
        schema: dict[str, Any] = {"type": self.type.lower()}
        if self.description:
            schema["description"] = self.description
        if self.enum:
            schema["enum"] = list(self.enum)
        if include_default and self.default is not None:
            schema["default"] = self.default
        return schema

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "description": self.description,
            "required": self.required,
            "default": self.default,
            "enum": list(self.enum) if self.enum else None,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "ParameterSpec":
        enum = data.get("enum")
        return ParameterSpec(
            type=data.get("type", "string"),
            description=data.get("description", ""),
            required=bool(data.get("required", False)),
            default=data.get("default"),
            enum=tuple(enum) if enum else None,
        )


@dataclass(frozen=True)
class CapabilityDescriptor:
    """Description of one capability exposed by a provider.

    Attributes:
        name: Capability name, unique within a registry snapshot
        description: What the capability does
        parameters: Ordered mapping of parameter name to ParameterSpec
        return_description: What the capability returns
    """

    name: str
    description: str = ""
    parameters: dict[str, ParameterSpec] = field(default_factory=dict)
    return_description: str = ""

    @property
    def required_parameters(self) -> list[str]:
        return [name for name, spec in self.parameters.items() if spec.required]

    def to_json_schema(self, include_defaults: bool = True) -> dict[str, Any]:
        """Render the parameters as a JSON Schema object.

        Args:
            include_defaults: Emit "default" keys (some vendors reject them)

        Returns:
            dict: {"type": "object", "properties": {...}, "required": [...]}
        """
        return {
            "type": "object",
            "properties": {
                name: spec.to_json_schema(include_default=include_defaults)
                for name, spec in self.parameters.items()
            },
            "required": self.required_parameters,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": {
                name: spec.to_dict() for name, spec in self.parameters.items()
            },
            "return_description": self.return_description,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "CapabilityDescriptor":
        return CapabilityDescriptor(
            name=data["name"],
            description=data.get("description", ""),
            parameters={
                name: ParameterSpec.from_dict(spec)
                for name, spec in (data.get("parameters") or {}).items()
            },
            return_description=data.get("return_description", ""),
        )


@dataclass(frozen=True)
class CapabilityResult:
    """Outcome of a capability execution: Ok(data) or Error(message).

    Attributes:
        success: True for Ok, False for Error
        data: Result payload (Ok only)
        error_message: Failure description (Error only)
    """

    success: bool
    data: Any = None
    error_message: str | None = None

    @classmethod
    def ok(cls, data: Any = None) -> "CapabilityResult":
        return cls(success=True, data=data)

    @classmethod
    def error(cls, message: str) -> "CapabilityResult":
        return cls(success=False, error_message=message)

    def serialize(self) -> str:
        """Render the result as tool message content for the model."""
        if not self.success:
            return f"Error: {self.error_message}"
        if isinstance(self.data, str):
            return self.data
        return json.dumps(self.data, default=str)

    def to_dict(self) -> dict[str, Any]:
        if self.success:
            return {"success": True, "data": self.data}
        return {"success": False, "errorMessage": self.error_message}
