"""Error taxonomy for switchboard-server.

Every error raised by the gateway core derives from GatewayError and carries
enough context (provider, capability, vendor status code) to be logged
without inspecting the stack. Capability execution failures are never raised;
they travel as CapabilityResult.error values instead.
"""

from typing import Any


class GatewayError(Exception):
    """Base class for all gateway errors.

    Attributes:
        message: Human-readable description of the failure
        provider: Name of the LLM provider or capability provider involved
        capability: Name of the capability (tool) or model involved
        status_code: Vendor HTTP status code, when one was received
    """

    code = "gateway_error"
    http_status = 500

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        capability: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.capability = capability
        self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        """Render the error in the API error envelope format."""
        details: dict[str, Any] = {}
        if self.provider is not None:
            details["provider"] = self.provider
        if self.capability is not None:
            details["capability"] = self.capability
        if self.status_code is not None:
            details["status_code"] = self.status_code
        return {"code": self.code, "message": self.message, "details": details}

    def __str__(self) -> str:
        context = ", ".join(
            f"{key}={value}"
            for key, value in (
                ("provider", self.provider),
                ("capability", self.capability),
                ("status", self.status_code),
            )
            if value is not None
        )
        return f"{self.message} ({context})" if context else self.message


class AuthError(GatewayError):
    """Missing or rejected credential. Fatal, never retried."""

    code = "auth_error"
    http_status = 401


class TransportError(GatewayError):
    """Network failure, timeout or a retryable vendor status."""

    code = "transport_error"
    http_status = 502


class ProtocolError(GatewayError):
    """The vendor answered with a shape that cannot be understood."""

    code = "protocol_error"
    http_status = 502


class UnsupportedCapabilityError(GatewayError):
    """The provider or its selected model cannot do what was asked."""

    code = "unsupported_capability"
    http_status = 400


class DuplicateCapabilityError(GatewayError):
    """A capability or provider name is already registered."""

    code = "duplicate_capability"
    http_status = 409


class CapabilityNotFoundError(GatewayError):
    """No registered provider owns the requested capability."""

    code = "capability_not_found"
    http_status = 404


class ProviderNotFoundError(GatewayError):
    """No LLM provider is configured under the requested name."""

    code = "provider_not_found"
    http_status = 404


class ToolServerError(GatewayError):
    """The tool server helper process could not be managed."""

    code = "tool_server_error"
    http_status = 503


class StartupTimeoutError(ToolServerError):
    """The tool server did not pass its health probe in time."""

    code = "startup_timeout"
    http_status = 504


class ToolLoopLimitError(GatewayError):
    """The model kept requesting tools beyond the iteration limit.

    Attributes:
        conversation: The conversation as extended up to the point of failure
    """

    code = "tool_loop_limit"
    http_status = 422

    def __init__(self, message: str, *, conversation: Any = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.conversation = conversation
