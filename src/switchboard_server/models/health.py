"""Health check response model."""

from pydantic import BaseModel, Field


class ProviderHealth(BaseModel):
    """Credential and model state of one provider."""

    name: str = Field(..., description="Provider name")
    has_api_key: bool = Field(..., description="Whether a credential is configured")
    current_model: str | None = Field(default=None, description="Selected model id")


class HealthResponse(BaseModel):
    """Response model for the health check endpoint.

    Attributes:
        status: Health status indicator ("ok" or "error").
        version: The version of switchboard-server.
        active_provider: Name of the active provider, if any.
        providers: Credential state per provider.
        tool_server_state: Lifecycle state of the tool server (None if disabled).
        capabilities: Number of registered in-process capabilities.
    """

    status: str = Field(..., description="Health status of the service")
    version: str = Field(..., description="Version of switchboard-server")
    active_provider: str | None = Field(default=None, description="Active provider")
    providers: list[ProviderHealth] = Field(default_factory=list)
    tool_server_state: str | None = Field(
        default=None, description="Tool server lifecycle state (None if disabled)"
    )
    capabilities: int = Field(default=0, description="Registered capabilities")
