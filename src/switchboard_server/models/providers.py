"""Pydantic models for the provider API.

This module contains request and response schemas for the
/api/v1/providers endpoints.
"""

from pydantic import BaseModel, ConfigDict, Field

from switchboard_server.providers import Model, ProviderAdapter


class ModelDetail(BaseModel):
    """Information about a single vendor model."""

    id: str = Field(..., description="Model identifier sent to the vendor")
    name: str = Field(..., description="Display name")
    context_length: int = Field(..., description="Maximum context window in tokens")
    supports_tool_calls: bool = Field(..., description="Whether tools can be attached")
    supports_vision: bool = Field(..., description="Whether images are accepted")

    @classmethod
    def from_model(cls, model: Model) -> "ModelDetail":
        return cls(**model.to_dict())


class ProviderDetail(BaseModel):
    """Profile of one provider."""

    name: str
    active: bool = False
    requires_api_key: bool
    has_api_key: bool
    supports_streaming: bool
    supports_tool_calls: bool
    supports_vision: bool
    context_window: int
    current_model: str | None = None

    @classmethod
    def from_provider(cls, provider: ProviderAdapter, active: bool = False) -> "ProviderDetail":
        profile = provider.profile
        return cls(
            name=provider.provider_name,
            active=active,
            requires_api_key=profile.requires_api_key,
            has_api_key=provider.has_api_key,
            supports_streaming=profile.supports_streaming,
            supports_tool_calls=profile.supports_tool_calls,
            supports_vision=profile.supports_vision,
            context_window=profile.context_window,
            current_model=profile.current_model.id if profile.current_model else None,
        )


class ProviderListResponse(BaseModel):
    providers: list[ProviderDetail]
    active_provider: str | None = None


class ModelListResponse(BaseModel):
    provider: str
    current_model: str | None = None
    models: list[ModelDetail]


class SetModelRequest(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_id: str = Field(..., description="Model to select", min_length=1)


class SetApiKeyRequest(BaseModel):
    api_key: str | None = Field(
        default=None, description="New credential, or null to clear it"
    )


class SetActiveProviderRequest(BaseModel):
    provider: str = Field(..., description="Provider to make active", min_length=1)
