"""Providers router for listing providers, models and credentials.

This module provides endpoints for querying and configuring the LLM
provider adapters.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from switchboard_server.dependencies import get_provider_service
from switchboard_server.errors import GatewayError
from switchboard_server.models.providers import (
    ModelDetail,
    ModelListResponse,
    ProviderDetail,
    ProviderListResponse,
    SetActiveProviderRequest,
    SetApiKeyRequest,
    SetModelRequest,
)
from switchboard_server.providers import ProviderAdapter
from switchboard_server.routers.errors import http_error
from switchboard_server.services import ProviderService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/providers", tags=["providers"])


def _detail(service: ProviderService, provider: ProviderAdapter) -> ProviderDetail:
    return ProviderDetail.from_provider(provider, active=provider is service.active)


def _models(provider: ProviderAdapter) -> ModelListResponse:
    current = provider.profile.current_model
    return ModelListResponse(
        provider=provider.provider_name,
        current_model=current.id if current else None,
        models=[ModelDetail.from_model(m) for m in provider.profile.available_models],
    )


def _get(service: ProviderService, name: str) -> ProviderAdapter:
    try:
        return service.get(name)
    except GatewayError as e:
        raise http_error(e)


@router.get("", response_model=ProviderListResponse)
async def list_providers(
    service: ProviderService = Depends(get_provider_service),
) -> ProviderListResponse:
    """List every configured provider with its profile."""
    return ProviderListResponse(
        providers=[_detail(service, p) for p in service.providers],
        active_provider=service.active.provider_name if service.active else None,
    )


@router.put("/active", response_model=ProviderDetail)
async def set_active_provider(
    request_body: SetActiveProviderRequest,
    service: ProviderService = Depends(get_provider_service),
) -> ProviderDetail:
    """Select the provider used when a chat request names none."""
    try:
        provider = service.set_active(request_body.provider)
    except GatewayError as e:
        raise http_error(e)
    return _detail(service, provider)


@router.get("/{name}/models", response_model=ModelListResponse)
async def list_models(
    name: str,
    service: ProviderService = Depends(get_provider_service),
) -> ModelListResponse:
    """List the cached models of a provider."""
    return _models(_get(service, name))


@router.post("/{name}/models/refresh", response_model=ModelListResponse)
async def refresh_models(
    name: str,
    service: ProviderService = Depends(get_provider_service),
) -> ModelListResponse:
    """Refresh the model list from the vendor (best effort)."""
    try:
        await service.refresh_models_for(name)
    except GatewayError as e:
        raise http_error(e)
    return _models(service.get(name))


@router.put("/{name}/model", response_model=ProviderDetail)
async def set_model(
    name: str,
    request_body: SetModelRequest,
    service: ProviderService = Depends(get_provider_service),
) -> ProviderDetail:
    """Select the model a provider sends requests to.

    Raises:
        HTTPException: 404 if the provider or the model is unknown
    """
    provider = _get(service, name)
    if not provider.set_model(request_body.model_id):
        raise HTTPException(
            status_code=404,
            detail={
                "error": {
                    "code": "model_not_found",
                    "message": f"Model {request_body.model_id} not available",
                    "details": {
                        "provider": provider.provider_name,
                        "model_id": request_body.model_id,
                    },
                }
            },
        )
    return _detail(service, provider)


@router.put("/{name}/api-key", response_model=ProviderDetail)
async def set_api_key(
    name: str,
    request_body: SetApiKeyRequest,
    service: ProviderService = Depends(get_provider_service),
) -> ProviderDetail:
    """Set or clear the credential of a provider.

    Setting a key triggers a best-effort model refresh.
    """
    provider = _get(service, name)
    provider.set_api_key(request_body.api_key)
    if provider.has_api_key:
        await provider.fetch_available_models()
    return _detail(service, provider)
