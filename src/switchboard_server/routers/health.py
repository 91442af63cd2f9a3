"""Health check endpoint router."""

import logging

from fastapi import APIRouter, Request

from switchboard_server import __version__
from switchboard_server.models.health import HealthResponse, ProviderHealth

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Health check endpoint.

    Returns the current health status and version of switchboard-server,
    the credential state of every provider and the tool server state.

    Args:
        request: The FastAPI request object.

    Returns:
        HealthResponse: Health status and version information.
    """
    state = request.app.state
    providers: list[ProviderHealth] = []
    active_provider = None

    provider_service = getattr(state, "provider_service", None)
    if provider_service is not None:
        for provider in provider_service.providers:
            current = provider.profile.current_model
            providers.append(
                ProviderHealth(
                    name=provider.provider_name,
                    has_api_key=provider.has_api_key,
                    current_model=current.id if current else None,
                )
            )
        if provider_service.active is not None:
            active_provider = provider_service.active.provider_name

    tool_server = getattr(state, "tool_server", None)
    registry = getattr(state, "registry", None)

    return HealthResponse(
        status="ok",
        version=__version__,
        active_provider=active_provider,
        providers=providers,
        tool_server_state=tool_server.state.value if tool_server is not None else None,
        capabilities=len(registry.describe_all()) if registry is not None else 0,
    )
