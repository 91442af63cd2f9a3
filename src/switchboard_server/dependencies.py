"""Dependency injection providers for FastAPI endpoints.

This module provides FastAPI dependency functions that are used across
multiple routers to inject the objects created in the application lifespan.
"""

from functools import lru_cache

from fastapi import HTTPException, Request

from switchboard_server.config import SwitchboardSettings
from switchboard_server.services import Gateway, ProviderService
from switchboard_server.tools import CapabilityRegistry
from switchboard_server.toolserver import ToolServerLifecycle


@lru_cache
def get_settings() -> SwitchboardSettings:
    """Get the application settings instance.

    This function is cached so that the same settings instance is reused
    across all requests. Settings are loaded from environment variables
    with the SWITCHBOARD_ prefix.

    Returns:
        SwitchboardSettings: The application configuration settings.
    """
    return SwitchboardSettings()


def _not_initialized(component: str) -> HTTPException:
    return HTTPException(
        status_code=503,
        detail={
            "error": {
                "code": "not_initialized",
                "message": f"{component} not initialized",
                "details": {},
            }
        },
    )


def get_provider_service(request: Request) -> ProviderService:
    """Get the ProviderService from app state.

    Raises:
        HTTPException: If the service is not initialized (503 Service Unavailable).
    """
    if not hasattr(request.app.state, "provider_service"):
        raise _not_initialized("Provider service")
    return request.app.state.provider_service


def get_registry(request: Request) -> CapabilityRegistry:
    """Get the CapabilityRegistry from app state."""
    if not hasattr(request.app.state, "registry"):
        raise _not_initialized("Capability registry")
    return request.app.state.registry


def get_gateway(request: Request) -> Gateway:
    """Get the Gateway from app state."""
    if not hasattr(request.app.state, "gateway"):
        raise _not_initialized("Gateway")
    return request.app.state.gateway


def get_tool_server(request: Request) -> ToolServerLifecycle:
    """Get the tool server lifecycle from app state.

    Raises:
        HTTPException: 503 if the tool server is disabled in the settings.
    """
    tool_server = getattr(request.app.state, "tool_server", None)
    if tool_server is None:
        raise HTTPException(
            status_code=503,
            detail={
                "error": {
                    "code": "tool_server_disabled",
                    "message": "Tool server is disabled",
                    "details": {},
                }
            },
        )
    return tool_server
