"""FastAPI application factory and lifespan management.

This module contains the create_app() factory function that creates and configures
the FastAPI application instance, including lifespan management for startup/shutdown
and router registration.
"""

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Sequence

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from switchboard_server.config import SwitchboardSettings
from switchboard_server.errors import GatewayError, ToolServerError
from switchboard_server.providers import ProviderAdapter, build_providers
from switchboard_server.routers import chat, health, providers, tools
from switchboard_server.services import Gateway, ProviderService
from switchboard_server.tools import (
    CapabilityProvider,
    CapabilityRegistry,
    load_capability_provider,
)
from switchboard_server.toolserver import ToolServerLifecycle

logger = logging.getLogger(__name__)


async def _register_capabilities(
    registry: CapabilityRegistry,
    paths: Sequence[str],
    extra: Sequence[CapabilityProvider],
) -> None:
    """Register configured and injected capability providers.

    A provider that fails to load or register is logged and skipped.
    """
    loaded: list[CapabilityProvider] = []
    for path in paths:
        try:
            loaded.append(load_capability_provider(path))
        except (ImportError, ValueError) as e:
            logger.error(f"Failed to load capability provider {path}: {e}")

    for provider in [*loaded, *extra]:
        try:
            descriptors = await registry.register(provider)
            logger.info(
                f"Registered {len(descriptors)} capabilities from {provider.provider_name}"
            )
        except GatewayError as e:
            logger.error(f"Failed to register {provider.provider_name}: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Lifespan context manager for FastAPI application.

    Provider adapters, the capability registry, the tool server lifecycle and
    the gateway are created once at startup and stored in app.state for reuse
    across all requests.

    Args:
        app: The FastAPI application instance.

    Yields:
        None: Control is yielded while the app is running.
    """
    settings: SwitchboardSettings = app.state.settings

    registry = CapabilityRegistry()
    await _register_capabilities(
        registry, settings.capability_providers, app.state.extra_capability_providers
    )
    app.state.registry = registry

    adapters = app.state.injected_providers
    if adapters is None:
        adapters = build_providers(settings)
    provider_service = ProviderService(adapters, default_provider=settings.default_provider)
    await provider_service.initialize_all()
    app.state.provider_service = provider_service
    logger.info(
        f"Initialized {len(provider_service.providers)} providers, active: "
        f"{provider_service.active.provider_name if provider_service.active else None}"
    )

    tool_server = None
    if settings.tool_server_enabled:
        tool_server = ToolServerLifecycle(
            registry,
            host=settings.tool_server_host,
            port=settings.tool_server_port,
            probe_interval=settings.tool_server_probe_interval,
            max_probe_attempts=settings.tool_server_max_probe_attempts,
            shutdown_grace=settings.tool_server_shutdown_grace,
            hosted_providers=settings.tool_server_providers,
        )
        if settings.tool_server_autostart:
            try:
                await tool_server.start()
            except ToolServerError as e:
                logger.error(f"Tool server failed to start: {e}")
    app.state.tool_server = tool_server

    app.state.gateway = Gateway(
        registry,
        tool_server,
        max_tool_iterations=settings.max_tool_iterations,
        transport_retries=settings.transport_retries,
        transport_retry_backoff=settings.transport_retry_backoff,
    )

    refresh_task = None
    if settings.model_refresh_interval > 0:
        refresh_task = asyncio.create_task(
            provider_service.run_periodic_refresh(settings.model_refresh_interval)
        )

    yield

    # Shutdown: Clean up resources
    if refresh_task is not None:
        refresh_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await refresh_task
    if tool_server is not None:
        await tool_server.aclose()
        logger.info("Tool server lifecycle closed")
    await provider_service.close_all()
    logger.info("Provider adapters closed")


def create_app(
    settings: SwitchboardSettings | None = None,
    provider_adapters: Sequence[ProviderAdapter] | None = None,
    capability_providers: Sequence[CapabilityProvider] = (),
) -> FastAPI:
    """Create and configure the FastAPI application.

    This factory function creates a FastAPI instance with all routers,
    middleware, and configuration applied.

    Args:
        settings: Optional SwitchboardSettings instance. If not provided,
                  settings will be loaded from environment variables.
        provider_adapters: Optional adapters replacing the ones built
                           from settings.
        capability_providers: Capability providers registered in addition to
                              the ones named in settings.

    Returns:
        FastAPI: Configured FastAPI application instance.
    """
    if settings is None:
        from switchboard_server.dependencies import get_settings

        settings = get_settings()

    app = FastAPI(
        title="switchboard-server",
        description="Multi-provider LLM gateway with tool calling",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.injected_providers = (
        list(provider_adapters) if provider_adapters is not None else None
    )
    app.state.extra_capability_providers = list(capability_providers)

    # Note: FastAPI's type hints for add_middleware are overly strict
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(providers.router)
    app.include_router(chat.router)
    app.include_router(tools.router)

    return app
