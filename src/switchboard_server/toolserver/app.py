"""FastAPI application of the tool server helper process.

The helper hosts capability providers out of process and mirrors the catalog
pushed by the gateway. Only hosted tools can be executed here; mirrored
descriptors are kept so /tool-schema reflects the whole catalog.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Sequence

from fastapi import BackgroundTasks, FastAPI, Request
from fastapi.responses import JSONResponse

from switchboard_server.tools import CapabilityProvider, CapabilityRegistry
from switchboard_server.toolserver.models import (
    ExecuteToolRequest,
    ExecuteToolResponse,
    HealthResponse,
    RegisterToolsResponse,
    ToolDescriptorModel,
)

logger = logging.getLogger(__name__)


def create_tool_server_app(providers: Sequence[CapabilityProvider] = ()) -> FastAPI:
    """Create the tool server FastAPI application.

    Args:
        providers: Capability providers hosted by this process

    Returns:
        FastAPI: Configured application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        registry = CapabilityRegistry()
        for provider in providers:
            await registry.register(provider)
        app.state.registry = registry
        app.state.catalog = {}
        logger.info(f"Tool server ready with {len(registry.describe_all())} hosted tools")
        yield
        logger.info("Tool server shutting down")

    app = FastAPI(
        title="switchboard-toolserver",
        description="Loopback helper hosting capability providers",
        lifespan=lifespan,
    )
    # uvicorn.Server handle, set by the entry point so /shutdown can stop it
    app.state.server = None
    app.state.shutdown_requested = False

    @app.get("/health")
    async def health(request: Request) -> dict:
        registry: CapabilityRegistry = request.app.state.registry
        return HealthResponse(tools=len(registry.describe_all())).to_wire()

    @app.post("/register-tools")
    async def register_tools(
        descriptors: list[ToolDescriptorModel], request: Request
    ) -> dict:
        request.app.state.catalog = {d.name: d for d in descriptors}
        logger.info(f"Mirrored catalog of {len(descriptors)} tools")
        return RegisterToolsResponse(
            message=f"Registered {len(descriptors)} tools", count=len(descriptors)
        ).to_wire()

    @app.post("/execute-tool")
    async def execute_tool(body: ExecuteToolRequest, request: Request) -> JSONResponse:
        registry: CapabilityRegistry = request.app.state.registry
        name = body.tool_name

        if registry.has(name):
            result = await registry.execute(name, body.parameters)
            return JSONResponse(ExecuteToolResponse.from_result(result).to_wire())

        if name in request.app.state.catalog:
            response = ExecuteToolResponse(
                success=False,
                error_message=f"Tool '{name}' is not hosted by the tool server",
            )
            return JSONResponse(response.to_wire())

        logger.warning(f"Execute request for unknown tool {name}")
        response = ExecuteToolResponse(success=False, error_message=f"Tool not found: {name}")
        return JSONResponse(response.to_wire(), status_code=404)

    @app.get("/tool-schema")
    async def tool_schema(request: Request) -> list[dict]:
        registry: CapabilityRegistry = request.app.state.registry
        hosted = [
            ToolDescriptorModel.from_descriptor(d, hosted=True)
            for d in registry.describe_all()
        ]
        hosted_names = {d.name for d in hosted}
        mirrored = [
            d for name, d in request.app.state.catalog.items() if name not in hosted_names
        ]
        return [d.to_wire() for d in hosted + mirrored]

    @app.post("/shutdown")
    async def shutdown(request: Request, background_tasks: BackgroundTasks) -> dict:
        request.app.state.shutdown_requested = True
        server = request.app.state.server
        if server is not None:

            def stop_server() -> None:
                server.should_exit = True

            background_tasks.add_task(stop_server)
        logger.info("Shutdown requested")
        return {"message": "Shutting down"}

    return app
