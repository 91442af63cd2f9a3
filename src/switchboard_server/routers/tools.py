"""Tools router: capability catalog, direct execution and tool server control."""

import logging

from fastapi import APIRouter, Depends

from switchboard_server.dependencies import get_gateway, get_registry, get_tool_server
from switchboard_server.errors import GatewayError
from switchboard_server.models.tools import (
    CapabilityDetail,
    ExecuteToolRequest,
    ExecuteToolResponse,
    ToolListResponse,
    ToolServerStatusResponse,
)
from switchboard_server.routers.errors import http_error
from switchboard_server.services import Gateway
from switchboard_server.tools import CapabilityRegistry
from switchboard_server.toolserver import ToolServerLifecycle

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/tools", tags=["tools"])


@router.get("", response_model=ToolListResponse)
async def list_tools(
    registry: CapabilityRegistry = Depends(get_registry),
    gateway: Gateway = Depends(get_gateway),
) -> ToolListResponse:
    """List every capability the gateway can execute."""
    tools = [
        CapabilityDetail.from_descriptor(d, "registry", registry.owner_of(d.name))
        for d in registry.describe_all()
    ]
    names = {tool.name for tool in tools}
    if gateway.tool_server is not None:
        tools.extend(
            CapabilityDetail.from_descriptor(d, "toolserver")
            for d in gateway.tool_server.hosted_capabilities
            if d.name not in names
        )
    return ToolListResponse(tools=tools)


@router.post("/execute", response_model=ExecuteToolResponse)
async def execute_tool(
    request_body: ExecuteToolRequest,
    gateway: Gateway = Depends(get_gateway),
) -> ExecuteToolResponse:
    """Execute one capability directly. Failures are reported in the body."""
    result = await gateway.execute_tool(request_body.name, request_body.arguments)
    return ExecuteToolResponse(
        success=result.success,
        data=result.data,
        error_message=result.error_message,
        content=result.serialize(),
    )


def _status(tool_server: ToolServerLifecycle) -> ToolServerStatusResponse:
    return ToolServerStatusResponse(**tool_server.status())


@router.get("/server", response_model=ToolServerStatusResponse)
async def tool_server_status(
    tool_server: ToolServerLifecycle = Depends(get_tool_server),
) -> ToolServerStatusResponse:
    """Get the tool server lifecycle state."""
    return _status(tool_server)


@router.post("/server/start", response_model=ToolServerStatusResponse)
async def start_tool_server(
    tool_server: ToolServerLifecycle = Depends(get_tool_server),
) -> ToolServerStatusResponse:
    """Start the tool server (no-op when already running)."""
    try:
        await tool_server.start()
    except GatewayError as e:
        raise http_error(e)
    return _status(tool_server)


@router.post("/server/stop", response_model=ToolServerStatusResponse)
async def stop_tool_server(
    tool_server: ToolServerLifecycle = Depends(get_tool_server),
) -> ToolServerStatusResponse:
    """Stop the tool server."""
    await tool_server.stop()
    return _status(tool_server)


@router.post("/server/restart", response_model=ToolServerStatusResponse)
async def restart_tool_server(
    tool_server: ToolServerLifecycle = Depends(get_tool_server),
) -> ToolServerStatusResponse:
    """Stop then start the tool server."""
    try:
        await tool_server.restart()
    except GatewayError as e:
        raise http_error(e)
    return _status(tool_server)


@router.post("/server/sync", response_model=ToolServerStatusResponse)
async def sync_tool_server(
    tool_server: ToolServerLifecycle = Depends(get_tool_server),
) -> ToolServerStatusResponse:
    """Push the capability catalog to the tool server."""
    await tool_server.sync_capabilities()
    return _status(tool_server)
