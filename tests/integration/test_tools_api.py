"""Integration tests for the tools API endpoints."""

import pytest
from httpx import ASGITransport, AsyncClient

from switchboard_server import create_app


@pytest.mark.asyncio
async def test_list_tools(async_client: AsyncClient):
    """Test that registry capabilities are listed with their schema."""
    response = await async_client.get("/api/v1/tools")

    assert response.status_code == 200
    tools = response.json()["tools"]
    assert [t["name"] for t in tools] == ["add", "divide"]
    add = tools[0]
    assert add["source"] == "registry"
    assert add["provider"] == "math"
    assert add["description"] == "Add two integers"
    assert add["parameters"]["a"]["type"] == "integer"
    assert add["parameters"]["a"]["required"] is True


@pytest.mark.asyncio
async def test_list_tools_registry_not_initialized(async_client: AsyncClient, test_app):
    """Test list tools when the capability registry is not initialized."""
    if hasattr(test_app.state, "registry"):
        delattr(test_app.state, "registry")

    response = await async_client.get("/api/v1/tools")

    assert response.status_code == 503
    error = response.json()["detail"]["error"]
    assert error["code"] == "not_initialized"
    assert error["message"] == "Capability registry not initialized"


@pytest.mark.asyncio
async def test_execute_tool(async_client: AsyncClient):
    response = await async_client.post(
        "/api/v1/tools/execute", json={"name": "add", "arguments": {"a": 2, "b": 3}}
    )

    assert response.status_code == 200
    assert response.json() == {"success": True, "data": 5, "error_message": None, "content": "5"}


@pytest.mark.asyncio
async def test_execute_failing_tool(async_client: AsyncClient):
    response = await async_client.post(
        "/api/v1/tools/execute", json={"name": "divide", "arguments": {"a": 1, "b": 0}}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is False
    assert data["content"].startswith("Error:")


@pytest.mark.asyncio
async def test_execute_unknown_tool(async_client: AsyncClient):
    response = await async_client.post("/api/v1/tools/execute", json={"name": "teleport"})

    assert response.status_code == 200
    assert response.json()["success"] is False


@pytest.mark.asyncio
async def test_tool_server_status(async_client: AsyncClient):
    response = await async_client.get("/api/v1/tools/server")

    assert response.status_code == 200
    data = response.json()
    assert data["state"] == "stopped"
    assert data["url"] == "http://127.0.0.1:3000"
    assert data["pid"] is None
    assert data["hosted_tools"] == []


@pytest.mark.asyncio
async def test_stop_stopped_tool_server(async_client: AsyncClient):
    response = await async_client.post("/api/v1/tools/server/stop")

    assert response.status_code == 200
    assert response.json()["state"] == "stopped"


@pytest.mark.asyncio
async def test_sync_without_running_server_marks_stale(async_client: AsyncClient):
    response = await async_client.post("/api/v1/tools/server/sync")

    assert response.status_code == 200
    data = response.json()
    assert data["state"] == "stopped"
    assert data["remote_stale"] is True


@pytest.mark.asyncio
async def test_tool_server_disabled(test_settings, test_providers):
    settings = test_settings.model_copy(update={"tool_server_enabled": False})
    app = create_app(settings=settings, provider_adapters=test_providers)

    async with app.router.lifespan_context(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/api/v1/tools/server")

    assert response.status_code == 503
    assert response.json()["detail"]["error"]["code"] == "tool_server_disabled"
