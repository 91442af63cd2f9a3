"""Async HTTP client for the tool server helper process."""

import logging
from typing import Any, Sequence

import httpx
from pydantic import ValidationError

from switchboard_server.errors import ToolServerError, TransportError
from switchboard_server.tools.types import CapabilityDescriptor, CapabilityResult
from switchboard_server.toolserver.models import (
    ExecuteToolRequest,
    ExecuteToolResponse,
    RegisterToolsResponse,
    ToolDescriptorModel,
)

logger = logging.getLogger(__name__)

PROVIDER_NAME = "toolserver"


class ToolServerClient:
    """Client for the tool server's loopback JSON API.

    Attributes:
        base_url: The tool server URL (e.g., "http://127.0.0.1:3000")
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        probe_timeout: float = 2.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.probe_timeout = probe_timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def health(self) -> bool:
        """Probe GET /health.

        Returns:
            bool: True if the server answered 200, False otherwise
        """
        try:
            response = await self._client.get(
                f"{self.base_url}/health", timeout=self.probe_timeout
            )
        except httpx.HTTPError as e:
            logger.debug(f"Tool server health probe failed: {e}")
            return False
        return response.status_code == 200

    async def register_tools(self, descriptors: Sequence[CapabilityDescriptor]) -> int:
        """Push the capability catalog.

        Returns:
            int: Number of tools the server registered

        Raises:
            TransportError: If the server cannot be reached
            ToolServerError: If the server rejected the catalog
        """
        body = [ToolDescriptorModel.from_descriptor(d).to_wire() for d in descriptors]
        response = await self._request("POST", "/register-tools", json=body)
        if response.status_code != 200:
            raise ToolServerError(
                f"Tool registration failed: {response.text}",
                provider=PROVIDER_NAME,
                status_code=response.status_code,
            )
        try:
            return RegisterToolsResponse.model_validate(response.json()).count
        except (ValueError, ValidationError) as e:
            raise ToolServerError(
                f"Invalid registration response: {e}", provider=PROVIDER_NAME
            ) from e

    async def list_tools(self) -> list[ToolDescriptorModel]:
        """Fetch GET /tool-schema."""
        response = await self._request("GET", "/tool-schema")
        if response.status_code != 200:
            raise ToolServerError(
                "Failed to fetch tool schema",
                provider=PROVIDER_NAME,
                status_code=response.status_code,
            )
        try:
            return [ToolDescriptorModel.model_validate(item) for item in response.json()]
        except (ValueError, ValidationError) as e:
            raise ToolServerError(
                f"Invalid tool schema response: {e}", provider=PROVIDER_NAME
            ) from e

    async def execute_tool(self, name: str, arguments: dict[str, Any]) -> CapabilityResult:
        """Execute a tool remotely.

        Tool failures, including unknown tools, come back as error results.

        Raises:
            TransportError: If the server cannot be reached
        """
        body = ExecuteToolRequest(tool_name=name, parameters=arguments).to_wire()
        response = await self._request("POST", "/execute-tool", json=body, capability=name)
        try:
            return ExecuteToolResponse.model_validate(response.json()).to_result()
        except (ValueError, ValidationError):
            return CapabilityResult.error(
                f"Tool server returned HTTP {response.status_code} for '{name}'"
            )

    async def shutdown(self) -> bool:
        """Ask the server to exit. Best effort."""
        try:
            response = await self._client.post(
                f"{self.base_url}/shutdown", timeout=self.probe_timeout
            )
        except httpx.HTTPError as e:
            logger.debug(f"Tool server shutdown request failed: {e}")
            return False
        return response.status_code == 200

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(
        self, method: str, path: str, *, capability: str | None = None, **kwargs: Any
    ) -> httpx.Response:
        try:
            return await self._client.request(method, f"{self.base_url}{path}", **kwargs)
        except httpx.HTTPError as e:
            raise TransportError(
                f"Tool server request {method} {path} failed: {e}",
                provider=PROVIDER_NAME,
                capability=capability,
            ) from e
