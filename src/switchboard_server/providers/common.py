"""Normalization helpers shared by the provider adapters.

Role vocabularies, tool schema rendering and vendor error extraction live
here so every adapter translates the conversation model the same way.
"""

import json
import logging
from typing import Any, Iterable, Mapping

import httpx

from switchboard_server.conversation import Role
from switchboard_server.errors import ProtocolError
from switchboard_server.tools.types import CapabilityDescriptor

logger = logging.getLogger(__name__)

# Role vocabulary per wire dialect: neutral role -> vendor role
OPENAI_ROLES: dict[Role, str] = {
    Role.SYSTEM: "system",
    Role.USER: "user",
    Role.ASSISTANT: "assistant",
    Role.TOOL: "tool",
}

ANTHROPIC_ROLES: dict[Role, str] = {
    Role.USER: "user",
    Role.ASSISTANT: "assistant",
}

GOOGLE_ROLES: dict[Role, str] = {
    Role.USER: "user",
    Role.ASSISTANT: "model",
}


def role_from_wire(value: str, vocabulary: Mapping[Role, str], provider: str) -> Role:
    """Map a vendor role name back onto Role.

    Raises:
        ProtocolError: If the vendor role is not part of the vocabulary
    """
    for role, wire_name in vocabulary.items():
        if wire_name == value:
            return role
    raise ProtocolError(f"Unknown role '{value}'", provider=provider)


def render_function_tools(
    capabilities: Iterable[CapabilityDescriptor],
) -> list[dict[str, Any]]:
    """Render descriptors in the OpenAI function-tool format (also used by Ollama)."""
    return [
        {
            "type": "function",
            "function": {
                "name": descriptor.name,
                "description": descriptor.description,
                "parameters": descriptor.to_json_schema(),
            },
        }
        for descriptor in capabilities
    ]


def dump_arguments(arguments: Mapping[str, Any]) -> str:
    return json.dumps(dict(arguments))


def error_message(response: httpx.Response) -> str:
    """Extract a human-readable error message from a vendor error response."""
    try:
        body = response.json()
    except ValueError:
        text = response.text.strip()
        return text[:500] if text else f"HTTP {response.status_code}"

    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
        if body.get("message"):
            return str(body["message"])
    return f"HTTP {response.status_code}"
