"""FastAPI routers for API endpoints.

This package contains all route handlers organized by resource type.
Each router module defines endpoints for a specific domain (health,
providers, chat, tools).
"""

from switchboard_server.routers import chat, health, providers, tools

__all__ = ["chat", "health", "providers", "tools"]
