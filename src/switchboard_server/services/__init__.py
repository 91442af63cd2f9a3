"""Business logic services for switchboard-server."""

from switchboard_server.services.gateway import Gateway
from switchboard_server.services.providers import ProviderService

__all__ = ["Gateway", "ProviderService"]
