"""Capability (tool) providers, descriptors and the capability registry."""

from switchboard_server.tools.loader import load_capability_provider
from switchboard_server.tools.provider import (
    CapabilityProvider,
    FunctionCapabilityProvider,
    describe_callable,
)
from switchboard_server.tools.registry import CapabilityRegistry
from switchboard_server.tools.types import (
    CapabilityDescriptor,
    CapabilityResult,
    ParameterSpec,
)

__all__ = [
    "CapabilityDescriptor",
    "CapabilityProvider",
    "CapabilityRegistry",
    "CapabilityResult",
    "FunctionCapabilityProvider",
    "ParameterSpec",
    "describe_callable",
    "load_capability_provider",
]
