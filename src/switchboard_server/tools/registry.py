"""Capability registry.

The registry maps capability names to the provider that owns them. Writers
(register/unregister) are serialized by a lock and publish a new immutable
snapshot; readers (resolve/execute/describe) work on whatever snapshot is
current without locking.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Mapping

from switchboard_server.errors import CapabilityNotFoundError, DuplicateCapabilityError
from switchboard_server.tools.provider import CapabilityProvider
from switchboard_server.tools.types import CapabilityDescriptor, CapabilityResult

logger = logging.getLogger(__name__)

CatalogListener = Callable[["CapabilityRegistry"], None]


@dataclass(frozen=True)
class _Snapshot:
    providers: Mapping[str, CapabilityProvider] = field(
        default_factory=lambda: MappingProxyType({})
    )
    # capability name -> (provider name, descriptor)
    capabilities: Mapping[str, tuple[str, CapabilityDescriptor]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    version: int = 0


class CapabilityRegistry:
    """Registry of capability providers and the capabilities they expose.

    A capability name resolves to at most one provider. Registration is
    all-or-nothing: a provider whose name, or any of whose capability names,
    collides with the current snapshot is rejected and the first writer wins.
    """

    def __init__(self) -> None:
        self._snapshot = _Snapshot()
        self._lock = asyncio.Lock()
        self._listeners: list[CatalogListener] = []

    @property
    def version(self) -> int:
        """Monotonic counter bumped on every catalog change."""
        return self._snapshot.version

    @property
    def provider_names(self) -> list[str]:
        return list(self._snapshot.providers)

    def add_listener(self, listener: CatalogListener) -> None:
        """Register a callback invoked synchronously after each catalog change."""
        self._listeners.append(listener)

    def remove_listener(self, listener: CatalogListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def register(self, provider: CapabilityProvider) -> list[CapabilityDescriptor]:
        """Register a provider and all its capabilities.

        Args:
            provider: The capability provider to add

        Returns:
            list[CapabilityDescriptor]: The descriptors that were added

        Raises:
            DuplicateCapabilityError: If the provider or a capability name is taken
        """
        async with self._lock:
            current = self._snapshot
            name = provider.provider_name

            if name in current.providers:
                raise DuplicateCapabilityError(
                    f"Provider '{name}' is already registered", provider=name
                )

            descriptors = provider.list_capabilities()
            seen: set[str] = set()
            for descriptor in descriptors:
                if descriptor.name in seen:
                    raise DuplicateCapabilityError(
                        f"Capability '{descriptor.name}' is exposed twice",
                        provider=name,
                        capability=descriptor.name,
                    )
                seen.add(descriptor.name)
                if descriptor.name in current.capabilities:
                    owner = current.capabilities[descriptor.name][0]
                    raise DuplicateCapabilityError(
                        f"Capability '{descriptor.name}' is already registered "
                        f"by provider '{owner}'",
                        provider=name,
                        capability=descriptor.name,
                    )

            init_result = await provider.initialize()
            if not init_result.success:
                logger.warning(
                    f"Provider {name} initialization reported an error: "
                    f"{init_result.error_message}"
                )

            providers = dict(current.providers)
            providers[name] = provider
            capabilities = dict(current.capabilities)
            for descriptor in descriptors:
                capabilities[descriptor.name] = (name, descriptor)

            self._snapshot = _Snapshot(
                providers=MappingProxyType(providers),
                capabilities=MappingProxyType(capabilities),
                version=current.version + 1,
            )

        logger.info(f"Registered provider {name} with {len(descriptors)} capabilities")
        self._notify()
        return descriptors

    async def unregister(self, provider_name: str) -> bool:
        """Remove a provider and its capabilities.

        Returns:
            bool: True if the provider was registered, False otherwise
        """
        async with self._lock:
            current = self._snapshot
            if provider_name not in current.providers:
                return False

            providers = {
                name: provider
                for name, provider in current.providers.items()
                if name != provider_name
            }
            capabilities = {
                cap_name: entry
                for cap_name, entry in current.capabilities.items()
                if entry[0] != provider_name
            }
            self._snapshot = _Snapshot(
                providers=MappingProxyType(providers),
                capabilities=MappingProxyType(capabilities),
                version=current.version + 1,
            )

        logger.info(f"Unregistered provider {provider_name}")
        self._notify()
        return True

    def has(self, name: str) -> bool:
        return name in self._snapshot.capabilities

    def resolve(self, name: str) -> CapabilityProvider:
        """Find the provider that owns a capability.

        Raises:
            CapabilityNotFoundError: If no provider exposes the capability
        """
        snapshot = self._snapshot
        entry = snapshot.capabilities.get(name)
        if entry is None:
            raise CapabilityNotFoundError(
                f"Capability '{name}' is not registered", capability=name
            )
        return snapshot.providers[entry[0]]

    async def execute(self, name: str, arguments: dict[str, Any]) -> CapabilityResult:
        """Execute a capability, reporting every failure as an error result."""
        try:
            provider = self.resolve(name)
        except CapabilityNotFoundError as e:
            return CapabilityResult.error(e.message)

        try:
            result = await provider.execute(name, arguments)
        except Exception as e:
            logger.error(
                f"Provider {provider.provider_name} raised while executing {name}: {e}"
            )
            return CapabilityResult.error(f"Capability '{name}' failed: {e}")

        if not isinstance(result, CapabilityResult):
            return CapabilityResult.ok(result)
        return result

    def describe_all(self) -> list[CapabilityDescriptor]:
        """Return every registered descriptor in registration order."""
        return [descriptor for _, descriptor in self._snapshot.capabilities.values()]

    def describe(self, names: list[str]) -> list[CapabilityDescriptor]:
        """Return descriptors for the given names, in the given order.

        Raises:
            CapabilityNotFoundError: If any name is not registered
        """
        snapshot = self._snapshot
        descriptors = []
        for name in names:
            entry = snapshot.capabilities.get(name)
            if entry is None:
                raise CapabilityNotFoundError(
                    f"Capability '{name}' is not registered", capability=name
                )
            descriptors.append(entry[1])
        return descriptors

    def owner_of(self, name: str) -> str | None:
        entry = self._snapshot.capabilities.get(name)
        return entry[0] if entry else None

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                logger.error(f"Catalog listener failed: {e}")
