"""Provider selection and model refresh."""

import asyncio
import logging
from typing import Sequence

from switchboard_server.errors import ProviderNotFoundError
from switchboard_server.providers import Model, ProviderAdapter

logger = logging.getLogger(__name__)


class ProviderService:
    """Holds every configured provider adapter and the active selection.

    Provider names are matched case-insensitively.
    """

    def __init__(
        self, providers: Sequence[ProviderAdapter], default_provider: str | None = None
    ) -> None:
        self._providers: dict[str, ProviderAdapter] = {
            provider.provider_name.lower(): provider for provider in providers
        }
        self.default_provider = default_provider
        self._active: ProviderAdapter | None = None
        self._refresh_lock = asyncio.Lock()

    @property
    def providers(self) -> list[ProviderAdapter]:
        return list(self._providers.values())

    @property
    def active(self) -> ProviderAdapter | None:
        return self._active

    @property
    def refresh_in_progress(self) -> bool:
        return self._refresh_lock.locked()

    def get(self, name: str) -> ProviderAdapter:
        """Look up a provider by name.

        Raises:
            ProviderNotFoundError: If no provider has that name
        """
        provider = self._providers.get(name.lower())
        if provider is None:
            raise ProviderNotFoundError(f"Provider '{name}' not found", provider=name)
        return provider

    def set_active(self, name: str) -> ProviderAdapter:
        provider = self.get(name)
        self._active = provider
        logger.info(f"Active provider set to {provider.provider_name}")
        return provider

    async def initialize_all(self) -> None:
        """Initialize every provider and choose the active one.

        The configured default wins; otherwise the first provider holding a
        credential, then the first one that needs none.
        """
        for provider in self.providers:
            try:
                await provider.initialize()
            except Exception as e:
                logger.error(f"Failed to initialize provider {provider.provider_name}: {e}")

        if self.default_provider and self.default_provider.lower() in self._providers:
            self.set_active(self.default_provider)
            return

        candidates = [p for p in self.providers if p.has_api_key] or [
            p for p in self.providers if not p.profile.requires_api_key
        ]
        if candidates:
            self.set_active(candidates[0].provider_name)
        else:
            logger.warning("No provider has a credential, no active provider selected")

    def _usable(self, provider: ProviderAdapter) -> bool:
        return provider.has_api_key or not provider.profile.requires_api_key

    async def refresh_models(self) -> dict[str, int]:
        """Refresh the model list of every usable provider.

        Concurrent calls do not queue up: a refresh that starts while another
        one runs returns immediately with an empty result.

        Returns:
            dict: Provider name -> number of models after the refresh
        """
        if self._refresh_lock.locked():
            logger.info("Model refresh already in progress, skipping")
            return {}

        async with self._refresh_lock:
            counts: dict[str, int] = {}
            for provider in self.providers:
                if not self._usable(provider):
                    continue
                models = await provider.fetch_available_models()
                counts[provider.provider_name] = len(models)
            logger.info(f"Refreshed models: {counts}")
            return counts

    async def refresh_models_for(self, name: str) -> list[Model]:
        provider = self.get(name)
        return await provider.fetch_available_models()

    async def run_periodic_refresh(self, interval: float) -> None:
        """Refresh models every `interval` seconds until cancelled."""
        while True:
            await asyncio.sleep(interval)
            try:
                await self.refresh_models()
            except Exception as e:
                logger.error(f"Periodic model refresh failed: {e}")

    async def close_all(self) -> None:
        for provider in self.providers:
            try:
                await provider.close()
            except Exception as e:
                logger.warning(f"Failed to close provider {provider.provider_name}: {e}")
