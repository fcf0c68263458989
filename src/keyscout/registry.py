"""Provider catalog built once at process start."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from .config import DEFAULT_REQUEST_TIMEOUT, DEFAULT_USER_AGENT
from .errors import ProviderError
from .models import ApiType
from .providers.ai import AI_PROVIDERS
from .providers.base import ApiKeyProvider
from .providers.cloud import CLOUD_PROVIDERS
from .providers.communication import COMMUNICATION_PROVIDERS
from .providers.database import DATABASE_PROVIDERS
from .providers.maps import MAPS_PROVIDERS
from .providers.monitoring import MONITORING_PROVIDERS
from .providers.source_control import SOURCE_CONTROL_PROVIDERS

PROVIDER_CLASSES: tuple[type[ApiKeyProvider], ...] = (
    AI_PROVIDERS
    + CLOUD_PROVIDERS
    + SOURCE_CONTROL_PROVIDERS
    + COMMUNICATION_PROVIDERS
    + DATABASE_PROVIDERS
    + MONITORING_PROVIDERS
    + MAPS_PROVIDERS
)


class ProviderRegistry:
    """Lookup of provider instances by type, with scraper and verifier views.

    Scraping and verification are independent capabilities, so descriptor
    flags are not cross-checked against each other.
    """

    def __init__(self, providers: Iterable[ApiKeyProvider]) -> None:
        self._providers: dict[ApiType, ApiKeyProvider] = {}
        for provider in providers:
            if provider.api_type in self._providers:
                raise ProviderError(f"Duplicate provider type: {provider.api_type.value}")
            self._providers[provider.api_type] = provider

    @classmethod
    def default(
        cls,
        *,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        user_agent: str = DEFAULT_USER_AGENT,
        logger: logging.Logger | None = None,
    ) -> ProviderRegistry:
        """Instantiate every known provider."""
        return cls(
            provider_cls(timeout=timeout, user_agent=user_agent, logger=logger)
            for provider_cls in PROVIDER_CLASSES
        )

    def __len__(self) -> int:
        return len(self._providers)

    def get(self, api_type: ApiType) -> ApiKeyProvider | None:
        return self._providers.get(api_type)

    def all_providers(self) -> list[ApiKeyProvider]:
        return list(self._providers.values())

    def scraper_providers(self) -> list[ApiKeyProvider]:
        return [p for p in self._providers.values() if p.descriptor.scraper_use]

    def verifier_providers(self) -> list[ApiKeyProvider]:
        return [p for p in self._providers.values() if p.descriptor.verification_use]

    def verifiable_types(self) -> list[ApiType]:
        return [p.api_type for p in self.verifier_providers()]

    def displayable_types(self) -> list[ApiType]:
        return [p.api_type for p in self._providers.values() if p.descriptor.display_in_ui]

    def is_verifiable(self, api_type: ApiType) -> bool:
        provider = self.get(api_type)
        return provider is not None and provider.descriptor.verification_use

    def close(self) -> None:
        for provider in self._providers.values():
            provider.close()
