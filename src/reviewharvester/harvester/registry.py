"""Provider registry.

Maps a strategy name ("interactive", "api") to a factory that builds the
matching ExtractionProvider from the run configuration and the resources
the bootstrap layer acquired (a Playwright page, an httpx client).

Usage:
    from reviewharvester.harvester.registry import provider_registry

    provider = provider_registry.create("api", product_id, config, client=client)

    @provider_registry.register("mirror")
    def build_mirror_provider(product_id, config, **resources):
        return MirrorProvider(...)
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from ..config import HarvestConfig
from .providers import ApiPaginationProvider, ExtractionProvider, InteractiveScrollProvider

logger = logging.getLogger(__name__)

DEFAULT_STRATEGY = "interactive"

ProviderFactory = Callable[..., ExtractionProvider]


class ProviderRegistry:
    """Registry of extraction provider factories by strategy name."""

    def __init__(self, default: str = DEFAULT_STRATEGY):
        self._factories: Dict[str, ProviderFactory] = {}
        self.default = default

    def register(self, strategy: str) -> Callable[[ProviderFactory], ProviderFactory]:
        """Decorator to register a provider factory."""

        def decorator(factory: ProviderFactory) -> ProviderFactory:
            self._factories[strategy.lower()] = factory
            logger.debug(f"Registered provider: {strategy} -> {factory.__name__}")
            return factory

        return decorator

    def get(self, strategy: Optional[str] = None) -> ProviderFactory:
        """Get the factory for a strategy (default strategy when None)."""
        key = (strategy or self.default).lower()
        if key not in self._factories:
            raise KeyError(
                f"Unknown strategy '{key}'. Available: {', '.join(self.list_strategies())}"
            )
        return self._factories[key]

    def create(
        self,
        strategy: Optional[str],
        product_id: str,
        config: HarvestConfig,
        **resources: Any,
    ) -> ExtractionProvider:
        """Build a provider for the chosen strategy."""
        factory = self.get(strategy)
        provider = factory(product_id, config, **resources)
        logger.info(f"Selected provider: {provider.name}")
        return provider

    def list_strategies(self) -> list[str]:
        """List registered strategy names."""
        return sorted(self._factories.keys())


# Global singleton
provider_registry = ProviderRegistry()


@provider_registry.register("interactive")
def build_scroll_provider(
    product_id: str, config: HarvestConfig, *, page=None, **_: Any
) -> ExtractionProvider:
    if page is None:
        raise ValueError("Interactive strategy needs an open browser page")
    return InteractiveScrollProvider(
        page,
        settle_seconds=config.scroll.settle_seconds,
        stall_threshold=config.scroll.stall_threshold,
    )


@provider_registry.register("api")
def build_api_provider(
    product_id: str, config: HarvestConfig, *, client=None, **_: Any
) -> ExtractionProvider:
    api = config.api
    return ApiPaginationProvider(
        product_id,
        endpoint=api.endpoint,
        client=client,
        page_size=api.page_size,
        filter=api.filter,
        sort=api.sort,
        extra_params={"lang": api.lang, "country": api.country},
        retry_max=api.retry_max,
        retry_base_delay=api.retry_base_delay,
        timeout=api.timeout,
        stall_threshold=api.stall_threshold,
    )


__all__ = ["ProviderRegistry", "provider_registry", "DEFAULT_STRATEGY"]
