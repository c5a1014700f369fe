"""
reviewharvester - bounded review harvesting for a single product.

Pulls review records from a browser review panel or a pagination API,
deduplicates and normalizes them, and writes them to a sink in batches.

Usage:
    from reviewharvester import HarvestController, MemorySink
    from reviewharvester.harvester.providers import ApiPaginationProvider

    provider = ApiPaginationProvider(product_id, endpoint)
    controller = HarvestController(
        provider,
        MemorySink(),
        product_id=product_id,
        product_url=product_url,
        target_count=50,
    )
    summary = await controller.run()
"""

__version__ = "0.1.0"

from .config import HarvestConfig, get_config
from .exceptions import (
    HarvestError,
    InvalidProductUrlError,
    ProviderUnavailableError,
    SinkError,
)
from .harvester import HarvestController, provider_registry
from .models import (
    AdvanceOutcome,
    HarvestSummary,
    RawRecord,
    Review,
    TerminationReason,
)
from .sinks import JsonLinesSink, MemorySink, ReviewSink

__all__ = [
    "__version__",
    # Config
    "HarvestConfig",
    "get_config",
    # Engine
    "HarvestController",
    "provider_registry",
    # Models
    "AdvanceOutcome",
    "HarvestSummary",
    "RawRecord",
    "Review",
    "TerminationReason",
    # Sinks
    "ReviewSink",
    "MemorySink",
    "JsonLinesSink",
    # Errors
    "HarvestError",
    "InvalidProductUrlError",
    "ProviderUnavailableError",
    "SinkError",
]
