"""
Incremental harvesting engine.

Components:
- normalizer: raw record -> canonical Review
- dedup: content-prefix fingerprints across rounds
- convergence: exhaustion detection from round outcomes
- flusher: fixed-size batches to the sink
- providers: interactive scroll and API pagination sources
- registry: strategy name -> provider factory
- controller: the bounded round loop
"""

from .controller import HarvestController
from .convergence import ConvergenceDetector
from .dedup import Deduplicator, fingerprint
from .flusher import BatchFlusher
from .normalizer import RecordNormalizer
from .registry import ProviderRegistry, provider_registry

__all__ = [
    "HarvestController",
    "ConvergenceDetector",
    "Deduplicator",
    "fingerprint",
    "BatchFlusher",
    "RecordNormalizer",
    "ProviderRegistry",
    "provider_registry",
]
