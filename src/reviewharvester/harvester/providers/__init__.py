"""
Extraction providers.

Two variants share the ExtractionProvider contract:
- InteractiveScrollProvider: review panel in a Playwright page
- ApiPaginationProvider: page-numbered review API over httpx
"""

from .base import ExtractionProvider
from .scroll import InteractiveScrollProvider, SelectorSet, DEFAULT_SELECTOR_SETS
from .api import ApiPaginationProvider, PageResult, parse_evaluation_page

__all__ = [
    "ExtractionProvider",
    "InteractiveScrollProvider",
    "SelectorSet",
    "DEFAULT_SELECTOR_SETS",
    "ApiPaginationProvider",
    "PageResult",
    "parse_evaluation_page",
]
