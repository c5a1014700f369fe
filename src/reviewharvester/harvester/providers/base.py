"""Extraction provider contract."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, List

from ...models import AdvanceOutcome, RawRecord


class ExtractionProvider(ABC):
    """A source of raw review records with a movable cursor.

    `pull()` returns what is currently available (possibly the same records
    as last time, possibly nothing). `advance()` tries to make new records
    available and reports whether anything observable changed.

    Providers never raise for "no more data". They raise
    ProviderUnavailableError only when the source itself is gone.
    """

    name: str = "provider"
    # Recommended convergence threshold for this kind of source
    stall_threshold: int = 3

    @abstractmethod
    async def pull(self) -> List[RawRecord]:
        """Records currently materialized at the cursor."""

    @abstractmethod
    async def advance(self) -> AdvanceOutcome:
        """Move the cursor forward."""

    @property
    def cursor(self) -> Any:
        """Provider-specific position (scroll height, page number)."""
        return None

    async def close(self) -> None:
        """Release resources owned by the provider."""
