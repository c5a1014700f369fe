"""
Sinks for finished review batches.

The harvester only ever appends to a sink; it never reads back.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List

from .exceptions import SinkError
from .models import Review

logger = logging.getLogger(__name__)


class ReviewSink(ABC):
    """Append-only destination for review batches."""

    @abstractmethod
    async def write_batch(self, reviews: List[Review]) -> None:
        """Persist one batch, in order."""


class MemorySink(ReviewSink):
    """Keeps batches in memory (library use and tests)."""

    def __init__(self):
        self.batches: List[List[Review]] = []

    async def write_batch(self, reviews: List[Review]) -> None:
        self.batches.append(list(reviews))

    @property
    def reviews(self) -> List[Review]:
        return [r for batch in self.batches for r in batch]


class JsonLinesSink(ReviewSink):
    """Appends one JSON object per review to a file."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.written = 0

    async def write_batch(self, reviews: List[Review]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                for review in reviews:
                    f.write(json.dumps(review.to_dict(), ensure_ascii=False) + "\n")
        except OSError as e:
            raise SinkError(f"Failed to write {len(reviews)} reviews to {self.path}: {e}") from e

        self.written += len(reviews)
        logger.debug(f"Appended {len(reviews)} reviews to {self.path}")
