"""
Cross-round duplicate detection.

Sources expose no stable review id, so duplicates are detected by a
fingerprint: the first `length` characters of the whitespace-collapsed text.
Two different reviews that open with the same text collide, and two copies of
one review that differ only after the prefix are merged. Both are accepted
risks of the prefix length.
"""

from __future__ import annotations

import logging
from typing import Optional, Set

from ..models import Review

logger = logging.getLogger(__name__)

DEFAULT_FINGERPRINT_LENGTH = 80


def fingerprint(text: str, length: int = DEFAULT_FINGERPRINT_LENGTH) -> str:
    """Content key for a review text."""
    return " ".join(text.split())[:length]


class Deduplicator:
    """Tracks seen fingerprints for the lifetime of one run."""

    def __init__(
        self,
        length: int = DEFAULT_FINGERPRINT_LENGTH,
        seen: Optional[Set[str]] = None,
    ):
        if length < 1:
            raise ValueError(f"Fingerprint length must be positive, got {length}")
        self.length = length
        self.seen: Set[str] = seen if seen is not None else set()

    def fingerprint(self, text: str) -> str:
        return fingerprint(text, self.length)

    def is_new_and_record(self, review: Review) -> bool:
        """Record the review's fingerprint; False if it was already seen."""
        key = self.fingerprint(review.text)
        if key in self.seen:
            logger.debug(f"Duplicate review skipped: {key[:30]!r}")
            return False
        self.seen.add(key)
        return True

    def __len__(self) -> int:
        return len(self.seen)
