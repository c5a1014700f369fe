"""
Record normalization.

Converts one RawRecord into the canonical Review shape:
- rating from a filled-star count or a 0-100 score, clamped to [0, 5]
- image URLs without format-conversion suffixes, with an explicit scheme
- reviewer name and date split out of "name | date" strings
"""

from __future__ import annotations

import hashlib
import logging
import math
import re
from typing import Any, List, Optional, Tuple, Union

from pydantic import ValidationError

from ..models import RawRecord, Review
from .dedup import DEFAULT_FINGERPRINT_LENGTH, fingerprint

logger = logging.getLogger(__name__)

ANONYMOUS = "Anonymous"
MAX_RATING = 5
# Missing ratings default to the maximum. See DESIGN.md before changing.
DEFAULT_RATING = MAX_RATING
DEFAULT_MIN_TEXT_LENGTH = 5

# "..._.avif", "..._.webp" appended by the CDN's format conversion
_FORMAT_SUFFIX_RE = re.compile(r"_\.(?:avif|webp)$", re.IGNORECASE)
# "photo.jpg_220x220.jpg", "photo.jpg_640x640q75.jpg" thumbnail size variants
_SIZE_SUFFIX_RE = re.compile(
    r"(\.(?:jpe?g|png|webp))_\d+x\d+(?:q\d+)?\.(?:jpe?g|png|webp|avif)$", re.IGNORECASE
)
_SIGNED_INT_RE = re.compile(r"-?\d[\d,]*")


def _to_number(value: Any) -> Optional[float]:
    """Parse a numeric field; None for anything that is not a finite number."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def clamp_rating(value: float) -> Union[int, float]:
    """Clamp a rating into [0, 5]."""
    return max(0, min(MAX_RATING, value))


def rating_from_score(score: float) -> float:
    """Rescale a 0-100 score to stars."""
    return clamp_rating(round(float(score) / 20, 2))


def normalize_rating(stars: Any, score: Any) -> Union[int, float]:
    """Pick the rating from whichever encoding the source exposed.

    A zero star count means the star widget was found but no filled icons
    matched, which is treated the same as a missing rating. Values that do
    not parse as numbers also count as missing.
    """
    star_count = _to_number(stars)
    if star_count is not None and star_count > 0:
        return clamp_rating(int(star_count))
    score_value = _to_number(score)
    if score_value is not None:
        return rating_from_score(score_value)
    if stars is not None or score is not None:
        logger.debug(f"Unparseable rating (stars={stars!r}, score={score!r})")
    return DEFAULT_RATING


def normalize_image_url(url: str) -> str:
    """Strip CDN conversion suffixes and add a scheme to protocol-relative URLs."""
    url = url.strip()
    url = _FORMAT_SUFFIX_RE.sub("", url)
    url = _SIZE_SUFFIX_RE.sub(r"\1", url)
    if url.startswith("//"):
        url = "https:" + url
    return url


def split_reviewer_info(info: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """Split "name | date" into (name, date); missing segments are None."""
    if not info:
        return None, None
    parts = [p.strip() for p in info.split("|")]
    name = parts[0] or None
    date = parts[1] if len(parts) > 1 and parts[1] else None
    return name, date


def _coerce_count(value) -> int:
    if isinstance(value, str):
        match = _SIGNED_INT_RE.search(value)
        if not match:
            return 0
        return max(0, int(match.group().replace(",", "")))
    number = _to_number(value)
    return max(0, int(number)) if number is not None else 0


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


class RecordNormalizer:
    """Normalizes raw records for one product."""

    def __init__(
        self,
        product_id: str,
        product_url: str,
        min_text_length: int = DEFAULT_MIN_TEXT_LENGTH,
        fingerprint_length: int = DEFAULT_FINGERPRINT_LENGTH,
    ):
        self.product_id = product_id
        self.product_url = product_url
        self.min_text_length = min_text_length
        self.fingerprint_length = fingerprint_length

    def normalize(self, raw: RawRecord) -> Optional[Review]:
        """Return the canonical Review, or None when the record is unusable.

        Fields that cannot be coerced fall back to their defaults; only a
        missing or too short text, or a record that still fails validation,
        drops the record.
        """
        text = _clean(raw.text) or ""
        if len(text) < self.min_text_length:
            logger.debug(f"Dropped record with short text: {text!r}")
            return None

        info_name, info_date = split_reviewer_info(_clean(raw.info))
        name = _clean(raw.name) or info_name or ANONYMOUS
        date = _clean(raw.date) or info_date

        try:
            return Review(
                id=self._review_id(raw, text),
                product_id=self.product_id,
                product_url=self.product_url,
                reviewer_name=name,
                rating=normalize_rating(raw.stars, raw.score),
                text=text,
                date=date,
                sku_info=_clean(raw.sku),
                images=self._images(raw.images),
                helpful_count=_coerce_count(raw.helpful_count),
                country=_clean(raw.country),
            )
        except ValidationError as e:
            logger.debug(f"Dropped invalid record {text[:30]!r}: {e}")
            return None

    def _review_id(self, raw: RawRecord, text: str) -> str:
        source_id = _clean(raw.source_id)
        if source_id:
            return source_id
        key = fingerprint(text, self.fingerprint_length)
        digest = hashlib.md5(key.encode("utf-8")).hexdigest()[:12]
        return f"{self.product_id}_{digest}"

    @staticmethod
    def _images(urls: List[str]) -> List[str]:
        cleaned = (_clean(u) for u in urls or [])
        return [normalize_image_url(u) for u in cleaned if u]
