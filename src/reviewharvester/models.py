"""Data types shared by the harvester components."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional, Set, Union

from pydantic import BaseModel, Field

StarCount = Annotated[int, Field(ge=0, le=5)]
ScaledScore = Annotated[float, Field(ge=0, le=5)]


class AdvanceOutcome(str, Enum):
    """What a provider observed after trying to make new data available."""

    CHANGED = "changed"  # new content height / new page
    UNCHANGED = "unchanged"  # nothing observable moved
    EXHAUSTED = "exhausted"  # definitive end signal from the source


class TerminationReason(str, Enum):
    """Why a harvest run stopped."""

    TARGET_REACHED = "target_reached"
    EXHAUSTED = "exhausted"
    FATAL = "fatal"


class HarvestPhase(str, Enum):
    """Controller state machine phases."""

    BOOTSTRAPPED = "bootstrapped"
    HARVESTING = "harvesting"
    TARGET_REACHED = "target_reached"
    EXHAUSTED = "exhausted"
    FATAL = "fatal"
    FINALIZING = "finalizing"
    DONE = "done"


@dataclass
class RawRecord:
    """Review-like item as produced by a data source, before normalization.

    Sources fill whichever fields they expose. `info` carries the
    "name | date" string some surfaces render instead of separate fields.
    """

    text: Optional[str] = None
    name: Optional[str] = None
    date: Optional[str] = None
    info: Optional[str] = None
    stars: Optional[int] = None
    score: Optional[float] = None
    sku: Optional[str] = None
    images: List[str] = field(default_factory=list)
    helpful_count: Union[int, str, None] = None
    country: Optional[str] = None
    source_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RawRecord":
        """Build from a plain dict, ignoring unknown keys."""
        known = cls.__dataclass_fields__.keys()
        values = {k: v for k, v in data.items() if k in known}
        values["images"] = list(values.get("images") or [])
        return cls(**values)


class Review(BaseModel):
    """Canonical review record handed to the sink."""

    id: str
    product_id: str
    product_url: str
    reviewer_name: str = "Anonymous"
    # Star counts stay integers; rescaled scores are floats
    rating: Union[StarCount, ScaledScore] = 5
    text: str = Field(min_length=1)
    date: Optional[str] = None
    sku_info: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    helpful_count: int = Field(default=0, ge=0)
    country: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the persisted record shape."""
        return {
            "review_id": self.id,
            "product_id": self.product_id,
            "product_url": self.product_url,
            "reviewer_name": self.reviewer_name,
            "rating": self.rating,
            "review_text": self.text,
            "review_date": self.date,
            "sku_info": self.sku_info,
            "images": list(self.images),
            "helpful_count": self.helpful_count,
            "country": self.country,
        }


@dataclass
class HarvestState:
    """Mutable state of one harvest run.

    Owned by a single HarvestController; the Deduplicator and BatchFlusher
    work on `seen_fingerprints` and `pending_buffer` by reference.
    """

    target_count: int
    saved_count: int = 0
    seen_fingerprints: Set[str] = field(default_factory=set)
    pending_buffer: List[Review] = field(default_factory=list)
    rounds_without_progress: int = 0
    cursor: Any = None
    rounds: int = 0
    phase: HarvestPhase = HarvestPhase.BOOTSTRAPPED


@dataclass
class HarvestSummary:
    """Final report of a harvest run."""

    saved_count: int
    reason: TerminationReason
    rounds: int = 0
    detail: str = ""
    error: Optional[str] = None
    flushed_count: int = 0
    batches: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "saved_count": self.saved_count,
            "reason": self.reason.value,
            "rounds": self.rounds,
            "detail": self.detail,
            "error": self.error,
            "flushed_count": self.flushed_count,
            "batches": self.batches,
        }
