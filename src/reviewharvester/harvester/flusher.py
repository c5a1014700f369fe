"""Fixed-size batch emission to the sink."""

from __future__ import annotations

import logging
from typing import List, Optional

from ..models import Review
from ..sinks import ReviewSink

logger = logging.getLogger(__name__)


class BatchFlusher:
    """Buffers accepted reviews and writes them to the sink in batches.

    Records are emitted in acceptance order and leave the buffer only after
    the sink took them, so a failed write keeps them for the final flush.
    """

    def __init__(
        self,
        sink: ReviewSink,
        batch_size: int = 10,
        buffer: Optional[List[Review]] = None,
    ):
        if batch_size < 1:
            raise ValueError(f"Batch size must be positive, got {batch_size}")
        self.sink = sink
        self.batch_size = batch_size
        self.buffer: List[Review] = buffer if buffer is not None else []
        self.flushed_count = 0
        self.batches = 0

    async def add(self, review: Review) -> None:
        """Buffer a review, emitting full batches."""
        self.buffer.append(review)
        while len(self.buffer) >= self.batch_size:
            await self._emit(self.batch_size)

    async def finish(self) -> int:
        """Emit whatever remains, even a partial batch. Returns records written."""
        if not self.buffer:
            return 0
        count = len(self.buffer)
        await self._emit(count)
        return count

    async def _emit(self, count: int) -> None:
        batch = self.buffer[:count]
        await self.sink.write_batch(batch)
        del self.buffer[:count]
        self.flushed_count += len(batch)
        self.batches += 1
        logger.info(
            f"Batch {self.batches} saved ({len(batch)} reviews, {self.flushed_count} total)"
        )
