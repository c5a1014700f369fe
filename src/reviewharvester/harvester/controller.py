"""
Harvest Controller.

Runs the bounded round loop for one product:
pull -> normalize -> dedupe -> buffer/flush -> evaluate -> advance.

Phases:
    bootstrapped -> harvesting -> (target_reached | exhausted | fatal)
    -> finalizing -> done

Stop conditions are evaluated after every round in this order:
1. target count reached
2. convergence detector reports the source exhausted
3. round ceiling or wall-clock budget hit (treated as exhaustion)
A provider or sink exception ends the run as fatal. Whatever the terminal phase,
buffered reviews are flushed before the summary is returned.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, List, Optional, Tuple, TypeVar

from ..exceptions import SinkError
from ..models import (
    AdvanceOutcome,
    HarvestPhase,
    HarvestState,
    HarvestSummary,
    RawRecord,
    TerminationReason,
)
from ..sinks import ReviewSink
from .convergence import ConvergenceDetector
from .dedup import DEFAULT_FINGERPRINT_LENGTH, Deduplicator
from .flusher import BatchFlusher
from .normalizer import DEFAULT_MIN_TEXT_LENGTH, RecordNormalizer
from .providers import ExtractionProvider

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TERMINAL_PHASES = {
    TerminationReason.TARGET_REACHED: HarvestPhase.TARGET_REACHED,
    TerminationReason.EXHAUSTED: HarvestPhase.EXHAUSTED,
    TerminationReason.FATAL: HarvestPhase.FATAL,
}


class _BudgetExpired(Exception):
    """Wall-clock budget ran out during a provider call."""


class HarvestController:
    """Harvests up to `target_count` reviews for one product.

    One controller instance runs once; its HarvestState is not shared.
    """

    def __init__(
        self,
        provider: ExtractionProvider,
        sink: ReviewSink,
        *,
        product_id: str,
        product_url: str,
        target_count: int,
        batch_size: int = 10,
        max_rounds: int = 60,
        stall_threshold: Optional[int] = None,
        run_timeout: Optional[float] = None,
        min_text_length: int = DEFAULT_MIN_TEXT_LENGTH,
        fingerprint_length: int = DEFAULT_FINGERPRINT_LENGTH,
    ):
        if target_count < 1:
            raise ValueError(f"Target count must be positive, got {target_count}")
        if max_rounds < 1:
            raise ValueError(f"Round ceiling must be positive, got {max_rounds}")

        self.provider = provider
        self.product_id = product_id
        self.max_rounds = max_rounds
        self.run_timeout = run_timeout

        self.state = HarvestState(target_count=target_count)
        self.normalizer = RecordNormalizer(
            product_id,
            product_url,
            min_text_length=min_text_length,
            fingerprint_length=fingerprint_length,
        )
        self.deduplicator = Deduplicator(
            fingerprint_length, seen=self.state.seen_fingerprints
        )
        self.flusher = BatchFlusher(
            sink, batch_size=batch_size, buffer=self.state.pending_buffer
        )
        self.detector = ConvergenceDetector(stall_threshold or provider.stall_threshold)
        self._deadline: Optional[float] = None
        self._started = False

    async def run(self) -> HarvestSummary:
        """Run the harvest to completion and report the outcome."""
        if self._started:
            raise RuntimeError("HarvestController instances run once")
        self._started = True

        if self.run_timeout is not None:
            self._deadline = time.monotonic() + self.run_timeout

        logger.info(
            f"Harvesting reviews for product {self.product_id} "
            f"via {self.provider.name}, wanted: {self.state.target_count}"
        )
        self.state.phase = HarvestPhase.HARVESTING

        error: Optional[str] = None
        try:
            reason, detail = await self._harvest()
        except asyncio.CancelledError:
            logger.warning("Harvest cancelled, flushing collected reviews")
            self.state.phase = HarvestPhase.FINALIZING
            await self.flusher.finish()
            raise
        except SinkError as e:
            logger.error(f"Sink rejected a batch for product {self.product_id}: {e}")
            reason, detail, error = TerminationReason.FATAL, "sink_error", str(e)
        except Exception as e:
            logger.exception(f"Harvest failed for product {self.product_id}")
            reason, detail, error = TerminationReason.FATAL, "provider_error", str(e)

        self.state.phase = _TERMINAL_PHASES[reason]
        reason, error = await self._finalize(reason, error)
        self.state.phase = HarvestPhase.DONE

        summary = HarvestSummary(
            saved_count=self.state.saved_count,
            reason=reason,
            rounds=self.state.rounds,
            detail=detail,
            error=error,
            flushed_count=self.flusher.flushed_count,
            batches=self.flusher.batches,
        )
        logger.info(f"Complete. Total: {summary.saved_count} ({summary.reason.value}, {detail})")
        return summary

    async def _harvest(self) -> Tuple[TerminationReason, str]:
        state = self.state
        progressed = False

        while True:
            state.rounds += 1
            try:
                raw_records = await self._bounded(self.provider.pull())
            except _BudgetExpired:
                logger.info(f"Run budget expired during round {state.rounds}")
                return TerminationReason.EXHAUSTED, "timeout"

            accepted = await self._accept(raw_records)
            state.cursor = self.provider.cursor
            logger.info(
                f"Round {state.rounds}: {len(raw_records)} visible, "
                f"{state.saved_count}/{state.target_count} unique"
            )

            exhausted = self.detector.record_round(accepted, progressed)
            state.rounds_without_progress = self.detector.stalled_rounds

            if state.saved_count >= state.target_count:
                return TerminationReason.TARGET_REACHED, "target"
            if exhausted:
                logger.info(
                    f"No new reviews after {self.detector.stalled_rounds} rounds. Done."
                )
                return TerminationReason.EXHAUSTED, "stalled"
            if state.rounds >= self.max_rounds:
                logger.info(f"Round ceiling of {self.max_rounds} reached")
                return TerminationReason.EXHAUSTED, "round_ceiling"
            if self._expired():
                logger.info(f"Run budget of {self.run_timeout}s expired")
                return TerminationReason.EXHAUSTED, "timeout"

            try:
                outcome = await self._bounded(self.provider.advance())
            except _BudgetExpired:
                logger.info(f"Run budget expired while advancing after round {state.rounds}")
                return TerminationReason.EXHAUSTED, "timeout"

            if outcome == AdvanceOutcome.EXHAUSTED:
                logger.info("Source reported no further pages")
                return TerminationReason.EXHAUSTED, "source_end"
            progressed = outcome == AdvanceOutcome.CHANGED

    async def _accept(self, raw_records: List[RawRecord]) -> int:
        """Normalize, dedupe and buffer records in order; returns accepted count."""
        state = self.state
        accepted = 0

        for raw in raw_records:
            if state.saved_count >= state.target_count:
                break
            review = self.normalizer.normalize(raw)
            if review is None:
                continue
            if not self.deduplicator.is_new_and_record(review):
                continue
            state.saved_count += 1
            accepted += 1
            await self.flusher.add(review)

        return accepted

    async def _finalize(
        self, reason: TerminationReason, error: Optional[str]
    ) -> Tuple[TerminationReason, Optional[str]]:
        self.state.phase = HarvestPhase.FINALIZING
        try:
            await self.flusher.finish()
        except Exception as e:
            logger.exception(
                f"Final flush failed, {len(self.state.pending_buffer)} reviews not saved"
            )
            return TerminationReason.FATAL, error or str(e)
        return reason, error

    def _remaining(self) -> Optional[float]:
        if self._deadline is None:
            return None
        return self._deadline - time.monotonic()

    def _expired(self) -> bool:
        remaining = self._remaining()
        return remaining is not None and remaining <= 0

    async def _bounded(self, call: Awaitable[T]) -> T:
        """Await a provider call within the remaining wall-clock budget."""
        remaining = self._remaining()
        if remaining is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout=max(remaining, 0))
        except asyncio.TimeoutError:
            if self._expired():
                raise _BudgetExpired() from None
            raise
