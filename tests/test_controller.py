"""
Tests for HarvestController round loop and termination.
"""

import pytest

from fakes import FlakySink, ScriptedProvider, WindowProvider, make_records
from reviewharvester.harvester.controller import HarvestController
from reviewharvester.models import AdvanceOutcome, HarvestPhase, RawRecord, TerminationReason
from reviewharvester.sinks import MemorySink


def make_controller(provider, sink=None, **kwargs):
    kwargs.setdefault("product_id", "1005006")
    kwargs.setdefault("product_url", "https://www.aliexpress.com/item/1005006.html")
    kwargs.setdefault("target_count", 20)
    kwargs.setdefault("batch_size", 10)
    return HarvestController(provider, sink if sink is not None else MemorySink(), **kwargs)


class TestEndToEnd:
    """Full runs against lazy-loading providers."""

    @pytest.mark.asyncio
    async def test_target_reached_with_two_full_batches(self):
        """25 unique available, target 20, batch 10."""
        sink = MemorySink()
        provider = WindowProvider(make_records(25), step=10)
        controller = make_controller(provider, sink, target_count=20)

        summary = await controller.run()

        assert summary.reason == TerminationReason.TARGET_REACHED
        assert summary.saved_count == 20
        assert [len(b) for b in sink.batches] == [10, 10]
        assert controller.state.phase == HarvestPhase.DONE

    @pytest.mark.asyncio
    async def test_exhausted_with_partial_final_batch(self):
        """Only 12 unique reviews exist, target 50."""
        sink = MemorySink()
        provider = WindowProvider(make_records(12), step=10, stall_threshold=3)
        controller = make_controller(provider, sink, target_count=50)

        summary = await controller.run()

        assert summary.reason == TerminationReason.EXHAUSTED
        assert summary.detail == "stalled"
        assert summary.saved_count == 12
        assert [len(b) for b in sink.batches] == [10, 2]

    @pytest.mark.asyncio
    async def test_saved_count_matches_emitted(self):
        sink = MemorySink()
        provider = WindowProvider(make_records(37), step=7)
        summary = await make_controller(provider, sink, target_count=100, batch_size=4).run()

        assert summary.saved_count == len(sink.reviews) == 37
        assert summary.flushed_count == 37
        assert summary.batches == len(sink.batches)

    @pytest.mark.asyncio
    async def test_reviews_carry_product_fields(self):
        sink = MemorySink()
        await make_controller(WindowProvider(make_records(3)), sink, target_count=3).run()

        review = sink.reviews[0]
        assert review.product_id == "1005006"
        assert review.product_url == "https://www.aliexpress.com/item/1005006.html"
        assert review.reviewer_name == "Buyer 0"


class TestDeduplicationAcrossRounds:
    """Duplicate records are emitted once however they are spread out."""

    @pytest.mark.asyncio
    async def test_repeated_records_emitted_once(self):
        records = make_records(6)
        pulls = [records[:4], records[2:6] + records[:1], records]
        provider = ScriptedProvider(pulls, advances=[AdvanceOutcome.CHANGED])
        sink = MemorySink()

        summary = await make_controller(provider, sink, target_count=6).run()

        texts = [r.text for r in sink.reviews]
        assert len(texts) == len(set(texts)) == 6
        assert summary.saved_count == 6

    @pytest.mark.asyncio
    async def test_shared_prefix_treated_as_duplicate(self):
        prefix = "x" * 80
        pulls = [[RawRecord(text=prefix + " first ending"), RawRecord(text=prefix + " second")]]
        sink = MemorySink()
        provider = ScriptedProvider(pulls, stall_threshold=1)

        summary = await make_controller(provider, sink, target_count=5).run()

        assert summary.saved_count == 1
        assert sink.reviews[0].text.endswith("first ending")


class TestTargetBound:
    """The engine never emits more than the target."""

    @pytest.mark.asyncio
    async def test_stops_mid_pull_at_target(self):
        sink = MemorySink()
        provider = ScriptedProvider([make_records(30)])

        summary = await make_controller(provider, sink, target_count=7, batch_size=5).run()

        assert summary.reason == TerminationReason.TARGET_REACHED
        assert summary.saved_count == 7
        assert [len(b) for b in sink.batches] == [5, 2]
        assert provider.advance_calls == 0

    @pytest.mark.asyncio
    async def test_short_texts_do_not_count(self):
        sink = MemorySink()
        pulls = [[RawRecord(text="ok"), RawRecord(text="   "), *make_records(2)]]
        provider = ScriptedProvider(pulls, stall_threshold=1)

        summary = await make_controller(provider, sink, target_count=10).run()

        assert summary.saved_count == 2

    @pytest.mark.asyncio
    async def test_malformed_fields_do_not_end_run(self):
        sink = MemorySink()
        bad = RawRecord(text="Odd rating markup on this card", stars="?", score="n/a")
        provider = ScriptedProvider([[*make_records(2), bad, *make_records(2, start=2)]])

        summary = await make_controller(provider, sink, target_count=5).run()

        assert summary.reason == TerminationReason.TARGET_REACHED
        assert summary.saved_count == 5
        assert sink.reviews[2].rating == 5


class TestConvergence:
    """Termination when the source stops producing."""

    @pytest.mark.asyncio
    async def test_stalls_within_threshold_plus_one_rounds(self):
        provider = ScriptedProvider([make_records(3)], stall_threshold=4)

        summary = await make_controller(provider, target_count=50).run()

        assert summary.reason == TerminationReason.EXHAUSTED
        assert summary.rounds == 5

    @pytest.mark.asyncio
    async def test_explicit_threshold_overrides_provider(self):
        provider = ScriptedProvider([make_records(3)], stall_threshold=8)

        summary = await make_controller(provider, target_count=50, stall_threshold=2).run()

        assert summary.rounds == 3

    @pytest.mark.asyncio
    async def test_round_ceiling(self):
        """Always-changing source stops at max_rounds."""
        provider = WindowProvider(make_records(1000), step=5)

        summary = await make_controller(provider, target_count=500, max_rounds=3).run()

        assert summary.reason == TerminationReason.EXHAUSTED
        assert summary.detail == "round_ceiling"
        assert summary.rounds == 3
        assert summary.saved_count == 15

    @pytest.mark.asyncio
    async def test_empty_source_runs_to_ceiling(self):
        provider = ScriptedProvider([[]], stall_threshold=1)

        summary = await make_controller(provider, max_rounds=4).run()

        assert summary.reason == TerminationReason.EXHAUSTED
        assert summary.detail == "round_ceiling"
        assert summary.saved_count == 0

    @pytest.mark.asyncio
    async def test_source_end_signal(self):
        provider = ScriptedProvider(
            [make_records(4)], advances=[AdvanceOutcome.EXHAUSTED], stall_threshold=5
        )
        sink = MemorySink()

        summary = await make_controller(provider, sink, target_count=50).run()

        assert summary.reason == TerminationReason.EXHAUSTED
        assert summary.detail == "source_end"
        assert summary.rounds == 1
        assert len(sink.reviews) == 4


class TestFailures:
    """Fatal provider and sink errors keep collected reviews."""

    @pytest.mark.asyncio
    async def test_provider_error_is_fatal_and_flushes(self):
        records = make_records(15)
        provider = ScriptedProvider(
            [records[:12], records], advances=[AdvanceOutcome.CHANGED], fail_on_pull=2
        )
        sink = MemorySink()

        summary = await make_controller(provider, sink, target_count=50).run()

        assert summary.reason == TerminationReason.FATAL
        assert summary.detail == "provider_error"
        assert "page crashed" in summary.error
        assert summary.saved_count == 15
        assert [len(b) for b in sink.batches] == [10, 5]

    @pytest.mark.asyncio
    async def test_sink_failure_retried_on_final_flush(self):
        sink = FlakySink(failures=1)
        provider = WindowProvider(make_records(25), step=10)

        summary = await make_controller(provider, sink, target_count=20).run()

        assert summary.reason == TerminationReason.FATAL
        assert summary.detail == "sink_error"
        assert sink.attempts == 2
        assert summary.saved_count == 10
        assert summary.flushed_count == 10
        assert len(sink.reviews) == 10

    @pytest.mark.asyncio
    async def test_run_budget_expiry_is_exhaustion(self):
        provider = ScriptedProvider(
            [make_records(3)], advances=[AdvanceOutcome.CHANGED], advance_delay=0.5
        )
        sink = MemorySink()

        summary = await make_controller(provider, sink, target_count=50, run_timeout=0.05).run()

        assert summary.reason == TerminationReason.EXHAUSTED
        assert summary.detail == "timeout"
        assert len(sink.reviews) == 3


class TestControllerInit:
    """Constructor validation and state wiring."""

    def test_rejects_non_positive_target(self):
        with pytest.raises(ValueError):
            make_controller(ScriptedProvider([[]]), target_count=0)

    def test_state_shared_with_components(self):
        controller = make_controller(ScriptedProvider([[]]))
        assert controller.deduplicator.seen is controller.state.seen_fingerprints
        assert controller.flusher.buffer is controller.state.pending_buffer
        assert controller.state.phase == HarvestPhase.BOOTSTRAPPED

    @pytest.mark.asyncio
    async def test_runs_once(self):
        controller = make_controller(ScriptedProvider([make_records(1)]), target_count=1)
        await controller.run()
        with pytest.raises(RuntimeError):
            await controller.run()
