"""
Tests for review sinks.
"""

import json

import pytest

from reviewharvester.exceptions import SinkError
from reviewharvester.models import Review
from reviewharvester.sinks import JsonLinesSink, MemorySink


def make_review(idx: int, text: str = "Arrived on time") -> Review:
    return Review(
        id=f"1005006_{idx}",
        product_id="1005006",
        product_url="https://www.aliexpress.com/item/1005006.html",
        text=text,
        rating=4.5,
    )


class TestJsonLinesSink:
    """JSON lines output."""

    @pytest.mark.asyncio
    async def test_appends_batches(self, tmp_path):
        path = tmp_path / "out" / "reviews.jsonl"
        sink = JsonLinesSink(path)

        await sink.write_batch([make_review(1), make_review(2)])
        await sink.write_batch([make_review(3)])

        lines = path.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 3
        assert sink.written == 3
        first = json.loads(lines[0])
        assert first["review_id"] == "1005006_1"
        assert first["rating"] == 4.5

    @pytest.mark.asyncio
    async def test_non_ascii_preserved(self, tmp_path):
        path = tmp_path / "reviews.jsonl"
        await JsonLinesSink(path).write_batch([make_review(1, "Отличный товар")])

        assert "Отличный товар" in path.read_text(encoding="utf-8")

    @pytest.mark.asyncio
    async def test_write_error_raises_sink_error(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        sink = JsonLinesSink(blocker / "reviews.jsonl")

        with pytest.raises(SinkError):
            await sink.write_batch([make_review(1)])
        assert sink.written == 0


class TestMemorySink:
    """In-memory sink."""

    @pytest.mark.asyncio
    async def test_keeps_batches(self):
        sink = MemorySink()
        batch = [make_review(1)]
        await sink.write_batch(batch)
        batch.append(make_review(2))

        assert len(sink.batches) == 1
        assert [r.id for r in sink.reviews] == ["1005006_1"]
