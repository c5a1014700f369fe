"""
Tests for ApiPaginationProvider against a mocked HTTP transport.
"""

import httpx
import pytest

from reviewharvester.exceptions import ProviderUnavailableError
from reviewharvester.harvester.controller import HarvestController
from reviewharvester.harvester.providers.api import (
    ApiPaginationProvider,
    MalformedPageError,
    parse_evaluation_page,
)
from reviewharvester.models import AdvanceOutcome, TerminationReason
from reviewharvester.sinks import MemorySink

ENDPOINT = "https://feedback.example.com/pc/searchEvaluation.do"


def page_payload(page: int, total: int, per_page: int = 2):
    return {
        "data": {
            "currentPage": page,
            "totalPage": total,
            "evaViewList": [
                {
                    "evaluationId": page * 100 + i,
                    "buyerName": f"B***{i}",
                    "buyerFeedback": f"Page {page} review {i} is long enough",
                    "buyerEval": 80,
                    "evalDate": "05 Apr 2024",
                    "buyerCountry": "US",
                    "images": ["//ae01.alicdn.com/kf/a.jpg"],
                    "upVoteCount": i,
                }
                for i in range(per_page)
            ],
        }
    }


def make_provider(handler, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    kwargs.setdefault("retry_base_delay", 0)
    return ApiPaginationProvider("1005006", ENDPOINT, client=client, **kwargs)


class TestParseEvaluationPage:
    """Response parsing."""

    def test_maps_fields(self):
        result = parse_evaluation_page(page_payload(1, 3), 1)

        assert len(result.records) == 2
        raw = result.records[0]
        assert raw.text == "Page 1 review 0 is long enough"
        assert raw.name == "B***0"
        assert raw.score == 80
        assert raw.source_id == "100"
        assert raw.country == "US"
        assert result.last_page is False

    def test_last_page(self):
        assert parse_evaluation_page(page_payload(3, 3), 3).last_page is True

    def test_missing_list_is_empty(self):
        result = parse_evaluation_page({"data": {}}, 1)
        assert result.records == []
        assert result.last_page is False

    def test_malformed(self):
        with pytest.raises(MalformedPageError):
            parse_evaluation_page({"error": "denied"}, 1)
        with pytest.raises(MalformedPageError):
            parse_evaluation_page([], 1)

    @pytest.mark.parametrize("total", ["", "many", [3]])
    def test_non_numeric_paging_is_malformed(self, total):
        payload = page_payload(1, 3)
        payload["data"]["totalPage"] = total
        with pytest.raises(MalformedPageError):
            parse_evaluation_page(payload, 1)

    def test_image_field_shapes(self):
        payload = page_payload(1, 3, per_page=1)
        payload["data"]["evaViewList"][0]["images"] = "//ae01.alicdn.com/kf/b.jpg"
        assert parse_evaluation_page(payload, 1).records[0].images == [
            "//ae01.alicdn.com/kf/b.jpg"
        ]


class TestApiPaginationProvider:
    """Pull/advance cycle."""

    @pytest.mark.asyncio
    async def test_request_params(self):
        seen = []

        def handler(request):
            seen.append(dict(request.url.params))
            return httpx.Response(200, json=page_payload(1, 5))

        provider = make_provider(handler, sort="complex_default", extra_params={"lang": "en_US"})
        await provider.pull()

        assert seen[0]["productId"] == "1005006"
        assert seen[0]["page"] == "1"
        assert seen[0]["pageSize"] == "10"
        assert seen[0]["filter"] == "all"
        assert seen[0]["lang"] == "en_US"

    @pytest.mark.asyncio
    async def test_pages_until_source_end(self):
        def handler(request):
            page = int(request.url.params["page"])
            return httpx.Response(200, json=page_payload(page, 2))

        provider = make_provider(handler)

        assert len(await provider.pull()) == 2
        assert await provider.advance() == AdvanceOutcome.CHANGED
        assert provider.cursor == 2
        assert len(await provider.pull()) == 2
        assert await provider.advance() == AdvanceOutcome.EXHAUSTED

    @pytest.mark.asyncio
    async def test_server_error_retried(self):
        calls = {"n": 0}

        def handler(request):
            calls["n"] += 1
            if calls["n"] == 1:
                return httpx.Response(500)
            return httpx.Response(200, json=page_payload(1, 5))

        provider = make_provider(handler)
        records = await provider.pull()

        assert len(records) == 2
        assert calls["n"] == 2

    @pytest.mark.asyncio
    async def test_invalid_json_retried(self):
        calls = {"n": 0}

        def handler(request):
            calls["n"] += 1
            if calls["n"] == 1:
                return httpx.Response(200, content=b"<html>captcha</html>")
            return httpx.Response(200, json=page_payload(1, 5))

        provider = make_provider(handler)
        assert len(await provider.pull()) == 2

    @pytest.mark.asyncio
    async def test_empty_after_retries_is_not_an_error(self):
        calls = {"n": 0}

        def handler(request):
            calls["n"] += 1
            return httpx.Response(200, json={"data": {"evaViewList": [], "totalPage": 9}})

        provider = make_provider(handler, retry_max=3)

        assert await provider.pull() == []
        assert calls["n"] == 3
        assert await provider.advance() == AdvanceOutcome.UNCHANGED
        assert provider.cursor == 2

    @pytest.mark.asyncio
    async def test_transport_failure_is_fatal(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        provider = make_provider(handler)

        with pytest.raises(ProviderUnavailableError) as exc_info:
            await provider.pull()
        assert exc_info.value.provider == "api"

    @pytest.mark.asyncio
    async def test_timeout_retried(self):
        calls = {"n": 0}

        def handler(request):
            calls["n"] += 1
            if calls["n"] < 3:
                raise httpx.ReadTimeout("slow", request=request)
            return httpx.Response(200, json=page_payload(1, 5))

        provider = make_provider(handler, retry_max=3)
        assert len(await provider.pull()) == 2

    @pytest.mark.asyncio
    async def test_close_leaves_injected_client_open(self):
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda r: httpx.Response(200, json={}))
        )
        provider = ApiPaginationProvider("1", ENDPOINT, client=client)
        await provider.close()
        assert client.is_closed is False
        await client.aclose()

    @pytest.mark.asyncio
    async def test_bad_paging_fields_retried(self):
        calls = {"n": 0}

        def handler(request):
            calls["n"] += 1
            payload = page_payload(1, 5)
            if calls["n"] == 1:
                payload["data"]["totalPage"] = ""
            return httpx.Response(200, json=payload)

        provider = make_provider(handler)
        assert len(await provider.pull()) == 2
        assert calls["n"] == 2


class TestApiHarvest:
    """Controller runs over the API provider."""

    @pytest.mark.asyncio
    async def test_bad_score_does_not_end_run(self):
        def handler(request):
            page = int(request.url.params["page"])
            payload = page_payload(page, 3, per_page=5)
            if page == 1:
                payload["data"]["evaViewList"].append(
                    {"buyerFeedback": "Score field is garbage here", "buyerEval": "n/a"}
                )
            return httpx.Response(200, json=payload)

        sink = MemorySink()
        controller = HarvestController(
            make_provider(handler),
            sink,
            product_id="1005006",
            product_url="https://www.aliexpress.com/item/1005006.html",
            target_count=15,
        )

        summary = await controller.run()

        assert summary.reason == TerminationReason.TARGET_REACHED
        assert summary.saved_count == 15
        garbage = [r for r in sink.reviews if r.text.startswith("Score field")]
        assert garbage[0].rating == 5
