"""
API pagination provider.

Requests one fixed-size page of reviews per round from the review
pagination endpoint. Filter and sort are fixed for the run. Malformed or
unexpectedly empty pages are retried with an incremental backoff; after the
attempt ceiling the page counts as empty rather than as an error.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import httpx

from ...exceptions import ProviderUnavailableError
from ...models import AdvanceOutcome, RawRecord
from .base import ExtractionProvider

logger = logging.getLogger(__name__)


class MalformedPageError(ValueError):
    """Response did not have the expected page shape."""


@dataclass
class PageResult:
    """One parsed page of the pagination API."""

    records: List[RawRecord] = field(default_factory=list)
    last_page: bool = False


def _image_list(value: Any) -> List[str]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [v for v in value if isinstance(v, str)]
    return []


def parse_evaluation_page(payload: Any, page: int) -> PageResult:
    """Parse a searchEvaluation response.

    Expected shape:
        {"data": {"evaViewList": [...], "currentPage": 1, "totalPage": 7}}
    """
    if not isinstance(payload, dict):
        raise MalformedPageError(f"Expected a JSON object, got {type(payload).__name__}")

    data = payload.get("data")
    if not isinstance(data, dict):
        raise MalformedPageError("Response has no 'data' object")

    items = data.get("evaViewList")
    if items is None:
        items = []
    if not isinstance(items, list):
        raise MalformedPageError("'evaViewList' is not a list")

    records = [
        RawRecord(
            text=item.get("buyerFeedback"),
            name=item.get("buyerName"),
            date=item.get("evalDate"),
            score=item.get("buyerEval"),
            sku=item.get("skuInfo"),
            images=_image_list(item.get("images")),
            helpful_count=item.get("upVoteCount"),
            country=item.get("buyerCountry"),
            source_id=str(item["evaluationId"]) if item.get("evaluationId") else None,
        )
        for item in items
        if isinstance(item, dict)
    ]

    total_pages = data.get("totalPage")
    current = data.get("currentPage") or page
    try:
        last_page = total_pages is not None and int(current) >= int(total_pages)
    except (TypeError, ValueError) as e:
        raise MalformedPageError(
            f"Bad paging fields currentPage={current!r} totalPage={total_pages!r}"
        ) from e

    return PageResult(records=records, last_page=last_page)


class ApiPaginationProvider(ExtractionProvider):
    """Extraction provider over a page-numbered review API."""

    name = "api"

    def __init__(
        self,
        product_id: str,
        endpoint: str,
        client: Optional[httpx.AsyncClient] = None,
        page_size: int = 10,
        filter: str = "all",
        sort: str = "complex_default",
        extra_params: Optional[Dict[str, Any]] = None,
        retry_max: int = 3,
        retry_base_delay: float = 1.0,
        timeout: float = 30.0,
        stall_threshold: int = 3,
        parser: Callable[[Any, int], PageResult] = parse_evaluation_page,
        start_page: int = 1,
    ):
        self.product_id = product_id
        self.endpoint = endpoint
        self.page_size = page_size
        self.filter = filter
        self.sort = sort
        self.extra_params = dict(extra_params or {})
        self.retry_max = max(1, retry_max)
        self.retry_base_delay = retry_base_delay
        self.stall_threshold = stall_threshold
        self.parser = parser
        self.page = start_page

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)
        self._last_page_seen = False
        self._last_pull_empty = False

    @property
    def cursor(self) -> Any:
        return self.page

    def _params(self) -> Dict[str, Any]:
        return {
            "productId": self.product_id,
            "page": self.page,
            "pageSize": self.page_size,
            "filter": self.filter,
            "sort": self.sort,
            **self.extra_params,
        }

    async def pull(self) -> List[RawRecord]:
        for attempt in range(1, self.retry_max + 1):
            try:
                result = await self._fetch_page()
            except (MalformedPageError, httpx.HTTPStatusError, httpx.TimeoutException) as e:
                logger.warning(
                    f"Page {self.page} attempt {attempt}/{self.retry_max} failed: {e}"
                )
            else:
                if result.last_page:
                    self._last_page_seen = True
                if result.records or result.last_page:
                    self._last_pull_empty = not result.records
                    return result.records
                logger.warning(
                    f"Page {self.page} attempt {attempt}/{self.retry_max} returned no reviews"
                )

            if attempt < self.retry_max:
                await asyncio.sleep(self.retry_base_delay * attempt)

        logger.info(f"Page {self.page} gave no reviews after {self.retry_max} attempts")
        self._last_pull_empty = True
        return []

    async def advance(self) -> AdvanceOutcome:
        if self._last_page_seen:
            return AdvanceOutcome.EXHAUSTED
        self.page += 1
        if self._last_pull_empty:
            return AdvanceOutcome.UNCHANGED
        return AdvanceOutcome.CHANGED

    async def _fetch_page(self) -> PageResult:
        try:
            response = await self._client.get(self.endpoint, params=self._params())
        except httpx.TimeoutException:
            raise
        except httpx.TransportError as e:
            raise ProviderUnavailableError(self.name, f"Transport failure: {e}") from e

        response.raise_for_status()
        try:
            payload = response.json()
        except ValueError as e:
            raise MalformedPageError(f"Invalid JSON: {e}") from e

        return self.parser(payload, self.page)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
