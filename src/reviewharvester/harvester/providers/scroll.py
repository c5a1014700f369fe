"""
Interactive scroll provider.

Reads review cards from an open review panel in a Playwright page and
scrolls the panel to load more. The panel markup differs between product
templates, so extraction walks an ordered list of equivalent selector sets
and uses the first one that matches anything.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Sequence

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ...exceptions import ProviderUnavailableError
from ...models import AdvanceOutcome, RawRecord
from .base import ExtractionProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SelectorSet:
    """CSS selectors describing one review card layout."""

    item: str
    text: str
    info: str = ""
    stars_box: str = ""
    filled_star: str = ""
    sku: str = ""
    image: str = "img"
    image_filter: str = ""  # keep only image URLs containing this substring


DEFAULT_SELECTOR_SETS: Sequence[SelectorSet] = (
    SelectorSet(
        item=".list--itemBox--je_KNzb",
        text=".list--itemReview--d9Z9Z5Z",
        info=".list--itemInfo--VEcgSFh",
        stars_box='.stars--box--WrrveRu, [class*="stars--box"]',
        filled_star=".comet-icon-starreviewfilled",
        sku=".list--itemSku--idEQSGC",
        image_filter="alicdn",
    ),
    SelectorSet(
        item='[class*="list--itemBox"]',
        text='[class*="list--itemReview"]',
        info='[class*="list--itemInfo"]',
        stars_box='[class*="stars--box"]',
        filled_star='[class*="starreviewfilled"]',
        sku='[class*="list--itemSku"]',
        image_filter="alicdn",
    ),
)

DEFAULT_SCROLL_REGIONS: Sequence[str] = (
    ".comet-v2-modal-body",
    '[role="dialog"]',
)

EXTRACT_SCRIPT = """
(sel) => {
    const items = [];
    for (const box of document.querySelectorAll(sel.item)) {
        const text = box.querySelector(sel.text)?.textContent?.trim() || null;
        const info = sel.info ? (box.querySelector(sel.info)?.textContent || null) : null;
        let stars = null;
        if (sel.stars_box) {
            const starsBox = box.querySelector(sel.stars_box);
            if (starsBox && sel.filled_star) {
                stars = starsBox.querySelectorAll(sel.filled_star).length;
            }
        }
        const sku = sel.sku ? (box.querySelector(sel.sku)?.textContent?.trim() || null) : null;
        const images = [...box.querySelectorAll(sel.image)]
            .map(i => i.getAttribute('src') || '')
            .filter(s => s && (!sel.image_filter || s.includes(sel.image_filter)));
        items.push({text, info, stars, sku, images});
    }
    return items;
}
"""

SCROLL_SCRIPT = """
(regions) => {
    for (const selector of regions) {
        const el = document.querySelector(selector);
        if (el) {
            const before = el.scrollHeight;
            el.scrollTop = el.scrollHeight;
            return {found: true, height: before};
        }
    }
    const before = document.body.scrollHeight;
    window.scrollTo(0, document.body.scrollHeight);
    return {found: false, height: before};
}
"""

MEASURE_SCRIPT = """
(regions) => {
    for (const selector of regions) {
        const el = document.querySelector(selector);
        if (el) return el.scrollHeight;
    }
    return document.body.scrollHeight;
}
"""


class InteractiveScrollProvider(ExtractionProvider):
    """Extraction provider over a scrollable review panel."""

    name = "interactive"

    def __init__(
        self,
        page: Page,
        selector_sets: Optional[Sequence[SelectorSet]] = None,
        scroll_regions: Optional[Sequence[str]] = None,
        settle_seconds: float = 1.2,
        stall_threshold: int = 8,
    ):
        self.page = page
        self.selector_sets = list(selector_sets or DEFAULT_SELECTOR_SETS)
        self.scroll_regions = list(scroll_regions or DEFAULT_SCROLL_REGIONS)
        self.settle_seconds = settle_seconds
        self.stall_threshold = stall_threshold
        self._last_height: Optional[int] = None
        self._active_set: Optional[int] = None

    @property
    def cursor(self) -> Any:
        return self._last_height

    async def pull(self) -> List[RawRecord]:
        for idx, selector_set in enumerate(self.selector_sets):
            items = await self._evaluate_extract(selector_set)
            if items:
                if idx != self._active_set:
                    logger.info(f"Using selector set {idx} ({selector_set.item})")
                    self._active_set = idx
                return [RawRecord.from_dict(item) for item in items]

        logger.debug("No selector set matched any review card")
        return []

    async def advance(self) -> AdvanceOutcome:
        try:
            return await self._scroll_and_measure()
        except PlaywrightTimeoutError as e:
            logger.warning(f"Scroll timed out: {e}")
            return AdvanceOutcome.UNCHANGED

    async def _scroll_and_measure(self) -> AdvanceOutcome:
        scrolled = await self._evaluate(SCROLL_SCRIPT, self.scroll_regions) or {}
        if not scrolled.get("found"):
            logger.debug("No scrollable review region, scrolled the viewport")
        if self._last_height is None:
            self._last_height = int(scrolled.get("height") or 0)

        await asyncio.sleep(self.settle_seconds)

        height = int(await self._evaluate(MEASURE_SCRIPT, self.scroll_regions) or 0)
        grew = height > self._last_height
        self._last_height = max(height, self._last_height)
        return AdvanceOutcome.CHANGED if grew else AdvanceOutcome.UNCHANGED

    async def _evaluate_extract(self, selector_set: SelectorSet) -> List[Dict[str, Any]]:
        try:
            return await self._evaluate(EXTRACT_SCRIPT, asdict(selector_set)) or []
        except PlaywrightTimeoutError as e:
            logger.warning(f"Extraction timed out for {selector_set.item}: {e}")
            return []

    async def _evaluate(self, script: str, arg: Any) -> Any:
        try:
            return await self.page.evaluate(script, arg)
        except PlaywrightTimeoutError:
            raise
        except PlaywrightError as e:
            raise ProviderUnavailableError(self.name, f"Page evaluation failed: {e}") from e
