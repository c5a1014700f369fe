"""
Browser session for the interactive strategy.

Launches a Playwright browser, loads the product page and opens the review
panel so the InteractiveScrollProvider has something to read.

Usage:
    async with BrowserSession(config.browser) as session:
        page = await session.open_product(product_url)
        await open_review_panel(page)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Sequence

from playwright.async_api import Browser, BrowserContext, Page, Playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Route, async_playwright

from .config import BrowserConfig
from .exceptions import ProviderUnavailableError

logger = logging.getLogger(__name__)

BLOCKED_RESOURCE_TYPES = {"font", "media"}

HIDE_WEBDRIVER_SCRIPT = (
    "Object.defineProperty(navigator, 'webdriver', { get: () => false });"
)

REVIEW_PANEL_SELECTORS: Sequence[str] = (".comet-v2-modal-body", '[role="dialog"]')

# Clicks the first short "view more" control. Long text blocks that merely
# contain the words are skipped.
CLICK_VIEW_MORE_SCRIPT = """
() => {
    const candidates = document.querySelectorAll('button, a, span[role="button"], div[role="button"]');
    for (const btn of candidates) {
        const txt = btn.textContent?.trim().toLowerCase() || '';
        if (txt.length < 30 && txt.includes('view') && txt.includes('more')) {
            btn.scrollIntoView({ block: 'center' });
            btn.click();
            return { found: true, text: txt };
        }
    }
    for (const el of document.querySelectorAll('*')) {
        if (el.childNodes.length > 3) continue;
        let direct = '';
        for (const node of el.childNodes) {
            if (node.nodeType === Node.TEXT_NODE) direct += node.textContent;
        }
        direct = direct.trim().toLowerCase();
        if (direct === 'view more' || direct === 'view all') {
            el.scrollIntoView({ block: 'center' });
            el.click();
            return { found: true, text: direct };
        }
    }
    return { found: false };
}
"""


async def _block_heavy_resources(route: Route) -> None:
    if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
        await route.abort()
    else:
        await route.continue_()


class BrowserSession:
    """Owns the Playwright driver, browser and context for one run."""

    def __init__(self, config: Optional[BrowserConfig] = None):
        self.config = config or BrowserConfig()
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None

    async def __aenter__(self) -> "BrowserSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def start(self) -> None:
        """Launch the browser. Anything half-started is closed on failure."""
        try:
            await self._launch()
        except BaseException:
            await self.close()
            raise

    async def _launch(self) -> None:
        cfg = self.config
        self._playwright = await async_playwright().start()

        launcher = getattr(self._playwright, cfg.browser, None)
        if launcher is None:
            raise ValueError(f"Unknown browser: {cfg.browser}")

        proxy = None
        if cfg.proxy_server:
            proxy = {"server": cfg.proxy_server}
            if cfg.proxy_username:
                proxy["username"] = cfg.proxy_username
                proxy["password"] = cfg.proxy_password or ""

        self._browser = await launcher.launch(headless=cfg.headless, proxy=proxy)
        self._context = await self._browser.new_context()
        self._context.set_default_navigation_timeout(cfg.navigation_timeout * 1000)
        logger.info(f"Launched {cfg.browser} (headless={cfg.headless})")

    async def open_product(self, url: str) -> Page:
        """Open a new page on the product URL."""
        if self._context is None:
            raise RuntimeError("BrowserSession not started")

        page = await self._context.new_page()
        await page.route("**/*", _block_heavy_resources)
        await page.add_init_script(HIDE_WEBDRIVER_SCRIPT)

        attempts = self.config.navigation_retries
        for attempt in range(1, attempts + 1):
            logger.info(f"Loading page (attempt {attempt}/{attempts})...")
            try:
                await page.goto(url, wait_until="domcontentloaded")
                break
            except PlaywrightError as e:
                if attempt == attempts:
                    raise ProviderUnavailableError(
                        "interactive", f"Navigation failed after {attempts} attempts: {e}"
                    ) from e
                logger.warning(f"Navigation attempt {attempt} failed: {e}")

        await asyncio.sleep(self.config.load_wait_seconds)
        return page

    async def close(self) -> None:
        """Close browser and driver."""
        if self._context:
            await self._context.close()
            self._context = None
        if self._browser:
            await self._browser.close()
            self._browser = None
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None


async def open_review_panel(
    page: Page,
    wait_seconds: float = 3.0,
    panel_selectors: Sequence[str] = REVIEW_PANEL_SELECTORS,
) -> bool:
    """Scroll to the reviews section and open the full review panel.

    Returns True when a review panel is present afterwards. A missing panel
    is not an error: the scroll provider then works on the page itself.
    """
    await page.evaluate("() => window.scrollTo(0, document.body.scrollHeight * 0.5)")
    await asyncio.sleep(1.5)

    logger.info("Finding View more button...")
    clicked = await page.evaluate(CLICK_VIEW_MORE_SCRIPT)
    if clicked.get("found"):
        logger.info(f"Clicked: {clicked.get('text')!r}. Waiting for panel...")
        await asyncio.sleep(wait_seconds)
    else:
        logger.warning("Could not find View more button")

    for selector in panel_selectors:
        if await page.query_selector(selector) is not None:
            logger.info(f"Review panel opened ({selector})")
            return True

    logger.warning("Review panel not found, scrolling the page instead")
    return False
