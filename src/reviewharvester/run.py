"""
Review harvest CLI - collect reviews for one product.

Usage:
    python -m reviewharvester --url https://www.aliexpress.com/item/1005006.html
    python -m reviewharvester --url ... --target 100 --strategy api --sort complex_default
    python -m reviewharvester --url ... --output data/reviews.jsonl --headed

Environment Variables:
    PRODUCT_URL - Product to harvest if --url is not given
    HARVEST_* / SCROLL_* / API_* / BROWSER_* - see reviewharvester.config
"""

import argparse
import asyncio
import logging
import os
import re
import sys
from typing import Optional

from dotenv import load_dotenv

from .browser import BrowserSession, open_review_panel
from .config import HarvestConfig, get_config
from .exceptions import InvalidProductUrlError
from .harvester import HarvestController, provider_registry
from .harvester.providers import ExtractionProvider
from .models import HarvestSummary, TerminationReason
from .sinks import JsonLinesSink, ReviewSink

load_dotenv()

logger = logging.getLogger(__name__)

_PRODUCT_ID_RE = re.compile(r"item/(\d+)\.html")


def extract_product_id(url: Optional[str]) -> str:
    """Pull the numeric product id out of a product URL."""
    match = _PRODUCT_ID_RE.search(url or "")
    if not match:
        raise InvalidProductUrlError(f"Invalid product URL: {url!r}")
    return match.group(1)


async def harvest_with_provider(
    provider: ExtractionProvider,
    sink: ReviewSink,
    product_id: str,
    product_url: str,
    config: HarvestConfig,
) -> HarvestSummary:
    """Run one controller over an already built provider."""
    controller = HarvestController(
        provider,
        sink,
        product_id=product_id,
        product_url=product_url,
        target_count=config.target_count,
        batch_size=config.batch_size,
        max_rounds=config.max_rounds,
        run_timeout=config.run_timeout,
        min_text_length=config.min_text_length,
        fingerprint_length=config.fingerprint_length,
    )
    return await controller.run()


async def run_harvest(
    product_url: str,
    config: Optional[HarvestConfig] = None,
    strategy: Optional[str] = None,
    sink: Optional[ReviewSink] = None,
) -> HarvestSummary:
    """Harvest reviews for one product.

    Args:
        product_url: Product page URL (passed through into every review)
        config: Run configuration (defaults to environment)
        strategy: "interactive" or "api" (defaults to config.strategy)
        sink: Destination for batches (defaults to JSON lines at config.output_path)

    Returns:
        HarvestSummary with saved count and termination reason
    """
    config = config or get_config()
    strategy = (strategy or config.strategy).lower()
    product_id = extract_product_id(product_url)
    sink = sink or JsonLinesSink(config.output_path)

    logger.info(
        f"Scraping reviews for product: {product_id}, wanted: {config.target_count}"
    )

    if strategy == "interactive":
        async with BrowserSession(config.browser) as session:
            page = await session.open_product(product_url)
            await open_review_panel(page, wait_seconds=config.scroll.panel_wait_seconds)
            provider = provider_registry.create(strategy, product_id, config, page=page)
            return await harvest_with_provider(provider, sink, product_id, product_url, config)

    provider = provider_registry.create(strategy, product_id, config)
    try:
        return await harvest_with_provider(provider, sink, product_id, product_url, config)
    finally:
        await provider.close()


def build_config(args: argparse.Namespace) -> HarvestConfig:
    """Apply CLI overrides on top of the environment configuration."""
    config = HarvestConfig.from_env()

    updates = {}
    if args.target is not None:
        updates["target_count"] = max(1, args.target)
    if args.strategy:
        updates["strategy"] = args.strategy
    if args.output:
        updates["output_path"] = args.output
    if args.max_rounds is not None:
        updates["max_rounds"] = args.max_rounds
    if args.timeout is not None:
        updates["run_timeout"] = args.timeout

    api_updates = {}
    if args.filter:
        api_updates["filter"] = args.filter
    if args.sort:
        api_updates["sort"] = args.sort
    if api_updates:
        updates["api"] = config.api.model_copy(update=api_updates)

    if args.headed:
        updates["browser"] = config.browser.model_copy(update={"headless": False})

    return config.model_copy(update=updates)


def main():
    parser = argparse.ArgumentParser(
        description="Harvest reviews for a single product",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--url",
        "-u",
        default=os.getenv("PRODUCT_URL"),
        help="Product URL (default: PRODUCT_URL env var)",
    )
    parser.add_argument("--target", "-n", type=int, help="Number of reviews wanted")
    parser.add_argument(
        "--strategy",
        "-s",
        choices=provider_registry.list_strategies(),
        help="Data source (default: HARVEST_STRATEGY or interactive)",
    )
    parser.add_argument("--filter", help="Review filter (api strategy only)")
    parser.add_argument("--sort", help="Review sort order (api strategy only)")
    parser.add_argument("--output", "-o", help="JSON lines output path")
    parser.add_argument("--max-rounds", type=int, help="Hard round ceiling")
    parser.add_argument("--timeout", type=float, help="Wall-clock budget in seconds")
    parser.add_argument(
        "--headed", action="store_true", help="Show the browser window"
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: LOG_LEVEL env var or INFO)",
    )

    args = parser.parse_args()

    if not args.url:
        parser.error("Product URL not specified. Use --url or set PRODUCT_URL")

    config = build_config(args)

    logging.basicConfig(
        level=getattr(logging, (args.log_level or config.log_level).upper()),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        summary = asyncio.run(run_harvest(args.url, config))
    except KeyboardInterrupt:
        logger.info("Harvest interrupted")
        sys.exit(1)
    except InvalidProductUrlError as e:
        logger.error(str(e))
        sys.exit(1)
    except Exception as e:
        logger.exception(f"Harvest failed: {e}")
        sys.exit(1)

    logger.info(f"Done. Reviews: {summary.saved_count}")
    print(summary.to_dict())
    if summary.reason == TerminationReason.FATAL:
        sys.exit(1)


if __name__ == "__main__":
    main()
