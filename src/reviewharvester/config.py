"""
Configuration for the review harvester.

Uses Pydantic for validation and environment loading.
The harvesting core never reads the environment itself; the CLI builds a
HarvestConfig and passes plain values down.
"""

import os
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings


class ScrollConfig(BaseModel):
    """Configuration for the interactive scroll provider."""

    settle_seconds: float = Field(
        default=1.2, description="Wait after each scroll for lazy content"
    )
    stall_threshold: int = Field(
        default=8, description="Rounds without progress before giving up"
    )
    panel_wait_seconds: float = Field(
        default=3.0, description="Wait after opening the review panel"
    )


class ApiConfig(BaseModel):
    """Configuration for the API pagination provider."""

    endpoint: str = Field(
        default="https://feedback.aliexpress.com/pc/searchEvaluation.do",
        description="Review pagination endpoint",
    )
    page_size: int = Field(default=10, description="Records per page")
    filter: str = Field(default="all", description="Review filter passed to the API")
    sort: str = Field(
        default="complex_default", description="Review sort order passed to the API"
    )
    lang: str = Field(default="en_US")
    country: str = Field(default="US")
    timeout: float = Field(default=30.0, description="Request timeout in seconds")
    retry_max: int = Field(default=3, description="Attempts per page")
    retry_base_delay: float = Field(
        default=1.0, description="Backoff step between attempts"
    )
    stall_threshold: int = Field(
        default=3, description="Rounds without progress before giving up"
    )


class BrowserConfig(BaseModel):
    """Configuration for the browser session."""

    browser: str = Field(default="firefox", description="chromium, firefox or webkit")
    headless: bool = Field(default=True)
    proxy_server: Optional[str] = Field(default=None, description="Proxy URL")
    proxy_username: Optional[str] = Field(default=None)
    proxy_password: Optional[str] = Field(default=None)
    navigation_timeout: float = Field(
        default=60.0, description="Page navigation timeout in seconds"
    )
    navigation_retries: int = Field(
        default=3, ge=1, description="Attempts to load the product page"
    )
    load_wait_seconds: float = Field(
        default=2.0, description="Wait after the product page loads"
    )


class HarvestConfig(BaseSettings):
    """Master configuration for the review harvester.

    Loads from environment variables and an optional .env file.
    """

    model_config = ConfigDict(
        env_prefix="",  # No prefix, use exact names
        env_file=".env",
        extra="ignore",
    )

    log_level: str = Field(default="INFO")

    # Run shape
    target_count: int = Field(default=20, ge=1, description="Reviews wanted")
    batch_size: int = Field(default=10, ge=1, description="Records per sink batch")
    max_rounds: int = Field(default=60, ge=1, description="Hard round ceiling")
    run_timeout: Optional[float] = Field(
        default=None, description="Wall-clock budget in seconds, None=unbounded"
    )
    strategy: str = Field(default="interactive", description="interactive or api")
    output_path: str = Field(default="reviews.jsonl")

    # Normalization / dedup
    min_text_length: int = Field(default=5, description="Shorter texts are dropped")
    fingerprint_length: int = Field(
        default=80, description="Text prefix length used for dedup"
    )

    # Sub-configs
    scroll: ScrollConfig = Field(default_factory=ScrollConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)

    @classmethod
    def from_env(cls) -> "HarvestConfig":
        """Load configuration from environment variables."""
        run_timeout = os.getenv("HARVEST_RUN_TIMEOUT")

        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            target_count=int(os.getenv("HARVEST_TARGET_COUNT", "20")),
            batch_size=int(os.getenv("HARVEST_BATCH_SIZE", "10")),
            max_rounds=int(os.getenv("HARVEST_MAX_ROUNDS", "60")),
            run_timeout=float(run_timeout) if run_timeout else None,
            strategy=os.getenv("HARVEST_STRATEGY", "interactive"),
            output_path=os.getenv("HARVEST_OUTPUT_PATH", "reviews.jsonl"),
            min_text_length=int(os.getenv("HARVEST_MIN_TEXT_LENGTH", "5")),
            fingerprint_length=int(os.getenv("HARVEST_FINGERPRINT_LENGTH", "80")),
            scroll=ScrollConfig(
                settle_seconds=float(os.getenv("SCROLL_SETTLE_SECONDS", "1.2")),
                stall_threshold=int(os.getenv("SCROLL_STALL_THRESHOLD", "8")),
                panel_wait_seconds=float(os.getenv("SCROLL_PANEL_WAIT_SECONDS", "3.0")),
            ),
            api=ApiConfig(
                endpoint=os.getenv(
                    "API_ENDPOINT",
                    "https://feedback.aliexpress.com/pc/searchEvaluation.do",
                ),
                page_size=int(os.getenv("API_PAGE_SIZE", "10")),
                filter=os.getenv("API_FILTER", "all"),
                sort=os.getenv("API_SORT", "complex_default"),
                lang=os.getenv("API_LANG", "en_US"),
                country=os.getenv("API_COUNTRY", "US"),
                timeout=float(os.getenv("API_TIMEOUT", "30.0")),
                retry_max=int(os.getenv("API_RETRY_MAX", "3")),
                retry_base_delay=float(os.getenv("API_RETRY_BASE_DELAY", "1.0")),
                stall_threshold=int(os.getenv("API_STALL_THRESHOLD", "3")),
            ),
            browser=BrowserConfig(
                browser=os.getenv("BROWSER_NAME", "firefox"),
                headless=os.getenv("BROWSER_HEADLESS", "true").lower() == "true",
                proxy_server=os.getenv("BROWSER_PROXY_SERVER"),
                proxy_username=os.getenv("BROWSER_PROXY_USERNAME"),
                proxy_password=os.getenv("BROWSER_PROXY_PASSWORD"),
                navigation_timeout=float(os.getenv("BROWSER_NAVIGATION_TIMEOUT", "60.0")),
                navigation_retries=int(os.getenv("BROWSER_NAVIGATION_RETRIES", "3")),
                load_wait_seconds=float(os.getenv("BROWSER_LOAD_WAIT_SECONDS", "2.0")),
            ),
        )


@lru_cache(maxsize=1)
def get_config() -> HarvestConfig:
    """Get the process-wide configuration (loaded once)."""
    return HarvestConfig.from_env()
