"""Base scraper class: browser lifecycle and page primitives."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, UTC
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Protocol, TypeVar
from urllib.parse import urlsplit

from playwright.async_api import (
    Browser,
    BrowserContext,
    ElementHandle,
    Error as PlaywrightError,
    Page,
    Playwright,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)
from playwright_stealth import Stealth

from ..config import MAX_TIMEOUT_MS, OUTPUT_DIR, USER_AGENT, ScraperConfig, clamp_timeout
from ..errors import BrowserNotInitializedError
from ..log import ScrapeLogger, logger as default_logger
from ..models import IndexProduct, RawProductData, ScrapeResult

T = TypeVar("T")

BROWSER_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
    "--no-sandbox",
]

MAX_BACKOFF_MS = 10_000


class ScraperState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    CLEANED_UP = "cleaned_up"


class ProductSource(Protocol):
    """What a site adapter provides on top of the shared browser session."""

    async def navigate_to_listing(self) -> None: ...

    async def extract_listing_items(self, max_count: int) -> list[IndexProduct]: ...

    async def extract_detail_fields(self) -> RawProductData: ...

    async def is_authenticated(self) -> bool: ...


def backoff_delay(attempt: int) -> int:
    """Milliseconds to wait after failed attempt number `attempt` (1-based)."""
    return min(1000 * 2 ** (attempt - 1), MAX_BACKOFF_MS)


def _screenshot_timestamp() -> str:
    return datetime.now(UTC).strftime("%Y-%m-%dT%H-%M-%S")


class BaseScraper(ABC):
    """Abstract base class for all scrapers.

    Owns one browser, one context and one page. `initialize()` is the only way
    into the live state and `cleanup()` the only way out.
    """

    name: str
    display_name: str
    url: str

    def __init__(
        self,
        config: ScraperConfig | None = None,
        output_dir: Path | None = None,
        log: ScrapeLogger | None = None,
    ):
        self.config = config or ScraperConfig.from_env()
        self.output_dir = output_dir or OUTPUT_DIR
        self.screenshot_dir = self.output_dir / "screenshots"
        self.log = log or default_logger
        self.state = ScraperState.UNINITIALIZED

        self._playwright: Playwright | None = None
        self.browser: Browser | None = None
        self.context: BrowserContext | None = None
        self.page: Page | None = None
        self._screenshot_counter = 0

    @abstractmethod
    async def scrape(self) -> ScrapeResult:
        """Run the end-to-end flow. Must not raise for extraction failures."""
        ...

    @abstractmethod
    async def is_authenticated(self) -> bool:
        ...

    # --- lifecycle -------------------------------------------------------

    async def initialize(self) -> None:
        """Launch (or connect to) a browser and open a context and page.

        Failures propagate; call cleanup() regardless.
        """
        self.log.info("Initializing scraper...")
        self.log.start_timer("initialize")

        self._playwright = await async_playwright().start()
        try:
            if self.config.cdp_endpoint:
                await self._connect_remote()
            else:
                await self._launch_local()
            self.page.set_default_timeout(self.config.timeout)
            self.log.success("Page created")
        except Exception as e:
            self.log.error("Failed to initialize browser", e)
            raise

        self.state = ScraperState.INITIALIZED
        self.log.end_timer("initialize")
        self.log.success("Scraper initialized")

    async def _launch_local(self) -> None:
        launch_kwargs: dict[str, object] = {
            "headless": self.config.headless,
            "slow_mo": self.config.slow_mo,
            "args": BROWSER_ARGS,
        }
        executable = self.config.executable_path
        if executable and Path(executable).exists():
            launch_kwargs["executable_path"] = executable
        elif executable:
            self.log.warn(f"Browser not found at {executable}, using bundled Chromium")

        self.log.debug("Launch options", {k: v for k, v in launch_kwargs.items() if k != "args"})
        self.browser = await self._playwright.chromium.launch(**launch_kwargs)
        self.log.success("Browser launched")

        self.context = await self.browser.new_context(viewport=self.config.viewport, user_agent=USER_AGENT)
        self.log.success("Browser context created")

        self.page = await self.context.new_page()
        await Stealth().apply_stealth_async(self.page)

    async def _connect_remote(self) -> None:
        """Attach to a cloud browser over CDP, reusing its default context and page."""
        endpoint = self.config.remote_browser_url()
        self.log.info(f"Connecting to remote browser at {urlsplit(endpoint).hostname}...")
        self.log.info(f"Proxy country: {self.config.proxy_country}")
        self.log.info(f"Session TTL: {self.config.remote_session_ttl}s")

        self.browser = await self._playwright.chromium.connect_over_cdp(endpoint, timeout=MAX_TIMEOUT_MS)
        self.log.success("Connected to remote browser")

        # Remote browsers bring their own fingerprint; stealth patches stay local.
        contexts = self.browser.contexts
        if contexts:
            self.context = contexts[0]
        else:
            self.context = await self.browser.new_context(viewport=self.config.viewport, user_agent=USER_AGENT)
        self.log.success("Browser context ready")

        pages = self.context.pages
        self.page = pages[0] if pages else await self.context.new_page()

    async def cleanup(self) -> None:
        """Close page, context, browser and driver. Safe to call repeatedly."""
        if self.state is ScraperState.CLEANED_UP:
            return
        self.log.info("Cleaning up resources...")

        for label, closer in (
            ("page", self.page.close if self.page else None),
            ("context", self.context.close if self.context else None),
            ("browser", self.browser.close if self.browser else None),
            ("playwright", self._playwright.stop if self._playwright else None),
        ):
            if closer is None:
                continue
            try:
                await closer()
            except Exception as e:
                self.log.error(f"Error closing {label}", e)

        self.page = None
        self.context = None
        self.browser = None
        self._playwright = None
        self.state = ScraperState.CLEANED_UP
        self.log.success("Cleanup complete")

    def _require_page(self) -> Page:
        if self.page is None or self.state is not ScraperState.INITIALIZED:
            raise BrowserNotInitializedError("Page")
        return self.page

    # --- navigation and waits ---------------------------------------------

    async def navigate_to(self, url: str, wait_until: str = "domcontentloaded", timeout: int | None = None) -> None:
        """Go to `url`. Errors are screenshotted (if configured) and re-raised."""
        page = self._require_page()
        self.log.info(f"Navigating to: {url}")
        self.log.start_timer("navigation")
        try:
            await page.goto(url, wait_until=wait_until, timeout=clamp_timeout(timeout, self.config.timeout))
        except Exception as e:
            self.log.end_timer("navigation")
            self.log.error("Navigation failed", e)
            if self.config.screenshot_on_error:
                await self.screenshot("navigation-error")
            raise
        duration = self.log.end_timer("navigation")
        self.log.success(f"Page loaded in {duration / 1000:.2f}s")

    async def wait_for_selector(
        self, selector: str, timeout: int | None = None, state: str = "visible"
    ) -> ElementHandle | None:
        """Bounded wait; None when the element does not show up."""
        page = self._require_page()
        timeout = clamp_timeout(timeout, self.config.timeout)
        self.log.debug(f'Waiting for selector: "{selector}" (timeout: {timeout}ms)')
        try:
            element = await page.wait_for_selector(selector, timeout=timeout, state=state)
        except PlaywrightError as e:
            self._reraise_if_closed(page, e)
            if not isinstance(e, PlaywrightTimeoutError):
                self.log.debug(f'Selector wait failed for "{selector}": {e}')
            self.log.selector(selector, selector, False)
            if self.log.is_debug_enabled():
                self.log.html("Page content when selector failed", await page.content(), 1000)
            return None
        self.log.selector(selector, selector, element is not None or state in ("hidden", "detached"))
        return element

    async def pause(self, message: str, duration_ms: int = 3000) -> None:
        self.log.info(f"PAUSE: {message}")
        self.log.info(f"Resuming in {duration_ms / 1000:g}s...")
        await self._require_page().wait_for_timeout(duration_ms)

    @property
    def current_url(self) -> str:
        return self.page.url if self.page else ""

    async def page_title(self) -> str:
        return await self.page.title() if self.page else ""

    # --- screenshots -------------------------------------------------------

    def _next_screenshot_path(self, name: str) -> Path:
        self._screenshot_counter += 1
        self.screenshot_dir.mkdir(parents=True, exist_ok=True)
        return self.screenshot_dir / f"{self._screenshot_counter:02d}-{name}-{_screenshot_timestamp()}.png"

    async def screenshot(self, name: str) -> str:
        """Viewport screenshot. Returns the file path, or "" if capture failed."""
        if self.page is None:
            return ""
        try:
            path = self._next_screenshot_path(name)
            await self.page.screenshot(path=str(path), full_page=False)
        except Exception as e:
            self.log.error("Failed to take screenshot", e)
            return ""
        self.log.screenshot(str(path))
        return str(path)

    async def screenshot_element(self, selector: str, name: str) -> str:
        if self.page is None:
            return ""
        try:
            element = await self.page.query_selector(selector)
            if element is None:
                self.log.warn(f"Element not found for screenshot: {selector}")
                return ""
            path = self._next_screenshot_path(f"element-{name}")
            await element.screenshot(path=str(path))
        except Exception as e:
            self.log.error("Failed to take element screenshot", e)
            return ""
        self.log.screenshot(str(path))
        return str(path)

    async def screenshot_full_page(self, name: str) -> str:
        if self.page is None:
            return ""
        try:
            path = self._next_screenshot_path(f"fullpage-{name}")
            await self.page.screenshot(path=str(path), full_page=True)
        except Exception as e:
            self.log.error("Failed to take full page screenshot", e)
            return ""
        self.log.screenshot(str(path))
        return str(path)

    # --- retry -------------------------------------------------------------

    async def with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        max_retries: int | None = None,
        operation_name: str = "operation",
    ) -> T:
        """Run `operation` with exponential backoff; re-raise the last error when exhausted."""
        attempts = max(1, self.config.max_retries if max_retries is None else max_retries)
        for attempt in range(1, attempts + 1):
            try:
                self.log.debug(f"{operation_name} - Attempt {attempt}/{attempts}")
                return await operation()
            except Exception as e:
                self.log.warn(f"{operation_name} - Attempt {attempt} failed: {e}")
                if attempt == attempts:
                    raise
                delay = backoff_delay(attempt)
                self.log.debug(f"Retrying in {delay}ms...")
                await asyncio.sleep(delay / 1000)
        raise RuntimeError(f"{operation_name} made no attempts")

    # --- element primitives --------------------------------------------------

    def _reraise_if_closed(self, page: Page, error: Exception) -> None:
        if page.is_closed():
            raise error

    async def extract_text(self, selector: str) -> str | None:
        """Trimmed text of the first match, or None."""
        page = self._require_page()
        try:
            element = await page.query_selector(selector)
            if element is None:
                self.log.selector("text", selector, False)
                return None
            text = await element.text_content()
        except PlaywrightError as e:
            self._reraise_if_closed(page, e)
            self.log.debug(f"Error extracting text from {selector}: {e}")
            return None
        self.log.selector("text", selector, True)
        text = (text or "").strip()
        return text or None

    async def extract_attribute(self, selector: str, attribute: str) -> str | None:
        page = self._require_page()
        try:
            element = await page.query_selector(selector)
            if element is None:
                self.log.selector(attribute, selector, False)
                return None
            value = await element.get_attribute(attribute)
        except PlaywrightError as e:
            self._reraise_if_closed(page, e)
            self.log.debug(f"Error extracting {attribute} from {selector}: {e}")
            return None
        self.log.selector(attribute, selector, True)
        return value

    async def extract_all(self, selector: str) -> list[ElementHandle]:
        page = self._require_page()
        try:
            elements = await page.query_selector_all(selector)
        except PlaywrightError as e:
            self._reraise_if_closed(page, e)
            self.log.debug(f"Error extracting elements from {selector}: {e}")
            return []
        self.log.selector("multiple", selector, bool(elements))
        self.log.debug(f"Found {len(elements)} elements")
        return elements
