"""Scraper for app.tradelle.io product research pages.

Tradelle is a client-rendered app behind a login. The flow restores a saved
session (or waits for a manual login), opens the product picks through the
sidebar menu, and reads fields from the detail page with the heuristics in
`productscraper.extraction`.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, UTC
from pathlib import Path

from playwright.async_api import ElementHandle, Error as PlaywrightError

from ..config import ScraperConfig
from ..errors import LoginTimeoutError, ScraperError
from ..extraction import (
    DESCRIPTION_RULES,
    FOUND_DATE_RULES,
    ITEMS_SOLD_RULES,
    TITLE_RULES,
    ImageCandidate,
    PageSnapshot,
    extract_images,
    extract_index_products,
    extract_prices,
    extract_specifications,
    product_urls,
    run_rules,
)
from ..log import ScrapeLogger
from ..models import ErrorRecord, IndexProduct, RawProductData, ScrapeResult, Timing
from ..selectors import SelectorTable, load_selectors, split_selectors
from ..session import SessionManager
from ..validator import report_validation, validate_product
from .base import BaseScraper

BASE_URL = "https://app.tradelle.io"
LOGIN_URL = f"{BASE_URL}/login"
LOGIN_URL_MARKERS = ("/login", "/sign-in", "account.tradelle")

ERROR_PAGE_PHRASES = ("Something went wrong", "couldn't load the page")
ERROR_PAGE_RETRY_DELAY_MS = 3000
LOADING_TIMEOUT_MS = 30_000
HYDRATION_WAIT_MS = 2000
CREDENTIAL_FORM_WAIT_MS = 3000
CREDENTIAL_SUBMIT_WAIT_MS = 8000
MAX_SCROLLS = 50
SCROLL_WAIT_MS = 1500

_SNAPSHOT_SCRIPT = """() => {
    const main = document.querySelector('main') || document.body;
    const images = main ? Array.from(main.querySelectorAll('img')).map(img => ({
        src: img.src || img.getAttribute('data-src') || '',
        naturalWidth: img.naturalWidth || 0,
        width: img.width || 0,
    })) : [];
    return {url: window.location.href, html: document.documentElement.outerHTML, images};
}"""

_COUNT_PRODUCT_LINKS = """(selector) => {
    const urls = new Set();
    document.querySelectorAll(selector).forEach(link => {
        if (/\\/products\\/\\d+/.test(link.href)) urls.add(link.href);
    });
    return urls.size;
}"""

_TAG_TEXTS = "els => els.map(el => (el.textContent || '').trim()).filter(Boolean)"


def is_login_url(url: str) -> bool:
    """True for the app login page and the hosted sign-in redirects."""
    return any(marker in url for marker in LOGIN_URL_MARKERS)


class TradelleScraper(BaseScraper):
    """Scrape product research data from Tradelle."""

    name = "tradelle"
    display_name = "Tradelle"
    url = BASE_URL

    def __init__(
        self,
        config: ScraperConfig | None = None,
        output_dir: Path | None = None,
        log: ScrapeLogger | None = None,
        session_manager: SessionManager | None = None,
        selectors: SelectorTable | None = None,
        use_session: bool = True,
    ):
        super().__init__(config, output_dir, log)
        self.session_manager = session_manager or SessionManager("tradelle.io", log=self.log)
        self.selectors = selectors or load_selectors()
        self.use_session = use_session

    # --- session and authentication ----------------------------------------

    async def restore_session(self) -> bool:
        """Load a saved session into the context if one is valid."""
        if not self.use_session:
            self.log.info("Session reuse disabled")
            return False
        if not await self.session_manager.has_valid_session():
            self.log.warn("No valid session found - manual login required")
            return False
        if self.context is None:
            return False
        self.log.info("Loading saved session into browser...")
        return await self.session_manager.load_session(self.context)

    async def is_authenticated(self) -> bool:
        """True when any dashboard-only element is present."""
        if self.page is None:
            return False
        try:
            for selector in split_selectors(self.selectors.auth.dashboard_indicator):
                if await self.page.query_selector(selector):
                    self.log.success(f"Authenticated (found: {selector})")
                    return True
        except PlaywrightError as e:
            self.log.debug(f"Error checking authentication: {e}")
            return False
        self.log.debug("No authentication indicators found")
        return False

    async def _first_match(self, selector: str) -> ElementHandle | None:
        """First element matching any alternative of a comma-joined selector."""
        page = self._require_page()
        for alternative in split_selectors(selector):
            try:
                element = await page.query_selector(alternative)
            except PlaywrightError:
                continue
            if element is not None:
                self.log.debug(f"Found: {alternative}")
                return element
        return None

    async def login_with_credentials(self, email: str, password: str) -> bool:
        """Fill and submit the login form. Returns False when the form or the login fails."""
        page = self._require_page()
        auth = self.selectors.auth
        self.log.info(f"Logging in as {email}...")
        await page.wait_for_timeout(CREDENTIAL_FORM_WAIT_MS)

        email_input = await self._first_match(auth.email_input)
        if email_input is None:
            self.log.warn("Could not find email input on login page")
            await self.screenshot("login-form-missing")
            return False
        await email_input.fill(email)
        await page.wait_for_timeout(1000)

        password_input = await self._first_match(auth.password_input)
        if password_input is None and (next_button := await self._first_match(auth.continue_button)):
            self.log.debug("No password field yet, clicking continue...")
            await next_button.click()
            await page.wait_for_timeout(2000)
            password_input = await self._first_match(auth.password_input)
        if password_input is None:
            self.log.warn("Could not find password input on login page")
            await self.screenshot("login-form-missing")
            return False
        await password_input.fill(password)
        await page.wait_for_timeout(500)

        if submit := await self._first_match(auth.login_button):
            await submit.click()
            self.log.info("Submitted login form...")

        await page.wait_for_timeout(CREDENTIAL_SUBMIT_WAIT_MS)
        await self.wait_for_page_load()
        self.log.info(f"After login URL: {self.current_url}")
        if is_login_url(self.current_url):
            self.log.warn("Login failed - still on login page")
            return False
        self.log.success("Login successful!")
        return True

    async def handle_login(self, indicator: str | None = None) -> None:
        """Sign in with configured credentials, else wait for a manual login. Saves the session."""
        self.log.info("Starting login flow...")
        page = self._require_page()

        if not is_login_url(self.current_url):
            await self.navigate_to(LOGIN_URL, "networkidle")
            await self.wait_for_page_load()
            await self.screenshot("login-page")

        logged_in = False
        if self.config.has_credentials:
            logged_in = await self.login_with_credentials(self.config.login_email, self.config.login_password)
            if not logged_in:
                self.log.warn("Credential login failed, falling back to manual login")

        if not logged_in:
            self.log.divider("MANUAL LOGIN")
            self.log.info("Please complete the login process in the browser window.")
            self.log.info("The scraper will automatically continue once you are logged in.")
            self.log.divider()
            await self.session_manager.pause_for_manual_login(
                page, indicator or self.selectors.auth.dashboard_indicator
            )

        if self.context is not None:
            await self.session_manager.save_session(self.context)
            self.log.success("Session saved for future runs")

    async def ensure_authenticated(self, indicator: str | None = None) -> bool:
        """Log in if needed. Returns True when a login took place."""
        if await self.is_authenticated():
            return False
        self.log.warn("Not authenticated - need to login")
        await self.handle_login(indicator)
        return True

    # --- page readiness and navigation -------------------------------------

    async def wait_for_page_load(self) -> None:
        """Wait for the app's loading indicators to go away and the network to settle."""
        page = self._require_page()
        self.log.debug("Waiting for page to fully load...")

        for selector in self.selectors.listing.loading_indicators:
            try:
                if await page.query_selector(selector):
                    self.log.debug(f"Loading indicator found: {selector}, waiting for it to disappear...")
                    await page.wait_for_selector(selector, state="hidden", timeout=LOADING_TIMEOUT_MS)
            except PlaywrightError:
                continue

        try:
            await page.wait_for_timeout(HYDRATION_WAIT_MS)
            await page.wait_for_load_state("networkidle")
        except PlaywrightError as e:
            self.log.warn(f"Timeout waiting for page load, continuing anyway... ({e})")
            return
        self.log.success("Page fully loaded")

    async def navigate_to_products_via_sidebar(self) -> None:
        """Expand the Product Research menu and open the first product listing entry."""
        page = self._require_page()
        self.log.info("Navigating via sidebar menu...")
        listing = self.selectors.listing

        try:
            if menu := await page.query_selector(listing.menu_root):
                self.log.debug("Found Product Research menu, clicking...")
                await menu.click()
                await page.wait_for_timeout(1000)

            for selector in listing.submenu_items:
                if item := await page.query_selector(selector):
                    self.log.debug(f"Found submenu item: {selector}, clicking...")
                    await item.click()
                    await self.wait_for_page_load()
                    return
        except PlaywrightError as e:
            self.log.error("Error navigating via sidebar", e)
            return

        self.log.warn("Could not find product submenu, taking screenshot for inspection")
        await self.screenshot("sidebar-expanded")

    async def navigate_to_listing(self, wait_until: str = "networkidle", timeout: int | None = None) -> None:
        self.log.info("Navigating to products listing...")
        await self.navigate_to(BASE_URL, wait_until, timeout)
        await self.wait_for_page_load()
        await self.navigate_to_products_via_sidebar()

    async def page_has_error(self) -> bool:
        page = self._require_page()
        text = await page.evaluate("() => document.body ? document.body.textContent || '' : ''")
        return any(phrase in text for phrase in ERROR_PAGE_PHRASES)

    async def recover_from_error_page(self) -> bool:
        """Reload once if the app shows its generic error page. Returns True if it reloaded."""
        if not await self.page_has_error():
            return False
        page = self._require_page()
        self.log.warn(f"Page showed error, retrying in {ERROR_PAGE_RETRY_DELAY_MS // 1000} seconds...")
        await page.wait_for_timeout(ERROR_PAGE_RETRY_DELAY_MS)
        await page.reload(wait_until="networkidle")
        await self.wait_for_page_load()
        return True

    # --- listing -----------------------------------------------------------

    async def capture_snapshot(self) -> PageSnapshot:
        """Grab HTML, URL and rendered image sizes in one evaluation."""
        data = await self._require_page().evaluate(_SNAPSHOT_SCRIPT)
        images = [
            ImageCandidate(src=i.get("src") or "", natural_width=i.get("naturalWidth") or 0, width=i.get("width") or 0)
            for i in data.get("images") or []
        ]
        return PageSnapshot(url=data.get("url") or self.current_url, html=data.get("html") or "", images=images)

    async def select_first_product(self) -> str | None:
        page = self._require_page()
        await page.wait_for_timeout(2000)
        snapshot = await self.capture_snapshot()

        links = [
            a.get("href") for a in snapshot.soup.select(self.selectors.listing.product_link) if a.get("href")
        ]
        if links:
            self.log.success(f"Found {len(links)} products")
            return snapshot.resolve(links[0])

        card = snapshot.soup.select_one(self.selectors.listing.product_cards)
        if card is not None and (link := card.find("a", href=True)):
            return snapshot.resolve(link["href"])
        return None

    async def get_product_urls(self, max_count: int) -> list[str]:
        await self._require_page().wait_for_timeout(2000)
        return product_urls(await self.capture_snapshot(), max_count, self.selectors.listing)

    async def scroll_to_load_products(self, target_count: int) -> int:
        """Scroll until `target_count` products are loaded or the page stops growing."""
        page = self._require_page()
        self.log.info(f"Scrolling to load {target_count} products...")

        previous_height = 0
        count = 0
        scrolls = 0
        while count < target_count and scrolls < MAX_SCROLLS:
            height = await page.evaluate("() => document.body.scrollHeight")
            await page.evaluate("() => window.scrollTo(0, document.body.scrollHeight)")
            await page.wait_for_timeout(SCROLL_WAIT_MS)

            count = await page.evaluate(_COUNT_PRODUCT_LINKS, self.selectors.listing.product_link)
            self.log.debug(f"Scroll {scrolls + 1}: Found {count} products")

            if height == previous_height:
                self.log.info("Reached end of page or no more products loading")
                break
            previous_height = height
            scrolls += 1

        self.log.success(f"Loaded {count} products after {scrolls} scrolls")
        return count

    async def extract_listing_items(self, max_count: int) -> list[IndexProduct]:
        self.log.info("Extracting product data from index page...")
        return extract_index_products(await self.capture_snapshot(), max_count, self.selectors.listing)

    # --- detail page ---------------------------------------------------------

    async def _lookup_field(self, field_name: str, selector: str) -> str | None:
        self.log.debug(f"Extracting: {field_name}")
        self.log.debug(f"Selector: {selector}")
        value = await self.extract_text(selector)
        self.log.field(field_name, value, value is not None)
        return value

    async def _check_winning(self) -> bool:
        try:
            badge = await self._require_page().query_selector(self.selectors.detail.winning_badge)
        except PlaywrightError:
            self.log.field("is_winning", False, False)
            return False
        self.log.field("is_winning", badge is not None, True)
        return badge is not None

    async def _extract_tags(self) -> list[str]:
        try:
            tags = await self._require_page().eval_on_selector_all(self.selectors.detail.tags, _TAG_TEXTS)
        except PlaywrightError:
            self.log.field("filters", None, False)
            return []
        self.log.field("filters", f"{len(tags)} tags", bool(tags))
        return tags

    async def extract_detail_fields(self) -> RawProductData:
        """Read every product field from the current detail page."""
        snapshot = await self.capture_snapshot()
        if self.log.is_debug_enabled():
            self.log.html("Detail page HTML", snapshot.html)

        raw = RawProductData(source_url=snapshot.url or None, source_id=snapshot.product_id)

        for attr, label, rules in (
            ("title", "title", TITLE_RULES),
            ("description", "description", DESCRIPTION_RULES),
        ):
            value, rule = run_rules(rules, snapshot)
            setattr(raw, attr, value)
            self.log.field(label, value, value is not None)
            if rule:
                self.log.debug(f"{label} matched by '{rule}' rule")

        raw.image_url, raw.additional_images = extract_images(snapshot)
        self.log.field("image", raw.image_url, raw.image_url is not None)
        self.log.field(
            "additional_images", f"{len(raw.additional_images)} images", bool(raw.additional_images)
        )

        prices = extract_prices(snapshot)
        raw.supplier_price, raw.retail_price, raw.profit_margin = prices.cost, prices.selling, prices.profit
        self.log.field("supplier price", prices.cost, prices.cost is not None)
        self.log.field("retail price", prices.selling, prices.selling is not None)
        self.log.field("profit margin", prices.profit, prices.profit is not None)

        raw.found_date, _ = run_rules(FOUND_DATE_RULES, snapshot)
        self.log.field("found_date", raw.found_date, raw.found_date is not None)
        raw.items_sold, _ = run_rules(ITEMS_SOLD_RULES, snapshot)
        self.log.field("items_sold", raw.items_sold, raw.items_sold is not None)

        raw.specifications = extract_specifications(snapshot, self.selectors.detail)
        self.log.field(
            "specifications",
            f"{len(raw.specifications)} items" if raw.specifications else None,
            raw.specifications is not None,
        )

        detail = self.selectors.detail
        raw.rating = await self._lookup_field("rating", detail.rating)
        raw.reviews_count = await self._lookup_field("reviews count", detail.reviews_count)
        raw.category = await self._lookup_field("category", detail.category)
        raw.is_winning = await self._check_winning()
        raw.filters = await self._extract_tags()
        return raw

    # --- results -----------------------------------------------------------

    def _build_result(
        self,
        raw: RawProductData,
        product_url: str | None,
        start: datetime,
        screenshots: list[str],
        errors: list[ErrorRecord],
        report: bool = True,
    ) -> ScrapeResult:
        validation = validate_product(raw)
        if report:
            report_validation(validation, self.log)

        success = validation.required_fields_complete and not errors
        timing = Timing(start_time=start, end_time=datetime.now(UTC))
        return ScrapeResult(
            success=success,
            product=validation.transformed_product if success else None,
            metadata=validation.transformed_metadata if success else None,
            source={"source_type": "scraped", "source_id": product_url} if success else None,
            validation_result=validation,
            raw_data=raw,
            screenshots=[s for s in screenshots if s],
            timing=timing,
            errors=errors,
        )

    async def _error_screenshot(self, screenshots: list[str], name: str) -> None:
        if self.config.screenshot_on_error:
            screenshots.append(await self.screenshot(name))

    async def scrape(self) -> ScrapeResult:
        """Scrape the first product of the listing.

        Extraction problems come back as `success=False`; only a failed browser
        launch or a manual login timeout raise.
        """
        if self.page is None:
            await self.initialize()

        start = datetime.now(UTC)
        screenshots: list[str] = []
        raw = RawProductData()
        stage = "check-session"
        total = 6

        try:
            self.log.divider("TRADELLE SCRAPER")

            self.log.step(1, total, "Checking for existing session")
            await self.restore_session()

            stage = "navigate-listing"
            self.log.step(2, total, "Navigating to products page")
            await self.navigate_to_listing()
            screenshots.append(await self.screenshot("products-page"))

            stage = "check-auth"
            self.log.step(3, total, "Verifying authentication")
            if await self.ensure_authenticated():
                screenshots.append(await self.screenshot("after-login"))

            stage = "select-product"
            self.log.step(4, total, "Selecting product to scrape")
            product_url = await self.select_first_product()
            if not product_url:
                raise ScraperError(
                    "No products found on the page",
                    category="NAVIGATION",
                    suggested_fix="Check the listing selectors and that the account can see product picks",
                )

            stage = "navigate-detail"
            self.log.info(f"Scraping product: {product_url}")
            await self.navigate_to(product_url)
            await self.wait_for_page_load()
            await self.recover_from_error_page()
            screenshots.append(await self.screenshot("product-detail"))

            stage = "extract"
            self.log.step(5, total, "Extracting product data")
            self.log.divider("DATA EXTRACTION")
            raw = await self.extract_detail_fields()

            stage = "validate"
            self.log.step(6, total, "Validating extracted data")
            result = self._build_result(raw, product_url, start, screenshots, [])
        except LoginTimeoutError:
            raise
        except Exception as e:
            self.log.error(f"Scraping failed during {stage}", e)
            if isinstance(e, ScraperError) and e.suggested_fix:
                self.log.warn(f"[{e.category}] Suggested fix: {e.suggested_fix}")
            await self._error_screenshot(screenshots, "error")
            errors = [ErrorRecord(message=str(e), context=f"scrape:{stage}", recoverable=False)]
            return self._build_result(raw, None, start, screenshots, errors)

        if self.config.screenshot_on_success:
            result.screenshots.append(await self.screenshot("extraction-complete"))
            result.screenshots = [s for s in result.screenshots if s]

        self.log.divider("SCRAPE COMPLETE")
        self.log.success(f"Duration: {result.timing.duration_ms / 1000:.2f}s")
        self.log.success(f"Completeness: {result.validation_result.completeness_score}%")
        return result

    async def _scrape_detail(self, product_url: str, context: str, recoverable: bool, report: bool) -> ScrapeResult:
        start = datetime.now(UTC)
        screenshots: list[str] = []
        raw = RawProductData()
        try:
            await self.with_retry(lambda: self.navigate_to(product_url), operation_name="open product page")
            await self.wait_for_page_load()
            await self.recover_from_error_page()
            screenshots.append(await self.screenshot("product-page"))
            raw = await self.extract_detail_fields()
        except Exception as e:
            self.log.error("Failed to scrape product", e)
            await self._error_screenshot(screenshots, "scrape-error")
            errors = [ErrorRecord(message=str(e), context=context, recoverable=recoverable)]
            return self._build_result(raw, product_url, start, screenshots, errors, report)
        return self._build_result(raw, product_url, start, screenshots, [], report)

    async def scrape_product(self, product_url: str) -> ScrapeResult:
        """Scrape one detail page directly, restoring the saved session first."""
        if self.page is None:
            await self.initialize()
        await self.restore_session()
        return await self._scrape_detail(product_url, "scrape_product", recoverable=False, report=True)

    async def scrape_many(self, urls: list[str], delay_s: float = 1.0) -> list[ScrapeResult]:
        """Scrape detail pages one after another, in the given order."""
        results: list[ScrapeResult] = []
        total = len(urls)
        for index, product_url in enumerate(urls, 1):
            self.log.info(f"[{index}/{total}] Scraping: {product_url}")
            result = await self._scrape_detail(product_url, f"scrape_many:{index}", recoverable=True, report=False)
            results.append(result)

            if result.raw_data.title:
                self.log.success(f"[{index}] {result.raw_data.title[:50]}...")
            else:
                self.log.warn(f"[{index}] Failed to extract title")

            if index < total:
                await asyncio.sleep(delay_s)
        return results
