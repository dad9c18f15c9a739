import io
import re
import tempfile
import unittest
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, call, patch

from playwright.async_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError

from productscraper.config import ScraperConfig
from productscraper.errors import BrowserNotInitializedError
from productscraper.log import ScrapeLogger
from productscraper.scrapers.base import BaseScraper, ScraperState, backoff_delay


class DummyScraper(BaseScraper):
    name = "dummy"

    async def scrape(self):
        raise NotImplementedError

    async def is_authenticated(self):
        return True


class FakeElement:
    def __init__(self, text=None, attrs=None):
        self.text = text
        self.attrs = attrs or {}
        self.shots: list[str] = []

    async def text_content(self):
        return self.text

    async def get_attribute(self, name):
        return self.attrs.get(name)

    async def screenshot(self, path):
        self.shots.append(path)


class FakePage:
    def __init__(self, elements=None, fail_screenshots=False):
        self.elements = elements or {}
        self.fail_screenshots = fail_screenshots
        self.shots: list[tuple[str, bool]] = []
        self.closed = False
        self.url = "https://app.tradelle.io/products"
        self.close = AsyncMock()

    async def screenshot(self, path, full_page=False):
        if self.fail_screenshots:
            raise RuntimeError("screenshot failed")
        self.shots.append((path, full_page))

    async def query_selector(self, selector):
        value = self.elements.get(selector)
        if isinstance(value, Exception):
            raise value
        return value

    async def query_selector_all(self, selector):
        value = self.elements.get(selector)
        return [value] if value else []

    async def wait_for_selector(self, selector, timeout=None, state="visible"):
        if selector not in self.elements:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded")
        value = self.elements[selector]
        if isinstance(value, Exception):
            raise value
        return value

    async def content(self):
        return "<html></html>"

    async def title(self):
        return "Tradelle"

    def is_closed(self):
        return self.closed


class BaseScraperTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.scraper = DummyScraper(
            config=ScraperConfig(max_retries=3),
            output_dir=Path(self._tmp.name),
            log=ScrapeLogger(name="test.base", stream=io.StringIO()),
        )

    def tearDown(self):
        self._tmp.cleanup()

    def attach(self, page):
        self.scraper.page = page
        self.scraper.state = ScraperState.INITIALIZED
        return page


class TestBackoff(unittest.TestCase):
    def test_doubles_and_caps(self):
        self.assertEqual([backoff_delay(n) for n in range(1, 7)], [1000, 2000, 4000, 8000, 10000, 10000])


class TestWithRetry(BaseScraperTestCase):
    async def test_succeeds_after_failures(self):
        operation = AsyncMock(side_effect=[RuntimeError("one"), RuntimeError("two"), "ok"])
        with patch("productscraper.scrapers.base.asyncio.sleep", new=AsyncMock()) as sleep:
            self.assertEqual(await self.scraper.with_retry(operation, operation_name="load"), "ok")
        self.assertEqual(operation.await_count, 3)
        self.assertEqual(sleep.await_args_list, [call(1.0), call(2.0)])

    async def test_raises_last_error(self):
        operation = AsyncMock(side_effect=[RuntimeError("one"), RuntimeError("two"), RuntimeError("three")])
        with patch("productscraper.scrapers.base.asyncio.sleep", new=AsyncMock()) as sleep:
            with self.assertRaisesRegex(RuntimeError, "three"):
                await self.scraper.with_retry(operation)
        self.assertEqual(sleep.await_count, 2)

    async def test_zero_retries_still_attempts_once(self):
        operation = AsyncMock(side_effect=ValueError("nope"))
        with patch("productscraper.scrapers.base.asyncio.sleep", new=AsyncMock()) as sleep:
            with self.assertRaises(ValueError):
                await self.scraper.with_retry(operation, max_retries=0)
        self.assertEqual(operation.await_count, 1)
        sleep.assert_not_awaited()


class TestScreenshots(BaseScraperTestCase):
    async def test_no_page_returns_empty(self):
        self.assertEqual(await self.scraper.screenshot("x"), "")
        self.assertEqual(await self.scraper.screenshot_full_page("x"), "")
        self.assertEqual(await self.scraper.screenshot_element("main", "x"), "")

    async def test_names_are_numbered(self):
        element = FakeElement()
        page = self.attach(FakePage(elements={"main": element}))

        first = await self.scraper.screenshot("products-page")
        second = await self.scraper.screenshot_full_page("detail")
        third = await self.scraper.screenshot_element("main", "card")

        ts = r"\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}"
        self.assertRegex(Path(first).name, rf"^01-products-page-{ts}\.png$")
        self.assertRegex(Path(second).name, rf"^02-fullpage-detail-{ts}\.png$")
        self.assertRegex(Path(third).name, rf"^03-element-card-{ts}\.png$")
        self.assertEqual(Path(first).parent, Path(self._tmp.name) / "screenshots")
        self.assertEqual(page.shots, [(first, False), (second, True)])
        self.assertEqual(element.shots, [third])

    async def test_failure_returns_empty(self):
        self.attach(FakePage(fail_screenshots=True))
        self.assertEqual(await self.scraper.screenshot("boom"), "")

    async def test_missing_element(self):
        self.attach(FakePage())
        self.assertEqual(await self.scraper.screenshot_element(".nope", "x"), "")

    async def test_unwritable_directory_returns_empty(self):
        page = self.attach(FakePage())
        blocker = Path(self._tmp.name) / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")
        self.scraper.screenshot_dir = blocker / "screenshots"

        self.assertEqual(await self.scraper.screenshot("x"), "")
        self.assertEqual(await self.scraper.screenshot_full_page("x"), "")
        self.assertEqual(page.shots, [])


class TestInitialize(BaseScraperTestCase):
    def fake_playwright(self, browser):
        driver = MagicMock()
        driver.chromium.launch = AsyncMock(return_value=browser)
        driver.chromium.connect_over_cdp = AsyncMock(return_value=browser)
        driver.stop = AsyncMock()
        starter = MagicMock()
        starter.start = AsyncMock(return_value=driver)
        return driver, starter

    async def test_local_launch_applies_stealth(self):
        page = MagicMock()
        context = MagicMock()
        context.new_page = AsyncMock(return_value=page)
        browser = MagicMock()
        browser.new_context = AsyncMock(return_value=context)
        driver, starter = self.fake_playwright(browser)

        with patch("productscraper.scrapers.base.async_playwright", return_value=starter), \
                patch("productscraper.scrapers.base.Stealth") as stealth:
            stealth.return_value.apply_stealth_async = AsyncMock()
            await self.scraper.initialize()

        self.assertIs(self.scraper.state, ScraperState.INITIALIZED)
        self.assertEqual(driver.chromium.launch.await_args.kwargs["headless"], False)
        driver.chromium.connect_over_cdp.assert_not_awaited()
        stealth.return_value.apply_stealth_async.assert_awaited_once_with(page)
        page.set_default_timeout.assert_called_once_with(30_000)

    async def test_remote_browser_reuses_default_context_and_page(self):
        page = MagicMock()
        context = MagicMock()
        context.pages = [page]
        browser = MagicMock()
        browser.contexts = [context]
        browser.new_context = AsyncMock()
        driver, starter = self.fake_playwright(browser)
        self.scraper.config = ScraperConfig(
            cdp_endpoint="wss://browser.example.com/browser?token=abc", proxy_country="DE"
        )

        with patch("productscraper.scrapers.base.async_playwright", return_value=starter), \
                patch("productscraper.scrapers.base.Stealth") as stealth:
            await self.scraper.initialize()

        endpoint = driver.chromium.connect_over_cdp.await_args.args[0]
        self.assertIn("proxy_country=DE", endpoint)
        self.assertIn("session_ttl=300", endpoint)
        driver.chromium.launch.assert_not_awaited()
        browser.new_context.assert_not_awaited()
        stealth.assert_not_called()
        self.assertIs(self.scraper.context, context)
        self.assertIs(self.scraper.page, page)

    async def test_launch_failure_propagates(self):
        driver, starter = self.fake_playwright(MagicMock())
        driver.chromium.launch.side_effect = RuntimeError("Executable doesn't exist")

        with patch("productscraper.scrapers.base.async_playwright", return_value=starter):
            with self.assertRaisesRegex(RuntimeError, "Executable"):
                await self.scraper.initialize()
        self.assertIs(self.scraper.state, ScraperState.UNINITIALIZED)


class TestLifecycle(BaseScraperTestCase):
    async def test_page_operations_require_initialize(self):
        with self.assertRaises(BrowserNotInitializedError):
            await self.scraper.navigate_to("https://app.tradelle.io")
        with self.assertRaises(BrowserNotInitializedError):
            await self.scraper.extract_text("h1")

    async def test_cleanup_is_idempotent_and_tolerant(self):
        page = self.attach(FakePage())
        context = AsyncMock()
        context.close.side_effect = RuntimeError("already closed")
        browser = AsyncMock()
        self.scraper.context = context
        self.scraper.browser = browser

        await self.scraper.cleanup()
        await self.scraper.cleanup()

        page.close.assert_awaited_once()
        context.close.assert_awaited_once()
        browser.close.assert_awaited_once()
        self.assertIs(self.scraper.state, ScraperState.CLEANED_UP)
        self.assertIsNone(self.scraper.page)
        with self.assertRaises(BrowserNotInitializedError):
            await self.scraper.wait_for_selector("main")

    async def test_navigation_error_is_screenshotted_and_raised(self):
        page = self.attach(FakePage())
        page.goto = AsyncMock(side_effect=RuntimeError("net::ERR_NAME_NOT_RESOLVED"))
        with self.assertRaisesRegex(RuntimeError, "ERR_NAME_NOT_RESOLVED"):
            await self.scraper.navigate_to("https://app.tradelle.io", timeout=999_999)
        self.assertEqual(page.goto.await_args.kwargs["timeout"], 120_000)
        self.assertTrue(re.search(r"01-navigation-error-", page.shots[0][0]))


class TestElementPrimitives(BaseScraperTestCase):
    async def test_wait_for_selector(self):
        element = FakeElement()
        self.attach(FakePage(elements={"main": element}))
        self.assertIs(await self.scraper.wait_for_selector("main"), element)
        self.assertIsNone(await self.scraper.wait_for_selector(".missing", timeout=10))

    async def test_wait_for_bad_selector_returns_none_while_page_open(self):
        page = self.attach(FakePage(elements={"div[": PlaywrightError('Unexpected token "]" while parsing selector')}))
        self.assertIsNone(await self.scraper.wait_for_selector("div["))
        page.closed = True
        with self.assertRaises(PlaywrightError):
            await self.scraper.wait_for_selector("div[")

    async def test_extract_text_and_attribute(self):
        self.attach(
            FakePage(
                elements={
                    "h1": FakeElement(text="  Smart Blender  "),
                    ".empty": FakeElement(text="   "),
                    "img": FakeElement(attrs={"src": "https://a/b.jpg"}),
                }
            )
        )
        self.assertEqual(await self.scraper.extract_text("h1"), "Smart Blender")
        self.assertIsNone(await self.scraper.extract_text(".empty"))
        self.assertIsNone(await self.scraper.extract_text(".missing"))
        self.assertEqual(await self.scraper.extract_attribute("img", "src"), "https://a/b.jpg")
        self.assertEqual(len(await self.scraper.extract_all("img")), 1)
        self.assertEqual(await self.scraper.extract_all(".missing"), [])

    async def test_playwright_errors_swallowed_only_while_page_open(self):
        page = self.attach(FakePage(elements={"h1": PlaywrightError("detached")}))
        self.assertIsNone(await self.scraper.extract_text("h1"))
        page.closed = True
        with self.assertRaises(PlaywrightError):
            await self.scraper.extract_text("h1")

    async def test_url_and_title(self):
        self.assertEqual(self.scraper.current_url, "")
        self.assertEqual(await self.scraper.page_title(), "")
        self.attach(FakePage())
        self.assertEqual(self.scraper.current_url, "https://app.tradelle.io/products")
        self.assertEqual(await self.scraper.page_title(), "Tradelle")
