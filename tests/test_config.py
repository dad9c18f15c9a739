import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch
from urllib.parse import parse_qsl, urlsplit

from productscraper.config import MAX_TIMEOUT_MS, ScraperConfig, clamp_timeout
from productscraper.errors import BrowserNotInitializedError, LoginTimeoutError, ScraperError
from productscraper.selectors import SELECTORS_ENV, SelectorTable, load_selectors, split_selectors


class TestScraperConfig(unittest.TestCase):
    def test_defaults(self):
        config = ScraperConfig()
        self.assertFalse(config.headless)
        self.assertEqual(config.max_retries, 3)
        self.assertEqual(config.timeout, 30_000)
        self.assertEqual(config.viewport, {"width": 1280, "height": 720})

    def test_from_env_then_overrides(self):
        env = {"PRODUCTSCRAPER_HEADLESS": "true", "PRODUCTSCRAPER_TIMEOUT_MS": "45000"}
        with patch.dict(os.environ, env):
            config = ScraperConfig.from_env(slow_mo=0)
            self.assertTrue(config.headless)
            self.assertEqual(config.timeout, 45000)
            self.assertEqual(config.slow_mo, 0)

            self.assertFalse(ScraperConfig.from_env(headless=False).headless)

    def test_bad_env_int_falls_back(self):
        with patch.dict(os.environ, {"PRODUCTSCRAPER_TIMEOUT_MS": "soon"}):
            self.assertEqual(ScraperConfig.from_env().timeout, 30_000)

    def test_clamp_timeout(self):
        self.assertEqual(clamp_timeout(None, 30_000), 30_000)
        self.assertEqual(clamp_timeout(0, 30_000), 30_000)
        self.assertEqual(clamp_timeout(5_000, 30_000), 5_000)
        self.assertEqual(clamp_timeout(10 * MAX_TIMEOUT_MS, 30_000), MAX_TIMEOUT_MS)

    def test_remote_browser_url(self):
        self.assertIsNone(ScraperConfig().remote_browser_url())
        config = ScraperConfig(
            cdp_endpoint="wss://browser.example.com/browser?token=abc", proxy_country="GB", remote_session_ttl=600
        )
        parts = urlsplit(config.remote_browser_url())
        self.assertEqual(parts.netloc, "browser.example.com")
        self.assertEqual(
            dict(parse_qsl(parts.query)), {"token": "abc", "session_ttl": "600", "proxy_country": "GB"}
        )

    def test_remote_and_credentials_from_env(self):
        env = {"SCRAPELESS_API_KEY": "k3y", "TRADELLE_EMAIL": "me@example.com", "TRADELLE_PASSWORD": "hunter2"}
        with patch.dict(os.environ, env, clear=True):
            config = ScraperConfig.from_env()
        self.assertTrue(config.cdp_endpoint.startswith("wss://browser.scrapeless.com/browser?token=k3y"))
        self.assertEqual(config.proxy_country, "US")
        self.assertEqual(config.remote_session_ttl, 300)
        self.assertTrue(config.has_credentials)
        self.assertNotIn("hunter2", repr(config))

        with patch.dict(os.environ, {"PRODUCTSCRAPER_CDP_ENDPOINT": "ws://localhost:9222"}, clear=True):
            config = ScraperConfig.from_env()
        self.assertEqual(config.cdp_endpoint, "ws://localhost:9222")
        self.assertFalse(config.has_credentials)


class TestErrors(unittest.TestCase):
    def test_categories(self):
        err = ScraperError("boom", category="EXTRACTION", recoverable=True)
        self.assertEqual(err.category, "EXTRACTION")
        self.assertTrue(err.recoverable)
        with self.assertRaises(ValueError):
            ScraperError("boom", category="SOMETHING")

    def test_specialized_errors(self):
        self.assertEqual(str(BrowserNotInitializedError()), "Page not initialized")
        err = LoginTimeoutError(300_000)
        self.assertEqual(str(err), "Login timeout after 300s")
        self.assertEqual(err.context, {"timeout_ms": 300_000})
        self.assertIsInstance(err, ScraperError)


class TestSelectors(unittest.TestCase):
    def test_split(self):
        self.assertEqual(split_selectors("nav, aside ,, [class*='x']"), ["nav", "aside", "[class*='x']"])

    def test_overlay_keeps_defaults(self):
        table = SelectorTable.from_dict(
            {
                "auth": {"dashboard_indicator": "nav"},
                "listing": {"submenu_items": ["text=Picks"]},
                "detail": {"no_such_selector": "div"},
            }
        )
        defaults = SelectorTable()
        self.assertEqual(table.auth.dashboard_indicator, "nav")
        self.assertEqual(table.auth.login_complete, defaults.auth.login_complete)
        self.assertEqual(table.listing.submenu_items, ("text=Picks",))
        self.assertEqual(table.detail, defaults.detail)

    def test_load_from_env_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "selectors.json"
            path.write_text(json.dumps({"detail": {"rating": ".score"}}), encoding="utf-8")
            with patch.dict(os.environ, {SELECTORS_ENV: str(path)}):
                self.assertEqual(load_selectors().detail.rating, ".score")

    def test_load_without_env(self):
        with patch.dict(os.environ, {}, clear=True):
            self.assertEqual(load_selectors(), SelectorTable())

    def test_file_must_hold_object(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "selectors.json"
            path.write_text("[]", encoding="utf-8")
            with self.assertRaises(ValueError):
                SelectorTable.from_file(path)
