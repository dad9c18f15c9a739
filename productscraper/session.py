"""Persistent browser session (cookies + localStorage) for one domain."""

from __future__ import annotations

import json
import time
from datetime import datetime, timedelta, UTC
from pathlib import Path
from typing import Any

from playwright.async_api import BrowserContext, Page

from .config import SESSION_DIR_NAME
from .errors import LoginTimeoutError
from .log import ScrapeLogger, logger as default_logger
from .models import CookieRecord, SessionData
from .selectors import split_selectors

SESSION_VERSION = "1.0"
DEFAULT_TTL_DAYS = 7
LOGIN_POLL_INTERVAL_MS = 2000
LOGIN_TIMEOUT_MS = 300_000
CONTENT_LENGTH_THRESHOLD = 500

_READ_LOCAL_STORAGE = """() => {
    const storage = {};
    for (let i = 0; i < window.localStorage.length; i++) {
        const key = window.localStorage.key(i);
        if (key) storage[key] = window.localStorage.getItem(key) || '';
    }
    return storage;
}"""

_WRITE_LOCAL_STORAGE = """(storage) => {
    for (const [key, value] of Object.entries(storage)) {
        window.localStorage.setItem(key, value);
    }
}"""


def format_timestamp(value: datetime) -> str:
    """ISO-8601 UTC with milliseconds and a trailing Z."""
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class SessionManager:
    """Save and restore authentication state so manual login is needed only once per TTL."""

    def __init__(
        self,
        domain: str = "tradelle.io",
        ttl_days: int = DEFAULT_TTL_DAYS,
        session_dir: Path | None = None,
        log: ScrapeLogger | None = None,
    ):
        self.domain = domain
        self.ttl_days = ttl_days
        self.session_dir = session_dir or Path.cwd() / SESSION_DIR_NAME
        self.session_file = self.session_dir / f"{domain.replace('.', '-')}-session.json"
        self.log = log or default_logger

    def _read(self) -> SessionData | None:
        """Parse the session file; None when missing or malformed."""
        if not self.session_file.exists():
            return None
        try:
            data = json.loads(self.session_file.read_text(encoding="utf-8"))
            session = SessionData.from_dict(data)
            parse_timestamp(session.expires_at)
        except (OSError, ValueError, KeyError, TypeError) as e:
            self.log.debug(f"Invalid session file {self.session_file}: {e}")
            return None
        return session

    async def has_valid_session(self) -> bool:
        session = self._read()
        if session is None:
            self.log.debug("No usable session file found")
            return False

        expires = parse_timestamp(session.expires_at)
        now = datetime.now(UTC)
        if now >= expires:
            self.log.debug("Session has expired")
            return False

        days_remaining = (expires - now).days
        self.log.success(f"Valid session found ({days_remaining} days remaining)")
        return True

    async def save_session(self, context: BrowserContext) -> None:
        """Write cookies and localStorage of the first open page. Overwrites any prior file."""
        self.log.info("Saving browser session...")
        self.log.start_timer("save-session")
        try:
            self.session_dir.mkdir(parents=True, exist_ok=True)

            cookies = [CookieRecord.from_dict(c) for c in await context.cookies()]
            self.log.debug(f"Retrieved {len(cookies)} cookies")

            local_storage: dict[str, str] = {}
            if context.pages:
                try:
                    local_storage = await context.pages[0].evaluate(_READ_LOCAL_STORAGE)
                    self.log.debug(f"Retrieved {len(local_storage)} localStorage items")
                except Exception as e:
                    self.log.warn(f"Could not retrieve localStorage: {e}")

            now = datetime.now(UTC)
            session = SessionData(
                version=SESSION_VERSION,
                domain=self.domain,
                created_at=format_timestamp(now),
                expires_at=format_timestamp(now + timedelta(days=self.ttl_days)),
                cookies=cookies,
                local_storage=local_storage,
            )
            self.session_file.write_text(json.dumps(session.to_dict(), indent=2), encoding="utf-8")
        except Exception as e:
            self.log.error("Failed to save session", e)
            raise

        self.log.end_timer("save-session")
        self.log.success(f"Session saved to {self.session_file}")

    async def load_session(self, context: BrowserContext) -> bool:
        """Inject saved cookies (and localStorage when a page is open). Never raises."""
        self.log.info("Loading saved session...")
        self.log.start_timer("load-session")
        session = self._read()
        if session is None:
            self.log.warn("No valid session data to load")
            self.log.end_timer("load-session")
            return False

        try:
            if session.cookies:
                await context.add_cookies([c.to_dict() for c in session.cookies])
                self.log.debug(f"Loaded {len(session.cookies)} cookies")
        except Exception as e:
            self.log.error("Failed to load session", e)
            self.log.end_timer("load-session")
            return False

        if session.local_storage and context.pages:
            try:
                await context.pages[0].evaluate(_WRITE_LOCAL_STORAGE, session.local_storage)
                self.log.debug(f"Loaded {len(session.local_storage)} localStorage items")
            except Exception as e:
                self.log.warn(f"Could not restore localStorage (page may not be loaded yet): {e}")

        self.log.end_timer("load-session")
        self.log.success("Session loaded successfully")
        return True

    async def clear_session(self) -> None:
        if self.session_file.exists():
            self.session_file.unlink()
            self.log.success("Session cleared")
        else:
            self.log.debug("No session file to clear")

    async def pause_for_manual_login(
        self,
        page: Page,
        auth_indicator_selector: str = '[data-testid="dashboard"], .user-menu, [class*="avatar"]',
        timeout_ms: int = LOGIN_TIMEOUT_MS,
    ) -> None:
        """Block until the user has logged in by hand, or raise LoginTimeoutError.

        Any one of three signals ends the wait: the URL leaves /login, one of the
        indicator selectors resolves, or a non-login page shows substantial text.
        """
        self.log.divider("MANUAL LOGIN REQUIRED")
        self.log.info("Please log in to the website in the browser window.")
        self.log.info("The script will automatically continue once logged in.")
        self.log.divider()

        selectors = split_selectors(auth_indicator_selector)
        initial_url = page.url
        start = time.monotonic()

        while (time.monotonic() - start) * 1000 < timeout_ms:
            current_url = page.url
            if "/login" in initial_url and "/login" not in current_url:
                self.log.success(f"Login detected! URL changed to: {current_url}")
                await page.wait_for_timeout(3000)
                return

            for selector in selectors:
                try:
                    element = await page.query_selector(selector)
                except Exception:
                    continue
                if element:
                    self.log.success(f"Login detected! Found: {selector}")
                    await page.wait_for_timeout(2000)
                    return

            if "/login" not in current_url:
                length = await page.evaluate("() => document.body ? document.body.innerText.length : 0")
                if length > CONTENT_LENGTH_THRESHOLD:
                    self.log.success(f"Login detected! Page has content ({length} chars)")
                    await page.wait_for_timeout(2000)
                    return

            self.log.debug(f"Waiting for login... ({int(time.monotonic() - start)}s elapsed)")
            await page.wait_for_timeout(LOGIN_POLL_INTERVAL_MS)

        self.log.error("Login timeout - please try again")
        raise LoginTimeoutError(timeout_ms)

    async def get_session_info(self) -> dict[str, Any]:
        if not self.session_file.exists():
            return {"exists": False, "valid": False}

        session = self._read()
        if session is None:
            return {"exists": True, "valid": False}

        expires = parse_timestamp(session.expires_at)
        now = datetime.now(UTC)
        return {
            "exists": True,
            "valid": now < expires,
            "createdAt": session.created_at,
            "expiresAt": session.expires_at,
            "daysRemaining": max(0, (expires - now).days),
            "cookieCount": len(session.cookies),
        }


def create_tradelle_session_manager(session_dir: Path | None = None) -> SessionManager:
    return SessionManager("tradelle.io", DEFAULT_TTL_DAYS, session_dir=session_dir)
