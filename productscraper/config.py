"""Run configuration and filesystem defaults."""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

PROJECT_ROOT = Path(__file__).parent.parent
OUTPUT_DIR = PROJECT_ROOT / "output"
DATA_DIR = OUTPUT_DIR / "data"
SESSION_DIR_NAME = ".playwright-session"

# Upper bound for any per-call timeout override (slow listing pages).
MAX_TIMEOUT_MS = 120_000

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)

SCRAPELESS_ENDPOINT = "wss://browser.scrapeless.com/browser"
DEFAULT_PROXY_COUNTRY = "US"
DEFAULT_REMOTE_SESSION_TTL_S = 300


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_cdp_endpoint() -> str | None:
    """Explicit endpoint first, else a Scrapeless URL when its API key is set."""
    endpoint = os.environ.get("PRODUCTSCRAPER_CDP_ENDPOINT")
    if endpoint:
        return endpoint
    api_key = os.environ.get("SCRAPELESS_API_KEY")
    if api_key:
        return f"{SCRAPELESS_ENDPOINT}?{urlencode({'token': api_key})}"
    return None


@dataclass(frozen=True)
class ScraperConfig:
    """Immutable scraper run configuration."""

    headless: bool = False
    slow_mo: int = 100
    screenshot_on_error: bool = True
    screenshot_on_success: bool = True
    max_retries: int = 3
    timeout: int = 30_000
    viewport_width: int = 1280
    viewport_height: int = 720
    executable_path: str | None = None

    # Remote browser reached over CDP instead of a local launch.
    cdp_endpoint: str | None = None
    proxy_country: str = DEFAULT_PROXY_COUNTRY
    remote_session_ttl: int = DEFAULT_REMOTE_SESSION_TTL_S

    # Site credentials for unattended login.
    login_email: str | None = None
    login_password: str | None = field(default=None, repr=False)

    @property
    def viewport(self) -> dict[str, int]:
        return {"width": self.viewport_width, "height": self.viewport_height}

    @property
    def has_credentials(self) -> bool:
        return bool(self.login_email and self.login_password)

    def remote_browser_url(self) -> str | None:
        """CDP endpoint with the session TTL and proxy country query options applied."""
        if not self.cdp_endpoint:
            return None
        parts = urlsplit(self.cdp_endpoint)
        query = dict(parse_qsl(parts.query))
        query["session_ttl"] = str(self.remote_session_ttl)
        query["proxy_country"] = self.proxy_country
        return urlunsplit(parts._replace(query=urlencode(query)))

    def replace(self, **changes) -> ScraperConfig:
        return dataclasses.replace(self, **changes)

    @classmethod
    def from_env(cls, **overrides) -> ScraperConfig:
        """Defaults, then PRODUCTSCRAPER_* (and site credential) environment variables, then overrides."""
        config = cls(
            headless=_env_bool("PRODUCTSCRAPER_HEADLESS", cls.headless),
            timeout=_env_int("PRODUCTSCRAPER_TIMEOUT_MS", cls.timeout),
            executable_path=os.environ.get("PRODUCTSCRAPER_CHROME_PATH") or None,
            cdp_endpoint=_env_cdp_endpoint(),
            proxy_country=os.environ.get("PRODUCTSCRAPER_PROXY_COUNTRY") or cls.proxy_country,
            remote_session_ttl=_env_int("PRODUCTSCRAPER_REMOTE_SESSION_TTL", cls.remote_session_ttl),
            login_email=os.environ.get("TRADELLE_EMAIL") or None,
            login_password=os.environ.get("TRADELLE_PASSWORD") or None,
        )
        return config.replace(**overrides) if overrides else config


def clamp_timeout(timeout: int | None, default: int) -> int:
    """Resolve a per-call timeout, capped at MAX_TIMEOUT_MS."""
    value = timeout if timeout and timeout > 0 else default
    return min(value, MAX_TIMEOUT_MS)
