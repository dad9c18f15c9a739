"""Exceptions raised by the scraper."""

from __future__ import annotations

from typing import Any


class ScraperError(Exception):
    """Scraper failure with a category and a hint for fixing it."""

    CATEGORIES = {"NETWORK", "AUTH", "NAVIGATION", "EXTRACTION", "VALIDATION"}

    def __init__(
        self,
        message: str,
        category: str = "NAVIGATION",
        recoverable: bool = False,
        suggested_fix: str = "",
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        if category not in self.CATEGORIES:
            raise ValueError(f"Unknown error category: {category!r}")
        self.category = category
        self.recoverable = recoverable
        self.suggested_fix = suggested_fix
        self.context = context or {}


class BrowserNotInitializedError(ScraperError):
    """A page operation was attempted outside the initialized state."""

    def __init__(self, what: str = "Page"):
        super().__init__(
            f"{what} not initialized",
            category="NAVIGATION",
            suggested_fix="Call initialize() before using the scraper",
        )


class LoginTimeoutError(ScraperError):
    """Manual login was not detected before the deadline."""

    def __init__(self, timeout_ms: int):
        super().__init__(
            f"Login timeout after {timeout_ms // 1000}s",
            category="AUTH",
            suggested_fix="Set TRADELLE_EMAIL and TRADELLE_PASSWORD, or run with a visible browser and log in by hand",
            context={"timeout_ms": timeout_ms},
        )
        self.timeout_ms = timeout_ms
