"""Selector table for the Tradelle app.

The target site's markup changes often, so selectors live here as data.
A JSON file named by PRODUCTSCRAPER_SELECTORS can override any entry:

    {"auth": {"dashboard_indicator": "nav, aside"},
     "detail": {"winning_badge": "[class*='winning']"}}
"""

from __future__ import annotations

import dataclasses
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

SELECTORS_ENV = "PRODUCTSCRAPER_SELECTORS"


def split_selectors(selector: str) -> list[str]:
    """Split a comma-joined selector list into its alternatives."""
    return [part.strip() for part in selector.split(",") if part.strip()]


@dataclass(frozen=True)
class AuthSelectors:
    email_input: str = (
        'input[type="email"], input[name="email"], input[id="email"], '
        'input[placeholder*="email" i], #identifier-field, input[name="identifier"]'
    )
    password_input: str = 'input[type="password"], input[name="password"], input[id="password"]'
    # Email-first flows show the password field only after this button.
    continue_button: str = 'button[type="submit"], button:has-text("Continue"), button:has-text("Next")'
    login_button: str = (
        'button[type="submit"], button:has-text("Sign in"), button:has-text("Log in"), button:has-text("Continue")'
    )
    dashboard_indicator: str = (
        'nav, aside, [class*="sidebar"], [class*="nav"], [class*="menu"], '
        'header a[href*="product"], button[class*="avatar"], img[class*="avatar"], '
        '[class*="user"], [class*="profile"]'
    )
    # Narrower set used while waiting for a manual login to finish.
    login_complete: str = 'nav, aside, [class*="sidebar"]'


@dataclass(frozen=True)
class ListingSelectors:
    product_cards: str = '.product-card, [data-testid="product-card"], article'
    product_link: str = 'a[href*="/products/"], a[href*="/product/"]'
    menu_root: str = "text=Product Research"
    submenu_items: tuple[str, ...] = (
        "text=Product Picks",
        "text=Hand-Picked",
        "text=Winning Products",
        "text=All Products",
        'a[href*="product"]',
        'a[href*="picks"]',
    )
    loading_indicators: tuple[str, ...] = (
        "text=Loading user data",
        "text=Loading...",
        "text=Loading",
        '[class*="loading"]',
        '[class*="spinner"]',
        ".skeleton",
        '[data-loading="true"]',
    )


@dataclass(frozen=True)
class DetailSelectors:
    rating: str = '.rating, [data-testid="rating"], .stars, [class*="rating"]'
    reviews_count: str = '.reviews-count, [data-testid="reviews-count"], [class*="review"]'
    specifications: str = '.specifications, .specs, [data-testid="specifications"], table'
    specification_rows: str = "tr, .spec-row"
    specification_cells: str = "td, th, .label, .value"
    category: str = '.category, .breadcrumb, [data-testid="category"]'
    winning_badge: str = ':has-text("Winning"), [class*="winning"], .badge'
    tags: str = '.tag, .badge, [data-testid="tag"], [class*="chip"]'


@dataclass(frozen=True)
class SelectorTable:
    auth: AuthSelectors = field(default_factory=AuthSelectors)
    listing: ListingSelectors = field(default_factory=ListingSelectors)
    detail: DetailSelectors = field(default_factory=DetailSelectors)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SelectorTable:
        """Overlay a partial mapping onto the defaults. Unknown keys are ignored."""
        groups = {}
        for group_field in dataclasses.fields(cls):
            group_cls = group_field.default_factory  # type: ignore[misc]
            overrides = data.get(group_field.name) or {}
            known = {f.name: f for f in dataclasses.fields(group_cls)}
            values = {}
            for key, value in overrides.items():
                if key not in known:
                    logger.warning("Ignoring unknown selector %s.%s", group_field.name, key)
                    continue
                values[key] = tuple(value) if isinstance(value, list) else value
            groups[group_field.name] = group_cls(**values)
        return cls(**groups)

    @classmethod
    def from_file(cls, path: str | Path) -> SelectorTable:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"Selector file {path} must contain a JSON object")
        return cls.from_dict(data)


def load_selectors() -> SelectorTable:
    """Default table, overlaid with the file named by PRODUCTSCRAPER_SELECTORS if set."""
    path = os.environ.get(SELECTORS_ENV)
    if not path:
        return SelectorTable()
    logger.info("Loading selector overrides from %s", path)
    return SelectorTable.from_file(path)
