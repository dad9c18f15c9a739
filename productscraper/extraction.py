"""Heuristic field extraction from a captured page.

The browser hands over one snapshot per page (HTML, URL, rendered image
sizes); everything here runs on that snapshot with BeautifulSoup, so each
rule can be exercised against plain HTML strings.

Rules are tried in order and the first one that returns a value wins.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import cached_property
from typing import Callable, Generic, TypeVar
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Tag

from .models import IndexProduct
from .selectors import DetailSelectors, ListingSelectors

T = TypeVar("T")

TITLE_CHROME = ("Hand-Picked", "Product Research", "Product Picks")
DESCRIPTION_BOILERPLATE = (
    "Added to Tradelle",
    "Explore winning products",
    "Only pay once",
    "verified by real-time",
)
IMAGE_SKIP_MARKERS = ("avatar", "logo", "icon")
MIN_GALLERY_WIDTH = 150

CURRENCY_AMOUNT_RE = re.compile(r"\$\d+\.?\d*")
CARD_PRICE_RE = re.compile(r"\$[\d,]+\.?\d*")
PRODUCT_ID_RE = re.compile(r"products/(\d+)")
PRODUCT_PATH_RE = re.compile(r"/products/(\d+)")
FOUND_DATE_RE = re.compile(r"Added to Tradelle:\s*(\d{1,2}/\d{1,2}/\d{4})")
ITEMS_SOLD_RE = re.compile(r"([\d][\d,.]*\s*[kKmM]?)\+?\s+(?:items?\s+|units?\s+)?sold", re.I)


@dataclass
class ImageCandidate:
    """An <img> as rendered by the browser."""

    src: str
    natural_width: int = 0
    width: int = 0


@dataclass
class PageSnapshot:
    """Rendered page state captured in a single evaluation."""

    url: str
    html: str
    images: list[ImageCandidate] = field(default_factory=list)

    @classmethod
    def from_html(cls, html: str, url: str = "", images: list[ImageCandidate] | None = None) -> PageSnapshot:
        """Build a snapshot from static HTML, reading image widths from attributes."""
        snapshot = cls(url=url, html=html)
        if images is None:
            images = []
            for img in snapshot.main.find_all("img"):
                src = img.get("src")
                src = snapshot.resolve(src) if src else img.get("data-src") or ""
                try:
                    width = int(img.get("width") or 0)
                except ValueError:
                    width = 0
                images.append(ImageCandidate(src=src, natural_width=width, width=width))
        snapshot.images = images
        return snapshot

    @cached_property
    def soup(self) -> BeautifulSoup:
        return BeautifulSoup(self.html, "lxml")

    @property
    def main(self) -> Tag:
        return self.soup.find("main") or self.soup.body or self.soup

    @cached_property
    def text(self) -> str:
        return self.main.get_text()

    def resolve(self, href: str) -> str:
        """Make a link from this page absolute."""
        return urljoin(self.url, href)

    @property
    def product_id(self) -> str | None:
        if m := PRODUCT_ID_RE.search(urlparse(self.url).path):
            return m.group(1)
        return None


@dataclass(frozen=True)
class Rule(Generic[T]):
    name: str
    fn: Callable[[PageSnapshot], T | None]

    def __call__(self, snapshot: PageSnapshot) -> T | None:
        return self.fn(snapshot)


def run_rules(rules: list[Rule[T]], snapshot: PageSnapshot) -> tuple[T | None, str | None]:
    """Return (value, rule name) for the first rule yielding a value."""
    for rule in rules:
        value = rule(snapshot)
        if value:
            return value, rule.name
    return None, None


def _clean(el: Tag) -> str:
    return el.get_text().strip()


# --- title -----------------------------------------------------------------


def title_from_headings(snapshot: PageSnapshot) -> str | None:
    for heading in snapshot.main.select("h1, h2"):
        text = _clean(heading)
        if len(text) > 10 and not any(chrome in text for chrome in TITLE_CHROME):
            return text
    return None


def title_from_class_hints(snapshot: PageSnapshot) -> str | None:
    for el in snapshot.main.select('[class*="title"], [class*="heading"], [class*="name"]'):
        text = _clean(el)
        if 10 < len(text) < 200:
            return text
    return None


TITLE_RULES: list[Rule[str]] = [
    Rule("heading", title_from_headings),
    Rule("class-hint", title_from_class_hints),
]


# --- description -----------------------------------------------------------


def description_from_paragraphs(snapshot: PageSnapshot) -> str | None:
    for p in snapshot.main.find_all("p"):
        text = _clean(p)
        if not 50 < len(text) < 2000:
            continue
        if text.startswith("Go to") or any(phrase in text for phrase in DESCRIPTION_BOILERPLATE):
            continue
        return text
    return None


def description_near_show_more(snapshot: PageSnapshot) -> str | None:
    for toggle in snapshot.soup.find_all(["button", "span", "a"]):
        if _clean(toggle) != "Show more" or toggle.parent is None:
            continue
        text = toggle.parent.get_text().replace("Show more", "", 1).replace("Show less", "", 1).strip()
        if len(text) > 50:
            return text
    return None


DESCRIPTION_RULES: list[Rule[str]] = [
    Rule("paragraph", description_from_paragraphs),
    Rule("show-more", description_near_show_more),
]


# --- prices ----------------------------------------------------------------


@dataclass
class PriceFields:
    cost: str | None = None
    selling: str | None = None
    profit: str | None = None


def labeled_price(snapshot: PageSnapshot, label: str) -> str | None:
    """Amount following `label` inside the first container that mentions it."""
    pattern = re.compile(re.escape(label) + r"[^$]*(\$[\d,]+\.?\d*)", re.I)
    for container in snapshot.main.find_all(["div", "span", "p"]):
        text = container.get_text()
        if label not in text:
            continue
        if m := pattern.search(text):
            return m.group(1)
    return None


def currency_amounts(snapshot: PageSnapshot) -> list[str]:
    """Distinct dollar amounts in page order."""
    seen: list[str] = []
    for amount in CURRENCY_AMOUNT_RE.findall(snapshot.text):
        if amount not in seen:
            seen.append(amount)
    return seen


def extract_prices(snapshot: PageSnapshot) -> PriceFields:
    """Labeled containers first; positional page-wide amounts fill what is still missing."""
    prices = PriceFields(
        cost=labeled_price(snapshot, "Product Cost"),
        selling=labeled_price(snapshot, "Selling Price"),
        profit=labeled_price(snapshot, "Profit per Sale"),
    )
    if prices.cost and prices.selling:
        return prices

    amounts = currency_amounts(snapshot)
    if len(amounts) >= 2:
        prices.cost = prices.cost or amounts[0]
        prices.selling = prices.selling or amounts[1]
        if not prices.profit and len(amounts) >= 3:
            prices.profit = amounts[2]
    return prices


# --- images ----------------------------------------------------------------


def _image_priority(src: str, width: int, product_id: str | None) -> int | None:
    """Lower is better; None means not a product image."""
    if product_id and f"/products/{product_id}" in src:
        return 1
    if "cloudfront.net" in src:
        return 2
    if "alicdn.com" in src or "aliexpress" in src:
        return 3
    if width > MIN_GALLERY_WIDTH:
        return 4
    return None


def extract_images(snapshot: PageSnapshot) -> tuple[str | None, list[str]]:
    """Return (main image, additional images) for the current product."""
    product_id = snapshot.product_id
    main_image: str | None = None
    collected: list[str] = []

    for img in snapshot.images:
        src = img.src or ""
        if not src.startswith("http"):
            continue
        if any(marker in src for marker in IMAGE_SKIP_MARKERS):
            continue

        priority = _image_priority(src, max(img.natural_width, img.width), product_id)
        if priority is None:
            continue
        # Only product-id and Tradelle CDN images may become the main image.
        if priority <= 2 and main_image is None:
            main_image = src
        if src not in collected:
            collected.append(src)

    if main_image is None and collected:
        main_image = collected[0]

    additional = []
    for src in collected:
        m = PRODUCT_PATH_RE.search(src)
        if m and product_id and m.group(1) != product_id:
            continue
        additional.append(src)

    return main_image, additional


# --- text patterns ---------------------------------------------------------


def found_date_from_text(snapshot: PageSnapshot) -> str | None:
    if m := FOUND_DATE_RE.search(snapshot.text):
        return m.group(1)
    return None


def items_sold_from_text(snapshot: PageSnapshot) -> str | None:
    if m := ITEMS_SOLD_RE.search(snapshot.text):
        return m.group(1).strip()
    return None


FOUND_DATE_RULES: list[Rule[str]] = [Rule("added-to-tradelle", found_date_from_text)]
ITEMS_SOLD_RULES: list[Rule[str]] = [Rule("sold-count", items_sold_from_text)]


def extract_specifications(snapshot: PageSnapshot, selectors: DetailSelectors | None = None) -> dict[str, str] | None:
    """Key/value pairs from the first specifications table, or None."""
    selectors = selectors or DetailSelectors()
    table = snapshot.soup.select_one(selectors.specifications)
    if table is None:
        return None

    specs: dict[str, str] = {}
    for row in table.select(selectors.specification_rows):
        cells = row.select(selectors.specification_cells)
        if len(cells) < 2:
            continue
        key, value = _clean(cells[0]), _clean(cells[1])
        if key and value:
            specs[key] = value
    return specs or None


# --- listing page ----------------------------------------------------------


def product_urls(snapshot: PageSnapshot, max_count: int, selectors: ListingSelectors | None = None) -> list[str]:
    """Unique detail-page URLs in listing order."""
    selectors = selectors or ListingSelectors()
    urls: list[str] = []
    for link in snapshot.soup.select(selectors.product_link):
        href = snapshot.resolve(link.get("href") or "")
        if PRODUCT_PATH_RE.search(href) and href not in urls:
            urls.append(href)
            if len(urls) >= max_count:
                break
    return urls


def _find_card(link: Tag) -> Tag | None:
    """Climb from a product link to the container that also holds its prices."""
    card = link.find_parent("div")
    attempts = 0
    while card is not None and attempts < 5:
        if "$" in card.get_text():
            break
        parent = card.parent
        card = parent if parent is not None and parent.name != "[document]" else None
        attempts += 1
    return card


def _card_title(card: Tag) -> str:
    for el in card.select("h2, h3, h4, p, span, div"):
        text = _clean(el)
        if not 10 < len(text) < 200 or text.startswith("$"):
            continue
        if any(word in text for word in ("Product Cost", "Selling Price", "Profit", "Added to")):
            continue
        children = el.find_all(recursive=False)
        if not children or all(_clean(child) != text for child in children):
            return text
    return ""


def clean_card_title(title: str) -> str:
    """Strip price and button text that leaks into card titles."""
    cost_index = title.find("Cost")
    if cost_index > 0:
        title = title[:cost_index]
    title = re.sub(r"^Loading\.{0,3}", "", title, flags=re.I)
    title = re.sub(r"Price\$[\d,.]+", "", title)
    title = re.sub(r"Show\s*details", "", title, flags=re.I)
    title = re.sub(r"\$[\d,.]+", "", title)
    return title.strip()


def extract_index_products(
    snapshot: PageSnapshot, max_count: int, selectors: ListingSelectors | None = None
) -> list[IndexProduct]:
    """Read title, image and prices straight from listing cards."""
    selectors = selectors or ListingSelectors()
    results: list[IndexProduct] = []
    seen: set[str] = set()

    for link in snapshot.soup.select(selectors.product_link):
        if len(results) >= max_count:
            break

        href = snapshot.resolve(link.get("href") or "")
        if not PRODUCT_PATH_RE.search(href) or href in seen:
            continue
        seen.add(href)

        card = _find_card(link)
        if card is None:
            continue

        image_url = ""
        if img := card.find("img"):
            src = img.get("src")
            image_url = snapshot.resolve(src) if src else img.get("data-src") or ""

        title = clean_card_title(_card_title(card))
        prices = CARD_PRICE_RE.findall(card.get_text())

        if title or image_url:
            results.append(
                IndexProduct(
                    title=title,
                    image_url=image_url,
                    cost=prices[0] if prices else "",
                    price=prices[1] if len(prices) > 1 else "",
                    product_url=href,
                )
            )

    return results
