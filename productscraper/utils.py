"""Shared value parsers for scraped text."""

from __future__ import annotations

import math
import re
from urllib.parse import urljoin

_MULTIPLIERS = {"k": 1_000, "m": 1_000_000}


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_price(value: str | int | float | None) -> float | None:
    """Parse a price into a float.

    Handles formats like:
    - "$12.99"
    - "$1,234.56"
    - "12,99 €"
    - "1.299,00"

    A lone comma is a decimal separator only when one or two digits follow
    it ("12,99"); otherwise it separates thousands ("1,234"). With both
    separators present the last one is the decimal point.
    """
    if value is None:
        return None
    if _is_number(value):
        return float(value) if math.isfinite(value) else None

    num = re.sub(r"[^0-9.,]", "", str(value))
    if not num or not any(ch.isdigit() for ch in num):
        return None

    last_comma = num.rfind(",")
    last_dot = num.rfind(".")

    if last_comma != -1 and last_dot != -1:
        if last_comma > last_dot:
            num = num.replace(".", "").replace(",", ".")
        else:
            num = num.replace(",", "")
    elif last_comma != -1:
        digits_after = len(num) - last_comma - 1
        if num.count(",") == 1 and 1 <= digits_after <= 2:
            num = num.replace(",", ".")
        else:
            num = num.replace(",", "")
    elif num.count(".") > 1:
        num = num.replace(".", "")

    try:
        result = float(num)
    except ValueError:
        return None
    return result if math.isfinite(result) else None


def parse_rating(value: str | int | float | None) -> float | None:
    """Parse "4.5/5", "4.5 stars" or a number into a 0-5 rating."""
    if value is None:
        return None
    if _is_number(value):
        if not math.isfinite(value):
            return None
        return min(5.0, max(0.0, float(value)))

    if not (match := re.search(r"(\d+\.?\d*)", str(value))):
        return None
    return min(5.0, max(0.0, float(match.group(1))))


def parse_integer(value: str | int | float | None) -> int | None:
    """Parse counts like "1,234", "1.2K" or "2M"."""
    if value is None:
        return None
    if _is_number(value):
        return math.floor(value) if math.isfinite(value) else None

    text = str(value).replace(",", "").strip()
    if match := re.fullmatch(r"(\d+\.?\d*)\s*([kmKM])?", text):
        num = float(match.group(1))
        if suffix := match.group(2):
            num *= _MULTIPLIERS[suffix.lower()]
        # 4.35 * 1000 lands just below 4350 in binary floating point.
        return math.floor(round(num, 6))

    # Leading integer, e.g. "1234 reviews".
    if match := re.match(r"[+-]?\d+", text):
        return int(match.group(0))
    return None


def normalize_url(url: str | None, base_url: str | None = None) -> str | None:
    """Return an absolute http(s) URL, or None if it cannot be made absolute."""
    if not url:
        return None
    url = url.strip()
    if url.startswith(("http://", "https://")):
        return url
    if url.startswith("//"):
        return f"https:{url}"
    if base_url:
        try:
            resolved = urljoin(base_url, url)
        except ValueError:
            return None
        return resolved if resolved.startswith(("http://", "https://")) else None
    return None
