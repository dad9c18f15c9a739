"""CSV and JSON output for scrape runs."""

from __future__ import annotations

import csv
import json
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, Iterable

from .config import DATA_DIR
from .models import IndexProduct, RawProductData, ScrapeResult

PRODUCT_COLUMNS = [
    "title",
    "description",
    "image_url",
    "buy_price",
    "sell_price",
    "profit_margin",
    "rating",
    "reviews_count",
    "is_winning",
    "category",
    "additional_images",
    "source_url",
    "scraped_at",
]

INDEX_COLUMNS = ["title", "image_url", "cost", "selling_price", "product_url", "scraped_at"]

LIST_SEPARATOR = ";"


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return LIST_SEPARATOR.join(str(v) for v in value)
    return str(value)


def product_row(raw: RawProductData, source_url: str, scraped_at: str | None = None) -> dict[str, str]:
    """CSV row for one detail-page scrape."""
    return {
        "title": _cell(raw.title),
        "description": _cell(raw.description),
        "image_url": _cell(raw.image_url),
        "buy_price": _cell(raw.supplier_price),
        "sell_price": _cell(raw.retail_price),
        "profit_margin": _cell(raw.profit_margin),
        "rating": _cell(raw.rating),
        "reviews_count": _cell(raw.reviews_count),
        "is_winning": "Yes" if raw.is_winning else "No",
        "category": _cell(raw.category),
        "additional_images": _cell(raw.additional_images or []),
        "source_url": source_url,
        "scraped_at": scraped_at or utc_now_iso(),
    }


def index_row(product: IndexProduct, scraped_at: str | None = None) -> dict[str, str]:
    """CSV row for one listing card."""
    return {
        "title": product.title,
        "image_url": product.image_url,
        "cost": product.cost,
        "selling_price": product.price,
        "product_url": product.product_url,
        "scraped_at": scraped_at or utc_now_iso(),
    }


def write_csv(path: Path, columns: list[str], rows: Iterable[dict[str, Any]]) -> int:
    """Write rows with every field quoted. Returns the number of data rows."""
    path.parent.mkdir(parents=True, exist_ok=True)
    count = 0
    with path.open("w", encoding="utf-8", newline="") as f:
        writer = csv.writer(f, quoting=csv.QUOTE_ALL, lineterminator="\n")
        writer.writerow(columns)
        for row in rows:
            writer.writerow([_cell(row.get(column)) for column in columns])
            count += 1
    return count


def write_json(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, ensure_ascii=False, indent=2, default=str), encoding="utf-8")


def derive_output_paths(output: str | Path, base_dir: Path | None = None) -> tuple[Path, Path]:
    """Resolve --output into (csv path, sibling json path)."""
    path = Path(output)
    if not path.is_absolute():
        path = (base_dir or Path.cwd()) / path
    if path.suffix.lower() != ".csv":
        path = path.with_name(path.name + ".csv")
    return path, path.with_suffix(".json")


def save_result_json(result: ScrapeResult, data_dir: Path | None = None) -> Path:
    """Write a single scrape result to a timestamped file."""
    data_dir = data_dir or DATA_DIR
    timestamp = datetime.now(UTC).strftime("%Y-%m-%dT%H-%M-%S")
    path = data_dir / f"product-{timestamp}.json"
    write_json(path, result.to_dict())
    return path
