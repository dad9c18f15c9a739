"""Validation and normalization of extracted product data.

Raw extraction output is transformed into the canonical product/metadata
shapes, checked against pydantic schemas, and scored for completeness.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, ValidationError

from .log import ScrapeLogger, logger as default_logger
from .models import InvalidField, RawProductData, ValidationResult
from .utils import normalize_url, parse_integer, parse_price, parse_rating

REQUIRED_FIELDS = ("title", "image", "buy_price", "sell_price")

FIELD_WEIGHTS = {
    # Required fields (60 total)
    "title": 15,
    "image": 15,
    "buy_price": 15,
    "sell_price": 15,
    # Important fields (25 total)
    "description": 8,
    "profit_per_order": 7,
    "category_id": 5,
    "additional_images": 5,
    # Optional fields (15 total)
    "specifications": 4,
    "rating": 3,
    "reviews_count": 3,
    "trend_data": 3,
    "supplier_id": 2,
}

# Schema error types that mean "value absent" rather than "value malformed".
MISSING_ERROR_TYPES = {"missing", "string_too_short", "too_short", "greater_than"}

ERROR_MESSAGES = {
    ("title", "string_too_short"): "Title is required",
    ("image", "url_parsing"): "Image must be a valid URL",
    ("image", "url_scheme"): "Image must be a valid URL",
    ("buy_price", "greater_than"): "Buy price must be positive",
    ("sell_price", "greater_than"): "Sell price must be positive",
}


class ProductSchema(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: UUID | None = None
    title: str = Field(min_length=1, max_length=500)
    image: HttpUrl
    description: str | None
    category_id: UUID | None
    buy_price: float = Field(gt=0)
    sell_price: float = Field(gt=0)
    profit_per_order: float
    additional_images: list[HttpUrl] = Field(default_factory=list)
    specifications: dict[str, Any] | None
    rating: float | None = Field(ge=0, le=5)
    reviews_count: int = Field(default=0, ge=0)
    trend_data: list[float] = Field(default_factory=list)
    supplier_id: UUID | None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class MetadataSchema(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: UUID | None = None
    product_id: UUID | None = None
    is_winning: bool = False
    is_locked: bool = False
    unlock_price: float | None
    profit_margin: float | None
    pot_revenue: float | None
    revenue_growth_rate: float | None
    items_sold: int | None
    avg_unit_price: float | None
    revenue_trend: list[float] = Field(default_factory=list)
    found_date: str | None
    detailed_analysis: str | None
    filters: list[str] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None


def transform_to_product(raw: RawProductData) -> dict[str, Any]:
    """Build the canonical product record from raw extraction output."""
    buy_price = parse_price(raw.supplier_price)
    sell_price = parse_price(raw.retail_price)
    profit_per_order = (
        round(sell_price - buy_price, 2) if buy_price is not None and sell_price is not None else 0
    )

    additional_images = [
        url for url in (normalize_url(u) for u in raw.additional_images or []) if url is not None
    ]

    return {
        "title": (raw.title or "").strip(),
        "image": normalize_url(raw.image_url) or "",
        "description": (raw.description or "").strip() or None,
        "category_id": None,
        "buy_price": buy_price or 0,
        "sell_price": sell_price or 0,
        "profit_per_order": profit_per_order,
        "additional_images": additional_images,
        "specifications": dict(raw.specifications) if raw.specifications else None,
        "rating": parse_rating(raw.rating),
        "reviews_count": parse_integer(raw.reviews_count) or 0,
        "trend_data": list(raw.trend_data or []),
        "supplier_id": None,
    }


def transform_to_metadata(raw: RawProductData) -> dict[str, Any]:
    """Build the metadata record; every field is optional so this never fails."""
    return {
        "is_winning": bool(raw.is_winning),
        "is_locked": False,
        "unlock_price": None,
        "profit_margin": parse_price(raw.profit_margin),
        "pot_revenue": None,
        "revenue_growth_rate": None,
        "items_sold": parse_integer(raw.items_sold),
        "avg_unit_price": None,
        "revenue_trend": [],
        "found_date": raw.found_date or None,
        "detailed_analysis": None,
        "filters": list(raw.filters or []),
    }


def _has_value(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return len(value) > 0
    if isinstance(value, (int, float)):
        return value > 0
    if isinstance(value, (list, tuple, dict)):
        return len(value) > 0
    return False


def calculate_completeness_score(product: dict[str, Any]) -> int:
    """Weighted percentage of populated product fields."""
    max_score = sum(FIELD_WEIGHTS.values())
    score = sum(weight for name, weight in FIELD_WEIGHTS.items() if _has_value(product.get(name)))
    return round(score / max_score * 100)


def _required_field_present(product: dict[str, Any], name: str) -> bool:
    value = product.get(name)
    if isinstance(value, str):
        return len(value) > 0
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value > 0
    return False


def _schema_issues(schema: type[BaseModel], data: dict[str, Any]) -> list[tuple[str, str, str]]:
    """Return (field path, error type, message) for every schema violation."""
    try:
        schema.model_validate(data)
    except ValidationError as exc:
        issues = []
        for err in exc.errors():
            path = ".".join(str(part) for part in err["loc"])
            issues.append((path, err["type"], err["msg"]))
        return issues
    return []


def validate_product(raw: RawProductData) -> ValidationResult:
    """Validate raw extraction output. Pure: same input, same result."""
    product = transform_to_product(raw)
    metadata = transform_to_metadata(raw)

    missing_fields: list[str] = []
    invalid_fields: list[InvalidField] = []
    warnings: list[str] = []

    for path, err_type, message in _schema_issues(ProductSchema, product):
        top = path.split(".")[0]
        if err_type in MISSING_ERROR_TYPES or err_type.endswith("_type"):
            if path not in missing_fields:
                missing_fields.append(path)
        invalid_fields.append(
            InvalidField(
                field=path,
                error=ERROR_MESSAGES.get((top, err_type), message),
                received_value=product.get(top),
            )
        )

    required_fields_complete = True
    for name in REQUIRED_FIELDS:
        if not _required_field_present(product, name):
            required_fields_complete = False
            if name not in missing_fields:
                missing_fields.append(name)

    if not product["description"]:
        warnings.append("Missing description - product may lack important details")
    if not product["additional_images"]:
        warnings.append("No additional images - consider adding gallery images")
    if not product["specifications"]:
        warnings.append("No specifications - product details may be incomplete")
    if not product["trend_data"]:
        warnings.append("No trend data available")

    is_valid = required_fields_complete and not invalid_fields

    return ValidationResult(
        is_valid=is_valid,
        completeness_score=calculate_completeness_score(product),
        required_fields_complete=required_fields_complete,
        missing_fields=missing_fields,
        invalid_fields=invalid_fields,
        warnings=warnings,
        transformed_product=product if is_valid else None,
        transformed_metadata=metadata,
    )


def validate_metadata(raw: RawProductData) -> ValidationResult:
    """Validate only the metadata transform (all fields optional)."""
    metadata = transform_to_metadata(raw)
    issues = _schema_issues(MetadataSchema, metadata)
    return ValidationResult(
        is_valid=not issues,
        completeness_score=100,
        required_fields_complete=True,
        invalid_fields=[
            InvalidField(field=path, error=message, received_value=metadata.get(path.split(".")[0]))
            for path, _, message in issues
        ],
        transformed_metadata=metadata,
    )


def report_validation(result: ValidationResult, log: ScrapeLogger | None = None) -> None:
    """Print a human-readable validation report."""
    log = log or default_logger
    log.divider("VALIDATION REPORT")

    log.info(f"Completeness Score: {result.completeness_score}%")
    log.info(f"Required Fields: {'COMPLETE' if result.required_fields_complete else 'INCOMPLETE'}")
    log.info(f"Overall Status: {'VALID' if result.is_valid else 'INVALID'}")

    if result.missing_fields:
        log.warn("Missing Fields:")
        for name in result.missing_fields:
            log.field(name, None, False)

    if result.invalid_fields:
        log.warn("Invalid Fields:")
        for invalid in result.invalid_fields:
            log.info(f"  - {invalid.field}: {invalid.error}")
            log.info(f"    Received: {json.dumps(invalid.received_value, default=str)}")

    if result.warnings:
        log.info("Warnings:")
        for warning in result.warnings:
            log.warn(f"  {warning}")

    log.divider()


class Validator:
    """Object-style access to the validation functions."""

    def validate_product(self, raw: RawProductData) -> ValidationResult:
        return validate_product(raw)

    def validate_metadata(self, raw: RawProductData) -> ValidationResult:
        return validate_metadata(raw)

    def calculate_completeness_score(self, product: dict[str, Any]) -> int:
        return calculate_completeness_score(product)

    def report_validation(self, result: ValidationResult, log: ScrapeLogger | None = None) -> None:
        report_validation(result, log)
