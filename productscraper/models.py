"""Data models for the scraper."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any

PriceValue = str | int | float


@dataclass
class RawProductData:
    """Extracted fields before validation. Every field is optional."""

    title: str | None = None
    image_url: str | None = None
    description: str | None = None
    supplier_price: PriceValue | None = None
    retail_price: PriceValue | None = None
    additional_images: list[str] | None = None
    specifications: dict[str, str] | None = None
    rating: PriceValue | None = None
    reviews_count: PriceValue | None = None
    category: str | None = None
    trend_data: list[float] | None = None
    is_winning: bool | None = None
    profit_margin: PriceValue | None = None
    items_sold: PriceValue | None = None
    found_date: str | None = None
    filters: list[str] | None = None
    source_url: str | None = None
    source_id: str | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary, leaving out fields that were not extracted."""
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RawProductData:
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class InvalidField:
    field: str
    error: str
    received_value: Any = None

    def to_dict(self) -> dict:
        return {"field": self.field, "error": self.error, "received_value": self.received_value}


@dataclass
class ValidationResult:
    """Outcome of validating one extraction."""

    is_valid: bool
    completeness_score: int
    required_fields_complete: bool
    missing_fields: list[str] = field(default_factory=list)
    invalid_fields: list[InvalidField] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    transformed_product: dict[str, Any] | None = None
    transformed_metadata: dict[str, Any] | None = None

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "completeness_score": self.completeness_score,
            "required_fields_complete": self.required_fields_complete,
            "missing_fields": list(self.missing_fields),
            "invalid_fields": [f.to_dict() for f in self.invalid_fields],
            "warnings": list(self.warnings),
            "transformed_product": self.transformed_product,
            "transformed_metadata": self.transformed_metadata,
        }


@dataclass
class ErrorRecord:
    message: str
    context: str | None = None
    recoverable: bool = False

    def to_dict(self) -> dict:
        return {"message": self.message, "context": self.context, "recoverable": self.recoverable}


@dataclass
class Timing:
    start_time: datetime
    end_time: datetime

    @property
    def duration_ms(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() * 1000)

    def to_dict(self) -> dict:
        return {
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "duration_ms": self.duration_ms,
        }


@dataclass
class ScrapeResult:
    """Result of one scrape attempt."""

    success: bool
    validation_result: ValidationResult
    raw_data: RawProductData
    timing: Timing
    screenshots: list[str] = field(default_factory=list)
    errors: list[ErrorRecord] = field(default_factory=list)
    product: dict[str, Any] | None = None
    metadata: dict[str, Any] | None = None
    source: dict[str, Any] | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": self.success,
            "product": self.product,
            "metadata": self.metadata,
            "source": self.source,
            "validation_result": self.validation_result.to_dict(),
            "raw_data": self.raw_data.to_dict(),
            "screenshots": list(self.screenshots),
            "timing": self.timing.to_dict(),
            "errors": [e.to_dict() for e in self.errors],
        }


@dataclass
class CookieRecord:
    name: str
    value: str
    domain: str
    path: str = "/"
    expires: float = -1
    http_only: bool = False
    secure: bool = False
    same_site: str | None = None

    def to_dict(self) -> dict:
        """Serialize with the key names used by the session file and Playwright."""
        data = {
            "name": self.name,
            "value": self.value,
            "domain": self.domain,
            "path": self.path,
            "expires": self.expires,
            "httpOnly": self.http_only,
            "secure": self.secure,
        }
        if self.same_site:
            data["sameSite"] = self.same_site
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CookieRecord:
        expires = data.get("expires")
        return cls(
            name=data["name"],
            value=data["value"],
            domain=data["domain"],
            path=data.get("path") or "/",
            expires=expires if expires else -1,
            http_only=bool(data.get("httpOnly", False)),
            secure=bool(data.get("secure", False)),
            same_site=data.get("sameSite"),
        )


@dataclass
class SessionData:
    """Persisted authentication state for one domain."""

    version: str
    domain: str
    created_at: str
    expires_at: str
    cookies: list[CookieRecord] = field(default_factory=list)
    local_storage: dict[str, str] | None = None

    def to_dict(self) -> dict:
        data = {
            "version": self.version,
            "domain": self.domain,
            "createdAt": self.created_at,
            "expiresAt": self.expires_at,
            "cookies": [c.to_dict() for c in self.cookies],
        }
        if self.local_storage is not None:
            data["localStorage"] = self.local_storage
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionData:
        """Build from the session file format; raises ValueError on missing required fields."""
        if not isinstance(data, dict):
            raise ValueError("Session data must be an object")
        missing = [key for key in ("version", "domain", "expiresAt") if not data.get(key)]
        if missing:
            raise ValueError(f"Session data missing fields: {', '.join(missing)}")
        if not isinstance(data["expiresAt"], str):
            kind = type(data["expiresAt"]).__name__
            raise ValueError(f"Session expiresAt must be a timestamp string, got {kind}")
        return cls(
            version=data["version"],
            domain=data["domain"],
            created_at=data.get("createdAt", ""),
            expires_at=data["expiresAt"],
            cookies=[CookieRecord.from_dict(c) for c in data.get("cookies") or []],
            local_storage=data.get("localStorage"),
        )


@dataclass
class IndexProduct:
    """A product card read straight from the listing page."""

    title: str
    image_url: str
    cost: str
    price: str
    product_url: str

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "image_url": self.image_url,
            "cost": self.cost,
            "price": self.price,
            "product_url": self.product_url,
        }
