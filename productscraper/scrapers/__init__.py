"""Site adapter registry.

Every concrete `BaseScraper` subclass defined in a module of this package is
registered under its `name`, and under the site domain of its `url` so a
product link can be routed to the adapter that understands it.
"""

from __future__ import annotations

import importlib
import inspect
import logging
import pkgutil
from urllib.parse import urlparse

from ..config import ScraperConfig
from .base import BaseScraper, ProductSource, ScraperState

__all__ = [
    "BaseScraper",
    "ProductSource",
    "ScraperState",
    "get_scraper",
    "list_scrapers",
    "get_scraper_display_name",
    "scraper_for_url",
]

logger = logging.getLogger(__name__)


def site_domain(url: str) -> str:
    """Registrable part of a URL host: app.tradelle.io -> tradelle.io."""
    host = (urlparse(url).hostname or "").lower()
    return ".".join(host.split(".")[-2:])


def _adapters_in(module) -> list[type[BaseScraper]]:
    return [
        obj
        for _, obj in inspect.getmembers(module, inspect.isclass)
        if issubclass(obj, BaseScraper)
        and obj.__module__ == module.__name__
        and not inspect.isabstract(obj)
        and isinstance(getattr(obj, "name", None), str)
        and obj.name.strip()
    ]


def _discover() -> dict[str, type[BaseScraper]]:
    registry: dict[str, type[BaseScraper]] = {}
    for info in pkgutil.iter_modules(__path__):  # type: ignore[name-defined]
        if info.ispkg or info.name.startswith("_") or info.name == "base":
            continue
        module_path = f"{__name__}.{info.name}"
        try:
            module = importlib.import_module(module_path)
        except Exception as exc:
            logger.warning("Skipping adapter module %s: %r", module_path, exc)
            continue
        for cls in _adapters_in(module):
            if cls.name in registry:
                logger.warning("Adapter name '%s' already taken by %s", cls.name, registry[cls.name].__qualname__)
                continue
            registry[cls.name] = cls
    return dict(sorted(registry.items()))


SCRAPERS: dict[str, type[BaseScraper]] = _discover()
DOMAINS: dict[str, str] = {site_domain(cls.url): name for name, cls in SCRAPERS.items() if getattr(cls, "url", "")}


def get_scraper(name: str, config: ScraperConfig | None = None, **kwargs) -> BaseScraper:
    """Instantiate the adapter registered as `name`; extra kwargs go to its constructor."""
    try:
        cls = SCRAPERS[name]
    except KeyError:
        raise ValueError(f"Unknown scraper '{name}'. Available: {', '.join(SCRAPERS)}") from None
    return cls(config=config, **kwargs)


def list_scrapers() -> list[str]:
    return list(SCRAPERS)


def get_scraper_display_name(name: str) -> str:
    cls = SCRAPERS.get(name)
    return getattr(cls, "display_name", name) if cls else name


def scraper_for_url(url: str) -> str | None:
    """Name of the adapter that handles `url`, or None for foreign sites."""
    return DOMAINS.get(site_domain(url))
