#!/usr/bin/env python3
"""CLI entry points for the Tradelle product scraper.

Three independent drivers:

  single    scrape one product (the first listing entry, or --url)
  multiple  scrape --count detail pages into CSV + JSON
  index     read --count listing cards straight from the index page
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence

from .config import (
    DATA_DIR,
    DEFAULT_PROXY_COUNTRY,
    DEFAULT_REMOTE_SESSION_TTL_S,
    MAX_TIMEOUT_MS,
    ScraperConfig,
)
from .errors import LoginTimeoutError
from .export import (
    INDEX_COLUMNS,
    PRODUCT_COLUMNS,
    derive_output_paths,
    index_row,
    product_row,
    save_result_json,
    write_csv,
    write_json,
)
from .log import logger
from .models import ScrapeResult
from .scrapers import get_scraper, scraper_for_url
from .scrapers.tradelle import TradelleScraper

SCRAPER_NAME = "tradelle"


def setup_logging(debug: bool) -> None:
    logging.basicConfig(level=logging.DEBUG if debug else logging.WARNING)
    if debug:
        logger.set_debug(True)


# --- argument parsing --------------------------------------------------------


def build_single_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="productscraper-test-product",
        description="Scrape a single Tradelle product and report extraction quality",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  productscraper-test-product                                   # First listed product
  productscraper-test-product --url=https://app.tradelle.io/products/123 --debug
  productscraper-test-product --force-login --save
        """,
    )
    parser.add_argument("--url", help="Specific product URL to scrape")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging (selectors, HTML snippets)")
    visibility = parser.add_mutually_exclusive_group()
    visibility.add_argument("--visible", dest="visible", action="store_true", default=True,
                            help="Run browser in visible mode (default)")
    visibility.add_argument("--headless", dest="visible", action="store_false",
                            help="Run browser in headless mode")
    parser.add_argument("--save", action="store_true", help="Report how to import the result into the database")
    parser.add_argument("--no-session", dest="use_session", action="store_false",
                        help="Don't use the saved session")
    parser.add_argument("--force-login", action="store_true", help="Clear the saved session and log in again")
    return parser


def _build_batch_parser(prog: str, description: str, count: int, output: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=prog, description=description)
    parser.add_argument("--count", type=int, default=count, help=f"Number of products to scrape (default: {count})")
    parser.add_argument("--output", default=output, help=f"Output CSV filename (default: {output})")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--headless", action="store_true", help="Run browser in headless mode")
    return parser


def build_multiple_parser() -> argparse.ArgumentParser:
    return _build_batch_parser(
        "productscraper-scrape-multiple",
        "Scrape multiple Tradelle product pages and export to CSV",
        10,
        "products.csv",
    )


def build_index_parser() -> argparse.ArgumentParser:
    parser = _build_batch_parser(
        "productscraper-scrape-index",
        "Scrape product cards directly from the Tradelle listing page (fast)",
        100,
        "tradelle-index-products.csv",
    )
    remote = parser.add_argument_group(
        "remote browser", "Used when PRODUCTSCRAPER_CDP_ENDPOINT or SCRAPELESS_API_KEY is set"
    )
    remote.add_argument("--country", help=f"Proxy country code (default: {DEFAULT_PROXY_COUNTRY})")
    remote.add_argument(
        "--ttl", type=int, help=f"Remote session TTL in seconds (default: {DEFAULT_REMOTE_SESSION_TTL_S})"
    )
    return parser


def _remote_overrides(args: argparse.Namespace) -> dict[str, object]:
    overrides: dict[str, object] = {}
    if args.country:
        overrides["proxy_country"] = args.country.upper()
    if args.ttl:
        overrides["remote_session_ttl"] = args.ttl
    return overrides


def _make_scraper(config: ScraperConfig, use_session: bool = True) -> TradelleScraper:
    scraper = get_scraper(SCRAPER_NAME, config, use_session=use_session)
    if not isinstance(scraper, TradelleScraper):
        raise TypeError(f"Scraper '{SCRAPER_NAME}' resolved to {type(scraper).__name__}, expected TradelleScraper")
    return scraper


# --- single product ------------------------------------------------------------


def print_summary(result: ScrapeResult) -> None:
    """Summary, extracted data, warnings and missing fields for one result."""
    validation = result.validation_result

    logger.divider("RESULTS SUMMARY")
    if result.success:
        logger.success("Scraping completed successfully!")
    else:
        logger.error("Scraping completed with errors")
    logger.info(f"Completeness Score: {validation.completeness_score}%")
    logger.info(f"Required Fields: {'Complete' if validation.required_fields_complete else 'Incomplete'}")
    logger.info(f"Screenshots Taken: {len(result.screenshots)}")
    logger.info(f"Duration: {result.timing.duration_ms / 1000:.2f}s")

    logger.divider("EXTRACTED DATA")
    print(json.dumps(result.raw_data.to_dict(), ensure_ascii=False, indent=2))

    if validation.warnings:
        logger.divider("WARNINGS")
        for warning in validation.warnings:
            logger.warn(warning)

    if validation.missing_fields:
        logger.divider("MISSING FIELDS")
        logger.warn("The following fields were not extracted:")
        for name in validation.missing_fields:
            print(f"  - {name}")
        logger.info("To fix: update the selector table (PRODUCTSCRAPER_SELECTORS) after inspecting the page")


async def run_single(args: argparse.Namespace) -> int:
    logger.divider("TRADELLE SCRAPER - TEST MODE")
    logger.info("Starting single product scrape test...")
    if args.url:
        logger.info(f"Target URL: {args.url}")
        if scraper_for_url(args.url) != SCRAPER_NAME:
            logger.warn(f"{args.url} does not look like a Tradelle product page")
    if args.debug:
        logger.info("Debug mode: ENABLED")
    logger.divider()

    config = ScraperConfig.from_env(
        headless=not args.visible,
        slow_mo=100 if args.visible else 0,
        screenshot_on_error=True,
        screenshot_on_success=True,
    )
    scraper = _make_scraper(config, use_session=args.use_session)

    try:
        await scraper.initialize()

        if args.force_login:
            logger.info("Clearing existing session (--force-login)")
            await scraper.session_manager.clear_session()

        result = await (scraper.scrape_product(args.url) if args.url else scraper.scrape())
        print_summary(result)

        path = save_result_json(result, DATA_DIR)
        logger.success(f"Data saved to: {path}")

        if args.save:
            logger.divider("SAVING TO DATABASE")
            logger.info("Database save is not part of this tool")
            logger.info("Import the JSON file manually")
            logger.info(f"File: {path}")

        logger.divider("TEST COMPLETE")
        return 0 if result.success else 1
    except LoginTimeoutError as e:
        logger.error("Login was not completed", e)
        logger.info(e.suggested_fix)
        return 1
    except Exception as e:
        logger.error("Fatal error during scraping", e)
        return 1
    finally:
        await scraper.cleanup()


# --- multiple products -----------------------------------------------------------


async def run_multiple(args: argparse.Namespace) -> int:
    csv_path, json_path = derive_output_paths(args.output)

    logger.divider("TRADELLE MULTI-PRODUCT SCRAPER")
    logger.info(f"Scraping {args.count} products...")
    logger.info(f"Output file: {csv_path}")
    logger.divider()

    config = ScraperConfig.from_env(
        headless=args.headless,
        slow_mo=0 if args.headless else 50,
        screenshot_on_error=True,
        screenshot_on_success=False,
    )
    scraper = _make_scraper(config)

    try:
        await scraper.initialize()
        await scraper.restore_session()
        await scraper.navigate_to_listing()
        if await scraper.ensure_authenticated():
            await scraper.navigate_to_listing()
        logger.success("Navigated to products page")

        logger.info(f"Looking for {args.count} products...")
        urls = await scraper.get_product_urls(args.count)
        logger.success(f"Found {len(urls)} products")
        if not urls:
            logger.error("No products found!")
            return 1

        logger.divider("SCRAPING PRODUCTS")
        results = await scraper.scrape_many(urls)

        logger.divider("GENERATING CSV")
        scraped = [
            (r.raw_data, url) for r, url in zip(results, urls) if r.raw_data.title and r.raw_data.image_url
        ]
        written = write_csv(csv_path, PRODUCT_COLUMNS, (product_row(raw, url) for raw, url in scraped))
        logger.success(f"CSV saved to: {csv_path}")
        logger.info(f"Total products: {len(results)}")
        logger.info(f"Successfully scraped: {written}")
        logger.info(f"Failed: {len(results) - written}")

        write_json(json_path, [{**raw.to_dict(), "source_url": url} for raw, url in scraped])
        logger.success(f"JSON saved to: {json_path}")

        logger.divider("SCRAPING COMPLETE")
        return 0
    except LoginTimeoutError as e:
        logger.error("Login was not completed", e)
        logger.info(e.suggested_fix)
        return 1
    except Exception as e:
        logger.error("Fatal error", e)
        return 1
    finally:
        await scraper.cleanup()


# --- index page ----------------------------------------------------------------


async def run_index(args: argparse.Namespace) -> int:
    csv_path, json_path = derive_output_paths(args.output)

    logger.divider("TRADELLE INDEX PAGE SCRAPER")
    logger.info(f"Target: {args.count} products")
    logger.info(f"Output: {csv_path}")
    logger.info("Method: Direct extraction from listing page (fast)")
    logger.divider()

    config = ScraperConfig.from_env(
        headless=args.headless,
        slow_mo=0 if args.headless else 50,
        screenshot_on_error=True,
        screenshot_on_success=False,
        timeout=MAX_TIMEOUT_MS,
        **_remote_overrides(args),
    )
    if config.cdp_endpoint:
        logger.info(f"Browser: remote ({config.proxy_country}, {config.remote_session_ttl}s session)")
    scraper = _make_scraper(config)

    try:
        await scraper.initialize()
        await scraper.restore_session()
        await scraper.navigate_to_listing(wait_until="domcontentloaded")
        await scraper.screenshot("index-page-initial")

        if await scraper.ensure_authenticated(scraper.selectors.auth.login_complete):
            await scraper.navigate_to_listing(wait_until="domcontentloaded")

        await scraper.scroll_to_load_products(args.count)
        await scraper.screenshot("index-page-loaded")

        logger.divider("EXTRACTING DATA")
        products = await scraper.extract_listing_items(args.count)
        logger.success(f"Extracted {len(products)} products from index page")

        if products:
            logger.divider("SAMPLE DATA")
            for i, p in enumerate(products[:3], 1):
                logger.info(f"[{i}] {(p.title or 'No title')[:50]}...")
                logger.debug(f"    Cost: {p.cost}, Price: {p.price}")
                logger.debug(f"    Image: {'Yes' if p.image_url else 'No'}")

        logger.divider("GENERATING CSV")
        valid = [p for p in products if p.title or p.image_url]
        written = write_csv(csv_path, INDEX_COLUMNS, (index_row(p) for p in valid))
        logger.success(f"CSV saved: {csv_path}")
        write_json(json_path, [p.to_dict() for p in products])
        logger.success(f"JSON saved: {json_path}")

        logger.divider("COMPLETE")
        logger.info(f"Total products extracted: {len(products)}")
        logger.info(f"Valid products saved: {written}")

        logger.divider("DATA QUALITY")
        total = len(products)
        logger.info(f"With title: {sum(1 for p in products if p.title)}/{total}")
        logger.info(f"With image: {sum(1 for p in products if p.image_url)}/{total}")
        logger.info(f"With cost: {sum(1 for p in products if p.cost)}/{total}")
        logger.info(f"With price: {sum(1 for p in products if p.price)}/{total}")
        return 0
    except LoginTimeoutError as e:
        logger.error("Login was not completed", e)
        logger.info(e.suggested_fix)
        return 1
    except Exception as e:
        logger.error("Fatal error", e)
        await scraper.screenshot("error")
        return 1
    finally:
        await scraper.cleanup()


# --- entry points ----------------------------------------------------------------


def _run(coro_fn, parser: argparse.ArgumentParser, argv: Sequence[str] | None) -> int:
    args = parser.parse_args(argv)
    setup_logging(args.debug)
    return asyncio.run(coro_fn(args))


def single_main(argv: Sequence[str] | None = None) -> int:
    return _run(run_single, build_single_parser(), argv)


def multiple_main(argv: Sequence[str] | None = None) -> int:
    return _run(run_multiple, build_multiple_parser(), argv)


def index_main(argv: Sequence[str] | None = None) -> int:
    return _run(run_index, build_index_parser(), argv)


COMMANDS = {
    "single": single_main,
    "multiple": multiple_main,
    "index": index_main,
}


def main(argv: Sequence[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    if not argv or argv[0] not in COMMANDS:
        print("Usage: python -m productscraper.cli {single|multiple|index} [options]", file=sys.stderr)
        print("Run a command with --help for its options.", file=sys.stderr)
        return 0 if argv and argv[0] in ("-h", "--help") else 1
    return COMMANDS[argv[0]](argv[1:])


if __name__ == "__main__":
    sys.exit(main())
