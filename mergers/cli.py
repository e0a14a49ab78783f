from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Optional, Sequence

from dotenv import load_dotenv

from .errors import MergerScrapeError
from .pipeline import DEFAULT_MAX_WORKERS, MergerCaseScraper, load_listing, write_json_atomic

DEFAULT_LISTING_OUTPUT = "mergers.json"
DEFAULT_DETAILED_OUTPUT = "mergers-detailed.json"


def _add_http_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--timeout", type=float, default=float(os.getenv("REQUEST_TIMEOUT", "30")))
    parser.add_argument("--retry-total", type=int, default=int(os.getenv("REQUEST_RETRY_TOTAL", "3")))
    parser.add_argument("--retry-backoff", type=float, default=float(os.getenv("REQUEST_RETRY_BACKOFF", "0.5")))
    parser.add_argument("--user-agent", default=os.getenv("HTTP_USER_AGENT"), help="User-Agent header for all requests")
    parser.add_argument("--verbose", action="store_true", help="Log each case page fetched")


def _add_listing_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("url", nargs="?", default=os.getenv("MERGERS_LISTING_URL"), help="Listing page or API endpoint")
    parser.add_argument("--api", action="store_true", help="Request JSON from an API-style listing endpoint")


def _add_detail_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--jobs",
        type=int,
        default=int(os.getenv("DETAIL_WORKERS", str(DEFAULT_MAX_WORKERS))),
        help="Maximum concurrent detail page fetches",
    )
    parser.add_argument("--sequential", action="store_true", help="Fetch detail pages one at a time")
    parser.add_argument(
        "--debug-dir",
        default=os.getenv("MERGERS_DEBUG_DIR"),
        help="Save raw HTML of case pages that fail extraction here",
    )


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Scrape merger cases and their detail pages to JSON")
    subparsers = parser.add_subparsers(dest="command", required=True)

    listing = subparsers.add_parser("listing", help="Download the case listing")
    _add_listing_options(listing)
    listing.add_argument("--output", default=os.getenv("MERGERS_OUTPUT", DEFAULT_LISTING_OUTPUT))
    _add_http_options(listing)

    details = subparsers.add_parser("details", help="Add detail pages to a listing file")
    details.add_argument("--input", default=os.getenv("MERGERS_OUTPUT", DEFAULT_LISTING_OUTPUT))
    details.add_argument("--output", default=os.getenv("MERGERS_DETAILED_OUTPUT", DEFAULT_DETAILED_OUTPUT))
    _add_detail_options(details)
    _add_http_options(details)

    run_all = subparsers.add_parser("run", help="Listing and details in one go")
    _add_listing_options(run_all)
    run_all.add_argument("--output", default=os.getenv("MERGERS_OUTPUT", DEFAULT_LISTING_OUTPUT))
    run_all.add_argument("--detailed-output", default=os.getenv("MERGERS_DETAILED_OUTPUT", DEFAULT_DETAILED_OUTPUT))
    _add_detail_options(run_all)
    _add_http_options(run_all)

    return parser.parse_args(argv)


def build_scraper(args: argparse.Namespace) -> MergerCaseScraper:
    jobs = getattr(args, "jobs", DEFAULT_MAX_WORKERS)
    if getattr(args, "sequential", False):
        jobs = 1
    debug_dir = getattr(args, "debug_dir", None)
    return MergerCaseScraper(
        http_timeout=args.timeout,
        retry_total=args.retry_total,
        retry_backoff=args.retry_backoff,
        user_agent=args.user_agent,
        max_workers=jobs,
        debug_dir=Path(debug_dir) if debug_dir else None,
    )


def run(argv: Optional[Sequence[str]] = None) -> int:
    load_dotenv()
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    if args.command in {"listing", "run"} and not args.url:
        raise SystemExit("Listing URL not provided. Pass it as an argument or set MERGERS_LISTING_URL.")

    scraper = build_scraper(args)
    try:
        if args.command == "listing":
            print(f"Downloading listing from {args.url}...")
            cases = scraper.scrape_listing(args.url, api=args.api)
            path = write_json_atomic(Path(args.output), [case.as_dict() for case in cases])
            print(f"Success! {len(cases)} cases saved to {path}")
            return 0

        if args.command == "details":
            cases = load_listing(Path(args.input))
            print(f"Scraping details for {len(cases)} cases ({scraper.max_workers} parallel jobs)...")
            result = scraper.run_details(cases, detailed_path=Path(args.output))
        else:
            print(f"Downloading listing from {args.url}...")
            result = scraper.run(
                args.url,
                listing_path=Path(args.output),
                detailed_path=Path(args.detailed_output),
                api=args.api,
            )
            print(f"Listing saved to {result.listing_path}")
    except MergerScrapeError as exc:
        raise SystemExit(f"Error: {exc}") from exc
    finally:
        scraper.close()

    print(
        f"Success! Detailed data for {len(result.cases)} cases saved to {result.detailed_path} | "
        f"Failed detail pages: {len(result.failed_links)}"
    )
    return 0


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
