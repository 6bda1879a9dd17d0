"""
Main entry point and CLI for Vehicle Scout.

Searches the supported French used-vehicle sites for listings matching a
brand/model and optional price, year and mileage filters.
"""

# Load environment variables before the engine config is read
from dotenv import load_dotenv
load_dotenv()

import asyncio
import argparse
import json
import logging
import signal
import sys
from datetime import datetime
from typing import List

from vehicle_scout.models import NormalizedListing, SearchQuery, SearchResult, SiteResult
from vehicle_scout.orchestrator import CancellationToken, SearchOrchestrator
from vehicle_scout.red_flags import risk_level


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def format_listing(listing: NormalizedListing) -> str:
    """
    Format one listing for console output.

    Args:
        listing: Listing to format

    Returns:
        Multi-line block ending with a blank line
    """
    lines = [f"* {listing.title}"]

    details = []
    if listing.price is not None:
        details.append(f"{listing.price:,} €".replace(',', ' '))
    if listing.year:
        details.append(str(listing.year))
    if listing.mileage_final is not None:
        details.append(f"{listing.mileage_final:,} km ({listing.mileage_confidence.value})".replace(',', ' '))
    if listing.city:
        details.append(listing.city)
    if details:
        lines.append(f"   {' | '.join(details)}")

    lines.append(f"   Source: {listing.source} | Score: {listing.score}/100 | Risk: {risk_level(listing.risk_score)}")
    for flag in listing.red_flags:
        lines.append(f"   [{flag.severity.value.upper()}] {flag.type.value}: {flag.message}")
    lines.append(f"   URL: {listing.url}")
    lines.append("")
    return "\n".join(lines)


def describe_site(result: SiteResult) -> str:
    if result.cancelled:
        status = "cancelled"
    elif not result.ok:
        status = f"technical failure ({result.error})"
    elif not result.items:
        status = "no matches"
    else:
        status = f"{len(result.items)} listing(s)"
    passes = ", ".join(f"{a.query_pass.value}={a.item_count}" for a in result.attempts)
    return f"   {result.site:<12} {status}" + (f" [{passes}]" if passes else "")


def format_results(result: SearchResult) -> str:
    """Format a whole search result for console output."""
    output: List[str] = []
    output.append(f"\n{'='*60}")
    output.append(f"Found {len(result.listings)} listing(s)")
    output.append(f"{'='*60}\n")

    if not result.listings:
        output.append("No listings found matching your criteria.\n")
    for listing in result.listings:
        output.append(format_listing(listing))

    output.append("Sites:")
    for site_result in result.site_results:
        output.append(describe_site(site_result))
    output.append(f"{'='*60}\n")

    return "\n".join(output)


async def run_search(query: SearchQuery, as_json: bool = False, verbose: bool = False) -> int:
    """
    Execute one search and print its results.

    Args:
        query: Search query
        as_json: Print the raw result as JSON
        verbose: Enable verbose logging output

    Returns:
        Exit code (0 for success, 1 for error)
    """
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.debug("Verbose logging enabled")

    # Ctrl+C cancels in-flight sites and still prints what completed
    cancel_token = CancellationToken()
    try:
        asyncio.get_running_loop().add_signal_handler(signal.SIGINT, cancel_token.cancel)
    except NotImplementedError:
        logger.debug("Signal handlers not supported on this platform")

    try:
        orchestrator = SearchOrchestrator()

        if not as_json:
            print(f"\nSearching for '{query.text}'...")
            if query.max_price is not None:
                print(f"   Max price: {query.max_price} €")
            print()

        start_time = datetime.now()
        result = await orchestrator.search(query, cancel_token)
        elapsed_time = (datetime.now() - start_time).total_seconds()

        if as_json:
            print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
        else:
            print(format_results(result))
            print(f"Search completed in {elapsed_time:.2f} seconds")

        logger.info(f"Search completed in {elapsed_time:.2f} seconds")
        return 0

    except Exception as e:
        logger.exception(f"Search failed with error: {str(e)}")
        print(f"\nError: {str(e)}", file=sys.stderr)
        return 1


def create_argument_parser() -> argparse.ArgumentParser:
    """
    Create and configure the argument parser for CLI.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog="vehicle-scout",
        description="Search French used-vehicle sites for listings matching your criteria",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  vehicle-scout --brand Peugeot --model 308 --max-price 15000
  vehicle-scout --brand Renault --model Clio --year-min 2018 --mileage-max 80000
  vehicle-scout --brand BMW --exclude LeParking Kyump --json
        """
    )

    parser.add_argument("--brand", required=True, help="Vehicle make (e.g. 'Peugeot')")
    parser.add_argument("--model", default=None, help="Vehicle model (e.g. '308')")
    parser.add_argument("--max-price", type=int, default=None, help="Maximum price in euros")
    parser.add_argument("--min-price", type=int, default=None, help="Minimum price in euros")
    parser.add_argument("--year-min", type=int, default=None, help="Oldest registration year")
    parser.add_argument("--year-max", type=int, default=None, help="Most recent registration year")
    parser.add_argument("--mileage-max", type=int, default=None, help="Maximum mileage in km")
    parser.add_argument("--fuel", default=None, help="Fuel type (essence, diesel, hybride, electrique, gpl)")
    parser.add_argument("--location", default=None, help="Postal code or city")
    parser.add_argument("--radius", type=int, default=None, help="Search radius in km around --location")
    parser.add_argument("--exclude", nargs="+", default=[], metavar="SITE", help="Sites to skip")
    parser.add_argument("--json", action="store_true", help="Print the raw result as JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging output")

    return parser


def build_query(args: argparse.Namespace) -> SearchQuery:
    if args.min_price is not None and args.max_price is not None and args.min_price > args.max_price:
        raise ValueError(
            f"Minimum price ({args.min_price}) cannot be greater than maximum price ({args.max_price})"
        )
    return SearchQuery(
        brand=args.brand,
        model=args.model,
        max_price=args.max_price,
        min_price=args.min_price,
        year_min=args.year_min,
        year_max=args.year_max,
        mileage_max=args.mileage_max,
        fuel_type=args.fuel,
        location=args.location,
        radius_km=args.radius,
        excluded_sites=tuple(args.exclude),
    )


def main() -> int:
    """
    Main entry point for the CLI application.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    parser = create_argument_parser()
    args = parser.parse_args()

    try:
        query = build_query(args)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        return asyncio.run(run_search(query, as_json=args.json, verbose=args.verbose))
    except KeyboardInterrupt:
        print("\n\nSearch interrupted by user", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
