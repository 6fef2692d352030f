"""Command line interface.

Run via: buscacasas <command>  (or python -m buscacasas.cli)
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .collectors.aggregator import AggregateResult, Aggregator, RunStatus
from .config import config
from .models.property import Currency, Operation, PropertyQuery, PropertyType, SearchFilters
from .storage.store import ListingStore, StoreIOError

console = Console()

STATUS_STYLES = {
    RunStatus.COMPLETED: "green",
    RunStatus.PARTIAL: "yellow",
    RunStatus.ERROR: "red",
    RunStatus.SKIPPED: "dim",
}


def setup_logging(verbose: bool = False) -> None:
    """Configure logging with Rich handler."""
    level = logging.DEBUG if verbose else config.log_level.upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _format_price(listing) -> str:
    if listing.price is None:
        return "N/A"
    currency = listing.currency.value if listing.currency else ""
    return f"{currency} {listing.price:,.0f}".strip()


def _format_location(listing) -> str:
    if listing.neighborhood:
        return f"{listing.neighborhood}, {listing.department}"
    return listing.department or "N/A"


def print_listings(listings, limit: int = 5) -> None:
    """Print a short summary of the first ``limit`` listings."""
    for index, listing in enumerate(listings[:limit], start=1):
        console.print(f"[bold]{index}. {listing.title or '(untitled)'}[/bold]")
        console.print(f"   Price: {_format_price(listing)}")
        console.print(f"   Location: {_format_location(listing)}")
        console.print(f"   Area: {listing.total_area or 'N/A'} m²")
        console.print(f"   Beds: {listing.bedrooms or 'N/A'}, Baths: {listing.bathrooms or 'N/A'}")
        console.print(f"   Source: {listing.source.value if listing.source else 'N/A'}")
        console.print(f"   [dim]{listing.url}[/dim]")
        console.print()
    if len(listings) > limit:
        console.print(f"... and {len(listings) - limit} more listings\n")


def print_statuses(result: AggregateResult) -> None:
    table = Table(title="Sources")
    table.add_column("Source")
    table.add_column("Status")
    table.add_column("Pages", justify="right")
    table.add_column("Listings", justify="right")
    table.add_column("Error")
    for name, status in result.statuses.items():
        style = STATUS_STYLES[status.status]
        table.add_row(
            name,
            f"[{style}]{status.status.value}[/{style}]",
            str(status.pages),
            str(status.count),
            status.error or "",
        )
    console.print(table)


def cmd_scrape(args: argparse.Namespace) -> int:
    """Scrape the selected sources; returns the process exit code."""
    try:
        filters = SearchFilters(
            department=args.department,
            property_type=args.type,
            min_price=args.min_price,
            max_price=args.max_price,
            currency=args.currency,
            operation=args.operation,
        )
    except ValidationError as e:
        console.print(f"[red]Invalid filters:[/red] {e}")
        return 2
    if args.prune and not args.save:
        console.print("[red]--prune only applies together with --save[/red]")
        return 2
    if args.timeout is not None and args.timeout <= 0:
        console.print(f"[red]--timeout must be positive, got {args.timeout:g}[/red]")
        return 2

    console.print("[bold]Starting buscacasas scraper...[/bold]\n")
    try:
        store = ListingStore(args.db) if args.save else None
        aggregator = Aggregator(store=store)
        result = asyncio.run(aggregator.run(
            source=args.source,
            max_pages=args.pages,
            filters=filters,
            search_url=args.url,
            save=args.save,
            timeout=args.timeout,
            deactivate_missing=args.prune,
        ))
    except StoreIOError as e:
        console.print(f"[red]Could not save listings:[/red] {e}")
        return 1

    print_statuses(result)
    console.print(f"\n[bold]Total listings found: {result.total_found}[/bold]\n")
    if result.listings:
        console.print("[bold]Sample results:[/bold]")
        print_listings(result.listings)

    if result.report is not None:
        report = result.report
        console.print(
            f"[green]Saved {report.saved} listings[/green] "
            f"({report.inserted} new, {report.updated} updated)"
        )
        for skipped in report.skipped:
            console.print(f"[yellow]Skipped {skipped.identity}:[/yellow] {'; '.join(skipped.problems)}")
        if result.deactivated:
            console.print(f"[dim]Marked {result.deactivated} listings inactive[/dim]")

    ran = [s for s in result.statuses.values() if s.status != RunStatus.SKIPPED]
    if ran and all(s.status == RunStatus.ERROR for s in ran):
        return 1
    return 0


def cmd_search(args: argparse.Namespace) -> int:
    try:
        query = PropertyQuery(
            department=args.department,
            neighborhood=args.neighborhood,
            property_type=args.type,
            min_price=args.min_price,
            max_price=args.max_price,
            currency=args.currency,
            min_bedrooms=args.min_bedrooms,
        )
    except ValidationError as e:
        console.print(f"[red]Invalid filters:[/red] {e}")
        return 2

    try:
        listings = ListingStore(args.db).query(query, limit=args.limit)
    except StoreIOError as e:
        console.print(f"[red]Error searching database:[/red] {e}")
        return 1

    if not listings:
        console.print("[yellow]No listings found matching your criteria[/yellow]")
        return 0

    console.print(f"[bold]Found {len(listings)} listings:[/bold]\n")
    print_listings(listings, limit=len(listings))
    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    try:
        stats = ListingStore(args.db).stats()
    except StoreIOError as e:
        console.print(f"[red]Error getting statistics:[/red] {e}")
        return 1

    console.print(f"[bold]Total listings: {stats['total']}[/bold]\n")
    console.print("[bold]By source:[/bold]")
    for source, count in stats["by_source"].items():
        console.print(f"   {source}: {count}")
    console.print("\n[bold]By department:[/bold]")
    for department, count in list(stats["by_department"].items())[:10]:
        console.print(f"   {department}: {count}")
    return 0


def _add_filter_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-d", "--department", help="Filter by department")
    parser.add_argument(
        "-t", "--type",
        choices=[t.value for t in PropertyType],
        help="Property type",
    )
    parser.add_argument("--min-price", type=int, help="Minimum price")
    parser.add_argument("--max-price", type=int, help="Maximum price")
    parser.add_argument(
        "-c", "--currency",
        choices=[c.value for c in Currency],
        help="Currency",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="buscacasas",
        description="Uruguay real estate aggregator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  buscacasas scrape --source ml --pages 3 --save
  buscacasas scrape -t casa --min-price 50000 --currency USD
  buscacasas search -d Montevideo --min-bedrooms 2
  buscacasas stats
        """,
    )
    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help=f"SQLite database (default: {config.database_path})",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    scrape = subparsers.add_parser("scrape", help="Scrape listings from MercadoLibre and InfoCasas")
    scrape.add_argument(
        "-s", "--source",
        choices=["ml", "ic", "both"],
        default="both",
        help="Source to scrape (default: both)",
    )
    scrape.add_argument(
        "-p", "--pages",
        type=int,
        default=config.max_pages,
        help=f"Maximum pages per source (default: {config.max_pages})",
    )
    _add_filter_arguments(scrape)
    scrape.add_argument(
        "-o", "--operation",
        choices=[o.value for o in Operation],
        help="Sale or rent (InfoCasas only)",
    )
    scrape.add_argument("--url", help="Explicit search URL instead of generated filters")
    scrape.add_argument("--timeout", type=float, help="Overall time budget in seconds")
    scrape.add_argument("--save", action="store_true", help="Save results to the database")
    scrape.add_argument(
        "--prune",
        action="store_true",
        help="With --save, mark listings no longer listed by a fully scraped source as inactive",
    )
    scrape.set_defaults(handler=cmd_scrape)

    search = subparsers.add_parser("search", help="Search saved listings")
    _add_filter_arguments(search)
    search.add_argument("-n", "--neighborhood", help="Filter by neighborhood")
    search.add_argument("--min-bedrooms", type=int, help="Minimum bedrooms")
    search.add_argument("-l", "--limit", type=int, default=10, help="Maximum results (default: 10)")
    search.set_defaults(handler=cmd_search)

    stats = subparsers.add_parser("stats", help="Show database statistics")
    stats.set_defaults(handler=cmd_stats)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Main entry point for CLI."""
    args = build_parser().parse_args(argv)
    setup_logging(verbose=args.verbose)

    try:
        sys.exit(args.handler(args))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    main()
