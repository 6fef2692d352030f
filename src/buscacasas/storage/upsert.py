"""Validation and batch upsert of scraped listings.

Partial listings are checked against the strict ``Listing`` schema here,
at the storage boundary. Invalid records are skipped and reported one by
one; they never abort the batch. Database failures do abort it.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional

from pydantic import ValidationError

from ..models.property import Listing, PartialListing
from .store import ListingStore, ListingValidationError

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Either a valid ``listing`` or the ``problems`` that prevented it."""

    identity: str
    listing: Optional[Listing] = None
    problems: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.listing is not None


@dataclass
class SkippedListing:
    identity: str
    problems: list[str]


@dataclass
class UpsertReport:
    """Counts of one batch upsert plus the records that were skipped."""

    inserted: int = 0
    updated: int = 0
    skipped: list[SkippedListing] = field(default_factory=list)

    @property
    def saved(self) -> int:
        return self.inserted + self.updated


def listing_identity(partial: PartialListing) -> str:
    """Best available label for a record in logs and reports."""
    return partial.id or partial.url or partial.title or "<unidentified>"


def validate_listing(partial: PartialListing, now: Optional[datetime] = None) -> ValidationResult:
    """Apply the strict schema to a partial listing.

    Missing lifecycle timestamps are set to ``now``; an undetected currency
    or property type falls back to the schema defaults (UYU, apartamento).
    """
    identity = listing_identity(partial)
    now = now or datetime.now(timezone.utc)
    data = partial.model_dump(exclude_none=True)
    data.setdefault("scraped_at", now)
    data.setdefault("updated_at", now)

    try:
        return ValidationResult(identity=identity, listing=Listing(**data))
    except ValidationError as e:
        problems = [
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in e.errors()
        ]
        return ValidationResult(identity=identity, problems=problems)


def upsert_listings(
    store: ListingStore,
    partials: Iterable[PartialListing],
) -> UpsertReport:
    """Validate and upsert a batch of scraped listings.

    Raises:
        StoreIOError: If the database fails; records already written stay written
    """
    report = UpsertReport()
    for partial in partials:
        result = validate_listing(partial)
        if not result.ok:
            logger.warning(f"Skipped invalid listing {result.identity}: {'; '.join(result.problems)}")
            report.skipped.append(SkippedListing(result.identity, result.problems))
            continue

        try:
            action = store.upsert(result.listing)
        except ListingValidationError as e:
            logger.warning(f"Skipped listing {e.identity}: {'; '.join(e.problems)}")
            report.skipped.append(SkippedListing(e.identity, e.problems))
            continue

        if action == "inserted":
            report.inserted += 1
        else:
            report.updated += 1

    logger.info(
        f"Upserted {report.saved} listings "
        f"({report.inserted} new, {report.updated} updated, {len(report.skipped)} skipped)"
    )
    return report
