"""Storage modules for listing persistence.

This package provides the SQLite listing store and the validation/upsert
contract that lets repeated scraping runs converge on one record per listing.
"""

from .store import ListingStore, ListingValidationError, StoreIOError
from .upsert import UpsertReport, ValidationResult, upsert_listings, validate_listing

__all__ = [
    "ListingStore",
    "ListingValidationError",
    "StoreIOError",
    "UpsertReport",
    "ValidationResult",
    "upsert_listings",
    "validate_listing",
]
