"""Data models for buscacasas."""

from buscacasas.models.property import (
    Currency,
    Listing,
    Operation,
    PartialListing,
    PropertyQuery,
    PropertyType,
    SearchFilters,
    Source,
)

__all__ = [
    "Source",
    "PropertyType",
    "Currency",
    "Operation",
    "PartialListing",
    "Listing",
    "SearchFilters",
    "PropertyQuery",
]
