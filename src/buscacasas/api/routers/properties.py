"""Stored listing endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from ...models.property import Currency, Listing, PropertyQuery, PropertyType
from ...storage.store import ListingStore
from ..deps import get_store

router = APIRouter()
logger = logging.getLogger(__name__)


class PropertyListResponse(BaseModel):
    """Response containing a page of stored listings."""
    listings: list[Listing]
    count: int
    limit: int
    offset: int


@router.get("", response_model=PropertyListResponse)
def list_properties(
    department: Optional[str] = Query(default=None),
    neighborhood: Optional[str] = Query(default=None),
    property_type: Optional[PropertyType] = Query(default=None, alias="type"),
    min_price: Optional[float] = Query(default=None, ge=0),
    max_price: Optional[float] = Query(default=None, ge=0),
    currency: Optional[Currency] = Query(default=None),
    min_bedrooms: Optional[int] = Query(default=None, ge=0),
    max_bedrooms: Optional[int] = Query(default=None, ge=0),
    min_bathrooms: Optional[int] = Query(default=None, ge=0),
    min_area: Optional[float] = Query(default=None, ge=0),
    max_area: Optional[float] = Query(default=None, ge=0),
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    store: ListingStore = Depends(get_store),
) -> PropertyListResponse:
    """Search active listings, newest first."""
    query = PropertyQuery(
        department=department,
        neighborhood=neighborhood,
        property_type=property_type,
        min_price=min_price,
        max_price=max_price,
        currency=currency,
        min_bedrooms=min_bedrooms,
        max_bedrooms=max_bedrooms,
        min_bathrooms=min_bathrooms,
        min_area=min_area,
        max_area=max_area,
    )
    listings = store.query(query, limit=limit, offset=offset)
    return PropertyListResponse(
        listings=listings, count=len(listings), limit=limit, offset=offset,
    )


@router.get("/{listing_id}", response_model=Listing)
def get_property(listing_id: str, store: ListingStore = Depends(get_store)) -> Listing:
    """Get one listing by its global id (e.g. ``ml_MLU123456``)."""
    listing = store.get(listing_id)
    if listing is None:
        raise HTTPException(status_code=404, detail="Property not found")
    return listing
