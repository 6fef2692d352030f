"""Store statistics endpoint."""

from fastapi import APIRouter, Depends

from ...storage.store import ListingStore
from ..deps import get_store

router = APIRouter()


@router.get("")
def get_stats(store: ListingStore = Depends(get_store)) -> dict:
    """Return active listing counts: total, per source and per department."""
    return store.stats()
