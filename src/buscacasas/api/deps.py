"""Shared request dependencies."""

from fastapi import Request

from ..collectors.aggregator import Aggregator
from ..storage.store import ListingStore


def get_store(request: Request) -> ListingStore:
    """Return the app's listing store, opening the default one on first use."""
    if request.app.state.store is None:
        request.app.state.store = ListingStore()
    return request.app.state.store


def get_aggregator(request: Request) -> Aggregator:
    """Return the app's aggregator, bound to the app's store."""
    if request.app.state.aggregator is None:
        request.app.state.aggregator = Aggregator(store=get_store(request))
    return request.app.state.aggregator
