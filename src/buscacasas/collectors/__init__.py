"""Listing collection pipeline.

This module scrapes real estate listings from several Uruguayan sites
(MercadoLibre, InfoCasas) with a headless browser, one pipeline per site.

Main Components:
    - SourceProfile: Selector tables, URL builder and pagination controls of a site
    - ListingExtractor: Turns a rendered results page into partial listings
    - PaginationDriver: Moves a browser session to the next results page
    - SourcePipeline: navigate -> extract -> paginate for one site
    - Aggregator: Runs the pipelines concurrently and saves the results

Example usage:
    from buscacasas.collectors import Aggregator
    from buscacasas.storage import ListingStore

    aggregator = Aggregator(store=ListingStore())
    result = await aggregator.run(source="both", max_pages=2, save=True)
"""

from .aggregator import PROFILES, AggregateResult, Aggregator, RunStatus, SourceStatus
from .base import DataSourceError, NavigationTimeout, PipelineFatal, SourceProfile
from .extractor import ListingExtractor
from .infocasas import INFOCASAS
from .mercadolibre import MERCADOLIBRE
from .pagination import PaginationDriver
from .pipeline import PipelineResult, PipelineState, SourcePipeline
from .session import BrowserSession, RenderingSession

__all__ = [
    "Aggregator",
    "AggregateResult",
    "RunStatus",
    "SourceStatus",
    "PROFILES",
    "SourceProfile",
    "MERCADOLIBRE",
    "INFOCASAS",
    "DataSourceError",
    "NavigationTimeout",
    "PipelineFatal",
    "ListingExtractor",
    "PaginationDriver",
    "SourcePipeline",
    "PipelineResult",
    "PipelineState",
    "RenderingSession",
    "BrowserSession",
]
