"""Multi-source scraping orchestrator.

This module provides the Aggregator class which runs the source pipelines
(concurrently, one browser session each), merges what they gathered and
hands it to the upsert layer. A failing source never hides the results
of the others: every source gets its own status entry.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..config import Settings, config
from ..models.property import PartialListing, SearchFilters, Source
from ..storage.store import ListingStore
from ..storage.upsert import UpsertReport, upsert_listings
from .base import SourceProfile
from .infocasas import INFOCASAS
from .mercadolibre import MERCADOLIBRE
from .pipeline import PipelineResult, SourcePipeline

logger = logging.getLogger(__name__)

PROFILES: dict[Source, SourceProfile] = {
    Source.MERCADOLIBRE: MERCADOLIBRE,
    Source.INFOCASAS: INFOCASAS,
}


class RunStatus(str, Enum):
    COMPLETED = "completed"
    PARTIAL = "partial"
    ERROR = "error"
    SKIPPED = "skipped"


@dataclass
class SourceStatus:
    """Outcome of one source within an aggregate run."""

    status: RunStatus = RunStatus.SKIPPED
    count: int = 0
    pages: int = 0
    error: Optional[str] = None


@dataclass
class AggregateResult:
    statuses: dict[str, SourceStatus]
    listings: list[PartialListing] = field(default_factory=list)
    report: Optional[UpsertReport] = None
    deactivated: int = 0

    @property
    def total_found(self) -> int:
        return len(self.listings)

    @property
    def failed_sources(self) -> list[str]:
        return [name for name, status in self.statuses.items() if status.status == RunStatus.ERROR]


def resolve_sources(selection: str) -> list[Source]:
    """Map a selection ("ml", "ic", "both", or a source name) to sources.

    Raises:
        ValueError: For an unknown selection
    """
    selection = (selection or "both").strip().lower()
    if selection in ("both", "all"):
        return list(PROFILES)
    return [Source.from_tag(selection)]


class Aggregator:
    """Runs source pipelines and stores what they find.

    Example:
        aggregator = Aggregator(store=ListingStore())
        result = await aggregator.run(source="both", max_pages=2, save=True)
        for name, status in result.statuses.items():
            print(name, status.status, status.count)
    """

    def __init__(
        self,
        pipelines: Optional[dict[Source, SourcePipeline]] = None,
        store: Optional[ListingStore] = None,
        settings: Optional[Settings] = None,
    ):
        """Initialize the Aggregator.

        Args:
            pipelines: Pipeline per source. Defaults to a browser-backed
                       pipeline for every known source.
            store: Store used when saving results
            settings: Settings shared by the default pipelines
        """
        self.settings = settings or config
        self.store = store
        if pipelines is None:
            pipelines = {
                source: SourcePipeline(profile, settings=self.settings)
                for source, profile in PROFILES.items()
            }
        self.pipelines = pipelines

    async def _run_pipeline(
        self,
        pipeline: SourcePipeline,
        search_url: Optional[str],
        filters: Optional[SearchFilters],
        max_pages: Optional[int],
        deadline: Optional[float],
    ) -> tuple[SourceStatus, Optional[PipelineResult]]:
        try:
            result = await pipeline.run(
                search_url=search_url,
                filters=filters,
                max_pages=max_pages,
                deadline=deadline,
            )
        except Exception as e:
            logger.error(f"Source {pipeline.name} failed: {e}")
            return SourceStatus(status=RunStatus.ERROR, error=str(e)), None

        error = result.error
        if error is None and result.empty_pages:
            error = f"no listings rendered on {result.empty_pages} of {result.pages_visited} pages"
        partial = result.interrupted or result.empty_pages > 0
        return (
            SourceStatus(
                status=RunStatus.PARTIAL if partial else RunStatus.COMPLETED,
                count=len(result.listings),
                pages=result.pages_visited,
                error=error,
            ),
            result,
        )

    async def run(
        self,
        source: str = "both",
        max_pages: Optional[int] = None,
        filters: Optional[SearchFilters] = None,
        search_url: Optional[str] = None,
        save: bool = False,
        timeout: Optional[float] = None,
        deactivate_missing: bool = False,
    ) -> AggregateResult:
        """Scrape the selected sources and optionally save the results.

        Args:
            source: "ml", "ic" or "both"
            max_pages: Page cap per source (defaults to settings.max_pages)
            filters: Filters used to build each source's search URL
            search_url: Explicit search URL (only sensible with one source)
            save: Upsert the results into the store
            timeout: Aggregate time budget in seconds; pipelines finish their
                     current page and stop once it is spent
            deactivate_missing: After saving, soft-delete stored listings of
                                fully walked sources that were not seen

        Returns:
            AggregateResult with per-source statuses and merged listings

        Raises:
            ValueError: If ``source`` is unknown, ``timeout`` is not positive
                or saving without a store
            StoreIOError: If saving fails
        """
        selected = resolve_sources(source)
        if save and self.store is None:
            raise ValueError("Cannot save results without a store")

        if timeout is not None and timeout <= 0:
            raise ValueError(f"Time budget must be positive, got {timeout:g}s")
        timeout = timeout if timeout is not None else self.settings.run_timeout
        deadline = time.monotonic() + timeout if timeout else None

        statuses = {s.value: SourceStatus() for s in self.pipelines}
        runnable = [s for s in selected if s in self.pipelines]
        for missing in set(selected) - set(runnable):
            statuses[missing.value] = SourceStatus(
                status=RunStatus.ERROR, error="No pipeline configured"
            )

        logger.info(f"Scraping sources: {', '.join(s.value for s in runnable)}")
        outcomes = await asyncio.gather(
            *(
                self._run_pipeline(self.pipelines[s], search_url, filters, max_pages, deadline)
                for s in runnable
            )
        )

        result = AggregateResult(statuses=statuses)
        merged: dict[str, PartialListing] = {}
        unidentified: list[PartialListing] = []
        exhausted: list[tuple[Source, PipelineResult]] = []
        for s, (status, pipeline_result) in zip(runnable, outcomes):
            statuses[s.value] = status
            if pipeline_result is None:
                continue
            for listing in pipeline_result.listings:
                if listing.id:
                    merged[listing.id] = listing
                else:
                    unidentified.append(listing)
            if status.status == RunStatus.COMPLETED and pipeline_result.exhausted:
                exhausted.append((s, pipeline_result))
        result.listings = list(merged.values()) + unidentified

        logger.info(f"Total: {result.total_found} listings found")

        if save:
            # sqlite3 calls block, keep them off the event loop
            result.report = await asyncio.to_thread(upsert_listings, self.store, result.listings)
            if deactivate_missing:
                for s, pipeline_result in exhausted:
                    seen = [l.source_id for l in pipeline_result.listings if l.source_id]
                    result.deactivated += await asyncio.to_thread(
                        self.store.deactivate_missing, s, seen
                    )

        return result
