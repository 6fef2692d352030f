"""Per-source scraping pipeline.

A pipeline owns one rendering session for one run and walks it through

    IDLE -> NAVIGATING -> EXTRACTING -> (PAGINATING -> EXTRACTING)* -> DONE

Only the initial navigation can end a run with an error (``PipelineFatal``).
Later problems (no cards rendered, next page not loading, a broken page)
end the run early with whatever was gathered so far.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..config import Settings, config
from ..models.property import PartialListing, SearchFilters
from .base import DataSourceError, PipelineFatal, SourceProfile
from .extractor import ListingExtractor
from .pagination import PaginationDriver
from .session import BrowserSession, RenderingSession, SessionFactory

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    IDLE = "idle"
    NAVIGATING = "navigating"
    EXTRACTING = "extracting"
    PAGINATING = "paginating"
    DONE = "done"


@dataclass
class PipelineResult:
    """Outcome of one pipeline run.

    ``interrupted`` is set when the run stopped before pagination was
    exhausted (time budget spent or a page failed); ``error`` then says why.
    ``exhausted`` is set when the source ran out of result pages before the
    page cap, i.e. every listing it offers for the search was seen. A run
    with any page on which no listing card rendered (``empty_pages``) is
    never exhausted: a blocked page or changed markup looks the same.
    """

    source: str
    search_url: str
    listings: list[PartialListing] = field(default_factory=list)
    pages_visited: int = 0
    interrupted: bool = False
    exhausted: bool = False
    empty_pages: int = 0
    error: Optional[str] = None


class SourcePipeline:
    """Navigate, extract and paginate through one source's search results.

    Example:
        pipeline = SourcePipeline(MERCADOLIBRE)
        result = await pipeline.run(filters=SearchFilters(department="Montevideo"))
        print(len(result.listings))
    """

    def __init__(
        self,
        profile: SourceProfile,
        settings: Optional[Settings] = None,
        session_factory: Optional[SessionFactory] = None,
        extractor: Optional[ListingExtractor] = None,
    ):
        self.profile = profile
        self.settings = settings or config
        self._session_factory = session_factory or (
            lambda: BrowserSession.open(profile.name, self.settings)
        )
        self.extractor = extractor or ListingExtractor(
            profile, default_department=self.settings.default_department
        )
        self.state = PipelineState.IDLE

    @property
    def name(self) -> str:
        return self.profile.name

    def build_search_url(
        self,
        search_url: Optional[str] = None,
        filters: Optional[SearchFilters] = None,
    ) -> str:
        """Explicit URL wins; otherwise generate one from the filters."""
        return search_url or self.profile.generate_search_url(filters)

    async def _extract_current_page(
        self, session: RenderingSession
    ) -> Optional[list[PartialListing]]:
        """Listings on the current page, or None when no card rendered."""
        selector = await session.wait_for_any(
            self.profile.container_selectors, self.settings.selector_timeout
        )
        if selector is None:
            logger.warning(
                f"[{self.name}] No listings rendered within {self.settings.selector_timeout:g}s"
            )
            return None
        soup = await session.snapshot()
        return self.extractor.extract_page(soup)

    async def run(
        self,
        search_url: Optional[str] = None,
        filters: Optional[SearchFilters] = None,
        max_pages: Optional[int] = None,
        deadline: Optional[float] = None,
    ) -> PipelineResult:
        """Scrape up to ``max_pages`` result pages.

        Args:
            search_url: Explicit search URL (overrides ``filters``)
            filters: Filters used to generate the search URL
            max_pages: Page cap (defaults to settings.max_pages)
            deadline: ``time.monotonic()`` value after which no further
                      page is requested; the current page is still finished

        Returns:
            PipelineResult with the listings of every visited page

        Raises:
            PipelineFatal: If the search page itself could not be loaded
        """
        url = self.build_search_url(search_url, filters)
        max_pages = max_pages or self.settings.max_pages
        result = PipelineResult(source=self.name, search_url=url)
        seen_ids: set[str] = set()

        self.state = PipelineState.IDLE
        async with self._session_factory() as session:
            self.state = PipelineState.NAVIGATING
            logger.info(f"Scraping {self.name}: {url}")
            try:
                await session.navigate(url, self.settings.navigation_timeout)
            except DataSourceError as e:
                self.state = PipelineState.DONE
                raise PipelineFatal(self.name, e.message) from e
            if self.settings.settle_delay > 0:
                await asyncio.sleep(self.settings.settle_delay)

            driver = PaginationDriver(
                session,
                self.profile.next_page_selectors,
                max_pages=max_pages,
                timeout=self.settings.next_page_timeout,
                delay=self.settings.page_delay,
            )

            while True:
                self.state = PipelineState.EXTRACTING
                try:
                    page_listings = await self._extract_current_page(session)
                except DataSourceError as e:
                    logger.error(f"[{self.name}] Page {driver.current_page} failed: {e.message}")
                    result.interrupted = True
                    result.error = e.message
                    break

                result.pages_visited = driver.current_page
                if page_listings is None:
                    result.empty_pages += 1
                    page_listings = []
                new_count = 0
                for listing in page_listings:
                    if listing.id and listing.id in seen_ids:
                        continue
                    if listing.id:
                        seen_ids.add(listing.id)
                    result.listings.append(listing)
                    new_count += 1
                logger.info(
                    f"[{self.name}] Page {driver.current_page}: {len(page_listings)} cards, "
                    f"{new_count} new (total: {len(result.listings)})"
                )

                if deadline is not None and time.monotonic() >= deadline:
                    if not driver.at_limit:
                        logger.warning(f"[{self.name}] Time budget exhausted, stopping early")
                        result.interrupted = True
                        result.error = "time budget exhausted"
                    break

                self.state = PipelineState.PAGINATING
                if not await driver.advance():
                    result.exhausted = driver.stop_reason == "no_next" and not result.empty_pages
                    break

        self.state = PipelineState.DONE
        logger.info(f"[{self.name}] Total listings scraped: {len(result.listings)}")
        return result
