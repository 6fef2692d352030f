"""Source profiles and the collector error taxonomy.

Each listing site is described by a ``SourceProfile``: plain data holding
its selector tables, its search URL builder and its pagination controls.
The pipeline, extractor and pagination driver are generic and are
parametrised by a profile, so adding a site means adding one profile
module (see ``mercadolibre.py`` and ``infocasas.py``).

Selector tables are ordered: the first candidate that yields something
wins, later ones are fallbacks for older or alternative markup.
"""

from dataclasses import dataclass, field
from typing import Callable, Optional

from ..models.property import SearchFilters, Source


@dataclass(frozen=True)
class SourceProfile:
    """Everything the generic pipeline needs to know about one site.

    Attributes:
        source: Which site this profile describes
        base_url: Scheme + host used to absolutize relative links
        search_url: Builds a search URL from filters
        container_selectors: Candidates for the listing card elements
        link_selectors: Candidates for the anchor holding title and URL
        title_selectors: Fallback candidates for the title text
        price_selectors: Candidates for the price text
        currency_selectors: Candidates for a separate currency symbol element
        location_selectors: Candidates for the "neighborhood, department" text
        image_selectors: Candidates for the card image
        next_page_selectors: Candidates for an enabled "next page" control
        id_pattern: Regex whose first group is the source-native id in a URL
    """

    source: Source
    base_url: str
    search_url: Callable[[SearchFilters], str]
    container_selectors: tuple[str, ...]
    link_selectors: tuple[str, ...]
    title_selectors: tuple[str, ...]
    price_selectors: tuple[str, ...]
    location_selectors: tuple[str, ...]
    image_selectors: tuple[str, ...]
    next_page_selectors: tuple[str, ...]
    currency_selectors: tuple[str, ...] = ()
    id_pattern: Optional[str] = None
    image_attributes: tuple[str, ...] = field(default=("src", "data-src"))

    @property
    def name(self) -> str:
        return self.source.value

    def generate_search_url(self, filters: Optional[SearchFilters] = None) -> str:
        """Build the search URL for the given filters (all listings if None)."""
        return self.search_url(filters or SearchFilters())


class DataSourceError(Exception):
    """Base exception for data source errors.

    Attributes:
        source: Name of the data source that raised the error
        message: Error description
    """

    def __init__(self, source: str, message: str):
        self.source = source
        self.message = message
        super().__init__(f"[{source}] {message}")


class NavigationTimeout(DataSourceError):
    """Raised when a page did not finish loading within its timeout."""

    def __init__(self, source: str, url: str, timeout: float):
        self.url = url
        self.timeout = timeout
        super().__init__(source, f"Navigation to {url} timed out after {timeout:g}s")


class PipelineFatal(DataSourceError):
    """Raised when a source pipeline cannot continue (e.g. search page unreachable)."""
