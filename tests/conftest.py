"""Pytest fixtures and test utilities."""

from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

import pytest
from bs4 import BeautifulSoup

from buscacasas.collectors.base import DataSourceError, NavigationTimeout
from buscacasas.collectors.session import RenderingSession
from buscacasas.config import Settings
from buscacasas.models.property import Currency, PartialListing, PropertyType, Source
from buscacasas.storage.store import ListingStore

ML_NEXT = (
    '<ul class="andes-pagination">'
    '<li class="andes-pagination__button andes-pagination__button--next">'
    '<a href="https://listado.mercadolibre.com.uy/inmuebles/_Desde_49">Siguiente</a>'
    "</li></ul>"
)

IC_NEXT = '<div class="pagination"><a class="next" href="?pagina=2">Siguiente</a></div>'


def ml_card(
    number: int,
    title: str = "Apartamento en Pocitos",
    price: Optional[str] = "120.500",
    symbol: str = "U$S",
    location: str = "Pocitos, Montevideo",
    attributes: str = "2 dormitorios | 1 baño | 65 m² totales",
) -> str:
    """One MercadoLibre result card."""
    price_html = (
        f'<span class="andes-money-amount__currency-symbol">{symbol}</span>'
        f'<span class="andes-money-amount__fraction">{price}</span>'
        if price is not None
        else ""
    )
    return (
        '<li class="ui-search-layout__item">'
        f'<a href="https://apartamento.mercadolibre.com.uy/MLU-{number}-apartamento-_JM#position=1">'
        f'<h2 class="ui-search-item__title">{title}</h2></a>'
        f"{price_html}"
        f'<ul class="ui-search-card-attributes"><li>{attributes}</li></ul>'
        f'<span class="ui-search-item__group__element ui-search-item__location">{location}</span>'
        f'<img data-src="https://http2.mlstatic.com/D_{number}.jpg" src="data:image/gif;base64,R0lGOD">'
        "</li>"
    )


def ic_card(
    slug: str,
    title: str = "Casa en Carrasco con piscina",
    price: str = "U$S 450.000",
    location: str = "Carrasco, Montevideo",
    details: str = "3 dormitorios 2 baños 250 m² 2 garajes parrillero",
) -> str:
    """One InfoCasas result card (relative link, like the site emits)."""
    return (
        f'<div class="card-property" data-property-id="{slug}">'
        f'<a href="/inmueble/{slug}"><h3>{title}</h3></a>'
        f'<div class="price">{price}</div>'
        f'<div class="location">{location}</div>'
        f"<p>{details}</p>"
        f'<img src="https://cdn.infocasas.com.uy/{slug}.jpg">'
        "</div>"
    )


def page(cards: Sequence[str], next_control: str = "") -> str:
    return (
        "<html><body><ol class=\"ui-search-layout\">"
        + "".join(cards)
        + "</ol>"
        + next_control
        + "</body></html>"
    )


class FakeSession(RenderingSession):
    """Rendering session serving canned HTML pages.

    Clicking a "next" control moves to the following page; once the last
    page is reached it is served again for every further click.
    """

    def __init__(
        self,
        source: str,
        pages: Sequence[str],
        navigate_error: Optional[Exception] = None,
        snapshot_error_on_page: Optional[int] = None,
        click_succeeds: bool = True,
    ):
        self.source = source
        self.pages = list(pages)
        self.navigate_error = navigate_error
        self.snapshot_error_on_page = snapshot_error_on_page
        self.click_succeeds = click_succeeds
        self.index = 0
        self.visited: list[str] = []
        self.clicks = 0
        self.closed = False

    @property
    def _soup(self) -> BeautifulSoup:
        return BeautifulSoup(self.pages[min(self.index, len(self.pages) - 1)], "html.parser")

    async def navigate(self, url: str, timeout: float) -> None:
        self.visited.append(url)
        if self.navigate_error is not None:
            raise self.navigate_error

    async def wait_for_any(self, selectors, timeout):
        soup = self._soup
        for selector in selectors:
            if soup.select_one(selector) is not None:
                return selector
        return None

    async def snapshot(self) -> BeautifulSoup:
        if self.snapshot_error_on_page == self.index + 1:
            raise DataSourceError(self.source, "page crashed")
        return self._soup

    async def is_clickable(self, selector: str) -> bool:
        return self._soup.select_one(selector) is not None

    async def click_and_wait(self, selector: str, timeout: float) -> bool:
        self.clicks += 1
        if not self.click_succeeds:
            return False
        self.index += 1
        return True

    async def close(self) -> None:
        self.closed = True


def session_factory(session: RenderingSession):
    """Session factory handing out ``session`` and closing it on exit."""

    @asynccontextmanager
    async def factory():
        try:
            yield session
        finally:
            await session.close()

    return factory


class StepClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: Optional[datetime] = None, step: timedelta = timedelta(seconds=1)):
        self.now = start or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now += self.step
        return current


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings with no delays and short timeouts."""
    return Settings(
        database_path=tmp_path / "listings.db",
        navigation_timeout=1,
        selector_timeout=1,
        next_page_timeout=1,
        page_delay=0,
        settle_delay=0,
        max_pages=2,
    )


@pytest.fixture
def store(tmp_path) -> ListingStore:
    """Empty store in a temporary SQLite file."""
    return ListingStore(tmp_path / "listings.db", clock=StepClock())


@pytest.fixture
def navigation_timeout() -> NavigationTimeout:
    return NavigationTimeout("mercadolibre", "https://listado.mercadolibre.com.uy/inmuebles", 1)


@pytest.fixture
def sample_partial() -> PartialListing:
    """Sample MercadoLibre partial listing, as produced by extraction."""
    scraped_at = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
    return PartialListing(
        id="ml_MLU123456789",
        source=Source.MERCADOLIBRE,
        source_id="MLU123456789",
        url="https://apartamento.mercadolibre.com.uy/MLU-123456789-apartamento-_JM",
        title="Apartamento en Pocitos",
        property_type=PropertyType.APARTAMENTO,
        department="Montevideo",
        neighborhood="Pocitos",
        price=120500,
        currency=Currency.USD,
        bedrooms=2,
        bathrooms=1,
        total_area=65,
        images=["https://http2.mlstatic.com/D_123456789.jpg"],
        scraped_at=scraped_at,
        updated_at=scraped_at,
    )


@pytest.fixture
def sample_ic_partial() -> PartialListing:
    """Sample InfoCasas partial listing."""
    return PartialListing(
        id="ic_casa-en-carrasco-4411",
        source=Source.INFOCASAS,
        source_id="casa-en-carrasco-4411",
        url="https://www.infocasas.com.uy/inmueble/casa-en-carrasco-4411",
        title="Casa en Carrasco",
        property_type=PropertyType.CASA,
        department="Montevideo",
        neighborhood="Carrasco",
        price=450000,
        currency=Currency.USD,
        bedrooms=3,
        bathrooms=2,
        total_area=250,
        has_pool=True,
    )


@pytest.fixture
def sample_canelones_partial() -> PartialListing:
    """Sample listing outside Montevideo priced in pesos."""
    return PartialListing(
        id="ic_apartamento-en-atlantida-77",
        source=Source.INFOCASAS,
        source_id="apartamento-en-atlantida-77",
        url="https://www.infocasas.com.uy/inmueble/apartamento-en-atlantida-77",
        title="Apartamento en Atlántida",
        department="Canelones",
        neighborhood="Atlántida",
        price=2300000,
        currency=Currency.UYU,
        bedrooms=1,
    )
