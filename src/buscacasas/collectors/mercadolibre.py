"""MercadoLibre Uruguay (listado.mercadolibre.com.uy) source profile.

MercadoLibre renders results client-side and has shipped several card
layouts over time (classic ``ui-search-*`` cards and the newer
``poly-component`` cards), hence the long fallback lists below.
"""

import logging
from urllib.parse import urlencode

from ..models.property import PropertyType, SearchFilters, Source
from .base import SourceProfile

logger = logging.getLogger(__name__)

BASE_URL = "https://listado.mercadolibre.com.uy"
SEARCH_PATH = "/inmuebles/_NoIndex_True"

# Mapping of property types to MercadoLibre category ids
PROPERTY_TYPE_MAPPING = {
    PropertyType.CASA: "MUY1459",
    PropertyType.APARTAMENTO: "MUY1458",
    PropertyType.PH: "MUY1460",
    PropertyType.TERRENO: "MUY1461",
}


def generate_search_url(filters: SearchFilters) -> str:
    """Build a MercadoLibre search URL.

    Example:
        >>> generate_search_url(SearchFilters(property_type="casa", min_price=50000, currency="USD"))
        'https://listado.mercadolibre.com.uy/inmuebles/_NoIndex_True?category=MUY1459&price=50000-*&currency=USD'
    """
    params: dict[str, str] = {}

    if filters.property_type:
        category = PROPERTY_TYPE_MAPPING.get(filters.property_type)
        if category:
            params["category"] = category
        else:
            logger.debug(f"No MercadoLibre category for {filters.property_type.value}")

    if filters.min_price or filters.max_price:
        low = str(filters.min_price) if filters.min_price else "*"
        high = str(filters.max_price) if filters.max_price else "*"
        params["price"] = f"{low}-{high}"

    if filters.currency:
        params["currency"] = filters.currency.value

    if filters.department:
        params["state"] = filters.department

    url = f"{BASE_URL}{SEARCH_PATH}"
    if params:
        url += "?" + urlencode(params, safe="*")
    return url


MERCADOLIBRE = SourceProfile(
    source=Source.MERCADOLIBRE,
    base_url="https://www.mercadolibre.com.uy",
    search_url=generate_search_url,
    container_selectors=(
        ".ui-search-result",
        ".ui-search-results__item",
        ".ui-search-item",
        ".ui-search-layout__item",
        ".ui-search-results .ui-search-layout__item",
        '[data-testid="result"]',
    ),
    link_selectors=(
        'a[href*="MLU"]',
        ".ui-search-item__title a",
        "a.poly-component__title",
        "h2 a",
    ),
    title_selectors=(
        ".ui-search-item__title",
        ".poly-component__title",
        "h2",
        "h3",
    ),
    price_selectors=(
        ".andes-money-amount__fraction",
        ".price-tag-amount",
        '[class*="price"]',
    ),
    currency_selectors=(
        ".andes-money-amount__currency-symbol",
        ".price-tag-symbol",
        '[class*="currency"]',
    ),
    location_selectors=(
        ".ui-search-item__group__element.ui-search-item__location",
        ".ui-search-item__location",
        ".poly-component__location",
        '[class*="location"]',
    ),
    image_selectors=(
        ".ui-search-result-image__element img",
        "img.poly-component__picture",
        "img",
    ),
    next_page_selectors=(
        ".andes-pagination__button--next:not(.andes-pagination__button--disabled) a",
        ".andes-pagination__button--next:not(.andes-pagination__button--disabled)",
        'a[title="Siguiente"]',
    ),
    id_pattern=r"(MLU)-?(\d+)",
    image_attributes=("data-src", "src"),
)
