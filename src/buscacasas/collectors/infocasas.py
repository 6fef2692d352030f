"""InfoCasas (www.infocasas.com.uy) source profile."""

import logging
from urllib.parse import urlencode

from ..models.property import Operation, PropertyType, SearchFilters, Source
from .base import SourceProfile

logger = logging.getLogger(__name__)

BASE_URL = "https://www.infocasas.com.uy"

# Mapping of property types to InfoCasas "tipo" values
PROPERTY_TYPE_MAPPING = {
    PropertyType.CASA: "casa",
    PropertyType.APARTAMENTO: "apartamento",
    PropertyType.PH: "ph",
    PropertyType.TERRENO: "terreno",
    PropertyType.LOCAL_COMERCIAL: "local",
}


def generate_search_url(filters: SearchFilters) -> str:
    """Build an InfoCasas search URL; the operation selects the path."""
    operation = filters.operation or Operation.SALE
    params: dict[str, str] = {}

    if filters.property_type:
        tipo = PROPERTY_TYPE_MAPPING.get(filters.property_type)
        if tipo:
            params["tipo"] = tipo
        else:
            logger.debug(f"No InfoCasas type for {filters.property_type.value}")

    if filters.min_price:
        params["precio_desde"] = str(filters.min_price)
    if filters.max_price:
        params["precio_hasta"] = str(filters.max_price)
    if filters.currency:
        params["moneda"] = filters.currency.value
    if filters.department:
        params["departamento"] = filters.department.lower()

    url = f"{BASE_URL}/{operation.value}"
    if params:
        url += "?" + urlencode(params)
    return url


INFOCASAS = SourceProfile(
    source=Source.INFOCASAS,
    base_url=BASE_URL,
    search_url=generate_search_url,
    container_selectors=(
        ".card-property",
        ".property-card",
        ".listing-item",
        ".property-item",
        "[data-property-id]",
        ".inmueble",
    ),
    link_selectors=(
        'a[href*="/inmueble/"]',
        'a[href*="/propiedad/"]',
        "h3 a",
        ".title a",
        ".property-title a",
    ),
    title_selectors=(
        ".title",
        ".property-title",
        "h3",
        "h4",
    ),
    price_selectors=(
        ".price",
        ".precio",
        ".property-price",
        ".card-price",
        '[class*="price"]',
        '[class*="precio"]',
    ),
    location_selectors=(
        ".location",
        ".ubicacion",
        ".property-location",
        ".address",
        '[class*="location"]',
        '[class*="ubicacion"]',
    ),
    image_selectors=(
        "img",
    ),
    next_page_selectors=(
        ".pagination .next:not(.disabled)",
        ".paginacion .siguiente:not(.deshabilitado)",
        'a[aria-label="Next"]',
        ".page-next",
        ".btn-next",
    ),
)
