"""Field normalization helpers.

Pure functions turning raw strings scraped from listing cards into typed
values. None of them raise: anything that cannot be parsed comes back as
None, except currency and property type which fall back to UYU and
apartamento respectively.
"""

import re
from typing import Optional
from urllib.parse import urljoin, urlparse

from ..models.property import Currency, PropertyType, Source

# Explicit dollar markers. A bare "$" is the peso sign in Uruguay.
_USD_PATTERN = re.compile(r"U\$S|U\$D|US\$|USD|D[oó]lares", re.IGNORECASE)

_PRICE_PATTERN = re.compile(r"\d[\d.,]*")

# "1.200" is twelve hundred, "85,5" and "85.5" are decimals
_NUMBER = r"(?<![\d.,])(\d{1,3}(?:\.\d{3})+|\d+(?:[.,]\d+)?)"

_TOTAL_AREA_PATTERN = re.compile(_NUMBER + r"\s*m(?:²|2)(?!\w)", re.IGNORECASE)
_BUILT_AREA_PATTERN = re.compile(
    _NUMBER + r"\s*m(?:²|2)\s*(?:edificad|construid)", re.IGNORECASE
)
_BEDROOMS_PATTERN = re.compile(
    r"(\d+)\s*(?:dormitorios?|dorm|habitaciones?|hab)", re.IGNORECASE
)
_BATHROOMS_PATTERN = re.compile(r"(\d+)\s*ba[ñn]os?", re.IGNORECASE)
_GARAGES_PATTERN = re.compile(r"(\d+)\s*(?:garajes?|cocheras?)", re.IGNORECASE)

# Checked in order, first hit wins
PROPERTY_TYPE_KEYWORDS: tuple[tuple[re.Pattern, PropertyType], ...] = (
    (re.compile(r"\bcasas?\b", re.IGNORECASE), PropertyType.CASA),
    (re.compile(r"\bph\b", re.IGNORECASE), PropertyType.PH),
    (re.compile(r"\bterrenos?\b", re.IGNORECASE), PropertyType.TERRENO),
    (re.compile(r"\blocal(?:es)?\b", re.IGNORECASE), PropertyType.LOCAL_COMERCIAL),
    (re.compile(r"\boficinas?\b", re.IGNORECASE), PropertyType.OFICINA),
)

AMENITY_KEYWORDS: dict[str, re.Pattern] = {
    "has_balcony": re.compile(r"balc[oó]n", re.IGNORECASE),
    "has_barbecue": re.compile(r"parrillero|barbacoa|parrilla", re.IGNORECASE),
    "has_doorman": re.compile(r"portero|porter[ií]a|vigilancia", re.IGNORECASE),
    "has_elevator": re.compile(r"ascensor", re.IGNORECASE),
    "has_pool": re.compile(r"piscina", re.IGNORECASE),
    "has_gym": re.compile(r"gimnasio|\bgym\b", re.IGNORECASE),
}

DEFAULT_CURRENCY = Currency.UYU
DEFAULT_PROPERTY_TYPE = PropertyType.APARTAMENTO


def clean_text(text: Optional[str]) -> Optional[str]:
    """Collapse whitespace; empty strings become None."""
    if not text:
        return None
    cleaned = " ".join(text.split())
    return cleaned or None


def parse_price(text: Optional[str]) -> Optional[int]:
    """Parse the first numeric run of a price string.

    Both "." and "," are treated as thousands separators, so
    "U$S 120.500" is 120500 and "$ 2.300.000" is 2300000.
    """
    if not text:
        return None
    match = _PRICE_PATTERN.search(text)
    if not match:
        return None
    digits = re.sub(r"[.,]", "", match.group(0))
    return int(digits) if digits else None


def detect_currency(text: Optional[str]) -> Currency:
    """Detect the currency from a price or currency-symbol string."""
    if text and _USD_PATTERN.search(text):
        return Currency.USD
    return DEFAULT_CURRENCY


def parse_location(
    text: Optional[str], default_department: str = "Montevideo"
) -> tuple[str, Optional[str]]:
    """Split "Neighborhood, ..., Department" into (department, neighborhood)."""
    parts = [part.strip() for part in (text or "").split(",")]
    parts = [part for part in parts if part]
    if not parts:
        return default_department, None
    department = parts[-1]
    neighborhood = parts[0] if len(parts) > 1 else None
    return department, neighborhood


def _to_number(raw: str) -> float:
    if re.fullmatch(r"\d{1,3}(?:\.\d{3})+", raw):
        return float(raw.replace(".", ""))
    return float(raw.replace(",", "."))


def _first_int(pattern: re.Pattern, text: Optional[str]) -> Optional[int]:
    if not text:
        return None
    match = pattern.search(text)
    return int(match.group(1)) if match else None


def _first_number(pattern: re.Pattern, text: Optional[str]) -> Optional[float]:
    if not text:
        return None
    match = pattern.search(text)
    if not match:
        return None
    try:
        return _to_number(match.group(1))
    except ValueError:
        return None


def extract_total_area(text: Optional[str]) -> Optional[float]:
    """First "N m²" / "N m2" in the text."""
    return _first_number(_TOTAL_AREA_PATTERN, text)


def extract_built_area(text: Optional[str]) -> Optional[float]:
    """First "N m² edificados/construidos" in the text."""
    return _first_number(_BUILT_AREA_PATTERN, text)


def extract_bedrooms(text: Optional[str]) -> Optional[int]:
    return _first_int(_BEDROOMS_PATTERN, text)


def extract_bathrooms(text: Optional[str]) -> Optional[int]:
    return _first_int(_BATHROOMS_PATTERN, text)


def extract_garages(text: Optional[str]) -> Optional[int]:
    return _first_int(_GARAGES_PATTERN, text)


def detect_amenities(text: Optional[str]) -> dict[str, bool]:
    """Return the amenity flags mentioned in the text.

    Only positive mentions are reported; absence of a keyword means
    "unknown", not "absent".
    """
    if not text:
        return {}
    return {flag: True for flag, pattern in AMENITY_KEYWORDS.items() if pattern.search(text)}


def infer_property_type(title: Optional[str], url: Optional[str] = None) -> PropertyType:
    """Guess the property type from keywords in the title and URL path.

    Only the URL path is scanned so that host names such as
    infocasas.com.uy do not count as a "casa" hit.
    """
    haystack = " ".join(
        part for part in (title, urlparse(url).path if url else None) if part
    )
    haystack = haystack.replace("_", " ")
    for pattern, property_type in PROPERTY_TYPE_KEYWORDS:
        if pattern.search(haystack):
            return property_type
    return DEFAULT_PROPERTY_TYPE


def compute_price_per_area(
    price: Optional[float], total_area: Optional[float]
) -> Optional[float]:
    if not price or not total_area or price <= 0 or total_area <= 0:
        return None
    return round(price / total_area, 2)


def absolutize_url(href: Optional[str], base_url: str) -> Optional[str]:
    """Resolve a possibly relative link against the source's base URL."""
    href = (href or "").strip()
    if not href or href.startswith(("javascript:", "#", "mailto:")):
        return None
    return urljoin(base_url.rstrip("/") + "/", href)


def build_source_id(url: Optional[str], id_pattern: Optional[str] = None) -> Optional[str]:
    """Derive the source-native id of a listing from its URL.

    Query strings and fragments are ignored. When ``id_pattern`` matches
    the path its groups are concatenated (so "MLU-123" and "MLU123" give the
    same id); otherwise the last non-empty path segment is used.
    """
    if not url:
        return None
    path = urlparse(url.strip()).path
    if id_pattern:
        match = re.search(id_pattern, path, re.IGNORECASE)
        if match:
            groups = [group for group in match.groups() if group] or [match.group(0)]
            return "".join(groups).upper()
    segments = [segment for segment in path.split("/") if segment.strip()]
    return segments[-1] if segments else None


def build_listing_id(source: Source, source_id: str) -> str:
    """Global id: short source tag plus the source-native id (``ml_MLU123``)."""
    return f"{source.tag}_{source_id}"
