"""Listing data models.

Two shapes of the same record live here: ``PartialListing`` is what the
extractors accumulate while walking a results page (every field optional),
and ``Listing`` is the strict schema enforced at the storage boundary.
"""

from datetime import datetime
from enum import Enum
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator


class Source(str, Enum):
    """Supported listing sites."""

    MERCADOLIBRE = "mercadolibre"
    INFOCASAS = "infocasas"

    @property
    def tag(self) -> str:
        """Short prefix used to build global listing ids (``ml_``, ``ic_``)."""
        return _SOURCE_TAGS[self]

    @classmethod
    def from_tag(cls, tag: str) -> "Source":
        for source, source_tag in _SOURCE_TAGS.items():
            if source_tag == tag or source.value == tag:
                return source
        raise ValueError(f"Unknown source: {tag}")


_SOURCE_TAGS = {
    Source.MERCADOLIBRE: "ml",
    Source.INFOCASAS: "ic",
}


class PropertyType(str, Enum):
    """Property categories used across all sources."""

    CASA = "casa"
    APARTAMENTO = "apartamento"
    PH = "ph"
    TERRENO = "terreno"
    LOCAL_COMERCIAL = "local_comercial"
    OFICINA = "oficina"


class Currency(str, Enum):
    """Currencies listings are priced in."""

    UYU = "UYU"
    USD = "USD"


class Operation(str, Enum):
    """Kind of transaction a search targets."""

    SALE = "venta"
    RENT = "alquiler"


def _is_absolute_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class PartialListing(BaseModel):
    """A listing as scraped from a results page, before validation.

    Any field may be missing. Extractors fill what they can find and leave
    the rest as None; the upsert layer decides whether the record is usable.
    """

    id: str | None = None
    source: Source | None = None
    source_id: str | None = None
    url: str | None = None

    title: str | None = None
    description: str | None = None
    property_type: PropertyType | None = None

    department: str | None = None
    neighborhood: str | None = None
    address: str | None = None

    price: float | None = None
    currency: Currency | None = None
    price_per_area: float | None = None

    bedrooms: int | None = None
    bathrooms: int | None = None
    total_area: float | None = None
    built_area: float | None = None
    garages: int | None = None

    has_balcony: bool | None = None
    has_barbecue: bool | None = None
    has_doorman: bool | None = None
    has_elevator: bool | None = None
    has_pool: bool | None = None
    has_gym: bool | None = None

    images: list[str] = Field(default_factory=list)
    thumbnail_url: str | None = None

    contact_phone: str | None = None
    contact_email: str | None = None
    real_estate_agency: str | None = None

    published_at: datetime | None = None
    scraped_at: datetime | None = None
    updated_at: datetime | None = None
    is_active: bool = True

    model_config = {
        "str_strip_whitespace": True,
    }


class Listing(BaseModel):
    """Normalized real estate listing, as persisted in the store.

    ``(source, source_id)`` is the identity key; ``url`` is unique as well.
    """

    # Identification
    id: str = Field(..., min_length=1, description="Global id, e.g. ml_MLU123456")
    source: Source = Field(..., description="Site the listing was scraped from")
    source_id: str = Field(..., min_length=1, description="Source-native identifier")
    url: str = Field(..., description="Absolute URL of the listing")

    # Basic info
    title: str = Field(..., min_length=1)
    description: str | None = None
    property_type: PropertyType = Field(default=PropertyType.APARTAMENTO)

    # Location
    department: str = Field(..., min_length=1, description="Montevideo, Canelones, etc.")
    neighborhood: str | None = Field(default=None, description="Pocitos, Carrasco, etc.")
    address: str | None = None

    # Price
    price: float | None = Field(default=None, ge=0, description="Asking price")
    currency: Currency = Field(default=Currency.UYU)
    price_per_area: float | None = Field(default=None, ge=0, description="Price per m²")

    # Details
    bedrooms: int | None = Field(default=None, ge=0)
    bathrooms: int | None = Field(default=None, ge=0)
    total_area: float | None = Field(default=None, ge=0, description="Total area in m²")
    built_area: float | None = Field(default=None, ge=0, description="Built area in m²")
    garages: int | None = Field(default=None, ge=0)

    # Amenities: None means unknown
    has_balcony: bool | None = None
    has_barbecue: bool | None = Field(default=None, description="Parrillero")
    has_doorman: bool | None = Field(default=None, description="Portero")
    has_elevator: bool | None = None
    has_pool: bool | None = None
    has_gym: bool | None = None

    # Media
    images: list[str] = Field(default_factory=list)
    thumbnail_url: str | None = None

    # Contact
    contact_phone: str | None = None
    contact_email: str | None = None
    real_estate_agency: str | None = None

    # Lifecycle
    published_at: datetime | None = None
    scraped_at: datetime
    updated_at: datetime
    is_active: bool = True

    model_config = {
        "str_strip_whitespace": True,
        "validate_assignment": True,
    }

    @field_validator("url")
    @classmethod
    def check_url(cls, value: str) -> str:
        if not _is_absolute_url(value):
            raise ValueError(f"not an absolute http(s) URL: {value!r}")
        return value

    @field_validator("images", mode="before")
    @classmethod
    def images_never_null(cls, value):
        return [] if value is None else value

    @field_validator("contact_email")
    @classmethod
    def check_email(cls, value: str | None) -> str | None:
        if value is not None and "@" not in value:
            raise ValueError(f"not an email address: {value!r}")
        return value


class SearchFilters(BaseModel):
    """Filters used to build a source search URL."""

    department: str | None = None
    property_type: PropertyType | None = None
    min_price: int | None = Field(default=None, ge=0)
    max_price: int | None = Field(default=None, ge=0)
    currency: Currency | None = None
    operation: Operation | None = None


class PropertyQuery(BaseModel):
    """Filters for querying stored listings."""

    department: str | None = None
    neighborhood: str | None = None
    property_type: PropertyType | None = None
    min_price: float | None = Field(default=None, ge=0)
    max_price: float | None = Field(default=None, ge=0)
    currency: Currency | None = None
    min_bedrooms: int | None = Field(default=None, ge=0)
    max_bedrooms: int | None = Field(default=None, ge=0)
    min_bathrooms: int | None = Field(default=None, ge=0)
    min_area: float | None = Field(default=None, ge=0)
    max_area: float | None = Field(default=None, ge=0)
