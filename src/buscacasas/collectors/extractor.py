"""Listing card extraction.

Turns a rendered results page (a BeautifulSoup snapshot) into partial
listings using a source profile's ordered selector tables. Every field is
extracted independently: a field that cannot be found or parsed is left
as None and the rest of the card is still used.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Sequence

from bs4 import BeautifulSoup, Tag

from ..config import config
from ..models.property import PartialListing
from . import normalize
from .base import SourceProfile

logger = logging.getLogger(__name__)


def first_node(node: Tag, selectors: Sequence[str], attribute: Optional[str] = None) -> Optional[Tag]:
    """First element matching any selector, in selector order.

    If ``attribute`` is given, only elements carrying a non-empty value for
    it are considered.
    """
    for selector in selectors:
        for match in node.select(selector):
            if attribute is None or (match.get(attribute) or "").strip():
                return match
    return None


def first_text(node: Tag, selectors: Sequence[str]) -> Optional[str]:
    """Text of the first matching element with non-empty text."""
    for selector in selectors:
        match = node.select_one(selector)
        if match is None:
            continue
        text = normalize.clean_text(match.get_text(" ", strip=True))
        if text:
            return text
    return None


def first_attr(node: Tag, selectors: Sequence[str], attributes: Sequence[str]) -> Optional[str]:
    """First usable attribute value among the matching elements.

    Inline ``data:`` placeholders (lazy-loaded images) are skipped.
    """
    for selector in selectors:
        for match in node.select(selector):
            for attribute in attributes:
                value = (match.get(attribute) or "").strip()
                if value and not value.startswith("data:"):
                    return value
    return None


class ListingExtractor:
    """Extracts partial listings from one source's results pages.

    Example:
        extractor = ListingExtractor(MERCADOLIBRE)
        listings = extractor.extract_page(soup)
    """

    def __init__(
        self,
        profile: SourceProfile,
        default_department: Optional[str] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.profile = profile
        self.default_department = default_department or config.default_department
        self._clock = clock

    def select_containers(self, soup: BeautifulSoup) -> tuple[Optional[str], list[Tag]]:
        """Return the first container selector that matches anything, with its nodes."""
        for selector in self.profile.container_selectors:
            nodes = soup.select(selector)
            if nodes:
                logger.debug(f"[{self.profile.name}] Using selector {selector} ({len(nodes)} cards)")
                return selector, nodes
            logger.debug(f"[{self.profile.name}] Selector {selector} not found, trying next")
        return None, []

    def extract_page(self, soup: BeautifulSoup) -> list[PartialListing]:
        """Extract every identifiable listing on a page."""
        selector, cards = self.select_containers(soup)
        if selector is None:
            logger.warning(f"[{self.profile.name}] No listing containers found on page")
            return []

        scraped_at = self._clock()
        listings = []
        for card in cards:
            try:
                listing = self.extract_card(card, scraped_at)
            except Exception as e:
                logger.warning(f"[{self.profile.name}] Failed to parse listing card: {e}")
                continue
            if listing is not None:
                listings.append(listing)
        return listings

    def _field(self, name: str, extract: Callable[[], Any]) -> Any:
        try:
            return extract()
        except Exception as e:
            logger.debug(f"[{self.profile.name}] Could not extract {name}: {e}")
            return None

    def _find_link(self, card: Tag) -> Optional[Tag]:
        link = first_node(card, self.profile.link_selectors, attribute="href")
        if link is None and card.name == "a" and card.get("href"):
            link = card
        return link

    def extract_card(self, card: Tag, scraped_at: Optional[datetime] = None) -> Optional[PartialListing]:
        """Build a partial listing from one card.

        Returns None only when the card has neither a title nor a URL,
        since such a card cannot be identified.
        """
        profile = self.profile
        scraped_at = scraped_at or self._clock()

        link = self._field("link", lambda: self._find_link(card))
        url = self._field(
            "url",
            lambda: normalize.absolutize_url(link.get("href"), profile.base_url) if link else None,
        )
        title = self._field(
            "title",
            lambda: (normalize.clean_text(link.get_text(" ", strip=True)) if link else None)
            or first_text(card, profile.title_selectors),
        )
        if not title and not url:
            return None

        price_text = self._field("price", lambda: first_text(card, profile.price_selectors))
        currency_text = self._field("currency", lambda: first_text(card, profile.currency_selectors))
        price = self._field("price", lambda: normalize.parse_price(price_text))
        currency = normalize.detect_currency(
            " ".join(text for text in (currency_text, price_text) if text)
        )

        location = self._field("location", lambda: first_text(card, profile.location_selectors))
        department, neighborhood = normalize.parse_location(location, self.default_department)

        details = self._field("details", lambda: card.get_text(" ", strip=True)) or ""
        total_area = self._field("total_area", lambda: normalize.extract_total_area(details))

        image = self._field(
            "image",
            lambda: normalize.absolutize_url(
                first_attr(card, profile.image_selectors, profile.image_attributes),
                profile.base_url,
            ),
        )

        source_id = self._field("source_id", lambda: normalize.build_source_id(url, profile.id_pattern))

        fields: dict[str, Any] = {
            "source": profile.source,
            "source_id": source_id,
            "id": normalize.build_listing_id(profile.source, source_id) if source_id else None,
            "url": url,
            "title": title,
            "property_type": normalize.infer_property_type(title, url),
            "department": department,
            "neighborhood": neighborhood,
            "price": price,
            "currency": currency,
            "price_per_area": normalize.compute_price_per_area(price, total_area),
            "total_area": total_area,
            "built_area": self._field("built_area", lambda: normalize.extract_built_area(details)),
            "bedrooms": self._field("bedrooms", lambda: normalize.extract_bedrooms(details)),
            "bathrooms": self._field("bathrooms", lambda: normalize.extract_bathrooms(details)),
            "garages": self._field("garages", lambda: normalize.extract_garages(details)),
            "images": [image] if image else [],
            "thumbnail_url": image,
            "scraped_at": scraped_at,
            "updated_at": scraped_at,
            "is_active": True,
        }
        fields.update(normalize.detect_amenities(details))
        return PartialListing(**fields)
