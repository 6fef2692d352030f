"""API routers."""

from . import properties, scraper, stats

__all__ = ["properties", "scraper", "stats"]
