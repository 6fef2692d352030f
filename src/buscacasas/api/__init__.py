"""HTTP API for stored and freshly scraped listings."""

from .main import app, create_app

__all__ = ["app", "create_app"]
