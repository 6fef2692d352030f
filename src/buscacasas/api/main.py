"""FastAPI application for the buscacasas API.

Serve with any ASGI server, e.g. ``uvicorn buscacasas.api.main:app``.
"""

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .. import __version__
from ..collectors.aggregator import Aggregator
from ..storage.store import ListingStore, StoreIOError
from .deps import get_store
from .routers import properties, scraper, stats

logger = logging.getLogger(__name__)


def create_app(
    store: Optional[ListingStore] = None,
    aggregator: Optional[Aggregator] = None,
) -> FastAPI:
    """Build the application.

    Args:
        store: Listing store (defaults to one at settings.database_path,
               opened on first request)
        aggregator: Aggregator used by ``POST /api/scrape`` (defaults to
                    browser-backed pipelines saving into ``store``)
    """
    app = FastAPI(
        title="buscacasas API",
        description="Uruguay real estate listings aggregated from MercadoLibre and InfoCasas",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.store = store
    app.state.aggregator = aggregator

    @app.exception_handler(StoreIOError)
    async def store_error_handler(request: Request, exc: StoreIOError):
        logger.error(f"Store error on {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content={"detail": f"Database error: {exc}"})

    app.include_router(properties.router, prefix="/api/properties", tags=["Properties"])
    app.include_router(stats.router, prefix="/api/stats", tags=["Stats"])
    app.include_router(scraper.router, prefix="/api/scrape", tags=["Scraper"])

    @app.get("/")
    async def root():
        """API root endpoint."""
        return {
            "name": "buscacasas API",
            "version": __version__,
            "docs": "/docs",
        }

    @app.get("/health")
    def health(request: Request):
        """Health check endpoint."""
        result = {"status": "healthy"}
        try:
            get_store(request).count()
            result["database"] = "connected"
        except StoreIOError as e:
            logger.warning(f"Health check could not reach the database: {e}")
            result["database"] = "disconnected"
        return result

    return app


app = create_app()
