"""Tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient

from buscacasas.api.main import create_app
from buscacasas.collectors.aggregator import Aggregator
from buscacasas.collectors.infocasas import INFOCASAS
from buscacasas.collectors.mercadolibre import MERCADOLIBRE
from buscacasas.collectors.pipeline import SourcePipeline
from buscacasas.models.property import Source
from buscacasas.storage.store import StoreIOError
from buscacasas.storage.upsert import upsert_listings

from conftest import FakeSession, ic_card, ml_card, page, session_factory


@pytest.fixture
def ml_session() -> FakeSession:
    return FakeSession("mercadolibre", [page([ml_card(n) for n in range(1, 8)])])


@pytest.fixture
def ic_session() -> FakeSession:
    return FakeSession("infocasas", [page([ic_card("casa-1")])])


@pytest.fixture
def aggregator(settings, store, ml_session, ic_session) -> Aggregator:
    return Aggregator(
        pipelines={
            Source.MERCADOLIBRE: SourcePipeline(
                MERCADOLIBRE, settings=settings, session_factory=session_factory(ml_session)
            ),
            Source.INFOCASAS: SourcePipeline(
                INFOCASAS, settings=settings, session_factory=session_factory(ic_session)
            ),
        },
        store=store,
        settings=settings,
    )


@pytest.fixture
def client(store, aggregator) -> TestClient:
    return TestClient(create_app(store=store, aggregator=aggregator))


@pytest.fixture
def populated(store, sample_partial, sample_ic_partial, sample_canelones_partial):
    upsert_listings(store, [sample_partial, sample_ic_partial, sample_canelones_partial])
    return store


class TestPropertiesEndpoints:
    """Tests for stored listing endpoints."""

    def test_list(self, client, populated):
        response = client.get("/api/properties")
        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 3
        assert data["limit"] == 50
        assert data["offset"] == 0

    def test_filters(self, client, populated):
        response = client.get(
            "/api/properties", params={"department": "Montevideo", "type": "casa", "currency": "USD"}
        )
        listings = response.json()["listings"]
        assert [listing["id"] for listing in listings] == ["ic_casa-en-carrasco-4411"]
        assert listings[0]["has_pool"] is True

    def test_pagination(self, client, populated):
        data = client.get("/api/properties", params={"limit": 1, "offset": 1}).json()
        assert data["count"] == 1
        assert data["listings"][0]["id"] == "ic_casa-en-carrasco-4411"

    def test_invalid_filter(self, client, populated):
        assert client.get("/api/properties", params={"type": "castillo"}).status_code == 422
        assert client.get("/api/properties", params={"limit": 0}).status_code == 422

    def test_get_by_id(self, client, populated):
        response = client.get("/api/properties/ml_MLU123456789")
        assert response.status_code == 200
        assert response.json()["title"] == "Apartamento en Pocitos"

    def test_get_missing(self, client, populated):
        response = client.get("/api/properties/ml_MLU0")
        assert response.status_code == 404

    def test_stats(self, client, populated):
        data = client.get("/api/stats").json()
        assert data["total"] == 3
        assert data["by_source"] == {"infocasas": 2, "mercadolibre": 1}

    def test_store_error_is_500(self, client, store, monkeypatch):
        def broken(*args, **kwargs):
            raise StoreIOError("disk I/O error")

        monkeypatch.setattr(store, "stats", broken)
        response = client.get("/api/stats")
        assert response.status_code == 500
        assert "disk I/O error" in response.json()["detail"]


class TestScrapeEndpoint:
    """Tests for on-demand scraping."""

    def test_scrape_without_saving(self, client, store):
        response = client.post("/api/scrape", json={"source": "both", "pages": 1})
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["statuses"]["mercadolibre"] == {
            "status": "completed", "count": 7, "pages": 1, "error": None,
        }
        assert data["statuses"]["infocasas"]["count"] == 1
        assert data["total_found"] == 8
        assert data["total_saved"] == 0
        assert len(data["preview"]) == 5
        assert store.count() == 0

    def test_scrape_and_save(self, client, store):
        data = client.post("/api/scrape", json={"source": "ic", "save": True}).json()
        assert data["total_saved"] == 1
        assert data["statuses"]["mercadolibre"]["status"] == "skipped"
        assert store.get("ic_casa-1") is not None

    def test_failing_source_is_reported(self, client, ml_session, navigation_timeout):
        ml_session.navigate_error = navigation_timeout
        data = client.post("/api/scrape", json={"source": "both"}).json()
        assert data["success"] is True
        assert data["statuses"]["mercadolibre"]["status"] == "error"
        assert data["statuses"]["infocasas"]["status"] == "completed"
        assert data["total_found"] == 1

    def test_all_sources_failing(self, client, ml_session, navigation_timeout):
        ml_session.navigate_error = navigation_timeout
        data = client.post("/api/scrape", json={"source": "ml"}).json()
        assert data["success"] is False

    def test_filters_reach_search_url(self, client, ml_session):
        client.post(
            "/api/scrape",
            json={"source": "ml", "filters": {"property_type": "casa", "min_price": 50000}},
        )
        assert "category=MUY1459" in ml_session.visited[0]

    def test_unknown_source(self, client):
        assert client.post("/api/scrape", json={"source": "zonaprop"}).status_code == 422


class TestHealth:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy", "database": "connected"}
