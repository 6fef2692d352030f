"""Tests for the multi-source aggregator."""

import threading

import pytest

from buscacasas.collectors import aggregator as aggregator_module
from buscacasas.collectors.aggregator import Aggregator, RunStatus, resolve_sources
from buscacasas.collectors.infocasas import INFOCASAS
from buscacasas.collectors.mercadolibre import MERCADOLIBRE
from buscacasas.collectors.pipeline import SourcePipeline
from buscacasas.models.property import Source

from conftest import IC_NEXT, ML_NEXT, FakeSession, ic_card, ml_card, page, session_factory


def build_aggregator(settings, ml_session, ic_session, store=None) -> Aggregator:
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
def ml_session() -> FakeSession:
    return FakeSession("mercadolibre", [page([ml_card(1), ml_card(2)])])


@pytest.fixture
def ic_session() -> FakeSession:
    return FakeSession("infocasas", [page([ic_card("casa-1"), ic_card("casa-2"), ic_card("casa-3")])])


class TestResolveSources:
    """Tests for source selection."""

    def test_both(self):
        assert resolve_sources("both") == [Source.MERCADOLIBRE, Source.INFOCASAS]

    def test_tags_and_names(self):
        assert resolve_sources("ml") == [Source.MERCADOLIBRE]
        assert resolve_sources("infocasas") == [Source.INFOCASAS]

    def test_unknown(self):
        with pytest.raises(ValueError):
            resolve_sources("zonaprop")


class TestAggregator:
    """Tests for running and merging source pipelines."""

    @pytest.mark.asyncio
    async def test_both_sources(self, settings, ml_session, ic_session):
        result = await build_aggregator(settings, ml_session, ic_session).run(source="both")

        assert result.statuses["mercadolibre"].status == RunStatus.COMPLETED
        assert result.statuses["mercadolibre"].count == 2
        assert result.statuses["infocasas"].status == RunStatus.COMPLETED
        assert result.statuses["infocasas"].count == 3
        assert result.total_found == 5
        assert result.report is None
        assert ml_session.closed and ic_session.closed

    @pytest.mark.asyncio
    async def test_failing_source_does_not_hide_others(
        self, settings, ml_session, ic_session, navigation_timeout
    ):
        """MercadoLibre failing to load leaves InfoCasas results intact."""
        ml_session.navigate_error = navigation_timeout

        result = await build_aggregator(settings, ml_session, ic_session).run(source="both")

        ml_status = result.statuses["mercadolibre"]
        assert ml_status.status == RunStatus.ERROR
        assert "timed out" in ml_status.error
        assert result.statuses["infocasas"].status == RunStatus.COMPLETED
        assert {listing.source for listing in result.listings} == {Source.INFOCASAS}
        assert result.total_found == 3
        assert result.failed_sources == ["mercadolibre"]
        assert ml_session.closed

    @pytest.mark.asyncio
    async def test_single_source_skips_the_other(self, settings, ml_session, ic_session):
        result = await build_aggregator(settings, ml_session, ic_session).run(source="ic")

        assert result.statuses["mercadolibre"].status == RunStatus.SKIPPED
        assert result.statuses["infocasas"].status == RunStatus.COMPLETED
        assert ml_session.visited == []

    @pytest.mark.asyncio
    async def test_interrupted_source_is_partial(self, settings, ml_session):
        ic_session = FakeSession(
            "infocasas",
            [page([ic_card("casa-1")], IC_NEXT), page([ic_card("casa-2")])],
            snapshot_error_on_page=2,
        )

        result = await build_aggregator(settings, ml_session, ic_session).run(source="ic")

        status = result.statuses["infocasas"]
        assert status.status == RunStatus.PARTIAL
        assert status.count == 1
        assert status.error == "page crashed"

    @pytest.mark.asyncio
    async def test_max_pages_is_passed_through(self, settings, ic_session):
        ml_session = FakeSession(
            "mercadolibre",
            [page([ml_card(n)], ML_NEXT) for n in range(1, 6)],
        )

        result = await build_aggregator(settings, ml_session, ic_session).run(
            source="ml", max_pages=4
        )

        assert result.statuses["mercadolibre"].pages == 4
        assert result.total_found == 4

    @pytest.mark.asyncio
    async def test_save_requires_store(self, settings, ml_session, ic_session):
        with pytest.raises(ValueError):
            await build_aggregator(settings, ml_session, ic_session).run(save=True)

    @pytest.mark.asyncio
    async def test_save_upserts_results(self, settings, store, ml_session, ic_session):
        result = await build_aggregator(settings, ml_session, ic_session, store=store).run(
            source="both", save=True
        )

        assert result.report.inserted == 5
        assert result.report.updated == 0
        assert result.report.skipped == []
        assert store.count() == 5
        assert store.get("ml_MLU1").price == 120500

    @pytest.mark.asyncio
    async def test_rerun_updates_instead_of_duplicating(self, settings, store):
        for _ in range(2):
            ml = FakeSession("mercadolibre", [page([ml_card(1)])])
            ic = FakeSession("infocasas", [page([ic_card("casa-1")])])
            result = await build_aggregator(settings, ml, ic, store=store).run(save=True)

        assert result.report.inserted == 0
        assert result.report.updated == 2
        assert store.count() == 2

    @pytest.mark.asyncio
    async def test_prune_deactivates_listings_no_longer_listed(self, settings, store):
        first = FakeSession("infocasas", [page([ic_card("casa-1"), ic_card("casa-2")])])
        await build_aggregator(settings, FakeSession("mercadolibre", [page([])]), first, store=store).run(
            source="ic", save=True
        )

        second = FakeSession("infocasas", [page([ic_card("casa-1")])])
        result = await build_aggregator(
            settings, FakeSession("mercadolibre", [page([])]), second, store=store
        ).run(source="ic", save=True, deactivate_missing=True)

        assert result.deactivated == 1
        assert store.get("ic_casa-2").is_active is False
        assert store.get("ic_casa-1").is_active is True

    @pytest.mark.asyncio
    async def test_prune_skips_sources_cut_off_by_page_cap(self, settings, store):
        """Listings beyond the page cap were not seen, so nothing is pruned."""
        first = FakeSession("infocasas", [page([ic_card("casa-1"), ic_card("casa-2")])])
        await build_aggregator(settings, FakeSession("mercadolibre", [page([])]), first, store=store).run(
            source="ic", save=True
        )

        capped = FakeSession(
            "infocasas", [page([ic_card("casa-1")], IC_NEXT), page([ic_card("casa-2")])]
        )
        result = await build_aggregator(
            settings, FakeSession("mercadolibre", [page([])]), capped, store=store
        ).run(source="ic", max_pages=1, save=True, deactivate_missing=True)

        assert result.deactivated == 0
        assert store.get("ic_casa-2").is_active is True

    @pytest.mark.asyncio
    async def test_prune_skips_sources_that_rendered_nothing(self, settings, store):
        """A blocked results page must not deactivate the stored catalog."""
        first = FakeSession("infocasas", [page([ic_card("casa-1"), ic_card("casa-2")])])
        await build_aggregator(settings, FakeSession("mercadolibre", [page([])]), first, store=store).run(
            source="ic", save=True
        )

        blocked = FakeSession("infocasas", ["<html><body><p>Access denied</p></body></html>"])
        result = await build_aggregator(
            settings, FakeSession("mercadolibre", [page([])]), blocked, store=store
        ).run(source="ic", save=True, deactivate_missing=True)

        status = result.statuses["infocasas"]
        assert status.status == RunStatus.PARTIAL
        assert status.count == 0
        assert "no listings rendered" in status.error
        assert result.deactivated == 0
        assert store.count(Source.INFOCASAS) == 2

    @pytest.mark.asyncio
    async def test_save_runs_off_the_event_loop(self, settings, store, ml_session, ic_session, monkeypatch):
        threads = []
        real_upsert = aggregator_module.upsert_listings

        def recording_upsert(target, listings):
            threads.append(threading.get_ident())
            return real_upsert(target, listings)

        monkeypatch.setattr(aggregator_module, "upsert_listings", recording_upsert)

        result = await build_aggregator(settings, ml_session, ic_session, store=store).run(save=True)

        assert result.report.inserted == 5
        assert len(threads) == 1
        assert threads[0] != threading.get_ident()


class TestTimeBudget:
    """Tests for the aggregate time budget."""

    @staticmethod
    def paged_ml_session() -> FakeSession:
        return FakeSession(
            "mercadolibre",
            [page([ml_card(n * 10 + 1), ml_card(n * 10 + 2)], ML_NEXT) for n in range(3)],
        )

    @pytest.mark.asyncio
    async def test_spent_budget_keeps_partial_results(self, settings, store, ic_session):
        ml_session = self.paged_ml_session()

        result = await build_aggregator(settings, ml_session, ic_session, store=store).run(
            source="ml", max_pages=3, timeout=1e-6, save=True
        )

        status = result.statuses["mercadolibre"]
        assert status.status == RunStatus.PARTIAL
        assert status.error == "time budget exhausted"
        assert status.pages == 1
        assert result.total_found == 2
        assert ml_session.clicks == 0
        assert store.count() == 2

    @pytest.mark.asyncio
    async def test_budget_from_settings(self, settings, ic_session):
        budgeted = settings.model_copy(update={"run_timeout": 1e-6})
        ml_session = self.paged_ml_session()

        result = await build_aggregator(budgeted, ml_session, ic_session).run(
            source="ml", max_pages=3
        )

        assert result.statuses["mercadolibre"].status == RunStatus.PARTIAL
        assert result.total_found == 2

    @pytest.mark.asyncio
    async def test_non_positive_budget_is_rejected(self, settings, ml_session, ic_session):
        with pytest.raises(ValueError):
            await build_aggregator(settings, ml_session, ic_session).run(timeout=0)
