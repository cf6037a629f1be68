"""
Unit tests for the catalog cache.
"""

from decimal import Decimal

import pytest

from core.exceptions import CatalogFetchError
from models.catalog import CatalogSnapshot
from services.catalog_service import CatalogService

from fakes import make_product


# Fixtures

@pytest.fixture
def catalog(provider, settings):
    """Catalog service without a background thread."""
    return CatalogService(provider, settings.products, refresh_interval_seconds=0)


class TestRefresh:
    """Fetching and mapping the provider catalog."""

    def test_maps_provider_products_to_storefront_ids(self, catalog):
        snapshot = catalog.refresh()

        assert [e.internal_id for e in snapshot.list_entries()] == [
            "ring-black", "ring-white", "bracelet-cf-marble",
        ]
        entry = snapshot.get("ring-black")
        assert entry.provider_product_id == "prod_ring_black"
        assert entry.provider_price_id == "price_prod_ring_black"
        assert entry.unit_price == Decimal("80.00")
        assert entry.currency == "usd"
        assert entry.category == "ring"

    def test_skips_products_with_inactive_price(self, catalog, provider):
        provider.products["prod_ring_white"] = make_product(
            "prod_ring_white", "White Ring", 8500, price_active=False
        )

        snapshot = catalog.refresh()

        assert snapshot.get("ring-white") is None
        assert len(snapshot.entries) == 2

    def test_ignores_unmapped_provider_products(self, catalog, provider):
        provider.products["prod_other"] = make_product("prod_other", "Mug", 1200)

        snapshot = catalog.refresh()

        assert "prod_other" not in [e.provider_product_id for e in snapshot.list_entries()]

    def test_failed_refresh_keeps_previous_snapshot(self, catalog, provider):
        first = catalog.refresh()
        provider.fail_catalog = True

        with pytest.raises(CatalogFetchError):
            catalog.refresh()

        assert catalog.get_snapshot() is first

    def test_new_snapshot_is_fresh(self, catalog):
        snapshot = catalog.refresh()

        assert not snapshot.is_stale
        assert snapshot.age_seconds < 5


class TestReads:
    """lookup() / list_products() read policy."""

    def test_first_read_fetches(self, catalog, provider):
        assert catalog.get_snapshot().is_empty

        entry = catalog.lookup("ring-black")

        assert entry.name == "Black Ring"
        assert provider.calls["list_active_products"] == 1

    def test_fresh_snapshot_is_served_without_fetching(self, catalog, provider):
        catalog.refresh()

        catalog.lookup("ring-black")
        catalog.list_products()

        assert provider.calls["list_active_products"] == 1

    def test_invalidate_forces_refresh_on_next_read(self, catalog, provider):
        catalog.refresh()
        provider.products["prod_ring_black"] = make_product("prod_ring_black", "Black Ring", 9000)

        catalog.invalidate()
        assert catalog.get_snapshot().is_stale

        entry = catalog.lookup("ring-black")

        assert entry.unit_price == Decimal("90.00")
        assert provider.calls["list_active_products"] == 2
        assert not catalog.get_snapshot().is_stale

    def test_invalidate_during_fetch_is_not_lost(self, catalog, provider):
        fetch = provider.list_active_products

        def fetch_then_change():
            products = fetch()
            # Price changes at the provider after the list was read
            provider.products["prod_ring_black"] = make_product("prod_ring_black", "Black Ring", 9000)
            catalog.invalidate()
            return products

        provider.list_active_products = fetch_then_change
        snapshot = catalog.refresh()

        assert snapshot.get("ring-black").unit_price == Decimal("80.00")
        assert catalog.get_snapshot().is_stale

        provider.list_active_products = fetch
        entry = catalog.lookup("ring-black")

        assert entry.unit_price == Decimal("90.00")
        assert not catalog.get_snapshot().is_stale

    def test_stale_snapshot_served_when_provider_down(self, catalog, provider):
        catalog.refresh()
        catalog.invalidate()
        provider.fail_catalog = True

        products = catalog.list_products()

        assert len(products) == 3
        assert catalog.get_snapshot().is_stale

    def test_empty_catalog_when_never_loaded_and_provider_down(self, catalog, provider):
        provider.fail_catalog = True

        assert catalog.list_products() == []
        assert catalog.lookup("ring-black") is None

    def test_unknown_id(self, catalog):
        assert catalog.lookup("ring-gold") is None


class TestBackgroundThread:
    """start() / stop() lifecycle."""

    def test_zero_interval_starts_no_thread(self, catalog):
        catalog.start()

        assert not catalog.is_running

    def test_start_and_stop(self, provider, settings):
        service = CatalogService(provider, settings.products, refresh_interval_seconds=60)

        service.start()
        assert service.is_running

        service.stop()
        assert not service.is_running

    def test_stop_is_idempotent(self, provider, settings):
        service = CatalogService(provider, settings.products, refresh_interval_seconds=60)
        service.start()

        service.stop()
        service.stop()

        assert not service.is_running


class TestSnapshot:
    """CatalogSnapshot helpers."""

    def test_empty_snapshot_is_stale(self):
        snapshot = CatalogSnapshot.create_empty()

        assert snapshot.is_stale
        assert snapshot.is_empty

    def test_mark_stale_returns_copy(self, catalog):
        snapshot = catalog.refresh()

        stale = snapshot.mark_stale()

        assert stale.is_stale
        assert not snapshot.is_stale
        assert stale.entries == snapshot.entries
