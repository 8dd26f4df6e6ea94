"""Tests for the offline catalog cache."""

import asyncio

import pytest

from offline_pos.core.exceptions import RemoteUnavailableError
from offline_pos.schemas.catalog import ProductStatus
from offline_pos.services.catalog_cache import CatalogCache
from offline_pos.services.network_monitor import NetworkStatusMonitor

from tests.conftest import make_product


@pytest.fixture
def online_engine_parts(store, connectivity, fake_api):
    connectivity.go_online()
    monitor = NetworkStatusMonitor(connectivity)
    return CatalogCache(store, fake_api, monitor), fake_api


class TestRefresh:

    @pytest.mark.asyncio
    async def test_refresh_replaces_not_merges(self, online_engine_parts):
        cache, fake_api = online_engine_parts
        fake_api.catalog = [make_product(1), make_product(2), make_product(3)]
        assert await cache.refresh() == 3

        fake_api.catalog = [make_product(2, name="Renamed"), make_product(4)]
        assert await cache.refresh() == 2

        assert len(cache) == 2
        assert cache.lookup(1) is None
        assert cache.lookup(2).name == "Renamed"
        assert cache.lookup(4) is not None
        assert cache.last_refreshed is not None

    @pytest.mark.asyncio
    async def test_refresh_skipped_offline(self, store, connectivity, fake_api):
        cache = CatalogCache(store, fake_api, NetworkStatusMonitor(connectivity))
        fake_api.catalog = [make_product(1)]

        assert await cache.refresh() is None
        assert fake_api.catalog_calls == 0
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_previous_snapshot(self, online_engine_parts):
        cache, fake_api = online_engine_parts
        fake_api.catalog = [make_product(1)]
        await cache.refresh()

        fake_api.catalog_error = RemoteUnavailableError("/api/pos/products", "timed out")
        with pytest.raises(RemoteUnavailableError):
            await cache.refresh()

        assert cache.lookup(1) is not None

    @pytest.mark.asyncio
    async def test_load_restores_snapshot_from_store(self, online_engine_parts, store, connectivity, fake_api):
        cache, fake_api = online_engine_parts
        fake_api.catalog = [make_product(1), make_product(2)]
        await cache.refresh()

        restarted = CatalogCache(store, fake_api, NetworkStatusMonitor(connectivity))
        assert await restarted.load() == 2
        assert restarted.lookup(2) is not None
        assert restarted.last_refreshed == cache.last_refreshed


class TestLookup:

    @pytest.mark.asyncio
    async def test_lookup_by_id_barcode_and_sku(self, online_engine_parts):
        cache, fake_api = online_engine_parts
        fake_api.catalog = [make_product(1), make_product(12, barcode="000777")]
        await cache.refresh()

        assert cache.lookup(12).id == 12
        assert cache.lookup("000777").id == 12
        assert cache.lookup("12").id == 12
        assert cache.lookup("SKU-001").id == 1
        assert cache.lookup(" 000777 ").id == 12
        assert cache.lookup("unknown") is None
        assert cache.lookup("") is None

    @pytest.mark.asyncio
    async def test_barcode_wins_over_numeric_id(self, online_engine_parts):
        cache, fake_api = online_engine_parts
        fake_api.catalog = [make_product(5), make_product(6, barcode="5")]
        await cache.refresh()

        assert cache.lookup("5").id == 6
        assert cache.lookup(5).id == 5

    @pytest.mark.asyncio
    async def test_search_only_returns_active_products(self, online_engine_parts):
        cache, fake_api = online_engine_parts
        fake_api.catalog = [
            make_product(1, name="Oat Milk"),
            make_product(2, name="Whole Milk", status=ProductStatus.DISCONTINUED),
            make_product(3, name="Sparkling Water", brand="Milky Way"),
        ]
        await cache.refresh()

        assert [p.id for p in cache.search("milk")] == [1, 3]
        assert [p.id for p in cache.search("")] == [1, 3]
        assert cache.search("nothing here") == []


class TestConcurrentRefresh:

    @pytest.mark.asyncio
    async def test_overlapping_refreshes_keep_latest_catalog(self, store, connectivity):
        class SlowFirstFetch:
            def __init__(self):
                self.calls = 0

            async def fetch_catalog(self):
                self.calls += 1
                if self.calls == 1:
                    await asyncio.sleep(0.05)
                    return [make_product(1)]
                return [make_product(2)]

        connectivity.go_online()
        cache = CatalogCache(store, SlowFirstFetch(), NetworkStatusMonitor(connectivity))

        async def later_refresh():
            await asyncio.sleep(0.01)
            return await cache.refresh()

        await asyncio.gather(cache.refresh(), later_refresh())

        assert cache.lookup(1) is None
        assert cache.lookup(2) is not None
        assert [p.id for p in await store.get_cached_products()] == [2]
