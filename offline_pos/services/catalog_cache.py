"""
Catalog Cache - offline product lookup for the POS till

The snapshot is always replaced as a whole: the store write is a single
delete-and-insert transaction, and the in-memory indexes are swapped in
one assignment afterwards. A lookup therefore never mixes products from
two refreshes.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Protocol, Union

from offline_pos.core.time_utils import parse_iso_datetime, utcnow
from offline_pos.schemas.catalog import CachedProduct, CatalogProduct
from offline_pos.services.network_monitor import NetworkStatusMonitor
from offline_pos.services.offline_store import LAST_PRODUCT_SYNC_KEY, OfflineStore

logger = logging.getLogger(__name__)


class CatalogSource(Protocol):
    async def fetch_catalog(self) -> List[CatalogProduct]:
        ...


@dataclass(frozen=True)
class _Snapshot:
    products: List[CachedProduct] = field(default_factory=list)
    by_id: Dict[int, CachedProduct] = field(default_factory=dict)
    by_barcode: Dict[str, CachedProduct] = field(default_factory=dict)
    by_sku: Dict[str, CachedProduct] = field(default_factory=dict)
    refreshed_at: Optional[datetime] = None

    @classmethod
    def build(cls, products: List[CachedProduct], refreshed_at: Optional[datetime]) -> "_Snapshot":
        by_id = {p.id: p for p in products}
        by_barcode = {p.barcode: p for p in products if p.barcode}
        by_sku = {p.sku: p for p in products if p.sku}
        return cls(list(products), by_id, by_barcode, by_sku, refreshed_at)


class CatalogCache:
    """In-memory view of the cached catalog, backed by the offline store."""

    def __init__(self, store: OfflineStore, source: CatalogSource, monitor: NetworkStatusMonitor):
        self.store = store
        self.source = source
        self.monitor = monitor
        self._snapshot = _Snapshot()
        self._refresh_lock = asyncio.Lock()

    @property
    def last_refreshed(self) -> Optional[datetime]:
        return self._snapshot.refreshed_at

    def __len__(self) -> int:
        return len(self._snapshot.products)

    async def load(self) -> int:
        """Hydrate the snapshot from the store (process restart path)."""
        products = await self.store.get_cached_products()
        last_sync = parse_iso_datetime(await self.store.get_sync_metadata(LAST_PRODUCT_SYNC_KEY))
        self._snapshot = _Snapshot.build(products, last_sync)
        logger.info(f"Loaded {len(products)} cached products")
        return len(products)

    async def refresh(self) -> Optional[int]:
        """Pull the full catalog and replace the cache.

        Returns the number of products cached, or None when skipped because
        the terminal is offline. Remote and storage errors propagate; the
        previous snapshot stays in place when they do. Refreshes run one at
        a time, so a slow earlier fetch never replaces a later one.
        """
        async with self._refresh_lock:
            if not self.monitor.is_online:
                logger.info("Offline, skipping catalog refresh")
                return None

            remote_products = await self.source.fetch_catalog()
            now = utcnow()
            products = [
                CachedProduct(**p.model_dump(), last_updated=now)
                for p in remote_products
            ]

            await self.store.cache_products(products)
            await self.store.set_sync_metadata(LAST_PRODUCT_SYNC_KEY, now.isoformat())
            self._snapshot = _Snapshot.build(products, now)

            logger.info(f"Cached {len(products)} products for offline use")
            return len(products)

    def lookup(self, id_or_barcode: Union[int, str]) -> Optional[CachedProduct]:
        """Find a product by id, then barcode, then SKU. No I/O."""
        snapshot = self._snapshot
        if isinstance(id_or_barcode, int):
            return snapshot.by_id.get(id_or_barcode)

        key = str(id_or_barcode).strip()
        if not key:
            return None
        product = snapshot.by_barcode.get(key)
        if product is not None:
            return product
        if key.isdigit():
            product = snapshot.by_id.get(int(key))
            if product is not None:
                return product
        return snapshot.by_sku.get(key)

    def search(self, term: str = "") -> List[CachedProduct]:
        """Active products matching *term*; all active products if empty."""
        active = [p for p in self._snapshot.products if p.is_active]
        if not term:
            return active
        return [p for p in active if p.matches(term)]
