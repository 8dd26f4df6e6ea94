"""
Offline Sync Engine - the API the POS till talks to

Wires the local store, network monitor, queue manager, sync orchestrator,
catalog cache and remote client together. Every collaborator is injected,
so a multi-register deployment can run one engine per terminal and tests
can swap in doubles.

Usage:
    engine = OfflineSyncEngine.from_settings(get_settings(), connectivity)
    async with engine:
        sale_id = await engine.queue_transaction(sale)
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, List, Mapping, Optional, Union

from offline_pos.core.config import Settings
from offline_pos.core.exceptions import UnsyncedTransactionsError
from offline_pos.schemas.catalog import CachedProduct
from offline_pos.schemas.sale import QueuedTransaction, SaleDraft
from offline_pos.schemas.sync import NetworkStatus, QueueStats, StorageStats, SyncResult
from offline_pos.services.catalog_cache import CatalogCache, CatalogSource
from offline_pos.services.network_monitor import (
    ConnectivitySource,
    ManualConnectivitySource,
    NetworkStatusMonitor,
    Probe,
    StatusListener,
)
from offline_pos.services.offline_store import OfflineStore
from offline_pos.services.pos_api_client import PosApiClient
from offline_pos.services.queue_manager import TransactionQueueManager
from offline_pos.services.sync_orchestrator import SaleSubmitter, SyncOrchestrator

logger = logging.getLogger(__name__)


class OfflineSyncEngine:
    """Facade over the offline queue and sync components."""

    def __init__(
        self,
        settings: Settings,
        store: OfflineStore,
        connectivity: ConnectivitySource,
        submitter: SaleSubmitter,
        catalog_source: CatalogSource,
        probe: Optional[Probe] = None,
        api_client: Optional[PosApiClient] = None,
    ):
        self.settings = settings
        self.store = store
        self.api_client = api_client

        self.monitor = NetworkStatusMonitor(
            connectivity,
            probe=probe,
            probe_interval=settings.probe_interval_seconds,
            slow_threshold_ms=settings.slow_connection_threshold_ms,
        )
        self.queue = TransactionQueueManager(
            store,
            self.monitor,
            max_sync_attempts=settings.max_sync_attempts,
        )
        self.orchestrator = SyncOrchestrator(
            self.queue,
            submitter,
            self.monitor,
            sync_interval=settings.sync_interval_seconds,
            reconnect_delay=settings.reconnect_sync_delay_seconds,
            immediate_delay=settings.immediate_sync_delay_seconds,
            request_timeout=settings.request_timeout_seconds,
        )
        self.catalog = CatalogCache(store, catalog_source, self.monitor)

        self._started = False
        self._unsubscribe_catalog: Optional[Callable[[], None]] = None
        self._was_online: Optional[bool] = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        connectivity: Optional[ConnectivitySource] = None,
        **client_kwargs,
    ) -> "OfflineSyncEngine":
        """Build the default stack: SQLite store plus the HTTP POS API client."""
        store = OfflineStore.from_url(settings.database_url, echo=settings.debug)
        client = PosApiClient.from_settings(settings, **client_kwargs)
        return cls(
            settings,
            store,
            connectivity or ManualConnectivitySource(online=True),
            submitter=client,
            catalog_source=client,
            probe=client.probe,
            api_client=client,
        )

    # ==================== LIFECYCLE ====================

    async def start(self) -> None:
        """Load the cached catalog and begin monitoring/syncing."""
        if self._started:
            return
        await self.catalog.load()
        self.monitor.start()
        self.orchestrator.start()
        if self.settings.refresh_catalog_on_reconnect:
            self._unsubscribe_catalog = self.monitor.subscribe(self._on_status_for_catalog)
        self._started = True
        logger.info(
            f"Offline engine started for {self.settings.terminal_id} "
            f"(online={self.monitor.is_online})"
        )

    async def stop(self) -> None:
        if not self._started:
            return
        if self._unsubscribe_catalog is not None:
            self._unsubscribe_catalog()
            self._unsubscribe_catalog = None
        self._was_online = None
        await self.orchestrator.stop()
        await self.monitor.stop()
        if self.api_client is not None:
            await self.api_client.aclose()
        self._started = False
        logger.info(f"Offline engine stopped for {self.settings.terminal_id}")

    async def __aenter__(self) -> "OfflineSyncEngine":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    def _on_status_for_catalog(self, status: NetworkStatus) -> None:
        previous = self._was_online
        self._was_online = status.is_online
        if status.is_online and previous is False:
            self.orchestrator.spawn(self._refresh_catalog_quietly(), "catalog-refresh")

    async def _refresh_catalog_quietly(self) -> None:
        try:
            await self.catalog.refresh()
        except Exception as e:
            logger.error(f"Catalog refresh after reconnect failed: {e}", exc_info=True)

    # ==================== QUEUE ====================

    async def queue_transaction(self, sale: Union[SaleDraft, Mapping[str, Any]]) -> str:
        return await self.queue.queue_transaction(sale)

    async def get_transaction(self, transaction_id: str) -> Optional[QueuedTransaction]:
        return await self.queue.get_transaction(transaction_id)

    async def sync_now(self) -> SyncResult:
        return await self.orchestrator.sync_now()

    async def sync_pending_transactions(self) -> SyncResult:
        return await self.orchestrator.sync_pending_transactions()

    async def get_queue_stats(self) -> QueueStats:
        return await self.queue.get_queue_stats()

    async def clear_failed_transactions(self, include_retryable: bool = False) -> int:
        return await self.queue.clear_failed_transactions(include_retryable=include_retryable)

    async def purge_synced_transactions(self, older_than: Union[datetime, timedelta]) -> int:
        return await self.queue.purge_synced_transactions(older_than)

    async def wait_idle(self) -> None:
        """Wait for background sync work triggered so far."""
        await self.orchestrator.wait_idle()

    # ==================== NETWORK ====================

    def get_network_status(self) -> NetworkStatus:
        return self.monitor.get_status()

    def subscribe_network_status(self, listener: StatusListener) -> Callable[[], None]:
        return self.monitor.subscribe(listener)

    async def wait_for_online(self) -> NetworkStatus:
        return await self.monitor.wait_for_online()

    # ==================== CATALOG ====================

    async def refresh_catalog_cache(self) -> Optional[int]:
        return await self.catalog.refresh()

    def lookup_cached_product(self, id_or_barcode: Union[int, str]) -> Optional[CachedProduct]:
        return self.catalog.lookup(id_or_barcode)

    def search_cached_products(self, term: str = "") -> List[CachedProduct]:
        return self.catalog.search(term)

    # ==================== MAINTENANCE ====================

    async def get_storage_stats(self) -> StorageStats:
        return await self.store.get_stats()

    async def clear_all_data(self) -> None:
        """Wipe the local store. Refused while unsynced sales remain."""
        stats = await self.queue.get_queue_stats()
        if stats.pending_transactions or stats.failed_transactions:
            raise UnsyncedTransactionsError(stats.pending_transactions, stats.failed_transactions)
        await self.store.clear_all()
        await self.catalog.load()
