# Services module

from offline_pos.services.offline_store import OfflineStore
from offline_pos.services.network_monitor import (
    ConnectivitySource,
    ManualConnectivitySource,
    NetworkStatusMonitor,
)
from offline_pos.services.pos_api_client import PosApiClient
from offline_pos.services.queue_manager import (
    TransactionQueueManager,
    generate_transaction_id,
    is_offline_transaction_id,
)
from offline_pos.services.sync_orchestrator import SyncOrchestrator
from offline_pos.services.catalog_cache import CatalogCache
from offline_pos.services.offline_engine import OfflineSyncEngine
