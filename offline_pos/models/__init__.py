"""SQLAlchemy models for the local durable store."""

from offline_pos.models.transaction import QueuedTransactionRecord
from offline_pos.models.catalog import CachedProductRecord, SyncMetadata

__all__ = [
    "QueuedTransactionRecord",
    "CachedProductRecord",
    "SyncMetadata",
]
