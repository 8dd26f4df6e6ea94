"""Sync status schemas exposed to the POS UI."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from offline_pos.schemas.common import OptionalUtcDateTime


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class NetworkStatus(_CamelModel):
    """Connectivity snapshot."""

    is_online: bool
    is_slow_connection: bool = False
    connection_type: Optional[str] = None
    last_online_time: OptionalUtcDateTime = None
    last_offline_time: OptionalUtcDateTime = None


class QueueStats(_CamelModel):
    """Read-only view of the offline queue."""

    pending_transactions: int = 0
    failed_transactions: int = 0
    dead_lettered_transactions: int = 0
    last_sync_attempt: OptionalUtcDateTime = None
    next_sync_attempt: OptionalUtcDateTime = None


class SyncResult(_CamelModel):
    """Outcome of one sync sweep."""

    success: int = 0
    failed: int = 0
    skipped: int = 0


class StorageStats(_CamelModel):
    """Local store statistics."""

    pending_transactions: int = 0
    cached_products: int = 0
    total_transactions: int = 0
    last_product_sync: OptionalUtcDateTime = None
