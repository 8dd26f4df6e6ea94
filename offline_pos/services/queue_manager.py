"""
Transaction Queue Manager

Single entry point for enqueueing and querying offline sales, and the only
component that mutates queued records. The sync orchestrator drives
submissions but records every outcome through the methods here, so the
ordering and no-double-submit rules live in one place.

Lifecycle of a queued transaction:
- pending -> synced (remote acknowledged)
- pending/failed -> failed (transient error, attempts incremented)
- failed -> dead-lettered (retry ceiling reached, or remote rejected it)
- dead-lettered -> synced with resolution ``operator_cleared``
"""

import logging
import time
from datetime import datetime, timedelta
from typing import Any, Callable, List, Mapping, Optional, Set, Union
from uuid import uuid4

from offline_pos.core.time_utils import parse_iso_datetime, utcnow
from offline_pos.schemas.sale import (
    OFFLINE_ID_PREFIX,
    QueuedTransaction,
    SaleDraft,
    TransactionResolution,
    TransactionStatus,
)
from offline_pos.schemas.sync import QueueStats
from offline_pos.services.network_monitor import NetworkStatusMonitor
from offline_pos.services.offline_store import LAST_SYNC_ATTEMPT_KEY, OfflineStore

logger = logging.getLogger(__name__)

SyncTrigger = Callable[[str], Any]


def generate_transaction_id() -> str:
    """Local id, e.g. ``offline_1718000000000_3f9a0c2b1``."""
    return f"{OFFLINE_ID_PREFIX}{int(time.time() * 1000)}_{uuid4().hex[:9]}"


def is_offline_transaction_id(transaction_id: str) -> bool:
    """True for ids generated on the terminal rather than by the server."""
    return transaction_id.startswith(OFFLINE_ID_PREFIX)


class TransactionQueueManager:
    """Owns the queued-transaction lifecycle."""

    def __init__(
        self,
        store: OfflineStore,
        monitor: NetworkStatusMonitor,
        max_sync_attempts: int = 5,
    ):
        self.store = store
        self.monitor = monitor
        self.max_sync_attempts = max_sync_attempts
        self._in_flight: Set[str] = set()
        self._sync_trigger: Optional[SyncTrigger] = None
        self._next_sync_provider: Optional[Callable[[], Optional[datetime]]] = None

    def bind_sync_trigger(
        self,
        trigger: SyncTrigger,
        next_sync_provider: Optional[Callable[[], Optional[datetime]]] = None,
    ) -> None:
        """Wire the orchestrator's single-record trigger and schedule view."""
        self._sync_trigger = trigger
        self._next_sync_provider = next_sync_provider

    # ==================== ENQUEUE ====================

    async def queue_transaction(self, sale: Union[SaleDraft, Mapping[str, Any]]) -> str:
        """Persist a finalised sale and return its local id.

        The id is returned only after the record is durable. Storage
        errors propagate to the caller. When the terminal looks online an
        immediate sync of this one record is scheduled, but the sale is
        always queued first.

        Raises:
            pydantic.ValidationError: the sale payload is malformed.
            StorageError: the sale could not be persisted.
        """
        draft = sale if isinstance(sale, SaleDraft) else SaleDraft.model_validate(sale)
        transaction = QueuedTransaction.model_validate({
            **draft.model_dump(),
            "id": generate_transaction_id(),
            "timestamp": utcnow(),
            "status": TransactionStatus.PENDING,
            "sync_attempts": 0,
        })

        await self.store.put(transaction)
        logger.info(
            f"Queued transaction {transaction.id} total={transaction.total} "
            f"staff={transaction.staff_id}",
            extra={"transaction_id": transaction.id, "staff_id": transaction.staff_id},
        )

        if self.monitor.is_online and self._sync_trigger is not None:
            self._sync_trigger(transaction.id)

        return transaction.id

    # ==================== QUERIES ====================

    async def get_transaction(self, transaction_id: str) -> Optional[QueuedTransaction]:
        return await self.store.get(transaction_id)

    async def get_pending_transactions(self) -> List[QueuedTransaction]:
        """Records eligible for automatic sync, oldest first."""
        return await self.store.get_pending(self.max_sync_attempts)

    async def get_all_transactions(self) -> List[QueuedTransaction]:
        return await self.store.get_all()

    async def get_queue_stats(self) -> QueueStats:
        """Read-only diagnostic view of the queue."""
        counts = await self.store.count_by_status(self.max_sync_attempts)
        last_sync_attempt = await self.store.get_sync_metadata(LAST_SYNC_ATTEMPT_KEY)
        next_sync_attempt = self._next_sync_provider() if self._next_sync_provider else None
        return QueueStats(
            pending_transactions=counts["pending"],
            failed_transactions=counts["failed"],
            dead_lettered_transactions=counts["dead_lettered"],
            last_sync_attempt=parse_iso_datetime(last_sync_attempt),
            next_sync_attempt=next_sync_attempt,
        )

    async def record_sync_attempt(self) -> None:
        """Stamp the end of a sweep in sync metadata."""
        await self.store.set_sync_metadata(LAST_SYNC_ATTEMPT_KEY, utcnow().isoformat())

    # ==================== IN-FLIGHT CLAIMS ====================

    def claim(self, transaction_id: str) -> bool:
        """Reserve a record for submission; False if it is already in flight."""
        if transaction_id in self._in_flight:
            return False
        self._in_flight.add(transaction_id)
        return True

    def release(self, transaction_id: str) -> None:
        self._in_flight.discard(transaction_id)

    def is_in_flight(self, transaction_id: str) -> bool:
        return transaction_id in self._in_flight

    # ==================== STATE TRANSITIONS ====================

    async def mark_synced(self, transaction_id: str, server_sale_id: Optional[str] = None) -> QueuedTransaction:
        """Record the remote acknowledgement. Attempts are left unchanged."""
        transaction = await self.store.update_status(
            transaction_id,
            TransactionStatus.SYNCED,
            attempted=True,
            resolution=TransactionResolution.ACKNOWLEDGED,
            server_sale_id=server_sale_id,
        )
        logger.info(
            f"Transaction {transaction_id} synced as sale {server_sale_id}",
            extra={"transaction_id": transaction_id, "sale_id": server_sale_id},
        )
        return transaction

    async def record_failure(self, transaction_id: str, error: str) -> QueuedTransaction:
        """Count a failed attempt; the record stays retryable until the ceiling."""
        transaction = await self.store.update_status(
            transaction_id,
            TransactionStatus.FAILED,
            error,
            increment_attempts=True,
        )
        if transaction.sync_attempts >= self.max_sync_attempts:
            logger.warning(
                f"Transaction {transaction_id} dead-lettered after "
                f"{transaction.sync_attempts} attempts: {error}",
                extra={"transaction_id": transaction_id, "sync_attempts": transaction.sync_attempts},
            )
        else:
            logger.warning(
                f"Transaction {transaction_id} failed attempt "
                f"{transaction.sync_attempts}/{self.max_sync_attempts}: {error}",
                extra={"transaction_id": transaction_id, "sync_attempts": transaction.sync_attempts},
            )
        return transaction

    async def mark_rejected(self, transaction_id: str, error: str) -> QueuedTransaction:
        """Dead-letter a record the remote refused as invalid."""
        transaction = await self.store.update_status(
            transaction_id,
            TransactionStatus.FAILED,
            error,
            increment_attempts=True,
            resolution=TransactionResolution.REJECTED,
        )
        logger.error(
            f"Transaction {transaction_id} rejected by server, dead-lettered: {error}",
            extra={"transaction_id": transaction_id},
        )
        return transaction

    # ==================== OPERATOR ACTIONS ====================

    async def clear_failed_transactions(self, include_retryable: bool = False) -> int:
        """Take dead-lettered records out of the active queue without resubmitting.

        This acknowledges data loss: the records are marked ``synced`` with
        resolution ``operator_cleared`` so they stay distinguishable from
        sales the server actually accepted. With ``include_retryable`` every
        failed record is cleared, not only dead-lettered ones.
        """
        failed = await self.store.get_by_status(TransactionStatus.FAILED)
        cleared: List[str] = []
        for transaction in failed:
            if not include_retryable and not transaction.is_dead_lettered(self.max_sync_attempts):
                continue
            if self.is_in_flight(transaction.id):
                continue
            await self.store.update_status(
                transaction.id,
                TransactionStatus.SYNCED,
                resolution=TransactionResolution.OPERATOR_CLEARED,
            )
            cleared.append(transaction.id)

        if cleared:
            logger.warning(
                f"Operator cleared {len(cleared)} failed transactions without sync: {', '.join(cleared)}",
                extra={"transaction_ids": cleared},
            )
        return len(cleared)

    async def purge_synced_transactions(self, older_than: Union[datetime, timedelta]) -> int:
        """Delete synced records captured before a cutoff (or older than an age)."""
        cutoff = utcnow() - older_than if isinstance(older_than, timedelta) else older_than
        removed = await self.store.purge_synced(cutoff)
        if removed:
            logger.info(f"Purged {removed} synced transactions captured before {cutoff.isoformat()}")
        return removed
