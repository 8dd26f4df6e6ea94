"""
Offline Store - local durable persistence for the POS terminal

Holds three things across process restarts:
- queued transactions (sales captured while disconnected)
- the cached product catalog
- sync bookkeeping (last sync attempt, last product sync)

Every public method is a coroutine that runs one SQLAlchemy unit of work
in a worker thread. Each unit of work is a single database transaction,
so a reader never observes a half-written record or a half-replaced
catalog. Database errors are re-raised as ``StorageError``.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, TypeVar

from pydantic import ValidationError
from sqlalchemy import Engine, and_, delete, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from offline_pos.core.exceptions import NotFoundError, StorageError
from offline_pos.core.time_utils import utcnow
from offline_pos.db.base import Base
from offline_pos.db.session import create_session_factory, create_store_engine
from offline_pos.models import CachedProductRecord, QueuedTransactionRecord, SyncMetadata
from offline_pos.schemas.catalog import CachedProduct
from offline_pos.schemas.sale import QueuedTransaction, TransactionResolution, TransactionStatus
from offline_pos.schemas.sync import StorageStats

logger = logging.getLogger(__name__)

T = TypeVar("T")

LAST_PRODUCT_SYNC_KEY = "lastProductSync"
LAST_SYNC_ATTEMPT_KEY = "lastSyncAttempt"


def _item_to_json(item) -> Dict[str, Any]:
    # Money as strings so Decimal values round-trip exactly through JSON
    return {
        "product_id": item.product_id,
        "name": item.name,
        "sku": item.sku,
        "unit_price": str(item.unit_price),
        "quantity": item.quantity,
        "line_total": str(item.line_total),
    }


def _record_to_transaction(record: QueuedTransactionRecord) -> QueuedTransaction:
    return QueuedTransaction.model_validate({
        "id": record.id,
        "sequence": record.sequence,
        "items": record.items,
        "subtotal": record.subtotal,
        "discount": record.discount,
        "total": record.total,
        "payment_method": record.payment_method,
        "customer_name": record.customer_name,
        "customer_phone": record.customer_phone,
        "customer_email": record.customer_email,
        "staff_id": record.staff_id,
        "staff_name": record.staff_name,
        "timestamp": record.timestamp,
        "status": record.status,
        "sync_attempts": record.sync_attempts,
        "last_error": record.last_error,
        "last_sync_attempt": record.last_sync_attempt,
        "resolution": record.resolution,
        "server_sale_id": record.server_sale_id,
    })


def _retryable_clause(max_attempts: int):
    return or_(
        QueuedTransactionRecord.status == TransactionStatus.PENDING.value,
        and_(
            QueuedTransactionRecord.status == TransactionStatus.FAILED.value,
            QueuedTransactionRecord.resolution.is_(None),
            QueuedTransactionRecord.sync_attempts < max_attempts,
        ),
    )


class OfflineStore:
    """SQLAlchemy-backed store for queued sales and the catalog snapshot."""

    def __init__(self, session_factory: sessionmaker[Session], engine: Optional[Engine] = None):
        self._session_factory = session_factory
        self._engine = engine

    @classmethod
    def from_url(cls, database_url: str, echo: bool = False) -> "OfflineStore":
        """Open (and create if needed) the store at *database_url*."""
        try:
            engine = create_store_engine(database_url, echo=echo)
            return cls(create_session_factory(engine), engine=engine)
        except (SQLAlchemyError, OSError) as e:
            raise StorageError("open", str(e)) from e

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()

    async def _run(self, operation: str, fn: Callable[[Session], T]) -> T:
        return await asyncio.to_thread(self._run_sync, operation, fn)

    def _run_sync(self, operation: str, fn: Callable[[Session], T]) -> T:
        try:
            with self._session_factory.begin() as session:
                return fn(session)
        except SQLAlchemyError as e:
            logger.error(
                f"Local store {operation} failed: {e}",
                extra={"operation": operation},
            )
            raise StorageError(operation, str(e)) from e
        except ValidationError as e:
            logger.error(
                f"Local store {operation} read an undecodable record: {e}",
                extra={"operation": operation},
            )
            raise StorageError(operation, f"undecodable record: {e}") from e

    # ==================== TRANSACTIONS ====================

    async def put(self, transaction: QueuedTransaction) -> None:
        """Insert or replace a queued transaction, keyed by its local id."""

        def _put(session: Session) -> None:
            record = session.scalar(
                select(QueuedTransactionRecord).where(QueuedTransactionRecord.id == transaction.id)
            )
            if record is None:
                record = QueuedTransactionRecord(id=transaction.id)
                session.add(record)
            record.items = [_item_to_json(item) for item in transaction.items]
            record.subtotal = transaction.subtotal
            record.discount = transaction.discount
            record.total = transaction.total
            record.payment_method = transaction.payment_method.value
            record.customer_name = transaction.customer_name
            record.customer_phone = transaction.customer_phone
            record.customer_email = transaction.customer_email
            record.staff_id = transaction.staff_id
            record.staff_name = transaction.staff_name
            record.timestamp = transaction.timestamp
            record.status = transaction.status.value
            record.sync_attempts = transaction.sync_attempts
            record.last_error = transaction.last_error
            record.last_sync_attempt = transaction.last_sync_attempt
            record.resolution = transaction.resolution.value if transaction.resolution else None
            record.server_sale_id = transaction.server_sale_id

        await self._run("put", _put)

    async def get(self, transaction_id: str) -> Optional[QueuedTransaction]:
        def _get(session: Session) -> Optional[QueuedTransaction]:
            record = session.scalar(
                select(QueuedTransactionRecord).where(QueuedTransactionRecord.id == transaction_id)
            )
            return _record_to_transaction(record) if record else None

        return await self._run("get", _get)

    async def get_pending(self, max_attempts: int) -> List[QueuedTransaction]:
        """Pending and still-retryable failed records, oldest first.

        A record that no longer decodes is logged and left out so it
        cannot hold back the rest of the queue.
        """

        def _get_pending(session: Session) -> List[QueuedTransaction]:
            records = session.scalars(
                select(QueuedTransactionRecord)
                .where(_retryable_clause(max_attempts))
                .order_by(QueuedTransactionRecord.sequence)
            )
            pending = []
            for record in records:
                try:
                    pending.append(_record_to_transaction(record))
                except ValidationError as e:
                    logger.error(
                        f"Skipping undecodable queued transaction {record.id}: {e}",
                        extra={"transaction_id": record.id},
                    )
            return pending

        return await self._run("get_pending", _get_pending)

    async def get_by_status(self, status: TransactionStatus) -> List[QueuedTransaction]:
        def _get_by_status(session: Session) -> List[QueuedTransaction]:
            records = session.scalars(
                select(QueuedTransactionRecord)
                .where(QueuedTransactionRecord.status == status.value)
                .order_by(QueuedTransactionRecord.sequence)
            )
            return [_record_to_transaction(r) for r in records]

        return await self._run("get_by_status", _get_by_status)

    async def get_all(self) -> List[QueuedTransaction]:
        def _get_all(session: Session) -> List[QueuedTransaction]:
            records = session.scalars(
                select(QueuedTransactionRecord).order_by(QueuedTransactionRecord.sequence)
            )
            return [_record_to_transaction(r) for r in records]

        return await self._run("get_all", _get_all)

    async def count_by_status(self, max_attempts: int) -> Dict[str, int]:
        """Counts of pending, unresolved failed, and dead-lettered records."""

        def _count(session: Session) -> Dict[str, int]:
            rows = session.execute(
                select(QueuedTransactionRecord.status, func.count())
                .where(QueuedTransactionRecord.resolution.is_(None))
                .group_by(QueuedTransactionRecord.status)
            ).all()
            counts = {status: count for status, count in rows}
            rejected = session.scalar(
                select(func.count()).select_from(QueuedTransactionRecord).where(
                    QueuedTransactionRecord.status == TransactionStatus.FAILED.value,
                    QueuedTransactionRecord.resolution == TransactionResolution.REJECTED.value,
                )
            ) or 0
            exhausted = session.scalar(
                select(func.count()).select_from(QueuedTransactionRecord).where(
                    QueuedTransactionRecord.status == TransactionStatus.FAILED.value,
                    QueuedTransactionRecord.resolution.is_(None),
                    QueuedTransactionRecord.sync_attempts >= max_attempts,
                )
            ) or 0
            return {
                "pending": counts.get(TransactionStatus.PENDING.value, 0),
                "failed": counts.get(TransactionStatus.FAILED.value, 0) + rejected,
                "dead_lettered": exhausted + rejected,
            }

        return await self._run("count_by_status", _count)

    async def update_status(
        self,
        transaction_id: str,
        status: TransactionStatus,
        error: Optional[str] = None,
        *,
        increment_attempts: bool = False,
        attempted: bool = False,
        resolution: Optional[TransactionResolution] = None,
        server_sale_id: Optional[str] = None,
    ) -> QueuedTransaction:
        """Partial update of sync state.

        ``increment_attempts`` counts a failed attempt; ``attempted`` only
        stamps ``last_sync_attempt`` (used for successful submissions).

        Raises:
            NotFoundError: no record with *transaction_id* exists.
        """

        def _update(session: Session) -> QueuedTransaction:
            record = session.scalar(
                select(QueuedTransactionRecord)
                .where(QueuedTransactionRecord.id == transaction_id)
                .with_for_update()
            )
            if record is None:
                raise NotFoundError(transaction_id)
            record.status = status.value
            if increment_attempts:
                record.sync_attempts += 1
            if increment_attempts or attempted:
                record.last_sync_attempt = utcnow()
            if error is not None:
                record.last_error = error
            if resolution is not None:
                record.resolution = resolution.value
            if server_sale_id is not None:
                record.server_sale_id = server_sale_id
            session.flush()
            return _record_to_transaction(record)

        return await self._run("update_status", _update)

    async def purge_synced(self, older_than: datetime) -> int:
        """Delete resolved ``synced`` records captured before *older_than*."""

        def _purge(session: Session) -> int:
            result = session.execute(
                delete(QueuedTransactionRecord).where(
                    QueuedTransactionRecord.status == TransactionStatus.SYNCED.value,
                    QueuedTransactionRecord.resolution.is_not(None),
                    QueuedTransactionRecord.timestamp < older_than,
                )
            )
            return result.rowcount or 0

        return await self._run("purge_synced", _purge)

    # ==================== CATALOG ====================

    async def cache_products(self, products: List[CachedProduct]) -> None:
        """Replace the whole catalog snapshot in one transaction."""

        def _replace(session: Session) -> None:
            session.execute(delete(CachedProductRecord))
            session.add_all([
                CachedProductRecord(
                    id=p.id,
                    name=p.name,
                    sku=p.sku,
                    barcode=p.barcode,
                    price=p.price,
                    stock=p.stock,
                    category=p.category,
                    brand=p.brand,
                    description=p.description,
                    status=p.status.value,
                    last_updated=p.last_updated,
                )
                for p in products
            ])

        await self._run("cache_products", _replace)

    async def get_cached_products(self) -> List[CachedProduct]:
        def _get(session: Session) -> List[CachedProduct]:
            records = session.scalars(select(CachedProductRecord).order_by(CachedProductRecord.id))
            return [CachedProduct.model_validate(r) for r in records]

        return await self._run("get_cached_products", _get)

    # ==================== SYNC METADATA ====================

    async def get_sync_metadata(self, key: str) -> Any:
        def _get(session: Session) -> Any:
            row = session.get(SyncMetadata, key)
            return row.value if row else None

        return await self._run("get_sync_metadata", _get)

    async def set_sync_metadata(self, key: str, value: Any) -> None:
        def _set(session: Session) -> None:
            row = session.get(SyncMetadata, key)
            if row is None:
                session.add(SyncMetadata(key=key, value=value, updated_at=utcnow()))
            else:
                row.value = value
                row.updated_at = utcnow()

        await self._run("set_sync_metadata", _set)

    # ==================== MAINTENANCE ====================

    async def clear_all(self) -> None:
        """Wipe transactions, catalog and metadata."""

        def _clear(session: Session) -> None:
            for table in reversed(Base.metadata.sorted_tables):
                session.execute(table.delete())

        logger.warning("Clearing all offline data")
        await self._run("clear_all", _clear)

    async def get_stats(self) -> StorageStats:
        def _stats(session: Session) -> Dict[str, Any]:
            total = session.scalar(select(func.count()).select_from(QueuedTransactionRecord)) or 0
            pending = session.scalar(
                select(func.count()).select_from(QueuedTransactionRecord).where(
                    QueuedTransactionRecord.status == TransactionStatus.PENDING.value
                )
            ) or 0
            cached = session.scalar(select(func.count()).select_from(CachedProductRecord)) or 0
            row = session.get(SyncMetadata, LAST_PRODUCT_SYNC_KEY)
            return {
                "pending_transactions": pending,
                "cached_products": cached,
                "total_transactions": total,
                "last_product_sync": row.value if row else None,
            }

        return StorageStats.model_validate(await self._run("get_stats", _stats))
