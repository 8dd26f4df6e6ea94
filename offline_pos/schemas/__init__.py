"""Pydantic schemas."""

from offline_pos.schemas.catalog import CachedProduct, CatalogProduct, ProductStatus
from offline_pos.schemas.sale import (
    OFFLINE_ID_PREFIX,
    PaymentMethod,
    QueuedTransaction,
    SaleDraft,
    SaleItem,
    SaleSubmission,
    SaleSubmissionResult,
    TransactionResolution,
    TransactionStatus,
)
from offline_pos.schemas.sync import NetworkStatus, QueueStats, StorageStats, SyncResult
