"""Cached catalog and sync bookkeeping models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import DateTime, Integer, JSON, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from offline_pos.db.base import Base


class CachedProductRecord(Base):
    """Read-only product snapshot for offline lookups."""

    __tablename__ = "cached_products"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sku: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    barcode: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    category: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    brand: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)  # ACTIVE, INACTIVE, OUT_OF_STOCK, DISCONTINUED
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class SyncMetadata(Base):
    """Small key-value side table (last sync attempt, last product sync)."""

    __tablename__ = "sync_metadata"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
