"""
Queued transaction model.

One row per POS sale captured on this terminal. Rows are written when a
sale is finalised and only change status through the queue manager; they
are never removed until the remote acknowledgement (or an operator's
explicit clear) has been recorded.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, JSON, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from offline_pos.db.base import Base, TimestampMixin


class QueuedTransactionRecord(Base, TimestampMixin):
    """POS sale awaiting confirmation by the remote system."""

    __tablename__ = "queued_transactions"
    __table_args__ = (
        Index("ix_queued_transactions_status_sequence", "status", "sequence"),
    )

    # Insertion counter; oldest-first ordering of the queue relies on it
    sequence: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)

    items: Mapped[list] = mapped_column(JSON, nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    discount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0, nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False)

    customer_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    customer_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    staff_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    staff_name: Mapped[str] = mapped_column(String(255), nullable=False)

    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Sync state
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)  # pending, synced, failed
    sync_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_sync_attempt: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolution: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)  # acknowledged, rejected, operator_cleared
    server_sale_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
