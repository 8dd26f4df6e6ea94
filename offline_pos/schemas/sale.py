"""Sale schemas: the queued transaction and the remote submission contract."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from offline_pos.schemas.common import Money, OptionalUtcDateTime, UtcDateTime


OFFLINE_ID_PREFIX = "offline_"


class PaymentMethod(str, Enum):
    """Payment methods accepted at the till."""
    CASH = "cash"
    POS = "pos"
    BANK_TRANSFER = "bank_transfer"
    MOBILE_MONEY = "mobile_money"

    @classmethod
    def _missing_(cls, value):
        # Card terminals are booked as "pos" by the back office
        if isinstance(value, str) and value.lower() == "card":
            return cls.POS
        return None


class TransactionStatus(str, Enum):
    """Queue status of a transaction."""
    PENDING = "pending"
    SYNCED = "synced"
    FAILED = "failed"


class TransactionResolution(str, Enum):
    """How a transaction left the active queue."""
    ACKNOWLEDGED = "acknowledged"
    REJECTED = "rejected"
    OPERATOR_CLEARED = "operator_cleared"


class SaleItem(BaseModel):
    """One line of a sale."""

    model_config = ConfigDict(populate_by_name=True)

    product_id: int = Field(validation_alias=AliasChoices("product_id", "productId"))
    name: str
    sku: str
    unit_price: Money = Field(ge=0, validation_alias=AliasChoices("unit_price", "unitPrice", "price"))
    quantity: int = Field(ge=1)
    line_total: Money = Field(validation_alias=AliasChoices("line_total", "lineTotal", "total"))

    @model_validator(mode="after")
    def check_line_total(self) -> "SaleItem":
        if self.line_total != self.unit_price * self.quantity:
            raise ValueError(
                f"line_total {self.line_total} does not equal "
                f"unit_price {self.unit_price} x quantity {self.quantity}"
            )
        return self


class SaleDraft(BaseModel):
    """A finalised sale handed to the queue by the till.

    Accepts both snake_case and the camelCase keys the POS frontend sends.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    items: List[SaleItem] = Field(min_length=1)
    subtotal: Money = Field(ge=0)
    discount: Money = Field(default=Decimal("0"), ge=0)
    total: Money
    payment_method: PaymentMethod
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    staff_id: int
    staff_name: str = Field(min_length=1)

    @model_validator(mode="after")
    def check_totals(self) -> "SaleDraft":
        if self.discount > self.subtotal:
            raise ValueError(f"discount {self.discount} exceeds subtotal {self.subtotal}")
        if self.total != self.subtotal - self.discount:
            raise ValueError(
                f"total {self.total} does not equal subtotal {self.subtotal} "
                f"minus discount {self.discount}"
            )
        return self


class QueuedTransaction(SaleDraft):
    """A sale as held in the local queue."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: str
    timestamp: UtcDateTime
    status: TransactionStatus = TransactionStatus.PENDING
    sync_attempts: int = Field(default=0, ge=0)
    last_error: Optional[str] = None
    last_sync_attempt: OptionalUtcDateTime = None
    resolution: Optional[TransactionResolution] = None
    server_sale_id: Optional[str] = None
    sequence: Optional[int] = None

    def is_retryable(self, max_attempts: int) -> bool:
        """Eligible for an automatic sync attempt."""
        if self.status == TransactionStatus.PENDING:
            return True
        return (
            self.status == TransactionStatus.FAILED
            and self.resolution is None
            and self.sync_attempts < max_attempts
        )

    def is_dead_lettered(self, max_attempts: int) -> bool:
        """Failed and waiting for an operator decision."""
        return self.status == TransactionStatus.FAILED and not self.is_retryable(max_attempts)


class SubmissionItem(BaseModel):
    """Line item in the remote create-sale payload."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    product_id: int
    quantity: int
    price: Money
    total: Money


class SaleSubmission(BaseModel):
    """Body of the remote create-sale request."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    items: List[SubmissionItem]
    subtotal: Money
    discount: Money
    total: Money
    payment_method: PaymentMethod
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    amount_paid: Money
    notes: str
    staff_id: int
    staff_name: str
    client_transaction_id: str

    @classmethod
    def from_queued(cls, transaction: QueuedTransaction) -> "SaleSubmission":
        """Translate a queued record into the remote contract.

        Offline sales are assumed fully paid; the local id travels in the
        notes and as ``clientTransactionId`` so the server can deduplicate.
        """
        return cls(
            items=[
                SubmissionItem(
                    product_id=item.product_id,
                    quantity=item.quantity,
                    price=item.unit_price,
                    total=item.line_total,
                )
                for item in transaction.items
            ],
            subtotal=transaction.subtotal,
            discount=transaction.discount,
            total=transaction.total,
            payment_method=transaction.payment_method,
            customer_name=transaction.customer_name,
            customer_phone=transaction.customer_phone,
            customer_email=transaction.customer_email,
            amount_paid=transaction.total,
            notes=f"Offline transaction synced. Original ID: {transaction.id}",
            staff_id=transaction.staff_id,
            staff_name=transaction.staff_name,
            client_transaction_id=transaction.id,
        )

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class SaleSubmissionResult(BaseModel):
    """Acknowledgement returned by the remote create-sale endpoint."""

    sale_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("saleId", "sale_id", "id"))

    @model_validator(mode="before")
    @classmethod
    def coerce_sale_id(cls, data):
        if isinstance(data, dict):
            data = dict(data)
            sale = data.get("sale")
            if isinstance(sale, dict) and "id" in sale and "saleId" not in data:
                data["saleId"] = sale["id"]
            for key in ("saleId", "sale_id", "id"):
                if data.get(key) is not None:
                    data[key] = str(data[key])
        return data
