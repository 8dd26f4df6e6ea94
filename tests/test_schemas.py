"""Validation tests for sale and catalog schemas."""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from offline_pos.schemas.catalog import CatalogProduct
from offline_pos.schemas.sale import (
    PaymentMethod,
    QueuedTransaction,
    SaleDraft,
    SaleSubmissionResult,
    TransactionResolution,
    TransactionStatus,
)

from tests.conftest import make_sale


class TestSaleDraft:

    def test_accepts_camel_and_snake_case(self):
        camel = SaleDraft.model_validate(make_sale())
        snake = SaleDraft.model_validate(camel.model_dump())

        assert snake == camel
        assert camel.payment_method == PaymentMethod.CASH
        assert camel.discount == Decimal("0.20")

    def test_card_maps_to_pos(self):
        assert SaleDraft.model_validate(make_sale(paymentMethod="card")).payment_method == PaymentMethod.POS

    @pytest.mark.parametrize("overrides", [
        {"items": []},
        {"total": "9.00"},
        {"discount": "9.00", "total": "-0.80"},
        {"paymentMethod": "cheque"},
        {"staffName": ""},
        {"subtotal": "8.205", "discount": "0.205", "total": "8.00"},
    ])
    def test_rejects_inconsistent_sales(self, overrides):
        with pytest.raises(ValidationError):
            SaleDraft.model_validate(make_sale(**overrides))

    def test_rejects_wrong_line_total(self):
        sale = make_sale()
        sale["items"][0]["lineTotal"] = "4.00"
        with pytest.raises(ValidationError):
            SaleDraft.model_validate(sale)


class TestQueuedTransaction:

    def _tx(self, **overrides) -> QueuedTransaction:
        data = {**make_sale(), "id": "offline_1_a", "timestamp": "2024-06-10T08:00:00"}
        data.update(overrides)
        return QueuedTransaction.model_validate(data)

    def test_naive_timestamp_is_utc(self):
        assert self._tx().timestamp.utcoffset().total_seconds() == 0

    def test_retry_eligibility(self):
        assert self._tx().is_retryable(5)
        assert self._tx(status="failed", syncAttempts=4).is_retryable(5)
        assert not self._tx(status="failed", syncAttempts=5).is_retryable(5)
        assert not self._tx(status="synced").is_retryable(5)
        assert not self._tx(
            status="failed", syncAttempts=1, resolution=TransactionResolution.REJECTED
        ).is_retryable(5)

    def test_dead_lettered(self):
        assert self._tx(status=TransactionStatus.FAILED, syncAttempts=5).is_dead_lettered(5)
        assert not self._tx(status=TransactionStatus.SYNCED, syncAttempts=5).is_dead_lettered(5)


class TestSaleSubmissionResult:

    @pytest.mark.parametrize("body, expected", [
        ({"saleId": 10}, "10"),
        ({"sale_id": "s-1"}, "s-1"),
        ({"id": 7}, "7"),
        ({"sale": {"id": 99}}, "99"),
        ({}, None),
    ])
    def test_sale_id_shapes(self, body, expected):
        assert SaleSubmissionResult.model_validate(body).sale_id == expected


class TestCatalogProduct:

    def test_price_rounded_to_cents(self):
        product = CatalogProduct.model_validate({"id": 1, "name": "Tea", "sku": "TEA-1", "price": 2.499})
        assert product.price == Decimal("2.50")
