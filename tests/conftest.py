"""Pytest configuration and fixtures."""

import asyncio
from decimal import Decimal
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio

from offline_pos.core.config import Settings
from offline_pos.core.exceptions import RemoteServiceError
from offline_pos.schemas.catalog import CatalogProduct
from offline_pos.schemas.sale import SaleSubmission, SaleSubmissionResult
from offline_pos.services.network_monitor import ManualConnectivitySource
from offline_pos.services.offline_engine import OfflineSyncEngine
from offline_pos.services.offline_store import OfflineStore


def make_sale(**overrides) -> Dict[str, Any]:
    """A valid sale payload as the till frontend sends it."""
    sale = {
        "items": [
            {
                "productId": 1,
                "name": "Espresso",
                "sku": "COF-001",
                "unitPrice": "2.50",
                "quantity": 2,
                "lineTotal": "5.00",
            },
            {
                "productId": 2,
                "name": "Croissant",
                "sku": "BAK-004",
                "unitPrice": "3.20",
                "quantity": 1,
                "lineTotal": "3.20",
            },
        ],
        "subtotal": "8.20",
        "discount": "0.20",
        "total": "8.00",
        "paymentMethod": "cash",
        "staffId": 7,
        "staffName": "Maria",
    }
    sale.update(overrides)
    return sale


def make_product(product_id: int, **overrides) -> CatalogProduct:
    data = {
        "id": product_id,
        "name": f"Product {product_id}",
        "sku": f"SKU-{product_id:03d}",
        "barcode": f"5901234{product_id:06d}",
        "price": Decimal("1.00") * product_id,
        "stock": 10,
        "category": "Drinks",
        "brand": "House",
    }
    data.update(overrides)
    return CatalogProduct.model_validate(data)


class FakePosApi:
    """Records submissions; each call consumes the next scripted outcome.

    An outcome is an exception to raise or None for success. When the
    script runs out, ``default_error`` is raised if set, else the call
    succeeds.
    """

    def __init__(self):
        self.submissions: List[SaleSubmission] = []
        self.outcomes: List[Optional[Exception]] = []
        self.default_error: Optional[Exception] = None
        self.delay = 0.0
        self.catalog: List[CatalogProduct] = []
        self.catalog_error: Optional[Exception] = None
        self.catalog_calls = 0

    @property
    def submitted_ids(self) -> List[str]:
        return [s.client_transaction_id for s in self.submissions]

    async def submit_sale(self, submission: SaleSubmission) -> SaleSubmissionResult:
        self.submissions.append(submission)
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.outcomes.pop(0) if self.outcomes else self.default_error
        if outcome is not None:
            raise outcome
        return SaleSubmissionResult(sale_id=f"sale-{len(self.submissions)}")

    async def fetch_catalog(self) -> List[CatalogProduct]:
        self.catalog_calls += 1
        if self.catalog_error is not None:
            raise self.catalog_error
        return list(self.catalog)


def server_error(status_code: int = 500) -> RemoteServiceError:
    return RemoteServiceError("/api/pos/create-sale", status_code, "Internal Server Error")


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings with near-zero delays and a long periodic interval."""
    return Settings(
        _env_file=None,
        database_url=f"sqlite:///{tmp_path / 'offline_pos.db'}",
        request_timeout_seconds=2.0,
        max_sync_attempts=5,
        sync_interval_seconds=3600.0,
        reconnect_sync_delay_seconds=0.0,
        immediate_sync_delay_seconds=0.0,
        probe_interval_seconds=30.0,
    )


@pytest.fixture
def store(settings):
    store = OfflineStore.from_url(settings.database_url)
    yield store
    store.close()


@pytest.fixture
def connectivity() -> ManualConnectivitySource:
    """Starts offline so tests control when sync begins."""
    return ManualConnectivitySource(online=False)


@pytest.fixture
def fake_api() -> FakePosApi:
    return FakePosApi()


@pytest_asyncio.fixture
async def engine(settings, store, connectivity, fake_api):
    engine = OfflineSyncEngine(
        settings,
        store,
        connectivity,
        submitter=fake_api,
        catalog_source=fake_api,
    )
    await engine.start()
    yield engine
    await engine.stop()
