"""Remote POS API client: sale submission, catalog pull, health probe."""

import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from offline_pos.core.config import Settings
from offline_pos.core.exceptions import (
    RemoteServiceError,
    RemoteUnavailableError,
    SaleRejectedError,
)
from offline_pos.schemas.catalog import CatalogPage, CatalogProduct
from offline_pos.schemas.sale import SaleSubmission, SaleSubmissionResult

logger = logging.getLogger(__name__)

# Statuses that mean "this payload will never be accepted"
REJECTION_STATUSES = frozenset({400, 422})


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        return str(body.get("error") or body.get("detail") or body.get("message") or f"HTTP {response.status_code}")
    return f"HTTP {response.status_code}"


class PosApiClient:
    """Async client for the store's POS API."""

    def __init__(
        self,
        base_url: str,
        api_token: Optional[str] = None,
        timeout: float = 10.0,
        sale_endpoint: str = "/api/pos/create-sale",
        catalog_endpoint: str = "/api/pos/products",
        health_endpoint: str = "/api/health",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._api_token = api_token
        self.timeout = timeout
        self.sale_endpoint = sale_endpoint
        self.catalog_endpoint = catalog_endpoint
        self.health_endpoint = health_endpoint
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "PosApiClient":
        return cls(
            base_url=settings.api_base_url,
            api_token=settings.api_token,
            timeout=settings.request_timeout_seconds,
            sale_endpoint=settings.sale_endpoint,
            catalog_endpoint=settings.catalog_endpoint,
            health_endpoint=settings.health_endpoint,
            **kwargs,
        )

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._api_token:
            headers["Authorization"] = f"Bearer {self._api_token}"
        return headers

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._headers(),
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "PosApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _request(self, method: str, endpoint: str, **kwargs) -> httpx.Response:
        try:
            return await self.client.request(method, endpoint, **kwargs)
        except httpx.TimeoutException as e:
            raise RemoteUnavailableError(endpoint, f"timed out after {self.timeout}s") from e
        except httpx.TransportError as e:
            raise RemoteUnavailableError(endpoint, str(e) or e.__class__.__name__) from e

    async def submit_sale(self, submission: SaleSubmission) -> SaleSubmissionResult:
        """POST a sale. Success is the server's 2xx acknowledgement only.

        Raises:
            SaleRejectedError: the server refused the payload (400/422).
            RemoteServiceError: any other non-2xx answer.
            RemoteUnavailableError: network failure or timeout.
        """
        response = await self._request(
            "POST",
            self.sale_endpoint,
            json=submission.to_payload(),
            headers={"Idempotency-Key": submission.client_transaction_id},
        )
        if response.status_code in REJECTION_STATUSES:
            raise SaleRejectedError(self.sale_endpoint, response.status_code, _error_message(response))
        if not response.is_success:
            raise RemoteServiceError(self.sale_endpoint, response.status_code, _error_message(response))

        try:
            body: Any = response.json()
        except ValueError:
            body = {}
        result = SaleSubmissionResult.model_validate(body if isinstance(body, dict) else {})
        logger.info(
            f"Sale {submission.client_transaction_id} accepted as {result.sale_id}",
            extra={"transaction_id": submission.client_transaction_id, "sale_id": result.sale_id},
        )
        return result

    async def fetch_catalog(self) -> List[CatalogProduct]:
        """GET the full product list (``limit=0`` disables paging)."""
        response = await self._request("GET", self.catalog_endpoint, params={"limit": 0})
        if not response.is_success:
            raise RemoteServiceError(self.catalog_endpoint, response.status_code, _error_message(response))
        try:
            body = response.json()
        except ValueError as e:
            raise RemoteServiceError(self.catalog_endpoint, response.status_code, "invalid JSON body") from e
        if isinstance(body, list):
            body = {"products": body}
        return CatalogPage.model_validate(body).products

    async def probe(self) -> float:
        """HEAD the health endpoint and return the round trip in milliseconds."""
        start = time.perf_counter()
        response = await self._request("HEAD", self.health_endpoint, headers={"Cache-Control": "no-cache"})
        elapsed_ms = (time.perf_counter() - start) * 1000
        if not response.is_success:
            raise RemoteUnavailableError(self.health_endpoint, f"HTTP {response.status_code}")
        return elapsed_ms
