"""Catalog schemas for offline product lookup."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from offline_pos.schemas.common import Price, UtcDateTime


class ProductStatus(str, Enum):
    """Catalog product status."""
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    OUT_OF_STOCK = "OUT_OF_STOCK"
    DISCONTINUED = "DISCONTINUED"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            return cls.__members__.get(value.upper())
        return None


class CatalogProduct(BaseModel):
    """Product as returned by the remote catalog endpoint."""

    model_config = ConfigDict(extra="ignore")

    id: int
    name: str
    sku: str
    barcode: Optional[str] = None
    price: Price = Decimal("0")
    stock: int = 0
    category: str = ""
    brand: str = ""
    description: Optional[str] = None
    status: ProductStatus = ProductStatus.ACTIVE

    @field_validator("category", "brand", mode="before")
    @classmethod
    def flatten_named_relation(cls, v):
        # The API sometimes embeds the related row instead of its name
        if v is None:
            return ""
        if isinstance(v, dict):
            return v.get("name") or ""
        return v

    @field_validator("barcode", mode="before")
    @classmethod
    def blank_barcode_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class CachedProduct(CatalogProduct):
    """Offline snapshot of a catalog product."""

    model_config = ConfigDict(extra="ignore", from_attributes=True)

    last_updated: UtcDateTime

    @property
    def is_active(self) -> bool:
        return self.status == ProductStatus.ACTIVE

    def matches(self, term: str) -> bool:
        """Case-insensitive match on name, sku, barcode, category or brand."""
        term = term.lower()
        fields = (self.name, self.sku, self.barcode or "", self.category, self.brand)
        return any(term in value.lower() for value in fields)


class CatalogPage(BaseModel):
    """Envelope of the catalog endpoint (``{"products": [...]}``)."""

    model_config = ConfigDict(extra="ignore")

    products: list[CatalogProduct] = Field(default_factory=list)
