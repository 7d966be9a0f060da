"""
Sync wire format: push batches, per-entity payload variants, pull responses.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import Field

from expense_tracker.schemas.base import (
    CamelModel,
    Category,
    Merchant,
    Product,
    Receipt,
    Subcategory,
)

ENTITY_TYPES = ("category", "subcategory", "merchant", "product", "receipt")
OPERATIONS = ("create", "update", "delete")


# ---------------------------------------------------------------------------
# Push envelope
# ---------------------------------------------------------------------------

class SyncItem(CamelModel):
    """One queued local mutation.

    ``entity_type`` and ``operation`` are kept as plain strings so an
    unknown value fails only this item, not the whole batch.
    """
    entity_type: str
    entity_id: str
    operation: str
    data: Optional[dict[str, Any]] = None
    local_timestamp: str


class SyncBatch(CamelModel):
    items: list[SyncItem]
    last_sync_timestamp: Optional[str] = None


class SyncResult(CamelModel):
    entity_id: str
    success: bool
    server_id: Optional[str] = None
    error: Optional[str] = None


class SyncPushResponse(CamelModel):
    results: list[SyncResult]


# ---------------------------------------------------------------------------
# Per-entity payload variants (validated before dispatch)
# ---------------------------------------------------------------------------

class CategoryData(CamelModel):
    name: str = Field(..., min_length=1)
    icon: Optional[str] = None
    color: Optional[str] = None
    is_default: bool = False


class SubcategoryData(CamelModel):
    name: str = Field(..., min_length=1)
    parent_category_id: Optional[str] = None


class MerchantData(CamelModel):
    name: str = Field(..., min_length=1)
    nif: Optional[str] = None
    address: Optional[str] = None
    is_solidified: bool = False


class ProductData(CamelModel):
    name: str = Field(..., min_length=1)
    category_id: Optional[str] = None
    subcategory_id: Optional[str] = None
    default_price: Optional[float] = None
    barcode: Optional[str] = None
    is_weighted: bool = False
    exclude_from_price_history: bool = False
    is_solidified: bool = False


class ReceiptItemData(CamelModel):
    id: Optional[str] = None
    product_id: Optional[str] = None
    product_name: str
    quantity: float = 1
    unit_price: float = 0
    total: Optional[float] = None
    exclude_from_price_history: bool = False

    def line_total(self) -> float:
        if self.total is not None:
            return self.total
        return round(self.quantity * self.unit_price, 2)


class ReceiptData(CamelModel):
    merchant_id: Optional[str] = None
    date: str = Field(..., min_length=1)
    time: Optional[str] = None
    receipt_number: Optional[str] = None
    customer_nif: Optional[str] = None
    has_customer_nif: bool = False
    items: list[ReceiptItemData] = Field(default_factory=list)
    total: Optional[float] = None
    notes: Optional[str] = None

    def receipt_total(self) -> float:
        if self.total is not None:
            return self.total
        return round(sum(item.line_total() for item in self.items), 2)


ENTITY_DATA_MODELS: dict[str, type[CamelModel]] = {
    "category": CategoryData,
    "subcategory": SubcategoryData,
    "merchant": MerchantData,
    "product": ProductData,
    "receipt": ReceiptData,
}


# ---------------------------------------------------------------------------
# Pull / full / status
# ---------------------------------------------------------------------------

class SyncPullResponse(CamelModel):
    categories: list[Category] = Field(default_factory=list)
    subcategories: list[Subcategory] = Field(default_factory=list)
    products: list[Product] = Field(default_factory=list)
    merchants: list[Merchant] = Field(default_factory=list)
    receipts: list[Receipt] = Field(default_factory=list)
    sync_timestamp: str


class SyncStatusResponse(CamelModel):
    counts: dict[str, int]
    last_updates: dict[str, Optional[datetime]]
