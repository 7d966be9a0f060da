"""
Pydantic v2 models for local records, the sync wire format and the
community directory.
"""
from expense_tracker.schemas.base import (
    CamelModel,
    Category,
    Merchant,
    PriceHistoryEntry,
    Product,
    Receipt,
    ReceiptDraft,
    ReceiptItem,
    Subcategory,
    receipt_total,
)
from expense_tracker.schemas.sync import (
    ENTITY_DATA_MODELS,
    ENTITY_TYPES,
    OPERATIONS,
    SyncBatch,
    SyncItem,
    SyncPullResponse,
    SyncPushResponse,
    SyncResult,
    SyncStatusResponse,
)

__all__ = [
    "CamelModel",
    "Category",
    "Merchant",
    "PriceHistoryEntry",
    "Product",
    "Receipt",
    "ReceiptDraft",
    "ReceiptItem",
    "Subcategory",
    "receipt_total",
    "ENTITY_DATA_MODELS",
    "ENTITY_TYPES",
    "OPERATIONS",
    "SyncBatch",
    "SyncItem",
    "SyncPullResponse",
    "SyncPushResponse",
    "SyncResult",
    "SyncStatusResponse",
]
