"""
Client-shape records shared by the local store and the sync wire format.

Field names are snake_case in Python and camelCase on the wire / in the
local blobs (``serverId``, ``isSolidified``, ...).
"""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

class Category(CamelModel):
    id: str
    name: str
    icon: str = ""
    color: str = ""
    is_default: bool = False
    server_id: Optional[str] = None


class Subcategory(CamelModel):
    id: str
    name: str
    parent_category_id: Optional[str] = None
    server_id: Optional[str] = None


class Merchant(CamelModel):
    id: str
    name: str
    nif: Optional[str] = None
    address: Optional[str] = None
    is_solidified: bool = False
    server_id: Optional[str] = None
    sync_status: Optional[str] = None


class PriceHistoryEntry(CamelModel):
    date: str
    price: float
    merchant_id: Optional[str] = None


class Product(CamelModel):
    id: str
    name: str
    category_id: Optional[str] = None
    subcategory_id: Optional[str] = None
    default_price: Optional[float] = None
    barcode: Optional[str] = None
    is_weighted: bool = False
    exclude_from_price_history: bool = False
    is_solidified: bool = False
    price_history: list[PriceHistoryEntry] = Field(default_factory=list)
    server_id: Optional[str] = None
    sync_status: Optional[str] = None


# ---------------------------------------------------------------------------
# Receipts
# ---------------------------------------------------------------------------

class ReceiptItem(CamelModel):
    id: str
    product_id: Optional[str] = None
    product_name: str
    quantity: float = 1
    unit_price: float = 0
    total: float = 0
    exclude_from_price_history: bool = False

    @classmethod
    def build(
        cls,
        id: str,
        product_id: Optional[str],
        product_name: str,
        quantity: float,
        unit_price: float,
        exclude_from_price_history: bool = False,
    ) -> "ReceiptItem":
        """Line item with ``total`` derived from quantity and unit price.

        The total may be edited afterwards; the invariant only holds here.
        """
        return cls(
            id=id,
            product_id=product_id,
            product_name=product_name,
            quantity=quantity,
            unit_price=unit_price,
            total=round(quantity * unit_price, 2),
            exclude_from_price_history=exclude_from_price_history,
        )


class Receipt(CamelModel):
    id: str
    merchant_id: Optional[str] = None
    date: str
    time: Optional[str] = None
    receipt_number: Optional[str] = None
    customer_nif: Optional[str] = None
    has_customer_nif: bool = False
    items: list[ReceiptItem] = Field(default_factory=list)
    total: float = 0
    notes: Optional[str] = None
    server_id: Optional[str] = None


def receipt_total(items: list[ReceiptItem], explicit_total: Optional[float] = None) -> float:
    """Explicit total is authoritative; the item sum is only a default."""
    if explicit_total is not None:
        return explicit_total
    return round(sum(item.total for item in items), 2)


# ---------------------------------------------------------------------------
# Scanned receipt draft
# ---------------------------------------------------------------------------

class ReceiptDraft(CamelModel):
    """Whatever subset of receipt fields a QR payload yielded."""
    nif: Optional[str] = None
    customer_nif: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    receipt_number: Optional[str] = None
    total: Optional[float] = None
