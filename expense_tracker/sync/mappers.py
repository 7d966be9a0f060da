"""
Server rows -> client-shape records.

``id`` prefers the client's local id; ``serverId`` is always the row id.
Foreign keys are mapped back to the referenced rows' local ids so the
client can apply records without knowing server ids.
"""
from __future__ import annotations

from typing import Optional

from expense_tracker.models import (
    CategoryModel,
    MerchantModel,
    ProductModel,
    ReceiptItemModel,
    ReceiptModel,
    SubcategoryModel,
)
from expense_tracker.schemas.base import (
    Category,
    Merchant,
    Product,
    Receipt,
    ReceiptItem,
    Subcategory,
)


def client_id(row) -> Optional[str]:
    if row is None:
        return None
    return row.local_id or row.id


def map_category(row: CategoryModel) -> Category:
    return Category(
        id=client_id(row),
        server_id=row.id,
        name=row.name,
        icon=row.icon or "",
        color=row.color or "",
        is_default=row.is_default,
    )


def map_subcategory(row: SubcategoryModel) -> Subcategory:
    return Subcategory(
        id=client_id(row),
        server_id=row.id,
        name=row.name,
        parent_category_id=client_id(row.category),
    )


def map_merchant(row: MerchantModel) -> Merchant:
    return Merchant(
        id=client_id(row),
        server_id=row.id,
        name=row.name,
        nif=row.nif,
        address=row.address,
        is_solidified=row.is_solidified,
        sync_status=row.sync_status,
    )


def map_product(row: ProductModel) -> Product:
    return Product(
        id=client_id(row),
        server_id=row.id,
        name=row.name,
        category_id=client_id(row.category),
        subcategory_id=client_id(row.subcategory),
        default_price=row.default_price,
        barcode=row.barcode,
        is_weighted=row.is_weighted,
        exclude_from_price_history=row.exclude_from_price_history,
        is_solidified=row.is_solidified,
        sync_status=row.sync_status,
    )


def map_receipt_item(row: ReceiptItemModel) -> ReceiptItem:
    return ReceiptItem(
        id=client_id(row),
        product_id=client_id(row.product),
        product_name=row.product_name,
        quantity=row.quantity,
        unit_price=row.unit_price,
        total=row.total,
        exclude_from_price_history=row.exclude_from_price_history,
    )


def map_receipt(row: ReceiptModel) -> Receipt:
    return Receipt(
        id=client_id(row),
        server_id=row.id,
        merchant_id=client_id(row.merchant),
        date=row.date,
        time=row.time,
        receipt_number=row.receipt_number,
        customer_nif=row.customer_nif,
        has_customer_nif=row.has_customer_nif,
        total=row.total,
        notes=row.notes,
        items=[map_receipt_item(item) for item in row.items],
    )
