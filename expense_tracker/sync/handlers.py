"""
Per-entity upsert / delete handlers for pushed sync items.

Every handler returns the server id of the row it wrote (or found), or
``None`` for deletes. Foreign keys in the payload are the client's local
ids and are resolved to server ids within the owner's rows; a reference that
does not resolve is stored as NULL instead of failing the row.
"""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.orm import Session

from expense_tracker.database import insert_if_absent, utcnow
from expense_tracker.errors import ValidationError
from expense_tracker.models import (
    CategoryModel,
    MerchantModel,
    ProductModel,
    ReceiptItemModel,
    ReceiptModel,
    SubcategoryModel,
)
from expense_tracker.schemas.sync import (
    CategoryData,
    MerchantData,
    ProductData,
    ReceiptData,
    SubcategoryData,
)

logger = logging.getLogger(__name__)

SYNCED = "synced"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def resolve_server_id(db: Session, model, owner_id: str, local_id: Optional[str]) -> Optional[str]:
    """Map a client id to the owner's server id; unknown ids map to None."""
    if not local_id:
        return None
    return (
        db.query(model.id)
        .filter(model.user_id == owner_id, model.local_id == local_id)
        .limit(1)
        .scalar()
    )


def _find_by_local_id(db: Session, model, owner_id: str, local_id: str):
    return (
        db.query(model)
        .filter(model.user_id == owner_id, model.local_id == local_id)
        .first()
    )


def _insert_or_existing(db: Session, model, owner_id: str, local_id: str, build) -> str:
    """First writer wins for a given local id: existing rows are left untouched."""
    existing = _find_by_local_id(db, model, owner_id, local_id)
    if existing:
        return existing.id
    row = build()
    if insert_if_absent(db, row):
        return row.id
    existing = _find_by_local_id(db, model, owner_id, local_id)
    if existing is None:
        raise ValidationError(f"{model.__tablename__} row for {local_id} violates a constraint")
    return existing.id


def _delete_rows(db: Session, model, owner_id: str, local_id: str, unlink=()) -> int:
    """Delete the owner's rows for ``local_id``; nulls ``unlink`` references first."""
    rows = db.query(model).filter(model.user_id == owner_id, model.local_id == local_id).all()
    for row in rows:
        for ref_model, ref_column in unlink:
            _unlink(db, ref_model, ref_column, row.id)
        db.delete(row)
    db.flush()
    return len(rows)


def _unlink(db: Session, model, column, server_id: str) -> None:
    db.query(model).filter(column == server_id).update({column: None}, synchronize_session=False)


# ---------------------------------------------------------------------------
# Category: upsert on (owner, name)
# ---------------------------------------------------------------------------

def sync_category(db: Session, owner_id: str, operation: str, local_id: str,
                  data: Optional[CategoryData]) -> Optional[str]:
    if operation == "delete":
        for category in (
            db.query(CategoryModel)
            .filter(CategoryModel.user_id == owner_id, CategoryModel.local_id == local_id)
            .all()
        ):
            for sub in db.query(SubcategoryModel).filter(SubcategoryModel.category_id == category.id).all():
                _unlink(db, ProductModel, ProductModel.subcategory_id, sub.id)
                db.delete(sub)
        _delete_rows(
            db, CategoryModel, owner_id, local_id,
            unlink=[(ProductModel, ProductModel.category_id)],
        )
        return None

    existing = (
        db.query(CategoryModel)
        .filter(CategoryModel.user_id == owner_id, CategoryModel.name == data.name)
        .first()
    )
    if existing:
        existing.icon = data.icon
        existing.color = data.color
        existing.sync_status = SYNCED
        existing.updated_at = utcnow()
        db.flush()
        return existing.id

    row = CategoryModel(
        user_id=owner_id,
        local_id=local_id,
        name=data.name,
        icon=data.icon,
        color=data.color,
        is_default=data.is_default,
        sync_status=SYNCED,
    )
    if insert_if_absent(db, row):
        return row.id
    return (
        db.query(CategoryModel.id)
        .filter(CategoryModel.user_id == owner_id, CategoryModel.name == data.name)
        .scalar()
    )


# ---------------------------------------------------------------------------
# Insert-if-absent entities
# ---------------------------------------------------------------------------

def sync_subcategory(db: Session, owner_id: str, operation: str, local_id: str,
                     data: Optional[SubcategoryData]) -> Optional[str]:
    if operation == "delete":
        _delete_rows(
            db, SubcategoryModel, owner_id, local_id,
            unlink=[(ProductModel, ProductModel.subcategory_id)],
        )
        return None

    return _insert_or_existing(
        db, SubcategoryModel, owner_id, local_id,
        lambda: SubcategoryModel(
            user_id=owner_id,
            local_id=local_id,
            category_id=resolve_server_id(db, CategoryModel, owner_id, data.parent_category_id),
            name=data.name,
            sync_status=SYNCED,
        ),
    )


def sync_merchant(db: Session, owner_id: str, operation: str, local_id: str,
                  data: Optional[MerchantData]) -> Optional[str]:
    if operation == "delete":
        _delete_rows(
            db, MerchantModel, owner_id, local_id,
            unlink=[(ReceiptModel, ReceiptModel.merchant_id)],
        )
        return None

    return _insert_or_existing(
        db, MerchantModel, owner_id, local_id,
        lambda: MerchantModel(
            user_id=owner_id,
            local_id=local_id,
            name=data.name,
            nif=data.nif,
            address=data.address,
            is_solidified=data.is_solidified,
            sync_status=SYNCED,
        ),
    )


def sync_product(db: Session, owner_id: str, operation: str, local_id: str,
                 data: Optional[ProductData]) -> Optional[str]:
    if operation == "delete":
        _delete_rows(
            db, ProductModel, owner_id, local_id,
            unlink=[(ReceiptItemModel, ReceiptItemModel.product_id)],
        )
        return None

    return _insert_or_existing(
        db, ProductModel, owner_id, local_id,
        lambda: ProductModel(
            user_id=owner_id,
            local_id=local_id,
            name=data.name,
            category_id=resolve_server_id(db, CategoryModel, owner_id, data.category_id),
            subcategory_id=resolve_server_id(db, SubcategoryModel, owner_id, data.subcategory_id),
            default_price=data.default_price or 0,
            barcode=data.barcode,
            is_weighted=data.is_weighted,
            exclude_from_price_history=data.exclude_from_price_history,
            is_solidified=data.is_solidified,
            sync_status=SYNCED,
        ),
    )


def sync_receipt(db: Session, owner_id: str, operation: str, local_id: str,
                 data: Optional[ReceiptData]) -> Optional[str]:
    if operation == "delete":
        _delete_rows(db, ReceiptModel, owner_id, local_id)
        return None

    # Items are only written together with a newly created receipt
    return _insert_or_existing(
        db, ReceiptModel, owner_id, local_id,
        lambda: _build_receipt(db, owner_id, local_id, data),
    )


def _build_receipt(db: Session, owner_id: str, local_id: str, data: ReceiptData) -> ReceiptModel:
    receipt = ReceiptModel(
        user_id=owner_id,
        local_id=local_id,
        merchant_id=resolve_server_id(db, MerchantModel, owner_id, data.merchant_id),
        date=data.date,
        time=data.time,
        receipt_number=data.receipt_number,
        customer_nif=data.customer_nif,
        has_customer_nif=data.has_customer_nif,
        total=data.receipt_total(),
        notes=data.notes,
        sync_status=SYNCED,
    )
    receipt.items = [
        ReceiptItemModel(
            local_id=item.id,
            position=position,
            product_id=resolve_server_id(db, ProductModel, owner_id, item.product_id),
            product_name=item.product_name,
            quantity=item.quantity,
            unit_price=item.unit_price,
            total=item.line_total(),
            exclude_from_price_history=item.exclude_from_price_history,
        )
        for position, item in enumerate(data.items)
    ]
    return receipt


HANDLERS = {
    "category": sync_category,
    "subcategory": sync_subcategory,
    "merchant": sync_merchant,
    "product": sync_product,
    "receipt": sync_receipt,
}
