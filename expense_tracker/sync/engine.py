"""
Server half of the store-and-forward sync protocol.

push    apply a batch of client mutations in one transaction
pull    rows changed after a watermark, oldest change first
full    everything, for first-run bootstrap
status  per-collection counts and latest change
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func
from sqlalchemy.exc import DataError, IntegrityError, OperationalError
from sqlalchemy.orm import Session, selectinload

from expense_tracker.database import as_naive_utc, utcnow
from expense_tracker.errors import TransportError, ValidationError
from expense_tracker.models import (
    CategoryModel,
    MerchantModel,
    ProductModel,
    ReceiptItemModel,
    ReceiptModel,
    SubcategoryModel,
)
from expense_tracker.schemas.sync import (
    ENTITY_DATA_MODELS,
    OPERATIONS,
    SyncItem,
    SyncPullResponse,
    SyncResult,
    SyncStatusResponse,
)
from expense_tracker.sync.handlers import HANDLERS
from expense_tracker.sync.mappers import (
    map_category,
    map_merchant,
    map_product,
    map_receipt,
    map_subcategory,
)

logger = logging.getLogger(__name__)

COLLECTIONS = {
    "categories": CategoryModel,
    "subcategories": SubcategoryModel,
    "products": ProductModel,
    "merchants": MerchantModel,
    "receipts": ReceiptModel,
}


def _timestamp(value: datetime) -> str:
    return value.isoformat(timespec="microseconds") + "Z"


# ---------------------------------------------------------------------------
# Push
# ---------------------------------------------------------------------------

def process_item(db: Session, owner_id: str, item: SyncItem) -> Optional[str]:
    """Validate ``item`` into its entity variant and dispatch it."""
    handler = HANDLERS.get(item.entity_type)
    if handler is None:
        raise ValidationError(f"Unknown entity type: {item.entity_type}")
    if item.operation not in OPERATIONS:
        raise ValidationError(f"Unknown operation: {item.operation}")

    data = None
    if item.operation != "delete":
        if item.data is None:
            raise ValidationError(f"{item.operation} of {item.entity_type} requires data")
        try:
            data = ENTITY_DATA_MODELS[item.entity_type].model_validate(item.data)
        except PydanticValidationError as exc:
            raise ValidationError(
                f"Invalid {item.entity_type} data: {exc.error_count()} error(s)"
            ) from exc

    return handler(db, owner_id, item.operation, item.entity_id, data)


def _apply_item(db: Session, owner_id: str, item: SyncItem) -> SyncResult:
    try:
        with db.begin_nested():
            server_id = process_item(db, owner_id, item)
    except (ValidationError, IntegrityError, DataError) as exc:
        message = exc.message if isinstance(exc, ValidationError) else str(exc.orig)
        logger.warning(
            "Sync item failed: %s %s %s: %s",
            item.operation, item.entity_type, item.entity_id, message,
        )
        return SyncResult(entity_id=item.entity_id, success=False, error=message)
    return SyncResult(entity_id=item.entity_id, success=True, server_id=server_id)


def push(db: Session, owner_id: str, items: Iterable[SyncItem]) -> list[SyncResult]:
    """Apply ``items`` in order; results are aligned with the input.

    A failing item is rolled back to its own savepoint and reported; the rest
    of the batch still commits. Storage failures abort the whole batch.
    """
    results: list[SyncResult] = []
    try:
        for item in items:
            results.append(_apply_item(db, owner_id, item))
        db.commit()
    except OperationalError as exc:
        db.rollback()
        logger.error("Sync push aborted for %s: %s", owner_id, exc)
        raise TransportError("Storage unavailable, retry the whole batch") from exc
    except Exception:
        db.rollback()
        raise

    ok = sum(1 for r in results if r.success)
    logger.info("Sync push for %s: %d/%d items applied", owner_id, ok, len(results))
    return results


# ---------------------------------------------------------------------------
# Pull / full
# ---------------------------------------------------------------------------

def _receipt_query(db: Session, owner_id: str):
    return (
        db.query(ReceiptModel)
        .options(
            selectinload(ReceiptModel.merchant),
            selectinload(ReceiptModel.items).selectinload(ReceiptItemModel.product),
        )
        .filter(ReceiptModel.user_id == owner_id)
    )


def _owned(db: Session, model, owner_id: str):
    return db.query(model).filter(model.user_id == owner_id)


def pull(db: Session, owner_id: str, since: Optional[datetime] = None) -> SyncPullResponse:
    """Rows with ``updated_at > since``, ascending by ``updated_at``."""
    # Taken before reading; rows committed later with an older updated_at can still be missed
    sync_timestamp = utcnow()

    def changed(query, model):
        if since is not None:
            query = query.filter(model.updated_at > as_naive_utc(since))
        return query.order_by(model.updated_at, model.id).all()

    categories = changed(_owned(db, CategoryModel, owner_id), CategoryModel)
    subcategories = changed(_owned(db, SubcategoryModel, owner_id), SubcategoryModel)
    products = changed(_owned(db, ProductModel, owner_id), ProductModel)
    merchants = changed(_owned(db, MerchantModel, owner_id), MerchantModel)
    receipts = changed(_receipt_query(db, owner_id), ReceiptModel)

    logger.info(
        "Sync pull for %s since %s: %d categories, %d subcategories, %d products, "
        "%d merchants, %d receipts",
        owner_id, since, len(categories), len(subcategories), len(products),
        len(merchants), len(receipts),
    )
    return SyncPullResponse(
        categories=[map_category(r) for r in categories],
        subcategories=[map_subcategory(r) for r in subcategories],
        products=[map_product(r) for r in products],
        merchants=[map_merchant(r) for r in merchants],
        receipts=[map_receipt(r) for r in receipts],
        sync_timestamp=_timestamp(sync_timestamp),
    )


def full(db: Session, owner_id: str) -> SyncPullResponse:
    """Unfiltered snapshot for bootstrap: by name, receipts newest first."""
    sync_timestamp = utcnow()
    receipts = (
        _receipt_query(db, owner_id)
        .order_by(ReceiptModel.date.desc(), ReceiptModel.id)
        .all()
    )
    response = SyncPullResponse(
        categories=[
            map_category(r)
            for r in _owned(db, CategoryModel, owner_id).order_by(CategoryModel.name).all()
        ],
        subcategories=[
            map_subcategory(r)
            for r in _owned(db, SubcategoryModel, owner_id).order_by(SubcategoryModel.name).all()
        ],
        products=[
            map_product(r)
            for r in _owned(db, ProductModel, owner_id).order_by(ProductModel.name).all()
        ],
        merchants=[
            map_merchant(r)
            for r in _owned(db, MerchantModel, owner_id).order_by(MerchantModel.name).all()
        ],
        receipts=[map_receipt(r) for r in receipts],
        sync_timestamp=_timestamp(sync_timestamp),
    )
    logger.info("Full sync for %s: %d receipts", owner_id, len(receipts))
    return response


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------

def status(db: Session, owner_id: str) -> SyncStatusResponse:
    counts: dict[str, int] = {}
    last_updates: dict[str, Optional[datetime]] = {}
    for name, model in COLLECTIONS.items():
        count, last = (
            db.query(func.count(model.id), func.max(model.updated_at))
            .filter(model.user_id == owner_id)
            .one()
        )
        counts[name] = count
        last_updates[name] = last
    return SyncStatusResponse(counts=counts, last_updates=last_updates)
