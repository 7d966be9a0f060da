"""
Community directory: opt-in, crowd-sourced products and merchants.

Each contribution of a natural key (product name, or merchant name + NIF)
bumps ``contribution_count`` and raises ``trust_score`` by a fixed increment,
capped. Trust never goes down here. The bump is a single UPDATE with the
arithmetic done by the database so concurrent contributors cannot lose an
increment.
"""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import case, exists, func
from sqlalchemy.orm import Session

from expense_tracker import fuzzy
from expense_tracker.config import settings
from expense_tracker.database import insert_if_absent
from expense_tracker.errors import PermissionDenied, ValidationError
from expense_tracker.models import (
    CommunityMerchantModel,
    CommunityProductModel,
    MerchantModel,
    ProductModel,
    UserModel,
)

logger = logging.getLogger(__name__)


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def require_opt_in(user: UserModel) -> None:
    if not user.community_opted_in:
        raise PermissionDenied("Community sharing is not enabled for your account")


def _bump_values(model, increment: int, fill_empty: dict) -> dict:
    cap = settings.COMMUNITY_TRUST_CAP
    raised = model.trust_score + increment
    values = {
        model.contribution_count: model.contribution_count + 1,
        model.trust_score: case((raised > cap, cap), else_=raised),
    }
    # Populated fields are never overwritten
    for column, value in fill_empty.items():
        if value is not None:
            values[column] = func.coalesce(column, value)
    return values


def _upsert(db: Session, model, lookup, build, increment: int, fill_empty: dict):
    row = db.query(model).filter(*lookup).first()
    if row is None:
        row = build()
        row.contribution_count = 1
        row.trust_score = min(increment, settings.COMMUNITY_TRUST_CAP)
        if insert_if_absent(db, row):
            return row, True
        row = db.query(model).filter(*lookup).one()

    db.query(model).filter(model.id == row.id).update(
        _bump_values(model, increment, fill_empty), synchronize_session=False
    )
    db.refresh(row)
    return row, False


def _merchant_lookup(name: str, nif: Optional[str]):
    nif_clause = (
        CommunityMerchantModel.nif.is_(None) if nif is None
        else CommunityMerchantModel.nif == nif
    )
    return (CommunityMerchantModel.name == name, nif_clause)


# ---------------------------------------------------------------------------
# Contributions
# ---------------------------------------------------------------------------

def upsert_product(db: Session, name: str, barcode: Optional[str],
                   category_hint: Optional[str], increment: int) -> CommunityProductModel:
    row, created = _upsert(
        db,
        CommunityProductModel,
        (CommunityProductModel.name == name,),
        lambda: CommunityProductModel(name=name, barcode=barcode, category_hint=category_hint),
        increment,
        {
            CommunityProductModel.barcode: barcode,
            CommunityProductModel.category_hint: category_hint,
        },
    )
    logger.debug("Community product %r %s (trust %d)", name, "created" if created else "bumped", row.trust_score)
    return row


def upsert_merchant(db: Session, name: str, nif: Optional[str],
                    address: Optional[str], increment: int) -> CommunityMerchantModel:
    row, created = _upsert(
        db,
        CommunityMerchantModel,
        _merchant_lookup(name, nif),
        lambda: CommunityMerchantModel(name=name, nif=nif, address=address),
        increment,
        {CommunityMerchantModel.address: address},
    )
    logger.debug("Community merchant %r %s (trust %d)", name, "created" if created else "bumped", row.trust_score)
    return row


def contribute_product(db: Session, user: UserModel, name: str,
                       barcode: Optional[str] = None,
                       category_hint: Optional[str] = None) -> CommunityProductModel:
    require_opt_in(user)
    name = _clean(name)
    if not name:
        raise ValidationError("Product name is required")

    row = upsert_product(
        db, name, _clean(barcode), _clean(category_hint),
        settings.COMMUNITY_CONTRIBUTION_INCREMENT,
    )
    db.commit()
    logger.info("User %s contributed product %r (trust %d)", user.id, name, row.trust_score)
    return row


def contribute_merchant(db: Session, user: UserModel, name: str,
                        nif: Optional[str] = None,
                        address: Optional[str] = None) -> CommunityMerchantModel:
    require_opt_in(user)
    name = _clean(name)
    if not name:
        raise ValidationError("Merchant name is required")

    row = upsert_merchant(
        db, name, _clean(nif), _clean(address),
        settings.COMMUNITY_CONTRIBUTION_INCREMENT,
    )
    db.commit()
    logger.info("User %s contributed merchant %r (trust %d)", user.id, name, row.trust_score)
    return row


def sync_contributions(db: Session, user: UserModel) -> tuple[int, int]:
    """Share every solidified product and merchant of ``user``.

    Returns ``(products, merchants)`` processed, including rows that only
    bumped an existing community entry.
    """
    require_opt_in(user)
    increment = settings.COMMUNITY_BULK_INCREMENT

    products = (
        db.query(ProductModel.name, ProductModel.barcode)
        .filter(ProductModel.user_id == user.id, ProductModel.is_solidified.is_(True))
        .all()
    )
    merchants = (
        db.query(MerchantModel.name, MerchantModel.nif, MerchantModel.address)
        .filter(MerchantModel.user_id == user.id, MerchantModel.is_solidified.is_(True))
        .all()
    )

    products_added = 0
    for name, barcode in products:
        if not _clean(name):
            continue
        upsert_product(db, _clean(name), _clean(barcode), None, increment)
        products_added += 1

    merchants_added = 0
    for name, nif, address in merchants:
        if not _clean(name):
            continue
        upsert_merchant(db, _clean(name), _clean(nif), _clean(address), increment)
        merchants_added += 1

    db.commit()
    logger.info(
        "User %s synced contributions: %d products, %d merchants",
        user.id, products_added, merchants_added,
    )
    return products_added, merchants_added


# ---------------------------------------------------------------------------
# Pull / search
# ---------------------------------------------------------------------------

def pull(db: Session, user: UserModel):
    """Trusted entries the user does not already have (advisory, no merge)."""
    require_opt_in(user)
    min_trust = settings.COMMUNITY_PULL_MIN_TRUST

    owned_product = exists().where(
        ProductModel.user_id == user.id,
        func.lower(ProductModel.name) == func.lower(CommunityProductModel.name),
    )
    products = (
        db.query(CommunityProductModel)
        .filter(~owned_product, CommunityProductModel.trust_score >= min_trust)
        .order_by(CommunityProductModel.trust_score.desc(), CommunityProductModel.name)
        .limit(settings.COMMUNITY_PULL_PRODUCT_LIMIT)
        .all()
    )

    owned_merchant = exists().where(
        MerchantModel.user_id == user.id,
        func.lower(MerchantModel.name) == func.lower(CommunityMerchantModel.name),
    )
    merchants = (
        db.query(CommunityMerchantModel)
        .filter(~owned_merchant, CommunityMerchantModel.trust_score >= min_trust)
        .order_by(CommunityMerchantModel.trust_score.desc(), CommunityMerchantModel.name)
        .limit(settings.COMMUNITY_PULL_MERCHANT_LIMIT)
        .all()
    )
    logger.info("Community pull for %s: %d products, %d merchants", user.id, len(products), len(merchants))
    return products, merchants


def _ranked(db: Session, model):
    return db.query(model).order_by(model.trust_score.desc(), model.contribution_count.desc(), model.name)


def _fuzzy_candidates(db: Session, model, q: str):
    """Rows whose name holds the query characters in order, ranked.

    SQLite only folds ASCII case, so non-ASCII queries scan the whole table
    and leave the matching to ``fuzzy.search``.
    """
    query = _ranked(db, model)
    chars = q.lower().strip()
    if not chars.isascii():
        return query
    escaped = [
        "\\" + c if c in "%_\\" else c
        for c in chars
    ]
    return query.filter(model.name.ilike("%" + "%".join(escaped) + "%", escape="\\"))


def _search(db: Session, model, key_column, key: Optional[str], q: Optional[str], limit: int):
    key = _clean(key)
    if key:
        hits = _ranked(db, model).filter(key_column == key).limit(limit).all()
        if hits or not _clean(q):
            return hits
    if _clean(q):
        return fuzzy.search(_fuzzy_candidates(db, model, q).all(), q, limit)
    return _ranked(db, model).limit(limit).all()


def search_products(db: Session, q: Optional[str] = None, barcode: Optional[str] = None,
                    limit: Optional[int] = None) -> list[CommunityProductModel]:
    """Exact barcode wins; otherwise fuzzy name match. Highest trust first."""
    return _search(
        db, CommunityProductModel, CommunityProductModel.barcode, barcode, q,
        limit or settings.COMMUNITY_SEARCH_LIMIT,
    )


def search_merchants(db: Session, q: Optional[str] = None, nif: Optional[str] = None,
                     limit: Optional[int] = None) -> list[CommunityMerchantModel]:
    return _search(
        db, CommunityMerchantModel, CommunityMerchantModel.nif, nif, q,
        limit or settings.COMMUNITY_SEARCH_LIMIT,
    )
