"""
Community directory API endpoints.

Search is open to every user; contributing and pulling require the user to
have opted in to community sharing.
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from expense_tracker import community
from expense_tracker.config import settings
from expense_tracker.database import get_db
from expense_tracker.models import UserModel
from expense_tracker.routers.deps import get_current_user
from expense_tracker.schemas.community import (
    CommunityMerchant,
    CommunityMerchantContribution,
    CommunityMerchantList,
    CommunityMerchantResponse,
    CommunityProduct,
    CommunityProductContribution,
    CommunityProductList,
    CommunityProductResponse,
    CommunityPullResponse,
    SyncContributionsResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


def _product(row) -> CommunityProduct:
    return CommunityProduct(
        id=row.id,
        name=row.name,
        barcode=row.barcode,
        category_hint=row.category_hint,
        trust_score=row.trust_score,
        contribution_count=row.contribution_count,
    )


def _merchant(row) -> CommunityMerchant:
    return CommunityMerchant(
        id=row.id,
        name=row.name,
        nif=row.nif,
        address=row.address,
        trust_score=row.trust_score,
        contribution_count=row.contribution_count,
    )


# ── GET /api/community/products ──────────────────────────────────────────
@router.get("/community/products", response_model=CommunityProductList)
def search_products(
    q: Optional[str] = None,
    barcode: Optional[str] = None,
    limit: int = Query(settings.COMMUNITY_SEARCH_LIMIT, ge=1, le=100),
    user: UserModel = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rows = community.search_products(db, q=q, barcode=barcode, limit=limit)
    return CommunityProductList(products=[_product(r) for r in rows])


# ── GET /api/community/merchants ─────────────────────────────────────────
@router.get("/community/merchants", response_model=CommunityMerchantList)
def search_merchants(
    q: Optional[str] = None,
    nif: Optional[str] = None,
    limit: int = Query(settings.COMMUNITY_SEARCH_LIMIT, ge=1, le=100),
    user: UserModel = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rows = community.search_merchants(db, q=q, nif=nif, limit=limit)
    return CommunityMerchantList(merchants=[_merchant(r) for r in rows])


# ── POST /api/community/products ─────────────────────────────────────────
@router.post("/community/products", response_model=CommunityProductResponse)
def contribute_product(
    req: CommunityProductContribution,
    user: UserModel = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    row = community.contribute_product(db, user, req.name, req.barcode, req.category_hint)
    return CommunityProductResponse(product=_product(row))


# ── POST /api/community/merchants ────────────────────────────────────────
@router.post("/community/merchants", response_model=CommunityMerchantResponse)
def contribute_merchant(
    req: CommunityMerchantContribution,
    user: UserModel = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    row = community.contribute_merchant(db, user, req.name, req.nif, req.address)
    return CommunityMerchantResponse(merchant=_merchant(row))


# ── POST /api/community/sync-contributions ───────────────────────────────
@router.post("/community/sync-contributions", response_model=SyncContributionsResponse)
def sync_contributions(user: UserModel = Depends(get_current_user), db: Session = Depends(get_db)):
    products, merchants = community.sync_contributions(db, user)
    return SyncContributionsResponse(
        message=f"Shared {products} products and {merchants} merchants",
        products_added=products,
        merchants_added=merchants,
    )


# ── POST /api/community/pull ─────────────────────────────────────────────
@router.post("/community/pull", response_model=CommunityPullResponse)
def pull(user: UserModel = Depends(get_current_user), db: Session = Depends(get_db)):
    products, merchants = community.pull(db, user)
    return CommunityPullResponse(
        products=[_product(r) for r in products],
        merchants=[_merchant(r) for r in merchants],
    )
