"""
Sync API endpoints.

GET  /api/sync/status  per-collection counts and latest change
POST /api/sync/push    apply a batch of client mutations
GET  /api/sync/pull    changes after ``since``
GET  /api/sync/full    everything, for bootstrap
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from expense_tracker import sync
from expense_tracker.database import get_db
from expense_tracker.models import UserModel
from expense_tracker.routers.deps import get_current_user
from expense_tracker.schemas.sync import (
    SyncBatch,
    SyncPullResponse,
    SyncPushResponse,
    SyncStatusResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


# ── GET /api/sync/status ─────────────────────────────────────────────────
@router.get("/sync/status", response_model=SyncStatusResponse)
def sync_status(user: UserModel = Depends(get_current_user), db: Session = Depends(get_db)):
    return sync.status(db, user.id)


# ── POST /api/sync/push ──────────────────────────────────────────────────
@router.post("/sync/push", response_model=SyncPushResponse)
def sync_push(
    batch: SyncBatch,
    user: UserModel = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    logger.info("Push from %s: %d items (last sync %s)", user.id, len(batch.items), batch.last_sync_timestamp)
    return SyncPushResponse(results=sync.push(db, user.id, batch.items))


# ── GET /api/sync/pull ───────────────────────────────────────────────────
@router.get("/sync/pull", response_model=SyncPullResponse)
def sync_pull(
    since: Optional[datetime] = None,
    user: UserModel = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return sync.pull(db, user.id, since)


# ── GET /api/sync/full ───────────────────────────────────────────────────
@router.get("/sync/full", response_model=SyncPullResponse)
def sync_full(user: UserModel = Depends(get_current_user), db: Session = Depends(get_db)):
    return sync.full(db, user.id)
