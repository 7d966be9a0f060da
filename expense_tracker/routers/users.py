"""
Owner profile endpoints; ``communityOptedIn`` gates the community directory.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from expense_tracker.database import get_db
from expense_tracker.models import UserModel
from expense_tracker.routers.deps import get_current_user
from expense_tracker.schemas.users import UserProfile, UserProfileUpdate

logger = logging.getLogger(__name__)
router = APIRouter()


def _profile(user: UserModel) -> UserProfile:
    return UserProfile(
        id=user.id,
        display_name=user.display_name,
        community_opted_in=user.community_opted_in,
        created_at=user.created_at,
    )


# ── GET /api/users/me ────────────────────────────────────────────────────
@router.get("/users/me", response_model=UserProfile)
def get_profile(user: UserModel = Depends(get_current_user)):
    return _profile(user)


# ── PATCH /api/users/me ──────────────────────────────────────────────────
@router.patch("/users/me", response_model=UserProfile)
def update_profile(
    req: UserProfileUpdate,
    user: UserModel = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    changes = req.model_dump(exclude_unset=True)
    for field, value in changes.items():
        if field == "community_opted_in" and value is None:
            continue
        setattr(user, field, value)
    db.commit()
    db.refresh(user)
    logger.info("Updated profile of %s: %s", user.id, ", ".join(changes) or "no changes")
    return _profile(user)
