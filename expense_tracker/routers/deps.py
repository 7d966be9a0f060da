"""
Request-scoped dependencies shared by the routers.
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from expense_tracker.database import get_db, insert_if_absent
from expense_tracker.errors import PermissionDenied
from expense_tracker.models import UserModel

logger = logging.getLogger(__name__)


def get_current_user(
    x_user_id: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> UserModel:
    """Owner named by the ``X-User-Id`` header; unknown owners are provisioned."""
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise PermissionDenied("Missing X-User-Id header")

    user = db.get(UserModel, user_id)
    if user is None:
        if insert_if_absent(db, UserModel(id=user_id)):
            db.commit()
            logger.info("Provisioned user %s", user_id)
        user = db.get(UserModel, user_id)

    if not user.is_active:
        raise PermissionDenied("User account is disabled")
    return user
