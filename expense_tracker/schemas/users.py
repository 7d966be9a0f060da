"""
Owner profile schemas
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field

from expense_tracker.schemas.base import CamelModel


class UserProfile(CamelModel):
    id: str
    display_name: Optional[str] = None
    community_opted_in: bool
    created_at: datetime


class UserProfileUpdate(CamelModel):
    display_name: Optional[str] = Field(default=None, max_length=100)
    community_opted_in: Optional[bool] = None
