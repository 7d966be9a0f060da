"""
Account owner model
"""
from sqlalchemy import Column, String, DateTime, Boolean

from expense_tracker.database import Base, utcnow


class UserModel(Base):
    """Owner of every non-community row"""
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    display_name = Column(String)
    community_opted_in = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
