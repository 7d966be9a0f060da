"""
Global community directory (not owned by any user).
"""
from sqlalchemy import Column, String, DateTime, Index, Integer, UniqueConstraint, text

from expense_tracker.database import Base, utcnow
from expense_tracker.models.catalog import new_id


class CommunityProductModel(Base):
    __tablename__ = "community_products"

    id = Column(String, primary_key=True, default=new_id)
    name = Column(String, nullable=False, unique=True)
    barcode = Column(String, index=True)
    category_hint = Column(String)
    trust_score = Column(Integer, nullable=False, default=0)  # 0-100
    contribution_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class CommunityMerchantModel(Base):
    __tablename__ = "community_merchants"
    __table_args__ = (
        UniqueConstraint("name", "nif", name="uq_community_merchants_name_nif"),
        # NULLs never collide in the constraint above
        Index(
            "uq_community_merchants_name_no_nif",
            "name",
            unique=True,
            sqlite_where=text("nif IS NULL"),
            postgresql_where=text("nif IS NULL"),
        ),
    )

    id = Column(String, primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    nif = Column(String, index=True)
    address = Column(String)
    trust_score = Column(Integer, nullable=False, default=0)
    contribution_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
