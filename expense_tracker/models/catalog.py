"""
Server copies of the owner's categories, subcategories, merchants and products.

``local_id`` is the id the client generated; ``id`` is the server id.
"""
import uuid

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from expense_tracker.database import Base, utcnow


def new_id() -> str:
    return str(uuid.uuid4())


class CategoryModel(Base):
    __tablename__ = "categories"
    __table_args__ = (UniqueConstraint("user_id", "name", name="uq_categories_user_name"),)

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    local_id = Column(String, index=True)
    name = Column(String, nullable=False)
    icon = Column(String)
    color = Column(String)
    is_default = Column(Boolean, nullable=False, default=False)
    sync_status = Column(String, nullable=False, default="pending")  # pending, synced
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False, index=True)


class SubcategoryModel(Base):
    __tablename__ = "subcategories"
    __table_args__ = (UniqueConstraint("user_id", "local_id", name="uq_subcategories_user_local"),)

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    local_id = Column(String)
    category_id = Column(String, ForeignKey("categories.id", ondelete="SET NULL"))
    name = Column(String, nullable=False)
    sync_status = Column(String, nullable=False, default="pending")
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False, index=True)

    category = relationship("CategoryModel")


class MerchantModel(Base):
    __tablename__ = "merchants"
    __table_args__ = (UniqueConstraint("user_id", "local_id", name="uq_merchants_user_local"),)

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    local_id = Column(String)
    name = Column(String, nullable=False)
    nif = Column(String, index=True)  # Portuguese tax id
    address = Column(String)
    is_solidified = Column(Boolean, nullable=False, default=False)
    sync_status = Column(String, nullable=False, default="pending")
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False, index=True)


class ProductModel(Base):
    __tablename__ = "products"
    __table_args__ = (UniqueConstraint("user_id", "local_id", name="uq_products_user_local"),)

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    local_id = Column(String)
    name = Column(String, nullable=False)
    category_id = Column(String, ForeignKey("categories.id", ondelete="SET NULL"))
    subcategory_id = Column(String, ForeignKey("subcategories.id", ondelete="SET NULL"))
    default_price = Column(Float, nullable=False, default=0)
    barcode = Column(String, index=True)
    is_weighted = Column(Boolean, nullable=False, default=False)
    exclude_from_price_history = Column(Boolean, nullable=False, default=False)
    is_solidified = Column(Boolean, nullable=False, default=False)
    sync_status = Column(String, nullable=False, default="pending")
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False, index=True)

    category = relationship("CategoryModel")
    subcategory = relationship("SubcategoryModel")
