"""
Server copies of receipts and their line items.
"""
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from expense_tracker.database import Base, utcnow
from expense_tracker.models.catalog import new_id


class ReceiptModel(Base):
    __tablename__ = "receipts"
    __table_args__ = (UniqueConstraint("user_id", "local_id", name="uq_receipts_user_local"),)

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    local_id = Column(String)
    merchant_id = Column(String, ForeignKey("merchants.id", ondelete="SET NULL"))
    date = Column(String, nullable=False)  # YYYY-MM-DD
    time = Column(String)  # HH:MM
    receipt_number = Column(String)
    customer_nif = Column(String)
    has_customer_nif = Column(Boolean, nullable=False, default=False)
    total = Column(Float, nullable=False, default=0)
    notes = Column(Text)
    sync_status = Column(String, nullable=False, default="pending")
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False, index=True)

    merchant = relationship("MerchantModel")
    items = relationship(
        "ReceiptItemModel",
        back_populates="receipt",
        cascade="all, delete-orphan",
        order_by="ReceiptItemModel.position",
    )


class ReceiptItemModel(Base):
    __tablename__ = "receipt_items"

    id = Column(String, primary_key=True, default=new_id)
    receipt_id = Column(String, ForeignKey("receipts.id", ondelete="CASCADE"), nullable=False, index=True)
    local_id = Column(String)
    position = Column(Integer, nullable=False, default=0)
    product_id = Column(String, ForeignKey("products.id", ondelete="SET NULL"))
    product_name = Column(String, nullable=False)  # snapshot at purchase time
    quantity = Column(Float, nullable=False, default=1)
    unit_price = Column(Float, nullable=False, default=0)
    total = Column(Float, nullable=False, default=0)
    exclude_from_price_history = Column(Boolean, nullable=False, default=False)

    receipt = relationship("ReceiptModel", back_populates="items")
    product = relationship("ProductModel")
