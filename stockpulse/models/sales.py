"""
Point-of-sale orders, used to infer theoretical ingredient usage.
"""
import uuid
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Uuid, Index
from sqlalchemy.orm import relationship

from stockpulse.db.base import Base


class SaleOrder(Base):
    """A POS ticket."""
    __tablename__ = "sale_orders"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    status = Column(String(20), nullable=False, default="pending")  # pending, completed, cancelled
    created_at = Column(DateTime, nullable=False)  # naive UTC

    items = relationship("SaleOrderItem", back_populates="order", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_sale_orders_status_created", "status", "created_at"),
    )


class SaleOrderItem(Base):
    __tablename__ = "sale_order_items"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    order_id = Column(Uuid(as_uuid=True), ForeignKey("sale_orders.id", ondelete="CASCADE"), nullable=False)
    menu_item_id = Column(Uuid(as_uuid=True), ForeignKey("menu_items.id", ondelete="CASCADE"), nullable=False)
    quantity = Column(Integer, nullable=False)

    order = relationship("SaleOrder", back_populates="items")
