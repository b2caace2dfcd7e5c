"""
Stock ledger models.

StockChangeEvent is the append-only source of truth for historical usage.
CurrentStock is the derived running balance per ingredient.
"""
import uuid
from sqlalchemy import (
    Column, String, Text, Date, Numeric, DateTime, ForeignKey, Uuid, Index, CheckConstraint
)
from sqlalchemy.orm import relationship

from stockpulse.db.base import Base


STOCK_CHANGE_REASONS = (
    "purchase",
    "sale",
    "consumption",
    "waste",
    "expired",
    "correction",
    "adjustment",
    "transfer",
    "other",
)


class StockChangeEvent(Base):
    """
    One signed stock movement. Never updated or deleted.

    Positive quantities are stock coming in (purchases, restocks),
    negative quantities are stock going out (sales, waste, expiry).
    """
    __tablename__ = "stock_change_events"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    ingredient_id = Column(Uuid(as_uuid=True), ForeignKey("ingredients.id", ondelete="CASCADE"), nullable=False)
    quantity_delta = Column(Numeric(12, 3), nullable=False)
    reason = Column(String(20), nullable=False)
    actor_id = Column(String(100), nullable=False)
    notes = Column(Text)
    created_at = Column(DateTime, nullable=False)  # naive UTC

    ingredient = relationship("Ingredient")

    __table_args__ = (
        Index("idx_stock_events_ingredient_created", "ingredient_id", "created_at"),
        Index("idx_stock_events_created", "created_at"),
    )


class CurrentStock(Base):
    """Running on-hand balance for an ingredient."""
    __tablename__ = "current_stock"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    ingredient_id = Column(
        Uuid(as_uuid=True), ForeignKey("ingredients.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    quantity = Column(Numeric(12, 3), nullable=False, default=0)
    expiry_date = Column(Date)
    last_updated = Column(DateTime, nullable=False)  # naive UTC

    ingredient = relationship("Ingredient", back_populates="stock")

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_current_stock_non_negative"),
    )
