"""
Ingredient and supplier reference data.

Owned by the CRUD layer; the analytics engine only reads these tables.
"""
import uuid
from sqlalchemy import Column, String, Numeric, DateTime, ForeignKey, Uuid, func
from sqlalchemy.orm import relationship

from stockpulse.db.base import Base


class Supplier(Base):
    """A vendor that ingredients are purchased from."""
    __tablename__ = "suppliers"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    ingredients = relationship("Ingredient", back_populates="supplier")
    purchase_orders = relationship("PurchaseOrder", back_populates="supplier")


class Ingredient(Base):
    """An ingredient tracked in stock, measured in base units."""
    __tablename__ = "ingredients"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    supplier_id = Column(Uuid(as_uuid=True), ForeignKey("suppliers.id", ondelete="SET NULL"))
    name = Column(String(255), nullable=False)
    unit = Column(String(50), nullable=False)  # kg, g, L, mL, piece, box, pack
    unit_cost = Column(Numeric(10, 4))
    min_stock_level = Column(Numeric(10, 3))
    max_stock_level = Column(Numeric(10, 3))
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    supplier = relationship("Supplier", back_populates="ingredients")
    stock = relationship("CurrentStock", back_populates="ingredient", uselist=False)
    recipe_lines = relationship("RecipeLine", back_populates="ingredient")
