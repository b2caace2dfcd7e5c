"""
Menu items and their ingredient recipes.
"""
import uuid
from sqlalchemy import Column, String, Numeric, Boolean, DateTime, ForeignKey, Uuid, func
from sqlalchemy.orm import relationship

from stockpulse.db.base import Base


class MenuItem(Base):
    """A dish or product sold by the restaurant."""
    __tablename__ = "menu_items"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    category = Column(String(100))
    price = Column(Numeric(10, 2), nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, server_default=func.now())

    recipe_lines = relationship("RecipeLine", back_populates="menu_item", cascade="all, delete-orphan")


class RecipeLine(Base):
    """Quantity of one ingredient consumed per unit of a menu item sold."""
    __tablename__ = "recipe_lines"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    menu_item_id = Column(Uuid(as_uuid=True), ForeignKey("menu_items.id", ondelete="CASCADE"), nullable=False)
    ingredient_id = Column(Uuid(as_uuid=True), ForeignKey("ingredients.id", ondelete="CASCADE"), nullable=False)
    quantity = Column(Numeric(10, 4), nullable=False)
    unit = Column(String(50), nullable=False)

    menu_item = relationship("MenuItem", back_populates="recipe_lines")
    ingredient = relationship("Ingredient", back_populates="recipe_lines")
