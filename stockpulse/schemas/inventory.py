"""
Pydantic schemas for stock mutations.
"""
from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, field_validator

from stockpulse.models.inventory import STOCK_CHANGE_REASONS


class StockChangeRequest(BaseModel):
    """A signed stock movement: negative for usage, positive for restocks."""
    ingredient_id: UUID
    quantity_delta: float
    reason: str
    actor_id: str
    notes: Optional[str] = None
    expiry_date: Optional[date] = None

    @field_validator('quantity_delta')
    @classmethod
    def delta_non_zero(cls, v):
        if v == 0:
            raise ValueError('quantity_delta cannot be zero')
        return v

    @field_validator('reason')
    @classmethod
    def reason_known(cls, v):
        if v not in STOCK_CHANGE_REASONS:
            raise ValueError(f"reason must be one of {', '.join(STOCK_CHANGE_REASONS)}")
        return v


class StockSnapshotResponse(BaseModel):
    ingredient_id: UUID
    quantity: float
    expiry_date: Optional[date] = None
    last_updated: datetime

    class Config:
        from_attributes = True
