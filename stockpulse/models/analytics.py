"""
Outputs of the analytics engine: forecasts, anomalies and waste predictions.

Anomalies and waste predictions carry a unique ``dedup_key``. While an
anomaly is unresolved the key is "<type>:<ingredient>"; resolving or
superseding it sets the key to NULL, which frees the slot for the next
alert of the same kind. NULLs never collide under a unique constraint.
"""
import uuid
from sqlalchemy import (
    Column, String, Text, Integer, Date, Numeric, Boolean, DateTime, ForeignKey, Uuid, JSON,
    Index, UniqueConstraint
)
from sqlalchemy.dialects.postgresql import JSONB

from stockpulse.db.base import Base


JSONType = JSON().with_variant(JSONB(), "postgresql")


class IngredientForecast(Base):
    """Predicted usage of an ingredient on a target date."""
    __tablename__ = "ingredient_forecasts"
    __table_args__ = (
        UniqueConstraint("ingredient_id", "forecast_date", name="uq_ingredient_forecast_date"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    ingredient_id = Column(Uuid(as_uuid=True), ForeignKey("ingredients.id", ondelete="CASCADE"), nullable=False)
    forecast_date = Column(Date, nullable=False)
    forecast_quantity = Column(Numeric(12, 3), nullable=False)
    confidence = Column(Integer, nullable=False)  # 0-100
    model_version = Column(String(50), nullable=False)
    factors = Column(JSONType)  # method, weights, day coefficient, data points
    created_at = Column(DateTime, nullable=False)  # naive UTC


class Anomaly(Base):
    """A statistical alert raised by one of the anomaly detectors."""
    __tablename__ = "anomalies"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    type = Column(String(50), nullable=False)  # usage_spike, price_creep, ghost_inventory, theoretical_variance
    ingredient_id = Column(Uuid(as_uuid=True), ForeignKey("ingredients.id", ondelete="CASCADE"))
    severity = Column(String(20), nullable=False)  # low, medium, high, critical
    description = Column(Text, nullable=False)
    details = Column(JSONType, default=dict)
    recommendation = Column(Text)
    resolved = Column(Boolean, nullable=False, default=False)
    resolved_at = Column(DateTime)
    dedup_key = Column(String(120), unique=True)
    created_at = Column(DateTime, nullable=False)  # naive UTC

    __table_args__ = (
        Index("idx_anomalies_resolved_created", "resolved", "created_at"),
    )


class WastePrediction(Base):
    """Stock at risk of expiring before it is used."""
    __tablename__ = "waste_predictions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    ingredient_id = Column(Uuid(as_uuid=True), ForeignKey("ingredients.id", ondelete="CASCADE"), nullable=False)
    predicted_waste = Column(Numeric(12, 3), nullable=False)
    predicted_usage = Column(Numeric(12, 3), nullable=False)
    waste_percent = Column(Numeric(6, 2), nullable=False)
    risk_level = Column(String(20), nullable=False)  # medium, high, critical
    expiry_date = Column(Date, nullable=False)
    days_until_expiry = Column(Integer, nullable=False)
    recommendation = Column(Text)
    dedup_key = Column(String(120), unique=True)
    created_at = Column(DateTime, nullable=False)  # naive UTC
