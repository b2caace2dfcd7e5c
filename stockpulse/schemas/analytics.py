"""
Pydantic schemas for forecasts, anomalies, par levels and waste risk.
"""
from datetime import date, datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class GenerateForecastRequest(BaseModel):
    ingredient_id: UUID
    days: int = Field(default=7, ge=1, le=30)
    explain: bool = False


class ForecastPointResponse(BaseModel):
    date: date
    forecast_quantity: float
    day_of_week: int


class ForecastResponse(BaseModel):
    ingredient_id: UUID
    ingredient_name: str
    forecasts: List[ForecastPointResponse]
    confidence: int
    historical_average: float
    recent_average: float
    data_points: int
    day_coefficients: Dict[int, float]
    model_version: str
    explanation: Optional[str] = None


class GenerateAllResponse(BaseModel):
    ingredients_processed: int
    forecasts_generated: int
    failed: int


class MenuDrivenRequirementResponse(BaseModel):
    ingredient_id: UUID
    ingredient_name: Optional[str]
    required_quantity: float
    unit: str
    menu_items: List[str]


class ParLevelResponse(BaseModel):
    ingredient_id: UUID
    recommended_min: int
    recommended_max: int
    avg_daily_usage: float
    usage_variance: float
    data_points: int


class RunAnomalyRequest(BaseModel):
    types: Optional[List[str]] = None


class RunAnomalyResponse(BaseModel):
    counts_by_type: Dict[str, int]
    total: int


class AnomalyResponse(BaseModel):
    id: UUID
    type: str
    ingredient_id: Optional[UUID]
    severity: str
    description: str
    details: Optional[Dict[str, Any]] = None
    recommendation: Optional[str] = None
    resolved: bool
    resolved_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class WastePredictionResponse(BaseModel):
    ingredient_id: UUID
    ingredient_name: str
    quantity: float
    predicted_waste: float
    predicted_usage: float
    waste_percent: float
    risk_level: str
    expiry_date: date
    days_until_expiry: int
    recommendation: Optional[str] = None

    class Config:
        from_attributes = True
