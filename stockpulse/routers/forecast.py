from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from stockpulse.core.config import get_settings
from stockpulse.core.deps import get_ledger_store, get_recommender, get_result_store
from stockpulse.core.exceptions import (
    ForecastFailedError,
    IngredientNotFoundError,
    InsufficientDataError,
    LedgerReadError,
)
from stockpulse.schemas.analytics import (
    ForecastPointResponse,
    ForecastResponse,
    GenerateAllResponse,
    GenerateForecastRequest,
    MenuDrivenRequirementResponse,
    ParLevelResponse,
)
from stockpulse.services.forecast import ForecastService
from stockpulse.services.forecasting.seasonal import MIN_DATA_POINTS
from stockpulse.services.par_levels import ParLevelCalculator
from stockpulse.services.recommendations import RecommendationClient
from stockpulse.services.usage_ledger import UsageLedgerReader
from stockpulse.stores.ledger import SqlLedgerStore
from stockpulse.stores.results import SqlResultStore

router = APIRouter(prefix="/forecast", tags=["forecast"])


def get_forecast_service(
    ledger: SqlLedgerStore = Depends(get_ledger_store),
    results: SqlResultStore = Depends(get_result_store),
    recommender: Optional[RecommendationClient] = Depends(get_recommender),
) -> ForecastService:
    return ForecastService(
        ledger,
        results,
        recommender=recommender,
        timezone=get_settings().USAGE_DAY_TIMEZONE,
    )


@router.post("/generate", response_model=ForecastResponse)
def generate_forecast(
    req: GenerateForecastRequest,
    service: ForecastService = Depends(get_forecast_service),
):
    """
    Generate and store a usage forecast for one ingredient.

    Fails with 422 ``insufficient_data`` when the ingredient has fewer than
    7 days of usage history, and 503 ``forecast_failed`` when the ledger
    cannot be read.
    """
    try:
        result = service.generate_forecast(req.ingredient_id, req.days, explain=req.explain)
    except LedgerReadError as e:
        raise ForecastFailedError(f"Forecast for ingredient {req.ingredient_id} failed: {e.message}") from e

    forecast = result.forecast
    if forecast.insufficient_data:
        raise InsufficientDataError(req.ingredient_id, forecast.data_points, MIN_DATA_POINTS)

    return ForecastResponse(
        ingredient_id=result.ingredient.id,
        ingredient_name=result.ingredient.name,
        forecasts=[
            ForecastPointResponse(
                date=p.date,
                forecast_quantity=round(p.forecast_quantity, 3),
                day_of_week=p.day_of_week,
            )
            for p in forecast.forecasts
        ],
        confidence=forecast.confidence,
        historical_average=forecast.historical_average,
        recent_average=forecast.recent_average,
        data_points=forecast.data_points,
        day_coefficients=forecast.day_coefficients,
        model_version=forecast.model_version,
        explanation=result.explanation,
    )


@router.post("/generate-all", response_model=GenerateAllResponse)
def generate_all_forecasts(
    days: int = Query(7, ge=1, le=30),
    service: ForecastService = Depends(get_forecast_service),
):
    """Forecast every ingredient; failures are counted, not raised."""
    return service.generate_all_forecasts(days)


@router.get("/menu-driven", response_model=List[MenuDrivenRequirementResponse])
def get_menu_driven_forecast(
    days: int = Query(7, ge=1, le=30),
    service: ForecastService = Depends(get_forecast_service),
):
    """Ingredient requirements implied by recent menu item sales."""
    return [
        MenuDrivenRequirementResponse(
            ingredient_id=r.ingredient_id,
            ingredient_name=r.ingredient_name,
            required_quantity=round(r.required_quantity, 3),
            unit=r.unit,
            menu_items=r.menu_items,
        )
        for r in service.get_menu_driven_forecast(days)
    ]


@router.get("/par-levels/{ingredient_id}", response_model=ParLevelResponse)
def get_par_levels(
    ingredient_id: UUID,
    lead_time_days: float = Query(3, ge=0),
    safety_factor: float = Query(1.5, gt=0),
    ledger: SqlLedgerStore = Depends(get_ledger_store),
):
    """Recommended min/max stock band for an ingredient."""
    if ledger.ingredient(ingredient_id) is None:
        raise IngredientNotFoundError(ingredient_id)

    reader = UsageLedgerReader(ledger, timezone=get_settings().USAGE_DAY_TIMEZONE)
    rec = ParLevelCalculator(reader).calculate(ingredient_id, lead_time_days, safety_factor)

    return ParLevelResponse(
        ingredient_id=ingredient_id,
        recommended_min=rec.recommended_min,
        recommended_max=rec.recommended_max,
        avg_daily_usage=rec.avg_daily_usage,
        usage_variance=rec.usage_variance,
        data_points=rec.data_points,
    )
