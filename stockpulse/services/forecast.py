"""
Ingredient usage forecasting.

Per-ingredient forecasts come from the seasonal model over the usage ledger
and are persisted through the result store. Menu-driven forecasts instead
explode expected menu item sales through the recipes.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID

from stockpulse.core.exceptions import IngredientNotFoundError, LedgerReadError
from stockpulse.services.forecasting.seasonal import (
    METHOD_NAME,
    SeasonalForecast,
    SeasonalForecaster,
)
from stockpulse.services.recipe_explosion import RecipeExplosionService, average_daily_sales
from stockpulse.services.recommendations import RecommendationClient, recommend_safely
from stockpulse.services.usage_ledger import UsageLedgerReader
from stockpulse.stores.ledger import IngredientRef, LedgerStore
from stockpulse.stores.results import ForecastRecord, ResultStore

logger = logging.getLogger(__name__)

MENU_SALES_LOOKBACK_DAYS = 30


@dataclass
class ForecastResult:
    ingredient: IngredientRef
    forecast: SeasonalForecast
    explanation: Optional[str] = None


@dataclass
class MenuDrivenRequirement:
    ingredient_id: UUID
    ingredient_name: Optional[str]
    required_quantity: float
    unit: str
    menu_items: List[str]


class ForecastService:
    """
    Orchestrates ingredient usage forecasting with the seasonal model.

    Reads through the ledger store, writes through the result store.
    """

    def __init__(
        self,
        ledger: LedgerStore,
        results: ResultStore,
        recommender: Optional[RecommendationClient] = None,
        timezone: str = "UTC",
        clock: Optional[Callable] = None,
    ):
        self.ledger = ledger
        self.results = results
        self.recommender = recommender
        self.timezone = timezone
        self.reader = UsageLedgerReader(ledger, timezone=timezone, clock=clock)
        self.forecaster = SeasonalForecaster(self.reader)

    def generate_forecast(
        self,
        ingredient_id: UUID,
        days: int = 7,
        explain: bool = False,
    ) -> ForecastResult:
        """
        Forecast an ingredient and persist the points.

        Insufficient history is not an error: the result carries an empty
        forecast and nothing is written.

        Raises:
            IngredientNotFoundError: unknown ingredient
            LedgerReadError: the usage history cannot be read
        """
        ingredient = self.ledger.ingredient(ingredient_id)
        if ingredient is None:
            raise IngredientNotFoundError(ingredient_id)

        forecast = self.forecaster.forecast(ingredient_id, days)

        if forecast.forecasts:
            self.results.upsert_forecast([
                ForecastRecord(
                    ingredient_id=ingredient_id,
                    forecast_date=point.date,
                    forecast_quantity=point.forecast_quantity,
                    confidence=forecast.confidence,
                    model_version=forecast.model_version,
                    factors=self._factors(forecast, point.day_of_week),
                )
                for point in forecast.forecasts
            ])
            self.results.commit()

        explanation = None
        if explain and forecast.forecasts:
            explanation = self._explain(ingredient, forecast)

        return ForecastResult(ingredient=ingredient, forecast=forecast, explanation=explanation)

    def generate_all_forecasts(self, days: int = 7) -> Dict[str, int]:
        """
        Forecast every ingredient. One ingredient's failure is logged and
        skipped; the rest still run.
        """
        ingredients = self.ledger.ingredients()
        forecasts_generated = 0
        failed = 0

        for ingredient in ingredients:
            try:
                result = self.generate_forecast(ingredient.id, days)
                forecasts_generated += len(result.forecast.forecasts)
            except Exception:
                logger.warning("Forecast failed for ingredient %s (%s)", ingredient.name, ingredient.id, exc_info=True)
                self.results.rollback()
                failed += 1

        logger.info(
            "Generated %d forecast points for %d ingredients (%d failed)",
            forecasts_generated, len(ingredients), failed,
        )
        return {
            "ingredients_processed": len(ingredients),
            "forecasts_generated": forecasts_generated,
            "failed": failed,
        }

    def get_menu_driven_forecast(self, days: int = 7) -> List[MenuDrivenRequirement]:
        """
        Ingredient requirements implied by expected menu item sales.

        Expected daily sales per menu item is the average over selling days
        in the last 30 days of completed sales; it is exploded through the
        recipes over the horizon.
        """
        if days < 0:
            raise ValueError("Forecast horizon cannot be negative")

        since = self.reader.clock() - timedelta(days=MENU_SALES_LOOKBACK_DAYS)
        daily_sales = average_daily_sales(
            self.ledger.completed_sales(since), self.timezone, MENU_SALES_LOOKBACK_DAYS
        )

        explosion = RecipeExplosionService(self.ledger)
        expected = {menu_item_id: avg * days for menu_item_id, avg in daily_sales.items()}
        # Recipes with no recent sales still show up, with zero requirement
        for recipe in explosion.recipes:
            expected.setdefault(recipe.menu_item_id, 0.0)

        result = explosion.explode(expected)
        names = {i.id: i.name for i in self.ledger.ingredients()}

        requirements = [
            MenuDrivenRequirement(
                ingredient_id=req.ingredient_id,
                ingredient_name=names.get(req.ingredient_id),
                required_quantity=req.quantity,
                unit=req.unit,
                menu_items=req.menu_items,
            )
            for req in result.requirements.values()
        ]
        requirements.sort(key=lambda r: r.required_quantity, reverse=True)
        return requirements

    @staticmethod
    def _factors(forecast: SeasonalForecast, dow: int) -> Dict[str, Any]:
        return {
            "method": METHOD_NAME,
            "weights": forecast.weights,
            "day_coefficient": forecast.day_coefficients.get(dow, 1.0),
            "historical_data_points": forecast.data_points,
        }

    def _explain(self, ingredient: IngredientRef, forecast: SeasonalForecast) -> Optional[str]:
        # The forecast is already persisted; explanation reads are best-effort
        try:
            snapshot = self.ledger.current_snapshot(ingredient.id)
            series = self.reader.daily_usage(ingredient.id)
        except LedgerReadError:
            logger.warning("Skipping forecast explanation for %s", ingredient.id, exc_info=True)
            return None

        recent = [{"date": d.isoformat(), "usage": u} for d, u in sorted(series.items(), reverse=True)]

        return recommend_safely(self.recommender, {
            "kind": "forecast",
            "ingredient_name": ingredient.name,
            "unit": ingredient.unit,
            "average_forecast": forecast.total_quantity / len(forecast.forecasts),
            "current_stock": snapshot.quantity if snapshot else 0.0,
            "recent_usage": recent,
        })
