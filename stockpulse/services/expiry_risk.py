"""
Expiry-risk prediction: how much of the stock on hand is likely to expire
before it is used.

For stock expiring within 14 days the seasonal forecast over the remaining
shelf life gives predicted usage; whatever exceeds it is predicted waste.
"""
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from stockpulse.services.forecasting.seasonal import SeasonalForecaster
from stockpulse.services.recipe_explosion import RecipeExplosionService
from stockpulse.services.recommendations import RecommendationClient, recommend_safely
from stockpulse.services.usage_ledger import UsageLedgerReader
from stockpulse.stores.ledger import LedgerStore
from stockpulse.stores.results import DEFAULT_DEDUP_WINDOW_HOURS, ResultStore, WasteRiskCandidate

logger = logging.getLogger(__name__)


MAX_DAYS_UNTIL_EXPIRY = 14


def classify_waste_risk(waste_percent: float, days_until_expiry: int) -> str:
    """Risk level, checked from the most severe down."""
    if waste_percent >= 50 and days_until_expiry <= 3:
        return "critical"
    if waste_percent >= 30 or days_until_expiry <= 2:
        return "high"
    if waste_percent >= 15 or days_until_expiry <= 5:
        return "medium"
    return "low"


@dataclass
class WasteEstimate:
    predicted_waste: float
    waste_percent: float
    risk_level: str


def estimate_waste(quantity: float, predicted_usage: float, days_until_expiry: int) -> WasteEstimate:
    excess = max(0.0, quantity - predicted_usage)
    waste_percent = excess / quantity * 100 if quantity > 0 else 0.0
    return WasteEstimate(
        predicted_waste=excess,
        waste_percent=waste_percent,
        risk_level=classify_waste_risk(waste_percent, days_until_expiry),
    )


class ExpiryRiskPredictor:
    """Waste-risk predictions for stock nearing its expiry date."""

    def __init__(
        self,
        ledger: LedgerStore,
        results: ResultStore,
        recommender: Optional[RecommendationClient] = None,
        timezone: str = "UTC",
        clock: Optional[Callable] = None,
        forecaster: Optional[SeasonalForecaster] = None,
        dedup_window_hours: int = DEFAULT_DEDUP_WINDOW_HOURS,
    ):
        self.ledger = ledger
        self.results = results
        self.recommender = recommender
        self.reader = UsageLedgerReader(ledger, timezone=timezone, clock=clock)
        self.forecaster = forecaster or SeasonalForecaster(self.reader)
        self.dedup_window_hours = dedup_window_hours

    def detect(self) -> List[WasteRiskCandidate]:
        """
        Predictions of medium risk and above. Low-risk stock is dropped.
        """
        today = self.reader.today()
        snapshots = [s for s in self.ledger.stocked_snapshots() if s.expiry_date is not None]
        if not snapshots:
            return []

        menu_items = RecipeExplosionService(self.ledger).menu_items_by_ingredient()
        predictions = []

        for snapshot in snapshots:
            days_until_expiry = (snapshot.expiry_date - today).days
            if days_until_expiry < 0 or days_until_expiry > MAX_DAYS_UNTIL_EXPIRY:
                continue

            try:
                ingredient = self.ledger.ingredient(snapshot.ingredient_id)
                if ingredient is None:
                    continue
                forecast = self.forecaster.forecast(snapshot.ingredient_id, days_until_expiry)
            except Exception:
                logger.warning("Expiry risk check failed for %s", snapshot.ingredient_id, exc_info=True)
                continue

            predicted_usage = forecast.total_quantity
            estimate = estimate_waste(snapshot.quantity, predicted_usage, days_until_expiry)
            if estimate.risk_level == "low":
                continue

            recommendation = recommend_safely(self.recommender, {
                "kind": "expiry",
                "ingredient_name": ingredient.name,
                "unit": ingredient.unit,
                "current_stock": snapshot.quantity,
                "days_until_expiry": days_until_expiry,
                "predicted_usage": predicted_usage,
                "menu_items": menu_items.get(snapshot.ingredient_id, []),
            })

            predictions.append(WasteRiskCandidate(
                ingredient_id=snapshot.ingredient_id,
                ingredient_name=ingredient.name,
                quantity=snapshot.quantity,
                predicted_waste=estimate.predicted_waste,
                predicted_usage=predicted_usage,
                waste_percent=estimate.waste_percent,
                risk_level=estimate.risk_level,
                expiry_date=snapshot.expiry_date,
                days_until_expiry=days_until_expiry,
                recommendation=recommendation,
            ))

        return predictions

    def get_expiry_risks(self) -> List[WasteRiskCandidate]:
        """Detect and save predictions through the dedup gate."""
        predictions = self.detect()

        saved = 0
        for prediction in predictions:
            if self.results.upsert_waste_prediction(prediction, self.dedup_window_hours):
                saved += 1
        self.results.commit()

        logger.info("Expiry risk: %d predictions, %d new", len(predictions), saved)
        return predictions
