"""
Statistical anomaly detection over the stock ledger.

Four independent detectors:
1. usage_spike: yesterday's usage is a z-score outlier against 30 days
2. price_creep: a supplier's price for an ingredient keeps rising
3. ghost_inventory: stock on hand with no ledger movement for weeks
4. theoretical_variance: actual usage drifts from what sales x recipes imply

Each detector returns unsaved AnomalyCandidate records; run_anomaly_detection
saves them through the result store's dedup gate.
"""
import logging
from collections import OrderedDict
from datetime import timedelta
from typing import Callable, Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from stockpulse.core.timeutil import days_between
from stockpulse.services.recipe_explosion import RecipeExplosionService
from stockpulse.services.recommendations import RecommendationClient, recommend_safely
from stockpulse.services.statistics import percent_change, severity_from_z_score, stats, z_score
from stockpulse.services.usage_ledger import UsageLedgerReader
from stockpulse.stores.ledger import IngredientRef, LedgerStore
from stockpulse.stores.results import AnomalyCandidate, DEFAULT_DEDUP_WINDOW_HOURS, ResultStore

logger = logging.getLogger(__name__)


ANOMALY_TYPES = ("usage_spike", "price_creep", "ghost_inventory", "theoretical_variance")


def price_creep_severity(change_percent: float) -> str:
    if change_percent >= 25:
        return "high"
    if change_percent >= 15:
        return "medium"
    return "low"


def variance_severity(variance_percent: float) -> str:
    abs_percent = abs(variance_percent)
    if abs_percent >= 30:
        return "high"
    if abs_percent >= 20:
        return "medium"
    return "low"


def trailing_price_change(prices: Sequence[float], orders_to_check: int) -> Optional[float]:
    """
    Percent change from the first to the last of the trailing prices.

    Args:
        prices: Unit prices, oldest first
        orders_to_check: How many of the most recent prices to compare

    Returns:
        Percent change, or None with too few prices or a zero first price
    """
    if orders_to_check < 2 or len(prices) < orders_to_check:
        return None

    recent = prices[-orders_to_check:]
    if recent[0] <= 0:
        return None
    return percent_change(recent[0], recent[-1])


class AnomalyDetectionService:
    """
    Detects ledger anomalies and records them without duplicates.

    Detectors tolerate per-ingredient failures: a failing ingredient is
    logged and skipped. A detector that fails as a whole is logged and
    reported with a count of 0 while the others still run.
    """

    # usage_spike
    USAGE_LOOKBACK_DAYS = 30
    MIN_DATA_POINTS = 7
    Z_SCORE_THRESHOLD = 2.0

    # price_creep
    PRICE_CREEP_THRESHOLD_PERCENT = 10.0
    PRICE_CREEP_ORDERS = 3
    PURCHASE_ORDER_LIMIT = 100

    # ghost_inventory
    GHOST_INACTIVE_DAYS = 30
    GHOST_HIGH_SEVERITY_DAYS = 60

    # theoretical_variance
    VARIANCE_WINDOW_DAYS = 7
    VARIANCE_THRESHOLD = 0.10

    def __init__(
        self,
        ledger: LedgerStore,
        results: ResultStore,
        recommender: Optional[RecommendationClient] = None,
        timezone: str = "UTC",
        clock: Optional[Callable] = None,
        dedup_window_hours: int = DEFAULT_DEDUP_WINDOW_HOURS,
    ):
        self.ledger = ledger
        self.results = results
        self.recommender = recommender
        self.reader = UsageLedgerReader(ledger, timezone=timezone, clock=clock)
        self.dedup_window_hours = dedup_window_hours

    @property
    def clock(self) -> Callable:
        return self.reader.clock

    def detect_usage_spikes(self, z_threshold: Optional[float] = None) -> List[AnomalyCandidate]:
        """Flag ingredients whose usage yesterday deviates by |z| >= threshold."""
        threshold = self.Z_SCORE_THRESHOLD if z_threshold is None else z_threshold
        yesterday = self.reader.today() - timedelta(days=1)
        anomalies = []

        for ingredient in self.ledger.ingredients():
            try:
                anomaly = self._check_usage_spike(ingredient, yesterday, threshold)
            except Exception:
                logger.warning("Usage spike check failed for %s", ingredient.name, exc_info=True)
                continue
            if anomaly:
                anomalies.append(anomaly)

        return anomalies

    def _check_usage_spike(self, ingredient: IngredientRef, yesterday, threshold: float) -> Optional[AnomalyCandidate]:
        daily_usage = self.reader.daily_usage(ingredient.id, self.USAGE_LOOKBACK_DAYS)
        if len(daily_usage) < self.MIN_DATA_POINTS:
            return None

        actual = daily_usage.get(yesterday)
        if actual is None:
            return None

        mean, std_dev = stats(daily_usage.values())
        z = z_score(actual, mean, std_dev)
        if abs(z) < threshold:
            return None

        deviation_percent = (actual - mean) / mean * 100 if mean > 0 else 0.0
        direction = "higher" if z > 0 else "lower"

        return self._candidate(
            anomaly_type="usage_spike",
            ingredient=ingredient,
            severity=severity_from_z_score(z),
            description=(
                f'Usage of "{ingredient.name}" was {abs(deviation_percent):.0f}% {direction} than normal '
                f"yesterday ({actual:.1f} vs avg {mean:.1f} {ingredient.unit})"
            ),
            details={
                "expected_value": mean,
                "actual_value": actual,
                "deviation_percent": deviation_percent,
                "z_score": z,
            },
            context={
                "yesterday_usage": actual,
                "average_usage": mean,
                "deviation_percent": deviation_percent,
                "z_score": z,
                "direction": direction,
            },
        )

    def detect_price_creep(
        self,
        threshold_percent: Optional[float] = None,
        orders_to_check: Optional[int] = None,
    ) -> List[AnomalyCandidate]:
        """Flag (supplier, ingredient) pairs whose trailing prices rose by >= threshold."""
        threshold = self.PRICE_CREEP_THRESHOLD_PERCENT if threshold_percent is None else threshold_percent
        k = self.PRICE_CREEP_ORDERS if orders_to_check is None else orders_to_check

        orders = self.ledger.received_purchase_orders(limit=self.PURCHASE_ORDER_LIMIT)

        # (supplier, ingredient) -> history
        history: Dict[Tuple[UUID, UUID], dict] = OrderedDict()
        for order in orders:
            for item in order.items:
                key = (order.supplier_id, item.ingredient_id)
                if key not in history:
                    history[key] = {
                        "ingredient_id": item.ingredient_id,
                        "ingredient_name": item.name,
                        "supplier_id": order.supplier_id,
                        "supplier_name": order.supplier_name,
                        "prices": [],
                    }
                history[key]["prices"].append((order.timestamp, item.unit_cost))

        anomalies = []
        for data in history.values():
            prices = [price for _, price in sorted(data["prices"], key=lambda p: p[0])]
            change = trailing_price_change(prices, k)
            if change is None or change < threshold:
                continue

            first_price, last_price = prices[-k], prices[-1]
            ingredient = IngredientRef(id=data["ingredient_id"], name=data["ingredient_name"], unit="")

            anomalies.append(self._candidate(
                anomaly_type="price_creep",
                ingredient=ingredient,
                severity=price_creep_severity(change),
                description=(
                    f'Price of "{data["ingredient_name"]}" from {data["supplier_name"]} increased by '
                    f"{change:.1f}% over the last {k} orders"
                ),
                details={
                    "expected_value": first_price,
                    "actual_value": last_price,
                    "price_change_percent": change,
                    "supplier_id": str(data["supplier_id"]),
                },
                context={
                    "supplier": data["supplier_name"],
                    "original_price": first_price,
                    "current_price": last_price,
                    "price_increase_percent": change,
                    "orders_analyzed": k,
                },
            ))

        return anomalies

    def detect_ghost_inventory(self, inactive_days: Optional[int] = None) -> List[AnomalyCandidate]:
        """Flag stock on hand with no ledger events in the last ``inactive_days`` days."""
        days = self.GHOST_INACTIVE_DAYS if inactive_days is None else inactive_days
        now = self.clock()
        cutoff = now - timedelta(days=days)
        anomalies = []

        for snapshot in self.ledger.stocked_snapshots():
            try:
                if self.ledger.query(snapshot.ingredient_id, cutoff):
                    continue

                ingredient = self.ledger.ingredient(snapshot.ingredient_id)
                if ingredient is None:
                    continue
            except Exception:
                logger.warning("Ghost inventory check failed for %s", snapshot.ingredient_id, exc_info=True)
                continue

            days_inactive = days_between(snapshot.last_updated, now)
            anomalies.append(self._candidate(
                anomaly_type="ghost_inventory",
                ingredient=ingredient,
                severity="high" if days_inactive > self.GHOST_HIGH_SEVERITY_DAYS else "medium",
                description=(
                    f'"{ingredient.name}" shows {snapshot.quantity:g} {ingredient.unit} in stock but hasn\'t '
                    f"had any activity in {days_inactive} days. Please verify actual stock."
                ),
                details={
                    "actual_value": snapshot.quantity,
                    "days_inactive": days_inactive,
                },
                context={
                    "quantity_in_system": snapshot.quantity,
                    "unit": ingredient.unit,
                    "days_inactive": days_inactive,
                    "last_updated": snapshot.last_updated.isoformat(),
                },
            ))

        return anomalies

    def detect_theoretical_variance(
        self,
        days: Optional[int] = None,
        variance_threshold: Optional[float] = None,
    ) -> List[AnomalyCandidate]:
        """Flag ingredients whose actual usage differs from sales x recipes by >= threshold."""
        window = self.VARIANCE_WINDOW_DAYS if days is None else days
        threshold = self.VARIANCE_THRESHOLD if variance_threshold is None else variance_threshold
        since = self.clock() - timedelta(days=window)

        theoretical_usage = RecipeExplosionService(self.ledger).theoretical_usage(since)
        anomalies = []

        for ingredient_id, theoretical in theoretical_usage.items():
            if theoretical == 0:
                continue
            try:
                ingredient = self.ledger.ingredient(ingredient_id)
                if ingredient is None:
                    continue
                actual = sum(abs(e.delta) for e in self.ledger.query(ingredient_id, since) if e.delta < 0)
            except Exception:
                logger.warning("Variance check failed for %s", ingredient_id, exc_info=True)
                continue

            variance = (actual - theoretical) / theoretical
            if abs(variance) < threshold:
                continue

            variance_percent = variance * 100
            direction = "more" if variance > 0 else "less"

            anomalies.append(self._candidate(
                anomaly_type="theoretical_variance",
                ingredient=ingredient,
                severity=variance_severity(variance_percent),
                description=(
                    f'Used {abs(variance_percent):.1f}% {direction} "{ingredient.name}" than expected based on '
                    f"sales (Actual: {actual:.1f} vs Expected: {theoretical:.1f} {ingredient.unit})"
                ),
                details={
                    "expected_value": theoretical,
                    "actual_value": actual,
                    "deviation_percent": variance_percent,
                },
                context={
                    "theoretical_usage": theoretical,
                    "actual_usage": actual,
                    "variance_percent": variance_percent,
                    "period_days": window,
                    "direction": direction,
                },
            ))

        return anomalies

    def save_anomalies(self, anomalies: List[AnomalyCandidate]) -> int:
        """Insert each candidate unless an unresolved twin exists in the window."""
        saved = 0
        for anomaly in anomalies:
            if self.results.insert_anomaly_if_no_unresolved_duplicate(anomaly, self.dedup_window_hours):
                saved += 1
        return saved

    def run_anomaly_detection(self, types: Optional[Sequence[str]] = None) -> Dict:
        """
        Run the requested detectors (all when ``types`` is None) and save
        their findings, committing after each detector.

        Returns:
            {"counts_by_type": {type: saved_count}, "total": int}

        Raises:
            ValueError: if ``types`` names an unknown detector
        """
        selected = list(ANOMALY_TYPES) if types is None else list(dict.fromkeys(types))
        unknown = [t for t in selected if t not in ANOMALY_TYPES]
        if unknown:
            raise ValueError(f"Unknown anomaly types: {', '.join(unknown)}")

        detectors = {
            "usage_spike": self.detect_usage_spikes,
            "price_creep": self.detect_price_creep,
            "ghost_inventory": self.detect_ghost_inventory,
            "theoretical_variance": self.detect_theoretical_variance,
        }

        counts: Dict[str, int] = {}
        for anomaly_type in selected:
            try:
                counts[anomaly_type] = self.save_anomalies(detectors[anomaly_type]())
                self.results.commit()
            except Exception:
                logger.exception("Anomaly detector %s failed", anomaly_type)
                self.results.rollback()
                counts[anomaly_type] = 0

        total = sum(counts.values())
        logger.info("Anomaly detection saved %d anomalies: %s", total, counts)
        return {"counts_by_type": counts, "total": total}

    def _candidate(
        self,
        anomaly_type: str,
        ingredient: IngredientRef,
        severity: str,
        description: str,
        details: dict,
        context: dict,
    ) -> AnomalyCandidate:
        recommendation = recommend_safely(self.recommender, {
            "kind": "anomaly",
            "anomaly_type": anomaly_type,
            "ingredient_name": ingredient.name,
            "details": context,
        })
        return AnomalyCandidate(
            type=anomaly_type,
            ingredient_id=ingredient.id,
            severity=severity,
            description=description,
            details=details,
            recommendation=recommendation,
        )
