"""
Error taxonomy for the analytics engine.

Insufficient history is never an exception inside the engine (services
return empty / zero results); InsufficientDataError only exists so the HTTP
layer can tell "no data yet" apart from "computation failed".
"""
from typing import Optional
from uuid import UUID


class StockPulseError(Exception):
    """Base class for all engine errors."""

    error_code = "stockpulse_error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class LedgerReadError(StockPulseError):
    """A read against the ledger or stock store failed."""

    error_code = "ledger_unavailable"
    status_code = 503


class IngredientNotFoundError(StockPulseError):
    error_code = "ingredient_not_found"
    status_code = 404

    def __init__(self, ingredient_id: UUID):
        super().__init__(f"Ingredient {ingredient_id} not found")
        self.ingredient_id = ingredient_id


class StockInvariantError(StockPulseError):
    """A stock mutation would drive the on-hand quantity below zero."""

    error_code = "negative_stock"
    status_code = 409

    def __init__(self, ingredient_id: UUID, current: float, delta: float):
        super().__init__(
            f"Change of {delta} would leave ingredient {ingredient_id} "
            f"at {current + delta} (current {current})"
        )
        self.ingredient_id = ingredient_id
        self.current = current
        self.delta = delta


class InsufficientDataError(StockPulseError):
    error_code = "insufficient_data"
    status_code = 422

    def __init__(self, ingredient_id: UUID, data_points: int, required: int, detail: Optional[str] = None):
        super().__init__(
            detail
            or f"Ingredient {ingredient_id} has {data_points} days of usage history; {required} required"
        )
        self.ingredient_id = ingredient_id
        self.data_points = data_points
        self.required = required


class AnomalyNotFoundError(StockPulseError):
    error_code = "anomaly_not_found"
    status_code = 404

    def __init__(self, anomaly_id: UUID):
        super().__init__(f"Anomaly {anomaly_id} not found")
        self.anomaly_id = anomaly_id


class ForecastFailedError(StockPulseError):
    """A forecast could not be computed because a dependency failed."""

    error_code = "forecast_failed"
    status_code = 503
