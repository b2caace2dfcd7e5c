"""
Seasonality-aware weighted moving average forecaster.

forecast[d] = 0.6 * recent_avg * coefficient[dow(d)]
            + 0.3 * usage on the most recent same weekday
            + 0.1 * usage on the second most recent same weekday

A day coefficient is the mean usage on that weekday divided by the overall
mean usage, capturing weekly seasonality (busy Fridays, quiet Mondays).
"""
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, List, Optional
from uuid import UUID

import pandas as pd

from stockpulse.core.timeutil import day_of_week
from stockpulse.services.usage_ledger import UsageLedgerReader, usage_series_to_frame


MODEL_VERSION = "seasonal-wma-v1"
METHOD_NAME = "Seasonality-aware Weighted Moving Average"

WEIGHT_BASELINE = 0.6
WEIGHT_LAST_WEEK = 0.3
WEIGHT_TWO_WEEKS = 0.1

LOOKBACK_DAYS = 30
MIN_DATA_POINTS = 7
RECENT_WINDOW = 7

MAX_CONFIDENCE = 95
CONFIDENCE_PER_POINT = 3
# Extra confidence once history reaches two, three and four weeks
CONFIDENCE_BONUS_TIERS = (14, 21, 28)
CONFIDENCE_BONUS = 10


@dataclass
class ForecastPoint:
    date: date
    forecast_quantity: float
    day_of_week: int


@dataclass
class SeasonalForecast:
    ingredient_id: Optional[UUID]
    forecasts: List[ForecastPoint]
    confidence: int
    day_coefficients: Dict[int, float]
    historical_average: float
    recent_average: float
    data_points: int
    weights: Dict[str, float] = field(default_factory=lambda: {
        "recent": WEIGHT_BASELINE,
        "last_week": WEIGHT_LAST_WEEK,
        "two_weeks": WEIGHT_TWO_WEEKS,
    })
    model_version: str = MODEL_VERSION

    @property
    def insufficient_data(self) -> bool:
        return self.data_points < MIN_DATA_POINTS

    @property
    def total_quantity(self) -> float:
        return sum(p.forecast_quantity for p in self.forecasts)

    @classmethod
    def insufficient(cls, ingredient_id: Optional[UUID], data_points: int) -> "SeasonalForecast":
        return cls(
            ingredient_id=ingredient_id,
            forecasts=[],
            confidence=0,
            day_coefficients={},
            historical_average=0.0,
            recent_average=0.0,
            data_points=data_points,
        )


def calculate_confidence(data_points: int) -> int:
    """
    Confidence (0-95) from the number of days with usage data.

    Non-decreasing in data_points and never above 95: a heuristic model
    never claims certainty.
    """
    if data_points < MIN_DATA_POINTS:
        return 0

    confidence = min(100, data_points * CONFIDENCE_PER_POINT)
    for tier in CONFIDENCE_BONUS_TIERS:
        if data_points >= tier:
            confidence += CONFIDENCE_BONUS
    return min(MAX_CONFIDENCE, confidence)


def calculate_day_coefficients(df: pd.DataFrame) -> Dict[int, float]:
    """
    Day-of-week multipliers (0 = Sunday).

    Weekdays with no observations, or a zero overall mean, get 1.0.
    """
    if df.empty:
        return {i: 1.0 for i in range(7)}

    overall_mean = df["usage"].mean()
    if overall_mean <= 0:
        return {i: 1.0 for i in range(7)}

    dow_means = df.groupby("day_of_week")["usage"].mean()

    coefficients = {}
    for i in range(7):
        if i in dow_means.index:
            coefficients[i] = float(dow_means[i] / overall_mean)
        else:
            coefficients[i] = 1.0
    return coefficients


def build_seasonal_forecast(
    series: Dict[date, float],
    today: date,
    days: int = 7,
    ingredient_id: Optional[UUID] = None,
) -> SeasonalForecast:
    """
    Forecast usage for the ``days`` days after ``today``.

    Args:
        series: Daily usage; days without usage may be absent or zero
        today: Last day of the history window; forecasts start the day after
        days: Forecast horizon
        ingredient_id: Carried through to the result

    Returns:
        SeasonalForecast; an empty, zero-confidence forecast when fewer than
        MIN_DATA_POINTS days of usage exist
    """
    if days < 0:
        raise ValueError("Forecast horizon cannot be negative")

    # A zero-usage day is a day without usage
    df = usage_series_to_frame({d: u for d, u in series.items() if u > 0})
    data_points = len(df)

    if data_points < MIN_DATA_POINTS:
        return SeasonalForecast.insufficient(ingredient_id, data_points)

    coefficients = calculate_day_coefficients(df)
    recent_avg = float(df["usage"].iloc[-RECENT_WINDOW:].mean())
    historical_avg = float(df["usage"].mean())

    # Chronological usage per weekday; the last entry is the most recent
    usage_by_dow = {i: df.loc[df["day_of_week"] == i, "usage"].tolist() for i in range(7)}

    forecasts = []
    for offset in range(1, days + 1):
        target = today + timedelta(days=offset)
        dow = day_of_week(target)
        same_day = usage_by_dow[dow]

        last_week = same_day[-1] if len(same_day) >= 1 else recent_avg
        two_weeks_ago = same_day[-2] if len(same_day) >= 2 else recent_avg
        baseline = recent_avg * coefficients.get(dow, 1.0)

        quantity = (
            WEIGHT_BASELINE * baseline
            + WEIGHT_LAST_WEEK * last_week
            + WEIGHT_TWO_WEEKS * two_weeks_ago
        )
        forecasts.append(ForecastPoint(date=target, forecast_quantity=max(0.0, quantity), day_of_week=dow))

    return SeasonalForecast(
        ingredient_id=ingredient_id,
        forecasts=forecasts,
        confidence=calculate_confidence(data_points),
        day_coefficients=coefficients,
        historical_average=historical_avg,
        recent_average=recent_avg,
        data_points=data_points,
    )


class SeasonalForecaster:
    """Runs the seasonal model over an ingredient's ledger history."""

    def __init__(self, reader: UsageLedgerReader):
        self.reader = reader

    def forecast(self, ingredient_id: UUID, days: int = 7) -> SeasonalForecast:
        """
        Raises:
            LedgerReadError: if the usage history cannot be read
        """
        series = self.reader.daily_usage(ingredient_id, LOOKBACK_DAYS)
        return build_seasonal_forecast(series, self.reader.today(), days, ingredient_id)
