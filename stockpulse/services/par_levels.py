"""
Smart par levels: a min/max stock band sized from average usage, supplier
lead time and usage volatility.

Min = ceil(avg_daily_usage x lead_time x safety_factor x (1 + cv))
Max = Min + ceil(avg_daily_usage x 7)    (weekly reorder cycle)

More volatile ingredients (higher coefficient of variation) get a
proportionally larger buffer.
"""
import math
from dataclasses import dataclass
from typing import Dict
from uuid import UUID

import numpy as np

from stockpulse.services.statistics import coefficient_of_variation, stats
from stockpulse.services.usage_ledger import UsageLedgerReader


@dataclass
class ParLevelRecommendation:
    recommended_min: int
    recommended_max: int
    avg_daily_usage: float
    usage_variance: float
    data_points: int

    @classmethod
    def empty(cls, data_points: int = 0) -> "ParLevelRecommendation":
        return cls(
            recommended_min=0,
            recommended_max=0,
            avg_daily_usage=0.0,
            usage_variance=0.0,
            data_points=data_points,
        )


def calculate_par_levels(
    usage: Dict,
    lead_time_days: float = 3,
    safety_factor: float = 1.5,
    reorder_cycle_days: int = 7,
    min_data_points: int = 7,
) -> ParLevelRecommendation:
    """
    Par levels from a daily usage series.

    Args:
        usage: date -> usage for the days with usage
        lead_time_days: Supplier lead time, >= 0
        safety_factor: Base safety multiplier, > 0

    Raises:
        ValueError: on a negative lead time or non-positive safety factor
    """
    if lead_time_days < 0:
        raise ValueError("lead_time_days cannot be negative")
    if safety_factor <= 0:
        raise ValueError("safety_factor must be positive")

    values = list(usage.values())
    if len(values) < min_data_points:
        return ParLevelRecommendation.empty(len(values))

    mean, std_dev = stats(values)
    cv = coefficient_of_variation(mean, std_dev)
    adjusted_safety = safety_factor * (1 + cv)

    recommended_min = math.ceil(mean * lead_time_days * adjusted_safety)
    recommended_max = recommended_min + math.ceil(mean * reorder_cycle_days)

    return ParLevelRecommendation(
        recommended_min=int(recommended_min),
        recommended_max=int(recommended_max),
        avg_daily_usage=mean,
        usage_variance=float(np.var(values)),
        data_points=len(values),
    )


class ParLevelCalculator:
    """Par-level recommendations from an ingredient's ledger history."""

    LOOKBACK_DAYS = 30
    MIN_DATA_POINTS = 7
    REORDER_CYCLE_DAYS = 7

    def __init__(self, reader: UsageLedgerReader):
        self.reader = reader

    def calculate(
        self,
        ingredient_id: UUID,
        lead_time_days: float = 3,
        safety_factor: float = 1.5,
    ) -> ParLevelRecommendation:
        usage = self.reader.daily_usage(ingredient_id, self.LOOKBACK_DAYS)
        return calculate_par_levels(
            usage,
            lead_time_days=lead_time_days,
            safety_factor=safety_factor,
            reorder_cycle_days=self.REORDER_CYCLE_DAYS,
            min_data_points=self.MIN_DATA_POINTS,
        )
