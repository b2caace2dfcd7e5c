"""
Usage Ledger Reader: turns signed stock change events into per-day usage.

Usage on a day is the sum of absolute values of the negative deltas on that
day. Purchases and restocks (positive deltas) never count as usage. Days
without any negative event are left out of the series rather than filled
with zero, so "no data" stays distinguishable from "zero forecast".
"""
from datetime import date, timedelta
from typing import Callable, Dict, Optional
from uuid import UUID

import pandas as pd

from stockpulse.core.timeutil import day_of_week, usage_date, utcnow
from stockpulse.stores.ledger import LedgerStore


class UsageLedgerReader:
    """Read-only view of daily ingredient usage over a lookback window."""

    def __init__(
        self,
        ledger: LedgerStore,
        timezone: str = "UTC",
        clock: Optional[Callable] = None,
    ):
        self.ledger = ledger
        self.timezone = timezone
        self.clock = clock or utcnow

    def today(self) -> date:
        """Current usage day in the configured timezone."""
        return usage_date(self.clock(), self.timezone)

    def daily_usage(self, ingredient_id: UUID, days: int = 30) -> Dict[date, float]:
        """
        Total usage per day for the last ``days`` days.

        Raises:
            LedgerReadError: if the ledger query fails
        """
        since = self.clock() - timedelta(days=days)
        events = self.ledger.query(ingredient_id, since)

        usage: Dict[date, float] = {}
        for event in events:
            if event.delta < 0:
                d = usage_date(event.timestamp, self.timezone)
                usage[d] = usage.get(d, 0.0) + abs(event.delta)

        return dict(sorted(usage.items()))

    def usage_frame(self, ingredient_id: UUID, days: int = 30) -> pd.DataFrame:
        """
        Daily usage as a DataFrame indexed by date.

        Columns: usage, day_of_week (0 = Sunday).
        """
        return usage_series_to_frame(self.daily_usage(ingredient_id, days))


def usage_series_to_frame(series: Dict[date, float]) -> pd.DataFrame:
    """Sorted DataFrame view of a date -> usage mapping."""
    if not series:
        return pd.DataFrame(
            {"usage": pd.Series(dtype=float), "day_of_week": pd.Series(dtype=int)},
            index=pd.Index([], name="date"),
        )

    dates = sorted(series)
    df = pd.DataFrame(
        {
            "usage": [float(series[d]) for d in dates],
            "day_of_week": [day_of_week(d) for d in dates],
        },
        index=pd.Index(dates, name="date"),
    )
    return df
