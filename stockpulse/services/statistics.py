"""
Statistical primitives shared by every detector, the forecaster and the
par-level calculator, so severities are comparable across anomaly types.

Standard deviation is the population form (divide by N). Histories here are
short windows of a single ingredient, not samples of a larger population.
"""
from typing import Iterable, Tuple

import numpy as np


# |z| thresholds, checked from the top down
SEVERITY_Z_THRESHOLDS = (
    (4.0, "critical"),
    (3.0, "high"),
    (2.5, "medium"),
)


def stats(values: Iterable[float]) -> Tuple[float, float]:
    """
    Mean and population standard deviation.

    Returns:
        (mean, std_dev); (0.0, 0.0) for an empty input
    """
    arr = np.asarray(list(values), dtype=float)
    if arr.size == 0:
        return 0.0, 0.0
    return float(arr.mean()), float(arr.std(ddof=0))


def z_score(value: float, mean: float, std_dev: float) -> float:
    """Standard score of value; 0 when std_dev is 0 (no deviation signal)."""
    if std_dev == 0:
        return 0.0
    return (value - mean) / std_dev


def severity_from_z_score(z: float) -> str:
    """Map a z-score to low / medium / high / critical by magnitude."""
    abs_z = abs(z)
    for threshold, severity in SEVERITY_Z_THRESHOLDS:
        if abs_z >= threshold:
            return severity
    return "low"


def coefficient_of_variation(mean: float, std_dev: float) -> float:
    if mean == 0:
        return 0.0
    return std_dev / mean


def percent_change(old: float, new: float) -> float:
    """Percent change from old to new; 0 when old is 0."""
    if old == 0:
        return 0.0
    return (new - old) / old * 100
