"""Descriptive statistics used across the analytics engine."""
import statistics
from typing import Dict, Optional, Sequence

import numpy as np

from app.utils.money import to_money


def mean(values: Sequence[float]) -> Optional[float]:
    if not values:
        return None
    return to_money(sum(values) / len(values))


def median(values: Sequence[float]) -> Optional[float]:
    if not values:
        return None
    # Even length -> average of the two middle values
    return to_money(statistics.median(values))


def quartile(values: Sequence[float], p: float) -> Optional[float]:
    """Linear interpolation between order statistics at (n-1)*p."""
    if not values:
        return None
    return float(np.percentile(values, p * 100))


def quartiles(values: Sequence[float]) -> Dict[str, Optional[float]]:
    if not values:
        return {"p25": None, "p50": None, "p75": None}
    return {
        "p25": to_money(quartile(values, 0.25)),
        "p50": to_money(quartile(values, 0.5)),
        "p75": to_money(quartile(values, 0.75)),
    }
