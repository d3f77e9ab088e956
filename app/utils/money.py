"""
Money helpers.

All monetary rounding in the analytics engine goes through ``to_money`` so the
2-decimal rounding rule lives in one place (Decimal, half-up) instead of being
re-applied with float arithmetic at every call site.
"""
import math
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, localcontext
from typing import Any, Optional

CENT = Decimal("0.01")

# Enough digits for any finite float (max ~1.8e308) plus the decimals
DECIMAL_PRECISION = 400


def to_number(value: Any, default: Optional[float] = 0.0) -> Optional[float]:
    """Coerce DB numerics, strings and None to a finite float."""
    if value is None or isinstance(value, bool):
        return default
    try:
        num = float(value)
    except (TypeError, ValueError, InvalidOperation):
        return default
    if not math.isfinite(num):
        return default
    return num


def to_money(value: Any, places: int = 2) -> float:
    """Round to ``places`` decimals, half away from zero. Non-finite -> 0."""
    num = to_number(value)
    quantum = CENT if places == 2 else Decimal(1).scaleb(-places)
    with localcontext() as ctx:
        ctx.prec = DECIMAL_PRECISION
        rounded = Decimal(repr(num)).quantize(quantum, rounding=ROUND_HALF_UP)
    result = float(rounded)
    return 0.0 if result == 0 else result


def safe_pct(current: float, previous: float) -> Optional[float]:
    """Relative change in percent.

    ``None`` when growth is undefined (previous is 0, current is not),
    ``0`` when both are 0.
    """
    if previous == 0:
        return 0.0 if current == 0 else None
    return to_money((current - previous) / previous * 100)


def margin_pct(profit: float, income: float) -> float:
    """Profit over income in percent, defined as 0 when income <= 0."""
    if income <= 0:
        return 0.0
    return to_money(profit / income * 100)
