"""Percentage and rounding helpers shared by the scoring components.

All percentages produced by fieldsafe go through these helpers so that
rounding is identical everywhere: half-up to two decimal places
(2/3 -> 66.67, 0.125 -> 0.13).
"""

from decimal import ROUND_HALF_UP, Decimal

VACUOUS_PERCENT = 100.0
"""Value of a coverage ratio with nothing to cover."""


def round_half_up(value: float | Decimal, places: int = 2) -> float:
    """Round a number half-up to a fixed number of decimal places.

    Args:
        value: Number to round
        places: Decimal places to keep

    Returns:
        Rounded value as float
    """
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def percentage(
    numerator: float,
    denominator: float,
    *,
    empty: float = VACUOUS_PERCENT,
    places: int = 2,
) -> float:
    """Compute a percentage clamped to [0, 100].

    Args:
        numerator: Satisfied count or earned points
        denominator: Applicable count or available points
        empty: Value returned when the denominator is zero
        places: Decimal places to keep

    Returns:
        Percentage in [0, 100]
    """
    if denominator <= 0:
        return empty
    raw = Decimal(str(numerator)) * 100 / Decimal(str(denominator))
    return min(max(round_half_up(raw, places), 0.0), 100.0)
