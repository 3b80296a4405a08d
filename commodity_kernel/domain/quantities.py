"""
Weight and money quantization.

Weights carry WEIGHT_DECIMAL_PLACES (metric tonnes to the kilogram); money
carries MONEY_DECIMAL_PLACES.  round_weight() is the only sanctioned
rounding function for weights.  No floats anywhere.
"""

from decimal import ROUND_HALF_UP, Decimal

WEIGHT_DECIMAL_PLACES = 3
MONEY_DECIMAL_PLACES = 9
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO_WEIGHT = Decimal("0.000")


def quantum(places: int) -> Decimal:
    return Decimal(1).scaleb(-places)


def round_weight(value: Decimal) -> Decimal:
    """Quantize a weight to WEIGHT_DECIMAL_PLACES."""
    return value.quantize(quantum(WEIGHT_DECIMAL_PLACES), rounding=DEFAULT_ROUNDING)


def round_money(value: Decimal, decimal_places: int = MONEY_DECIMAL_PLACES) -> Decimal:
    """Quantize a monetary value (defaults to storage precision)."""
    return value.quantize(quantum(decimal_places), rounding=DEFAULT_ROUNDING)


def to_weight(value: Decimal | int | str) -> Decimal:
    """Coerce caller input to a rounded weight.  Floats are rejected."""
    if isinstance(value, float) or isinstance(value, bool):
        raise TypeError(f"Weights must be Decimal, int or str, got {type(value).__name__}")
    return round_weight(Decimal(value))


def to_money(value: Decimal | int | str) -> Decimal:
    if isinstance(value, float) or isinstance(value, bool):
        raise TypeError(f"Money must be Decimal, int or str, got {type(value).__name__}")
    return round_money(Decimal(value))
