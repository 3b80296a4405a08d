"""
Module: commodity_kernel.db.types
Responsibility: Column types for weights and money.
Architecture position: Kernel > DB.  May be imported by models/, services/,
    and selectors/.  Imports only domain/quantities.py.

Invariants enforced:
    - Weight columns store exactly WEIGHT_DECIMAL_PLACES digits after the
      point, money columns MONEY_DECIMAL_PLACES.
    - No floats.  On SQLite, which has no exact decimal storage,
      DecimalAmount stores scaled integers so SUM() and comparisons stay
      exact.

Failure modes:
    - decimal.InvalidOperation if a non-numeric value is bound.
"""

from decimal import Decimal

from sqlalchemy import BigInteger, Numeric, String
from sqlalchemy.types import TypeDecorator

from commodity_kernel.domain.quantities import (
    DEFAULT_ROUNDING,
    MONEY_DECIMAL_PLACES,
    WEIGHT_DECIMAL_PLACES,
    quantum,
)


class DecimalAmount(TypeDecorator):
    """
    Fixed-scale decimal column.

    PostgreSQL: NUMERIC(38, places).
    SQLite: BIGINT holding value * 10**places.

    Bind values are quantized to `places` on the way in; result values
    come back as Decimal with exactly `places` digits after the point.
    """

    impl = Numeric
    cache_ok = True

    def __init__(self, places: int):
        self.places = places
        super().__init__(precision=38, scale=places, asdecimal=True)

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(BigInteger())
        return dialect.type_descriptor(Numeric(38, self.places, asdecimal=True))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = Decimal(value).quantize(quantum(self.places), rounding=DEFAULT_ROUNDING)
        if dialect.name == "sqlite":
            return int(value.scaleb(self.places))
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if dialect.name == "sqlite":
            value = Decimal(int(value)).scaleb(-self.places)
        return Decimal(value).quantize(quantum(self.places))


def WeightAmount() -> DecimalAmount:
    return DecimalAmount(WEIGHT_DECIMAL_PLACES)


def MoneyAmount() -> DecimalAmount:
    return DecimalAmount(MONEY_DECIMAL_PLACES)


# ISO 4217 code
Currency = String(3)

# Short identifier strings (locations, commodity codes, supplier refs)
ShortCode = String(50)

LongText = String(4000)
