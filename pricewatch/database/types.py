from decimal import Decimal

from sqlalchemy import Numeric, String
from sqlalchemy.types import TypeDecorator

# numeric(20, 10)
PRICE_QUANTUM = Decimal("0.0000000001")
PRICE_INTEGER_DIGITS = 10
PRICE_MAX = Decimal(10) ** PRICE_INTEGER_DIGITS - PRICE_QUANTUM
_TEXT_WIDTH = PRICE_INTEGER_DIGITS + 1 + 10


class PriceNumeric(TypeDecorator):
    """
    Exact numeric(20, 10) price column.

    SQLite stores NUMERIC as a float, so there the value is kept as
    zero-padded fixed-width text instead. Equal width keeps text order equal
    to numeric order for non-negative values, so BETWEEN still works.
    """

    impl = Numeric(20, 10, asdecimal=True)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(_TEXT_WIDTH))
        return dialect.type_descriptor(Numeric(20, 10, asdecimal=True))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = Decimal(str(value)).quantize(PRICE_QUANTUM)
        if dialect.name != "sqlite":
            return value
        if value < 0 or value > PRICE_MAX:
            raise ValueError(f"price {value} does not fit numeric(20, 10)")
        return f"{value:0{_TEXT_WIDTH}.10f}"

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(str(value)).quantize(PRICE_QUANTUM)
