"""
Module: ledger_kernel.db.types
Responsibility: Column type and helpers for monetary amounts.
    Centralizes precision, range and rounding so every model and service
    handles amounts identically.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/ and selectors/.  MUST NOT import from any of those layers.

CRITICAL: No floats anywhere in the ledger kernel.  All monetary amounts use
Decimal with two decimal places, and stay below MONEY_LIMIT in magnitude.
"""

from decimal import ROUND_HALF_UP, Decimal, DecimalException

from sqlalchemy import BigInteger, Numeric
from sqlalchemy.types import TypeDecorator

MONEY_PRECISION = 15
MONEY_DECIMAL_PLACES = 2
MONEY_QUANTUM = Decimal("0.01")
# Exclusive bound on magnitude: 13 integer digits fit Numeric(15, 2).
MONEY_LIMIT = Decimal(10) ** (MONEY_PRECISION - MONEY_DECIMAL_PLACES)
MAX_MONEY = MONEY_LIMIT - MONEY_QUANTUM
ZERO = Decimal("0.00")
DEFAULT_ROUNDING = ROUND_HALF_UP


class MoneyAmount(TypeDecorator):
    """
    Exact two-place amount column.

    PostgreSQL stores NUMERIC(15, 2).  pysqlite has no decimal type and
    would keep NUMERIC as REAL, so on SQLite the value is stored as integer
    cents.  Bound literals in expressions such as ``balance + delta`` and
    SUM aggregates carry this type, so SQLite arithmetic stays in integers.

    Guarantees:
        - process_bind_param: Decimal -> int cents on SQLite, unchanged elsewhere.
        - process_result_value: int cents -> two-place Decimal on SQLite.
    """

    impl = Numeric(MONEY_PRECISION, MONEY_DECIMAL_PLACES, asdecimal=True)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(BigInteger())
        return super().load_dialect_impl(dialect)

    def process_bind_param(self, value, dialect):
        if value is None or dialect.name != "sqlite":
            return value
        if isinstance(value, (bool, float)):
            raise TypeError(f"Monetary amounts must not be floats: {value!r}")
        cents = Decimal(value).scaleb(MONEY_DECIMAL_PLACES)
        if cents != cents.to_integral_value():
            raise ValueError(
                f"Amount {value} has more than {MONEY_DECIMAL_PLACES} decimal places"
            )
        return int(cents)

    def process_result_value(self, value, dialect):
        if value is None or dialect.name != "sqlite":
            return value
        return Decimal(int(value)).scaleb(-MONEY_DECIMAL_PLACES)

    def coerce_compared_value(self, op, value):
        return self


def money_from_str(value: str) -> Decimal:
    """
    Parse an exact monetary amount from its string form.

    Raises:
        ValueError: If value is not a finite decimal number.
    """
    try:
        amount = Decimal(value.strip())
    except (DecimalException, AttributeError) as exc:
        raise ValueError(f"Not a decimal amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Not a finite amount: {value!r}")
    return amount


def check_money_range(amount: Decimal) -> Decimal:
    """
    Raises:
        ValueError: If ``abs(amount)`` does not fit a money column.
    """
    if abs(amount) >= MONEY_LIMIT:
        raise ValueError(
            f"Amount {amount} is out of range, the largest magnitude is {MAX_MONEY}"
        )
    return amount


def to_money(value: Decimal | int | str) -> Decimal:
    """
    Convert an exact input to a two-place Decimal without rounding.

    Floats are refused: they cannot represent most cent values exactly.

    Raises:
        TypeError: If value is a float or another unsupported type.
        ValueError: If value carries more than two decimal places, is not a
            finite number, or does not fit a money column.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"Monetary amounts must not be floats: {value!r}")
    if isinstance(value, str):
        amount = money_from_str(value)
    elif isinstance(value, int):
        amount = Decimal(value)
    elif isinstance(value, Decimal):
        if not value.is_finite():
            raise ValueError(f"Not a finite amount: {value!r}")
        amount = value
    else:
        raise TypeError(f"Unsupported amount type: {type(value).__name__}")

    check_money_range(amount)
    try:
        quantized = amount.quantize(MONEY_QUANTUM)
    except DecimalException as exc:
        raise ValueError(f"Amount {value} cannot be represented exactly") from exc
    if quantized != amount:
        raise ValueError(
            f"Amount {value} has more than {MONEY_DECIMAL_PLACES} decimal places"
        )
    return quantized


def round_money(value: Decimal, rounding: str = DEFAULT_ROUNDING) -> Decimal:
    """Quantize a value to two decimal places.

    This is the only sanctioned rounding function for stored amounts;
    database aggregates come back with driver-specific exponents and are
    normalized here.
    """
    return value.quantize(MONEY_QUANTUM, rounding=rounding)


def format_money(value: Decimal) -> str:
    """Render an amount as a fixed two-place string."""
    return f"{round_money(value):.2f}"
