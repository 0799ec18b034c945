"""
Module: ledger_kernel.db.types
Responsibility: Annotated type aliases and rounding helpers for money and
    quantity columns.  Centralizes precision so every model and service uses
    identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, selectors/ and engines.  MUST NOT import from any of those.

Invariants enforced:
    - No floats anywhere.  All monetary amounts use Decimal with explicit
      precision.
    - round_money() is the ONLY sanctioned rounding function for amounts
      that leave the ledger (stored, compared against a bound, or reported).
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from sqlalchemy import Numeric

# Column types.  Money also comes from Base.type_annotation_map for any
# Mapped[Decimal]; quantities must name QUANTITY explicitly.
MONEY = Numeric(38, 9)
QUANTITY = Numeric(18, 4)


MONEY_DECIMAL_PLACES = 2
QUANTITY_DECIMAL_PLACES = 4
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the ledger's precision.

    Preconditions: value is a Decimal.
    Postconditions: Returns value quantized to ``decimal_places`` using
        ``rounding`` (ROUND_HALF_UP by default).
    """
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def round_quantity(value: Decimal) -> Decimal:
    """Round a quantity to the stored precision."""
    return round_money(value, QUANTITY_DECIMAL_PLACES)


def to_decimal(value: Any) -> Decimal:
    """
    Coerce caller input to Decimal without passing through float.

    ints and strings are converted exactly; floats are converted via
    ``str()`` so ``0.1`` becomes ``Decimal("0.1")``.

    Raises:
        ValueError: If the value is not numeric or is not finite.
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a numeric amount: {value!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, float):
        result = Decimal(str(value))
    else:
        try:
            result = Decimal(value)
        except (InvalidOperation, TypeError) as exc:
            raise ValueError(f"Not a numeric amount: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Amount must be finite: {value!r}")
    return result
