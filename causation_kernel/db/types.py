"""
Module: causation_kernel.db.types
Responsibility: Annotated column types and the money helpers shared by every
    model, engine and service.
Architecture position: Kernel > DB.  May be imported by models/, services/,
    causation_engines/ and causation_batch/.  MUST NOT import from any of them.

Invariants enforced:
    K-1 -- round_money() is the ONLY sanctioned rounding function for money.
           MONEY_TOLERANCE is the threshold below which an amount is treated
           as zero and the maximum debit/credit drift allowed in a posting.
    CRITICAL: No floats in money arithmetic.  Values read from configuration
           or JSON go through to_decimal() before they touch an amount.

Failure modes:
    - decimal.InvalidOperation from to_decimal() on a non-numeric string.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Annotated

from sqlalchemy import Numeric, String

# Monetary amount, two decimals
Money = Annotated[Decimal, Numeric(18, 2)]

# Rate / factor expressed in percent (e.g. 24.000000000 for 24%)
Rate = Annotated[Decimal, Numeric(12, 9)]

# Distribution line percentage
Percentage = Annotated[Decimal, Numeric(5, 2)]

ShortCode = Annotated[str, String(50)]
LongText = Annotated[str, String(4000)]

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP
MONEY_TOLERANCE = Decimal("0.01")
ZERO = Decimal("0")


def to_decimal(value: object, default: Decimal = ZERO) -> Decimal:
    """Coerce a stored or configured value to Decimal.

    None maps to ``default``.  Floats go through ``str`` so that 0.1
    becomes Decimal("0.1") rather than its binary expansion.
    """
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given decimal places.

    INVARIANT K-1: every component that produces a money amount delegates
    here, so a charge computed by a calculator and the same charge split by
    the allocation engine round identically.
    """
    quantize_str = "1" if decimal_places == 0 else "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def is_chargeable(amount: Decimal) -> bool:
    """True when ``amount`` exceeds the money tolerance (amounts <= 0.01 are dropped)."""
    return amount > MONEY_TOLERANCE
