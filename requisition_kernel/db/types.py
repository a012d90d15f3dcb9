"""
Module: requisition_kernel.db.types
Responsibility: Fixed-point column types and the sanctioned quantizers for
    quantities and unit prices.  Every model, service and domain function
    uses these so precision is identical everywhere.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - Quantities are fixed-point decimal(12, 3); unit prices decimal(12, 2).
    - No floats: to_quantity() rejects float input outright.

Failure modes:
    - InvalidQuantityError on float, non-finite, or out-of-range input.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from sqlalchemy import Numeric

from requisition_kernel.exceptions import InvalidQuantityError


# Stock and requisition quantities: 12 digits, 3 decimal places
QuantityType = Numeric(12, 3)

# Goods-receipt unit price: 12 digits, 2 decimal places
UnitPriceType = Numeric(12, 2)


QUANTITY_DECIMAL_PLACES = 3
PRICE_DECIMAL_PLACES = 2
MAX_QUANTITY = Decimal("999999999.999")
MAX_PRICE = Decimal("9999999999.99")
ZERO = Decimal("0")

_QUANTITY_EXP = Decimal(1).scaleb(-QUANTITY_DECIMAL_PLACES)
_PRICE_EXP = Decimal(1).scaleb(-PRICE_DECIMAL_PLACES)


def to_quantity(value: Decimal | int | str, field: str = "qty") -> Decimal:
    """
    Coerce a value to a decimal(12, 3) quantity.

    Preconditions: value is a Decimal, int, or numeric string.  Floats are
        refused because their binary representation would leak into the ledger.
    Postconditions: Returns a finite Decimal with at most 3 decimal places and
        absolute value within MAX_QUANTITY.

    Raises:
        InvalidQuantityError: float input, unparsable string, non-finite value,
            more than 3 decimal places, or magnitude out of range.
    """
    if isinstance(value, float):
        raise InvalidQuantityError(field, None, "floats are not accepted; use Decimal")
    try:
        qty = value if isinstance(value, Decimal) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidQuantityError(field, None, f"not a number: {value!r}") from None
    if not qty.is_finite():
        raise InvalidQuantityError(field, qty, "must be finite")
    # Range first: quantize raises InvalidOperation past the context precision
    if abs(qty) > MAX_QUANTITY:
        raise InvalidQuantityError(field, qty, f"exceeds {MAX_QUANTITY}")
    if qty != qty.quantize(_QUANTITY_EXP, rounding=ROUND_HALF_UP):
        raise InvalidQuantityError(
            field, qty, f"at most {QUANTITY_DECIMAL_PLACES} decimal places allowed"
        )
    return qty


def round_price(value: Decimal | int | str, field: str = "unit_price") -> Decimal:
    """
    Quantize a unit price to decimal(12, 2) with half-up rounding.

    Raises:
        InvalidQuantityError: float, unparsable, non-finite, or above MAX_PRICE.
    """
    if isinstance(value, float):
        raise InvalidQuantityError(field, None, "floats are not accepted; use Decimal")
    try:
        price = value if isinstance(value, Decimal) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidQuantityError(field, None, f"not a number: {value!r}") from None
    if not price.is_finite():
        raise InvalidQuantityError(field, price, "must be finite")
    if abs(price) > MAX_PRICE:
        raise InvalidQuantityError(field, price, f"exceeds {MAX_PRICE}")
    return price.quantize(_PRICE_EXP, rounding=ROUND_HALF_UP)
