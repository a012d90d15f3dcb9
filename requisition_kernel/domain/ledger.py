"""
Stock ledger arithmetic (``requisition_kernel.domain.ledger``).

Responsibility
--------------
Pure rules for the append-only stock ledger: which movement/source
combinations exist, the signed effect of each movement on on-hand
quantity, the low-stock evaluator, and running-balance reconstruction.

Architecture position
---------------------
**Kernel domain layer** -- pure.  ZERO I/O.

Invariants enforced
-------------------
* ``qty_on_hand == sum(signed_effect(m) for m in movements)`` -- the
  services apply exactly ``signed_effect`` to the aggregate for every
  movement they append.
* IN and OUT quantities are strictly positive; ADJUSTMENT quantities are
  signed and non-zero.
* ``low_stock_alert == (threshold is not None and qty_on_hand <= threshold)``
  after every mutation.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Iterable, Protocol

from requisition_kernel.domain.quantities import ZERO
from requisition_kernel.exceptions import InvalidQuantityError


class MovementType(str, Enum):
    IN = "IN"
    OUT = "OUT"
    ADJUSTMENT = "ADJUSTMENT"


class SourceType(str, Enum):
    GRN = "GRN"
    ISSUE = "ISSUE"
    ADJUSTMENT = "ADJUSTMENT"


# Which sources may produce which movement type
ALLOWED_SOURCES: dict[MovementType, frozenset[SourceType]] = {
    MovementType.IN: frozenset({SourceType.GRN}),
    MovementType.OUT: frozenset({SourceType.ISSUE}),
    MovementType.ADJUSTMENT: frozenset({SourceType.ADJUSTMENT}),
}


def validate_movement(movement_type: MovementType, source_type: SourceType, qty: Decimal) -> None:
    """
    Check a movement before it is appended.

    Raises:
        InvalidQuantityError: non-positive IN/OUT, zero ADJUSTMENT.
        ValueError: source type not valid for the movement type.
    """
    if source_type not in ALLOWED_SOURCES[movement_type]:
        raise ValueError(
            f"Source {source_type.value} cannot produce a {movement_type.value} movement"
        )
    if movement_type is MovementType.ADJUSTMENT:
        if qty == ZERO:
            raise InvalidQuantityError("qty", qty, "adjustment must change the quantity")
    elif qty <= ZERO:
        raise InvalidQuantityError("qty", qty, f"{movement_type.value} quantity must be positive")


def signed_effect(movement_type: MovementType, qty: Decimal) -> Decimal:
    """Effect of one movement on qty_on_hand."""
    if movement_type is MovementType.IN:
        return qty
    if movement_type is MovementType.OUT:
        return -qty
    return qty


def evaluate_low_stock(qty_on_hand: Decimal, threshold: Decimal | None) -> bool:
    """Alert iff a threshold is set and on-hand is at or below it."""
    return threshold is not None and qty_on_hand <= threshold


class MovementLike(Protocol):
    movement_type: MovementType
    qty: Decimal


def ledger_balance(movements: Iterable[MovementLike]) -> Decimal:
    """Signed sum of movements -- what qty_on_hand must equal."""
    return sum((signed_effect(m.movement_type, m.qty) for m in movements), ZERO)


@dataclass(frozen=True)
class BalanceStep:
    qty_before: Decimal
    qty_change: Decimal
    qty_after: Decimal


def running_balance(movements: Iterable[MovementLike]) -> list[BalanceStep]:
    """Before/change/after per movement, in the order given (oldest first)."""
    steps: list[BalanceStep] = []
    balance = ZERO
    for m in movements:
        change = signed_effect(m.movement_type, m.qty)
        steps.append(BalanceStep(balance, change, balance + change))
        balance += change
    return steps
