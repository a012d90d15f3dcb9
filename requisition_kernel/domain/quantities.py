"""
Canonical item quantity derivations (``requisition_kernel.domain.quantities``).

Responsibility
--------------
The ONE place that answers "how much is left to issue" and "how much is
left to receive" for a request item.  Issuance, receipt, selectors and
status derivation all call these functions instead of recomputing the
difference inline.

Architecture position
---------------------
**Kernel domain layer** -- pure functions.  ZERO I/O.

Invariants enforced
-------------------
* ``0 <= qty_received <= qty_issued``
* ``qty_issued <= qty_approved`` once approved
* Outstanding quantities are never negative.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Protocol

ZERO = Decimal("0")


class ItemQuantities(Protocol):
    """Anything carrying the four quantity columns of a request item.

    Satisfied by the ``RequestItem`` ORM row, the ``RequestItemRecord`` DTO
    and the in-memory ``ProposedItem`` used by modification planning.
    """

    qty_requested: Decimal
    qty_approved: Decimal | None
    qty_issued: Decimal
    qty_received: Decimal


def outstanding_to_issue(item: ItemQuantities) -> Decimal:
    """Approved quantity not yet issued; zero while unapproved."""
    if item.qty_approved is None:
        return ZERO
    remaining = item.qty_approved - item.qty_issued
    return remaining if remaining > ZERO else ZERO


def outstanding_to_receive(item: ItemQuantities) -> Decimal:
    """Issued quantity the site has not yet confirmed."""
    remaining = item.qty_issued - item.qty_received
    return remaining if remaining > ZERO else ZERO


def is_fully_issued(item: ItemQuantities) -> bool:
    return item.qty_approved is not None and item.qty_issued == item.qty_approved


def is_fully_received(item: ItemQuantities) -> bool:
    """received == issued == approved."""
    return is_fully_issued(item) and item.qty_received == item.qty_issued


def has_positive_request(items: Iterable[ItemQuantities]) -> bool:
    return any(item.qty_requested > ZERO for item in items)


def item_invariant_violations(item: ItemQuantities) -> tuple[str, ...]:
    """
    List every quantity invariant the item currently breaks.

    Returns:
        Empty tuple when the item is consistent.
    """
    problems: list[str] = []
    if item.qty_requested < ZERO:
        problems.append("qty_requested is negative")
    if item.qty_received < ZERO:
        problems.append("qty_received is negative")
    if item.qty_issued < ZERO:
        problems.append("qty_issued is negative")
    if item.qty_received > item.qty_issued:
        problems.append("qty_received exceeds qty_issued")
    if item.qty_approved is None:
        if item.qty_issued > ZERO:
            problems.append("qty_issued is positive before approval")
    else:
        if item.qty_approved < ZERO:
            problems.append("qty_approved is negative")
        if item.qty_issued > item.qty_approved:
            problems.append("qty_issued exceeds qty_approved")
    return tuple(problems)
