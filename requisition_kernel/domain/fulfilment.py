"""
Issuance and receipt line validation (``requisition_kernel.domain.fulfilment``).

Responsibility
--------------
Validates a batch of issue or receipt lines against the request's items
before any row is touched.  Both engines call these first so that a batch
is rejected as a whole.

Architecture position
---------------------
**Kernel domain layer** -- pure.  ZERO I/O.

Invariants enforced
-------------------
* Every line names an item of the request, at most once per batch.
* Issue: ``0 < qty <= outstanding_to_issue(item)``.
* Receipt: ``qty_received == outstanding_to_receive(item)`` exactly; items
  with nothing issued or nothing outstanding are not eligible.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Mapping, Sequence
from uuid import UUID

from requisition_kernel.db.types import to_quantity
from requisition_kernel.domain.quantities import (
    ZERO,
    ItemQuantities,
    outstanding_to_issue,
    outstanding_to_receive,
)
from requisition_kernel.exceptions import (
    DuplicateLineError,
    InvalidQuantityError,
    ItemNotEligibleError,
    QuantityExceedsOutstandingError,
    ReceiptQuantityMismatchError,
    RequestItemNotFoundError,
)


@dataclass(frozen=True)
class IssueLine:
    """Issue ``qty`` of an item from ``store_id``."""

    request_item_id: UUID
    store_id: UUID
    qty: Decimal


@dataclass(frozen=True)
class ReceiveLine:
    """Site confirms it received ``qty_received`` of an item."""

    request_item_id: UUID
    qty_received: Decimal


def _check_line_identity(
    request_id: UUID,
    request_item_id: UUID,
    items: Mapping[UUID, ItemQuantities],
    seen: set[UUID],
) -> ItemQuantities:
    item = items.get(request_item_id)
    if item is None:
        raise RequestItemNotFoundError(str(request_id), str(request_item_id))
    if request_item_id in seen:
        raise DuplicateLineError(str(request_item_id))
    seen.add(request_item_id)
    return item


def validate_issue_lines(
    request_id: UUID,
    items: Mapping[UUID, ItemQuantities],
    lines: Sequence[IssueLine],
) -> list[IssueLine]:
    """
    Validate an issuance batch.

    Returns:
        The lines with quantities normalized to three decimal places.

    Raises:
        InvalidQuantityError: empty batch, or a quantity <= 0.
        RequestItemNotFoundError: item not on this request.
        DuplicateLineError: the same item twice in the batch.
        QuantityExceedsOutstandingError: more than approved-but-unissued.
    """
    if not lines:
        raise InvalidQuantityError("lines", None, "at least one issue line is required")
    seen: set[UUID] = set()
    normalized: list[IssueLine] = []
    for line in lines:
        item = _check_line_identity(request_id, line.request_item_id, items, seen)
        qty = to_quantity(line.qty, "qty")
        if qty <= ZERO:
            raise InvalidQuantityError("qty", qty, "issue quantity must be positive")
        outstanding = outstanding_to_issue(item)
        if qty > outstanding:
            raise QuantityExceedsOutstandingError(str(line.request_item_id), qty, outstanding)
        normalized.append(IssueLine(line.request_item_id, line.store_id, qty))
    return normalized


def validate_receive_lines(
    request_id: UUID,
    items: Mapping[UUID, ItemQuantities],
    lines: Sequence[ReceiveLine],
) -> list[ReceiveLine]:
    """
    Validate a receipt batch.  Partial confirmation of an issuance is not
    accepted: each line must match the outstanding quantity exactly.

    Raises:
        InvalidQuantityError: empty batch or malformed quantity.
        RequestItemNotFoundError, DuplicateLineError
        ItemNotEligibleError: nothing issued, or nothing left to receive.
        ReceiptQuantityMismatchError: quantity differs from the outstanding.
    """
    if not lines:
        raise InvalidQuantityError("lines", None, "at least one receipt line is required")
    seen: set[UUID] = set()
    normalized: list[ReceiveLine] = []
    for line in lines:
        item = _check_line_identity(request_id, line.request_item_id, items, seen)
        qty = to_quantity(line.qty_received, "qty_received")
        if item.qty_issued <= ZERO:
            raise ItemNotEligibleError(str(line.request_item_id), "nothing has been issued")
        outstanding = outstanding_to_receive(item)
        if outstanding <= ZERO:
            raise ItemNotEligibleError(str(line.request_item_id), "already fully received")
        if qty != outstanding:
            raise ReceiptQuantityMismatchError(str(line.request_item_id), qty, outstanding)
        normalized.append(ReceiveLine(line.request_item_id, qty))
    return normalized
