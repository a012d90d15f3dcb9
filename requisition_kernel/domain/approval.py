"""
Approval chain types (``requisition_kernel.domain.approval``).

Responsibility
--------------
Pure value objects for the two-level review of a requisition: the review
levels, the audited actions, per-item quantity overrides, and the rule
that decides which level a submitter is routed to.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* The two levels are not interchangeable: the first level forwards to
  final review, only the final level unlocks issuance.
* An override targets an item on the request being reviewed, at most once
  per call, with ``qty_approved >= max(0, qty_issued)``.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Mapping, Sequence
from uuid import UUID

from requisition_kernel.db.types import to_quantity
from requisition_kernel.domain.quantities import ZERO, ItemQuantities
from requisition_kernel.exceptions import (
    ApprovedBelowIssuedError,
    DuplicateLineError,
    InvalidQuantityError,
    RequestItemNotFoundError,
)


class ReviewLevel(str, Enum):
    """Persisted reviewer level."""

    DSE = "DSE"
    PADIRI = "PADIRI"


class ApprovalAction(str, Enum):
    """Persisted audit action."""

    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    MODIFIED = "MODIFIED"


@dataclass(frozen=True)
class ApprovalOverride:
    """Reviewer-set approved quantity for one item."""

    request_item_id: UUID
    qty_approved: Decimal


def resolve_overrides(
    request_id: UUID,
    items: Mapping[UUID, ItemQuantities],
    overrides: Sequence[ApprovalOverride],
) -> dict[UUID, Decimal]:
    """
    Validate overrides against the request's items.

    Returns:
        ``{request_item_id: qty_approved}`` ready to apply.

    Raises:
        RequestItemNotFoundError: override names an item not on the request.
        DuplicateLineError: the same item is overridden twice.
        InvalidQuantityError: negative or malformed quantity.
        ApprovedBelowIssuedError: override under the already issued amount.
    """
    resolved: dict[UUID, Decimal] = {}
    for override in overrides:
        item = items.get(override.request_item_id)
        if item is None:
            raise RequestItemNotFoundError(str(request_id), str(override.request_item_id))
        if override.request_item_id in resolved:
            raise DuplicateLineError(str(override.request_item_id))
        qty = to_quantity(override.qty_approved, "qty_approved")
        if qty < ZERO:
            raise InvalidQuantityError("qty_approved", qty, "must not be negative")
        if qty < item.qty_issued:
            raise ApprovedBelowIssuedError(str(override.request_item_id), qty, item.qty_issued)
        resolved[override.request_item_id] = qty
    return resolved


def route_to_final_review(submitter_rank: int, first_level_rank: int) -> bool:
    """A submitter ranked at or above the first-level reviewer skips it."""
    return submitter_rank >= first_level_rank
