"""
Requisition lifecycle (``requisition_kernel.domain.lifecycle``).

Responsibility
--------------
Declares the request state machine and the single function that decides
a request's status: ``derive_status(items, prior_status, action)``.
Handlers never assign ``Request.status`` themselves; they perform their
item mutation, then ask this module what the status now is.

Architecture position
---------------------
**Kernel domain layer** -- pure.  ZERO I/O.  Imports only
``domain/workflow``, ``domain/quantities`` and kernel exceptions.

Invariants enforced
-------------------
* Only edges declared in ``REQUISITION_WORKFLOW`` can be taken;
  ``derive_status`` raises ``InvalidTransitionError`` otherwise.
* ``DRAFT -> SUBMITTED`` needs an item with ``qty_requested > 0``.
* ``* _REVIEW -> APPROVED`` needs every ``qty_approved`` set and >= 0.
* Fulfilment statuses are a pure function of item quantities:
  ISSUED iff every item has ``qty_issued == qty_approved``; CLOSED iff
  additionally every ``qty_received == qty_issued``.
* REJECTED and CLOSED are terminal.

Failure modes
-------------
* ``InvalidTransitionError`` -- action not available from the status, or
  the derived target is not a declared edge.
* ``EmptyRequestError`` -- submit with no positive item.
* ``InvalidQuantityError`` -- final approval with an unset or negative
  ``qty_approved``, or with nothing approved at all.
"""

from __future__ import annotations

from enum import Enum
from typing import Sequence

from requisition_kernel.domain.quantities import (
    ZERO,
    ItemQuantities,
    has_positive_request,
    is_fully_issued,
    is_fully_received,
)
from requisition_kernel.domain.workflow import Guard, Transition, Workflow
from requisition_kernel.exceptions import (
    EmptyRequestError,
    InvalidQuantityError,
    InvalidTransitionError,
)


class RequestStatus(str, Enum):
    """Persisted request status.  Values are the stored column text."""

    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    DSE_REVIEW = "DSE_REVIEW"
    PADIRI_REVIEW = "PADIRI_REVIEW"
    APPROVED = "APPROVED"
    PARTIALLY_ISSUED = "PARTIALLY_ISSUED"
    ISSUED = "ISSUED"
    REJECTED = "REJECTED"
    CLOSED = "CLOSED"


class RequisitionAction(str, Enum):
    """Everything that can move a request."""

    EDIT = "edit"
    SUBMIT = "submit"
    ROUTE = "route"
    FIRST_LEVEL_APPROVE = "first_level_approve"
    FINAL_APPROVE = "final_approve"
    REJECT = "reject"
    MODIFY = "modify"
    ISSUE = "issue"
    RECEIVE = "receive"


REVIEW_STATUSES: frozenset[RequestStatus] = frozenset({
    RequestStatus.DSE_REVIEW,
    RequestStatus.PADIRI_REVIEW,
})

FULFILMENT_STATUSES: frozenset[RequestStatus] = frozenset({
    RequestStatus.APPROVED,
    RequestStatus.PARTIALLY_ISSUED,
    RequestStatus.ISSUED,
    RequestStatus.CLOSED,
})

TERMINAL_STATUSES: frozenset[RequestStatus] = frozenset({
    RequestStatus.REJECTED,
    RequestStatus.CLOSED,
})

ISSUABLE_STATUSES: frozenset[RequestStatus] = frozenset({
    RequestStatus.APPROVED,
    RequestStatus.PARTIALLY_ISSUED,
})

RECEIVABLE_STATUSES: frozenset[RequestStatus] = frozenset({
    RequestStatus.PARTIALLY_ISSUED,
    RequestStatus.ISSUED,
})

MODIFIABLE_STATUSES: frozenset[RequestStatus] = frozenset({
    RequestStatus.SUBMITTED,
    RequestStatus.DSE_REVIEW,
    RequestStatus.PADIRI_REVIEW,
    RequestStatus.APPROVED,
    RequestStatus.PARTIALLY_ISSUED,
})


# =========================================================================
# Workflow declaration
# =========================================================================

HAS_POSITIVE_ITEM = Guard(
    "has_positive_item", "At least one item with qty_requested > 0",
)
ALL_ITEMS_APPROVED = Guard(
    "all_items_approved", "Every item has a non-null qty_approved >= 0",
)
REASON_PROVIDED = Guard(
    "reason_provided", "A non-blank reason accompanies the action",
)
WITHIN_OUTSTANDING = Guard(
    "within_outstanding", "Each line is within approved-but-unissued quantity and stock on hand",
)
MATCHES_OUTSTANDING = Guard(
    "matches_outstanding", "Each line equals issued-but-unreceived quantity",
)

_S = RequestStatus
_A = RequisitionAction


def _edges(
    sources: Sequence[RequestStatus],
    action: RequisitionAction,
    targets: Sequence[RequestStatus],
    guard: Guard | None = None,
    system_assigned: bool = False,
) -> tuple[Transition, ...]:
    return tuple(
        Transition(
            from_state=src.value,
            to_state=dst.value,
            action=action.value,
            guard=guard,
            system_assigned=system_assigned,
        )
        for src in sources
        for dst in targets
    )


REQUISITION_WORKFLOW = Workflow(
    name="requisition",
    description="Site material requisition: request, approve, issue, receive, close",
    initial_state=_S.DRAFT.value,
    states=tuple(s.value for s in RequestStatus),
    transitions=(
        _edges([_S.DRAFT], _A.EDIT, [_S.DRAFT])
        + _edges([_S.DRAFT], _A.SUBMIT, [_S.SUBMITTED], HAS_POSITIVE_ITEM)
        + _edges(
            [_S.SUBMITTED], _A.ROUTE, [_S.DSE_REVIEW, _S.PADIRI_REVIEW],
            system_assigned=True,
        )
        + _edges([_S.DSE_REVIEW], _A.FIRST_LEVEL_APPROVE, [_S.PADIRI_REVIEW])
        + _edges(
            [_S.DSE_REVIEW, _S.PADIRI_REVIEW], _A.FINAL_APPROVE, [_S.APPROVED],
            ALL_ITEMS_APPROVED,
        )
        + _edges(
            [_S.DSE_REVIEW, _S.PADIRI_REVIEW], _A.REJECT, [_S.REJECTED],
            REASON_PROVIDED,
        )
        + _edges([_S.SUBMITTED], _A.MODIFY, [_S.SUBMITTED], REASON_PROVIDED)
        + _edges([_S.DSE_REVIEW], _A.MODIFY, [_S.DSE_REVIEW], REASON_PROVIDED)
        + _edges([_S.PADIRI_REVIEW], _A.MODIFY, [_S.PADIRI_REVIEW], REASON_PROVIDED)
        + _edges(
            [_S.APPROVED], _A.MODIFY, [_S.APPROVED], REASON_PROVIDED,
        )
        + _edges(
            [_S.PARTIALLY_ISSUED], _A.MODIFY,
            [_S.PARTIALLY_ISSUED, _S.ISSUED, _S.CLOSED], REASON_PROVIDED,
        )
        + _edges(
            [_S.APPROVED, _S.PARTIALLY_ISSUED], _A.ISSUE,
            [_S.PARTIALLY_ISSUED, _S.ISSUED], WITHIN_OUTSTANDING,
        )
        + _edges(
            [_S.PARTIALLY_ISSUED, _S.ISSUED], _A.RECEIVE,
            [_S.PARTIALLY_ISSUED, _S.ISSUED, _S.CLOSED], MATCHES_OUTSTANDING,
            system_assigned=True,
        )
    ),
    terminal_states=(_S.REJECTED.value, _S.CLOSED.value),
)


# =========================================================================
# Status derivation
# =========================================================================


def allowed_actions(status: RequestStatus) -> frozenset[RequisitionAction]:
    """Actions with at least one declared edge out of ``status``."""
    return frozenset(
        RequisitionAction(a) for a in REQUISITION_WORKFLOW.actions_from(status.value)
    )


def ensure_action_allowed(
    status: RequestStatus,
    action: RequisitionAction,
    request_id: str = "",
) -> None:
    """
    Raise unless ``action`` has an edge out of ``status``.

    Raises:
        InvalidTransitionError: if the workflow declares no such edge.
    """
    if action not in allowed_actions(status):
        raise InvalidTransitionError(request_id, status.value, action.value)


def fulfilment_status(items: Sequence[ItemQuantities]) -> RequestStatus:
    """
    Status implied by item quantities once a request is approved.

    Returns:
        CLOSED when something was issued and every item is fully received,
        ISSUED when something was issued and every item is fully issued,
        PARTIALLY_ISSUED when anything was issued, APPROVED otherwise.
    """
    anything_issued = any(item.qty_issued > ZERO for item in items)
    if not anything_issued:
        return RequestStatus.APPROVED
    if all(is_fully_received(item) for item in items):
        return RequestStatus.CLOSED
    if all(is_fully_issued(item) for item in items):
        return RequestStatus.ISSUED
    return RequestStatus.PARTIALLY_ISSUED


def _require_all_approved(items: Sequence[ItemQuantities], request_id: str) -> None:
    for item in items:
        if item.qty_approved is None:
            raise InvalidQuantityError(
                "qty_approved", None, f"unset on an item of request {request_id}",
            )
        if item.qty_approved < ZERO:
            raise InvalidQuantityError(
                "qty_approved", item.qty_approved, "must not be negative",
            )
    if not any(item.qty_approved > ZERO for item in items):
        raise InvalidQuantityError(
            "qty_approved", ZERO, "nothing approved; reject the request instead",
        )


def derive_status(
    items: Sequence[ItemQuantities],
    prior_status: RequestStatus,
    action: RequisitionAction,
    *,
    route_to_final: bool = False,
    request_id: str = "",
) -> RequestStatus:
    """
    Decide the status a request has after ``action`` was applied to ``items``.

    Pure: the same arguments always yield the same status, so re-running it
    on an unchanged request is a no-op.

    Preconditions:
        ``items`` reflect the request's quantities AFTER the action's item
        mutation (for ISSUE/RECEIVE/MODIFY) or as they stand (otherwise).

    Args:
        items: All items currently on the request.
        prior_status: Status before the action.
        action: What was just done.
        route_to_final: For ROUTE only -- send straight to final review.
        request_id: Used in error messages only.

    Returns:
        The new status.

    Raises:
        InvalidTransitionError: action not allowed from prior_status, or the
            derived status is not a declared target.
        EmptyRequestError: SUBMIT without a positive item.
        InvalidQuantityError: FINAL_APPROVE with unset/negative quantities.
    """
    ensure_action_allowed(prior_status, action, request_id)

    if action is RequisitionAction.EDIT:
        target = RequestStatus.DRAFT
    elif action is RequisitionAction.SUBMIT:
        if not has_positive_request(items):
            raise EmptyRequestError(request_id or None)
        target = RequestStatus.SUBMITTED
    elif action is RequisitionAction.ROUTE:
        target = RequestStatus.PADIRI_REVIEW if route_to_final else RequestStatus.DSE_REVIEW
    elif action is RequisitionAction.FIRST_LEVEL_APPROVE:
        target = RequestStatus.PADIRI_REVIEW
    elif action is RequisitionAction.FINAL_APPROVE:
        _require_all_approved(items, request_id)
        target = RequestStatus.APPROVED
    elif action is RequisitionAction.REJECT:
        target = RequestStatus.REJECTED
    elif action is RequisitionAction.MODIFY and prior_status not in FULFILMENT_STATUSES:
        if not has_positive_request(items):
            raise EmptyRequestError(request_id or None)
        target = prior_status
    else:
        # ISSUE, RECEIVE, and MODIFY once approved
        target = fulfilment_status(items)

    if target.value not in REQUISITION_WORKFLOW.targets(prior_status.value, action.value):
        raise InvalidTransitionError(request_id, prior_status.value, action.value)
    return target


def current_status(
    items: Sequence[ItemQuantities],
    persisted_status: RequestStatus,
) -> RequestStatus:
    """
    Recompute the status a request should show right now.

    Statuses before approval, and REJECTED, depend on reviewer actions, not
    quantities, so they are returned unchanged.  From APPROVED onward the
    status is recomputed from items alone.
    """
    if persisted_status in FULFILMENT_STATUSES:
        return fulfilment_status(items)
    return persisted_status
