"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Immutable records that cross the persistence boundary: request, item,
    approval, stock and movement records, the composed RequestView, and
    the results returned by issuance, receipt and ledger reconciliation.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  ORM rows produce these through
    their ``to_dto()`` methods; selectors and services return them.

Invariants enforced:
    - Records are frozen; callers never get a live ORM row.
    - Outstanding quantities on RequestItemRecord come from
      ``domain.quantities`` (single derivation).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from requisition_kernel.domain.approval import ApprovalAction, ReviewLevel
from requisition_kernel.domain.ledger import MovementType, SourceType
from requisition_kernel.domain.lifecycle import RequestStatus
from requisition_kernel.domain.quantities import (
    outstanding_to_issue,
    outstanding_to_receive,
)


@dataclass(frozen=True)
class Actor:
    """Who is performing a command.  Role names match configuration."""

    actor_id: UUID
    role: str


# =============================================================================
# Requests
# =============================================================================


@dataclass(frozen=True)
class RequestItemRecord:
    id: UUID
    request_id: UUID
    material_id: UUID
    unit_id: UUID
    qty_requested: Decimal
    qty_approved: Decimal | None
    qty_issued: Decimal
    qty_received: Decimal
    issued_at: datetime | None = None
    issued_by: UUID | None = None
    received_at: datetime | None = None
    received_by: UUID | None = None

    @property
    def outstanding_to_issue(self) -> Decimal:
        return outstanding_to_issue(self)

    @property
    def outstanding_to_receive(self) -> Decimal:
        return outstanding_to_receive(self)


@dataclass(frozen=True)
class ApprovalRecord:
    id: UUID
    request_id: UUID
    level: ReviewLevel
    action: ApprovalAction
    reviewer_id: UUID
    comment: str | None
    created_at: datetime


@dataclass(frozen=True)
class RequestRecord:
    """A request header without its items."""

    id: UUID
    ref_no: str
    site_id: UUID
    requested_by: UUID
    status: RequestStatus
    notes: str | None
    version: int
    created_at: datetime | None = None
    submitted_at: datetime | None = None
    approved_at: datetime | None = None
    approved_by: UUID | None = None
    issued_at: datetime | None = None
    issued_by: UUID | None = None
    received_at: datetime | None = None
    received_by: UUID | None = None
    closed_at: datetime | None = None
    closed_by: UUID | None = None
    rejected_at: datetime | None = None
    rejected_by: UUID | None = None
    rejection_reason: str | None = None


@dataclass(frozen=True)
class RequestView:
    """A request with its items and approval trail."""

    request: RequestRecord
    items: tuple[RequestItemRecord, ...]
    approvals: tuple[ApprovalRecord, ...] = ()

    @property
    def id(self) -> UUID:
        return self.request.id

    @property
    def status(self) -> RequestStatus:
        return self.request.status

    def item_for_material(self, material_id: UUID) -> RequestItemRecord | None:
        for item in self.items:
            if item.material_id == material_id:
                return item
        return None


# =============================================================================
# Stock
# =============================================================================


@dataclass(frozen=True)
class StockRecord:
    id: UUID
    store_id: UUID
    material_id: UUID
    qty_on_hand: Decimal
    reorder_level: Decimal
    low_stock_threshold: Decimal | None
    low_stock_alert: bool
    updated_at: datetime | None = None


@dataclass(frozen=True)
class StockMovementRecord:
    id: UUID
    store_id: UUID
    material_id: UUID
    movement_type: MovementType
    source_type: SourceType
    source_id: UUID | None
    qty: Decimal
    unit_price: Decimal | None
    notes: str | None
    created_by: UUID
    created_at: datetime

    @property
    def signed_qty(self) -> Decimal:
        return -self.qty if self.movement_type is MovementType.OUT else self.qty


@dataclass(frozen=True)
class StockHistoryRow:
    """One ledger movement with the balance around it."""

    movement: StockMovementRecord
    qty_before: Decimal
    qty_change: Decimal
    qty_after: Decimal


@dataclass(frozen=True)
class ReconciliationRow:
    """Stored on-hand versus the movement sum for one (store, material)."""

    store_id: UUID
    material_id: UUID
    qty_on_hand: Decimal
    ledger_qty: Decimal

    @property
    def difference(self) -> Decimal:
        return self.qty_on_hand - self.ledger_qty

    @property
    def is_consistent(self) -> bool:
        return self.qty_on_hand == self.ledger_qty


# =============================================================================
# Command results
# =============================================================================


@dataclass(frozen=True)
class IssueResult:
    request_id: UUID
    status: RequestStatus
    movements: tuple[StockMovementRecord, ...]
    alerts_raised: tuple[tuple[UUID, UUID], ...] = ()


@dataclass(frozen=True)
class ReceiptResult:
    request_id: UUID
    status: RequestStatus
    received_item_ids: tuple[UUID, ...]

    @property
    def closed(self) -> bool:
        return self.status is RequestStatus.CLOSED


@dataclass(frozen=True)
class StockMutationResult:
    """Outcome of a single stock ledger command."""

    stock: StockRecord
    movement: StockMovementRecord | None
    alert_raised: bool = False
