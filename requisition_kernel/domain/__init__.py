"""
Pure domain layer.

This module contains the requisition state machine, the quantity
derivations, the stock ledger arithmetic and the DTOs, with NO
dependencies on:
- ORM (SQLAlchemy)
- Database
- Time/clock (except the injectable Clock abstraction)
- I/O
"""

from requisition_kernel.domain.approval import (
    ApprovalAction,
    ApprovalOverride,
    ReviewLevel,
)
from requisition_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from requisition_kernel.domain.dtos import (
    Actor,
    ApprovalRecord,
    IssueResult,
    ReceiptResult,
    ReconciliationRow,
    RequestItemRecord,
    RequestRecord,
    RequestView,
    StockHistoryRow,
    StockMovementRecord,
    StockMutationResult,
    StockRecord,
)
from requisition_kernel.domain.fulfilment import IssueLine, ReceiveLine
from requisition_kernel.domain.ledger import MovementType, SourceType
from requisition_kernel.domain.lifecycle import (
    REQUISITION_WORKFLOW,
    RequestStatus,
    RequisitionAction,
    derive_status,
)
from requisition_kernel.domain.modification import (
    LineEdit,
    ModificationCommand,
    NewLine,
)
from requisition_kernel.domain.procurement import (
    ProcurementPriority,
    ProcurementRecommendation,
)

__all__ = [
    # Clock
    "Clock",
    "DeterministicClock",
    "SystemClock",
    # Lifecycle
    "REQUISITION_WORKFLOW",
    "RequestStatus",
    "RequisitionAction",
    "derive_status",
    # Approval
    "ApprovalAction",
    "ApprovalOverride",
    "ReviewLevel",
    # Commands
    "IssueLine",
    "ReceiveLine",
    "LineEdit",
    "ModificationCommand",
    "NewLine",
    # Ledger
    "MovementType",
    "SourceType",
    "ProcurementPriority",
    "ProcurementRecommendation",
    # DTOs
    "Actor",
    "ApprovalRecord",
    "IssueResult",
    "ReceiptResult",
    "ReconciliationRow",
    "RequestItemRecord",
    "RequestRecord",
    "RequestView",
    "StockHistoryRow",
    "StockMovementRecord",
    "StockMutationResult",
    "StockRecord",
]
