"""Services for the requisition kernel (write side)."""

from requisition_kernel.services.approval_chain import ApprovalChainService
from requisition_kernel.services.issuance_engine import IssuanceEngine, IssuanceOutcome
from requisition_kernel.services.receipt_reconciler import ReceiptReconciler
from requisition_kernel.services.request_lifecycle import RequestLifecycleService
from requisition_kernel.services.sequence_service import SequenceService
from requisition_kernel.services.stock_ledger import StockLedgerService

__all__ = [
    "ApprovalChainService",
    "IssuanceEngine",
    "IssuanceOutcome",
    "ReceiptReconciler",
    "RequestLifecycleService",
    "SequenceService",
    "StockLedgerService",
]
