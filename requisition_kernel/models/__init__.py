"""ORM models for the requisition kernel."""

from requisition_kernel.models.approval import Approval
from requisition_kernel.models.request import Request, RequestItem
from requisition_kernel.models.sequence import SequenceCounter
from requisition_kernel.models.stock import Stock, StockMovement

__all__ = [
    "Approval",
    "Request",
    "RequestItem",
    "SequenceCounter",
    "Stock",
    "StockMovement",
    "import_all_models",
]


def import_all_models() -> tuple[type, ...]:
    """Every mapped class, so Base.metadata is complete before create_all()."""
    return (Approval, Request, RequestItem, SequenceCounter, Stock, StockMovement)
