"""
Requisition modules -- the public command surface.

Each module service checks role permissions against the active
``RequisitionPolicy``, owns the transaction boundary, and delegates to
the kernel services.
"""

from requisition_modules.authority import check_permission
from requisition_modules.requisitions.service import RequisitionService
from requisition_modules.stock.service import StockService

__all__ = [
    "RequisitionService",
    "StockService",
    "check_permission",
]
