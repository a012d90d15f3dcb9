"""Selectors for the requisition kernel (read side)."""

from requisition_kernel.selectors.request_selector import RequestSelector
from requisition_kernel.selectors.stock_selector import StockSelector

__all__ = [
    "RequestSelector",
    "StockSelector",
]
