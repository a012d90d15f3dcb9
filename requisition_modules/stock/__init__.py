"""Store stock commands and reports."""

from requisition_modules.stock.service import StockService

__all__ = ["StockService"]
