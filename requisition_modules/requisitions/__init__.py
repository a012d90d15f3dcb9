"""Site material requisitions: drafting, review, issuance and receipt."""

from requisition_modules.requisitions.service import RequisitionService

__all__ = ["RequisitionService"]
