"""
ReceiptReconciler -- site-side confirmation of issued quantities.

Responsibility:
    Credits ``qty_received`` on request items.  Each line must confirm
    exactly what was issued and not yet received; anything else is
    rejected with the required value in the message.

Architecture position:
    Kernel > Services.  Called by RequestLifecycleService with the request
    row locked; the lifecycle decides whether the request is now CLOSED.

Invariants enforced:
    - ``qty_received <= qty_issued`` after every call.
    - Receipt is all-or-nothing over the batch.
"""

from __future__ import annotations

from typing import Sequence
from uuid import UUID

from requisition_kernel.domain.fulfilment import ReceiveLine, validate_receive_lines
from requisition_kernel.logging_config import get_logger
from requisition_kernel.models.request import Request
from requisition_kernel.services.base import BaseService

logger = get_logger("services.receipt")


class ReceiptReconciler(BaseService):

    def receive(
        self,
        request: Request,
        lines: Sequence[ReceiveLine],
        actor_id: UUID,
    ) -> tuple[UUID, ...]:
        """
        Apply a receipt batch to a locked request.

        Returns:
            Ids of the items credited.

        Raises:
            ReceiptQuantityMismatchError, ItemNotEligibleError,
            RequestItemNotFoundError, DuplicateLineError, InvalidQuantityError.
        """
        items = {item.id: item for item in request.items}
        valid_lines = validate_receive_lines(request.id, items, lines)

        now = self._clock.now()
        for line in valid_lines:
            item = items[line.request_item_id]
            item.qty_received = item.qty_received + line.qty_received
            item.received_at = now
            item.received_by = actor_id
            item.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "receipt_recorded",
            extra={"request_id": str(request.id), "lines": len(valid_lines)},
        )
        return tuple(line.request_item_id for line in valid_lines)
