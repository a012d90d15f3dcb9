"""
IssuanceEngine -- all-or-nothing issue of approved quantities from stock.

Responsibility:
    Validates an issuance batch against the request's items, locks every
    affected stock row in deterministic order, checks availability, and
    only then debits stock and credits ``qty_issued``.

Architecture position:
    Kernel > Services.  Called by RequestLifecycleService with the request
    row already locked; the lifecycle derives the status afterwards.
    Uses StockLedgerService as the single writer of stock.

Invariants enforced:
    - ``0 < qty <= outstanding_to_issue(item)`` for every line.
    - No line is applied unless every line can be applied: validation and
      stock sufficiency are checked for the whole batch before the first
      write, and any later failure propagates so the owning transaction
      rolls back.
    - Stock rows are locked ``FOR UPDATE`` in sorted (store_id,
      material_id) order; concurrent issues of the same row serialize.
    - on-hand never goes negative.

Failure modes:
    - QuantityExceedsOutstandingError, InvalidQuantityError,
      DuplicateLineError, RequestItemNotFoundError (validation).
    - StockNotFoundError ("no stock available"), InsufficientStockError
      (carries available and requested).
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from requisition_kernel.domain.catalog import MaterialCatalog, display_name
from requisition_kernel.domain.clock import Clock
from requisition_kernel.domain.fulfilment import IssueLine, validate_issue_lines
from requisition_kernel.exceptions import InsufficientStockError, StockNotFoundError
from requisition_kernel.logging_config import get_logger
from requisition_kernel.models.request import Request
from requisition_kernel.models.stock import StockMovement
from requisition_kernel.services.base import BaseService
from requisition_kernel.services.stock_ledger import (
    StockKey,
    StockLedgerService,
    lock_order,
)

logger = get_logger("services.issuance")


@dataclass(frozen=True)
class IssuanceOutcome:
    movements: tuple[StockMovement, ...]
    alerts_raised: tuple[StockKey, ...]


class IssuanceEngine(BaseService):
    """Debits stock and credits request items in one flush scope."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        catalog: MaterialCatalog | None = None,
        ledger: StockLedgerService | None = None,
    ):
        super().__init__(session, clock)
        self._catalog = catalog
        self._ledger = ledger or StockLedgerService(session, self._clock, catalog)

    def issue(
        self,
        request: Request,
        lines: Sequence[IssueLine],
        actor_id: UUID,
        notes: str | None = None,
    ) -> IssuanceOutcome:
        """
        Apply an issuance batch to a locked request.

        Preconditions:
            ``request`` and its items are locked and its status allows
            issuance.

        Postconditions:
            For every line: stock debited by qty with one OUT/ISSUE
            movement (source_id = request id), ``qty_issued`` increased by
            qty, ``issued_at``/``issued_by`` stamped.  Low-stock alerts
            re-evaluated for every touched row.
        """
        items = {item.id: item for item in request.items}
        valid_lines = validate_issue_lines(request.id, items, lines)

        # Demand per stock row
        demand: dict[StockKey, Decimal] = {}
        line_keys: list[tuple[IssueLine, StockKey]] = []
        for line in valid_lines:
            key = (line.store_id, items[line.request_item_id].material_id)
            demand[key] = demand.get(key, Decimal("0")) + line.qty
            line_keys.append((line, key))

        locked = self._ledger.lock_stock_rows(demand.keys())

        for key, qty in sorted(demand.items(), key=lambda kv: lock_order(kv[0])):
            stock = locked[key]
            store_id, material_id = key
            name = display_name(self._catalog, material_id)
            if stock is None:
                raise StockNotFoundError(str(store_id), str(material_id), name)
            if stock.qty_on_hand < qty:
                logger.warning(
                    "issuance_insufficient_stock",
                    extra={
                        "request_id": str(request.id),
                        "store_id": str(store_id),
                        "material_id": str(material_id),
                        "available": str(stock.qty_on_hand),
                        "requested": str(qty),
                    },
                )
                raise InsufficientStockError(
                    str(store_id), str(material_id),
                    available=stock.qty_on_hand, requested=qty, material_name=name,
                )

        now = self._clock.now()
        movements: list[StockMovement] = []
        alerts: list[StockKey] = []
        for line, key in line_keys:
            movement, raised = self._ledger.record_issue(
                locked[key], line.qty,
                request_id=request.id, actor_id=actor_id, notes=notes,
            )
            movements.append(movement)
            if raised:
                alerts.append(key)

            item = items[line.request_item_id]
            item.qty_issued = item.qty_issued + line.qty
            item.issued_at = now
            item.issued_by = actor_id
            item.updated_by_id = actor_id

        self.session.flush()
        logger.info(
            "issuance_completed",
            extra={
                "request_id": str(request.id),
                "lines": len(line_keys),
                "alerts_raised": len(alerts),
            },
        )
        return IssuanceOutcome(tuple(movements), tuple(alerts))
