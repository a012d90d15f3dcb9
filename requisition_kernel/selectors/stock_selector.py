"""
Module: requisition_kernel.selectors.stock_selector
Responsibility: Read-only queries over the stock aggregate and its
    movement ledger: stock rows, low-stock alerts, movement history with
    running balance, ledger reconciliation and procurement
    recommendations.
Architecture position: Kernel > Selectors.  May import from models/,
    domain/ and selectors/base.py.

Invariants enforced:
    - History balances are rebuilt from the movements themselves (oldest
      first by ledger_seq), never read from the aggregate.
    - reconcile() compares every stored on-hand with its movement sum;
      verify() raises when any pair diverges.

Audit relevance:
    reconcile()/verify() are the integrity check for the rule that the
    stock aggregate never drifts from the append-only ledger.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import case, func, select

from requisition_kernel.domain.dtos import (
    ReconciliationRow,
    StockHistoryRow,
    StockMovementRecord,
    StockRecord,
)
from requisition_kernel.domain.ledger import running_balance
from requisition_kernel.domain.procurement import (
    DEFAULT_CRITICAL_MINIMUM,
    ProcurementPriority,
    ProcurementRecommendation,
    recommend,
)
from requisition_kernel.domain.quantities import ZERO
from requisition_kernel.exceptions import LedgerIntegrityError
from requisition_kernel.logging_config import get_logger
from requisition_kernel.models.stock import Stock, StockMovement
from requisition_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.stock")


class StockSelector(BaseSelector):
    """Stock rows and the movement ledger."""

    def get(self, store_id: UUID, material_id: UUID) -> StockRecord | None:
        stock = self.session.execute(
            select(Stock).where(Stock.store_id == store_id, Stock.material_id == material_id)
        ).scalar_one_or_none()
        return stock.to_dto() if stock is not None else None

    def list_stock(self, store_id: UUID | None = None) -> list[StockRecord]:
        stmt = select(Stock)
        if store_id is not None:
            stmt = stmt.where(Stock.store_id == store_id)
        stmt = stmt.order_by(Stock.store_id, Stock.material_id)
        return [s.to_dto() for s in self.session.execute(stmt).scalars()]

    def low_stock_alerts(self, store_id: UUID | None = None) -> list[StockRecord]:
        """Rows whose alert flag is set, lowest on-hand first."""
        stmt = select(Stock).where(Stock.low_stock_alert.is_(True))
        if store_id is not None:
            stmt = stmt.where(Stock.store_id == store_id)
        stmt = stmt.order_by(Stock.qty_on_hand, Stock.material_id)
        return [s.to_dto() for s in self.session.execute(stmt).scalars()]

    # ------------------------------------------------------------------
    # Ledger
    # ------------------------------------------------------------------

    def movements(
        self,
        store_id: UUID,
        material_id: UUID,
        source_id: UUID | None = None,
    ) -> list[StockMovementRecord]:
        """Movements for a pair, oldest first."""
        stmt = select(StockMovement).where(
            StockMovement.store_id == store_id,
            StockMovement.material_id == material_id,
        )
        if source_id is not None:
            stmt = stmt.where(StockMovement.source_id == source_id)
        stmt = stmt.order_by(StockMovement.ledger_seq)
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]

    def movements_for_source(self, source_id: UUID) -> list[StockMovementRecord]:
        """Every movement booked against one request or receipt."""
        stmt = (
            select(StockMovement)
            .where(StockMovement.source_id == source_id)
            .order_by(StockMovement.ledger_seq)
        )
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]

    def history(self, store_id: UUID, material_id: UUID) -> list[StockHistoryRow]:
        """Movements with qty_before / qty_change / qty_after, oldest first."""
        records = self.movements(store_id, material_id)
        steps = running_balance(records)
        return [
            StockHistoryRow(
                movement=record,
                qty_before=step.qty_before,
                qty_change=step.qty_change,
                qty_after=step.qty_after,
            )
            for record, step in zip(records, steps)
        ]

    def ledger_sums(self) -> dict[tuple[UUID, UUID], Decimal]:
        """Signed movement total per (store_id, material_id)."""
        signed = case(
            (StockMovement.movement_type == "OUT", -StockMovement.qty),
            else_=StockMovement.qty,
        )
        rows = self.session.execute(
            select(
                StockMovement.store_id,
                StockMovement.material_id,
                func.sum(signed).label("total"),
            ).group_by(StockMovement.store_id, StockMovement.material_id)
        ).all()
        return {
            (row.store_id, row.material_id): Decimal(str(row.total or 0))
            for row in rows
        }

    def reconcile(self) -> list[ReconciliationRow]:
        """Stored on-hand versus movement sum for every known pair."""
        sums = self.ledger_sums()
        result: list[ReconciliationRow] = []
        seen: set[tuple[UUID, UUID]] = set()
        for stock in self.session.execute(
            select(Stock).order_by(Stock.store_id, Stock.material_id)
        ).scalars():
            key = (stock.store_id, stock.material_id)
            seen.add(key)
            result.append(
                ReconciliationRow(
                    store_id=stock.store_id,
                    material_id=stock.material_id,
                    qty_on_hand=stock.qty_on_hand,
                    ledger_qty=sums.get(key, ZERO),
                )
            )
        # Movements without a stock row
        for key in sorted(set(sums) - seen, key=lambda k: (str(k[0]), str(k[1]))):
            result.append(ReconciliationRow(key[0], key[1], ZERO, sums[key]))
        return result

    def mismatches(self) -> list[ReconciliationRow]:
        return [row for row in self.reconcile() if not row.is_consistent]

    def verify(self) -> int:
        """
        Strict reconciliation.

        Returns:
            Number of pairs checked.

        Raises:
            LedgerIntegrityError: at least one pair diverges.
        """
        rows = self.reconcile()
        bad = [row for row in rows if not row.is_consistent]
        if bad:
            logger.error(
                "ledger_integrity_violation",
                extra={"mismatched_pairs": len(bad), "checked": len(rows)},
            )
            raise LedgerIntegrityError(
                [
                    (str(row.store_id), str(row.material_id), row.qty_on_hand, row.ledger_qty)
                    for row in bad
                ]
            )
        logger.info("ledger_reconciled", extra={"checked": len(rows)})
        return len(rows)

    # ------------------------------------------------------------------
    # Procurement
    # ------------------------------------------------------------------

    def procurement_recommendations(
        self,
        *,
        store_id: UUID | None = None,
        priority: ProcurementPriority | None = None,
        critical_minimum: Decimal = DEFAULT_CRITICAL_MINIMUM,
    ) -> list[ProcurementRecommendation]:
        """Rows needing purchase, most urgent first."""
        return recommend(
            self.list_stock(store_id),
            critical_minimum=critical_minimum,
            priority=priority,
        )
