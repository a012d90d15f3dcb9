"""
Stock Module Service (``requisition_modules.stock.service``).

Responsibility
--------------
Public command surface for store stock: creating stock rows, goods
receipts, adjustments, thresholds, alert acknowledgement, and the
read-side reports (history, low-stock alerts, reconciliation,
procurement recommendations).

Architecture
------------
Layer: **Modules** -- thin wrapper over ``StockLedgerService`` and
``StockSelector``.  Permission checks use the active policy; every
command owns its transaction.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from requisition_config.schema import RequisitionPolicy
from requisition_kernel.db.immutability import register_immutability_listeners
from requisition_kernel.domain.catalog import MaterialCatalog
from requisition_kernel.domain.clock import Clock, SystemClock
from requisition_kernel.domain.dtos import (
    Actor,
    ReconciliationRow,
    StockHistoryRow,
    StockMutationResult,
    StockRecord,
)
from requisition_kernel.domain.procurement import (
    ProcurementPriority,
    ProcurementRecommendation,
)
from requisition_kernel.domain.quantities import ZERO
from requisition_kernel.selectors.stock_selector import StockSelector
from requisition_kernel.services.stock_ledger import StockLedgerService
from requisition_modules._transaction import command_scope
from requisition_modules.authority import check_permission


class StockService:
    """
    Orchestrates stock commands through the kernel ledger.

    Contract
    --------
    Commands return ``StockMutationResult`` and leave the session
    committed or rolled back.  Reads never write.
    """

    def __init__(
        self,
        session: Session,
        config: RequisitionPolicy,
        clock: Clock | None = None,
        catalog: MaterialCatalog | None = None,
    ):
        register_immutability_listeners()
        self._session = session
        self._config = config
        self._clock = clock or SystemClock()
        self._ledger = StockLedgerService(session, self._clock, catalog)
        self._stock = StockSelector(session)

    # =========================================================================
    # Commands
    # =========================================================================

    def create_stock(
        self,
        actor: Actor,
        store_id: UUID,
        material_id: UUID,
        *,
        initial_qty: Decimal = ZERO,
        low_stock_threshold: Decimal | None = None,
        reorder_level: Decimal = ZERO,
    ) -> StockMutationResult:
        check_permission(self._config, actor, "create_stock")
        with command_scope(self._session, "create_stock", actor, store_id=store_id):
            result = self._ledger.create_stock(
                store_id, material_id, actor.actor_id,
                initial_qty=initial_qty,
                low_stock_threshold=low_stock_threshold,
                reorder_level=reorder_level,
            )
        return result

    def receive_goods(
        self,
        actor: Actor,
        store_id: UUID,
        material_id: UUID,
        qty: Decimal,
        *,
        unit_price: Decimal | None = None,
        source_id: UUID | None = None,
        notes: str | None = None,
    ) -> StockMutationResult:
        check_permission(self._config, actor, "receive_goods")
        with command_scope(self._session, "receive_goods", actor, store_id=store_id):
            result = self._ledger.receive_goods(
                store_id, material_id, qty, actor.actor_id,
                unit_price=unit_price, source_id=source_id, notes=notes,
            )
        return result

    def adjust_stock(
        self,
        actor: Actor,
        store_id: UUID,
        material_id: UUID,
        delta: Decimal,
        reason: str,
    ) -> StockMutationResult:
        check_permission(self._config, actor, "adjust_stock")
        with command_scope(self._session, "adjust_stock", actor, store_id=store_id):
            result = self._ledger.adjust_stock(
                store_id, material_id, delta, reason, actor.actor_id,
            )
        return result

    def set_quantity(
        self,
        actor: Actor,
        store_id: UUID,
        material_id: UUID,
        qty: Decimal,
        reason: str | None = None,
    ) -> StockMutationResult:
        """Absolute stock count; booked as an adjustment for the difference."""
        check_permission(self._config, actor, "adjust_stock")
        with command_scope(self._session, "set_quantity", actor, store_id=store_id):
            result = self._ledger.set_quantity(
                store_id, material_id, qty, actor.actor_id, reason=reason,
            )
        return result

    def zero_out(
        self,
        actor: Actor,
        store_id: UUID,
        material_id: UUID,
        reason: str | None = None,
    ) -> StockMutationResult:
        check_permission(self._config, actor, "adjust_stock")
        with command_scope(self._session, "zero_out", actor, store_id=store_id):
            result = self._ledger.zero_out(
                store_id, material_id, actor.actor_id, reason=reason,
            )
        return result

    def set_threshold(
        self,
        actor: Actor,
        store_id: UUID,
        material_id: UUID,
        threshold: Decimal | None,
        *,
        reorder_level: Decimal | None = None,
    ) -> StockMutationResult:
        check_permission(self._config, actor, "set_threshold")
        with command_scope(self._session, "set_threshold", actor, store_id=store_id):
            result = self._ledger.set_threshold(
                store_id, material_id, threshold, actor.actor_id,
                reorder_level=reorder_level,
            )
        return result

    def acknowledge_alert(
        self,
        actor: Actor,
        store_id: UUID,
        material_id: UUID,
    ) -> StockMutationResult:
        check_permission(self._config, actor, "acknowledge_alert")
        with command_scope(self._session, "acknowledge_alert", actor, store_id=store_id):
            result = self._ledger.acknowledge_alert(store_id, material_id, actor.actor_id)
        return result

    # =========================================================================
    # Reports
    # =========================================================================

    def get_stock(self, actor: Actor, store_id: UUID, material_id: UUID) -> StockRecord | None:
        check_permission(self._config, actor, "view_reports")
        return self._stock.get(store_id, material_id)

    def list_stock(self, actor: Actor, store_id: UUID | None = None) -> list[StockRecord]:
        check_permission(self._config, actor, "view_reports")
        return self._stock.list_stock(store_id)

    def low_stock_alerts(self, actor: Actor, store_id: UUID | None = None) -> list[StockRecord]:
        check_permission(self._config, actor, "view_reports")
        return self._stock.low_stock_alerts(store_id)

    def history(self, actor: Actor, store_id: UUID, material_id: UUID) -> list[StockHistoryRow]:
        check_permission(self._config, actor, "view_reports")
        return self._stock.history(store_id, material_id)

    def reconcile(self, actor: Actor) -> list[ReconciliationRow]:
        check_permission(self._config, actor, "view_reports")
        return self._stock.reconcile()

    def verify_ledger(self, actor: Actor) -> int:
        """Strict reconciliation; raises LedgerIntegrityError on any drift."""
        check_permission(self._config, actor, "view_reports")
        return self._stock.verify()

    def procurement_recommendations(
        self,
        actor: Actor,
        *,
        store_id: UUID | None = None,
        priority: ProcurementPriority | None = None,
    ) -> list[ProcurementRecommendation]:
        check_permission(self._config, actor, "view_reports")
        return self._stock.procurement_recommendations(
            store_id=store_id,
            priority=priority,
            critical_minimum=self._config.procurement.critical_minimum,
        )
