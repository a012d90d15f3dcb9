"""
StockLedgerService -- the single writer of stock aggregates and movements.

Responsibility:
    Every change to ``Stock.qty_on_hand`` goes through this service, which
    appends exactly one ``StockMovement`` for it, applies the movement's
    signed effect to the aggregate, and re-evaluates the low-stock alert.
    Goods receipts, manual adjustments, threshold changes and issuance
    debits (called by IssuanceEngine) all land here.

Architecture position:
    Kernel > Services -- imperative shell.  Pure rules come from
    ``domain.ledger``; this module adds locking and persistence.

Invariants enforced:
    - ``qty_on_hand == sum(signed movements)`` for every (store, material):
      the aggregate is only ever changed by ``_append_movement``.
    - ``qty_on_hand >= 0``: NegativeStockError / InsufficientStockError
      before any write.
    - ``low_stock_alert == (threshold is not None and on_hand <= threshold)``
      after every mutation; acknowledge_alert clears it until the next one.
    - Stock rows are locked ``FOR UPDATE`` before they are read for a
      decision; multi-row callers lock in sorted (store_id, material_id)
      order.

Failure modes:
    - StockNotFoundError: operation on a pair that has no stock row.
    - DuplicateStockError: create_stock on an existing pair.
    - NegativeStockError: adjustment below zero.
    - InsufficientStockError: issuance debit larger than on-hand.
    - InvalidQuantityError / MissingReasonError: malformed input.

Audit relevance:
    The movement ledger is the stock audit trail; each movement records
    the actor, a timestamp from the injected clock, and its source.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from requisition_kernel.db.types import ZERO, round_price, to_quantity
from requisition_kernel.domain.catalog import MaterialCatalog, display_name
from requisition_kernel.domain.clock import Clock
from requisition_kernel.domain.dtos import StockMutationResult
from requisition_kernel.domain.ledger import (
    MovementType,
    SourceType,
    evaluate_low_stock,
    signed_effect,
    validate_movement,
)
from requisition_kernel.exceptions import (
    DuplicateStockError,
    InsufficientStockError,
    InvalidQuantityError,
    MissingReasonError,
    NegativeStockError,
    StockNotFoundError,
)
from requisition_kernel.logging_config import get_logger
from requisition_kernel.models.stock import Stock, StockMovement
from requisition_kernel.services.base import BaseService
from requisition_kernel.services.sequence_service import SequenceService

logger = get_logger("services.stock_ledger")

StockKey = tuple[UUID, UUID]


def lock_order(key: StockKey) -> tuple[str, str]:
    """Deterministic lock order for (store_id, material_id) pairs."""
    return (str(key[0]), str(key[1]))


class StockLedgerService(BaseService):
    """
    Append-only stock ledger over the Stock aggregate.

    Contract:
        Flushes only; the caller commits.  Every public mutator returns a
        ``StockMutationResult`` with the fresh stock record.

    Non-goals:
        - Does NOT know about requests; issuance bookkeeping on items is
          IssuanceEngine's job.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        catalog: MaterialCatalog | None = None,
        sequence_service: SequenceService | None = None,
    ):
        super().__init__(session, clock)
        self._catalog = catalog
        self._sequences = sequence_service or SequenceService(session)

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    def lock_stock(self, store_id: UUID, material_id: UUID) -> Stock | None:
        """Load one stock row ``FOR UPDATE`` with fresh attribute values."""
        return self.session.execute(
            select(Stock)
            .where(Stock.store_id == store_id, Stock.material_id == material_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def lock_stock_rows(self, keys: Iterable[StockKey]) -> dict[StockKey, Stock | None]:
        """
        Lock several stock rows one by one in sorted (store_id, material_id)
        order, so two transactions touching the same rows cannot deadlock.

        Returns:
            ``{(store_id, material_id): Stock or None}`` for every key.
        """
        locked: dict[StockKey, Stock | None] = {}
        for key in sorted(set(keys), key=lock_order):
            locked[key] = self.lock_stock(*key)
        return locked

    def _require_stock(self, store_id: UUID, material_id: UUID) -> Stock:
        stock = self.lock_stock(store_id, material_id)
        if stock is None:
            raise StockNotFoundError(
                str(store_id), str(material_id),
                display_name(self._catalog, material_id),
            )
        return stock

    def _insert_stock(
        self,
        store_id: UUID,
        material_id: UUID,
        actor_id: UUID,
        low_stock_threshold: Decimal | None = None,
        reorder_level: Decimal = ZERO,
    ) -> Stock | None:
        """Insert a new stock row inside a savepoint; None if the pair exists."""
        savepoint = self.session.begin_nested()
        try:
            stock = Stock(
                store_id=store_id,
                material_id=material_id,
                qty_on_hand=ZERO,
                reorder_level=reorder_level,
                low_stock_threshold=low_stock_threshold,
                low_stock_alert=False,
                created_by_id=actor_id,
            )
            self.session.add(stock)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            logger.debug(
                "stock_create_race",
                extra={"store_id": str(store_id), "material_id": str(material_id)},
            )
            return None
        return self.lock_stock(store_id, material_id)

    def _get_or_create(self, store_id: UUID, material_id: UUID, actor_id: UUID) -> Stock:
        stock = self.lock_stock(store_id, material_id)
        if stock is not None:
            return stock
        stock = self._insert_stock(store_id, material_id, actor_id)
        if stock is None:
            # Created concurrently
            stock = self._require_stock(store_id, material_id)
        else:
            logger.info(
                "stock_created",
                extra={"store_id": str(store_id), "material_id": str(material_id)},
            )
        return stock

    # ------------------------------------------------------------------
    # Core write path
    # ------------------------------------------------------------------

    def _refresh_alert(self, stock: Stock) -> bool:
        """Re-evaluate the alert flag.  Returns True if it was just raised."""
        was_alerting = stock.low_stock_alert
        alerting = evaluate_low_stock(stock.qty_on_hand, stock.low_stock_threshold)
        stock.low_stock_alert = alerting
        extra = {
            "store_id": str(stock.store_id),
            "material_id": str(stock.material_id),
            "qty_on_hand": str(stock.qty_on_hand),
            "threshold": (
                str(stock.low_stock_threshold)
                if stock.low_stock_threshold is not None else None
            ),
        }
        if alerting and not was_alerting:
            logger.warning("low_stock_alert_raised", extra=extra)
            return True
        if was_alerting and not alerting:
            logger.info("low_stock_alert_cleared", extra=extra)
        return False

    def _append_movement(
        self,
        stock: Stock,
        movement_type: MovementType,
        source_type: SourceType,
        qty: Decimal,
        *,
        actor_id: UUID,
        source_id: UUID | None = None,
        unit_price: Decimal | None = None,
        notes: str | None = None,
    ) -> tuple[StockMovement, bool]:
        """
        Append one movement and apply it to the locked aggregate.

        Preconditions:
            ``stock`` was loaded by ``lock_stock`` in this transaction.

        Returns:
            (movement, alert_raised)
        """
        validate_movement(movement_type, source_type, qty)
        effect = signed_effect(movement_type, qty)
        new_on_hand = stock.qty_on_hand + effect
        if new_on_hand < ZERO:
            if movement_type is MovementType.OUT:
                raise InsufficientStockError(
                    str(stock.store_id), str(stock.material_id),
                    available=stock.qty_on_hand, requested=qty,
                    material_name=display_name(self._catalog, stock.material_id),
                )
            raise NegativeStockError(
                str(stock.store_id), str(stock.material_id), stock.qty_on_hand, effect,
            )

        movement = StockMovement(
            ledger_seq=self._sequences.next_value(SequenceService.STOCK_MOVEMENT),
            store_id=stock.store_id,
            material_id=stock.material_id,
            movement_type=movement_type.value,
            source_type=source_type.value,
            source_id=source_id,
            qty=qty,
            unit_price=unit_price,
            notes=notes,
            created_by=actor_id,
            created_at=self._clock.now(),
        )
        self.session.add(movement)

        stock.qty_on_hand = new_on_hand
        stock.updated_by_id = actor_id
        alert_raised = self._refresh_alert(stock)
        self.session.flush()

        logger.info(
            "stock_movement_recorded",
            extra={
                "store_id": str(stock.store_id),
                "material_id": str(stock.material_id),
                "movement_type": movement_type.value,
                "source_type": source_type.value,
                "qty": str(qty),
                "qty_on_hand": str(new_on_hand),
            },
        )
        return movement, alert_raised

    def _result(
        self,
        stock: Stock,
        movement: StockMovement | None = None,
        alert_raised: bool = False,
    ) -> StockMutationResult:
        return StockMutationResult(
            stock=stock.to_dto(),
            movement=movement.to_dto() if movement is not None else None,
            alert_raised=alert_raised,
        )

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def create_stock(
        self,
        store_id: UUID,
        material_id: UUID,
        actor_id: UUID,
        initial_qty: Decimal = ZERO,
        low_stock_threshold: Decimal | None = None,
        reorder_level: Decimal = ZERO,
    ) -> StockMutationResult:
        """
        Create the stock row for a pair.

        A non-zero initial quantity is written as an ADJUSTMENT movement so
        the aggregate still equals its ledger.  The alert is evaluated
        immediately.

        Raises:
            DuplicateStockError: the pair already has a row.
            InvalidQuantityError: negative quantity, threshold or reorder level.
        """
        initial_qty = self._non_negative(initial_qty, "initial_qty")
        reorder_level = self._non_negative(reorder_level, "reorder_level")
        if low_stock_threshold is not None:
            low_stock_threshold = self._non_negative(low_stock_threshold, "low_stock_threshold")

        if self.lock_stock(store_id, material_id) is not None:
            raise DuplicateStockError(str(store_id), str(material_id))
        stock = self._insert_stock(
            store_id, material_id, actor_id,
            low_stock_threshold=low_stock_threshold,
            reorder_level=reorder_level,
        )
        if stock is None:
            raise DuplicateStockError(str(store_id), str(material_id))

        logger.info(
            "stock_created",
            extra={
                "store_id": str(store_id),
                "material_id": str(material_id),
                "initial_qty": str(initial_qty),
            },
        )

        if initial_qty > ZERO:
            movement, raised = self._append_movement(
                stock, MovementType.ADJUSTMENT, SourceType.ADJUSTMENT, initial_qty,
                actor_id=actor_id, notes="Initial stock",
            )
            return self._result(stock, movement, raised)

        raised = self._refresh_alert(stock)
        self.session.flush()
        return self._result(stock, None, raised)

    def receive_goods(
        self,
        store_id: UUID,
        material_id: UUID,
        qty: Decimal,
        actor_id: UUID,
        unit_price: Decimal | None = None,
        source_id: UUID | None = None,
        notes: str | None = None,
    ) -> StockMutationResult:
        """Record a goods receipt (IN/GRN).  Creates the stock row lazily."""
        qty = to_quantity(qty, "qty")
        if qty <= ZERO:
            raise InvalidQuantityError("qty", qty, "received quantity must be positive")
        if unit_price is not None:
            unit_price = round_price(unit_price)
            if unit_price < ZERO:
                raise InvalidQuantityError("unit_price", unit_price, "must not be negative")

        stock = self._get_or_create(store_id, material_id, actor_id)
        movement, raised = self._append_movement(
            stock, MovementType.IN, SourceType.GRN, qty,
            actor_id=actor_id, source_id=source_id,
            unit_price=unit_price, notes=notes,
        )
        return self._result(stock, movement, raised)

    def adjust_stock(
        self,
        store_id: UUID,
        material_id: UUID,
        delta: Decimal,
        reason: str,
        actor_id: UUID,
    ) -> StockMutationResult:
        """
        Signed manual correction (ADJUSTMENT/ADJUSTMENT).

        Raises:
            MissingReasonError: blank reason.
            InvalidQuantityError: zero delta.
            NegativeStockError: result below zero.
        """
        if not reason or not reason.strip():
            raise MissingReasonError("adjust_stock")
        delta = to_quantity(delta, "delta")
        stock = self._require_stock(store_id, material_id)
        movement, raised = self._append_movement(
            stock, MovementType.ADJUSTMENT, SourceType.ADJUSTMENT, delta,
            actor_id=actor_id, notes=reason,
        )
        logger.info(
            "stock_adjusted",
            extra={
                "store_id": str(store_id),
                "material_id": str(material_id),
                "delta": str(delta),
            },
        )
        return self._result(stock, movement, raised)

    def set_quantity(
        self,
        store_id: UUID,
        material_id: UUID,
        qty: Decimal,
        actor_id: UUID,
        reason: str | None = None,
    ) -> StockMutationResult:
        """Set on-hand to ``qty`` via an ADJUSTMENT delta; no-op when unchanged."""
        qty = self._non_negative(qty, "qty")
        stock = self._require_stock(store_id, material_id)
        delta = qty - stock.qty_on_hand
        if delta == ZERO:
            return self._result(stock)
        movement, raised = self._append_movement(
            stock, MovementType.ADJUSTMENT, SourceType.ADJUSTMENT, delta,
            actor_id=actor_id, notes=reason or f"Quantity set to {qty}",
        )
        return self._result(stock, movement, raised)

    def zero_out(
        self,
        store_id: UUID,
        material_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
    ) -> StockMutationResult:
        """The ledger's "delete": bring on-hand to zero, keep the row."""
        return self.set_quantity(
            store_id, material_id, ZERO, actor_id, reason=reason or "Stock zeroed out",
        )

    def set_threshold(
        self,
        store_id: UUID,
        material_id: UUID,
        threshold: Decimal | None,
        actor_id: UUID,
        reorder_level: Decimal | None = None,
    ) -> StockMutationResult:
        """Change the low-stock threshold (None disables) and re-evaluate."""
        if threshold is not None:
            threshold = self._non_negative(threshold, "low_stock_threshold")
        stock = self._require_stock(store_id, material_id)
        stock.low_stock_threshold = threshold
        if reorder_level is not None:
            stock.reorder_level = self._non_negative(reorder_level, "reorder_level")
        stock.updated_by_id = actor_id
        raised = self._refresh_alert(stock)
        self.session.flush()
        return self._result(stock, None, raised)

    def acknowledge_alert(
        self,
        store_id: UUID,
        material_id: UUID,
        actor_id: UUID,
    ) -> StockMutationResult:
        """Clear the alert flag without touching the threshold."""
        stock = self._require_stock(store_id, material_id)
        if stock.low_stock_alert:
            stock.low_stock_alert = False
            stock.updated_by_id = actor_id
            self.session.flush()
            logger.info(
                "low_stock_alert_acknowledged",
                extra={"store_id": str(store_id), "material_id": str(material_id)},
            )
        return self._result(stock)

    def record_issue(
        self,
        stock: Stock,
        qty: Decimal,
        *,
        request_id: UUID,
        actor_id: UUID,
        notes: str | None = None,
    ) -> tuple[StockMovement, bool]:
        """
        Debit a locked stock row for an issuance (OUT/ISSUE).

        Preconditions:
            ``stock`` was locked via ``lock_stock_rows`` in this transaction
            and ``qty`` was validated against the request item.
        """
        return self._append_movement(
            stock, MovementType.OUT, SourceType.ISSUE, qty,
            actor_id=actor_id, source_id=request_id, notes=notes,
        )

    @staticmethod
    def _non_negative(value: Decimal, field: str) -> Decimal:
        qty = to_quantity(value, field)
        if qty < ZERO:
            raise InvalidQuantityError(field, qty, "must not be negative")
        return qty
