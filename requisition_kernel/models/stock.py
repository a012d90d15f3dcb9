"""
Module: requisition_kernel.models.stock
Responsibility: ORM persistence for the per-(store, material) stock
    aggregate and its append-only movement ledger.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - One Stock row per (store_id, material_id).
    - qty_on_hand >= 0 (check constraint; the ledger service raises a
      typed error first).
    - Movement type/source pairs and quantity signs (check constraints).
    - StockMovement rows are append-only and Stock rows are never deleted
      (ORM listeners in db/immutability.py, triggers in db/sql/).
    - qty_on_hand equals the signed sum of the pair's movements.  This is
      maintained by services/stock_ledger.py, not by the schema, and is
      verified by selectors/stock_selector.reconcile().

Failure modes:
    - ImmutabilityViolationError on StockMovement UPDATE/DELETE or Stock DELETE.
    - IntegrityError on a negative on-hand or a duplicate pair.

Audit relevance:
    The movement ledger is the history of every unit that entered or left
    a store: goods receipts (IN/GRN), issuances against requests
    (OUT/ISSUE, source_id = request id) and manual adjustments.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from requisition_kernel.db.base import Base, TrackedBase, UUIDString
from requisition_kernel.db.types import QuantityType, UnitPriceType

if TYPE_CHECKING:
    from requisition_kernel.domain.dtos import StockMovementRecord, StockRecord


class Stock(TrackedBase):
    """On-hand aggregate for one material in one store.

    Contract:
        Mutated only by the stock ledger service, always together with an
        appended StockMovement.  Created lazily on first stock entry.
    """

    __tablename__ = "stock"

    __table_args__ = (
        UniqueConstraint("store_id", "material_id", name="uq_stock_store_material"),
        CheckConstraint("qty_on_hand >= 0", name="ck_stock_on_hand_nonneg"),
        CheckConstraint("reorder_level >= 0", name="ck_stock_reorder_nonneg"),
        CheckConstraint(
            "low_stock_threshold IS NULL OR low_stock_threshold >= 0",
            name="ck_stock_threshold_nonneg",
        ),
        Index("ix_stock_low_stock_alert", "low_stock_alert"),
    )

    store_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    material_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    qty_on_hand: Mapped[Decimal] = mapped_column(
        QuantityType, nullable=False, default=Decimal("0"),
    )
    reorder_level: Mapped[Decimal] = mapped_column(
        QuantityType, nullable=False, default=Decimal("0"),
    )
    low_stock_threshold: Mapped[Decimal | None] = mapped_column(
        QuantityType, nullable=True,
    )
    low_stock_alert: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )

    def __repr__(self) -> str:
        return (
            f"<Stock store={self.store_id} material={self.material_id} "
            f"on_hand={self.qty_on_hand} alert={self.low_stock_alert}>"
        )

    def to_dto(self) -> StockRecord:
        """Convert ORM model to frozen domain DTO."""
        from requisition_kernel.domain.dtos import StockRecord as StockDTO

        return StockDTO(
            id=self.id,
            store_id=self.store_id,
            material_id=self.material_id,
            qty_on_hand=self.qty_on_hand,
            reorder_level=self.reorder_level,
            low_stock_threshold=self.low_stock_threshold,
            low_stock_alert=self.low_stock_alert,
            updated_at=self.updated_at,
        )


class StockMovement(Base):
    """One ledger movement.  Append-only.

    Contract:
        IN and OUT quantities are strictly positive; ADJUSTMENT quantities
        are signed and non-zero.  ``ledger_seq`` orders the movements of
        the whole ledger and is strictly increasing.
    """

    __tablename__ = "stock_movements"

    __table_args__ = (
        CheckConstraint(
            "movement_type IN ('IN', 'OUT', 'ADJUSTMENT')",
            name="ck_stock_movements_type",
        ),
        CheckConstraint(
            "(movement_type = 'IN' AND source_type = 'GRN') OR "
            "(movement_type = 'OUT' AND source_type = 'ISSUE') OR "
            "(movement_type = 'ADJUSTMENT' AND source_type = 'ADJUSTMENT')",
            name="ck_stock_movements_source",
        ),
        CheckConstraint(
            "(movement_type IN ('IN', 'OUT') AND qty > 0) OR "
            "(movement_type = 'ADJUSTMENT' AND qty <> 0)",
            name="ck_stock_movements_qty_sign",
        ),
        CheckConstraint(
            "unit_price IS NULL OR unit_price >= 0",
            name="ck_stock_movements_price_nonneg",
        ),
        Index("ix_stock_movements_pair_seq", "store_id", "material_id", "ledger_seq"),
        Index("ix_stock_movements_source", "source_type", "source_id"),
    )

    ledger_seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)
    store_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    material_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    movement_type: Mapped[str] = mapped_column(String(20), nullable=False)
    source_type: Mapped[str] = mapped_column(String(20), nullable=False)
    source_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    qty: Mapped[Decimal] = mapped_column(QuantityType, nullable=False)
    unit_price: Mapped[Decimal | None] = mapped_column(UnitPriceType, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return (
            f"<StockMovement #{self.ledger_seq} {self.movement_type}/{self.source_type} "
            f"qty={self.qty}>"
        )

    def to_dto(self) -> StockMovementRecord:
        """Convert ORM model to frozen domain DTO."""
        from requisition_kernel.domain.dtos import StockMovementRecord as MovementDTO
        from requisition_kernel.domain.ledger import MovementType, SourceType

        return MovementDTO(
            id=self.id,
            store_id=self.store_id,
            material_id=self.material_id,
            movement_type=MovementType(self.movement_type),
            source_type=SourceType(self.source_type),
            source_id=self.source_id,
            qty=self.qty,
            unit_price=self.unit_price,
            notes=self.notes,
            created_by=self.created_by,
            created_at=self.created_at,
        )
