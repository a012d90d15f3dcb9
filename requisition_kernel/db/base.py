"""
Declarative base for the requisition schema (``requisition_kernel.db.base``).

Every model file imports from here and nothing here imports from
models/, services/, selectors/ or domain/.

Column conventions
------------------
* Primary keys are uuid4 values stored as String(36) so the same schema
  runs on SQLite (tests) and PostgreSQL.
* A bare ``Decimal`` annotation is a quantity: Numeric(12, 3).  Unit
  prices opt in to Numeric(12, 2) through ``db.types.UnitPriceType``.
* Mutable rows (Request, RequestItem, Stock) extend ``TrackedBase`` and
  record who created and last touched them.  Append-only rows
  (StockMovement, Approval) carry their own actor and timestamp.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """uuid.UUID in Python, canonical 36-character text in the database."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        # Accept str ids from raw callers but always store the canonical form
        return str(value if isinstance(value, UUID) else UUID(str(value)))

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class Base(DeclarativeBase):
    """Root of every model; supplies the uuid4 ``id`` and the type map."""

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(12, 3),
        datetime: DateTime(timezone=True),
        UUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


def _stamp_column(*, on_update: bool) -> Mapped[datetime]:
    if on_update:
        return mapped_column(
            DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False,
        )
    return mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class TrackedBase(Base):
    """
    Mutable rows with creator and last-editor stamps.

    ``created_by_id`` is required; ``updated_by_id`` stays NULL until a
    service changes the row and sets it.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = _stamp_column(on_update=False)
    updated_at: Mapped[datetime] = _stamp_column(on_update=True)
    created_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    updated_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
