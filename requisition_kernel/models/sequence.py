"""
Named counters (``sequence_counters``) read under row lock by SequenceService.

Names in use: ``stock_movement`` and ``request_ref:<year>``.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from requisition_kernel.db.base import Base


class SequenceCounter(Base):
    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    # Last value handed out; the next caller gets current_value + 1
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
