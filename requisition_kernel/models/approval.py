"""
Module: requisition_kernel.models.approval
Responsibility: ORM persistence for the reviewer trail of a request.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - level in (DSE, PADIRI); action in (APPROVED, REJECTED, MODIFIED).
    - Rows are append-only (ORM listeners + PostgreSQL triggers).

Failure modes:
    - ImmutabilityViolationError on UPDATE/DELETE.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from requisition_kernel.db.base import Base, UUIDString

if TYPE_CHECKING:
    from requisition_kernel.domain.dtos import ApprovalRecord
    from requisition_kernel.models.request import Request


class Approval(Base):
    """One reviewer decision or modification.  Append-only."""

    __tablename__ = "approvals"

    __table_args__ = (
        CheckConstraint("level IN ('DSE', 'PADIRI')", name="ck_approvals_level"),
        CheckConstraint(
            "action IN ('APPROVED', 'REJECTED', 'MODIFIED')",
            name="ck_approvals_action",
        ),
        Index("ix_approvals_request_id", "request_id", "created_at"),
    )

    request_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("requests.id"),
        nullable=False,
    )
    level: Mapped[str] = mapped_column(String(10), nullable=False)
    action: Mapped[str] = mapped_column(String(10), nullable=False)
    reviewer_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    request: Mapped["Request"] = relationship(
        "Request", back_populates="approvals",
    )

    def __repr__(self) -> str:
        return f"<Approval {self.level}/{self.action} request={self.request_id}>"

    def to_dto(self) -> ApprovalRecord:
        """Convert ORM model to frozen domain DTO."""
        from requisition_kernel.domain.approval import ApprovalAction, ReviewLevel
        from requisition_kernel.domain.dtos import ApprovalRecord as ApprovalDTO

        return ApprovalDTO(
            id=self.id,
            request_id=self.request_id,
            level=ReviewLevel(self.level),
            action=ApprovalAction(self.action),
            reviewer_id=self.reviewer_id,
            comment=self.comment,
            created_at=self.created_at,
        )
