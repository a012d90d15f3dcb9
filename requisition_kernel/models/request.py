"""
Module: requisition_kernel.models.request
Responsibility: ORM persistence for requisitions and their line items.
Architecture position: Kernel > Models.  May import from db/ only (domain
    DTO types are imported lazily inside ``to_dto``).

Invariants enforced:
    - status is one of the nine persisted values (check constraint).
    - ref_no is unique.
    - One item per (request_id, material_id).
    - Item quantities are non-negative and qty_received <= qty_issued
      (check constraints; the services enforce qty_issued <= qty_approved).
    - version increases by one on every state change (services bump it;
      stale writers are rejected under the row lock).

Failure modes:
    - IntegrityError on a duplicate ref_no or a duplicate material on one
      request (the services raise a typed error before this can happen).

Audit relevance:
    The stamp columns (submitted/approved/issued/received/closed/rejected)
    record who moved the request and when; the Approval table carries the
    reviewer trail.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from requisition_kernel.db.base import TrackedBase, UUIDString
from requisition_kernel.db.types import QuantityType

if TYPE_CHECKING:
    from requisition_kernel.domain.dtos import (
        RequestItemRecord,
        RequestRecord,
        RequestView,
    )
    from requisition_kernel.models.approval import Approval


_STATUS_VALUES = (
    "'DRAFT', 'SUBMITTED', 'DSE_REVIEW', 'PADIRI_REVIEW', 'APPROVED', "
    "'PARTIALLY_ISSUED', 'ISSUED', 'REJECTED', 'CLOSED'"
)


class Request(TrackedBase):
    """A site material requisition.

    Contract:
        Created in DRAFT.  Status is written only by the lifecycle service
        from ``derive_status``; never assigned by callers.

    Guarantees:
        - ref_no unique, format ``REQ-{year}-{seq:04d}``.
        - version starts at 1.
    """

    __tablename__ = "requests"

    __table_args__ = (
        CheckConstraint(
            f"status IN ({_STATUS_VALUES})",
            name="ck_requests_valid_status",
        ),
        CheckConstraint("version >= 1", name="ck_requests_version_positive"),
        Index("ix_requests_status", "status"),
        Index("ix_requests_site_status", "site_id", "status"),
        Index("ix_requests_requested_by", "requested_by"),
    )

    ref_no: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    site_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    requested_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="DRAFT")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    issued_at: Mapped[datetime | None] = mapped_column(nullable=True)
    issued_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    received_at: Mapped[datetime | None] = mapped_column(nullable=True)
    received_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    closed_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejected_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    items: Mapped[list["RequestItem"]] = relationship(
        "RequestItem",
        back_populates="request",
        cascade="all, delete-orphan",
        order_by="RequestItem.line_no",
        lazy="selectin",
    )

    approvals: Mapped[list["Approval"]] = relationship(
        "Approval",
        back_populates="request",
        order_by="Approval.created_at",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Request {self.ref_no} status={self.status} v{self.version}>"

    def to_dto(self) -> RequestRecord:
        """Convert ORM model to frozen domain DTO (header only)."""
        from requisition_kernel.domain.dtos import RequestRecord as RequestRecordDTO
        from requisition_kernel.domain.lifecycle import RequestStatus

        return RequestRecordDTO(
            id=self.id,
            ref_no=self.ref_no,
            site_id=self.site_id,
            requested_by=self.requested_by,
            status=RequestStatus(self.status),
            notes=self.notes,
            version=self.version,
            created_at=self.created_at,
            submitted_at=self.submitted_at,
            approved_at=self.approved_at,
            approved_by=self.approved_by,
            issued_at=self.issued_at,
            issued_by=self.issued_by,
            received_at=self.received_at,
            received_by=self.received_by,
            closed_at=self.closed_at,
            closed_by=self.closed_by,
            rejected_at=self.rejected_at,
            rejected_by=self.rejected_by,
            rejection_reason=self.rejection_reason,
        )

    def to_view(self) -> RequestView:
        """Header, items and approval trail as one DTO."""
        from requisition_kernel.domain.dtos import RequestView as RequestViewDTO

        return RequestViewDTO(
            request=self.to_dto(),
            items=tuple(item.to_dto() for item in self.items),
            approvals=tuple(a.to_dto() for a in self.approvals),
        )


class RequestItem(TrackedBase):
    """One material line of a request.

    Contract:
        qty_issued and qty_received never decrease.  qty_approved stays
        NULL until a reviewer (or final approval defaulting) sets it.
    """

    __tablename__ = "request_items"

    __table_args__ = (
        UniqueConstraint(
            "request_id", "material_id",
            name="uq_request_items_material",
        ),
        CheckConstraint("qty_requested >= 0", name="ck_request_items_requested_nonneg"),
        CheckConstraint(
            "qty_approved IS NULL OR qty_approved >= 0",
            name="ck_request_items_approved_nonneg",
        ),
        CheckConstraint("qty_issued >= 0", name="ck_request_items_issued_nonneg"),
        CheckConstraint("qty_received >= 0", name="ck_request_items_received_nonneg"),
        CheckConstraint(
            "qty_received <= qty_issued",
            name="ck_request_items_received_le_issued",
        ),
        Index("ix_request_items_request_id", "request_id"),
    )

    request_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("requests.id"),
        nullable=False,
    )
    line_no: Mapped[int] = mapped_column(Integer, nullable=False)
    material_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    unit_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    qty_requested: Mapped[Decimal] = mapped_column(QuantityType, nullable=False)
    qty_approved: Mapped[Decimal | None] = mapped_column(QuantityType, nullable=True)
    qty_issued: Mapped[Decimal] = mapped_column(
        QuantityType, nullable=False, default=Decimal("0"),
    )
    qty_received: Mapped[Decimal] = mapped_column(
        QuantityType, nullable=False, default=Decimal("0"),
    )

    issued_at: Mapped[datetime | None] = mapped_column(nullable=True)
    issued_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    received_at: Mapped[datetime | None] = mapped_column(nullable=True)
    received_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    request: Mapped["Request"] = relationship("Request", back_populates="items")

    def __repr__(self) -> str:
        return (
            f"<RequestItem {self.id} material={self.material_id} "
            f"req={self.qty_requested} appr={self.qty_approved} "
            f"iss={self.qty_issued} rcv={self.qty_received}>"
        )

    def to_dto(self) -> RequestItemRecord:
        """Convert ORM model to frozen domain DTO."""
        from requisition_kernel.domain.dtos import RequestItemRecord as ItemDTO

        return ItemDTO(
            id=self.id,
            request_id=self.request_id,
            material_id=self.material_id,
            unit_id=self.unit_id,
            qty_requested=self.qty_requested,
            qty_approved=self.qty_approved,
            qty_issued=self.qty_issued,
            qty_received=self.qty_received,
            issued_at=self.issued_at,
            issued_by=self.issued_by,
            received_at=self.received_at,
            received_by=self.received_by,
        )
