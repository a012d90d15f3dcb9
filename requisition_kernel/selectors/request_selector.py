"""
Module: requisition_kernel.selectors.request_selector
Responsibility: Read-only queries over requests and their items.
Architecture position: Kernel > Selectors.  May import from models/,
    domain/ DTOs and selectors/base.py.

Invariants enforced:
    - Outstanding quantities come from ``domain.quantities`` only.
    - Results are DTOs; ORM rows never leave this module.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from requisition_kernel.domain.dtos import RequestItemRecord, RequestRecord, RequestView
from requisition_kernel.domain.lifecycle import ISSUABLE_STATUSES, RequestStatus
from requisition_kernel.domain.quantities import ZERO, outstanding_to_issue
from requisition_kernel.exceptions import RequestNotFoundError
from requisition_kernel.models.request import Request, RequestItem
from requisition_kernel.selectors.base import BaseSelector


class RequestSelector(BaseSelector):
    """Requests, items and approval trails."""

    def get(self, request_id: UUID) -> RequestView:
        """
        Raises:
            RequestNotFoundError: no such request.
        """
        request = self.session.get(Request, request_id)
        if request is None:
            raise RequestNotFoundError(str(request_id))
        return request.to_view()

    def find(self, request_id: UUID) -> RequestView | None:
        request = self.session.get(Request, request_id)
        return request.to_view() if request is not None else None

    def get_by_ref(self, ref_no: str) -> RequestView | None:
        request = self.session.execute(
            select(Request).where(Request.ref_no == ref_no)
        ).scalar_one_or_none()
        return request.to_view() if request is not None else None

    def list_requests(
        self,
        *,
        status: RequestStatus | None = None,
        site_id: UUID | None = None,
        requested_by: UUID | None = None,
    ) -> list[RequestRecord]:
        """Request headers, newest reference number first."""
        stmt = select(Request)
        if status is not None:
            stmt = stmt.where(Request.status == status.value)
        if site_id is not None:
            stmt = stmt.where(Request.site_id == site_id)
        if requested_by is not None:
            stmt = stmt.where(Request.requested_by == requested_by)
        stmt = stmt.order_by(Request.ref_no.desc())
        return [r.to_dto() for r in self.session.execute(stmt).scalars()]

    def issuable_requests(self, site_id: UUID | None = None) -> list[RequestView]:
        """APPROVED / PARTIALLY_ISSUED requests with something left to issue."""
        stmt = select(Request).where(
            Request.status.in_([s.value for s in ISSUABLE_STATUSES])
        )
        if site_id is not None:
            stmt = stmt.where(Request.site_id == site_id)
        stmt = stmt.order_by(Request.ref_no)
        views = []
        for request in self.session.execute(stmt).scalars():
            if any(outstanding_to_issue(item) > ZERO for item in request.items):
                views.append(request.to_view())
        return views

    def issued_materials(
        self,
        *,
        request_id: UUID | None = None,
        site_id: UUID | None = None,
    ) -> list[RequestItemRecord]:
        """Items with ``qty_issued > 0``, optionally for one request or site."""
        stmt = (
            select(RequestItem)
            .join(Request, Request.id == RequestItem.request_id)
            .where(RequestItem.qty_issued > ZERO)
        )
        if request_id is not None:
            stmt = stmt.where(RequestItem.request_id == request_id)
        if site_id is not None:
            stmt = stmt.where(Request.site_id == site_id)
        stmt = stmt.order_by(Request.ref_no, RequestItem.line_no)
        return [item.to_dto() for item in self.session.execute(stmt).scalars()]
