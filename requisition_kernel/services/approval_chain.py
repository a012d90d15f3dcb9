"""
ApprovalChainService -- item mutations made by reviewers.

Responsibility:
    Applies reviewer quantity overrides, fills unset approvals at final
    approval, records the append-only Approval trail, and writes a
    validated modification plan onto the request's items.

Architecture position:
    Kernel > Services.  Called only by RequestLifecycleService, which
    holds the request row lock and derives the status afterwards.  This
    service never touches ``Request.status``.

Invariants enforced:
    - ``qty_approved`` is never set below ``qty_issued``.
    - A modification is written only after ``plan_modification`` accepted
      the whole post-state.
    - Every decision and modification leaves exactly one Approval row.
"""

from __future__ import annotations

from typing import Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from requisition_kernel.db.types import ZERO
from requisition_kernel.domain.approval import (
    ApprovalAction,
    ApprovalOverride,
    ReviewLevel,
    resolve_overrides,
)
from requisition_kernel.domain.catalog import MaterialCatalog
from requisition_kernel.domain.clock import Clock
from requisition_kernel.domain.modification import ModificationPlan
from requisition_kernel.logging_config import get_logger
from requisition_kernel.models.approval import Approval
from requisition_kernel.models.request import Request, RequestItem
from requisition_kernel.services.base import BaseService

logger = get_logger("services.approval_chain")


class ApprovalChainService(BaseService):
    """Reviewer-side item mutation.  Flushes only."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        catalog: MaterialCatalog | None = None,
    ):
        super().__init__(session, clock)
        self._catalog = catalog

    def apply_overrides(
        self,
        request: Request,
        overrides: Sequence[ApprovalOverride],
        actor_id: UUID,
    ) -> int:
        """
        Set ``qty_approved`` on the named items.

        Raises:
            RequestItemNotFoundError, DuplicateLineError,
            InvalidQuantityError, ApprovedBelowIssuedError.

        Returns:
            Number of items changed.
        """
        by_id = {item.id: item for item in request.items}
        resolved = resolve_overrides(request.id, by_id, overrides)
        for item_id, qty in resolved.items():
            item = by_id[item_id]
            item.qty_approved = qty
            item.updated_by_id = actor_id
        if resolved:
            self.session.flush()
        return len(resolved)

    def default_unset_approvals(self, request: Request, actor_id: UUID) -> int:
        """Final approval: items still unset are approved as requested."""
        changed = 0
        for item in request.items:
            if item.qty_approved is None:
                item.qty_approved = item.qty_requested
                item.updated_by_id = actor_id
                changed += 1
        if changed:
            self.session.flush()
        return changed

    def record(
        self,
        request: Request,
        level: ReviewLevel,
        action: ApprovalAction,
        reviewer_id: UUID,
        comment: str | None = None,
    ) -> Approval:
        """Append one Approval row to the request's trail."""
        approval = Approval(
            level=level.value,
            action=action.value,
            reviewer_id=reviewer_id,
            comment=comment,
            created_at=self._clock.now(),
        )
        request.approvals.append(approval)
        self.session.flush()
        logger.info(
            "approval_recorded",
            extra={
                "request_id": str(request.id),
                "level": level.value,
                "action": action.value,
                "reviewer_id": str(reviewer_id),
            },
        )
        return approval

    def apply_modification(
        self,
        request: Request,
        plan: ModificationPlan,
        actor_id: UUID,
    ) -> None:
        """
        Write an accepted plan onto the request's items.

        Removals are flushed before anything else so that a removed
        material can be re-added in the same modification without
        tripping the (request_id, material_id) unique constraint.  Kept
        items that change material are written in two flushes for the
        same reason: two lines may trade materials, or an added line may
        take a material another line gives up.
        """
        by_id = {item.id: item for item in request.items}

        if plan.removed_ids:
            for item_id in plan.removed_ids:
                request.items.remove(by_id[item_id])
            self.session.flush()

        moving = [p for p in plan.kept if by_id[p.item_id].material_id != p.material_id]
        if moving:
            for proposed in moving:
                # Park on the row's own id, which no other line can hold
                by_id[proposed.item_id].material_id = proposed.item_id
            self.session.flush()

        for proposed in plan.kept:
            item = by_id[proposed.item_id]
            if (
                item.material_id != proposed.material_id
                or item.unit_id != proposed.unit_id
                or item.qty_requested != proposed.qty_requested
                or item.qty_approved != proposed.qty_approved
            ):
                item.material_id = proposed.material_id
                item.unit_id = proposed.unit_id
                item.qty_requested = proposed.qty_requested
                item.qty_approved = proposed.qty_approved
                item.updated_by_id = actor_id

        next_line = max((item.line_no for item in request.items), default=0) + 1
        for offset, proposed in enumerate(plan.added):
            request.items.append(
                RequestItem(
                    line_no=next_line + offset,
                    material_id=proposed.material_id,
                    unit_id=proposed.unit_id,
                    qty_requested=proposed.qty_requested,
                    qty_approved=proposed.qty_approved,
                    qty_issued=ZERO,
                    qty_received=ZERO,
                    created_by_id=actor_id,
                )
            )
        self.session.flush()

        logger.info(
            "request_modified",
            extra={
                "request_id": str(request.id),
                "removed": len(plan.removed_ids),
                "edited": len(plan.edited_ids),
                "added": plan.added_count,
            },
        )
