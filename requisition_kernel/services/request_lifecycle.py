"""
RequestLifecycleService -- the owner of ``Request.status``.

Responsibility:
    Executes every requisition command against a locked request: create,
    edit draft, submit, first-level and final approval, rejection,
    modification, issuance and receipt.  Item mutation is delegated to
    ApprovalChainService, IssuanceEngine and ReceiptReconciler; the status
    is then taken from ``domain.lifecycle.derive_status`` and written here,
    together with the stamp columns and the version bump.

Architecture position:
    Kernel > Services -- imperative shell around the pure lifecycle.
    Called by ``requisition_modules.requisitions.service``, which owns the
    transaction and the permission checks.

Invariants enforced:
    - Status is never assigned except from ``derive_status``.
    - Every state-changing command loads the request and its items
      ``FOR UPDATE`` and revalidates against the persisted quantities.
    - ``expected_version`` (when given) must equal the locked row's
      version; every successful command increments the version by one.
    - Item quantity invariants hold after every command; a violation is
      a bug and raises AssertionError before the flush.

Failure modes:
    - RequestNotFoundError, StaleRequestError.
    - InvalidTransitionError for actions not allowed from the status.
    - Everything raised by the delegated services and domain validators.

Audit relevance:
    Every transition is logged as ``request_status_changed`` with the
    prior and new status; reviewer actions also append an Approval row.
"""

from __future__ import annotations

from datetime import datetime
from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from requisition_kernel.db.types import ZERO, to_quantity
from requisition_kernel.domain.approval import (
    ApprovalAction,
    ApprovalOverride,
    ReviewLevel,
)
from requisition_kernel.domain.catalog import MaterialCatalog
from requisition_kernel.domain.clock import Clock
from requisition_kernel.domain.dtos import IssueResult, ReceiptResult, RequestView
from requisition_kernel.domain.fulfilment import IssueLine, ReceiveLine
from requisition_kernel.domain.lifecycle import (
    FULFILMENT_STATUSES,
    RequestStatus,
    RequisitionAction,
    derive_status,
    ensure_action_allowed,
)
from requisition_kernel.domain.modification import (
    ModificationCommand,
    NewLine,
    plan_modification,
    validate_new_lines,
)
from requisition_kernel.domain.quantities import item_invariant_violations
from requisition_kernel.exceptions import (
    InvalidTransitionError,
    MissingReasonError,
    PermissionDeniedError,
    RequestNotFoundError,
    StaleRequestError,
)
from requisition_kernel.logging_config import get_logger
from requisition_kernel.models.request import Request, RequestItem
from requisition_kernel.services.approval_chain import ApprovalChainService
from requisition_kernel.services.base import BaseService
from requisition_kernel.services.issuance_engine import IssuanceEngine
from requisition_kernel.services.receipt_reconciler import ReceiptReconciler
from requisition_kernel.services.sequence_service import SequenceService
from requisition_kernel.services.stock_ledger import StockLedgerService

logger = get_logger("services.request_lifecycle")


class RequestLifecycleService(BaseService):
    """
    Requisition command executor.

    Contract:
        Each public method performs one command within the caller's
        transaction, flushes, and returns a DTO.  On any exception the
        caller must roll back; partial writes may have been flushed.

    Non-goals:
        - Does NOT check roles.  Permission checks live in the module
          service, which also maps roles to review levels and routing.
        - Does NOT commit.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        catalog: MaterialCatalog | None = None,
    ):
        super().__init__(session, clock)
        self._catalog = catalog
        self._sequences = SequenceService(session)
        self._ledger = StockLedgerService(
            session, self._clock, catalog, sequence_service=self._sequences,
        )
        self._approvals = ApprovalChainService(session, self._clock, catalog)
        self._issuance = IssuanceEngine(session, self._clock, catalog, ledger=self._ledger)
        self._receipts = ReceiptReconciler(session, self._clock)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _material_name(self, material_id: UUID) -> str | None:
        if self._catalog is None:
            return None
        return self._catalog.material_name(material_id)

    def _lock_request(self, request_id: UUID, expected_version: int | None) -> Request:
        """
        Load the request and its items ``FOR UPDATE`` with fresh values.

        Raises:
            RequestNotFoundError: no such request.
            StaleRequestError: expected_version given and different.
        """
        request = self.session.execute(
            select(Request)
            .where(Request.id == request_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if request is None:
            raise RequestNotFoundError(str(request_id))

        # Lock and refresh the items too; the collection is rebuilt from them
        self.session.execute(
            select(RequestItem)
            .where(RequestItem.request_id == request_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars().all()
        self.session.expire(request, ["items"])

        if expected_version is not None and request.version != expected_version:
            logger.warning(
                "stale_request_rejected",
                extra={
                    "request_id": str(request_id),
                    "expected_version": expected_version,
                    "actual_version": request.version,
                },
            )
            raise StaleRequestError(str(request_id), expected_version, request.version)
        return request

    def _check_items(self, request: Request) -> None:
        for item in request.items:
            problems = item_invariant_violations(item)
            assert not problems, f"item {item.id} breaks invariants: {problems}"

    def _apply_status(
        self,
        request: Request,
        action: RequisitionAction,
        actor_id: UUID,
        *,
        route_to_final: bool = False,
    ) -> RequestStatus:
        """Derive, stamp, bump the version and log one transition."""
        prior = RequestStatus(request.status)
        new_status = derive_status(
            request.items, prior, action,
            route_to_final=route_to_final, request_id=str(request.id),
        )
        self._check_items(request)
        now = self._clock.now()
        self._stamp(request, new_status, action, actor_id, now)
        request.status = new_status.value
        request.version = request.version + 1
        request.updated_by_id = actor_id
        self.session.flush()

        extra = {
            "request_id": str(request.id),
            "action": action.value,
            "from_status": prior.value,
            "to_status": new_status.value,
            "version": request.version,
        }
        if new_status is prior:
            logger.debug("request_status_unchanged", extra=extra)
        else:
            logger.info("request_status_changed", extra=extra)
        return new_status

    @staticmethod
    def _stamp(
        request: Request,
        new_status: RequestStatus,
        action: RequisitionAction,
        actor_id: UUID,
        now: datetime,
    ) -> None:
        if action is RequisitionAction.SUBMIT:
            request.submitted_at = now
        elif action is RequisitionAction.FINAL_APPROVE:
            request.approved_at = now
            request.approved_by = actor_id
        elif action is RequisitionAction.REJECT:
            request.rejected_at = now
            request.rejected_by = actor_id
        elif action is RequisitionAction.ISSUE:
            request.issued_at = now
            request.issued_by = actor_id

        if new_status is RequestStatus.CLOSED and request.closed_at is None:
            request.received_at = now
            request.received_by = actor_id
            request.closed_at = now
            request.closed_by = actor_id

    # ------------------------------------------------------------------
    # Creation and drafting
    # ------------------------------------------------------------------

    def create_request(
        self,
        site_id: UUID,
        requester_id: UUID,
        lines: Sequence[NewLine],
        notes: str | None = None,
    ) -> RequestView:
        """
        Create a DRAFT request with a fresh reference number.

        Raises:
            EmptyRequestError, InvalidQuantityError, DuplicateMaterialError.
        """
        validate_new_lines(lines, self._material_name)
        now = self._clock.now()
        request = Request(
            ref_no=self._sequences.next_request_ref(now.year),
            site_id=site_id,
            requested_by=requester_id,
            status=RequestStatus.DRAFT.value,
            notes=notes,
            version=1,
            created_by_id=requester_id,
        )
        request.items = self._build_items(lines, requester_id)
        self.session.add(request)
        self.session.flush()

        logger.info(
            "request_created",
            extra={
                "request_id": str(request.id),
                "ref_no": request.ref_no,
                "site_id": str(site_id),
                "items": len(lines),
            },
        )
        return request.to_view()

    @staticmethod
    def _build_items(lines: Sequence[NewLine], actor_id: UUID) -> list[RequestItem]:
        return [
            RequestItem(
                line_no=index,
                material_id=line.material_id,
                unit_id=line.unit_id,
                qty_requested=to_quantity(line.qty_requested, "qty_requested"),
                qty_approved=None,
                qty_issued=ZERO,
                qty_received=ZERO,
                created_by_id=actor_id,
            )
            for index, line in enumerate(lines, start=1)
        ]

    def update_draft(
        self,
        request_id: UUID,
        actor_id: UUID,
        *,
        notes: str | None = None,
        lines: Sequence[NewLine] | None = None,
        expected_version: int | None = None,
    ) -> RequestView:
        """
        Edit a DRAFT.  ``lines`` (when given) replaces the whole item list.

        Raises:
            InvalidTransitionError: not a DRAFT.
            PermissionDeniedError: actor is not the requester.
        """
        request = self._lock_request(request_id, expected_version)
        ensure_action_allowed(RequestStatus(request.status), RequisitionAction.EDIT, str(request_id))
        if request.requested_by != actor_id:
            raise PermissionDeniedError(
                str(actor_id), "", RequisitionAction.EDIT.value,
                reason="only the requester may edit a draft",
            )

        if lines is not None:
            validate_new_lines(lines, self._material_name)
            request.items.clear()
            self.session.flush()
            request.items.extend(self._build_items(lines, actor_id))
        if notes is not None:
            request.notes = notes

        self._apply_status(request, RequisitionAction.EDIT, actor_id)
        return request.to_view()

    def submit(
        self,
        request_id: UUID,
        actor_id: UUID,
        *,
        route_to_final: bool = False,
        expected_version: int | None = None,
    ) -> RequestView:
        """
        DRAFT -> SUBMITTED, then immediately routed to a review state.

        Args:
            route_to_final: True when the submitter ranks at or above the
                first-level reviewer (decided by the module service).
        """
        request = self._lock_request(request_id, expected_version)
        if request.requested_by != actor_id:
            raise PermissionDeniedError(
                str(actor_id), "", RequisitionAction.SUBMIT.value,
                reason="only the requester may submit",
            )
        self._apply_status(request, RequisitionAction.SUBMIT, actor_id)
        self._apply_status(
            request, RequisitionAction.ROUTE, actor_id, route_to_final=route_to_final,
        )
        return request.to_view()

    # ------------------------------------------------------------------
    # Review
    # ------------------------------------------------------------------

    def first_level_approve(
        self,
        request_id: UUID,
        reviewer_id: UUID,
        *,
        overrides: Sequence[ApprovalOverride] = (),
        comment: str | None = None,
        expected_version: int | None = None,
    ) -> RequestView:
        """DSE_REVIEW -> PADIRI_REVIEW, optionally adjusting approved quantities."""
        request = self._lock_request(request_id, expected_version)
        ensure_action_allowed(
            RequestStatus(request.status), RequisitionAction.FIRST_LEVEL_APPROVE, str(request_id),
        )
        self._approvals.apply_overrides(request, overrides, reviewer_id)
        self._approvals.record(
            request, ReviewLevel.DSE, ApprovalAction.APPROVED, reviewer_id, comment,
        )
        self._apply_status(request, RequisitionAction.FIRST_LEVEL_APPROVE, reviewer_id)
        return request.to_view()

    def final_approve(
        self,
        request_id: UUID,
        reviewer_id: UUID,
        *,
        overrides: Sequence[ApprovalOverride] = (),
        comment: str | None = None,
        allow_skip_first_level: bool = False,
        expected_version: int | None = None,
    ) -> RequestView:
        """
        PADIRI_REVIEW (or DSE_REVIEW when skipping is allowed) -> APPROVED.

        Unset approvals default to the requested quantity.

        Raises:
            InvalidTransitionError: from DSE_REVIEW without
                ``allow_skip_first_level``, or from any non-review status.
            InvalidQuantityError: nothing approved at all.
        """
        request = self._lock_request(request_id, expected_version)
        status = RequestStatus(request.status)
        if status is RequestStatus.DSE_REVIEW and not allow_skip_first_level:
            raise InvalidTransitionError(
                str(request_id), status.value, RequisitionAction.FINAL_APPROVE.value,
            )
        ensure_action_allowed(status, RequisitionAction.FINAL_APPROVE, str(request_id))

        self._approvals.apply_overrides(request, overrides, reviewer_id)
        self._approvals.default_unset_approvals(request, reviewer_id)
        self._approvals.record(
            request, ReviewLevel.PADIRI, ApprovalAction.APPROVED, reviewer_id, comment,
        )
        self._apply_status(request, RequisitionAction.FINAL_APPROVE, reviewer_id)
        return request.to_view()

    def reject(
        self,
        request_id: UUID,
        reviewer_id: UUID,
        level: ReviewLevel,
        reason: str,
        *,
        expected_version: int | None = None,
    ) -> RequestView:
        """Any review state -> REJECTED (terminal).  Reason mandatory."""
        if not reason or not reason.strip():
            raise MissingReasonError(RequisitionAction.REJECT.value)
        request = self._lock_request(request_id, expected_version)
        ensure_action_allowed(
            RequestStatus(request.status), RequisitionAction.REJECT, str(request_id),
        )
        self._approvals.record(
            request, level, ApprovalAction.REJECTED, reviewer_id, reason.strip(),
        )
        request.rejection_reason = reason.strip()
        self._apply_status(request, RequisitionAction.REJECT, reviewer_id)
        return request.to_view()

    def modify(
        self,
        request_id: UUID,
        actor_id: UUID,
        level: ReviewLevel,
        command: ModificationCommand,
        *,
        expected_version: int | None = None,
    ) -> RequestView:
        """
        Apply a tagged add/edit/remove command as one validated unit.

        The post-state is planned in memory first; nothing is written if
        any part of it is invalid.
        """
        request = self._lock_request(request_id, expected_version)
        status = RequestStatus(request.status)
        ensure_action_allowed(status, RequisitionAction.MODIFY, str(request_id))

        plan = plan_modification(
            request.id,
            request.items,
            command,
            approved_phase=status in FULFILMENT_STATUSES,
            material_name=self._material_name,
        )
        self._approvals.apply_modification(request, plan, actor_id)
        self._approvals.record(
            request, level, ApprovalAction.MODIFIED, actor_id, command.reason.strip(),
        )
        self._apply_status(request, RequisitionAction.MODIFY, actor_id)
        return request.to_view()

    # ------------------------------------------------------------------
    # Fulfilment
    # ------------------------------------------------------------------

    def issue(
        self,
        request_id: UUID,
        lines: Sequence[IssueLine],
        actor_id: UUID,
        *,
        notes: str | None = None,
        expected_version: int | None = None,
    ) -> IssueResult:
        """APPROVED | PARTIALLY_ISSUED -> PARTIALLY_ISSUED | ISSUED."""
        request = self._lock_request(request_id, expected_version)
        ensure_action_allowed(
            RequestStatus(request.status), RequisitionAction.ISSUE, str(request_id),
        )
        outcome = self._issuance.issue(request, lines, actor_id, notes)
        status = self._apply_status(request, RequisitionAction.ISSUE, actor_id)
        return IssueResult(
            request_id=request.id,
            status=status,
            movements=tuple(m.to_dto() for m in outcome.movements),
            alerts_raised=outcome.alerts_raised,
        )

    def receive(
        self,
        request_id: UUID,
        lines: Sequence[ReceiveLine],
        actor_id: UUID,
        *,
        expected_version: int | None = None,
    ) -> ReceiptResult:
        """PARTIALLY_ISSUED | ISSUED -> same, or CLOSED when all is received."""
        request = self._lock_request(request_id, expected_version)
        ensure_action_allowed(
            RequestStatus(request.status), RequisitionAction.RECEIVE, str(request_id),
        )
        received = self._receipts.receive(request, lines, actor_id)
        status = self._apply_status(request, RequisitionAction.RECEIVE, actor_id)
        return ReceiptResult(
            request_id=request.id,
            status=status,
            received_item_ids=received,
        )

    @property
    def ledger(self) -> StockLedgerService:
        return self._ledger
