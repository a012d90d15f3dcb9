"""
Requisition Module Service (``requisition_modules.requisitions.service``).

Responsibility
--------------
Public command surface for site material requisitions.  Checks the
actor's permission against the active ``RequisitionPolicy``, maps the
role to a review level and routing decision, then delegates to the
kernel's ``RequestLifecycleService``.  Thin glue: no business rules of
its own.

Architecture
------------
Layer: **Modules** -- stateful orchestration wrapper.

Invariants
----------
- Each public command owns its transaction boundary: ``commit`` on
  success, ``rollback`` on any exception (logged as
  ``transaction_rolled_back``) before re-raise.
- No command touches the database before its permission check passed.
- ORM immutability listeners are registered before the first command.

Failure Modes
-------------
- ``PermissionDeniedError`` before any write.
- Anything the kernel raises, after rollback.

Usage::

    service = RequisitionService(session, get_active_config(), clock)
    view = service.create_request(engineer, site_id, [NewLine(...)])
    service.submit(engineer, view.id)
"""

from __future__ import annotations

from typing import Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from requisition_config.schema import RequisitionPolicy
from requisition_kernel.db.immutability import register_immutability_listeners
from requisition_kernel.domain.approval import ApprovalOverride
from requisition_kernel.domain.catalog import MaterialCatalog
from requisition_kernel.domain.clock import Clock, SystemClock
from requisition_kernel.domain.dtos import (
    Actor,
    IssueResult,
    ReceiptResult,
    RequestRecord,
    RequestView,
)
from requisition_kernel.domain.fulfilment import IssueLine, ReceiveLine
from requisition_kernel.domain.lifecycle import RequestStatus
from requisition_kernel.domain.modification import ModificationCommand, NewLine
from requisition_kernel.logging_config import get_logger
from requisition_kernel.selectors.request_selector import RequestSelector
from requisition_kernel.services.request_lifecycle import RequestLifecycleService
from requisition_modules._transaction import command_scope
from requisition_modules.authority import (
    check_any_permission,
    check_permission,
    review_level_for,
    routes_to_final_review,
)

logger = get_logger("modules.requisitions.service")

APPROVAL_ACTIONS = frozenset({"first_level_approve", "final_approve"})


class RequisitionService:
    """
    Orchestrates requisition commands through the kernel lifecycle.

    Contract
    --------
    Every command takes the acting ``Actor`` first, returns a DTO, and
    leaves the session committed (success) or rolled back (failure).
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
        self._lifecycle = RequestLifecycleService(session, self._clock, catalog)
        self._requests = RequestSelector(session)

    # =========================================================================
    # Drafting
    # =========================================================================

    def create_request(
        self,
        actor: Actor,
        site_id: UUID,
        lines: Sequence[NewLine],
        notes: str | None = None,
    ) -> RequestView:
        check_permission(self._config, actor, "create_request")
        with command_scope(self._session, "create_request", actor):
            view = self._lifecycle.create_request(site_id, actor.actor_id, lines, notes)
        return view

    def update_draft(
        self,
        actor: Actor,
        request_id: UUID,
        *,
        notes: str | None = None,
        lines: Sequence[NewLine] | None = None,
        expected_version: int | None = None,
    ) -> RequestView:
        check_permission(self._config, actor, "update_draft")
        with command_scope(self._session, "update_draft", actor, request_id=request_id):
            view = self._lifecycle.update_draft(
                request_id, actor.actor_id,
                notes=notes, lines=lines, expected_version=expected_version,
            )
        return view

    def submit(
        self,
        actor: Actor,
        request_id: UUID,
        *,
        expected_version: int | None = None,
    ) -> RequestView:
        """Submit and route: senior submitters go straight to final review."""
        check_permission(self._config, actor, "submit")
        route_to_final = routes_to_final_review(self._config, actor)
        with command_scope(self._session, "submit", actor, request_id=request_id):
            view = self._lifecycle.submit(
                request_id, actor.actor_id,
                route_to_final=route_to_final, expected_version=expected_version,
            )
        return view

    # =========================================================================
    # Review
    # =========================================================================

    def approve(
        self,
        actor: Actor,
        request_id: UUID,
        *,
        overrides: Sequence[ApprovalOverride] = (),
        comment: str | None = None,
        expected_version: int | None = None,
    ) -> RequestView:
        """
        Approve at the level the request is waiting for.

        DSE_REVIEW is a first-level approval unless the actor may only
        give final approval and the policy allows skipping the first
        level.  PADIRI_REVIEW is always a final approval.
        """
        check_any_permission(self._config, actor, "approve", APPROVAL_ACTIONS)
        status = self._requests.get(request_id).status
        if status is RequestStatus.DSE_REVIEW and not self._final_skips_first_level(actor):
            return self.first_level_approve(
                actor, request_id,
                overrides=overrides, comment=comment, expected_version=expected_version,
            )
        return self.final_approve(
            actor, request_id,
            overrides=overrides, comment=comment, expected_version=expected_version,
        )

    def _final_skips_first_level(self, actor: Actor) -> bool:
        permissions = self._config.permissions_for(actor.role)
        return (
            self._config.approvals.final_approver_may_skip_first_level
            and "final_approve" in permissions
            and "first_level_approve" not in permissions
        )

    def first_level_approve(
        self,
        actor: Actor,
        request_id: UUID,
        *,
        overrides: Sequence[ApprovalOverride] = (),
        comment: str | None = None,
        expected_version: int | None = None,
    ) -> RequestView:
        check_permission(self._config, actor, "first_level_approve")
        with command_scope(self._session, "first_level_approve", actor, request_id=request_id):
            view = self._lifecycle.first_level_approve(
                request_id, actor.actor_id,
                overrides=overrides, comment=comment, expected_version=expected_version,
            )
        return view

    def final_approve(
        self,
        actor: Actor,
        request_id: UUID,
        *,
        overrides: Sequence[ApprovalOverride] = (),
        comment: str | None = None,
        expected_version: int | None = None,
    ) -> RequestView:
        check_permission(self._config, actor, "final_approve")
        with command_scope(self._session, "final_approve", actor, request_id=request_id):
            view = self._lifecycle.final_approve(
                request_id, actor.actor_id,
                overrides=overrides,
                comment=comment,
                allow_skip_first_level=self._config.approvals.final_approver_may_skip_first_level,
                expected_version=expected_version,
            )
        return view

    def reject(
        self,
        actor: Actor,
        request_id: UUID,
        reason: str,
        *,
        expected_version: int | None = None,
    ) -> RequestView:
        check_permission(self._config, actor, "reject")
        level = review_level_for(self._config, actor, "reject")
        with command_scope(self._session, "reject", actor, request_id=request_id):
            view = self._lifecycle.reject(
                request_id, actor.actor_id, level, reason,
                expected_version=expected_version,
            )
        return view

    def modify(
        self,
        actor: Actor,
        request_id: UUID,
        command: ModificationCommand,
        *,
        expected_version: int | None = None,
    ) -> RequestView:
        check_permission(self._config, actor, "modify")
        level = review_level_for(self._config, actor, "modify")
        with command_scope(self._session, "modify", actor, request_id=request_id):
            view = self._lifecycle.modify(
                request_id, actor.actor_id, level, command,
                expected_version=expected_version,
            )
        return view

    # =========================================================================
    # Fulfilment
    # =========================================================================

    def issue(
        self,
        actor: Actor,
        request_id: UUID,
        lines: Sequence[IssueLine],
        *,
        notes: str | None = None,
        expected_version: int | None = None,
    ) -> IssueResult:
        check_permission(self._config, actor, "issue")
        with command_scope(self._session, "issue", actor, request_id=request_id):
            result = self._lifecycle.issue(
                request_id, lines, actor.actor_id,
                notes=notes, expected_version=expected_version,
            )
        return result

    def receive(
        self,
        actor: Actor,
        request_id: UUID,
        lines: Sequence[ReceiveLine],
        *,
        expected_version: int | None = None,
    ) -> ReceiptResult:
        check_permission(self._config, actor, "receive")
        with command_scope(self._session, "receive", actor, request_id=request_id):
            result = self._lifecycle.receive(
                request_id, lines, actor.actor_id, expected_version=expected_version,
            )
        return result

    # =========================================================================
    # Reads
    # =========================================================================

    def get_request(self, actor: Actor, request_id: UUID) -> RequestView:
        check_permission(self._config, actor, "view_reports")
        return self._requests.get(request_id)

    def list_requests(
        self,
        actor: Actor,
        *,
        status: RequestStatus | None = None,
        site_id: UUID | None = None,
    ) -> list[RequestRecord]:
        check_permission(self._config, actor, "view_reports")
        return self._requests.list_requests(status=status, site_id=site_id)

    def issuable_requests(self, actor: Actor, site_id: UUID | None = None) -> list[RequestView]:
        check_permission(self._config, actor, "issue")
        return self._requests.issuable_requests(site_id)
