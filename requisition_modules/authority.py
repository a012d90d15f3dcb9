"""
Role authority checks for the module services.

The kernel never looks at roles.  Every module command calls
``check_permission`` with the configured policy before touching the
database, and maps the actor's role to a review level and routing
decision here.
"""

from __future__ import annotations

from requisition_config.schema import RequisitionPolicy
from requisition_kernel.domain.approval import ReviewLevel, route_to_final_review
from requisition_kernel.domain.dtos import Actor
from requisition_kernel.exceptions import PermissionDeniedError
from requisition_kernel.logging_config import get_logger

logger = get_logger("modules.authority")


def check_permission(config: RequisitionPolicy, actor: Actor, action: str) -> None:
    """
    Raise unless the actor's role grants ``action``.

    Raises:
        PermissionDeniedError: role unknown or action not granted.
    """
    if action in config.permissions_for(actor.role):
        return
    _deny(config, actor, action)


def check_any_permission(config: RequisitionPolicy, actor: Actor, command: str, actions: frozenset[str]) -> None:
    """
    Raise unless the role grants at least one of ``actions``.

    For commands such as ``approve`` that dispatch to one of several
    actions only after reading the request.
    """
    if actions & config.permissions_for(actor.role):
        return
    _deny(config, actor, command)


def _deny(config: RequisitionPolicy, actor: Actor, action: str) -> None:
    reason = "" if config.role(actor.role) is not None else "unknown role"
    logger.warning(
        "permission_denied",
        extra={"actor_id": str(actor.actor_id), "role": actor.role, "action": action},
    )
    raise PermissionDeniedError(str(actor.actor_id), actor.role, action, reason=reason)


def review_level_for(config: RequisitionPolicy, actor: Actor, action: str) -> ReviewLevel:
    """
    The Approval level recorded for a reviewer's reject or modify.

    Raises:
        PermissionDeniedError: the role has no review level.
    """
    level = config.review_level_for(actor.role)
    if level is None:
        raise PermissionDeniedError(
            str(actor.actor_id), actor.role, action, reason="role has no review level",
        )
    return ReviewLevel(level)


def routes_to_final_review(config: RequisitionPolicy, actor: Actor) -> bool:
    """True when a submission by ``actor`` skips first-level review."""
    return route_to_final_review(config.rank_of(actor.role), config.first_level_rank)
