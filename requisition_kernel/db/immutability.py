"""
ORM-Level Immutability Enforcement (Layer 1 of 2).

===============================================================================
WHY THIS EXISTS
===============================================================================

The stock aggregate is only trustworthy if the movement history behind it
cannot be rewritten, and the approval trail is only an audit trail if no
one can edit it after the fact.

  Layer 1: THIS FILE (ORM event listeners)
    - Catches modifications through Python/SQLAlchemy code
    - Fires BEFORE the SQL is sent to the database

  Layer 2: db/sql/*.sql (PostgreSQL triggers)
    - Catches raw SQL, bulk UPDATE statements, direct psql access

Both layers enforce the SAME rules.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity          | Rule
----------------|-----------------------------------------------
StockMovement   | ALWAYS immutable: no UPDATE, no DELETE
Approval        | ALWAYS immutable: no UPDATE, no DELETE
Stock           | Never deleted; "delete" is a zero-out ADJUSTMENT

===============================================================================
USAGE
===============================================================================

    from requisition_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # idempotent

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event

from requisition_kernel.exceptions import ImmutabilityViolationError
from requisition_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _block(entity_type: str, target, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


# =============================================================================
# StockMovement (append-only)
# =============================================================================


def _check_stock_movement_update(mapper, connection, target):
    _block("StockMovement", target, "UPDATE", "Stock movements are append-only")


def _check_stock_movement_delete(mapper, connection, target):
    _block("StockMovement", target, "DELETE", "Stock movements cannot be deleted")


# =============================================================================
# Approval (append-only)
# =============================================================================


def _check_approval_update(mapper, connection, target):
    _block("Approval", target, "UPDATE", "Approval records are append-only")


def _check_approval_delete(mapper, connection, target):
    _block("Approval", target, "DELETE", "Approval records cannot be deleted")


# =============================================================================
# Stock (never deleted)
# =============================================================================


def _check_stock_delete(mapper, connection, target):
    _block(
        "Stock", target, "DELETE",
        "Stock rows are never deleted; zero the quantity with an adjustment",
    )


def _listeners():
    from requisition_kernel.models.approval import Approval
    from requisition_kernel.models.stock import Stock, StockMovement

    return (
        (StockMovement, "before_update", _check_stock_movement_update),
        (StockMovement, "before_delete", _check_stock_movement_delete),
        (Approval, "before_update", _check_approval_update),
        (Approval, "before_delete", _check_approval_delete),
        (Stock, "before_delete", _check_stock_delete),
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Safe to call more than once; a listener already present is skipped.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that must simulate tampering.
    """
    for target, event_name, listener_fn in _listeners():
        _safe_remove_listener(target, event_name, listener_fn)


def immutability_listeners_registered() -> bool:
    return all(
        event.contains(target, event_name, listener_fn)
        for target, event_name, listener_fn in _listeners()
    )
