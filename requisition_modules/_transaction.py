"""
Shared transaction boundary for module services.

Used by requisition_modules/*/service.py so every public command commits
on success and rolls back (with a log line) on any exception.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator
from uuid import UUID

from sqlalchemy.orm import Session

from requisition_kernel.domain.dtos import Actor
from requisition_kernel.logging_config import LogContext, get_logger

logger = get_logger("modules.transaction")


@contextmanager
def command_scope(
    session: Session,
    command: str,
    actor: Actor,
    *,
    request_id: UUID | None = None,
    store_id: UUID | None = None,
) -> Iterator[None]:
    """
    Bind log context and own the transaction for one command.

    Commits when the block completes; rolls back and re-raises otherwise.
    """
    with LogContext.bind(
        command=command,
        actor_id=actor.actor_id,
        request_id=request_id,
        store_id=store_id,
    ):
        try:
            yield
            session.commit()
        except Exception as exc:
            session.rollback()
            logger.warning(
                "transaction_rolled_back",
                extra={
                    "error_type": type(exc).__name__,
                    "error_code": getattr(exc, "code", None),
                    "error": str(exc),
                },
            )
            raise
