"""
SequenceService -- gap-safe counters for reference numbers and ledger order.

Two kinds of number come from here:

* ``REQ-{year}-{seq:04d}`` request references, one counter per year, so
  numbering restarts each January.
* The ``stock_movement`` counter that orders every ledger row globally.

Each counter is a row in ``sequence_counters`` read with
``SELECT ... FOR UPDATE``.  Two sessions asking for the same counter
queue on that row, so numbers never repeat; a rolled-back transaction
gives its number back.  Counting existing rows (``MAX(seq) + 1``) is
never used because two transactions would read the same maximum.

Architecture position:
    Kernel > Services.  Flushes only; the caller commits.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from requisition_kernel.logging_config import get_logger
from requisition_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """Allocates the next value of a named counter inside the caller's transaction."""

    STOCK_MOVEMENT = "stock_movement"
    REQUEST_REF_PREFIX = "request_ref"

    def __init__(self, session: Session):
        self._session = session

    def _locked(self, name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _first_use(self, name: str) -> SequenceCounter | None:
        """
        Insert the counter at 1 inside a savepoint.

        Returns None when the insert won; otherwise another transaction
        created the row first and the now-locked row is returned for a
        normal increment.
        """
        savepoint = self._session.begin_nested()
        try:
            self._session.add(SequenceCounter(name=name, current_value=1))
            self._session.flush()
        except IntegrityError:
            savepoint.rollback()
            logger.debug("sequence_first_use_lost_race", extra={"sequence_name": name})
            counter = self._locked(name)
            if counter is None:
                raise
            return counter
        savepoint.commit()
        return None

    def next_value(self, sequence_name: str) -> int:
        """
        Return the counter's next value (1 on first use).

        The row stays locked until the caller's transaction ends, so a
        concurrent caller gets a strictly larger value or, after a
        rollback here, the same one.
        """
        counter = self._locked(sequence_name)
        if counter is None:
            counter = self._first_use(sequence_name)
            if counter is None:
                value = 1
                logger.debug("sequence_allocated", extra={"sequence_name": sequence_name, "value": value})
                return value

        counter.current_value += 1
        self._session.flush()
        value = counter.current_value
        logger.debug("sequence_allocated", extra={"sequence_name": sequence_name, "value": value})
        return value

    def current_value(self, sequence_name: str) -> int | None:
        """Last value handed out, or None for a counter never used."""
        return self._session.scalar(
            select(SequenceCounter.current_value).where(SequenceCounter.name == sequence_name)
        )

    def next_request_ref(self, year: int) -> str:
        seq = self.next_value(f"{self.REQUEST_REF_PREFIX}:{year}")
        return f"REQ-{year}-{seq:04d}"
