"""
Common constructor for the kernel's write services.

A kernel service gets the caller's session and a clock.  It locks,
writes and flushes; it never commits or rolls back.  The module layer
(``requisition_modules``) or a test owns the transaction, which is what
makes an issuance across several stock rows all-or-nothing.

Reads live in ``requisition_kernel/selectors/``, not here.
"""

from abc import ABC

from sqlalchemy.orm import Session

from requisition_kernel.domain.clock import Clock, SystemClock


class BaseService(ABC):
    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        # Every stamp a service writes comes from here
        self._clock = clock or SystemClock()
