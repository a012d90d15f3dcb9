"""
Canonical workflow types (``requisition_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects describing a document state machine: which action
moves a document from one state to another and under which guard.  The
requisition lifecycle is declared with these types in
``domain/lifecycle.py``.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Guard:
    """A condition that must hold before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- the lifecycle does.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    ``system_assigned`` marks edges the caller never selects directly
    (routing into a review queue, closing on full receipt).
    """
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    system_assigned: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle."""
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial state {self.initial_state} "
                "is not a declared state"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.action} "
                    f"{t.from_state}->{t.to_state} references an undeclared state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"Workflow {self.name}: terminal state {t.from_state} "
                    "has an outgoing transition"
                )

    def actions_from(self, state: str) -> frozenset[str]:
        """Actions that have at least one edge leaving ``state``."""
        return frozenset(t.action for t in self.transitions if t.from_state == state)

    def targets(self, state: str, action: str) -> frozenset[str]:
        """States reachable from ``state`` via ``action``."""
        return frozenset(
            t.to_state
            for t in self.transitions
            if t.from_state == state and t.action == action
        )
