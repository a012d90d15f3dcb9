"""
Requisition modification planning (``requisition_kernel.domain.modification``).

Responsibility
--------------
Turns a tagged modification command ``{adds, edits, removals}`` into a
fully validated proposed item list.  The whole post-state is built in
memory and checked as a unit; the service writes it only if this module
returns a plan.

Architecture position
---------------------
**Kernel domain layer** -- pure.  ZERO I/O.  The caller passes the current
items and a material-name resolver for error messages.

Invariants enforced
-------------------
* A non-blank reason is mandatory.
* Items with ``qty_issued > 0`` cannot be removed, and their material,
  unit and ``qty_requested`` cannot change.
* ``qty_approved`` is never set below ``qty_issued``.
* No two items of the post-state share a material.
* The post-state keeps at least one item with ``qty_requested > 0``.
* Once the request is approved, every added line carries a
  ``qty_approved`` (defaulting to its ``qty_requested``).
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Callable, Iterable, Protocol, Sequence
from uuid import UUID

from requisition_kernel.db.types import to_quantity
from requisition_kernel.domain.quantities import ZERO, has_positive_request
from requisition_kernel.exceptions import (
    ApprovedBelowIssuedError,
    DuplicateLineError,
    DuplicateMaterialError,
    EmptyModificationError,
    EmptyRequestError,
    InvalidQuantityError,
    ItemLockedError,
    MissingReasonError,
    RequestItemNotFoundError,
)

MaterialNamer = Callable[[UUID], str | None]


# =========================================================================
# Command
# =========================================================================


@dataclass(frozen=True)
class NewLine:
    """A line to add."""

    material_id: UUID
    unit_id: UUID
    qty_requested: Decimal
    qty_approved: Decimal | None = None


@dataclass(frozen=True)
class LineEdit:
    """Changes to an existing item.  ``None`` means leave unchanged."""

    request_item_id: UUID
    qty_requested: Decimal | None = None
    qty_approved: Decimal | None = None
    material_id: UUID | None = None
    unit_id: UUID | None = None


@dataclass(frozen=True)
class ModificationCommand:
    reason: str
    adds: tuple[NewLine, ...] = ()
    edits: tuple[LineEdit, ...] = ()
    removals: tuple[UUID, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.adds or self.edits or self.removals)


# =========================================================================
# Plan
# =========================================================================


@dataclass(frozen=True)
class ProposedItem:
    """One item of the proposed post-state.  ``item_id`` is None for adds."""

    item_id: UUID | None
    material_id: UUID
    unit_id: UUID
    qty_requested: Decimal
    qty_approved: Decimal | None
    qty_issued: Decimal = ZERO
    qty_received: Decimal = ZERO


@dataclass(frozen=True)
class ModificationPlan:
    items: tuple[ProposedItem, ...]
    removed_ids: tuple[UUID, ...] = ()
    edited_ids: tuple[UUID, ...] = ()
    added_count: int = 0

    @property
    def added(self) -> tuple[ProposedItem, ...]:
        return tuple(i for i in self.items if i.item_id is None)

    @property
    def kept(self) -> tuple[ProposedItem, ...]:
        return tuple(i for i in self.items if i.item_id is not None)


class CurrentItem(Protocol):
    """Structural type for the existing items handed to plan_modification."""

    id: UUID
    material_id: UUID
    unit_id: UUID
    qty_requested: Decimal
    qty_approved: Decimal | None
    qty_issued: Decimal
    qty_received: Decimal


def _name(namer: MaterialNamer | None, material_id: UUID) -> str:
    name = namer(material_id) if namer else None
    return name or str(material_id)


def find_duplicate_material(material_ids: Iterable[UUID]) -> UUID | None:
    """First material id that appears more than once, or None."""
    seen: set[UUID] = set()
    for material_id in material_ids:
        if material_id in seen:
            return material_id
        seen.add(material_id)
    return None


def validate_new_lines(lines: Sequence[NewLine], namer: MaterialNamer | None = None) -> None:
    """
    Validate a fresh item list (request creation / draft edit).

    Raises:
        EmptyRequestError: no lines.
        InvalidQuantityError: a qty_requested <= 0.
        DuplicateMaterialError: two lines share a material.
    """
    if not lines:
        raise EmptyRequestError()
    for line in lines:
        qty = to_quantity(line.qty_requested, "qty_requested")
        if qty <= ZERO:
            raise InvalidQuantityError("qty_requested", qty, "must be positive")
    dup = find_duplicate_material(line.material_id for line in lines)
    if dup is not None:
        raise DuplicateMaterialError(str(dup), _name(namer, dup))


def _positive(value: Decimal, field_name: str) -> Decimal:
    qty = to_quantity(value, field_name)
    if qty <= ZERO:
        raise InvalidQuantityError(field_name, qty, "must be positive")
    return qty


def _non_negative(value: Decimal, field_name: str) -> Decimal:
    qty = to_quantity(value, field_name)
    if qty < ZERO:
        raise InvalidQuantityError(field_name, qty, "must not be negative")
    return qty


def plan_modification(
    request_id: UUID,
    current_items: Sequence[CurrentItem],
    command: ModificationCommand,
    *,
    approved_phase: bool,
    material_name: MaterialNamer | None = None,
) -> ModificationPlan:
    """
    Build and validate the post-modification item list.

    Preconditions:
        ``current_items`` are the request's items as persisted (locked).

    Postconditions:
        The returned plan satisfies every invariant in the module docstring.
        Nothing is written.

    Args:
        request_id: For error messages.
        current_items: Items on the request now.
        command: The modification.
        approved_phase: True once the request has been finally approved;
            added lines then receive a qty_approved.
        material_name: Resolver used to name duplicate materials.

    Raises:
        MissingReasonError, EmptyModificationError, RequestItemNotFoundError,
        DuplicateLineError, ItemLockedError, InvalidQuantityError,
        ApprovedBelowIssuedError, DuplicateMaterialError, EmptyRequestError.
    """
    if not command.reason or not command.reason.strip():
        raise MissingReasonError("modify")
    if command.is_empty:
        raise EmptyModificationError(str(request_id))

    by_id = {item.id: item for item in current_items}
    proposed: dict[UUID, ProposedItem] = {
        item.id: ProposedItem(
            item_id=item.id,
            material_id=item.material_id,
            unit_id=item.unit_id,
            qty_requested=item.qty_requested,
            qty_approved=item.qty_approved,
            qty_issued=item.qty_issued,
            qty_received=item.qty_received,
        )
        for item in current_items
    }

    # Removals
    removed: list[UUID] = []
    for item_id in command.removals:
        item = by_id.get(item_id)
        if item is None:
            raise RequestItemNotFoundError(str(request_id), str(item_id))
        if item_id in removed:
            raise DuplicateLineError(str(item_id))
        if item.qty_issued > ZERO:
            raise ItemLockedError(str(item_id), item.qty_issued, "remove")
        removed.append(item_id)
        del proposed[item_id]

    # Edits
    edited: list[UUID] = []
    for edit in command.edits:
        item = by_id.get(edit.request_item_id)
        if item is None:
            raise RequestItemNotFoundError(str(request_id), str(edit.request_item_id))
        if edit.request_item_id in removed or edit.request_item_id in edited:
            raise DuplicateLineError(str(edit.request_item_id))
        edited.append(edit.request_item_id)

        current = proposed[edit.request_item_id]
        locked = item.qty_issued > ZERO
        changes: dict = {}

        if edit.material_id is not None and edit.material_id != item.material_id:
            if locked:
                raise ItemLockedError(str(item.id), item.qty_issued, "change the material of")
            changes["material_id"] = edit.material_id
        if edit.unit_id is not None and edit.unit_id != item.unit_id:
            if locked:
                raise ItemLockedError(str(item.id), item.qty_issued, "change the unit of")
            changes["unit_id"] = edit.unit_id
        if edit.qty_requested is not None:
            qty_requested = _positive(edit.qty_requested, "qty_requested")
            if locked and qty_requested != item.qty_requested:
                raise ItemLockedError(str(item.id), item.qty_issued, "change qty_requested of")
            changes["qty_requested"] = qty_requested
        if edit.qty_approved is not None:
            qty_approved = _non_negative(edit.qty_approved, "qty_approved")
            if qty_approved < item.qty_issued:
                raise ApprovedBelowIssuedError(str(item.id), qty_approved, item.qty_issued)
            changes["qty_approved"] = qty_approved

        proposed[edit.request_item_id] = replace(current, **changes)

    # Adds
    added: list[ProposedItem] = []
    for line in command.adds:
        qty_requested = _positive(line.qty_requested, "qty_requested")
        qty_approved = (
            _non_negative(line.qty_approved, "qty_approved")
            if line.qty_approved is not None
            else (qty_requested if approved_phase else None)
        )
        added.append(
            ProposedItem(
                item_id=None,
                material_id=line.material_id,
                unit_id=line.unit_id,
                qty_requested=qty_requested,
                qty_approved=qty_approved,
            )
        )

    post_state = tuple(proposed.values()) + tuple(added)

    dup = find_duplicate_material(i.material_id for i in post_state)
    if dup is not None:
        raise DuplicateMaterialError(str(dup), _name(material_name, dup))
    if not has_positive_request(post_state):
        raise EmptyRequestError(str(request_id))

    return ModificationPlan(
        items=post_state,
        removed_ids=tuple(removed),
        edited_ids=tuple(edited),
        added_count=len(added),
    )
