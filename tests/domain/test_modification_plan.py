"""
Tests for modification planning: the whole post-state is validated in
memory before anything is written.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID, uuid4

import pytest

from requisition_kernel.domain.modification import (
    LineEdit,
    ModificationCommand,
    NewLine,
    find_duplicate_material,
    plan_modification,
    validate_new_lines,
)
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

REQUEST_ID = uuid4()
UNIT = uuid4()


@dataclass
class Current:
    material_id: UUID
    qty_requested: Decimal
    qty_approved: Decimal | None = None
    qty_issued: Decimal = Decimal("0")
    qty_received: Decimal = Decimal("0")
    unit_id: UUID = UNIT
    id: UUID = field(default_factory=uuid4)


def plan(items, command, approved_phase=False, namer=None):
    return plan_modification(
        REQUEST_ID, items, command, approved_phase=approved_phase, material_name=namer,
    )


class TestCommandShape:

    def test_reason_required(self):
        items = [Current(uuid4(), Decimal("5"))]
        with pytest.raises(MissingReasonError):
            plan(items, ModificationCommand(reason="  ", removals=(items[0].id,)))

    def test_empty_command_rejected(self):
        with pytest.raises(EmptyModificationError):
            plan([Current(uuid4(), Decimal("5"))], ModificationCommand(reason="nothing"))


class TestRemovals:

    def test_remove_unissued_item(self):
        keep, drop = Current(uuid4(), Decimal("5")), Current(uuid4(), Decimal("3"))
        result = plan([keep, drop], ModificationCommand(reason="r", removals=(drop.id,)))
        assert result.removed_ids == (drop.id,)
        assert [i.item_id for i in result.items] == [keep.id]

    def test_cannot_remove_issued_item(self):
        issued = Current(uuid4(), Decimal("5"), Decimal("5"), qty_issued=Decimal("2"))
        other = Current(uuid4(), Decimal("1"), Decimal("1"))
        with pytest.raises(ItemLockedError):
            plan([issued, other], ModificationCommand(reason="r", removals=(issued.id,)))

    def test_unknown_item(self):
        with pytest.raises(RequestItemNotFoundError):
            plan([Current(uuid4(), Decimal("5"))], ModificationCommand(reason="r", removals=(uuid4(),)))

    def test_removing_everything_leaves_empty_request(self):
        only = Current(uuid4(), Decimal("5"))
        with pytest.raises(EmptyRequestError):
            plan([only], ModificationCommand(reason="r", removals=(only.id,)))

    def test_same_item_removed_twice(self):
        a, b = Current(uuid4(), Decimal("5")), Current(uuid4(), Decimal("5"))
        with pytest.raises(DuplicateLineError):
            plan([a, b], ModificationCommand(reason="r", removals=(a.id, a.id)))


class TestEdits:

    def test_edit_quantities(self):
        item = Current(uuid4(), Decimal("5"))
        result = plan(
            [item],
            ModificationCommand(
                reason="r",
                edits=(LineEdit(item.id, qty_requested=Decimal("7"), qty_approved=Decimal("6")),),
            ),
        )
        (proposed,) = result.items
        assert proposed.qty_requested == Decimal("7")
        assert proposed.qty_approved == Decimal("6")
        assert result.edited_ids == (item.id,)

    def test_issued_item_material_is_locked(self):
        item = Current(uuid4(), Decimal("5"), Decimal("5"), qty_issued=Decimal("1"))
        with pytest.raises(ItemLockedError):
            plan([item], ModificationCommand(reason="r", edits=(LineEdit(item.id, material_id=uuid4()),)))

    def test_issued_item_qty_requested_is_locked(self):
        item = Current(uuid4(), Decimal("5"), Decimal("5"), qty_issued=Decimal("1"))
        with pytest.raises(ItemLockedError):
            plan(
                [item],
                ModificationCommand(reason="r", edits=(LineEdit(item.id, qty_requested=Decimal("9")),)),
            )

    def test_issued_item_approved_may_change_down_to_issued(self):
        item = Current(uuid4(), Decimal("5"), Decimal("5"), qty_issued=Decimal("2"))
        result = plan(
            [item],
            ModificationCommand(reason="r", edits=(LineEdit(item.id, qty_approved=Decimal("2")),)),
            approved_phase=True,
        )
        assert result.items[0].qty_approved == Decimal("2")

    def test_approved_below_issued(self):
        item = Current(uuid4(), Decimal("5"), Decimal("5"), qty_issued=Decimal("3"))
        with pytest.raises(ApprovedBelowIssuedError):
            plan(
                [item],
                ModificationCommand(reason="r", edits=(LineEdit(item.id, qty_approved=Decimal("2")),)),
                approved_phase=True,
            )

    def test_non_positive_qty_requested(self):
        item = Current(uuid4(), Decimal("5"))
        with pytest.raises(InvalidQuantityError):
            plan(
                [item],
                ModificationCommand(reason="r", edits=(LineEdit(item.id, qty_requested=Decimal("0")),)),
            )

    def test_edit_of_removed_item(self):
        a, b = Current(uuid4(), Decimal("5")), Current(uuid4(), Decimal("5"))
        with pytest.raises(DuplicateLineError):
            plan(
                [a, b],
                ModificationCommand(
                    reason="r", removals=(a.id,),
                    edits=(LineEdit(a.id, qty_requested=Decimal("1")),),
                ),
            )


class TestAdds:

    def test_add_in_review_leaves_approval_unset(self):
        item = Current(uuid4(), Decimal("5"))
        result = plan(
            [item],
            ModificationCommand(reason="r", adds=(NewLine(uuid4(), UNIT, Decimal("4")),)),
        )
        assert result.added_count == 1
        assert result.added[0].qty_approved is None

    def test_add_after_approval_defaults_to_requested(self):
        item = Current(uuid4(), Decimal("5"), Decimal("5"))
        result = plan(
            [item],
            ModificationCommand(reason="r", adds=(NewLine(uuid4(), UNIT, Decimal("4")),)),
            approved_phase=True,
        )
        assert result.added[0].qty_approved == Decimal("4")

    def test_adding_existing_material_names_it(self):
        cement = uuid4()
        item = Current(cement, Decimal("5"))
        with pytest.raises(DuplicateMaterialError) as exc_info:
            plan(
                [item],
                ModificationCommand(reason="r", adds=(NewLine(cement, UNIT, Decimal("1")),)),
                namer=lambda m: "Cement 42.5N" if m == cement else None,
            )
        assert exc_info.value.material_name == "Cement 42.5N"
        assert "Cement 42.5N" in str(exc_info.value)

    def test_remove_then_re_add_same_material(self):
        cement = uuid4()
        old = Current(cement, Decimal("5"))
        other = Current(uuid4(), Decimal("1"))
        result = plan(
            [old, other],
            ModificationCommand(
                reason="r",
                removals=(old.id,),
                adds=(NewLine(cement, UNIT, Decimal("9")),),
            ),
        )
        assert result.removed_ids == (old.id,)
        assert result.added[0].material_id == cement

    def test_edit_into_duplicate_material(self):
        a, b = Current(uuid4(), Decimal("5")), Current(uuid4(), Decimal("5"))
        with pytest.raises(DuplicateMaterialError):
            plan([a, b], ModificationCommand(reason="r", edits=(LineEdit(b.id, material_id=a.material_id),)))


class TestNewLines:

    def test_empty(self):
        with pytest.raises(EmptyRequestError):
            validate_new_lines([])

    def test_non_positive(self):
        with pytest.raises(InvalidQuantityError):
            validate_new_lines([NewLine(uuid4(), UNIT, Decimal("0"))])

    def test_duplicate_falls_back_to_uuid_text(self):
        m = uuid4()
        with pytest.raises(DuplicateMaterialError) as exc_info:
            validate_new_lines([NewLine(m, UNIT, Decimal("1")), NewLine(m, UNIT, Decimal("2"))])
        assert exc_info.value.material_name == str(m)

    def test_find_duplicate_material(self):
        a, b = uuid4(), uuid4()
        assert find_duplicate_material([a, b]) is None
        assert find_duplicate_material([a, b, a]) == a
