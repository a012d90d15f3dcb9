"""
Tests for issuance and receipt batch validation (pure).
"""

from dataclasses import dataclass
from decimal import Decimal
from uuid import uuid4

import pytest

from requisition_kernel.domain.fulfilment import (
    IssueLine,
    ReceiveLine,
    validate_issue_lines,
    validate_receive_lines,
)
from requisition_kernel.exceptions import (
    DuplicateLineError,
    InvalidQuantityError,
    ItemNotEligibleError,
    QuantityExceedsOutstandingError,
    ReceiptQuantityMismatchError,
    RequestItemNotFoundError,
)

REQUEST_ID = uuid4()
STORE = uuid4()


@dataclass
class Item:
    qty_requested: Decimal
    qty_approved: Decimal | None
    qty_issued: Decimal = Decimal("0")
    qty_received: Decimal = Decimal("0")


class TestIssueLines:

    def test_within_outstanding(self):
        item_id = uuid4()
        items = {item_id: Item(Decimal("100"), Decimal("80"), Decimal("50"))}
        lines = validate_issue_lines(REQUEST_ID, items, [IssueLine(item_id, STORE, Decimal("30"))])
        assert lines[0].qty == Decimal("30")

    def test_over_outstanding_reports_both_numbers(self):
        item_id = uuid4()
        items = {item_id: Item(Decimal("100"), Decimal("50"))}
        with pytest.raises(QuantityExceedsOutstandingError) as exc_info:
            validate_issue_lines(REQUEST_ID, items, [IssueLine(item_id, STORE, Decimal("60"))])
        assert exc_info.value.requested == Decimal("60")
        assert exc_info.value.outstanding == Decimal("50")

    def test_empty_batch(self):
        with pytest.raises(InvalidQuantityError):
            validate_issue_lines(REQUEST_ID, {}, [])

    def test_zero_quantity(self):
        item_id = uuid4()
        items = {item_id: Item(Decimal("10"), Decimal("10"))}
        with pytest.raises(InvalidQuantityError):
            validate_issue_lines(REQUEST_ID, items, [IssueLine(item_id, STORE, Decimal("0"))])

    def test_unknown_item(self):
        with pytest.raises(RequestItemNotFoundError):
            validate_issue_lines(REQUEST_ID, {}, [IssueLine(uuid4(), STORE, Decimal("1"))])

    def test_same_item_twice(self):
        item_id = uuid4()
        items = {item_id: Item(Decimal("10"), Decimal("10"))}
        with pytest.raises(DuplicateLineError):
            validate_issue_lines(
                REQUEST_ID, items,
                [IssueLine(item_id, STORE, Decimal("1")), IssueLine(item_id, STORE, Decimal("1"))],
            )

    def test_unapproved_item_has_nothing_outstanding(self):
        item_id = uuid4()
        items = {item_id: Item(Decimal("10"), None)}
        with pytest.raises(QuantityExceedsOutstandingError):
            validate_issue_lines(REQUEST_ID, items, [IssueLine(item_id, STORE, Decimal("1"))])


class TestReceiveLines:

    def test_exact_outstanding(self):
        item_id = uuid4()
        items = {item_id: Item(Decimal("100"), Decimal("80"), Decimal("50"), Decimal("20"))}
        lines = validate_receive_lines(REQUEST_ID, items, [ReceiveLine(item_id, Decimal("30"))])
        assert lines[0].qty_received == Decimal("30")

    def test_partial_confirmation_rejected_with_required_value(self):
        item_id = uuid4()
        items = {item_id: Item(Decimal("100"), Decimal("80"), Decimal("50"))}
        with pytest.raises(ReceiptQuantityMismatchError) as exc_info:
            validate_receive_lines(REQUEST_ID, items, [ReceiveLine(item_id, Decimal("40"))])
        assert exc_info.value.required == Decimal("50")

    def test_nothing_issued(self):
        item_id = uuid4()
        items = {item_id: Item(Decimal("10"), Decimal("10"))}
        with pytest.raises(ItemNotEligibleError):
            validate_receive_lines(REQUEST_ID, items, [ReceiveLine(item_id, Decimal("0"))])

    def test_already_received(self):
        item_id = uuid4()
        items = {item_id: Item(Decimal("10"), Decimal("10"), Decimal("10"), Decimal("10"))}
        with pytest.raises(ItemNotEligibleError):
            validate_receive_lines(REQUEST_ID, items, [ReceiveLine(item_id, Decimal("10"))])

    def test_empty_batch(self):
        with pytest.raises(InvalidQuantityError):
            validate_receive_lines(REQUEST_ID, {}, [])
