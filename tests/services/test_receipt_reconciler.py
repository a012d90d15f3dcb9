"""
Tests for site receipt confirmation.

Covers:
- Exact-match receipt of the issued-not-received quantity
- Mismatch, nothing issued, already received
- Closing only when every approved quantity was issued and received
"""

from decimal import Decimal

import pytest

from requisition_kernel.domain.fulfilment import IssueLine, ReceiveLine
from requisition_kernel.domain.lifecycle import RequestStatus
from requisition_kernel.exceptions import (
    InvalidTransitionError,
    ItemNotEligibleError,
    ReceiptQuantityMismatchError,
)


@pytest.fixture
def issued_request(make_approved, make_stock, issue_all, store_id, cement, sand):
    """A fully issued request: cement 10, sand 4."""
    make_stock(store_id, cement, 100)
    make_stock(store_id, sand, 100)
    view = make_approved({cement: 10, sand: 4})
    issue_all(view)
    return view


class TestReceive:

    def test_partial_receipt_keeps_issued(self, lifecycle, issued_request, engineer, cement, request_selector):
        item = issued_request.item_for_material(cement)
        result = lifecycle.receive(issued_request.id, [ReceiveLine(item.id, Decimal("10"))], engineer.actor_id)

        assert result.status is RequestStatus.ISSUED
        assert not result.closed
        assert result.received_item_ids == (item.id,)
        stored = request_selector.get(issued_request.id).item_for_material(cement)
        assert stored.qty_received == Decimal("10")
        assert stored.received_by == engineer.actor_id

    def test_receiving_everything_closes(self, lifecycle, issued_request, engineer, request_selector):
        lines = [ReceiveLine(i.id, i.qty_approved) for i in issued_request.items]
        result = lifecycle.receive(issued_request.id, lines, engineer.actor_id)

        assert result.closed
        header = request_selector.get(issued_request.id).request
        assert header.closed_at is not None
        assert header.received_by == engineer.actor_id

    def test_mismatch_reports_required(self, lifecycle, issued_request, engineer, cement):
        item = issued_request.item_for_material(cement)
        with pytest.raises(ReceiptQuantityMismatchError) as exc_info:
            lifecycle.receive(issued_request.id, [ReceiveLine(item.id, Decimal("7"))], engineer.actor_id)
        assert exc_info.value.submitted == Decimal("7")
        assert exc_info.value.required == Decimal("10")

    def test_cannot_receive_twice(self, lifecycle, issued_request, engineer, cement):
        item = issued_request.item_for_material(cement)
        lifecycle.receive(issued_request.id, [ReceiveLine(item.id, Decimal("10"))], engineer.actor_id)
        with pytest.raises(ItemNotEligibleError):
            lifecycle.receive(issued_request.id, [ReceiveLine(item.id, Decimal("10"))], engineer.actor_id)

    def test_closed_request_accepts_nothing(self, lifecycle, issued_request, engineer):
        lines = [ReceiveLine(i.id, i.qty_approved) for i in issued_request.items]
        lifecycle.receive(issued_request.id, lines, engineer.actor_id)
        with pytest.raises(InvalidTransitionError):
            lifecycle.receive(issued_request.id, lines, engineer.actor_id)


class TestReceiveBeforeFullIssue:

    def test_receipt_during_partial_issue_does_not_close(
        self, lifecycle, make_approved, make_stock, storekeeper, engineer, store_id, cement, sand,
    ):
        make_stock(store_id, cement, 100)
        make_stock(store_id, sand, 100)
        view = make_approved({cement: 10, sand: 4})
        cement_item = view.item_for_material(cement)
        lifecycle.issue(view.id, [IssueLine(cement_item.id, store_id, Decimal("10"))], storekeeper.actor_id)

        result = lifecycle.receive(view.id, [ReceiveLine(cement_item.id, Decimal("10"))], engineer.actor_id)

        assert result.status is RequestStatus.PARTIALLY_ISSUED

    def test_unissued_item_not_eligible(
        self, lifecycle, make_approved, make_stock, storekeeper, engineer, store_id, cement, sand,
    ):
        make_stock(store_id, cement, 100)
        view = make_approved({cement: 10, sand: 4})
        lifecycle.issue(
            view.id, [IssueLine(view.item_for_material(cement).id, store_id, Decimal("5"))], storekeeper.actor_id,
        )
        with pytest.raises(ItemNotEligibleError):
            lifecycle.receive(
                view.id, [ReceiveLine(view.item_for_material(sand).id, Decimal("4"))], engineer.actor_id,
            )
