"""
Tests for issuing stock against an approved request.

Covers:
- Partial and full issuance, one OUT/ISSUE movement per line
- Over-issue and insufficient stock rejected before any write
- All-or-nothing batches across several stock rows
- Low-stock alerts raised by issuance
- Issuance only from APPROVED / PARTIALLY_ISSUED
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from requisition_kernel.domain.fulfilment import IssueLine
from requisition_kernel.domain.ledger import MovementType, SourceType
from requisition_kernel.domain.lifecycle import RequestStatus
from requisition_kernel.exceptions import (
    InsufficientStockError,
    InvalidTransitionError,
    QuantityExceedsOutstandingError,
    StockNotFoundError,
)


class TestIssue:

    def test_partial_issue(self, lifecycle, make_approved, make_stock, storekeeper, store_id, cement, request_selector):
        make_stock(store_id, cement, 200)
        view = make_approved({cement: 100}, approved={cement: 80})
        item = view.items[0]

        result = lifecycle.issue(view.id, [IssueLine(item.id, store_id, Decimal("50"))], storekeeper.actor_id)

        assert result.status is RequestStatus.PARTIALLY_ISSUED
        (movement,) = result.movements
        assert movement.movement_type is MovementType.OUT
        assert movement.source_type is SourceType.ISSUE
        assert movement.source_id == view.id
        assert movement.qty == Decimal("50")

        item = request_selector.get(view.id).items[0]
        assert item.qty_issued == Decimal("50")
        assert item.issued_by == storekeeper.actor_id

    def test_full_issue(self, make_approved, make_stock, issue_all, store_id, cement, sand, stock_selector):
        make_stock(store_id, cement, 200)
        make_stock(store_id, sand, 20)
        view = make_approved({cement: 100, sand: 10})

        result = issue_all(view)

        assert result.status is RequestStatus.ISSUED
        assert len(result.movements) == 2
        assert stock_selector.get(store_id, cement).qty_on_hand == Decimal("100")
        assert stock_selector.get(store_id, sand).qty_on_hand == Decimal("10")
        assert stock_selector.mismatches() == []

    def test_zero_approved_item_needs_no_issue(self, make_approved, make_stock, issue_all, store_id, cement, sand):
        make_stock(store_id, cement, 200)
        view = make_approved({cement: 10, sand: 5}, approved={sand: 0})
        assert issue_all(view).status is RequestStatus.ISSUED

    def test_issue_stamps_request(
        self, lifecycle, make_approved, make_stock, storekeeper, store_id, cement, request_selector,
    ):
        make_stock(store_id, cement, 10)
        view = make_approved({cement: 5})
        lifecycle.issue(view.id, [IssueLine(view.items[0].id, store_id, Decimal("5"))], storekeeper.actor_id)

        header = request_selector.get(view.id).request
        assert header.issued_by == storekeeper.actor_id
        assert header.issued_at is not None
        assert header.closed_at is None


class TestRejectedIssuance:

    def test_over_outstanding_writes_nothing(
        self, lifecycle, make_approved, make_stock, storekeeper, store_id, cement, stock_selector, request_selector,
    ):
        # Issue 60 against an approval of 50
        make_stock(store_id, cement, 500)
        view = make_approved({cement: 100}, approved={cement: 50})
        item = view.items[0]

        with pytest.raises(QuantityExceedsOutstandingError) as exc_info:
            lifecycle.issue(view.id, [IssueLine(item.id, store_id, Decimal("60"))], storekeeper.actor_id)

        assert exc_info.value.outstanding == Decimal("50")
        assert stock_selector.movements_for_source(view.id) == []
        assert stock_selector.get(store_id, cement).qty_on_hand == Decimal("500")
        after = request_selector.get(view.id)
        assert after.items[0].qty_issued == Decimal("0")
        assert after.status is RequestStatus.APPROVED

    def test_insufficient_stock_names_material(self, lifecycle, make_approved, make_stock, storekeeper, store_id, cement):
        make_stock(store_id, cement, 30)
        view = make_approved({cement: 50})

        with pytest.raises(InsufficientStockError) as exc_info:
            lifecycle.issue(view.id, [IssueLine(view.items[0].id, store_id, Decimal("50"))], storekeeper.actor_id)

        assert exc_info.value.available == Decimal("30")
        assert exc_info.value.requested == Decimal("50")
        assert exc_info.value.material_name == "Cement 42.5N"

    def test_batch_is_all_or_nothing(
        self, lifecycle, make_approved, make_stock, storekeeper, store_id, cement, sand, stock_selector, request_selector,
    ):
        make_stock(store_id, cement, 100)
        make_stock(store_id, sand, 1)
        view = make_approved({cement: 10, sand: 5})
        lines = [
            IssueLine(view.item_for_material(cement).id, store_id, Decimal("10")),
            IssueLine(view.item_for_material(sand).id, store_id, Decimal("5")),
        ]

        with pytest.raises(InsufficientStockError):
            lifecycle.issue(view.id, lines, storekeeper.actor_id)

        assert stock_selector.movements_for_source(view.id) == []
        assert stock_selector.get(store_id, cement).qty_on_hand == Decimal("100")
        assert all(i.qty_issued == 0 for i in request_selector.get(view.id).items)

    def test_missing_stock_row(self, lifecycle, make_approved, storekeeper, cement):
        view = make_approved({cement: 5})
        with pytest.raises(StockNotFoundError):
            lifecycle.issue(view.id, [IssueLine(view.items[0].id, uuid4(), Decimal("5"))], storekeeper.actor_id)

    def test_cannot_issue_before_approval(self, lifecycle, make_in_review, make_stock, storekeeper, store_id, cement):
        make_stock(store_id, cement, 10)
        view = make_in_review({cement: 5})
        with pytest.raises(InvalidTransitionError):
            lifecycle.issue(view.id, [IssueLine(view.items[0].id, store_id, Decimal("5"))], storekeeper.actor_id)

    def test_cannot_issue_when_fully_issued(self, lifecycle, make_approved, make_stock, issue_all, storekeeper, store_id, cement):
        make_stock(store_id, cement, 10)
        view = make_approved({cement: 5})
        issue_all(view)
        with pytest.raises(InvalidTransitionError):
            lifecycle.issue(view.id, [IssueLine(view.items[0].id, store_id, Decimal("1"))], storekeeper.actor_id)


class TestIssuanceAlerts:

    def test_issue_raises_low_stock_alert(self, make_approved, make_stock, issue_all, store_id, cement, captured_logs):
        make_stock(store_id, cement, 60, threshold=50)
        view = make_approved({cement: 20})

        result = issue_all(view)

        assert result.alerts_raised == ((store_id, cement),)
        assert any(r["message"] == "low_stock_alert_raised" for r in captured_logs())

    def test_already_alerting_row_is_not_re_raised(self, make_approved, make_stock, issue_all, store_id, cement):
        make_stock(store_id, cement, 40, threshold=50)
        view = make_approved({cement: 5})
        assert issue_all(view).alerts_raised == ()
