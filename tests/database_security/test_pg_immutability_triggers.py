"""
Database-level immutability trigger tests.

These bypass the ORM with raw SQL and bulk statements, so only the
PostgreSQL triggers stand in the way.  Skipped unless DATABASE_URL points
at PostgreSQL.
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError

from requisition_kernel.db.engine import get_engine
from requisition_kernel.db.triggers import (
    ALL_TRIGGER_NAMES,
    get_missing_triggers,
    triggers_installed,
)
from requisition_kernel.domain.approval import ReviewLevel
from requisition_kernel.domain.catalog import NullMaterialCatalog
from requisition_kernel.domain.dtos import Actor
from requisition_kernel.domain.modification import NewLine
from requisition_kernel.services.request_lifecycle import RequestLifecycleService
from requisition_kernel.services.stock_ledger import StockLedgerService

pytestmark = pytest.mark.postgres


@pytest.fixture
def committed_rows(pg_session_factory):
    """Commit one stock row with a movement and one approval."""
    engine = get_engine()
    if not triggers_installed(engine):
        pytest.skip(f"Database triggers not installed: {get_missing_triggers(engine)}")

    session = pg_session_factory()
    actor = Actor(uuid4(), "ADMIN")
    store_id, material_id = uuid4(), uuid4()
    StockLedgerService(session).create_stock(
        store_id, material_id, actor.actor_id, initial_qty=Decimal("10"),
    )
    lifecycle = RequestLifecycleService(session, catalog=NullMaterialCatalog())
    view = lifecycle.create_request(
        uuid4(), actor.actor_id, [NewLine(material_id, uuid4(), Decimal("1"))],
    )
    lifecycle.submit(view.id, actor.actor_id)
    lifecycle.reject(view.id, actor.actor_id, ReviewLevel.DSE, "duplicate request")
    session.commit()
    return {"store_id": store_id, "material_id": material_id, "request_id": view.id}


def _execute_and_expect_block(pg_session_factory, sql, params):
    session = pg_session_factory()
    with pytest.raises(DBAPIError) as exc_info:
        session.execute(text(sql), params)
        session.flush()
    session.rollback()
    return exc_info.value


class TestTriggerInstallation:

    def test_all_triggers_present(self):
        assert get_missing_triggers(get_engine()) == []
        assert len(ALL_TRIGGER_NAMES) == 5


class TestStockMovementTriggers:

    def test_raw_update_blocked(self, pg_session_factory, committed_rows):
        error = _execute_and_expect_block(
            pg_session_factory,
            "UPDATE stock_movements SET qty = 9999 WHERE store_id = :store_id",
            {"store_id": str(committed_rows["store_id"])},
        )
        assert "immutable" in str(error)

    def test_raw_delete_blocked(self, pg_session_factory, committed_rows):
        _execute_and_expect_block(
            pg_session_factory,
            "DELETE FROM stock_movements WHERE store_id = :store_id",
            {"store_id": str(committed_rows["store_id"])},
        )


class TestApprovalTriggers:

    def test_raw_update_blocked(self, pg_session_factory, committed_rows):
        _execute_and_expect_block(
            pg_session_factory,
            "UPDATE approvals SET comment = 'forged' WHERE request_id = :request_id",
            {"request_id": str(committed_rows["request_id"])},
        )

    def test_raw_delete_blocked(self, pg_session_factory, committed_rows):
        _execute_and_expect_block(
            pg_session_factory,
            "DELETE FROM approvals WHERE request_id = :request_id",
            {"request_id": str(committed_rows["request_id"])},
        )


class TestStockDeleteTrigger:

    def test_raw_delete_blocked(self, pg_session_factory, committed_rows):
        _execute_and_expect_block(
            pg_session_factory,
            "DELETE FROM stock WHERE store_id = :store_id",
            {"store_id": str(committed_rows["store_id"])},
        )

    def test_raw_update_allowed(self, pg_session_factory, committed_rows):
        session = pg_session_factory()
        session.execute(
            text("UPDATE stock SET reorder_level = 5 WHERE store_id = :store_id"),
            {"store_id": str(committed_rows["store_id"])},
        )
        session.commit()
