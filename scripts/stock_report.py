#!/usr/bin/env python3
"""
Stock ledger reports from the command line.

Subcommands:
  reconcile   Compare every stored on-hand with its movement sum.
              Exit status 2 when any pair disagrees.
  alerts      Stock rows with the low-stock alert set.
  history     Movement history with running balance for one pair.
  recommend   Procurement recommendations, most urgent first.

The database URL comes from the active configuration set (DATABASE_URL
overrides it), or from --db-url.

Usage:
  python3 scripts/stock_report.py reconcile
  python3 scripts/stock_report.py alerts --store <uuid>
  python3 scripts/stock_report.py history --store <uuid> --material <uuid>
  python3 scripts/stock_report.py recommend --priority CRITICAL
"""

import argparse
import sys
from pathlib import Path
from uuid import UUID

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _fmt_qty(value) -> str:
    return f"{value:,.3f}"


def _print_reconcile(selector) -> int:
    rows = selector.reconcile()
    bad = 0
    print(f"{'STORE':36}  {'MATERIAL':36}  {'ON HAND':>14}  {'LEDGER':>14}  STATUS")
    for row in rows:
        status = "ok" if row.is_consistent else f"DIFF {_fmt_qty(row.difference)}"
        if not row.is_consistent:
            bad += 1
        print(
            f"{row.store_id!s:36}  {row.material_id!s:36}  "
            f"{_fmt_qty(row.qty_on_hand):>14}  {_fmt_qty(row.ledger_qty):>14}  {status}"
        )
    print(f"\n{len(rows)} pair(s) checked, {bad} mismatch(es)")
    return 2 if bad else 0


def _print_alerts(selector, store_id: UUID | None) -> int:
    rows = selector.low_stock_alerts(store_id)
    if not rows:
        print("No low-stock alerts.")
        return 0
    print(f"{'STORE':36}  {'MATERIAL':36}  {'ON HAND':>14}  {'THRESHOLD':>14}")
    for row in rows:
        threshold = "-" if row.low_stock_threshold is None else _fmt_qty(row.low_stock_threshold)
        print(
            f"{row.store_id!s:36}  {row.material_id!s:36}  "
            f"{_fmt_qty(row.qty_on_hand):>14}  {threshold:>14}"
        )
    return 0


def _print_history(selector, store_id: UUID, material_id: UUID) -> int:
    rows = selector.history(store_id, material_id)
    if not rows:
        print("No movements.")
        return 0
    print(f"{'WHEN':26}  {'TYPE':10}  {'SOURCE':10}  {'BEFORE':>12}  {'CHANGE':>12}  {'AFTER':>12}")
    for row in rows:
        m = row.movement
        print(
            f"{m.created_at.isoformat():26}  {m.movement_type.value:10}  {m.source_type.value:10}  "
            f"{_fmt_qty(row.qty_before):>12}  {_fmt_qty(row.qty_change):>12}  {_fmt_qty(row.qty_after):>12}"
        )
    return 0


def _print_recommendations(selector, store_id, priority, critical_minimum) -> int:
    rows = selector.procurement_recommendations(
        store_id=store_id, priority=priority, critical_minimum=critical_minimum,
    )
    if not rows:
        print("Nothing to procure.")
        return 0
    for row in rows:
        print(
            f"[{row.priority.value:8}] {row.material_id} @ {row.store_id}: "
            f"order {_fmt_qty(row.suggested_qty)} ({row.reason})"
        )
    return 0


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        description="Stock ledger reports",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument("--db-url", default=None, help="Database URL (default: active config)")
    p.add_argument("--config-set", default="default", help="Configuration set name")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("reconcile", help="On-hand versus movement sums")

    alerts = sub.add_parser("alerts", help="Low-stock alerts")
    alerts.add_argument("--store", type=UUID, default=None)

    history = sub.add_parser("history", help="Movement history for one pair")
    history.add_argument("--store", type=UUID, required=True)
    history.add_argument("--material", type=UUID, required=True)

    recommend = sub.add_parser("recommend", help="Procurement recommendations")
    recommend.add_argument("--store", type=UUID, default=None)
    recommend.add_argument(
        "--priority", choices=["CRITICAL", "HIGH", "MEDIUM"], default=None,
    )
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    from requisition_config import get_active_config
    from requisition_kernel.db.engine import get_session, init_engine_from_url
    from requisition_kernel.domain.procurement import ProcurementPriority
    from requisition_kernel.logging_config import configure_logging
    from requisition_kernel.selectors.stock_selector import StockSelector

    configure_logging()
    config = get_active_config(args.config_set)
    db_url = args.db_url or config.database_url

    try:
        init_engine_from_url(db_url, echo=False)
    except Exception as exc:
        print(f"ERROR: Could not connect to {db_url}: {exc}", file=sys.stderr)
        return 1

    session = get_session()
    try:
        selector = StockSelector(session)
        if args.command == "reconcile":
            return _print_reconcile(selector)
        if args.command == "alerts":
            return _print_alerts(selector, args.store)
        if args.command == "history":
            return _print_history(selector, args.store, args.material)
        priority = ProcurementPriority(args.priority) if args.priority else None
        return _print_recommendations(
            selector, args.store, priority, config.procurement.critical_minimum,
        )
    finally:
        session.close()


if __name__ == "__main__":
    sys.exit(main())
