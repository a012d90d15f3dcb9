"""
Procurement recommendations (``requisition_kernel.domain.procurement``).

Ranks stock rows by how urgently they need purchasing and suggests an
order quantity.  Pure; the stock selector feeds it ``StockRecord`` rows.

Priorities, first match wins:

* CRITICAL -- nothing on hand; suggest ``max(reorder_level * 2, minimum)``.
* HIGH -- alert set or on-hand at/below threshold; suggest
  ``max(reorder_level - on_hand, reorder_level)``.
* MEDIUM -- on-hand at/below reorder level; suggest
  ``reorder_level * 1.5 - on_hand``.

Suggested quantities are rounded up to whole units.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_CEILING, Decimal
from enum import Enum
from typing import Iterable, Protocol
from uuid import UUID

from requisition_kernel.domain.quantities import ZERO

DEFAULT_CRITICAL_MINIMUM = Decimal("100")


class ProcurementPriority(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"


_RANK = {
    ProcurementPriority.CRITICAL: 0,
    ProcurementPriority.HIGH: 1,
    ProcurementPriority.MEDIUM: 2,
}

_REASONS = {
    ProcurementPriority.CRITICAL: "Out of stock - immediate purchase required",
    ProcurementPriority.HIGH: "Below low stock threshold",
    ProcurementPriority.MEDIUM: "At or below reorder level",
}


@dataclass(frozen=True)
class ProcurementRecommendation:
    store_id: UUID
    material_id: UUID
    priority: ProcurementPriority
    suggested_qty: Decimal
    reason: str
    qty_on_hand: Decimal
    reorder_level: Decimal
    low_stock_threshold: Decimal | None


def _ceil(value: Decimal) -> Decimal:
    return value.to_integral_value(rounding=ROUND_CEILING)


def classify(
    qty_on_hand: Decimal,
    reorder_level: Decimal,
    low_stock_threshold: Decimal | None,
    low_stock_alert: bool,
    *,
    critical_minimum: Decimal = DEFAULT_CRITICAL_MINIMUM,
) -> tuple[ProcurementPriority, Decimal] | None:
    """Priority and suggested quantity, or None when no purchase is needed."""
    if qty_on_hand == ZERO:
        return ProcurementPriority.CRITICAL, _ceil(max(reorder_level * 2, critical_minimum))
    threshold = low_stock_threshold if low_stock_threshold is not None else ZERO
    if low_stock_alert or qty_on_hand <= threshold:
        return ProcurementPriority.HIGH, _ceil(max(reorder_level - qty_on_hand, reorder_level))
    if qty_on_hand <= reorder_level:
        return ProcurementPriority.MEDIUM, _ceil(reorder_level * Decimal("1.5") - qty_on_hand)
    return None


class StockLevels(Protocol):
    """Structural type for rows passed to ``recommend``."""

    store_id: UUID
    material_id: UUID
    qty_on_hand: Decimal
    reorder_level: Decimal
    low_stock_threshold: Decimal | None
    low_stock_alert: bool


def recommend(
    rows: Iterable[StockLevels],
    *,
    critical_minimum: Decimal = DEFAULT_CRITICAL_MINIMUM,
    priority: ProcurementPriority | None = None,
) -> list[ProcurementRecommendation]:
    """
    Recommendations for every row that needs purchasing, most urgent first
    (priority, then lowest on-hand).
    """
    result: list[ProcurementRecommendation] = []
    for row in rows:
        classified = classify(
            row.qty_on_hand,
            row.reorder_level,
            row.low_stock_threshold,
            row.low_stock_alert,
            critical_minimum=critical_minimum,
        )
        if classified is None:
            continue
        level, suggested = classified
        if priority is not None and level is not priority:
            continue
        result.append(
            ProcurementRecommendation(
                store_id=row.store_id,
                material_id=row.material_id,
                priority=level,
                suggested_qty=suggested,
                reason=_REASONS[level],
                qty_on_hand=row.qty_on_hand,
                reorder_level=row.reorder_level,
                low_stock_threshold=row.low_stock_threshold,
            )
        )
    result.sort(key=lambda r: (_RANK[r.priority], r.qty_on_hand))
    return result
