from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence

from .cost_basis import unknown_cost_as_zero
from .ledger import Lot


@dataclass(frozen=True)
class LotAggregate:
    total_quantity: Decimal
    total_cost_usd: Decimal
    cost_basis_usd_per_unit: Decimal
    unknown_cost_lot_count: int


def aggregate_lots_cost(lots: Sequence[Lot]) -> LotAggregate | None:
    """Weighted-average USD cost per unit, or None when the lots hold no quantity."""
    total_quantity = sum((lot.qty_in for lot in lots), start=Decimal(0))
    if total_quantity == 0:
        return None

    total_cost = sum((unknown_cost_as_zero(lot.cost_basis_usd_total) for lot in lots), start=Decimal(0))
    return LotAggregate(
        total_quantity=total_quantity,
        total_cost_usd=total_cost,
        cost_basis_usd_per_unit=total_cost / total_quantity,
        unknown_cost_lot_count=sum(1 for lot in lots if not lot.has_known_cost),
    )


__all__ = ["LotAggregate", "aggregate_lots_cost"]
