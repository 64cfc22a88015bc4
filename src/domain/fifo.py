from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Sequence

from pydantic import BaseModel

from errors import SellValidationError

from .cost_basis import unknown_cost_as_zero
from .ledger import Lot, LotId


class ConsumedLot(BaseModel):
    lot_id: LotId
    quantity: Decimal
    cost_usd: Decimal
    cost_known: bool


class FifoResult(BaseModel):
    total_cost_consumed: Decimal
    realized_gain_loss: Decimal
    proceeds: Decimal
    consumed_lots: list[ConsumedLot]
    uncovered_quantity: Decimal
    unknown_cost_quantity: Decimal


def compute_fifo_sell(
    lots: Sequence[Lot],
    sell_quantity: Decimal | int | float | str,
    price_per_unit: Decimal | int | float | str,
) -> FifoResult:
    """Price a sale by consuming `lots` oldest-first.

    `lots` must already be ascending by acquisition time. The ledger is only
    read: consumption is recomputed from scratch on every call, so reducing
    the holding's displayed quantity is up to the caller. Quantity beyond
    what the ledger holds is treated as zero-cost.
    """
    quantity = _validated(sell_quantity, "sell quantity", allow_zero=False)
    price = _validated(price_per_unit, "price per unit", allow_zero=True)

    remaining = quantity
    total_cost = Decimal(0)
    unknown_quantity = Decimal(0)
    consumed: list[ConsumedLot] = []

    for lot in lots:
        if remaining <= 0:
            break
        if lot.qty_in <= 0:
            continue

        portion = min(remaining, lot.qty_in)
        cost = portion / lot.qty_in * unknown_cost_as_zero(lot.cost_basis_usd_total)
        if not lot.has_known_cost:
            unknown_quantity += portion

        consumed.append(
            ConsumedLot(lot_id=lot.id, quantity=portion, cost_usd=cost, cost_known=lot.has_known_cost)
        )
        total_cost += cost
        remaining -= portion

    proceeds = quantity * price
    return FifoResult(
        total_cost_consumed=total_cost,
        realized_gain_loss=proceeds - total_cost,
        proceeds=proceeds,
        consumed_lots=consumed,
        uncovered_quantity=max(remaining, Decimal(0)),
        unknown_cost_quantity=unknown_quantity,
    )


def apply_sell_to_holding(
    quantity: Decimal,
    cost_basis_per_unit: Decimal,
    sell_quantity: Decimal,
    result: FifoResult,
) -> tuple[Decimal, Decimal]:
    """New (quantity, per-unit cost) for a holding after a FIFO-priced sell.

    Remaining quantity and total cost are both clamped at zero; selling more
    than the holding shows empties it.
    """
    new_quantity = max(Decimal(0), quantity - sell_quantity)
    remaining_cost = max(Decimal(0), cost_basis_per_unit * quantity - result.total_cost_consumed)
    new_per_unit = remaining_cost / new_quantity if new_quantity > 0 else Decimal(0)
    return new_quantity, new_per_unit


def _validated(value: Decimal | int | float | str, name: str, *, allow_zero: bool) -> Decimal:
    try:
        parsed = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise SellValidationError(f"{name} must be a number, got {value!r}") from exc

    if not parsed.is_finite():
        raise SellValidationError(f"{name} must be finite, got {value!r}")
    if parsed < 0 or (parsed == 0 and not allow_zero):
        bound = ">= 0" if allow_zero else "> 0"
        raise SellValidationError(f"{name} must be {bound}, got {value!r}")
    return parsed


__all__ = ["ConsumedLot", "FifoResult", "apply_sell_to_holding", "compute_fifo_sell"]
