from __future__ import annotations

from decimal import Decimal
from enum import StrEnum
from typing import Callable, Iterable

from .ledger import ComputedLot, LotSource, TokenDelta, TransactionGroup

PriceLookup = Callable[[TokenDelta], Decimal | None]


class TransactionKind(StrEnum):
    TRANSFER = "transfer"
    SWAP = "swap"


def classify_group(group: TransactionGroup) -> TransactionKind:
    """Any outflow leg, native included, makes the transaction a swap."""
    return TransactionKind.SWAP if group.outflows else TransactionKind.TRANSFER


def compute_group_lots(group: TransactionGroup, price_at: PriceLookup) -> list[ComputedLot]:
    """Assign a USD cost basis to every inbound leg of `group`.

    Transfers take the market value at receipt, or None when no price
    resolves. Swaps split the USD value given up across the inbound legs in
    proportion to their own USD value; when none of the inbound legs can be
    priced every lot gets None rather than an invented zero cost.
    """
    inflows = group.inflows
    if not inflows:
        return []

    if classify_group(group) == TransactionKind.TRANSFER:
        costs: list[Decimal | None] = []
        for leg in inflows:
            price = price_at(leg)
            costs.append(leg.quantity * price if price is not None else None)
        return _lots(group, inflows, costs, LotSource.TRANSFER)

    usd_out_total = sum((_usd_value_or_zero(leg, price_at) for leg in group.outflows), start=Decimal(0))
    inbound_usd_values = [_usd_value_or_zero(leg, price_at) for leg in inflows]
    total_inbound_usd = sum(inbound_usd_values, start=Decimal(0))

    if total_inbound_usd <= 0:
        return _lots(group, inflows, [None] * len(inflows), LotSource.SWAP)

    allocated: list[Decimal | None] = [
        usd_out_total * value / total_inbound_usd for value in inbound_usd_values
    ]
    return _lots(group, inflows, allocated, LotSource.SWAP)


def compute_lots(
    groups: Iterable[TransactionGroup],
    price_at: Callable[[TransactionGroup, TokenDelta], Decimal | None],
) -> list[ComputedLot]:
    lots: list[ComputedLot] = []
    for group in groups:
        lots.extend(compute_group_lots(group, lambda leg, g=group: price_at(g, leg)))
    return lots


def _usd_value_or_zero(leg: TokenDelta, price_at: PriceLookup) -> Decimal:
    # Unpriced legs count as zero: an under-count, never an abort.
    price = price_at(leg)
    return leg.quantity * price if price is not None else Decimal(0)


def _lots(
    group: TransactionGroup,
    legs: list[TokenDelta],
    costs: list[Decimal | None],
    source: LotSource,
) -> list[ComputedLot]:
    return [
        ComputedLot(
            asset_id=leg.asset_id,
            contract_address=leg.contract_address,
            timestamp=group.timestamp,
            qty_in=leg.quantity,
            cost_basis_usd_total=cost,
            source=source,
        )
        for leg, cost in zip(legs, costs)
    ]


__all__ = ["PriceLookup", "TransactionKind", "classify_group", "compute_group_lots", "compute_lots"]
