from __future__ import annotations

from decimal import Decimal

from domain.aggregation import aggregate_lots_cost
from tests.helpers.factories import make_lot


def test_weighted_average_cost_per_unit() -> None:
    lots = [make_lot("10", "100"), make_lot("5", "80", offset_minutes=1)]

    aggregate = aggregate_lots_cost(lots)

    assert aggregate is not None
    assert aggregate.total_quantity == Decimal(15)
    assert aggregate.total_cost_usd == Decimal(180)
    assert aggregate.cost_basis_usd_per_unit == Decimal(12)
    assert aggregate.unknown_cost_lot_count == 0


def test_unknown_cost_lots_add_quantity_but_no_cost() -> None:
    lots = [make_lot("10", "100"), make_lot("10", None, offset_minutes=1)]

    aggregate = aggregate_lots_cost(lots)

    assert aggregate is not None
    assert aggregate.cost_basis_usd_per_unit == Decimal(5)
    assert aggregate.unknown_cost_lot_count == 1


def test_no_aggregate_without_quantity() -> None:
    assert aggregate_lots_cost([]) is None
    assert aggregate_lots_cost([make_lot("0", None)]) is None


def test_aggregation_is_idempotent() -> None:
    lots = [make_lot("3", "10"), make_lot("7", None, offset_minutes=1), make_lot("1", "2", offset_minutes=2)]

    assert aggregate_lots_cost(lots) == aggregate_lots_cost(lots)
