from __future__ import annotations

from decimal import Decimal


def unknown_cost_as_zero(cost_basis_usd_total: Decimal | None) -> Decimal:
    """Cost policy shared by FIFO matching and lot aggregation.

    A lot whose cost basis is unknown contributes its quantity but zero cost.
    Results that apply this policy also report how much quantity it touched
    so callers can tell a genuine zero from a missing price.
    """
    if cost_basis_usd_total is None:
        return Decimal(0)
    return cost_basis_usd_total


__all__ = ["unknown_cost_as_zero"]
