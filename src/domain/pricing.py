from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Protocol, Sequence


@dataclass(frozen=True)
class PriceAsset:
    """Identifies what to price. A contract of None is the chain's native currency."""

    contract_address: str | None
    # Display and lookup hint only; identity is the contract.
    symbol: str = field(default="", compare=False)

    @property
    def key(self) -> str:
        return self.contract_address or "native"


@dataclass(frozen=True)
class HistoricalPricePoint:
    timestamp: datetime
    price_usd: Decimal


class HistoricalPriceSource(Protocol):
    """Point-in-time USD price series for one asset, ascending by timestamp."""

    def price_series(self, asset: PriceAsset, start: datetime, end: datetime) -> list[HistoricalPricePoint]: ...


def nearest_price_at_or_before(points: Sequence[HistoricalPricePoint], target: datetime) -> Decimal | None:
    """Price of the last point not after `target`.

    Points must be ascending. Returns None when the series is empty or every
    point lies after `target`.
    """
    best: HistoricalPricePoint | None = None
    for point in points:
        if point.timestamp > target:
            break
        best = point
    return best.price_usd if best is not None else None
