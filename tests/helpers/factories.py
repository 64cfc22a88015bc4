from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

from domain.ledger import HoldingId, Lot, LotSource, build_asset_id
from domain.pricing import HistoricalPricePoint, PriceAsset
from domain.transfers import NativeTransferRow, TokenTransferRow
from errors import NetworkError

WALLET = "0xAbC0000000000000000000000000000000000001"
OTHER = "0x9999999999999999999999999999999999999999"
USDC = "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"
WETH = "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2"
BASE_TIME = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def unix(ts: datetime) -> str:
    return str(int(ts.timestamp()))


def token_row(
    tx_hash: str,
    *,
    contract: str = USDC,
    value: str = "1000000",
    decimals: str | None = "6",
    symbol: str | None = "USDC",
    incoming: bool = True,
    timestamp: datetime = BASE_TIME,
) -> TokenTransferRow:
    return TokenTransferRow(
        hash=tx_hash,
        timestamp=unix(timestamp),
        from_address=OTHER if incoming else WALLET,
        to_address=WALLET if incoming else OTHER,
        contract_address=contract,
        value=value,
        token_decimal=decimals,
        token_symbol=symbol,
    )


def native_row(
    tx_hash: str,
    *,
    wei: str = "1000000000000000000",
    incoming: bool = False,
    timestamp: datetime = BASE_TIME,
) -> NativeTransferRow:
    return NativeTransferRow(
        hash=tx_hash,
        timestamp=unix(timestamp),
        from_address=OTHER if incoming else WALLET,
        to_address=WALLET if incoming else OTHER,
        value=wei,
    )


def make_lot(
    qty: str,
    cost: str | None,
    *,
    offset_minutes: int = 0,
    holding_id: HoldingId | None = None,
    source: LotSource = LotSource.TRANSFER,
) -> Lot:
    return Lot(
        holding_id=holding_id or HoldingId(uuid4()),
        asset_id=build_asset_id(1, USDC),
        timestamp=BASE_TIME + timedelta(minutes=offset_minutes),
        qty_in=Decimal(qty),
        cost_basis_usd_total=Decimal(cost) if cost is not None else None,
        source=source,
    )


@dataclass
class StubPriceSource:
    """Flat USD price per asset key; unknown keys return an empty series."""

    prices: dict[str, Decimal] = field(default_factory=dict)
    failing: set[str] = field(default_factory=set)
    calls: list[tuple[PriceAsset, datetime, datetime]] = field(default_factory=list)

    def price_series(self, asset: PriceAsset, start: datetime, end: datetime) -> list[HistoricalPricePoint]:
        self.calls.append((asset, start, end))
        if asset.key in self.failing:
            raise NetworkError(f"price feed down for {asset.key}", status_code=503)
        price = self.prices.get(asset.key)
        if price is None:
            return []
        return [HistoricalPricePoint(timestamp=start, price_usd=price)]
