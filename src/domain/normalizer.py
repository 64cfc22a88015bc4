from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Iterable

from .ledger import (
    NATIVE_DECIMALS,
    NATIVE_SYMBOL,
    AssetId,
    Direction,
    TokenDelta,
    TransactionGroup,
    build_asset_id,
)
from .transfers import NativeTransferRow, TokenTransferRow

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_DECIMALS = 18
UNKNOWN_SYMBOL = "UNKNOWN"


def parse_token_quantity(raw_value: str | None, decimals: int) -> Decimal:
    """Scale a raw integer amount by `decimals`. Malformed input yields 0."""
    try:
        value = Decimal(str(raw_value).strip())
    except (InvalidOperation, ValueError):
        return Decimal(0)
    if not value.is_finite() or decimals < 0:
        return Decimal(0)
    return abs(value) / (Decimal(10) ** decimals)


def parse_decimals(raw: str | None) -> int:
    try:
        decimals = int(str(raw).strip())
    except (TypeError, ValueError):
        return DEFAULT_TOKEN_DECIMALS
    return decimals if decimals >= 0 else DEFAULT_TOKEN_DECIMALS


def _parse_timestamp(raw: str) -> datetime | None:
    try:
        return datetime.fromtimestamp(int(str(raw).strip()), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


@dataclass
class _AssetAccumulator:
    contract_address: str | None
    symbol: str
    decimals: int
    signed_quantity: Decimal = Decimal(0)


@dataclass
class _GroupBuilder:
    tx_hash: str
    timestamp: datetime
    tokens: dict[AssetId, _AssetAccumulator] = field(default_factory=dict)
    native: _AssetAccumulator | None = None

    def observe_timestamp(self, timestamp: datetime) -> None:
        if timestamp == self.timestamp:
            return
        logger.warning(
            "Feeds disagree on timestamp for tx=%s (%s vs %s); keeping the earliest",
            self.tx_hash,
            self.timestamp.isoformat(),
            timestamp.isoformat(),
        )
        self.timestamp = min(self.timestamp, timestamp)

    def build(self, chain_id: int) -> TransactionGroup:
        token_deltas = [
            delta
            for asset_id, acc in self.tokens.items()
            if (delta := _to_delta(asset_id, acc)) is not None
        ]
        native_delta = None
        if self.native is not None:
            native_delta = _to_delta(build_asset_id(chain_id, None), self.native)
        return TransactionGroup(
            tx_hash=self.tx_hash,
            timestamp=self.timestamp,
            token_deltas=token_deltas,
            native_delta=native_delta,
        )


def _to_delta(asset_id: AssetId, acc: _AssetAccumulator) -> TokenDelta | None:
    if acc.signed_quantity == 0:
        return None
    return TokenDelta(
        asset_id=asset_id,
        contract_address=acc.contract_address,
        symbol=acc.symbol,
        decimals=acc.decimals,
        quantity=abs(acc.signed_quantity),
        direction=Direction.IN if acc.signed_quantity > 0 else Direction.OUT,
    )


def group_transfers_by_tx(
    wallet: str,
    chain_id: int,
    token_rows: Iterable[TokenTransferRow],
    native_rows: Iterable[NativeTransferRow],
) -> list[TransactionGroup]:
    """Merge both transfer feeds into one net-movement group per transaction hash.

    Quantities of the same asset within a transaction are netted; an asset
    that nets to zero produces no leg. Groups come back ascending by timestamp,
    ties keeping first-seen order.
    """
    wallet_lc = wallet.strip().lower()
    builders: dict[str, _GroupBuilder] = {}

    def builder_for(tx_hash: str, timestamp: datetime) -> _GroupBuilder:
        existing = builders.get(tx_hash)
        if existing is None:
            existing = builders[tx_hash] = _GroupBuilder(tx_hash=tx_hash, timestamp=timestamp)
        else:
            existing.observe_timestamp(timestamp)
        return existing

    for token_row in token_rows:
        timestamp = _parse_timestamp(token_row.timestamp)
        if timestamp is None:
            logger.warning("Dropping token transfer with malformed timestamp tx=%s", token_row.hash)
            continue

        contract = token_row.contract_address.strip().lower()
        if not contract:
            logger.warning("Dropping token transfer without contract address tx=%s", token_row.hash)
            continue

        to_address = token_row.to_address.strip().lower()
        decimals = parse_decimals(token_row.token_decimal)
        quantity = parse_token_quantity(token_row.value, decimals)
        signed = quantity if to_address == wallet_lc else -quantity

        builder = builder_for(token_row.hash, timestamp)
        asset_id = build_asset_id(chain_id, contract)
        acc = builder.tokens.get(asset_id)
        if acc is None:
            symbol = (token_row.token_symbol or UNKNOWN_SYMBOL).strip() or UNKNOWN_SYMBOL
            acc = builder.tokens[asset_id] = _AssetAccumulator(
                contract_address=contract,
                symbol=symbol,
                decimals=decimals,
            )
        acc.signed_quantity += signed

    for native_row in native_rows:
        raw_value = native_row.value.strip()
        if raw_value in ("", "0"):
            continue

        to_address = native_row.to_address.strip().lower()
        from_address = native_row.from_address.strip().lower()
        if to_address == wallet_lc:
            direction = Direction.IN
        elif from_address == wallet_lc:
            direction = Direction.OUT
        else:
            continue

        timestamp = _parse_timestamp(native_row.timestamp)
        if timestamp is None:
            logger.warning("Dropping native transfer with malformed timestamp tx=%s", native_row.hash)
            continue

        quantity = parse_token_quantity(raw_value, NATIVE_DECIMALS)
        builder = builder_for(native_row.hash, timestamp)
        if builder.native is None:
            builder.native = _AssetAccumulator(
                contract_address=None,
                symbol=NATIVE_SYMBOL,
                decimals=NATIVE_DECIMALS,
            )
        builder.native.signed_quantity += quantity if direction == Direction.IN else -quantity

    groups = [builder.build(chain_id) for builder in builders.values()]
    groups.sort(key=lambda group: group.timestamp)
    return groups


__all__ = ["group_transfers_by_tx", "parse_decimals", "parse_token_quantity"]
