from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from typing import NewType
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

ChainId = NewType("ChainId", int)
WalletAddress = NewType("WalletAddress", str)
AssetId = NewType("AssetId", str)
HoldingId = NewType("HoldingId", UUID)
LotId = NewType("LotId", UUID)

NATIVE_SYMBOL = "ETH"
NATIVE_DECIMALS = 18


def build_asset_id(chain_id: int, contract_address: str | None) -> AssetId:
    """`chainId:contract` for tokens, `chainId:` for the chain's native currency."""
    address = (contract_address or "").strip().lower()
    return AssetId(f"{chain_id}:{address}")


class Direction(StrEnum):
    IN = "in"
    OUT = "out"


class LotSource(StrEnum):
    TRANSFER = "transfer"
    SWAP = "swap"


class TokenDelta(BaseModel):
    """Net movement of one asset within one transaction, relative to the tracked wallet."""

    model_config = ConfigDict(frozen=True)

    asset_id: AssetId
    contract_address: str | None
    symbol: str
    decimals: int
    quantity: Decimal
    direction: Direction

    @model_validator(mode="after")
    def _validate_quantity(self) -> TokenDelta:
        if self.quantity < 0:
            raise ValueError("TokenDelta.quantity must be >= 0")
        return self

    @property
    def is_native(self) -> bool:
        return self.contract_address is None


class TransactionGroup(BaseModel):
    tx_hash: str
    timestamp: datetime
    token_deltas: list[TokenDelta] = Field(default_factory=list)
    native_delta: TokenDelta | None = None

    @property
    def legs(self) -> list[TokenDelta]:
        """Token legs followed by the native leg, if any."""
        if self.native_delta is None:
            return list(self.token_deltas)
        return [*self.token_deltas, self.native_delta]

    @property
    def inflows(self) -> list[TokenDelta]:
        return [leg for leg in self.legs if leg.direction == Direction.IN]

    @property
    def outflows(self) -> list[TokenDelta]:
        return [leg for leg in self.legs if leg.direction == Direction.OUT]


class ComputedLot(BaseModel):
    """A lot derived from chain history, before it is attached to a holding.

    `cost_basis_usd_total` of None means "unknown", never zero.
    """

    asset_id: AssetId
    contract_address: str | None
    timestamp: datetime
    qty_in: Decimal
    cost_basis_usd_total: Decimal | None
    source: LotSource

    @model_validator(mode="after")
    def _validate_amounts(self) -> ComputedLot:
        _check_lot_amounts(self.qty_in, self.cost_basis_usd_total)
        return self


class Lot(BaseModel):
    """A persisted acquisition lot. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    id: LotId = Field(default_factory=lambda: LotId(uuid4()))
    holding_id: HoldingId
    asset_id: AssetId
    timestamp: datetime
    qty_in: Decimal
    cost_basis_usd_total: Decimal | None = None
    source: LotSource

    @model_validator(mode="after")
    def _validate_amounts(self) -> Lot:
        _check_lot_amounts(self.qty_in, self.cost_basis_usd_total)
        return self

    @property
    def has_known_cost(self) -> bool:
        return self.cost_basis_usd_total is not None


class Holding(BaseModel):
    id: HoldingId = Field(default_factory=lambda: HoldingId(uuid4()))
    asset_id: AssetId
    symbol: str
    quantity: Decimal | None = None
    cost_basis: Decimal | None = None
    cost_basis_currency: str | None = None


def _check_lot_amounts(qty_in: Decimal, cost_basis_usd_total: Decimal | None) -> None:
    if qty_in < 0:
        raise ValueError("qty_in must be >= 0")
    if cost_basis_usd_total is not None and cost_basis_usd_total < 0:
        raise ValueError("cost_basis_usd_total must be >= 0")
