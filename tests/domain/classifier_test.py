from __future__ import annotations

from decimal import Decimal

from domain.classifier import TransactionKind, classify_group, compute_group_lots, compute_lots
from domain.ledger import Direction, LotSource, TokenDelta, TransactionGroup, build_asset_id
from tests.helpers.factories import BASE_TIME, USDC, WETH

DAI = "0x6b175474e89094c44da98b954eedeac495271d0f"


def _leg(contract: str | None, qty: str, direction: Direction, symbol: str = "TKN") -> TokenDelta:
    return TokenDelta(
        asset_id=build_asset_id(1, contract),
        contract_address=contract,
        symbol=symbol,
        decimals=18,
        quantity=Decimal(qty),
        direction=direction,
    )


def _prices(mapping: dict[str | None, str | None]):
    def price_at(leg: TokenDelta) -> Decimal | None:
        value = mapping.get(leg.contract_address)
        return Decimal(value) if value is not None else None

    return price_at


def test_group_without_inbound_legs_yields_no_lots() -> None:
    group = TransactionGroup(
        tx_hash="0x1",
        timestamp=BASE_TIME,
        token_deltas=[_leg(USDC, "10", Direction.OUT)],
    )

    assert classify_group(group) == TransactionKind.SWAP
    assert compute_group_lots(group, _prices({USDC: "1"})) == []


def test_pure_inflow_is_transfer_priced_at_receipt() -> None:
    group = TransactionGroup(tx_hash="0x1", timestamp=BASE_TIME, token_deltas=[_leg(USDC, "50", Direction.IN)])

    [lot] = compute_group_lots(group, _prices({USDC: "2"}))

    assert classify_group(group) == TransactionKind.TRANSFER
    assert lot.source == LotSource.TRANSFER
    assert lot.qty_in == Decimal(50)
    assert lot.cost_basis_usd_total == Decimal(100)
    assert lot.timestamp == BASE_TIME
    assert lot.asset_id == build_asset_id(1, USDC)


def test_transfer_without_price_has_unknown_cost() -> None:
    group = TransactionGroup(tx_hash="0x1", timestamp=BASE_TIME, token_deltas=[_leg(USDC, "50", Direction.IN)])

    [lot] = compute_group_lots(group, _prices({}))

    assert lot.cost_basis_usd_total is None


def test_native_outflow_swap_allocates_by_relative_usd_value() -> None:
    group = TransactionGroup(
        tx_hash="0xswap",
        timestamp=BASE_TIME,
        token_deltas=[_leg(WETH, "1", Direction.IN), _leg(DAI, "50", Direction.IN)],
        native_delta=_leg(None, "0.1", Direction.OUT, symbol="ETH"),
    )

    lots = compute_group_lots(group, _prices({None: "3000", WETH: "150", DAI: "1"}))

    assert classify_group(group) == TransactionKind.SWAP
    assert [lot.source for lot in lots] == [LotSource.SWAP, LotSource.SWAP]
    assert [lot.cost_basis_usd_total for lot in lots] == [Decimal(225), Decimal(75)]


def test_swap_unpriced_outflow_counts_as_zero() -> None:
    group = TransactionGroup(
        tx_hash="0xswap",
        timestamp=BASE_TIME,
        token_deltas=[_leg(USDC, "100", Direction.OUT), _leg(DAI, "10", Direction.OUT), _leg(WETH, "1", Direction.IN)],
    )

    [lot] = compute_group_lots(group, _prices({USDC: "1", WETH: "200"}))

    assert lot.cost_basis_usd_total == Decimal(100)


def test_swap_with_no_priced_inbound_leg_leaves_cost_unknown() -> None:
    group = TransactionGroup(
        tx_hash="0xswap",
        timestamp=BASE_TIME,
        token_deltas=[_leg(USDC, "100", Direction.OUT), _leg(WETH, "1", Direction.IN), _leg(DAI, "5", Direction.IN)],
    )

    lots = compute_group_lots(group, _prices({USDC: "1"}))

    assert len(lots) == 2
    assert all(lot.cost_basis_usd_total is None for lot in lots)
    assert all(lot.source == LotSource.SWAP for lot in lots)


def test_swap_partially_priced_inbound_gets_zero_share() -> None:
    group = TransactionGroup(
        tx_hash="0xswap",
        timestamp=BASE_TIME,
        token_deltas=[_leg(USDC, "100", Direction.OUT), _leg(WETH, "1", Direction.IN), _leg(DAI, "5", Direction.IN)],
    )

    weth_lot, dai_lot = compute_group_lots(group, _prices({USDC: "1", WETH: "90"}))

    assert weth_lot.cost_basis_usd_total == Decimal(100)
    assert dai_lot.cost_basis_usd_total == Decimal(0)


def test_native_inflow_counts_as_inbound_leg() -> None:
    group = TransactionGroup(
        tx_hash="0x1",
        timestamp=BASE_TIME,
        native_delta=_leg(None, "2", Direction.IN, symbol="ETH"),
    )

    [lot] = compute_group_lots(group, _prices({None: "1000"}))

    assert lot.asset_id == "1:"
    assert lot.contract_address is None
    assert lot.cost_basis_usd_total == Decimal(2000)


def test_compute_lots_emits_one_lot_per_inbound_leg() -> None:
    groups = [
        TransactionGroup(tx_hash="0x1", timestamp=BASE_TIME, token_deltas=[_leg(USDC, "1", Direction.IN)]),
        TransactionGroup(
            tx_hash="0x2",
            timestamp=BASE_TIME,
            token_deltas=[_leg(WETH, "1", Direction.IN), _leg(DAI, "1", Direction.IN)],
        ),
    ]
    seen: list[str] = []

    def price_at(group: TransactionGroup, leg: TokenDelta) -> Decimal | None:
        seen.append(group.tx_hash)
        return Decimal(1)

    lots = compute_lots(groups, price_at)

    assert len(lots) == 3
    assert seen == ["0x1", "0x2", "0x2"]
