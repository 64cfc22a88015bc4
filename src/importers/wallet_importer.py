from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping, Protocol, TypeVar

from clients.etherscan import build_default_client
from config import config
from db.repositories import HoldingRepository, LotRepository
from domain.aggregation import aggregate_lots_cost
from domain.classifier import compute_lots
from domain.ledger import AssetId, Holding, HoldingId, Lot, TokenDelta, TransactionGroup, WalletAddress
from domain.normalizer import group_transfers_by_tx
from domain.pricing import HistoricalPriceSource, PriceAsset
from domain.transfers import NativeTransferRow, TokenTransferRow
from errors import ImportCancelledError, NetworkError
from services.coingecko_source import build_default_source
from services.price_batch import HistoricalPriceBatchResolver, PriceKey

logger = logging.getLogger(__name__)

COST_BASIS_CURRENCY = "USD"
COST_BASIS_QUANTUM = Decimal("0.00000001")

T = TypeVar("T")


class TransferHistoryClient(Protocol):
    def list_token_transfers(self, wallet: WalletAddress | str) -> list[TokenTransferRow]: ...

    def list_native_transfers(self, wallet: WalletAddress | str) -> list[NativeTransferRow]: ...


@dataclass
class ImportResult:
    lots: list[Lot] = field(default_factory=list)
    unpriced_count: int = 0
    groups_seen: int = 0
    diagnostics: list[str] = field(default_factory=list)


def price_asset_for(leg: TokenDelta) -> PriceAsset:
    return PriceAsset(contract_address=leg.contract_address, symbol=leg.symbol)


def collect_price_requests(groups: list[TransactionGroup]) -> set[PriceKey]:
    return {(price_asset_for(leg), group.timestamp) for group in groups for leg in group.legs}


class WalletCostBasisImporter:
    """Rebuild acquisition lots for a wallet's holdings from its chain history.

    One run fetches both transfer feeds, groups them per transaction, prices
    every leg, allocates cost basis, writes all lots in a single batch and
    refreshes each affected holding's average cost. Both repositories must
    share one session so holdings created by a run commit with its lots.
    """

    def __init__(
        self,
        *,
        transfers: TransferHistoryClient,
        prices: HistoricalPriceSource,
        lot_repository: LotRepository,
        holding_repository: HoldingRepository,
        chain_id: int = 1,
        max_price_workers: int = 4,
        price_window_padding: timedelta = timedelta(hours=1),
    ) -> None:
        self.transfers = transfers
        self.resolver = HistoricalPriceBatchResolver(
            prices,
            max_workers=max_price_workers,
            window_padding=price_window_padding,
        )
        self.lot_repository = lot_repository
        self.holding_repository = holding_repository
        self.chain_id = chain_id

    def run(
        self,
        wallet: WalletAddress | str,
        holding_id_by_asset_id: Mapping[AssetId, HoldingId],
        *,
        cancel_event: threading.Event | None = None,
        create_missing_holdings: bool = False,
    ) -> ImportResult:
        """Import lots for `wallet`.

        Only assets present in `holding_id_by_asset_id` get lots, unless
        `create_missing_holdings` is set, in which case a holding is created
        for every other asset the wallet received.
        """
        result = ImportResult()
        holding_ids = dict(holding_id_by_asset_id)
        token_rows, native_rows = self._fetch_feeds(wallet, result)
        if token_rows is None and native_rows is None:
            logger.warning("Both transfer feeds failed for wallet=%s; no lots imported", wallet)
            return result
        self._check_cancelled(cancel_event)

        groups = group_transfers_by_tx(wallet, self.chain_id, token_rows or [], native_rows or [])
        result.groups_seen = len(groups)
        new_holdings = self._plan_missing_holdings(groups, holding_ids) if create_missing_holdings else []

        prices = self.resolver.resolve(collect_price_requests(groups))
        self._check_cancelled(cancel_event)

        computed = compute_lots(groups, lambda group, leg: prices.get((price_asset_for(leg), group.timestamp)))

        batch: list[Lot] = []
        for computed_lot in computed:
            holding_id = holding_ids.get(computed_lot.asset_id)
            if holding_id is None:
                continue
            if computed_lot.cost_basis_usd_total is None:
                result.unpriced_count += 1
            batch.append(
                Lot(
                    holding_id=holding_id,
                    asset_id=computed_lot.asset_id,
                    timestamp=computed_lot.timestamp,
                    qty_in=computed_lot.qty_in,
                    cost_basis_usd_total=computed_lot.cost_basis_usd_total,
                    source=computed_lot.source,
                )
            )

        self._check_cancelled(cancel_event)
        if not batch:
            result.diagnostics.append("No inbound transfers matched the tracked holdings")
            return result

        # New holdings and the lot batch share one commit.
        for holding in new_holdings:
            self.holding_repository.stage(holding)
        result.lots = self.lot_repository.create_many(batch)
        for holding in new_holdings:
            logger.info("Created holding %s for asset=%s symbol=%s", holding.id, holding.asset_id, holding.symbol)
        self._refresh_holding_costs({lot.holding_id for lot in result.lots})

        logger.info(
            "Imported %d lots (%d unpriced) from %d transactions for wallet=%s",
            len(result.lots),
            result.unpriced_count,
            result.groups_seen,
            wallet,
        )
        if result.unpriced_count:
            result.diagnostics.append(f"{result.unpriced_count} lot(s) unpriced; set cost basis manually")
        return result

    def _fetch_feeds(
        self, wallet: WalletAddress | str, result: ImportResult
    ) -> tuple[list[TokenTransferRow] | None, list[NativeTransferRow] | None]:
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="transfer-feed") as executor:
            token_future = executor.submit(self.transfers.list_token_transfers, wallet)
            native_future = executor.submit(self.transfers.list_native_transfers, wallet)
            token_rows = self._feed_result("token transfers", token_future, result)
            native_rows = self._feed_result("native transfers", native_future, result)
        return token_rows, native_rows

    @staticmethod
    def _feed_result(name: str, future: Future[list[T]], result: ImportResult) -> list[T] | None:
        # ProviderError propagates and aborts the run.
        try:
            return future.result()
        except NetworkError as exc:
            logger.warning("Feed %s unavailable: %s", name, exc)
            result.diagnostics.append(f"{name} unavailable: {exc}")
            return None

    @staticmethod
    def _plan_missing_holdings(
        groups: list[TransactionGroup], holding_ids: dict[AssetId, HoldingId]
    ) -> list[Holding]:
        planned: list[Holding] = []
        for group in groups:
            for leg in group.inflows:
                if leg.asset_id in holding_ids:
                    continue
                holding = Holding(asset_id=leg.asset_id, symbol=leg.symbol)
                holding_ids[leg.asset_id] = holding.id
                planned.append(holding)
        return planned

    def _refresh_holding_costs(self, holding_ids: set[HoldingId]) -> None:
        for holding_id in holding_ids:
            aggregate = aggregate_lots_cost(self.lot_repository.list_for_holding(holding_id))
            if aggregate is None:
                continue
            per_unit = aggregate.cost_basis_usd_per_unit.quantize(COST_BASIS_QUANTUM, rounding=ROUND_HALF_UP)
            self.holding_repository.update_cost_basis(holding_id, per_unit, COST_BASIS_CURRENCY)

    @staticmethod
    def _check_cancelled(cancel_event: threading.Event | None) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise ImportCancelledError("Wallet import cancelled; no lots written")


def build_default_importer(
    lot_repository: LotRepository,
    holding_repository: HoldingRepository,
) -> WalletCostBasisImporter:
    settings = config()
    return WalletCostBasisImporter(
        transfers=build_default_client(),
        prices=build_default_source(),
        lot_repository=lot_repository,
        holding_repository=holding_repository,
        chain_id=settings.chain_id,
        max_price_workers=settings.max_concurrent_price_requests,
        price_window_padding=timedelta(minutes=settings.price_window_padding_minutes),
    )


__all__ = ["ImportResult", "WalletCostBasisImporter", "build_default_importer", "collect_price_requests"]
