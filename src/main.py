from __future__ import annotations

import argparse
import logging
from decimal import Decimal, InvalidOperation
from typing import Sequence
from uuid import UUID

from db.db import init_db
from db.repositories import HoldingRepository, LotRepository
from domain.aggregation import aggregate_lots_cost
from domain.fifo import FifoResult, compute_fifo_sell
from errors import CostBasisError
from importers.wallet_importer import ImportResult, build_default_importer
from utils.formatting import format_usd, format_decimal

logger = logging.getLogger(__name__)


def run_import(wallet: str, database_url: str | None) -> ImportResult:
    session = init_db(database_url)
    lot_repository = LotRepository(session)
    holding_repository = HoldingRepository(session)
    importer = build_default_importer(lot_repository, holding_repository)

    existing = {holding.asset_id: holding.id for holding in holding_repository.list()}
    result = importer.run(wallet, existing, create_missing_holdings=True)

    print(f"Imported {len(result.lots)} lots from {result.groups_seen} transactions for {wallet}")
    if result.unpriced_count:
        print(f"  {result.unpriced_count} unpriced (set manually)")
    for message in result.diagnostics:
        print(f"  ! {message}")
    print_holdings_summary(holding_repository, lot_repository)
    return result


def run_sell(holding_id: UUID, quantity: Decimal, price: Decimal, database_url: str | None) -> FifoResult:
    session = init_db(database_url)
    lots = LotRepository(session).list_for_holding(holding_id)
    result = compute_fifo_sell(lots, quantity, price)

    print(f"Sell {format_decimal(quantity)} @ {format_usd(price)} USD from holding {holding_id}")
    print(f"  Proceeds:           {format_usd(result.proceeds)}")
    print(f"  Cost consumed:      {format_usd(result.total_cost_consumed)}")
    print(f"  Realized gain/loss: {format_usd(result.realized_gain_loss)}")
    if result.unknown_cost_quantity:
        print(f"  Quantity with unknown cost (counted as zero): {format_decimal(result.unknown_cost_quantity)}")
    if result.uncovered_quantity:
        print(f"  Quantity not covered by lots (counted as zero): {format_decimal(result.uncovered_quantity)}")
    return result


def print_holdings_summary(holding_repository: HoldingRepository, lot_repository: LotRepository) -> None:
    print("Holdings:")
    holdings = holding_repository.list()
    if not holdings:
        print("  (empty)")
        return

    rows: list[tuple[str, str, str, str]] = []
    for holding in holdings:
        aggregate = aggregate_lots_cost(lot_repository.list_for_holding(holding.id))
        quantity_text = format_decimal(aggregate.total_quantity if aggregate else None)
        cost_text = format_decimal(holding.cost_basis)
        unknown_text = str(aggregate.unknown_cost_lot_count) if aggregate else "0"
        rows.append((holding.symbol, quantity_text, cost_text, unknown_text))

    labels = ("Asset", "Lot qty", "Cost/unit USD", "Unpriced")
    widths = [max(len(label), max(len(row[idx]) for row in rows)) for idx, label in enumerate(labels)]
    header = f"{labels[0]:<{widths[0]}} " + " ".join(f"{label:>{widths[i]}}" for i, label in enumerate(labels) if i)

    lines = [header, "-" * len(header)]
    for row in rows:
        lines.append(f"{row[0]:<{widths[0]}} " + " ".join(f"{value:>{widths[i]}}" for i, value in enumerate(row) if i))
    lines.append("-" * len(header))
    print("\n".join(lines))


def _decimal_arg(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}") from exc


def main(argv: Sequence[str] | None = None) -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    parser = argparse.ArgumentParser(description="Rebuild cost-basis lots from wallet history and price sales FIFO.")
    parser.add_argument("--database-url", default=None, help="SQLAlchemy URL (default: from settings)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    import_parser = subparsers.add_parser("import", help="Import acquisition lots for a wallet.")
    import_parser.add_argument("--wallet", required=True)

    sell_parser = subparsers.add_parser("sell", help="Compute FIFO realized gain/loss for a sale.")
    sell_parser.add_argument("--holding-id", type=UUID, required=True)
    sell_parser.add_argument("--quantity", type=_decimal_arg, required=True)
    sell_parser.add_argument("--price", type=_decimal_arg, required=True)

    args = parser.parse_args(argv)
    try:
        if args.command == "import":
            run_import(args.wallet, args.database_url)
        else:
            run_sell(args.holding_id, args.quantity, args.price, args.database_url)
    except CostBasisError as exc:
        logger.error("%s failed: %s", args.command, exc)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
