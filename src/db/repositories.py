from __future__ import annotations

from datetime import timezone
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from db import models
from domain.ledger import AssetId, Holding, HoldingId, Lot, LotId, LotSource


class LotRepository:
    """Append-only access to acquisition lots.

    Lots are written in batches and never updated; they go away only with
    their holding.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def create_many(self, lots: Sequence[Lot]) -> list[Lot]:
        if not lots:
            return []

        ordered = sorted(lots, key=lambda lot: lot.timestamp)
        next_ordinal: dict[UUID, int] = {}
        try:
            for lot in ordered:
                if lot.holding_id not in next_ordinal:
                    next_ordinal[lot.holding_id] = self._next_ordinal(lot.holding_id)
                ordinal = next_ordinal[lot.holding_id]
                next_ordinal[lot.holding_id] = ordinal + 1
                self._session.add(
                    models.LotOrm(
                        id=lot.id,
                        holding_id=lot.holding_id,
                        asset_id=lot.asset_id,
                        timestamp=lot.timestamp,
                        ordinal=ordinal,
                        qty_in=lot.qty_in,
                        cost_basis_usd_total=lot.cost_basis_usd_total,
                        source=lot.source.value,
                    )
                )
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise
        return ordered

    def list_for_holding(self, holding_id: UUID) -> list[Lot]:
        stmt = (
            select(models.LotOrm)
            .where(models.LotOrm.holding_id == holding_id)
            .order_by(models.LotOrm.timestamp.asc(), models.LotOrm.ordinal.asc())
        )
        return [self._to_domain(row) for row in self._session.execute(stmt).scalars()]

    def list_for_asset(self, asset_id: str) -> list[Lot]:
        stmt = (
            select(models.LotOrm)
            .where(models.LotOrm.asset_id == asset_id)
            .order_by(models.LotOrm.timestamp.asc(), models.LotOrm.ordinal.asc())
        )
        return [self._to_domain(row) for row in self._session.execute(stmt).scalars()]

    def _next_ordinal(self, holding_id: UUID) -> int:
        stmt = select(func.max(models.LotOrm.ordinal)).where(models.LotOrm.holding_id == holding_id)
        current = self._session.scalar(stmt)
        return 0 if current is None else current + 1

    @staticmethod
    def _to_domain(orm_lot: models.LotOrm) -> Lot:
        timestamp = orm_lot.timestamp
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return Lot(
            id=LotId(orm_lot.id),
            holding_id=HoldingId(orm_lot.holding_id),
            asset_id=AssetId(orm_lot.asset_id),
            timestamp=timestamp,
            qty_in=orm_lot.qty_in,
            cost_basis_usd_total=orm_lot.cost_basis_usd_total,
            source=LotSource(orm_lot.source),
        )


class HoldingRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def create(self, holding: Holding) -> Holding:
        orm_holding = self._to_orm(holding)
        self._session.add(orm_holding)
        self._session.commit()
        self._session.refresh(orm_holding)
        return self._to_domain(orm_holding)

    def stage(self, holding: Holding) -> None:
        """Add `holding` to the open transaction; the next commit on this session persists it."""
        self._session.add(self._to_orm(holding))

    def get(self, holding_id: UUID) -> Holding | None:
        orm_holding = self._session.get(models.HoldingOrm, holding_id)
        if orm_holding is None:
            return None
        return self._to_domain(orm_holding)

    def list(self) -> list[Holding]:
        rows = self._session.execute(select(models.HoldingOrm).order_by(models.HoldingOrm.symbol)).scalars()
        return [self._to_domain(row) for row in rows]

    def update_cost_basis(self, holding_id: UUID, per_unit: Decimal, currency: str = "USD") -> Holding:
        orm_holding = self._session.get(models.HoldingOrm, holding_id)
        if orm_holding is None:
            raise KeyError(f"Unknown holding {holding_id}")
        orm_holding.cost_basis = per_unit
        orm_holding.cost_basis_currency = currency
        self._session.commit()
        return self._to_domain(orm_holding)

    def delete(self, holding_id: UUID) -> None:
        orm_holding = self._session.get(models.HoldingOrm, holding_id)
        if orm_holding is None:
            return
        self._session.delete(orm_holding)
        self._session.commit()

    @staticmethod
    def _to_orm(holding: Holding) -> models.HoldingOrm:
        return models.HoldingOrm(
            id=holding.id,
            asset_id=holding.asset_id,
            symbol=holding.symbol,
            quantity=holding.quantity,
            cost_basis=holding.cost_basis,
            cost_basis_currency=holding.cost_basis_currency,
        )

    @staticmethod
    def _to_domain(orm_holding: models.HoldingOrm) -> Holding:
        return Holding(
            id=HoldingId(orm_holding.id),
            asset_id=AssetId(orm_holding.asset_id),
            symbol=orm_holding.symbol,
            quantity=orm_holding.quantity,
            cost_basis=orm_holding.cost_basis,
            cost_basis_currency=orm_holding.cost_basis_currency,
        )
