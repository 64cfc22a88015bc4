from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator


class DecimalAsString(TypeDecorator):
    impl = String
    cache_ok = True

    def process_bind_param(self, value: Decimal | None, dialect: object) -> str | None:
        if value is None:
            return None
        return str(value)

    def process_result_value(self, value: str | None, dialect: object) -> Decimal | None:
        if value is None:
            return None
        return Decimal(value)


class Base(DeclarativeBase):
    pass


class HoldingOrm(Base):
    __tablename__ = "holdings"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    asset_id: Mapped[str] = mapped_column(String, nullable=False)
    symbol: Mapped[str] = mapped_column(String, nullable=False)
    quantity: Mapped[Decimal | None] = mapped_column(DecimalAsString, nullable=True)
    cost_basis: Mapped[Decimal | None] = mapped_column(DecimalAsString, nullable=True)
    cost_basis_currency: Mapped[str | None] = mapped_column(String, nullable=True)

    lots: Mapped[list["LotOrm"]] = relationship(cascade="all, delete-orphan", back_populates="holding")


class LotOrm(Base):
    __tablename__ = "lots"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    holding_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("holdings.id", ondelete="CASCADE"), nullable=False)
    asset_id: Mapped[str] = mapped_column(String, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ordinal: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    qty_in: Mapped[Decimal] = mapped_column(DecimalAsString, nullable=False)
    cost_basis_usd_total: Mapped[Decimal | None] = mapped_column(DecimalAsString, nullable=True)
    source: Mapped[str] = mapped_column(String, nullable=False)

    holding: Mapped[HoldingOrm] = relationship(back_populates="lots")

    __table_args__ = (
        Index("ix_lots_holding_order", "holding_id", "timestamp", "ordinal"),
        Index("ix_lots_asset", "asset_id"),
    )
