"""Persisted transaction rows for signed-in users."""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import JSON, Date, DateTime, Enum, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from investment_tracker.db.base import Base

TRANSACTION_TYPES = ("BUY", "SELL")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TransactionRecord(Base):
    __tablename__ = "transaction"
    __table_args__ = (
        Index("ix_transaction_owner_position", "owner_id", "position"),
        Index("ix_transaction_owner_symbol", "owner_id", "symbol"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    # entry order within the owner's record set; breaks same-date ties
    position: Mapped[int] = mapped_column(Integer)
    symbol: Mapped[str] = mapped_column(String(20))
    type: Mapped[str] = mapped_column(Enum(*TRANSACTION_TYPES, name="transaction_type"))
    quantity: Mapped[Decimal] = mapped_column(Numeric(18, 8))
    price_per_share: Mapped[Decimal] = mapped_column(Numeric(18, 6))
    fees: Mapped[Decimal] = mapped_column(Numeric(18, 6), default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(Numeric(20, 8))
    trade_date: Mapped[date] = mapped_column(Date, index=True)
    notes: Mapped[str | None] = mapped_column(String(512), nullable=True)
    tags: Mapped[list[str]] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


__all__ = ["TransactionRecord", "TRANSACTION_TYPES"]
