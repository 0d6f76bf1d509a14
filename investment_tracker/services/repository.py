"""Transaction storage backends.

Two interchangeable stores satisfy the same ``load``/``save`` contract: a JSON
file used for anonymous sessions and a relational store scoped to a signed-in
owner. Both treat the record set as a whole; ``save`` replaces what was there
before (single writer, last write wins).
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol, Sequence

from pydantic import TypeAdapter, ValidationError
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from investment_tracker.config import TrackerSettings
from investment_tracker.db import Database
from investment_tracker.models import TransactionRecord

from .lots import Transaction, TransactionType, compute_total_amount

logger = logging.getLogger(__name__)

_TRANSACTIONS_ADAPTER = TypeAdapter(list[Transaction])


class RepositoryError(RuntimeError):
    """Raised when stored transactions cannot be read or written."""


class TransactionRepository(Protocol):
    """Whole-set storage for one user's transactions."""

    async def load(self) -> list[Transaction]:
        ...

    async def save(self, transactions: Sequence[Transaction]) -> None:
        ...


class LocalTransactionRepository:
    """JSON file store for transactions of anonymous users."""

    def __init__(self, path: Path | str):
        self.path = Path(path)

    async def load(self) -> list[Transaction]:
        if not self.path.exists():
            return []
        try:
            raw = self.path.read_bytes()
            if not raw.strip():
                return []
            transactions = _TRANSACTIONS_ADAPTER.validate_json(raw)
        except (OSError, ValidationError) as exc:
            logger.error("Could not read transactions from %s: %s", self.path, exc)
            raise RepositoryError(f"Unreadable transaction store at {self.path}") from exc
        logger.debug("Loaded %d transactions from %s", len(transactions), self.path)
        return transactions

    async def save(self, transactions: Sequence[Transaction]) -> None:
        payload = _TRANSACTIONS_ADAPTER.dump_json(list(transactions), indent=2)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            # write-then-rename so a crash never leaves a truncated store behind
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
            with os.fdopen(fd, "wb") as handle:
                handle.write(payload)
            os.replace(tmp_name, self.path)
        except OSError as exc:
            logger.error("Could not write transactions to %s: %s", self.path, exc)
            raise RepositoryError(f"Unwritable transaction store at {self.path}") from exc
        logger.debug("Saved %d transactions to %s", len(transactions), self.path)


class SqlTransactionRepository:
    """Relational store holding the transactions of a single owner."""

    def __init__(self, database: Database, owner_id: str):
        self.database = database
        self.owner_id = owner_id

    async def load(self) -> list[Transaction]:
        stmt = (
            select(TransactionRecord)
            .where(TransactionRecord.owner_id == self.owner_id)
            .order_by(TransactionRecord.position)
        )
        try:
            async with self.database.session() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as exc:
            logger.exception("Failed to load transactions for owner %s", self.owner_id)
            raise RepositoryError("Could not load transactions") from exc
        return [_to_transaction(row) for row in rows]

    async def save(self, transactions: Sequence[Transaction]) -> None:
        try:
            async with self.database.session() as session:
                async with session.begin():
                    await session.execute(
                        delete(TransactionRecord).where(TransactionRecord.owner_id == self.owner_id)
                    )
                    session.add_all(
                        _to_record(tx, self.owner_id, index) for index, tx in enumerate(transactions)
                    )
        except SQLAlchemyError as exc:
            logger.exception("Failed to save transactions for owner %s", self.owner_id)
            raise RepositoryError("Could not save transactions") from exc
        logger.debug("Saved %d transactions for owner %s", len(transactions), self.owner_id)


def _to_record(tx: Transaction, owner_id: str, index: int) -> TransactionRecord:
    return TransactionRecord(
        id=tx.id,
        owner_id=owner_id,
        position=index,
        symbol=tx.symbol,
        type=tx.type.value,
        quantity=tx.quantity,
        price_per_share=tx.price_per_share,
        fees=tx.fees,
        total_amount=tx.total_amount,
        trade_date=tx.date,
        notes=tx.notes,
        tags=list(tx.tags),
    )


def _to_transaction(row: TransactionRecord) -> Transaction:
    tx_type = TransactionType(row.type)
    # the total column is coarser than quantity times price, so derive it again
    return Transaction(
        id=row.id,
        symbol=row.symbol,
        type=tx_type,
        quantity=row.quantity,
        price_per_share=row.price_per_share,
        date=row.trade_date,
        total_amount=compute_total_amount(tx_type, row.quantity, row.price_per_share, row.fees),
        fees=row.fees,
        notes=row.notes,
        tags=tuple(row.tags or ()),
    )


def select_repository(
    user_id: str | None,
    *,
    settings: TrackerSettings,
    database: Database,
) -> TransactionRepository:
    """Pick the store for a request: signed-in users get the database."""

    if user_id:
        return SqlTransactionRepository(database, user_id)
    return LocalTransactionRepository(settings.local_store_path)


__all__ = [
    "RepositoryError",
    "TransactionRepository",
    "LocalTransactionRepository",
    "SqlTransactionRepository",
    "select_repository",
]
