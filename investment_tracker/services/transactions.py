"""Transaction bookkeeping on top of a pluggable repository."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Mapping, Sequence

from .lots import (
    ZERO,
    InsufficientSharesError,
    Portfolio,
    Position,
    Transaction,
    TransactionType,
    calculate_position,
    calculate_positions,
    compute_total_amount,
    group_by_symbol,
    normalize_symbol,
    quantize_price,
    quantize_shares,
)
from .portfolio import build_portfolio
from .repository import TransactionRepository
from .validation import SellValidation, validate_sell

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = frozenset(
    {"symbol", "type", "quantity", "price_per_share", "date", "fees", "notes", "tags"}
)
_REQUIRED_FIELDS = frozenset({"symbol", "type", "quantity", "price_per_share", "date"})


class TransactionNotFoundError(LookupError):
    """Raised when a transaction id is not present in the active store."""

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction {transaction_id} not found")


@dataclass(frozen=True)
class TransactionDraft:
    """User-entered fields of a new transaction."""

    symbol: str
    type: TransactionType
    quantity: Decimal
    price_per_share: Decimal
    date: date
    fees: Decimal | None = None
    notes: str | None = None
    tags: tuple[str, ...] = ()


class TransactionService:
    """CRUD, validation and position queries over one user's record set."""

    def __init__(self, repository: TransactionRepository):
        self.repository = repository

    async def list_transactions(self, symbol: str | None = None) -> list[Transaction]:
        """Return transactions newest first, optionally for one symbol."""

        transactions = await self.repository.load()
        indexed = list(enumerate(transactions))
        if symbol:
            normalized = normalize_symbol(symbol)
            indexed = [(i, tx) for i, tx in indexed if tx.symbol == normalized]
        indexed.sort(key=lambda item: (item[1].date, item[0]), reverse=True)
        return [tx for _, tx in indexed]

    async def get_transaction(self, transaction_id: str) -> Transaction:
        transactions = await self.repository.load()
        return transactions[_index_of(transactions, transaction_id)]

    async def create_transaction(self, draft: TransactionDraft) -> Transaction:
        transactions = await self.repository.load()
        transaction = Transaction.create(
            id=uuid.uuid4().hex,
            symbol=draft.symbol,
            type=draft.type,
            quantity=draft.quantity,
            price_per_share=draft.price_per_share,
            date=draft.date,
            fees=draft.fees,
            notes=draft.notes,
            tags=draft.tags,
        )
        if transaction.type is TransactionType.SELL:
            self._require_sellable(transaction, transactions)

        updated = [*transactions, transaction]
        _ensure_consistent(updated, {transaction.symbol})
        await self.repository.save(updated)
        logger.info(
            "Recorded %s %s %s @ %s",
            transaction.type.value,
            transaction.quantity,
            transaction.symbol,
            transaction.price_per_share,
        )
        return transaction

    async def update_transaction(self, transaction_id: str, changes: Mapping[str, Any]) -> Transaction:
        """Apply a partial edit; ``total_amount`` is re-derived from the result."""

        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Unsupported fields: {', '.join(sorted(unknown))}")

        transactions = await self.repository.load()
        index = _index_of(transactions, transaction_id)
        current = transactions[index]
        edited = _apply_changes(current, changes)

        others = transactions[:index] + transactions[index + 1 :]
        if edited.type is TransactionType.SELL:
            self._require_sellable(edited, others)

        updated = list(transactions)
        updated[index] = edited
        _ensure_consistent(updated, {current.symbol, edited.symbol})
        await self.repository.save(updated)
        logger.info("Updated transaction %s", transaction_id)
        return edited

    async def delete_transaction(self, transaction_id: str) -> Transaction:
        transactions = await self.repository.load()
        index = _index_of(transactions, transaction_id)
        removed = transactions[index]
        remaining = transactions[:index] + transactions[index + 1 :]
        _ensure_consistent(remaining, {removed.symbol})
        await self.repository.save(remaining)
        logger.info("Deleted transaction %s", transaction_id)
        return removed

    async def validate_sell(
        self,
        symbol: str,
        quantity: Decimal,
        *,
        exclude_id: str | None = None,
    ) -> SellValidation:
        transactions = await self.repository.load()
        if exclude_id is not None:
            transactions = [tx for tx in transactions if tx.id != exclude_id]
        return validate_sell(symbol, quantity, transactions)

    async def positions(self, *, include_closed: bool = False) -> list[Position]:
        return calculate_positions(await self.repository.load(), include_closed=include_closed)

    async def portfolio(self, prices: Mapping[str, Decimal] | None = None) -> Portfolio:
        return build_portfolio(await self.repository.load(), prices)

    async def symbols(self) -> list[str]:
        return list(group_by_symbol(await self.repository.load()))

    @staticmethod
    def _require_sellable(sell: Transaction, existing: Iterable[Transaction]) -> None:
        result = validate_sell(sell.symbol, sell.quantity, existing)
        if not result.valid:
            raise InsufficientSharesError(
                sell.symbol,
                quantize_shares(sell.quantity),
                result.available_shares,
                transaction_id=sell.id,
            )


def _index_of(transactions: Sequence[Transaction], transaction_id: str) -> int:
    for index, tx in enumerate(transactions):
        if tx.id == transaction_id:
            return index
    raise TransactionNotFoundError(transaction_id)


def _apply_changes(current: Transaction, changes: Mapping[str, Any]) -> Transaction:
    fields: dict[str, Any] = {}
    for key, value in changes.items():
        if value is None and key in _REQUIRED_FIELDS:
            raise ValueError(f"{key} cannot be cleared")
        if key == "symbol":
            value = normalize_symbol(value)
        elif key == "type":
            value = TransactionType(value.upper() if isinstance(value, str) else value)
        elif key == "quantity":
            value = quantize_shares(value)
            if value <= 0:
                raise ValueError("quantity rounds to zero shares")
        elif key in ("price_per_share", "fees"):
            value = quantize_price(value) if value is not None else ZERO
        elif key == "tags":
            value = tuple(value or ())
        fields[key] = value
    edited = replace(current, **fields)
    return replace(
        edited,
        total_amount=compute_total_amount(
            edited.type, edited.quantity, edited.price_per_share, edited.fees
        ),
    )


def _ensure_consistent(transactions: Iterable[Transaction], symbols: Iterable[str]) -> None:
    """Re-run the engine for ``symbols`` so no later sell is left uncovered."""

    grouped = group_by_symbol(transactions)
    for symbol in symbols:
        history = grouped.get(normalize_symbol(symbol))
        if history:
            calculate_position(history)


__all__ = ["TransactionDraft", "TransactionNotFoundError", "TransactionService"]
