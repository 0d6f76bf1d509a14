"""Database model exports."""

from .transaction import TRANSACTION_TYPES, TransactionRecord

__all__ = ["TransactionRecord", "TRANSACTION_TYPES"]
