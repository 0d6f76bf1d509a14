"""One-way copy of locally stored transactions into a signed-in user's store."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .repository import TransactionRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MigrationResult:
    total: int
    migrated: int
    skipped: int

    @property
    def message(self) -> str:
        if self.total == 0:
            return "No local transactions to migrate"
        return f"Migrated {self.migrated} of {self.total} transactions"


async def migrate_transactions(
    source: TransactionRepository,
    target: TransactionRepository,
) -> MigrationResult:
    """Append source transactions missing from ``target``, matched by id.

    The source is only read. Running the migration again copies nothing new.
    """

    incoming = await source.load()
    if not incoming:
        return MigrationResult(total=0, migrated=0, skipped=0)

    existing = await target.load()
    known_ids = {tx.id for tx in existing}
    fresh = [tx for tx in incoming if tx.id not in known_ids]
    if fresh:
        await target.save([*existing, *fresh])

    result = MigrationResult(
        total=len(incoming),
        migrated=len(fresh),
        skipped=len(incoming) - len(fresh),
    )
    logger.info("Transaction migration finished: %s", result)
    return result


__all__ = ["MigrationResult", "migrate_transactions"]
