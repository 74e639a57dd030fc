"""
Local durable store for offline transactions and their receipts.

Transactions are upserted by id and only ever mutated to flip `synced`.
Integrity hashes are always recomputed from the stored fields, never
trusted from the stored value.
"""
import hashlib
import json
from datetime import datetime, timezone
from typing import Any, List, Optional

import structlog
from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pos_resilience.core.exceptions import TransactionNotFoundError
from pos_resilience.core.models import OfflineTransaction, Receipt
from pos_resilience.database.connection import get_session_factory
from pos_resilience.database.models import Base, OfflineTransactionRecord, ReceiptRecord
from pos_resilience.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

_TRUE_STRINGS = {"1", "true", "t", "yes", "y"}


def normalize_synced(value: Any) -> bool:
    """
    Read a `synced` flag whatever the storage engine handed back.

    Booleans, 0/1 integers and their string spellings are all accepted.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, (str, bytes)):
        text = value.decode() if isinstance(value, bytes) else value
        return text.strip().lower() in _TRUE_STRINGS
    return bool(value)


class OfflineStorage:
    """
    On-device store owning every offline transaction row.

    The sync service only reads unsynced rows and flips their flag.
    """

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        """
        Initialize offline storage.

        Args:
            session_factory: Optional session factory (defaults to the global one)
        """
        self._session_factory = session_factory or get_session_factory()
        self._initialized = False

    async def init(self) -> None:
        """Create the store's tables if they don't exist."""
        if self._initialized:
            return

        async with self._session_factory() as session:
            conn = await session.connection()
            await conn.run_sync(Base.metadata.create_all)
            await session.commit()

        self._initialized = True
        logger.info("offline_storage_initialized")

    @staticmethod
    def generate_integrity_hash(transaction: OfflineTransaction) -> str:
        """
        Fingerprint the fields that matter for reconciliation.

        SHA-256 over canonical JSON of `items`, `total` and `timestamp`.
        """
        data = json.dumps(
            {
                "items": [item.model_dump(mode="json") for item in transaction.items],
                "total": str(transaction.total),
                "timestamp": transaction.timestamp,
            },
            sort_keys=True,
            separators=(",", ":"),
        )
        return hashlib.sha256(data.encode("utf-8")).hexdigest()

    def validate_integrity(self, transaction: OfflineTransaction) -> bool:
        """Recompute the hash and compare it with the stored one."""
        return self.generate_integrity_hash(transaction) == transaction.integrity_hash

    @staticmethod
    def _to_model(record: OfflineTransactionRecord) -> OfflineTransaction:
        return OfflineTransaction.model_validate({
            **record.payload,
            "id": record.id,
            "synced": normalize_synced(record.synced),
            "integrity_hash": record.integrity_hash,
        })

    @staticmethod
    async def _merge_transaction(session: AsyncSession, transaction: OfflineTransaction) -> None:
        payload = transaction.model_dump(mode="json", exclude={"synced", "integrity_hash"})
        await session.merge(
            OfflineTransactionRecord(
                id=transaction.id,
                timestamp=transaction.timestamp,
                payload=payload,
                integrity_hash=transaction.integrity_hash,
                synced=1 if transaction.synced else 0,
            )
        )

    @staticmethod
    async def _merge_receipt(session: AsyncSession, receipt: Receipt) -> None:
        existing = await session.scalar(
            select(ReceiptRecord).where(ReceiptRecord.transaction_id == receipt.transaction_id)
        )
        if existing is not None and existing.id != receipt.id:
            await session.delete(existing)
            await session.flush()

        await session.merge(
            ReceiptRecord(
                id=receipt.id,
                transaction_id=receipt.transaction_id,
                content=receipt.content,
                timestamp=receipt.timestamp,
            )
        )

    async def store_transaction(self, transaction: OfflineTransaction) -> None:
        """
        Upsert one transaction by id.

        Re-storing an id overwrites the previous row.
        """
        async with self._session_factory() as session:
            await self._merge_transaction(session, transaction)
            await session.commit()

        metrics.record_offline_transaction_stored()
        logger.info(
            "offline_transaction_stored",
            transaction_id=transaction.id,
            total=str(transaction.total),
            synced=transaction.synced,
        )

    async def store_transaction_with_receipt(
        self, transaction: OfflineTransaction, receipt: Receipt
    ) -> None:
        """
        Upsert a transaction and its receipt in one commit.

        Either both rows are written or neither is.
        """
        async with self._session_factory() as session:
            await self._merge_transaction(session, transaction)
            await self._merge_receipt(session, receipt)
            await session.commit()

        metrics.record_offline_transaction_stored()
        logger.info(
            "offline_transaction_stored",
            transaction_id=transaction.id,
            receipt_id=receipt.id,
            total=str(transaction.total),
            synced=transaction.synced,
        )

    async def get_transaction(self, transaction_id: str) -> Optional[OfflineTransaction]:
        """Load one transaction, or None if it is not stored."""
        async with self._session_factory() as session:
            record = await session.get(OfflineTransactionRecord, transaction_id)
            if record is None:
                return None
            return self._to_model(record)

    async def get_unsynced_transactions(self) -> List[OfflineTransaction]:
        """
        Get every transaction not yet confirmed by the ledger, oldest first.

        Never raises: a failed read is logged and reported as an empty list
        so reconciliation can simply try again next cycle.
        """
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(OfflineTransactionRecord)
                    .where(OfflineTransactionRecord.synced == 0)
                    .order_by(OfflineTransactionRecord.timestamp)
                )
                records = list(result.scalars().all())
        except Exception as e:
            logger.error("offline_unsynced_read_failed", error=str(e))
            return []

        transactions: List[OfflineTransaction] = []
        for record in records:
            if normalize_synced(record.synced):
                continue
            try:
                transactions.append(self._to_model(record))
            except (ValidationError, TypeError) as e:
                logger.error(
                    "offline_transaction_unreadable",
                    transaction_id=record.id,
                    error=str(e),
                )

        metrics.set_unsynced_depth(len(transactions))
        return transactions

    async def count_unsynced(self) -> int:
        """Count transactions waiting for sync."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(OfflineTransactionRecord.synced, func.count())
                .group_by(OfflineTransactionRecord.synced)
            )
            count = sum(n for flag, n in result.all() if not normalize_synced(flag))

        metrics.set_unsynced_depth(count)
        return count

    async def mark_transaction_synced(self, transaction_id: str) -> None:
        """
        Flag a transaction as confirmed by the ledger.

        Raises:
            TransactionNotFoundError: If the id is not stored
        """
        async with self._session_factory() as session:
            record = await session.get(OfflineTransactionRecord, transaction_id)
            if record is None:
                raise TransactionNotFoundError(f"Transaction {transaction_id} not found")

            if not normalize_synced(record.synced):
                record.synced_at = datetime.now(timezone.utc)
            record.synced = 1
            await session.commit()

        logger.info("offline_transaction_marked_synced", transaction_id=transaction_id)

    async def store_receipt(self, receipt: Receipt) -> None:
        """Upsert the receipt for a transaction."""
        async with self._session_factory() as session:
            await self._merge_receipt(session, receipt)
            await session.commit()

        logger.info(
            "offline_receipt_stored",
            receipt_id=receipt.id,
            transaction_id=receipt.transaction_id,
        )

    async def get_receipt(self, transaction_id: str) -> Optional[Receipt]:
        """Get the receipt stored for a transaction."""
        async with self._session_factory() as session:
            record = await session.scalar(
                select(ReceiptRecord).where(ReceiptRecord.transaction_id == transaction_id)
            )
            if record is None:
                return None
            return Receipt(
                id=record.id,
                transaction_id=record.transaction_id,
                content=record.content,
                timestamp=record.timestamp,
            )
