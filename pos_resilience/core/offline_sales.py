"""Recording a sale on the terminal when the ledger is out of reach."""
from typing import Any

import structlog

from pos_resilience.core.models import OfflineTransaction, Receipt
from pos_resilience.core.offline_storage import OfflineStorage
from pos_resilience.core.receipts import render_offline_receipt

logger = structlog.get_logger(__name__)


async def record_offline_sale(storage: OfflineStorage, **fields: Any) -> OfflineTransaction:
    """
    Seal, store and print-prepare one offline sale.

    Args:
        storage: Local durable store
        **fields: OfflineTransaction fields except id, timestamp and hash

    Returns:
        OfflineTransaction: The stored transaction
    """
    transaction = OfflineTransaction.new(**fields)
    transaction.integrity_hash = storage.generate_integrity_hash(transaction)

    await storage.store_transaction_with_receipt(
        transaction,
        Receipt(
            id=f"receipt_{transaction.id}",
            transaction_id=transaction.id,
            content=render_offline_receipt(transaction),
            timestamp=transaction.timestamp,
        ),
    )

    logger.info(
        "offline_sale_recorded",
        transaction_id=transaction.id,
        total=str(transaction.total),
        payment_method=transaction.payment_method,
    )
    return transaction
