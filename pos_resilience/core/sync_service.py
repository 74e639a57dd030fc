"""
Reconciliation of offline transactions with the remote order ledger.

Each cycle drains unsynced transactions one at a time:
1. Recompute and check the integrity hash
2. Submit order header + line items to the ledger
3. Flag the local row as synced once the ledger accepted it

A failed record stays unsynced and is picked up again next cycle.
"""
import random
import string
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog

from pos_resilience.core.exceptions import TransactionNotFoundError
from pos_resilience.core.models import OfflineTransaction
from pos_resilience.core.offline_storage import OfflineStorage
from pos_resilience.integrations.order_ledger import OrderLedgerClient
from pos_resilience.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

Notifier = Callable[[str, str], Awaitable[None]]


def generate_order_number(now: Optional[float] = None) -> str:
    """`OFF-<epoch ms>-<9 base36 chars>`, used as a best-effort dedup key."""
    millis = int((now if now is not None else time.time()) * 1000)
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"OFF-{millis}-{suffix}"


def build_order(transaction: OfflineTransaction, order_number: str) -> Dict[str, Any]:
    """Order header as written to the ledger."""
    return {
        "order_number": order_number,
        "store_id": transaction.store_id,
        "user_id": transaction.user_id,
        "business_id": transaction.business_id,
        "customer_id": transaction.customer_id,
        "subtotal": str(transaction.subtotal),
        "tax_amount": str(transaction.tax),
        "tip_amount": str(transaction.tip),
        "discount_amount": str(transaction.discount),
        "total": str(transaction.total),
        "payment_method": transaction.payment_method,
        "status": "completed",
        "created_at": transaction.timestamp,
    }


def build_order_items(transaction: OfflineTransaction) -> List[Dict[str, Any]]:
    """Line items as written to the ledger (the ledger adds `order_id`)."""
    return [
        {
            "product_id": item.product_id,
            "quantity": item.quantity,
            "unit_price": str(item.unit_price),
            "total_price": str(item.line_total),
            "shipping_required": item.shipping_required,
        }
        for item in transaction.items
    ]


class SyncService:
    """
    Drains the offline store into the order ledger.

    Only one drain runs at a time; a call made while one is in flight
    returns zero counts instead of queueing.
    """

    def __init__(
        self,
        storage: OfflineStorage,
        ledger: OrderLedgerClient,
        notifier: Optional[Notifier] = None,
    ):
        """
        Initialize sync service.

        Args:
            storage: Local durable store
            ledger: Remote order ledger client
            notifier: Coroutine receiving (level, message) summaries for the cashier
        """
        self.storage = storage
        self.ledger = ledger
        self.notifier = notifier or self._default_notifier
        self._is_syncing = False
        self.last_result: Optional[Dict[str, int]] = None
        self.last_synced_at: Optional[datetime] = None

    async def _default_notifier(self, level: str, message: str) -> None:
        """Default notifier that just logs the summary."""
        logger.info("sync_notification", level=level, message=message)

    @property
    def is_syncing(self) -> bool:
        return self._is_syncing

    async def _sync_transaction(self, transaction: OfflineTransaction) -> bool:
        """
        Reconcile one transaction.

        Returns:
            bool: True if the ledger accepted it
        """
        if not self.storage.validate_integrity(transaction):
            logger.error("sync_integrity_check_failed", transaction_id=transaction.id)
            metrics.record_sync_record("integrity_failed")
            return False

        order_number = generate_order_number()

        try:
            await self.ledger.submit_order(
                build_order(transaction, order_number),
                build_order_items(transaction),
            )
        except Exception as e:
            logger.error(
                "sync_transaction_failed",
                transaction_id=transaction.id,
                order_number=order_number,
                error=str(e),
            )
            metrics.record_sync_record("remote_failed")
            return False

        try:
            await self.storage.mark_transaction_synced(transaction.id)
        except TransactionNotFoundError:
            logger.warning("sync_transaction_missing_locally", transaction_id=transaction.id)

        logger.info(
            "sync_transaction_succeeded",
            transaction_id=transaction.id,
            order_number=order_number,
        )
        metrics.record_sync_record("synced")
        return True

    async def sync_transactions(self) -> Dict[str, int]:
        """
        Run one reconciliation cycle.

        Returns:
            Dict[str, int]: `success` and `failed` counts
        """
        if self._is_syncing:
            logger.info("sync_already_in_progress")
            return {"success": 0, "failed": 0}

        self._is_syncing = True
        start_time = time.monotonic()
        success = 0
        failed = 0

        try:
            await self.storage.init()
            transactions = await self.storage.get_unsynced_transactions()

            if not transactions:
                return {"success": 0, "failed": 0}

            logger.info("sync_cycle_started", pending=len(transactions))
            await self.notifier("info", f"Syncing {len(transactions)} offline transactions...")

            for transaction in transactions:
                if await self._sync_transaction(transaction):
                    success += 1
                else:
                    failed += 1

            if success > 0:
                await self.notifier("success", f"Successfully synced {success} transactions")
            if failed > 0:
                await self.notifier("error", f"Failed to sync {failed} transactions")

        except Exception as e:
            logger.error("sync_process_failed", error=str(e))
            await self.notifier("error", "Sync process failed")

        finally:
            self._is_syncing = False
            self.last_result = {"success": success, "failed": failed}
            self.last_synced_at = datetime.now(timezone.utc)
            metrics.record_sync_cycle(time.monotonic() - start_time)

        logger.info("sync_cycle_completed", success=success, failed=failed)
        return {"success": success, "failed": failed}
