"""Core payment dispatch and offline reconciliation logic."""
from .connectivity import ConnectivityMonitor
from .offline_storage import OfflineStorage
from .payment_processor import PaymentProcessor
from .sync_service import SyncService

__all__ = [
    "ConnectivityMonitor",
    "OfflineStorage",
    "PaymentProcessor",
    "SyncService",
]
