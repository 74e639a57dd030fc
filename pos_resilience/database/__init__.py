"""Database package for the terminal's local durable store."""
from .connection import (
    close_db,
    create_engine_for_url,
    create_session_factory,
    get_session_factory,
    init_db,
)
from .models import Base, OfflineTransactionRecord, ReceiptRecord

__all__ = [
    "Base",
    "OfflineTransactionRecord",
    "ReceiptRecord",
    "close_db",
    "create_engine_for_url",
    "create_session_factory",
    "get_session_factory",
    "init_db",
]
