"""SQLAlchemy models for the terminal's local durable store."""
from datetime import datetime
from typing import Any, Dict

from sqlalchemy import JSON, DateTime, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class OfflineTransactionRecord(Base):
    """
    Offline transactions table.

    The sale itself lives in `payload`; `integrity_hash` and `synced` sit in
    their own columns. `synced` is an integer flag, read back only through
    `normalize_synced`.
    """

    __tablename__ = "offline_transactions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    timestamp: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    payload: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    integrity_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    synced: Mapped[int] = mapped_column(Integer, nullable=False, default=0, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=func.now()
    )
    synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        """String representation of OfflineTransactionRecord."""
        return f"<OfflineTransactionRecord(id={self.id}, synced={self.synced})>"


class ReceiptRecord(Base):
    """Rendered receipts, one per offline transaction."""

    __tablename__ = "offline_receipts"

    id: Mapped[str] = mapped_column(String(80), primary_key=True)
    transaction_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    timestamp: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        """String representation of ReceiptRecord."""
        return f"<ReceiptRecord(id={self.id}, transaction_id={self.transaction_id})>"
