"""
Offline sale records kept on the terminal.

Money fields are quantized to cents on the way in so that a record hashes
the same before and after a storage round trip.
"""
from __future__ import annotations

import random
import string
import time
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

CENT = Decimal("0.01")


def quantize_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def generate_offline_id(prefix: str = "offline") -> str:
    """`<prefix>_<epoch ms>_<9 base36 chars>`."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


class LineItem(BaseModel):
    """One cart line."""

    product_id: str
    name: str = ""
    quantity: int = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0)
    shipping_required: bool = False

    @field_validator("unit_price")
    @classmethod
    def validate_unit_price(cls, v: Decimal) -> Decimal:
        return quantize_money(v)

    @property
    def line_total(self) -> Decimal:
        return quantize_money(self.unit_price * self.quantity)


class OfflineTransaction(BaseModel):
    """A sale recorded on the terminal, waiting to be reconciled."""

    id: str
    timestamp: str
    items: List[LineItem]
    subtotal: Decimal
    tax: Decimal = Decimal("0.00")
    tip: Decimal = Decimal("0.00")
    discount: Decimal = Decimal("0.00")
    total: Decimal
    payment_method: str
    customer_id: Optional[str] = None
    store_id: str
    user_id: str
    business_id: str
    synced: bool = False
    integrity_hash: str = ""

    @field_validator("subtotal", "tax", "tip", "discount", "total")
    @classmethod
    def validate_money(cls, v: Decimal) -> Decimal:
        return quantize_money(v)

    @classmethod
    def new(cls, **fields) -> OfflineTransaction:
        """Start a record with a fresh id and the current UTC timestamp."""
        fields.setdefault("id", generate_offline_id())
        fields.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
        return cls(**fields)


class Receipt(BaseModel):
    """Rendered receipt kept for reprint or resend."""

    id: str
    transaction_id: str
    content: str
    timestamp: str
