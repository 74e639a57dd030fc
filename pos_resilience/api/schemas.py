"""
Pydantic schemas for API request/response models.
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from pos_resilience.core.gateways import GatewayStatus
from pos_resilience.core.models import LineItem


class PaymentRequestSchema(BaseModel):
    """Request schema for one charge."""

    amount: Decimal = Field(..., description="Charge amount in major currency units")
    method: str = Field(..., description="card, cash, digital_wallet, gift_card or check")
    card_type: Optional[str] = Field(default=None, description="Card brand, if known")
    customer_data: Dict[str, Any] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("method")
    @classmethod
    def validate_method(cls, v: str) -> str:
        return v.lower()

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "amount": "42.50",
                    "method": "card",
                    "card_type": "visa",
                    "metadata": {"register": "front-1"},
                }
            ]
        }
    }


class PaymentResponseSchema(BaseModel):
    """Aggregate outcome of a charge."""

    success: bool
    transaction_id: Optional[str] = None
    reference_number: Optional[str] = None
    gateway: Optional[str] = None
    error_message: Optional[str] = None
    processing_time_ms: float
    retry_count: int = 0
    fallback_used: bool = False


class SplitPaymentRequest(BaseModel):
    """Request schema for a split-tender sale."""

    payments: List[PaymentRequestSchema] = Field(..., min_length=1)


class SplitPaymentResponse(BaseModel):
    """Per-piece outcomes of a split-tender sale, in request order."""

    success: bool = Field(..., description="True only if every piece was approved")
    results: List[PaymentResponseSchema]


class GatewaySchema(BaseModel):
    id: str
    name: str
    tier: str
    priority: int
    max_retries: int
    timeout_seconds: float
    status: str


class GatewayHealthSchema(BaseModel):
    id: str
    name: str
    status: str
    failure_count: int
    last_failure: Optional[float] = None
    circuit_open: bool


class GatewayHealthResponse(BaseModel):
    gateways: List[GatewayHealthSchema]
    total_failures: int


class GatewayTestResponse(BaseModel):
    success: bool
    response_time_ms: float
    error: Optional[str] = None


class GatewayStatusUpdate(BaseModel):
    """Operator override of a gateway's status."""

    status: GatewayStatus


class OfflineTransactionCreate(BaseModel):
    """A sale to record on the terminal while the ledger is unreachable."""

    items: List[LineItem] = Field(..., min_length=1)
    subtotal: Decimal = Field(..., ge=0)
    tax: Decimal = Field(default=Decimal("0.00"), ge=0)
    tip: Decimal = Field(default=Decimal("0.00"), ge=0)
    discount: Decimal = Field(default=Decimal("0.00"), ge=0)
    total: Decimal = Field(..., ge=0)
    payment_method: str
    customer_id: Optional[str] = None
    store_id: str
    user_id: str
    business_id: str

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "items": [
                        {"product_id": "sku-1", "name": "Coffee", "quantity": 2, "unit_price": "3.50"}
                    ],
                    "subtotal": "7.00",
                    "tax": "0.56",
                    "total": "7.56",
                    "payment_method": "cash",
                    "store_id": "store-1",
                    "user_id": "cashier-7",
                    "business_id": "biz-1",
                }
            ]
        }
    }


class OfflineTransactionResponse(BaseModel):
    id: str
    timestamp: str
    items: List[LineItem]
    subtotal: Decimal
    tax: Decimal
    tip: Decimal
    discount: Decimal
    total: Decimal
    payment_method: str
    customer_id: Optional[str] = None
    store_id: str
    user_id: str
    business_id: str
    synced: bool
    integrity_hash: str


class UnsyncedTransactionsResponse(BaseModel):
    count: int
    transactions: List[OfflineTransactionResponse]


class ReceiptResponse(BaseModel):
    id: str
    transaction_id: str
    content: str
    timestamp: str


class SyncResultResponse(BaseModel):
    success: int
    failed: int


class SyncStatusResponse(BaseModel):
    online: bool
    is_syncing: bool
    unsynced_count: int
    last_result: Optional[SyncResultResponse] = None
    last_synced_at: Optional[str] = None


class HealthCheckResponse(BaseModel):
    """Response schema for health checks."""

    status: str = Field(..., description="Overall health status")
    checks: Optional[Dict[str, Any]] = Field(default=None, description="Individual checks")
    message: Optional[str] = Field(default=None, description="Status message")
