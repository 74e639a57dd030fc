"""
Gateway, charge request and charge response types.

The dispatcher talks to every gateway through a `GatewayAdapter`; the types
here are what crosses that boundary.
"""
import uuid
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from pos_resilience.config import GatewayConfig


class GatewayTier(str, Enum):
    """Role of a gateway in the failover order."""

    PRIMARY = "primary"
    SECONDARY = "secondary"
    BACKUP = "backup"


class GatewayStatus(str, Enum):
    """Availability of a gateway as seen by the dispatcher."""

    ONLINE = "online"
    OFFLINE = "offline"
    ERROR = "error"


class PaymentMethod(str, Enum):
    """Tender types accepted at the terminal."""

    CARD = "card"
    CASH = "cash"
    DIGITAL_WALLET = "digital_wallet"
    GIFT_CARD = "gift_card"
    CHECK = "check"


@dataclass
class Gateway:
    """A configured payment backend and its current status."""

    id: str
    name: str
    tier: GatewayTier
    priority: int
    max_retries: int
    timeout_seconds: float
    status: GatewayStatus = GatewayStatus.ONLINE

    @classmethod
    def from_config(cls, config: GatewayConfig) -> "Gateway":
        return cls(
            id=config.id,
            name=config.name,
            tier=GatewayTier(config.tier),
            priority=config.priority,
            max_retries=config.max_retries,
            timeout_seconds=config.timeout_seconds,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["tier"] = self.tier.value
        data["status"] = self.status.value
        return data


@dataclass
class GatewayFailureRecord:
    """Rolling failure state behind a gateway's circuit breaker."""

    count: int = 0
    last_failure: float = 0.0
    # Set after a cool-down; the next failure re-opens the circuit at once.
    half_open: bool = False


@dataclass
class PaymentRequest:
    """One charge to be dispatched."""

    amount: Decimal
    method: PaymentMethod
    card_type: Optional[str] = None
    customer_data: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)


@dataclass
class ChargeOutcome:
    """Result of one adapter call."""

    success: bool
    transaction_id: Optional[str] = None
    reference_number: Optional[str] = None
    error_message: Optional[str] = None


@dataclass
class PaymentResponse:
    """Aggregate outcome of `PaymentProcessor.process_payment`."""

    success: bool
    processing_time_ms: float
    transaction_id: Optional[str] = None
    reference_number: Optional[str] = None
    gateway: Optional[str] = None
    error_message: Optional[str] = None
    retry_count: int = 0
    fallback_used: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class GatewayAdapter(ABC):
    """Capability interface every gateway integration implements."""

    @abstractmethod
    async def attempt_charge(
        self, gateway: Gateway, request: PaymentRequest
    ) -> ChargeOutcome:
        """
        Attempt one charge on the gateway.

        A decline is returned as an unsuccessful outcome; transport or
        processor failures raise `GatewayError`.
        """

    @abstractmethod
    async def check_connectivity(self, gateway: Gateway) -> ChargeOutcome:
        """Probe the gateway without charging anything."""

    async def close(self) -> None:
        """Release network resources held by the adapter."""
        return None
