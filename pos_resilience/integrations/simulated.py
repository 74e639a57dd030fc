"""Simulated gateway for development terminals and demos."""
import asyncio
import random
import string
import time
from typing import Dict, Optional

from pos_resilience.core.exceptions import GatewayError
from pos_resilience.core.gateways import ChargeOutcome, Gateway, GatewayAdapter, PaymentRequest

DECLINE_REASONS = (
    "Card declined - insufficient funds",
    "Card declined - invalid card number",
    "Transaction timeout",
    "Gateway temporarily unavailable",
    "Invalid merchant configuration",
)


class SimulatedGatewayAdapter(GatewayAdapter):
    """Approves a configurable share of charges after a short random delay."""

    def __init__(
        self,
        success_rates: Optional[Dict[str, float]] = None,
        default_success_rate: float = 0.9,
        min_latency: float = 0.5,
        max_latency: float = 2.5,
        uptime: float = 0.9,
        rng: Optional[random.Random] = None,
    ):
        self.success_rates = success_rates or {}
        self.default_success_rate = default_success_rate
        self.min_latency = min_latency
        self.max_latency = max_latency
        self.uptime = uptime
        self._rng = rng or random.Random()

    def _suffix(self, length: int = 9) -> str:
        alphabet = string.ascii_lowercase + string.digits
        return "".join(self._rng.choice(alphabet) for _ in range(length))

    async def attempt_charge(
        self, gateway: Gateway, request: PaymentRequest
    ) -> ChargeOutcome:
        await asyncio.sleep(self._rng.uniform(self.min_latency, self.max_latency))

        rate = self.success_rates.get(gateway.id, self.default_success_rate)
        if self._rng.random() >= rate:
            raise GatewayError(self._rng.choice(DECLINE_REASONS))

        now_ms = int(time.time() * 1000)
        return ChargeOutcome(
            success=True,
            transaction_id=f"txn_{now_ms}_{self._suffix()}",
            reference_number=f"REF{now_ms}{self._rng.randrange(1000)}",
        )

    async def check_connectivity(self, gateway: Gateway) -> ChargeOutcome:
        await asyncio.sleep(self._rng.uniform(self.min_latency / 2, self.max_latency / 2))

        if self._rng.random() < self.uptime:
            return ChargeOutcome(success=True)
        return ChargeOutcome(success=False, error_message=f"Unable to connect to {gateway.name}")
