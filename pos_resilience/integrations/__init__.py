"""External integrations: payment gateway adapters and the order ledger."""
from typing import Dict

from pos_resilience.config import Settings
from pos_resilience.core.gateways import GatewayAdapter

from .http_gateway import HttpGatewayAdapter
from .order_ledger import OrderLedgerClient
from .simulated import SimulatedGatewayAdapter
from .stripe_terminal import StripeTerminalAdapter


def build_adapters(settings: Settings) -> Dict[str, GatewayAdapter]:
    """
    Create one adapter per configured gateway.

    Stripe gateways share a single adapter; simulated gateways share one
    adapter that knows every gateway's approval rate.
    """
    adapters: Dict[str, GatewayAdapter] = {}
    stripe_adapter = None
    simulated = SimulatedGatewayAdapter(
        success_rates={g.id: g.success_rate for g in settings.payment_gateways}
    )

    for config in settings.payment_gateways:
        if config.adapter == "stripe":
            if stripe_adapter is None:
                stripe_adapter = StripeTerminalAdapter(
                    secret_key=settings.stripe_secret_key,
                    api_version=settings.stripe_api_version,
                    currency=settings.payment_currency,
                )
            adapters[config.id] = stripe_adapter
        elif config.adapter == "http":
            adapters[config.id] = HttpGatewayAdapter(
                endpoint_url=config.endpoint_url,
                api_key=config.api_key,
                currency=settings.payment_currency,
            )
        else:
            adapters[config.id] = simulated

    return adapters


__all__ = [
    "HttpGatewayAdapter",
    "OrderLedgerClient",
    "SimulatedGatewayAdapter",
    "StripeTerminalAdapter",
    "build_adapters",
]
