"""
Stripe gateway adapter.

Implements:
- PaymentIntent create + confirm per charge attempt
- Idempotency keys derived from the request id
- Error classification (declines vs transport failures)
- Connectivity probe
"""
import asyncio
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

import stripe
import structlog

from pos_resilience.core.exceptions import GatewayConfigurationError, GatewayError
from pos_resilience.core.gateways import ChargeOutcome, Gateway, GatewayAdapter, PaymentRequest

logger = structlog.get_logger(__name__)

APPROVED_STATUSES = {"succeeded", "requires_capture", "processing"}


class StripeErrorType(Enum):
    """Classification of Stripe errors."""

    TRANSIENT = "transient"  # Retry these
    PERMANENT = "permanent"  # Declines and invalid requests
    RATE_LIMIT = "rate_limit"  # Retry with longer backoff


class StripeTerminalAdapter(GatewayAdapter):
    """Charges through the Stripe API using the synchronous SDK in a worker thread."""

    def __init__(
        self,
        secret_key: Optional[str],
        api_version: str = "2023-10-16",
        currency: str = "USD",
        payment_method_types: Optional[List[str]] = None,
    ) -> None:
        """
        Initialize Stripe adapter.

        Args:
            secret_key: Stripe secret key
            api_version: Stripe API version
            currency: Currency charged by this terminal
            payment_method_types: Stripe payment method types to accept

        Raises:
            GatewayConfigurationError: If no secret key is configured
        """
        if not secret_key:
            raise GatewayConfigurationError("Stripe gateway requires STRIPE_SECRET_KEY")

        stripe.api_key = secret_key
        stripe.api_version = api_version
        self.currency = currency.lower()
        self.payment_method_types = payment_method_types or ["card_present", "card"]

        logger.info(
            "stripe_adapter_initialized",
            api_version=api_version,
            test_mode=secret_key.startswith("sk_test_"),
        )

    @staticmethod
    def _classify_error(error: stripe.StripeError) -> StripeErrorType:
        """
        Classify Stripe error.

        Args:
            error: Stripe error

        Returns:
            StripeErrorType: Error classification
        """
        if isinstance(error, stripe.RateLimitError):
            return StripeErrorType.RATE_LIMIT
        elif isinstance(
            error,
            (
                stripe.APIConnectionError,
                stripe.APIError,
            ),
        ):
            return StripeErrorType.TRANSIENT
        elif isinstance(
            error,
            (stripe.CardError, stripe.InvalidRequestError),
        ):
            return StripeErrorType.PERMANENT
        else:
            # Unknown errors are treated as transient
            return StripeErrorType.TRANSIENT

    @staticmethod
    def _to_minor_units(amount: Decimal) -> int:
        return int((Decimal(amount) * 100).to_integral_value())

    async def attempt_charge(
        self, gateway: Gateway, request: PaymentRequest
    ) -> ChargeOutcome:
        """
        Create and confirm a PaymentIntent.

        Card declines come back as an unsuccessful outcome; every other
        Stripe failure raises `GatewayError`.
        """
        amount_cents = self._to_minor_units(request.amount)
        idempotency_key = f"{request.request_id}:{gateway.id}"

        metadata: Dict[str, Any] = {
            "request_id": request.request_id,
            "payment_method": str(getattr(request.method, "value", request.method)),
        }
        if request.card_type:
            metadata["card_type"] = request.card_type
        metadata.update({k: str(v) for k, v in request.metadata.items()})

        def _create() -> stripe.PaymentIntent:
            kwargs: Dict[str, Any] = {
                "amount": amount_cents,
                "currency": self.currency,
                "payment_method_types": self.payment_method_types,
                "metadata": metadata,
                "idempotency_key": idempotency_key,
            }
            payment_method = request.metadata.get("stripe_payment_method")
            if payment_method:
                kwargs["payment_method"] = payment_method
                kwargs["confirm"] = True
            return stripe.PaymentIntent.create(**kwargs)

        logger.info(
            "creating_payment_intent",
            gateway=gateway.id,
            amount_cents=amount_cents,
            idempotency_key=idempotency_key,
        )

        try:
            loop = asyncio.get_running_loop()
            payment_intent = await loop.run_in_executor(None, _create)
        except stripe.StripeError as e:
            error_type = self._classify_error(e)
            logger.error(
                "stripe_api_error",
                error_type=error_type.value,
                error_code=getattr(e, "code", None),
                error_message=str(e),
            )
            if isinstance(e, stripe.CardError):
                return ChargeOutcome(success=False, error_message=e.user_message or str(e))
            raise GatewayError(str(e), retryable=error_type != StripeErrorType.PERMANENT)

        logger.info(
            "payment_intent_created",
            payment_intent_id=payment_intent.id,
            status=payment_intent.status,
        )

        if payment_intent.status not in APPROVED_STATUSES:
            return ChargeOutcome(
                success=False,
                transaction_id=payment_intent.id,
                error_message=f"PaymentIntent not approved: {payment_intent.status}",
            )

        return ChargeOutcome(
            success=True,
            transaction_id=payment_intent.id,
            reference_number=getattr(payment_intent, "latest_charge", None) or payment_intent.id,
        )

    async def check_connectivity(self, gateway: Gateway) -> ChargeOutcome:
        """List one payment method to check API reachability."""
        try:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, lambda: stripe.PaymentMethod.list(limit=1))
        except stripe.StripeError as e:
            logger.error("stripe_connectivity_check_failed", gateway=gateway.id, error=str(e))
            return ChargeOutcome(success=False, error_message=f"Unable to connect to {gateway.name}")

        return ChargeOutcome(success=True)
