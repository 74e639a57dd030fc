"""Generic JSON-over-HTTP gateway adapter for processors without an SDK."""
from typing import Any, Dict, Optional

import httpx
import structlog

from pos_resilience.core.exceptions import GatewayConfigurationError, GatewayError
from pos_resilience.core.gateways import ChargeOutcome, Gateway, GatewayAdapter, PaymentRequest

logger = structlog.get_logger(__name__)


class HttpGatewayAdapter(GatewayAdapter):
    """
    Charges through a REST endpoint.

    `POST {endpoint}/charges` answers with
    `{"approved": bool, "transaction_id", "reference_number", "message"}`;
    4xx answers carrying `approved: false` are declines, everything else
    that is not a 2xx is a gateway error.
    """

    def __init__(
        self,
        endpoint_url: Optional[str],
        api_key: Optional[str] = None,
        currency: str = "USD",
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not endpoint_url:
            raise GatewayConfigurationError("HTTP gateway requires endpoint_url")

        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        self.currency = currency.upper()
        self._client = client or httpx.AsyncClient(
            base_url=endpoint_url.rstrip("/"),
            headers=headers,
        )

    async def attempt_charge(
        self, gateway: Gateway, request: PaymentRequest
    ) -> ChargeOutcome:
        payload: Dict[str, Any] = {
            "amount": str(request.amount),
            "currency": self.currency,
            "method": str(getattr(request.method, "value", request.method)),
            "card_type": request.card_type,
            "reference": request.request_id,
            "customer": request.customer_data,
            "metadata": request.metadata,
        }

        try:
            response = await self._client.post(
                "/charges",
                json=payload,
                headers={"Idempotency-Key": f"{request.request_id}:{gateway.id}"},
                timeout=gateway.timeout_seconds,
            )
        except httpx.HTTPError as e:
            logger.error("http_gateway_transport_error", gateway=gateway.id, error=str(e))
            raise GatewayError(f"{gateway.name} unreachable: {e}")

        body = self._json(response)

        if response.is_success:
            if body.get("approved"):
                return ChargeOutcome(
                    success=True,
                    transaction_id=body.get("transaction_id"),
                    reference_number=body.get("reference_number"),
                )
            return ChargeOutcome(success=False, error_message=body.get("message") or "Payment declined")

        if response.is_client_error and body.get("approved") is False:
            return ChargeOutcome(success=False, error_message=body.get("message") or "Payment declined")

        logger.error(
            "http_gateway_error_response",
            gateway=gateway.id,
            status_code=response.status_code,
        )
        raise GatewayError(
            f"{gateway.name} returned HTTP {response.status_code}",
            retryable=response.status_code >= 500 or response.status_code == 429,
        )

    async def check_connectivity(self, gateway: Gateway) -> ChargeOutcome:
        try:
            response = await self._client.get("/health", timeout=gateway.timeout_seconds)
        except httpx.HTTPError:
            return ChargeOutcome(success=False, error_message=f"Unable to connect to {gateway.name}")

        if not response.is_success:
            return ChargeOutcome(
                success=False,
                error_message=f"{gateway.name} health check returned HTTP {response.status_code}",
            )
        return ChargeOutcome(success=True)

    async def close(self) -> None:
        await self._client.aclose()

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}
