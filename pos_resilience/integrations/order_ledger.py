"""
Client for the remote order ledger.

The ledger is a REST backend exposing `orders` and `order_items`
collections. An order is written as a header followed by its line items.
"""
from typing import Any, Dict, List, Optional

import httpx
import structlog

from pos_resilience.config import Settings, get_settings
from pos_resilience.core.exceptions import OrderLedgerError

logger = structlog.get_logger(__name__)


class OrderLedgerClient:
    """Writes reconciled orders to the remote ledger."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout_seconds: float = 15.0,
        health_path: str = "/",
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize ledger client.

        Args:
            base_url: Ledger REST base URL
            api_key: Optional API key sent as bearer token and `apikey` header
            timeout_seconds: Request timeout
            health_path: Path probed by `ping`
            client: Optional preconfigured HTTP client
        """
        headers = {
            "Accept": "application/json",
            "Prefer": "return=representation",
        }
        if api_key:
            headers["apikey"] = api_key
            headers["Authorization"] = f"Bearer {api_key}"

        self.health_path = health_path
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout_seconds,
        )

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "OrderLedgerClient":
        settings = settings or get_settings()
        return cls(
            base_url=settings.ledger_base_url,
            api_key=settings.ledger_api_key,
            timeout_seconds=settings.ledger_timeout_seconds,
            health_path=settings.ledger_health_path,
        )

    async def _post(
        self, path: str, payload: Any, headers: Optional[Dict[str, str]] = None
    ) -> Any:
        try:
            response = await self._client.post(path, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise OrderLedgerError(f"Ledger request to {path} failed: {e}")

        if not response.is_success:
            raise OrderLedgerError(
                f"Ledger rejected {path}: HTTP {response.status_code} {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError:
            return None

    async def submit_order(
        self, order: Dict[str, Any], items: List[Dict[str, Any]]
    ) -> Dict[str, Any]:
        """
        Create an order and its line items.

        The order number doubles as the `Idempotency-Key` header so ledgers
        that deduplicate on it do not create the order twice.

        Args:
            order: Order header
            items: Line items without `order_id`

        Returns:
            Dict[str, Any]: Created order as returned by the ledger

        Raises:
            OrderLedgerError: If either write fails
        """
        created = await self._post(
            "/orders",
            order,
            headers={"Idempotency-Key": order["order_number"]},
        )
        if isinstance(created, list):
            created = created[0] if created else None
        if not isinstance(created, dict) or "id" not in created:
            raise OrderLedgerError("Ledger did not return the created order")

        order_items = [{**item, "order_id": created["id"]} for item in items]
        if order_items:
            await self._post("/order_items", order_items)

        logger.info(
            "ledger_order_created",
            order_id=created["id"],
            order_number=order["order_number"],
            item_count=len(order_items),
        )
        return created

    async def ping(self) -> bool:
        """Return True if the ledger answers at all."""
        try:
            response = await self._client.get(self.health_path)
        except httpx.HTTPError as e:
            logger.debug("ledger_unreachable", error=str(e))
            return False
        return response.status_code < 500

    async def close(self) -> None:
        await self._client.aclose()
