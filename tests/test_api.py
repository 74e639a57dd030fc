"""
API tests against an application wired with in-memory services.
"""
from typing import Any, AsyncGenerator, Dict

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fakes import FakeLedger, ScriptedAdapter
from pos_resilience.api.dependencies import ServiceContainer
from pos_resilience.api.main import create_app
from pos_resilience.config import Settings
from pos_resilience.core.connectivity import ConnectivityMonitor
from pos_resilience.core.offline_storage import OfflineStorage
from pos_resilience.core.payment_processor import PaymentProcessor
from pos_resilience.core.sync_service import SyncService
from pos_resilience.monitoring.health import HealthCheck
from pos_resilience.workers.sync_worker import AutoSyncWorker


@pytest.fixture
def services(
    processor: PaymentProcessor,
    storage: OfflineStorage,
    ledger: FakeLedger,
    session_factory: async_sessionmaker[AsyncSession],
) -> ServiceContainer:
    sync_service = SyncService(storage, ledger)  # type: ignore[arg-type]
    return ServiceContainer(
        processor=processor,
        storage=storage,
        ledger=ledger,  # type: ignore[arg-type]
        sync_service=sync_service,
        sync_worker=AutoSyncWorker(sync_service, ConnectivityMonitor(ledger.ping)),
        health=HealthCheck(processor, ledger, session_factory),  # type: ignore[arg-type]
    )


@pytest_asyncio.fixture
async def client(
    services: ServiceContainer, test_settings: Settings
) -> AsyncGenerator[httpx.AsyncClient, Any]:
    """Create test HTTP client."""
    app = create_app(services=services, settings=test_settings)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


class TestPaymentRoutes:

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_create_payment(self, client: httpx.AsyncClient) -> None:
        response = await client.post("/payments", json={"amount": "19.99", "method": "CARD"})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["gateway"] == "gateway1"
        assert data["fallback_used"] is False
        assert data["retry_count"] == 0
        assert "X-Request-ID" in response.headers

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_declined_payment_is_not_an_http_error(
        self, client: httpx.AsyncClient, adapter: ScriptedAdapter
    ) -> None:
        for gateway_id in ("gateway1", "gateway2", "gateway3"):
            adapter.script(gateway_id, False, False, False)

        response = await client.post("/payments", json={"amount": "19.99", "method": "card"})

        assert response.status_code == 200
        assert response.json()["success"] is False
        assert response.json()["error_message"].startswith("All payment gateways failed")

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_invalid_payment(self, client: httpx.AsyncClient) -> None:
        response = await client.post("/payments", json={"amount": "0", "method": "card"})

        assert response.status_code == 400
        assert response.json()["detail"] == "Amount must be positive"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_split_payment(self, client: httpx.AsyncClient) -> None:
        response = await client.post(
            "/payments/split",
            json={
                "payments": [
                    {"amount": "10.00", "method": "card"},
                    {"amount": "5.00", "method": "bitcoin"},
                    {"amount": "2.00", "method": "cash"},
                ]
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is False
        assert [r["success"] for r in data["results"]] == [True, False, True]


class TestGatewayRoutes:

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_list_gateways(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/gateways")

        assert response.status_code == 200
        assert [g["id"] for g in response.json()] == ["gateway1", "gateway2", "gateway3"]
        assert response.json()[0]["status"] == "online"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_gateway_health(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/gateways/health")

        assert response.status_code == 200
        assert response.json()["total_failures"] == 0
        assert all(not g["circuit_open"] for g in response.json()["gateways"])

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_test_gateway(self, client: httpx.AsyncClient) -> None:
        assert (await client.post("/gateways/nope/test")).status_code == 404

        response = await client.post("/gateways/gateway2/test")

        assert response.status_code == 200
        assert response.json()["success"] is True

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_update_gateway_status(self, client: httpx.AsyncClient) -> None:
        response = await client.put("/gateways/gateway2/status", json={"status": "offline"})

        assert response.status_code == 200
        assert response.json()["status"] == "offline"
        assert (
            await client.put("/gateways/nope/status", json={"status": "offline"})
        ).status_code == 404
        assert (
            await client.put("/gateways/gateway2/status", json={"status": "broken"})
        ).status_code == 422


class TestOfflineRoutes:

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_record_and_read_back(
        self, client: httpx.AsyncClient, sample_sale: Dict[str, Any]
    ) -> None:
        created = await client.post("/offline/transactions", json=sample_sale)

        assert created.status_code == 201
        transaction = created.json()
        assert transaction["id"].startswith("offline_")
        assert transaction["synced"] is False
        assert len(transaction["integrity_hash"]) == 64

        unsynced = (await client.get("/offline/transactions/unsynced")).json()
        assert unsynced["count"] == 1
        assert unsynced["transactions"][0]["id"] == transaction["id"]

        receipt = await client.get(f"/offline/receipts/{transaction['id']}")
        assert receipt.status_code == 200
        assert receipt.json()["content"].startswith("OFFLINE RECEIPT")

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_missing_receipt(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/offline/receipts/offline_missing")

        assert response.status_code == 404

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_invalid_sale(self, client: httpx.AsyncClient, sample_sale: Dict[str, Any]) -> None:
        response = await client.post("/offline/transactions", json={**sample_sale, "items": []})

        assert response.status_code == 422


class TestSyncRoutes:

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_sync_now(
        self, client: httpx.AsyncClient, ledger: FakeLedger, sample_sale: Dict[str, Any]
    ) -> None:
        await client.post("/offline/transactions", json=sample_sale)

        response = await client.post("/sync")

        assert response.status_code == 200
        assert response.json() == {"success": 1, "failed": 0}
        assert len(ledger.orders) == 1

        status = (await client.get("/sync/status")).json()
        assert status["online"] is True
        assert status["is_syncing"] is False
        assert status["unsynced_count"] == 0
        assert status["last_result"] == {"success": 1, "failed": 0}
        assert status["last_synced_at"] is not None

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_sync_refused_offline(
        self, client: httpx.AsyncClient, ledger: FakeLedger, sample_sale: Dict[str, Any]
    ) -> None:
        ledger.online = False
        await client.post("/offline/transactions", json=sample_sale)

        response = await client.post("/sync")

        assert response.status_code == 503
        status = (await client.get("/sync/status")).json()
        assert status["online"] is False
        assert status["unsynced_count"] == 1


class TestMonitoringRoutes:

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_health(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert set(data["checks"]) == {"database", "gateways", "ledger"}

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_liveness(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/health/live")

        assert response.status_code == 200
        assert response.json()["status"] == "alive"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_readiness_with_ledger_down(
        self, client: httpx.AsyncClient, ledger: FakeLedger
    ) -> None:
        ledger.online = False

        response = await client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["checks"]["ledger"]["status"] == "unreachable"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_not_ready_without_gateways(
        self, client: httpx.AsyncClient, processor: PaymentProcessor
    ) -> None:
        for gateway_id in ("gateway1", "gateway2", "gateway3"):
            processor.set_gateway_status(gateway_id, "offline")

        response = await client.get("/health/ready")

        assert response.status_code == 503

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_metrics_endpoint(self, client: httpx.AsyncClient) -> None:
        await client.post("/payments", json={"amount": "1.00", "method": "cash"})

        response = await client.get("/metrics")

        assert response.status_code == 200
        assert "text/plain" in response.headers["content-type"]
        assert "pos_payment_requests_total" in response.text
