"""
API routes for the terminal's checkout orchestrator.
"""
from typing import Any, Dict, List

import structlog
from fastapi import APIRouter, Depends, HTTPException, Response, status
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from pos_resilience.core.exceptions import PaymentValidationError, SyncError
from pos_resilience.core.gateways import PaymentRequest
from pos_resilience.core.offline_sales import record_offline_sale
from pos_resilience.core.offline_storage import OfflineStorage
from pos_resilience.core.payment_processor import PaymentProcessor
from pos_resilience.core.sync_service import SyncService
from pos_resilience.monitoring.health import HealthCheck
from pos_resilience.workers.sync_worker import AutoSyncWorker

from .dependencies import (
    get_health_check,
    get_processor,
    get_storage,
    get_sync_service,
    get_sync_worker,
)
from .schemas import (
    GatewayHealthResponse,
    GatewaySchema,
    GatewayStatusUpdate,
    GatewayTestResponse,
    HealthCheckResponse,
    OfflineTransactionCreate,
    OfflineTransactionResponse,
    PaymentRequestSchema,
    PaymentResponseSchema,
    ReceiptResponse,
    SplitPaymentRequest,
    SplitPaymentResponse,
    SyncResultResponse,
    SyncStatusResponse,
    UnsyncedTransactionsResponse,
)

logger = structlog.get_logger(__name__)

payment_router = APIRouter(prefix="/payments", tags=["payments"])
gateway_router = APIRouter(prefix="/gateways", tags=["gateways"])
offline_router = APIRouter(prefix="/offline", tags=["offline"])
sync_router = APIRouter(prefix="/sync", tags=["sync"])
monitoring_router = APIRouter(tags=["monitoring"])


def _to_payment_request(schema: PaymentRequestSchema) -> PaymentRequest:
    return PaymentRequest(
        amount=schema.amount,
        method=schema.method,
        card_type=schema.card_type,
        customer_data=schema.customer_data,
        metadata=schema.metadata,
    )


@payment_router.post(
    "",
    response_model=PaymentResponseSchema,
    summary="Charge a payment",
    description="Dispatch a charge across gateways with retry and failover",
)
async def create_payment(
    request: PaymentRequestSchema,
    processor: PaymentProcessor = Depends(get_processor),
) -> Dict[str, Any]:
    """
    Charge one payment.

    A declined or undeliverable charge is a normal 200 response with
    `success: false`; only invalid input is rejected.
    """
    logger.info("api_payment_request", amount=str(request.amount), method=request.method)

    try:
        response = await processor.process_payment(_to_payment_request(request))
    except PaymentValidationError as e:
        logger.warning("api_payment_validation_error", error=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return response.to_dict()


@payment_router.post(
    "/split",
    response_model=SplitPaymentResponse,
    summary="Charge a split-tender sale",
    description="Charge each piece in order; approved pieces are never rolled back",
)
async def create_split_payment(
    request: SplitPaymentRequest,
    processor: PaymentProcessor = Depends(get_processor),
) -> Dict[str, Any]:
    """Charge every piece sequentially and report each outcome."""
    responses = await processor.process_multiple_payments(
        [_to_payment_request(piece) for piece in request.payments]
    )

    return {
        "success": all(r.success for r in responses),
        "results": [r.to_dict() for r in responses],
    }


@gateway_router.get("", response_model=List[GatewaySchema], summary="List gateways")
async def list_gateways(
    processor: PaymentProcessor = Depends(get_processor),
) -> List[Dict[str, Any]]:
    """List configured gateways in priority order with their status."""
    return [g.to_dict() for g in processor.get_gateway_statuses()]


@gateway_router.get(
    "/health",
    response_model=GatewayHealthResponse,
    summary="Gateway health",
    description="Failure counts and circuit-breaker state per gateway",
)
async def gateway_health(
    processor: PaymentProcessor = Depends(get_processor),
) -> Dict[str, Any]:
    return processor.get_health_metrics()


@gateway_router.post(
    "/{gateway_id}/test",
    response_model=GatewayTestResponse,
    summary="Test gateway connectivity",
)
async def test_gateway(
    gateway_id: str,
    processor: PaymentProcessor = Depends(get_processor),
) -> Dict[str, Any]:
    """Probe a gateway without charging; updates its status."""
    if gateway_id not in {g.id for g in processor.get_gateway_statuses()}:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Gateway not found")

    return await processor.test_gateway(gateway_id)


@gateway_router.put(
    "/{gateway_id}/status",
    response_model=GatewaySchema,
    summary="Override gateway status",
)
async def update_gateway_status(
    gateway_id: str,
    update: GatewayStatusUpdate,
    processor: PaymentProcessor = Depends(get_processor),
) -> Dict[str, Any]:
    """Force a gateway online, offline or into error (operators only)."""
    if not processor.set_gateway_status(gateway_id, update.status):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Gateway not found")

    logger.info("api_gateway_status_updated", gateway=gateway_id, status=update.status.value)
    gateway = next(g for g in processor.get_gateway_statuses() if g.id == gateway_id)
    return gateway.to_dict()


@offline_router.post(
    "/transactions",
    response_model=OfflineTransactionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record an offline sale",
)
async def create_offline_transaction(
    request: OfflineTransactionCreate,
    storage: OfflineStorage = Depends(get_storage),
) -> Dict[str, Any]:
    """Store a sale locally, sealed with its integrity hash, plus its receipt."""
    await storage.init()
    transaction = await record_offline_sale(storage, **request.model_dump())
    return transaction.model_dump()


@offline_router.get(
    "/transactions/unsynced",
    response_model=UnsyncedTransactionsResponse,
    summary="List unsynced offline sales",
)
async def list_unsynced_transactions(
    storage: OfflineStorage = Depends(get_storage),
) -> Dict[str, Any]:
    await storage.init()
    transactions = await storage.get_unsynced_transactions()
    return {
        "count": len(transactions),
        "transactions": [t.model_dump() for t in transactions],
    }


@offline_router.get(
    "/receipts/{transaction_id}",
    response_model=ReceiptResponse,
    summary="Get an offline receipt",
)
async def get_offline_receipt(
    transaction_id: str,
    storage: OfflineStorage = Depends(get_storage),
) -> Dict[str, Any]:
    await storage.init()
    receipt = await storage.get_receipt(transaction_id)
    if receipt is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Receipt not found")
    return receipt.model_dump()


@sync_router.post(
    "",
    response_model=SyncResultResponse,
    summary="Sync offline sales now",
    description="Drain unsynced sales into the order ledger; refused while offline",
)
async def trigger_sync(
    worker: AutoSyncWorker = Depends(get_sync_worker),
) -> Dict[str, int]:
    try:
        return await worker.trigger_sync()
    except SyncError as e:
        logger.warning("api_sync_refused", error=str(e))
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


@sync_router.get("/status", response_model=SyncStatusResponse, summary="Sync status")
async def sync_status(
    storage: OfflineStorage = Depends(get_storage),
    sync_service: SyncService = Depends(get_sync_service),
    worker: AutoSyncWorker = Depends(get_sync_worker),
) -> Dict[str, Any]:
    """Connectivity, pending count and the last cycle's outcome."""
    await storage.init()
    last_synced_at = sync_service.last_synced_at
    return {
        "online": worker.monitor.is_online,
        "is_syncing": sync_service.is_syncing,
        "unsynced_count": await storage.count_unsynced(),
        "last_result": sync_service.last_result,
        "last_synced_at": last_synced_at.isoformat() if last_synced_at else None,
    }


@monitoring_router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health check",
    description="Check overall system health",
)
async def health(health_check: HealthCheck = Depends(get_health_check)) -> Dict[str, Any]:
    """Health check endpoint for monitoring."""
    try:
        return await health_check.check_all()
    except Exception as e:
        logger.error("health_check_error", error=str(e))
        return {
            "status": "unhealthy",
            "checks": {"error": str(e)},
        }


@monitoring_router.get(
    "/health/live",
    response_model=HealthCheckResponse,
    summary="Liveness probe",
)
async def liveness(health_check: HealthCheck = Depends(get_health_check)) -> Dict[str, Any]:
    return await health_check.liveness()


@monitoring_router.get(
    "/health/ready",
    response_model=HealthCheckResponse,
    summary="Readiness probe",
)
async def readiness(health_check: HealthCheck = Depends(get_health_check)) -> Dict[str, Any]:
    """Readiness probe endpoint."""
    try:
        result = await health_check.readiness()
    except Exception as e:
        logger.error("readiness_check_error", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"status": "unhealthy", "error": str(e)},
        )

    if result["status"] != "healthy":
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=result)
    return result


@monitoring_router.get("/metrics", include_in_schema=False)
async def prometheus_metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
