"""
Service wiring for the API.

Services are built once per application and kept on `app.state.services`;
routes receive them through `Depends`.
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from pos_resilience.config import Settings, get_settings
from pos_resilience.core.connectivity import ConnectivityMonitor
from pos_resilience.core.offline_storage import OfflineStorage
from pos_resilience.core.payment_processor import PaymentProcessor
from pos_resilience.core.sync_service import SyncService
from pos_resilience.database.connection import get_session_factory
from pos_resilience.integrations.order_ledger import OrderLedgerClient
from pos_resilience.monitoring.health import HealthCheck
from pos_resilience.workers.sync_worker import AutoSyncWorker


@dataclass
class ServiceContainer:
    """Everything the routes need, owned by one application instance."""

    processor: PaymentProcessor
    storage: OfflineStorage
    ledger: OrderLedgerClient
    sync_service: SyncService
    sync_worker: AutoSyncWorker
    health: HealthCheck

    async def close(self) -> None:
        self.sync_worker.stop()
        await self.processor.close()
        await self.ledger.close()


def build_services(settings: Optional[Settings] = None) -> ServiceContainer:
    """Build the production service graph from settings."""
    settings = settings or get_settings()
    session_factory = get_session_factory()

    processor = PaymentProcessor.from_settings(settings)
    storage = OfflineStorage(session_factory)
    ledger = OrderLedgerClient.from_settings(settings)
    sync_service = SyncService(storage, ledger)
    sync_worker = AutoSyncWorker(
        sync_service=sync_service,
        monitor=ConnectivityMonitor(ledger.ping),
        interval_seconds=settings.sync_interval_seconds,
        reconnect_delay_seconds=settings.sync_reconnect_delay_seconds,
        poll_interval_seconds=settings.connectivity_poll_seconds,
    )

    return ServiceContainer(
        processor=processor,
        storage=storage,
        ledger=ledger,
        sync_service=sync_service,
        sync_worker=sync_worker,
        health=HealthCheck(processor, ledger, session_factory),
    )


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


def get_processor(request: Request) -> PaymentProcessor:
    return get_services(request).processor


def get_storage(request: Request) -> OfflineStorage:
    return get_services(request).storage


def get_sync_service(request: Request) -> SyncService:
    return get_services(request).sync_service


def get_sync_worker(request: Request) -> AutoSyncWorker:
    return get_services(request).sync_worker


def get_health_check(request: Request) -> HealthCheck:
    return get_services(request).health
