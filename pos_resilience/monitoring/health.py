"""
Health checks for the terminal service.

Checks:
- Local store (SQLite) connectivity
- Gateway availability (at least one gateway not circuit-broken)
- Order ledger reachability

The ledger being unreachable is reported but does not make the terminal
unready: payments and offline recording keep working without it.
"""
from typing import Any, Dict, Optional

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pos_resilience.core.gateways import GatewayStatus
from pos_resilience.core.payment_processor import PaymentProcessor
from pos_resilience.database.connection import get_session_factory
from pos_resilience.integrations.order_ledger import OrderLedgerClient

logger = structlog.get_logger(__name__)


class HealthCheckError(Exception):
    """Raised when health check fails."""

    pass


class HealthCheck:
    """Health check service for the terminal's dependencies."""

    def __init__(
        self,
        processor: PaymentProcessor,
        ledger: Optional[OrderLedgerClient] = None,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ) -> None:
        self.processor = processor
        self.ledger = ledger
        self._session_factory = session_factory or get_session_factory()

    async def check_database(self) -> Dict[str, Any]:
        """
        Check local store connectivity.

        Raises:
            HealthCheckError: If the store cannot be queried
        """
        try:
            async with self._session_factory() as db:
                result = await db.execute(text("SELECT 1"))
                result.scalar()

            return {
                "status": "healthy",
                "service": "database",
                "message": "Database connection successful",
            }

        except Exception as e:
            logger.error("database_health_check_failed", error=str(e))
            raise HealthCheckError(f"Database health check failed: {str(e)}")

    async def check_gateways(self) -> Dict[str, Any]:
        """
        Check that at least one gateway can take payments.

        Raises:
            HealthCheckError: If every gateway is offline or circuit-broken
        """
        gateways = self.processor.get_health_metrics()["gateways"]
        available = [
            g["id"]
            for g in gateways
            if g["status"] != GatewayStatus.OFFLINE.value and not g["circuit_open"]
        ]

        if not available:
            logger.error("gateway_health_check_failed", gateways=len(gateways))
            raise HealthCheckError("No payment gateways available")

        return {
            "status": "healthy",
            "service": "gateways",
            "available": available,
            "total": len(gateways),
        }

    async def check_ledger(self) -> Dict[str, Any]:
        """Report whether the order ledger is reachable."""
        if self.ledger is None:
            return {"status": "disabled", "service": "ledger"}

        reachable = await self.ledger.ping()
        if not reachable:
            logger.warning("ledger_unreachable")

        return {
            "status": "healthy" if reachable else "unreachable",
            "service": "ledger",
            "mode": "online" if reachable else "offline",
        }

    async def check_all(self) -> Dict[str, Any]:
        """
        Run all health checks.

        Returns:
            Dict[str, Any]: Overall health status
        """
        checks: Dict[str, Any] = {}
        all_healthy = True

        for name, check in (
            ("database", self.check_database),
            ("gateways", self.check_gateways),
        ):
            try:
                checks[name] = await check()
            except HealthCheckError as e:
                checks[name] = {"status": "unhealthy", "service": name, "error": str(e)}
                all_healthy = False

        checks["ledger"] = await self.check_ledger()

        return {
            "status": "healthy" if all_healthy else "unhealthy",
            "checks": checks,
        }

    async def liveness(self) -> Dict[str, Any]:
        """Liveness probe: the process is running."""
        return {
            "status": "alive",
            "message": "Application is running",
        }

    async def readiness(self) -> Dict[str, Any]:
        """Readiness probe: dependencies needed to take payments are up."""
        return await self.check_all()
