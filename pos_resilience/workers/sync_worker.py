"""
Auto-sync background worker.

Triggers reconciliation:
- shortly after connectivity is regained
- on a fixed interval while online
- on demand
and never while the terminal is offline.
"""
import asyncio
import signal
import time
from typing import Any, Awaitable, Callable, Dict, Optional

import structlog

from pos_resilience.core.connectivity import ConnectivityMonitor
from pos_resilience.core.exceptions import SyncError
from pos_resilience.core.sync_service import SyncService

logger = structlog.get_logger(__name__)


class AutoSyncWorker:
    """Polls connectivity and runs the sync service when the policy says so."""

    def __init__(
        self,
        sync_service: SyncService,
        monitor: ConnectivityMonitor,
        interval_seconds: float = 300.0,
        reconnect_delay_seconds: float = 1.0,
        poll_interval_seconds: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize auto-sync worker.

        Args:
            sync_service: Reconciliation service
            monitor: Connectivity monitor
            interval_seconds: Sync interval while online
            reconnect_delay_seconds: Delay before syncing after reconnecting
            poll_interval_seconds: Connectivity polling interval
            clock: Monotonic clock
            sleep: Coroutine used for waits
        """
        self.sync_service = sync_service
        self.monitor = monitor
        self.interval_seconds = interval_seconds
        self.reconnect_delay_seconds = reconnect_delay_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self._clock = clock
        self._sleep = sleep
        self._last_sync_at: Optional[float] = None
        self._running = False

        logger.info(
            "auto_sync_worker_initialized",
            interval_seconds=interval_seconds,
            reconnect_delay_seconds=reconnect_delay_seconds,
            poll_interval_seconds=poll_interval_seconds,
        )

    async def _run_sync(self, trigger: str) -> Dict[str, int]:
        self._last_sync_at = self._clock()
        logger.info("auto_sync_triggered", trigger=trigger)
        return await self.sync_service.sync_transactions()

    async def run_once(self) -> Optional[Dict[str, int]]:
        """
        Evaluate the triggers once.

        Returns:
            Optional[Dict[str, int]]: Sync counts, or None if nothing ran
        """
        regained = await self.monitor.check()
        if not self.monitor.is_online:
            return None

        if regained:
            await self._sleep(self.reconnect_delay_seconds)
            if not self.monitor.is_online:
                return None
            return await self._run_sync("reconnected")

        if (
            self._last_sync_at is None
            or self._clock() - self._last_sync_at >= self.interval_seconds
        ):
            return await self._run_sync("interval")

        return None

    async def trigger_sync(self) -> Dict[str, int]:
        """
        Sync on demand.

        Raises:
            SyncError: If the terminal is offline
        """
        await self.monitor.check()
        if not self.monitor.is_online:
            raise SyncError("Cannot sync while offline")
        return await self._run_sync("manual")

    async def start(self) -> None:
        """
        Start the worker loop.

        Runs until `stop` is called.
        """
        self._running = True
        logger.info("auto_sync_worker_started")

        try:
            while self._running:
                try:
                    await self.run_once()
                except Exception as e:
                    logger.error("auto_sync_error", error=str(e))

                await self._sleep(self.poll_interval_seconds)

        finally:
            logger.info("auto_sync_worker_stopped")

    def stop(self) -> None:
        """Stop the worker loop."""
        self._running = False
        logger.info("auto_sync_worker_stop_requested")


async def start_sync_worker() -> None:
    """
    Run the auto-sync worker as a standalone process.

    Runs continuously until SIGINT/SIGTERM.
    """
    from pos_resilience.config import get_settings
    from pos_resilience.core.offline_storage import OfflineStorage
    from pos_resilience.database.connection import close_db
    from pos_resilience.integrations.order_ledger import OrderLedgerClient
    from pos_resilience.monitoring.logging import setup_logging

    setup_logging()
    settings = get_settings()

    logger.info("sync_worker_starting")

    storage = OfflineStorage()
    await storage.init()
    ledger = OrderLedgerClient.from_settings(settings)
    worker = AutoSyncWorker(
        sync_service=SyncService(storage, ledger),
        monitor=ConnectivityMonitor(ledger.ping),
        interval_seconds=settings.sync_interval_seconds,
        reconnect_delay_seconds=settings.sync_reconnect_delay_seconds,
        poll_interval_seconds=settings.connectivity_poll_seconds,
    )

    # Setup signal handlers for graceful shutdown
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, worker.stop)

    try:
        await worker.start()
    except Exception as e:
        logger.error("sync_worker_error", error=str(e))
        raise
    finally:
        await ledger.close()
        await close_db()
        logger.info("sync_worker_stopped")


def main() -> None:
    """Console entry point."""
    asyncio.run(start_sync_worker())


if __name__ == "__main__":
    main()
