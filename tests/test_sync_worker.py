"""
Tests for connectivity tracking and the auto-sync worker.
"""
from typing import Dict, List, Optional

import pytest

from fakes import RecordingSleep
from pos_resilience.core.connectivity import ConnectivityMonitor
from pos_resilience.core.exceptions import SyncError
from pos_resilience.workers.sync_worker import AutoSyncWorker


class Probe:
    def __init__(self, *results: object) -> None:
        self.results = list(results)

    async def __call__(self) -> bool:
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return bool(result)


class FakeSyncService:
    def __init__(self) -> None:
        self.runs = 0

    async def sync_transactions(self) -> Dict[str, int]:
        self.runs += 1
        return {"success": 1, "failed": 0}


class Monotonic:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _worker(probe: Probe, sync: FakeSyncService, clock: Monotonic, sleep: RecordingSleep) -> AutoSyncWorker:
    return AutoSyncWorker(
        sync_service=sync,  # type: ignore[arg-type]
        monitor=ConnectivityMonitor(probe),
        interval_seconds=300,
        reconnect_delay_seconds=1.0,
        poll_interval_seconds=10,
        clock=clock,
        sleep=sleep,
    )


class TestConnectivityMonitor:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_first_success_counts_as_regained(self) -> None:
        monitor = ConnectivityMonitor(Probe(True))

        assert monitor.is_online is False
        assert await monitor.check() is True
        assert monitor.is_online is True
        assert monitor.changed_at is not None
        assert await monitor.check() is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_probe_error_means_offline(self) -> None:
        monitor = ConnectivityMonitor(Probe(True, RuntimeError("dns"), True))

        assert await monitor.check() is True
        assert await monitor.check() is False
        assert monitor.is_online is False
        assert await monitor.check() is True


class TestAutoSyncWorker:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_never_syncs_offline(self) -> None:
        sync, clock, sleep = FakeSyncService(), Monotonic(), RecordingSleep()
        worker = _worker(Probe(False), sync, clock, sleep)

        for _ in range(3):
            clock.now += 1000
            assert await worker.run_once() is None

        assert sync.runs == 0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_syncs_after_reconnect_delay(self) -> None:
        sync, clock, sleep = FakeSyncService(), Monotonic(), RecordingSleep()
        worker = _worker(Probe(False, True), sync, clock, sleep)

        assert await worker.run_once() is None
        assert await worker.run_once() == {"success": 1, "failed": 0}

        assert sleep.calls == [1.0]
        assert sync.runs == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_syncs_on_interval_while_online(self) -> None:
        sync, clock, sleep = FakeSyncService(), Monotonic(), RecordingSleep()
        worker = _worker(Probe(True), sync, clock, sleep)

        await worker.run_once()
        assert sync.runs == 1

        clock.now += 299
        assert await worker.run_once() is None
        assert sync.runs == 1

        clock.now += 1
        await worker.run_once()
        assert sync.runs == 2

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_manual_sync(self) -> None:
        sync, clock, sleep = FakeSyncService(), Monotonic(), RecordingSleep()
        worker = _worker(Probe(True), sync, clock, sleep)

        assert await worker.trigger_sync() == {"success": 1, "failed": 0}
        assert sync.runs == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_manual_sync_refused_offline(self) -> None:
        sync, clock, sleep = FakeSyncService(), Monotonic(), RecordingSleep()
        worker = _worker(Probe(False), sync, clock, sleep)

        with pytest.raises(SyncError, match="offline"):
            await worker.trigger_sync()
        assert sync.runs == 0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_start_loops_until_stopped(self) -> None:
        sync, clock = FakeSyncService(), Monotonic()
        polls: List[float] = []
        worker: Optional[AutoSyncWorker] = None

        async def sleep(seconds: float) -> None:
            polls.append(seconds)
            if len(polls) == 3:
                worker.stop()

        worker = AutoSyncWorker(
            sync_service=sync,  # type: ignore[arg-type]
            monitor=ConnectivityMonitor(Probe(RuntimeError("offline"))),
            poll_interval_seconds=10,
            clock=clock,
            sleep=sleep,
        )

        await worker.start()

        assert polls == [10, 10, 10]
        assert sync.runs == 0
