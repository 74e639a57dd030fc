"""
Pytest configuration and fixtures.
"""
from pathlib import Path
from typing import Any, AsyncGenerator, Dict

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fakes import FakeClock, FakeLedger, RecordingSleep, ScriptedAdapter, make_gateways
from pos_resilience.config import GatewayConfig, Settings
from pos_resilience.core.offline_storage import OfflineStorage
from pos_resilience.core.payment_processor import PaymentProcessor
from pos_resilience.database.connection import create_engine_for_url, create_session_factory


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Create test settings."""
    return Settings(
        app_name="pos-resilience-test",
        app_env="test",
        log_level="DEBUG",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'settings.db'}",
        payment_gateways=[
            GatewayConfig(id="gateway1", name="Gateway 1", tier="primary", priority=1),
            GatewayConfig(id="gateway2", name="Gateway 2", tier="secondary", priority=2),
        ],
        sync_enabled=False,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def adapter() -> ScriptedAdapter:
    return ScriptedAdapter()


@pytest.fixture
def processor(
    adapter: ScriptedAdapter, clock: FakeClock, sleep: RecordingSleep
) -> PaymentProcessor:
    """Processor over three scripted gateways with no real waits."""
    gateways = make_gateways()
    return PaymentProcessor(
        gateways=gateways,
        adapters={g.id: adapter for g in gateways},
        failure_threshold=3,
        circuit_cooldown_seconds=300.0,
        retry_base_delay=1.0,
        clock=clock,
        sleep=sleep,
    )


@pytest_asyncio.fixture
async def session_factory(
    tmp_path: Path,
) -> AsyncGenerator[async_sessionmaker[AsyncSession], Any]:
    """Session factory over a throwaway SQLite file."""
    engine = create_engine_for_url(f"sqlite+aiosqlite:///{tmp_path / 'offline.db'}")
    yield create_session_factory(engine)
    await engine.dispose()


@pytest_asyncio.fixture
async def storage(session_factory: async_sessionmaker[AsyncSession]) -> OfflineStorage:
    store = OfflineStorage(session_factory)
    await store.init()
    return store


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def sample_sale() -> Dict[str, Any]:
    """Fields of an offline sale."""
    return {
        "items": [
            {"product_id": "sku-1", "name": "Coffee", "quantity": 2, "unit_price": "3.50"},
            {"product_id": "sku-2", "name": "Bagel", "quantity": 1, "unit_price": "2.25"},
        ],
        "subtotal": "9.25",
        "tax": "0.74",
        "total": "9.99",
        "payment_method": "cash",
        "store_id": "store-1",
        "user_id": "cashier-7",
        "business_id": "biz-1",
    }
