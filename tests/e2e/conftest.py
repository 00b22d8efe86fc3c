"""
E2E test fixtures for the TTip backend.

Provides:
- An in-process FastAPI test app with all routes registered
- httpx AsyncClient wired via ASGI transport (no network needed)
- A SQLite record store (temp file) seeded with workers
- A temp-file local queue, a network monitor and a started sync engine
- A fake payment gateway for STK push submissions, and a Daraja client on
  ``httpx.MockTransport`` for status queries

The full route -> sync engine -> queue / record store flow is exercised.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.integrations.mpesa.darajaService import DarajaClient
from src.models import Base, Tip, Worker
from src.sync.localQueue import LocalDurableQueue
from src.sync.networkMonitor import NetworkStateMonitor
from src.sync.recordStore import SqlRecordStore
from src.sync.syncEngine import SyncEngine
from tests.fakes import FakeGateway

# ---------------------------------------------------------------------------
# Test IDs (stable across tests so cross-references work)
# ---------------------------------------------------------------------------

FREE_WORKER_ID = "W1"
LITE_WORKER_ID = "W2"
TRIAL_WORKER_ID = "W3"

CUSTOMER_PHONE = "0712345678"


# ---------------------------------------------------------------------------
# Record store (SQLite file per test)
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'records.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        await _seed_data(session)

    yield factory
    await engine.dispose()


async def _seed_data(db: AsyncSession) -> None:
    now = datetime.now(tz=timezone.utc)
    db.add_all(
        [
            Worker(
                worker_id=FREE_WORKER_ID,
                name="Amina Otieno",
                occupation="Barista",
                phone="254700000001",
                subscription_plan="free",
                created_at=now - timedelta(days=90),
            ),
            Worker(
                worker_id=LITE_WORKER_ID,
                name="Brian Kamau",
                occupation="Waiter",
                phone="254700000002",
                subscription_plan="lite",
                subscription_expiry=now + timedelta(days=20),
                created_at=now - timedelta(days=90),
            ),
            Worker(
                worker_id=TRIAL_WORKER_ID,
                name="Cynthia Wanjiru",
                occupation="Hairdresser",
                phone="254700000003",
                subscription_plan="free",
                created_at=now - timedelta(days=2),
            ),
        ]
    )
    await db.commit()


async def list_tips(factory: async_sessionmaker[AsyncSession]) -> list[Tip]:
    """All tips in the record store, oldest first."""
    async with factory() as session:
        result = await session.execute(select(Tip).order_by(Tip.created_at))
        return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Sync components
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def local_queue(tmp_path) -> AsyncGenerator[LocalDurableQueue, None]:
    queue = LocalDurableQueue(f"sqlite+aiosqlite:///{tmp_path / 'queue.db'}")
    await queue.init()
    yield queue
    await queue.close()


@pytest.fixture
def monitor() -> NetworkStateMonitor:
    return NetworkStateMonitor(initial_online=True)


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


class DarajaQueryStub:
    """Serves the Daraja token and STK query endpoints."""

    def __init__(self) -> None:
        self.query_body: dict[str, Any] = {"ResultCode": "0", "ResultDesc": "ok"}
        self.query_status = 200
        self.queries = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/oauth/v1/generate":
            return httpx.Response(200, json={"access_token": "t", "expires_in": "3599"})
        if request.url.path == "/mpesa/stkpushquery/v1/query":
            self.queries += 1
            return httpx.Response(self.query_status, json=self.query_body)
        return httpx.Response(404)


@pytest.fixture
def daraja_stub() -> DarajaQueryStub:
    return DarajaQueryStub()


@pytest_asyncio.fixture
async def daraja_client(daraja_stub) -> AsyncGenerator[DarajaClient, None]:
    client = DarajaClient(
        base_url="https://daraja.test",
        consumer_key="key",
        consumer_secret="secret",
        passkey="passkey",
        http_client=httpx.AsyncClient(
            transport=httpx.MockTransport(daraja_stub), base_url="https://daraja.test"
        ),
    )
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def sync_engine(
    monitor, local_queue, fake_gateway, session_factory
) -> AsyncGenerator[SyncEngine, None]:
    engine = SyncEngine(monitor, local_queue, fake_gateway, SqlRecordStore(session_factory))
    await engine.start()
    yield engine
    await engine.stop()


# ---------------------------------------------------------------------------
# FastAPI test application
# ---------------------------------------------------------------------------

def _create_test_app(
    factory: async_sessionmaker[AsyncSession],
    sync_engine: SyncEngine,
    local_queue: LocalDurableQueue,
    monitor: NetworkStateMonitor,
    daraja_client: DarajaClient,
):
    """Build a FastAPI app with all routes registered, the DB dependency
    overridden to use the test record store, and the sync components set on
    ``app.state`` the way the lifespan does."""
    from fastapi import FastAPI

    from src.api.deps import get_db
    from src.api.routes.connectivity import router as connectivity_router
    from src.api.routes.mpesa import router as mpesa_router
    from src.api.routes.tips import router as tips_router
    from src.api.routes.workers import router as workers_router

    app = FastAPI(title="TTip Test")

    async def _override_get_db():
        async with factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _override_get_db

    app.state.sync_engine = sync_engine
    app.state.local_queue = local_queue
    app.state.network_monitor = monitor
    app.state.daraja_client = daraja_client

    app.include_router(tips_router, prefix="/api/v1")
    app.include_router(workers_router, prefix="/api/v1")
    app.include_router(connectivity_router, prefix="/api/v1")
    app.include_router(mpesa_router, prefix="/api/v1")

    return app


@pytest_asyncio.fixture
async def client(
    session_factory, sync_engine, local_queue, monitor, daraja_client
) -> AsyncGenerator[AsyncClient, None]:
    """httpx AsyncClient connected to the test app via ASGI transport."""
    app = _create_test_app(session_factory, sync_engine, local_queue, monitor, daraja_client)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def post_tip(
    client: AsyncClient,
    worker_id: str = FREE_WORKER_ID,
    amount: int = 100,
    phone: str = CUSTOMER_PHONE,
) -> httpx.Response:
    return await client.post(
        "/api/v1/tips",
        json={"worker_id": worker_id, "amount": amount, "customer_phone": phone},
    )


def stk_callback(checkout_id: str, result_code: int = 0, receipt: str = "ABC123") -> dict:
    callback: dict[str, Any] = {
        "MerchantRequestID": "MR-0001",
        "CheckoutRequestID": checkout_id,
        "ResultCode": result_code,
        "ResultDesc": "The service request is processed successfully."
        if result_code == 0
        else "Request cancelled by user",
    }
    if result_code == 0:
        callback["CallbackMetadata"] = {
            "Item": [
                {"Name": "Amount", "Value": 100},
                {"Name": "MpesaReceiptNumber", "Value": receipt},
                {"Name": "PhoneNumber", "Value": 254712345678},
            ]
        }
    return {"Body": {"stkCallback": callback}}
