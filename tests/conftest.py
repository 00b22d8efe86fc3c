"""
Shared pytest fixtures for TTip backend unit tests.

Provides a temp-file local queue, an on-disk SQLite record store with the
server-of-record tables, the gateway / record store doubles, and sample
workers.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.models import Base, Worker
from src.sync.localQueue import LocalDurableQueue
from src.sync.types import WorkerSnapshot
from tests.fakes import FakeGateway, FakeRecordStore

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Local durable queue
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def local_queue(tmp_path) -> AsyncGenerator[LocalDurableQueue, None]:
    """A freshly initialised queue backed by a file in ``tmp_path``."""
    queue = LocalDurableQueue(f"sqlite+aiosqlite:///{tmp_path / 'queue.db'}")
    await queue.init()
    yield queue
    await queue.close()


# ---------------------------------------------------------------------------
# Record store (SQLite file)
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def record_session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'records.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def record_db(record_session_factory) -> AsyncGenerator[AsyncSession, None]:
    """A session on the record store with worker W1 inserted."""
    async with record_session_factory() as session:
        session.add(
            Worker(
                worker_id="W1",
                name="Amina Otieno",
                occupation="Barista",
                phone="254700000001",
                subscription_plan="free",
                total_tips=0,
                tip_count=0,
                created_at=NOW - timedelta(days=60),
            )
        )
        await session.commit()
        yield session


# ---------------------------------------------------------------------------
# Doubles
# ---------------------------------------------------------------------------


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def sample_worker() -> WorkerSnapshot:
    """A worker past the trial with no subscription (no tip cap)."""
    return WorkerSnapshot(
        worker_id="W1",
        name="Amina Otieno",
        occupation="Barista",
        subscription_plan="free",
        created_at=NOW - timedelta(days=60),
    )


@pytest.fixture
def lite_worker() -> WorkerSnapshot:
    """A worker on an active lite subscription (cap 500)."""
    return WorkerSnapshot(
        worker_id="W2",
        name="Brian Kamau",
        occupation="Waiter",
        subscription_plan="lite",
        subscription_expiry=NOW + timedelta(days=30),
        created_at=NOW - timedelta(days=60),
    )


@pytest.fixture
def record_store(sample_worker, lite_worker) -> FakeRecordStore:
    return FakeRecordStore(workers=[sample_worker, lite_worker])
