"""
Shared FastAPI dependencies for the TTip backend.

Provides the async record-store session dependency used by route handlers,
and accessors for the long-lived sync components that the application
lifespan builds and stores on ``app.state``.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.core.config import settings
from src.integrations.mpesa.darajaService import DarajaClient
from src.sync.localQueue import LocalDurableQueue
from src.sync.networkMonitor import NetworkStateMonitor
from src.sync.syncEngine import SyncEngine

# ---------------------------------------------------------------------------
# Record-store engine & session factory
# ---------------------------------------------------------------------------
# One engine per process. Route handlers get a request-scoped session from
# ``get_db``; the sync engine's ``SqlRecordStore`` opens short sessions from
# the same factory. SQLite URLs (local development) skip pool sizing.
# ---------------------------------------------------------------------------


def _engine_options(url: str) -> dict:
    options: dict = {"echo": settings.sql_echo, "pool_pre_ping": True}
    if not url.startswith("sqlite"):
        options["pool_size"] = settings.db_pool_size
        options["max_overflow"] = settings.db_max_overflow
    return options


engine = create_async_engine(settings.database_url, **_engine_options(settings.database_url))

async_session_factory = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped record-store session.

    Commits when the handler returns and rolls back if it raises.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# ---------------------------------------------------------------------------
# Sync components (built once in the lifespan)
# ---------------------------------------------------------------------------

def get_sync_engine(request: Request) -> SyncEngine:
    return request.app.state.sync_engine


def get_local_queue(request: Request) -> LocalDurableQueue:
    return request.app.state.local_queue


def get_network_monitor(request: Request) -> NetworkStateMonitor:
    return request.app.state.network_monitor


def get_daraja_client(request: Request) -> DarajaClient:
    return request.app.state.daraja_client


# ---------------------------------------------------------------------------
# Annotated type aliases for convenience
# ---------------------------------------------------------------------------
DBSession = Annotated[AsyncSession, Depends(get_db)]
Engine = Annotated[SyncEngine, Depends(get_sync_engine)]
Queue = Annotated[LocalDurableQueue, Depends(get_local_queue)]
Monitor = Annotated[NetworkStateMonitor, Depends(get_network_monitor)]
Daraja = Annotated[DarajaClient, Depends(get_daraja_client)]
