"""
Connectivity API Routes
=======================

  GET /api/v1/connectivity   -- Current connectivity and queue depth
  PUT /api/v1/connectivity   -- Report a connectivity observation

A client with its own reachability signal can report it here; going online
triggers a queue drain through the sync engine's monitor subscription.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, status

from src.api.deps import Engine, Monitor, Queue
from src.api.schemas.worker import ConnectivityIn, ConnectivityOut
from src.core.errors import StorageError
from src.sync.localQueue import LocalDurableQueue
from src.sync.networkMonitor import NetworkStateMonitor
from src.sync.syncEngine import SyncEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/connectivity", tags=["Connectivity"])


async def _snapshot(
    monitor: NetworkStateMonitor,
    queue: LocalDurableQueue,
    sync_engine: SyncEngine,
) -> ConnectivityOut:
    try:
        queued = await queue.count()
    except StorageError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Local tip storage unavailable: {exc.message}",
        ) from exc
    return ConnectivityOut(
        online=monitor.is_online,
        queued=queued,
        draining=sync_engine.is_draining,
    )


@router.get(
    "",
    response_model=ConnectivityOut,
    summary="Get connectivity state",
)
async def get_connectivity(
    monitor: Monitor, queue: Queue, sync_engine: Engine
) -> ConnectivityOut:
    return await _snapshot(monitor, queue, sync_engine)


@router.put(
    "",
    response_model=ConnectivityOut,
    summary="Report connectivity",
    description="Records a connectivity observation. Going online starts a queue drain.",
)
async def set_connectivity(
    body: ConnectivityIn,
    monitor: Monitor,
    queue: Queue,
    sync_engine: Engine,
) -> ConnectivityOut:
    monitor.set_online(body.online)
    return await _snapshot(monitor, queue, sync_engine)
