"""TTip API -- Main Application Entry Point

Creates the FastAPI application, builds the offline sync components
(local queue, network monitor, Daraja gateway, sync engine) in the lifespan,
and registers all API route modules under the /api/v1 prefix.

Run with::

    uvicorn src.main:app --host 0.0.0.0 --port 8000 --reload
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.core.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan: startup / shutdown hooks
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager.

    Startup:
      - Configure logging.
      - Open the local durable queue and create its tables.
      - Build the network monitor, Daraja client and sync engine, then start
        the engine (drains any backlog left from a previous run).
      - Start the connectivity probe if enabled.

    Shutdown:
      - Stop the probe and the engine (an in-flight drain finishes first),
        then close the HTTP client, the queue and the record-store engine.
    """
    from src.api.deps import async_session_factory, engine
    from src.integrations.mpesa.darajaService import DarajaClient
    from src.sync.gateway import PaymentGatewayAdapter
    from src.sync.localQueue import LocalDurableQueue
    from src.sync.networkMonitor import ConnectivityProbe, NetworkStateMonitor
    from src.sync.recordStore import SqlRecordStore
    from src.sync.syncEngine import SyncEngine, SyncPolicy

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    local_queue = LocalDurableQueue(settings.local_queue_url)
    await local_queue.init()

    # With probing enabled, start offline and let the first probe decide
    monitor = NetworkStateMonitor(
        initial_online=not settings.connectivity_probe_enabled,
        debounce_seconds=settings.network_debounce_seconds,
    )
    daraja_client = DarajaClient()
    sync_engine = SyncEngine(
        monitor,
        local_queue,
        PaymentGatewayAdapter(
            daraja_client,
            timeout_seconds=settings.gateway_timeout_seconds,
            account_reference=settings.daraja_account_reference,
        ),
        SqlRecordStore(async_session_factory),
        SyncPolicy(
            stale_entry_policy=settings.stale_entry_policy,
            stale_entry_max_age_hours=settings.stale_entry_max_age_hours,
            surface_gateway_rejections=settings.surface_gateway_rejections,
        ),
    )

    app.state.local_queue = local_queue
    app.state.network_monitor = monitor
    app.state.daraja_client = daraja_client
    app.state.sync_engine = sync_engine

    await sync_engine.start()

    probe = None
    if settings.connectivity_probe_enabled:
        probe = ConnectivityProbe(
            monitor,
            settings.connectivity_probe_url,
            interval_seconds=settings.connectivity_probe_interval_seconds,
            timeout_seconds=settings.connectivity_probe_timeout_seconds,
        )
        probe.start()

    logger.info("%s %s started", settings.app_name, settings.app_version)

    yield

    if probe is not None:
        await probe.stop()
    await sync_engine.stop()
    monitor.close()
    await daraja_client.aclose()
    await local_queue.close()
    await engine.dispose()


# ---------------------------------------------------------------------------
# Application instance
# ---------------------------------------------------------------------------

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# CORS middleware
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@app.get("/health", tags=["Health"])
async def health():
    """Lightweight health check for load balancers and readiness probes."""
    return {"status": "ok", "version": settings.app_version}


# ---------------------------------------------------------------------------
# Register API route modules
# ---------------------------------------------------------------------------
# Each router already defines its own prefix (e.g. /tips, /workers) and
# tags.  We mount them under the shared /api/v1 prefix so the full paths
# become /api/v1/tips, /api/v1/workers, etc.
# ---------------------------------------------------------------------------

from src.api.routes import (  # noqa: E402
    connectivity,
    mpesa,
    tips,
    workers,
)

_prefix = settings.api_v1_prefix

app.include_router(tips.router, prefix=_prefix)
app.include_router(workers.router, prefix=_prefix)
app.include_router(connectivity.router, prefix=_prefix)
app.include_router(mpesa.router, prefix=_prefix)
