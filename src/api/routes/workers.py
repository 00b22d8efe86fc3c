"""
Worker API Routes
=================

  GET /api/v1/workers/{worker_id}   -- Worker profile for the tipping screen

Reads go to the record store when online and fall back to the last cached
copy when it cannot be reached.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, status

from src.api.deps import Engine
from src.api.schemas.worker import SubscriptionOut, WorkerOut
from src.core.errors import StorageError
from src.services.subscriptionService import get_subscription_status

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/workers", tags=["Workers"])


@router.get(
    "/{worker_id}",
    response_model=WorkerOut,
    summary="Get a worker",
    description=(
        "Returns the worker's profile, tip totals and effective subscription, "
        "including the per-tip cap that applies to new tips."
    ),
)
async def get_worker(worker_id: str, sync_engine: Engine) -> WorkerOut:
    try:
        worker = await sync_engine.lookup_worker(worker_id)
    except StorageError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Local tip storage unavailable: {exc.message}",
        ) from exc
    if worker is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Worker {worker_id} not found",
        )

    subscription = get_subscription_status(
        worker.subscription_plan,
        worker.subscription_expiry,
        worker.created_at,
    )
    return WorkerOut(
        worker_id=worker.worker_id,
        name=worker.name,
        occupation=worker.occupation,
        total_tips=worker.total_tips,
        tip_count=worker.tip_count,
        subscription=SubscriptionOut(
            plan=subscription.plan,
            is_active=subscription.is_active,
            is_limited_mode=subscription.is_limited_mode,
            max_tip_amount=subscription.max_tip_amount,
            expiry_date=subscription.expiry_date,
        ),
    )
