"""
Tip API Routes
==============

REST endpoints for tipping workers and managing the offline queue.

  POST   /api/v1/tips                              -- Tip a worker (submit or queue)
  GET    /api/v1/tips/queue                        -- List queued tip intents
  DELETE /api/v1/tips/queue/{entry_id}             -- Remove a queued intent
  POST   /api/v1/tips/sync                         -- Request a queue drain
  GET    /api/v1/tips/{transaction_id}             -- Get a recorded tip
  POST   /api/v1/tips/{transaction_id}/reconcile   -- Query the gateway for a pending tip
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Response, status

from src.api.deps import Daraja, DBSession, Engine, Monitor, Queue
from src.api.schemas.tip import (
    CreateTipRequest,
    QueueEntryOut,
    QueueListOut,
    ReconcileOut,
    SyncRequestOut,
    TipOutcomeOut,
    TipResponse,
)
from src.core.errors import RecordStoreError, StorageError, ValidationError
from src.services import tipService
from src.services.tipLifecycle import is_terminal
from src.services.tipValidation import build_tip_intent
from src.sync.types import OutcomeStatus, QueueEntry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tips", tags=["Tips"])

_OUTCOME_STATUS_CODES = {
    OutcomeStatus.SUBMITTED: status.HTTP_201_CREATED,
    OutcomeStatus.QUEUED: status.HTTP_202_ACCEPTED,
    OutcomeStatus.REJECTED: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


def _entry_out(entry: QueueEntry) -> QueueEntryOut:
    return QueueEntryOut(
        entry_id=entry.id,
        worker_id=entry.intent.worker_id,
        amount=entry.intent.amount,
        customer_phone=entry.intent.customer_phone,
        created_at=entry.intent.created_at,
        attempts=entry.attempts,
        last_attempt_at=entry.last_attempt_at,
        last_error=entry.last_error,
        flagged=entry.flagged,
    )


def _storage_unavailable(exc: StorageError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=f"Local tip storage unavailable: {exc.message}",
    )


# ---------------------------------------------------------------------------
# POST /tips
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=TipOutcomeOut,
    status_code=status.HTTP_201_CREATED,
    summary="Tip a worker",
    description=(
        "Validates the request and sends an M-Pesa STK push to the customer. "
        "Returns 201 with the gateway transaction id when the prompt was sent, "
        "or 202 when the tip was queued locally and will be sent once the "
        "connection is restored."
    ),
)
async def create_tip(
    body: CreateTipRequest,
    response: Response,
    sync_engine: Engine,
) -> TipOutcomeOut:
    try:
        worker = await sync_engine.lookup_worker(body.worker_id)
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc
    if worker is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Worker {body.worker_id} not found",
        )

    try:
        intent = build_tip_intent(worker, body.amount, body.customer_phone)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=exc.message
        ) from exc

    try:
        outcome = await sync_engine.create_tip(intent)
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc
    except RecordStoreError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=(
                "Payment prompt was sent but the tip could not be recorded. "
                f"Reference: {intent.id}"
            ),
        ) from exc

    response.status_code = _OUTCOME_STATUS_CODES[outcome.status]
    return TipOutcomeOut(
        status=outcome.status.value,
        intent_id=outcome.intent_id,
        transaction_id=outcome.transaction_id,
        entry_id=outcome.entry_id,
        message=outcome.message,
    )


# ---------------------------------------------------------------------------
# GET /tips/queue
# ---------------------------------------------------------------------------

@router.get(
    "/queue",
    response_model=QueueListOut,
    summary="List queued tips",
    description="Returns tip intents waiting for connectivity, oldest first.",
)
async def list_queue(queue: Queue) -> QueueListOut:
    try:
        entries = await queue.drain()
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc
    return QueueListOut(count=len(entries), entries=[_entry_out(e) for e in entries])


# ---------------------------------------------------------------------------
# DELETE /tips/queue/{entry_id}
# ---------------------------------------------------------------------------

@router.delete(
    "/queue/{entry_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a queued tip",
    description="Manually discards a queued intent. Removing an unknown id is a no-op.",
)
async def remove_queue_entry(entry_id: str, queue: Queue) -> Response:
    try:
        await queue.remove(entry_id)
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc
    logger.info("Queued tip %s removed manually", entry_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# POST /tips/sync
# ---------------------------------------------------------------------------

@router.post(
    "/sync",
    response_model=SyncRequestOut,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Request a queue drain",
    description=(
        "Starts draining the local queue if the device is online. A request "
        "made while a drain is running is deferred until that drain finishes."
    ),
)
async def request_sync(
    sync_engine: Engine,
    queue: Queue,
    monitor: Monitor,
) -> SyncRequestOut:
    try:
        queued = await queue.count()
    except StorageError as exc:
        raise _storage_unavailable(exc) from exc

    if not monitor.is_online:
        return SyncRequestOut(status="offline", queued=queued)
    started = sync_engine.request_drain()
    return SyncRequestOut(status="started" if started else "deferred", queued=queued)


# ---------------------------------------------------------------------------
# GET /tips/{transaction_id}
# ---------------------------------------------------------------------------

@router.get(
    "/{transaction_id}",
    response_model=TipResponse,
    summary="Get a recorded tip",
    description="Returns the tip correlated with an M-Pesa CheckoutRequestID.",
)
async def get_tip(transaction_id: str, db: DBSession) -> TipResponse:
    tip = await tipService.get_tip_by_transaction(db, transaction_id)
    if tip is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No tip found for transaction {transaction_id}",
        )
    return TipResponse.model_validate(tip)


# ---------------------------------------------------------------------------
# POST /tips/{transaction_id}/reconcile
# ---------------------------------------------------------------------------

@router.post(
    "/{transaction_id}/reconcile",
    response_model=ReconcileOut,
    summary="Reconcile a pending tip",
    description=(
        "Queries M-Pesa for the outcome of a tip still pending (for example "
        "when the callback never arrived). A failure is applied; a success "
        "leaves the tip pending until the callback delivers the receipt."
    ),
)
async def reconcile_tip(
    transaction_id: str,
    db: DBSession,
    daraja: Daraja,
) -> ReconcileOut:
    tip = await tipService.get_tip_by_transaction(db, transaction_id)
    if tip is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No tip found for transaction {transaction_id}",
        )

    if is_terminal(tip.status):
        return ReconcileOut(
            transaction_id=transaction_id,
            gateway_status="skipped",
            applied=False,
            status=tip.status,
            message=f"Tip is already {tip.status}",
        )

    result = await daraja.query_stk_status(transaction_id)
    if result.status == "pending":
        return ReconcileOut(
            transaction_id=transaction_id,
            gateway_status="pending",
            applied=False,
            status=tip.status,
            message=result.result_desc or "Payment still pending",
        )

    # The query carries no receipt; completion is left to the callback
    if result.status == "success":
        return ReconcileOut(
            transaction_id=transaction_id,
            gateway_status="success",
            applied=False,
            status=tip.status,
            message="Payment confirmed by M-Pesa; awaiting callback with receipt",
        )

    settlement = await tipService.apply_settlement(
        db,
        transaction_id,
        result.result_code,
        result_desc=result.result_desc,
    )
    return ReconcileOut(
        transaction_id=transaction_id,
        gateway_status=result.status,
        applied=settlement.applied,
        status=settlement.status,
        message=settlement.message,
    )
