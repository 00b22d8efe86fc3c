"""
M-Pesa API Routes
=================

  POST /api/v1/mpesa/callback   -- Daraja STK push result callback

Daraja retries callbacks it considers unacknowledged, so this endpoint always
answers ``{"ResultCode": 0, "ResultDesc": "Success"}``. Failures are logged
and the transaction can be recovered with ``POST /tips/{id}/reconcile``.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from sqlalchemy.exc import SQLAlchemyError

from src.api.deps import DBSession
from src.api.schemas.mpesa import CallbackAckOut
from src.integrations.mpesa.callbackHandler import handle_stk_callback

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/mpesa", tags=["M-Pesa"])


@router.post(
    "/callback",
    response_model=CallbackAckOut,
    summary="M-Pesa STK callback",
    description=(
        "Receives the asynchronous STK push result and moves the matching "
        "pending tip to completed or failed. Unknown transactions and "
        "duplicate callbacks are acknowledged and ignored."
    ),
)
async def stk_callback(request: Request, db: DBSession) -> CallbackAckOut:
    try:
        payload = await request.json()
    except ValueError:
        logger.warning("STK callback body is not JSON")
        return CallbackAckOut()
    if not isinstance(payload, dict):
        logger.warning("STK callback body is not an object")
        return CallbackAckOut()

    try:
        result = await handle_stk_callback(db, payload)
        await db.commit()
    except SQLAlchemyError:
        logger.exception("Failed to apply STK callback")
        await db.rollback()
        return CallbackAckOut()
    except Exception:
        # Daraja retries anything but the ack; recover with reconcile
        logger.exception("Unexpected error handling STK callback")
        await db.rollback()
        return CallbackAckOut()

    logger.info(
        "STK callback handled: transaction=%s, processed=%s, %s",
        result.transaction_id,
        result.processed,
        result.message,
    )
    return CallbackAckOut()
