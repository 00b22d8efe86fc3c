"""
M-Pesa STK Callback Handler
===========================

Processes the asynchronous result Daraja posts to ``CallBackURL`` after a
customer answers (or ignores) an STK prompt.

Payload shape::

    {"Body": {"stkCallback": {
        "MerchantRequestID": "...",
        "CheckoutRequestID": "ws_CO_...",
        "ResultCode": 0,
        "ResultDesc": "The service request is processed successfully.",
        "CallbackMetadata": {"Item": [
            {"Name": "Amount", "Value": 100},
            {"Name": "MpesaReceiptNumber", "Value": "ABC123"},
            {"Name": "TransactionDate", "Value": 20250101120000},
            {"Name": "PhoneNumber", "Value": 254712345678}
        ]}
    }}}

``CallbackMetadata`` is present only when ``ResultCode`` is 0.

Callbacks are keyed by ``CheckoutRequestID``. A callback for an unknown
transaction is logged and ignored; a duplicate for an already-settled tip
is a no-op.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.errors import CallbackMismatch
from src.services import tipService

logger = logging.getLogger(__name__)

# Acknowledgment Daraja expects regardless of what happened on our side
CALLBACK_ACK: dict[str, Any] = {"ResultCode": 0, "ResultDesc": "Success"}


# ---------------------------------------------------------------------------
# Parsed callback
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SettlementCallback:
    """Settlement result extracted from an STK callback payload."""
    checkout_request_id: str
    merchant_request_id: Optional[str]
    result_code: int
    result_desc: str
    amount: Optional[int] = None
    receipt: Optional[str] = None
    phone: Optional[str] = None


@dataclass(frozen=True)
class CallbackResult:
    """Result of processing an STK callback."""
    transaction_id: Optional[str]
    processed: bool
    message: str


def _metadata_items(callback: dict[str, Any]) -> dict[str, Any]:
    metadata = callback.get("CallbackMetadata") or {}
    if not isinstance(metadata, dict):
        raise ValueError("CallbackMetadata is not an object")
    items = metadata.get("Item") or []
    if not isinstance(items, list):
        raise ValueError("CallbackMetadata.Item is not a list")
    return {
        item.get("Name"): item.get("Value")
        for item in items
        if isinstance(item, dict) and isinstance(item.get("Name"), str)
    }


def parse_stk_callback(payload: dict[str, Any]) -> SettlementCallback:
    """Extract the settlement fields from a raw callback payload.

    Raises:
        ValueError: If the payload is not an STK callback.
    """
    body = payload.get("Body") if isinstance(payload, dict) else None
    if not isinstance(body, dict):
        raise ValueError("Payload has no Body object")
    callback = body.get("stkCallback")
    if not isinstance(callback, dict):
        raise ValueError("Payload has no Body.stkCallback")

    checkout_request_id = callback.get("CheckoutRequestID")
    if not checkout_request_id:
        raise ValueError("stkCallback has no CheckoutRequestID")

    try:
        result_code = int(callback.get("ResultCode"))
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid ResultCode: {callback.get('ResultCode')!r}") from exc

    items = _metadata_items(callback)
    amount = items.get("Amount")
    if amount is not None:
        try:
            amount = int(float(amount))
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Invalid Amount: {amount!r}") from exc
    receipt = items.get("MpesaReceiptNumber")
    phone = items.get("PhoneNumber")

    return SettlementCallback(
        checkout_request_id=str(checkout_request_id),
        merchant_request_id=callback.get("MerchantRequestID"),
        result_code=result_code,
        result_desc=str(callback.get("ResultDesc", "")),
        amount=amount,
        receipt=str(receipt) if receipt is not None else None,
        phone=str(phone) if phone is not None else None,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def handle_stk_callback(
    db: AsyncSession,
    payload: dict[str, Any],
) -> CallbackResult:
    """Apply an inbound STK callback to the Tip Record Lifecycle.

    Steps:
    1. Parse the payload (malformed payloads are acknowledged, not applied)
    2. Look up the pending tip by CheckoutRequestID
    3. Transition it to completed (with receipt) or failed

    Never raises for unknown transactions or malformed payloads; the caller
    still acknowledges the callback so Daraja does not retry.
    """
    try:
        callback = parse_stk_callback(payload)
    except ValueError as exc:
        logger.warning("Ignoring malformed STK callback: %s", exc)
        return CallbackResult(
            transaction_id=None,
            processed=False,
            message=f"Malformed callback: {exc}",
        )

    try:
        settlement = await tipService.apply_settlement(
            db,
            callback.checkout_request_id,
            callback.result_code,
            result_desc=callback.result_desc,
            receipt=callback.receipt,
        )
    except CallbackMismatch as exc:
        logger.warning("STK callback mismatch: %s", exc.message)
        return CallbackResult(
            transaction_id=callback.checkout_request_id,
            processed=False,
            message=exc.message,
        )

    return CallbackResult(
        transaction_id=callback.checkout_request_id,
        processed=settlement.applied,
        message=settlement.message,
    )
