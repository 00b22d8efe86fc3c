"""
Edge validation for tip requests.

Validation failures never reach the sync engine: a ``TipIntent`` is only
built once the amount, phone and the worker's plan cap all check out.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from src.core.config import settings
from src.core.errors import ValidationError
from src.core.phone import normalize_phone
from src.services.subscriptionService import get_subscription_status
from src.sync.types import TipIntent, WorkerSnapshot

logger = logging.getLogger(__name__)


def validate_amount(amount: int, max_amount: Optional[int] = None) -> int:
    """Check a tip amount against the M-Pesa per-transaction bounds."""
    max_amount = max_amount if max_amount is not None else settings.mpesa_max_amount
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError("Amount must be a whole number of KES", field="amount")
    if amount <= 0:
        raise ValidationError("Amount must be greater than 0", field="amount")
    if amount > max_amount:
        raise ValidationError(
            f"Amount cannot exceed KES {max_amount:,}", field="amount"
        )
    return amount


def validate_phone(phone: str) -> str:
    """Return the gateway form of ``phone`` or raise ``ValidationError``."""
    try:
        return normalize_phone(phone)
    except ValueError as exc:
        raise ValidationError(
            "Please enter a valid Kenyan phone number (e.g. 0712345678)",
            field="customer_phone",
        ) from exc


def build_tip_intent(
    worker: WorkerSnapshot,
    amount: int,
    customer_phone: str,
    now: Optional[datetime] = None,
) -> TipIntent:
    """Validate a tip request and build the intent handed to the sync engine.

    Args:
        worker: The receiving worker (from the record store or local cache).
        amount: Requested amount in KES.
        customer_phone: Payer phone number in any accepted Kenyan format.
        now: Reference time for the subscription check.

    Raises:
        ValidationError: On a bad amount, bad phone number, or an amount above
            the worker's plan cap.
    """
    validate_amount(amount)
    phone = validate_phone(customer_phone)

    status = get_subscription_status(
        worker.subscription_plan,
        worker.subscription_expiry,
        worker.created_at,
        now=now,
    )
    if status.max_tip_amount is not None and amount > status.max_tip_amount:
        logger.info(
            "Tip of %d rejected for worker %s: %s plan cap is %d",
            amount,
            worker.worker_id,
            status.plan,
            status.max_tip_amount,
        )
        raise ValidationError(
            f"{worker.name} can receive at most KES {status.max_tip_amount:,} "
            f"per tip on the {status.plan} plan",
            field="amount",
        )

    return TipIntent(worker_id=worker.worker_id, amount=amount, customer_phone=phone)
