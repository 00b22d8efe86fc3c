"""
Tip Service
===========

Record-store operations for tips.

A tip row is created in 'pending' once the gateway has accepted the
push-payment submission. The asynchronous M-Pesa callback later moves it to
'completed' (with receipt) or 'failed' through ``apply_settlement``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.errors import CallbackMismatch
from src.events.tipEvents import (
    crossed_milestones,
    emit_milestone_reached,
    emit_tip_settled,
)
from src.models import Tip, TipStatus, Worker
from src.services.tipLifecycle import status_for_result_code, validate_transition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SettlementResult:
    """Outcome of applying a settlement callback to a tip."""
    transaction_id: str
    applied: bool
    status: str
    message: str


async def get_worker(db: AsyncSession, worker_id: str) -> Optional[Worker]:
    """Return the worker with the given id, or None."""
    result = await db.execute(select(Worker).where(Worker.worker_id == worker_id))
    return result.scalar_one_or_none()


async def get_tip_by_transaction(
    db: AsyncSession,
    transaction_id: str,
) -> Optional[Tip]:
    """Return the tip correlated with a gateway transaction id, or None."""
    result = await db.execute(select(Tip).where(Tip.transaction_id == transaction_id))
    return result.scalar_one_or_none()


async def get_tip_by_reference(
    db: AsyncSession,
    client_reference: str,
) -> Optional[Tip]:
    """Return the tip created for a device-side intent id, or None."""
    result = await db.execute(
        select(Tip).where(Tip.client_reference == client_reference)
    )
    return result.scalar_one_or_none()


async def create_pending_tip(
    db: AsyncSession,
    *,
    worker_id: str,
    amount: int,
    customer_phone: str,
    client_reference: str,
    transaction_id: str,
    merchant_request_id: str | None = None,
) -> Tip:
    """Create a tip in 'pending' for an accepted push-payment submission.

    Idempotent on ``client_reference``: if a tip already exists for the
    intent, it is returned unchanged.

    Args:
        db: Async database session.
        worker_id: Worker receiving the tip.
        amount: Tip amount in KES.
        customer_phone: Normalized payer MSISDN.
        client_reference: The device-generated TipIntent id.
        transaction_id: Gateway correlation id (CheckoutRequestID).
        merchant_request_id: Secondary gateway id, if provided.

    Returns:
        The new or existing Tip ORM instance.
    """
    existing = await get_tip_by_reference(db, client_reference)
    if existing is not None:
        logger.info(
            "Tip already recorded for reference %s (transaction=%s)",
            client_reference,
            existing.transaction_id,
        )
        return existing

    tip = Tip(
        worker_id=worker_id,
        amount=amount,
        customer_phone=customer_phone,
        client_reference=client_reference,
        transaction_id=transaction_id,
        merchant_request_id=merchant_request_id,
        status=TipStatus.PENDING.value,
    )
    db.add(tip)
    await db.flush()

    logger.info(
        "Tip created: worker=%s, transaction=%s, amount=%d",
        worker_id,
        transaction_id,
        amount,
    )
    return tip


async def _credit_worker(db: AsyncSession, tip: Tip) -> None:
    """Add a completed tip to the worker's running totals.

    The increment is done in SQL so concurrent completions for the same
    worker do not overwrite each other.
    """
    result = await db.execute(
        update(Worker)
        .where(Worker.worker_id == tip.worker_id)
        .values(
            total_tips=func.coalesce(Worker.total_tips, 0) + tip.amount,
            tip_count=func.coalesce(Worker.tip_count, 0) + 1,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        logger.warning(
            "Completed tip %s references unknown worker %s",
            tip.transaction_id,
            tip.worker_id,
        )
        return

    new_total = (
        await db.execute(
            select(Worker.total_tips).where(Worker.worker_id == tip.worker_id)
        )
    ).scalar_one()
    for milestone in crossed_milestones(new_total - tip.amount, new_total):
        emit_milestone_reached(tip.worker_id, milestone)


def _ignored(transaction_id: str, status: str, reason: str) -> SettlementResult:
    logger.info("Settlement ignored for transaction %s: %s", transaction_id, reason)
    return SettlementResult(
        transaction_id=transaction_id,
        applied=False,
        status=status,
        message=reason,
    )


async def apply_settlement(
    db: AsyncSession,
    transaction_id: str,
    result_code: int,
    *,
    result_desc: str | None = None,
    receipt: str | None = None,
) -> SettlementResult:
    """Apply a gateway settlement result to the matching pending tip.

    A tip already in a terminal state is left untouched, which makes
    duplicate and late callbacks harmless. The status change is a
    conditional UPDATE on the current status, so of two callbacks racing
    on the same tip only one applies it (and credits the worker).

    Raises:
        CallbackMismatch: If no tip exists for ``transaction_id``. No record
            is ever created here.
    """
    tip = await get_tip_by_transaction(db, transaction_id)
    if tip is None:
        raise CallbackMismatch(transaction_id)

    new_status = status_for_result_code(result_code)
    transition = validate_transition(tip.status, new_status)
    if not transition.allowed:
        return _ignored(transaction_id, tip.status, transition.reason or "ignored")

    values = {
        "status": new_status.value,
        "result_code": result_code,
        "result_desc": result_desc,
        "settled_at": datetime.now(tz=timezone.utc),
    }
    if new_status == TipStatus.COMPLETED:
        values["mpesa_receipt"] = receipt

    result = await db.execute(
        update(Tip)
        .where(Tip.transaction_id == transaction_id, Tip.status == tip.status)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    await db.refresh(tip)
    if result.rowcount == 0:
        return _ignored(
            transaction_id, tip.status, f"Tip already {tip.status}"
        )

    if new_status == TipStatus.COMPLETED:
        await _credit_worker(db, tip)

    emit_tip_settled(transaction_id, tip.worker_id, tip.status, tip.mpesa_receipt)
    logger.info(
        "Tip settled: transaction=%s, status=%s, receipt=%s",
        transaction_id,
        tip.status,
        tip.mpesa_receipt,
    )
    return SettlementResult(
        transaction_id=transaction_id,
        applied=True,
        status=tip.status,
        message=f"Tip {transaction_id} is now {tip.status}",
    )
