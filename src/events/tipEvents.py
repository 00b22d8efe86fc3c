"""
Tip Event Emission Stubs
========================

Event system for tip lifecycle changes. Each function emits an event that
downstream consumers (push notifications, analytics, leaderboards) can
subscribe to.

The transport layer is not wired yet: each emitter logs the event and
returns the payload dict so callers can integrate with it immediately.

Events emitted:
  - tip.submitted
  - tip.queued
  - tip.settled
  - worker.milestone_reached
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)

# Worker tip totals (KES) that trigger a milestone event
TIP_MILESTONES: tuple[int, ...] = (500, 1_000, 10_000)


def _build_event(
    event_type: str,
    subject_id: str,
    *,
    data: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Construct a standardised event payload."""
    return {
        "event_type": event_type,
        "subject_id": subject_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "data": data or {},
    }


def emit_tip_submitted(
    transaction_id: str,
    worker_id: str,
    amount: int,
) -> dict[str, Any]:
    """Emit event when the gateway accepts a push-payment submission."""
    event = _build_event(
        "tip.submitted",
        transaction_id,
        data={"worker_id": worker_id, "amount": amount},
    )
    logger.info("Event emitted: %s for transaction %s", event["event_type"], transaction_id)
    return event


def emit_tip_queued(
    entry_id: str,
    worker_id: str,
    amount: int,
    reason: str,
) -> dict[str, Any]:
    """Emit event when a tip intent is parked in the local queue."""
    event = _build_event(
        "tip.queued",
        entry_id,
        data={"worker_id": worker_id, "amount": amount, "reason": reason},
    )
    logger.info("Event emitted: %s for entry %s (%s)", event["event_type"], entry_id, reason)
    return event


def emit_tip_settled(
    transaction_id: str,
    worker_id: str,
    status: str,
    receipt: str | None = None,
) -> dict[str, Any]:
    """Emit event when a tip reaches a terminal state."""
    event = _build_event(
        "tip.settled",
        transaction_id,
        data={"worker_id": worker_id, "status": status, "mpesa_receipt": receipt},
    )
    logger.info(
        "Event emitted: %s for transaction %s -> %s",
        event["event_type"],
        transaction_id,
        status,
    )
    return event


def crossed_milestones(previous_total: int, new_total: int) -> list[int]:
    """Return the milestones crossed when a total moves from previous to new."""
    return [m for m in TIP_MILESTONES if previous_total < m <= new_total]


def emit_milestone_reached(worker_id: str, milestone: int) -> dict[str, Any]:
    """Emit event when a worker's accumulated tips cross a milestone."""
    event = _build_event(
        "worker.milestone_reached",
        worker_id,
        data={"milestone": milestone},
    )
    logger.info("Event emitted: %s for worker %s (%d)", event["event_type"], worker_id, milestone)
    return event
