"""
Pydantic v2 schemas for the Tip API.

Covers:
- Create tip request (customer tips a worker)
- Tip outcome (submitted / queued / rejected)
- Server-of-record tip output
- Local queue entries and sync / reconcile results
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class CreateTipRequest(BaseModel):
    """Request body for tipping a worker."""

    worker_id: str = Field(min_length=1, description="Worker receiving the tip")
    amount: int = Field(description="Tip amount in whole KES")
    customer_phone: str = Field(
        description="Payer phone number, e.g. 0712345678 or +254712345678",
    )


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class TipOutcomeOut(BaseModel):
    """What happened to a tip request."""

    model_config = ConfigDict(from_attributes=True)

    status: Literal["submitted", "queued", "rejected"]
    intent_id: str
    transaction_id: Optional[str] = None
    entry_id: Optional[str] = None
    message: str = ""


class TipResponse(BaseModel):
    """Tip as held by the server of record."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    worker_id: str
    amount: int
    customer_phone: str
    transaction_id: str
    status: str
    mpesa_receipt: Optional[str] = None
    result_desc: Optional[str] = None
    created_at: datetime
    settled_at: Optional[datetime] = None


class QueueEntryOut(BaseModel):
    """A tip intent waiting in the local queue."""

    entry_id: str
    worker_id: str
    amount: int
    customer_phone: str
    created_at: datetime
    attempts: int
    last_attempt_at: Optional[datetime] = None
    last_error: Optional[str] = None
    flagged: bool = False


class QueueListOut(BaseModel):
    count: int
    entries: list[QueueEntryOut]


class SyncRequestOut(BaseModel):
    """Result of asking for a queue drain."""

    status: Literal["started", "deferred", "offline"]
    queued: int


class ReconcileOut(BaseModel):
    """Result of querying the gateway for a pending tip."""

    transaction_id: str
    gateway_status: Literal["success", "pending", "failed", "skipped"]
    applied: bool
    status: str
    message: str
