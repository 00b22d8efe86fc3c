"""
Value types shared by the sync core.

These are plain frozen dataclasses so they can cross the queue, the engine
and the API without dragging an ORM session along.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


def new_intent_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes; SQLite hands them back without a zone."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class TipIntent:
    """A customer's request to pay a worker, before gateway confirmation."""
    worker_id: str
    amount: int
    customer_phone: str
    id: str = field(default_factory=new_intent_id)
    created_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class QueueEntry:
    """A TipIntent resident in the local durable queue."""
    intent: TipIntent
    attempts: int = 0
    last_attempt_at: Optional[datetime] = None
    last_error: Optional[str] = None
    flagged: bool = False

    @property
    def id(self) -> str:
        return self.intent.id


@dataclass(frozen=True)
class WorkerSnapshot:
    """Read-only copy of the worker fields the core needs."""
    worker_id: str
    name: str
    occupation: Optional[str] = None
    subscription_plan: str = "free"
    subscription_expiry: Optional[datetime] = None
    created_at: Optional[datetime] = None
    total_tips: int = 0
    tip_count: int = 0

    def to_payload(self) -> dict[str, Any]:
        payload = asdict(self)
        for key in ("subscription_expiry", "created_at"):
            if payload[key] is not None:
                payload[key] = payload[key].isoformat()
        return payload

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "WorkerSnapshot":
        data = dict(payload)
        for key in ("subscription_expiry", "created_at"):
            if data.get(key):
                data[key] = datetime.fromisoformat(data[key])
        return cls(**data)


@dataclass(frozen=True)
class SubmissionReceipt:
    """Gateway acknowledgment that a push-payment prompt was dispatched."""
    transaction_id: str
    merchant_request_id: Optional[str] = None
    customer_message: Optional[str] = None


class OutcomeStatus(str, enum.Enum):
    SUBMITTED = "submitted"
    QUEUED = "queued"
    REJECTED = "rejected"


@dataclass(frozen=True)
class TipOutcome:
    """What the caller of ``SyncEngine.create_tip`` is told."""
    status: OutcomeStatus
    intent_id: str
    transaction_id: Optional[str] = None
    entry_id: Optional[str] = None
    message: str = ""


@dataclass
class DrainReport:
    """Summary of a single drain pass."""
    submitted: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    deduplicated: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    dropped: list[str] = field(default_factory=list)
    flagged: list[str] = field(default_factory=list)
    unrecorded: list[str] = field(default_factory=list)
    interrupted: bool = False

    @property
    def total(self) -> int:
        return (
            len(self.submitted)
            + len(self.failed)
            + len(self.deduplicated)
            + len(self.skipped)
            + len(self.dropped)
            + len(self.flagged)
            + len(self.unrecorded)
        )
