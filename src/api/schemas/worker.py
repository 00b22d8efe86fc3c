"""
Pydantic v2 schemas for worker reads and connectivity reporting.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Workers
# ---------------------------------------------------------------------------

class SubscriptionOut(BaseModel):
    plan: str
    is_active: bool
    is_limited_mode: bool
    max_tip_amount: Optional[int] = None
    expiry_date: Optional[datetime] = None


class WorkerOut(BaseModel):
    """Worker profile as shown on the tipping screen."""

    worker_id: str
    name: str
    occupation: Optional[str] = None
    total_tips: int = 0
    tip_count: int = 0
    subscription: SubscriptionOut


# ---------------------------------------------------------------------------
# Connectivity
# ---------------------------------------------------------------------------

class ConnectivityIn(BaseModel):
    online: bool = Field(description="Whether the device currently has connectivity")


class ConnectivityOut(BaseModel):
    online: bool
    queued: int
    draining: bool
