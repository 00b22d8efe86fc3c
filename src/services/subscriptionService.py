"""
Worker subscription status and tip caps.

Rules:
- A worker is on trial for ``trial_period_days`` after sign-up: unlimited tips.
- After the trial, an unexpired subscription applies its plan cap
  (lite: ``lite_plan_max_tip``, pro: unlimited).
- A lapsed worker falls back to limited mode ('free'). Receiving tips is
  never blocked by limited mode, so no cap applies.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from src.core.config import settings
from src.models.worker import SubscriptionPlan
from src.sync.types import as_utc


@dataclass(frozen=True)
class SubscriptionStatus:
    plan: str
    is_active: bool
    is_trial_expired: bool
    is_limited_mode: bool
    max_tip_amount: Optional[int]
    expiry_date: Optional[datetime]


def get_subscription_status(
    plan: Optional[str],
    subscription_expiry: Optional[datetime],
    created_at: Optional[datetime],
    now: Optional[datetime] = None,
) -> SubscriptionStatus:
    """Derive the effective subscription status of a worker.

    Args:
        plan: Stored subscription plan ('free', 'lite', 'pro').
        subscription_expiry: When the paid subscription lapses, if any.
        created_at: Worker sign-up time; starts the trial window.
        now: Reference time (defaults to the current UTC time).
    """
    now = as_utc(now) or datetime.now(tz=timezone.utc)
    expiry = as_utc(subscription_expiry)
    created = as_utc(created_at)

    if created is None:
        is_trial_expired = True
    else:
        trial_end = created + timedelta(days=settings.trial_period_days)
        is_trial_expired = now > trial_end

    has_active_subscription = expiry is not None and now < expiry
    plan = plan or SubscriptionPlan.FREE.value

    if not is_trial_expired:
        return SubscriptionStatus(
            plan="trial",
            is_active=True,
            is_trial_expired=False,
            is_limited_mode=False,
            max_tip_amount=None,
            expiry_date=expiry,
        )

    if has_active_subscription:
        max_tip = settings.lite_plan_max_tip if plan == SubscriptionPlan.LITE.value else None
        return SubscriptionStatus(
            plan=plan,
            is_active=True,
            is_trial_expired=True,
            is_limited_mode=False,
            max_tip_amount=max_tip,
            expiry_date=expiry,
        )

    return SubscriptionStatus(
        plan=SubscriptionPlan.FREE.value,
        is_active=False,
        is_trial_expired=True,
        is_limited_mode=True,
        max_tip_amount=None,
        expiry_date=expiry,
    )
