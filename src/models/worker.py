"""
SQLAlchemy model for the workers table.

Owned by the record store. The sync core only reads subscription plan and
expiry; totals are maintained by settlement handling.
"""

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class SubscriptionPlan(str, enum.Enum):
    FREE = "free"
    LITE = "lite"
    PRO = "pro"


class Worker(Base):
    __tablename__ = "workers"

    worker_id: Mapped[str] = mapped_column(String(64), primary_key=True)

    # Profile
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    occupation: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    phone: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)

    # Subscription
    subscription_plan: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SubscriptionPlan.FREE.value,
        server_default=SubscriptionPlan.FREE.value,
    )
    subscription_expiry: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Aggregates
    total_tips: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0, server_default="0"
    )
    tip_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    tips: Mapped[list["Tip"]] = relationship("Tip", back_populates="worker")

    def __repr__(self) -> str:
        return (
            f"<Worker(id={self.worker_id}, name={self.name!r}, "
            f"plan={self.subscription_plan})>"
        )
