"""
SQLAlchemy model for tips (server of record).

A tip row is created only after the gateway has accepted the push-payment
submission, so every row carries the gateway's ``transaction_id``
(Daraja ``CheckoutRequestID``).
"""

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, UUIDPrimaryKeyMixin


class TipStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class Tip(UUIDPrimaryKeyMixin, Base):
    """
    Tip record for a worker.
    No updated_at column -- tips are immutable once created (status transitions only).
    """
    __tablename__ = "tips"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'completed', 'failed')",
            name="ck_tips_status",
        ),
    )

    worker_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("workers.worker_id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    customer_phone: Mapped[str] = mapped_column(String(20), nullable=False)

    # Correlation
    client_reference: Mapped[str] = mapped_column(
        String(64), unique=True, nullable=False
    )
    transaction_id: Mapped[str] = mapped_column(
        String(128), unique=True, nullable=False
    )
    merchant_request_id: Mapped[Optional[str]] = mapped_column(
        String(128), nullable=True
    )

    # Settlement
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TipStatus.PENDING.value,
        server_default=TipStatus.PENDING.value,
    )
    mpesa_receipt: Mapped[Optional[str]] = mapped_column(
        String(64), nullable=True
    )
    result_code: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    result_desc: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True
    )
    settled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    worker: Mapped["Worker"] = relationship("Worker", back_populates="tips")

    def __repr__(self) -> str:
        return (
            f"<Tip(id={self.id}, worker={self.worker_id}, "
            f"amount={self.amount}, status={self.status})>"
        )
