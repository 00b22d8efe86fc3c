"""
Record store access for the sync engine.

The engine talks to the server of record through the small ``RecordStore``
protocol. ``SqlRecordStore`` implements it over the tips/workers tables,
opening one short transaction per call.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.errors import RecordStoreError
from src.models import Worker
from src.services import tipService
from src.sync.types import SubmissionReceipt, TipIntent, WorkerSnapshot

logger = logging.getLogger(__name__)


class RecordStore(Protocol):
    async def create_pending_tip(
        self, intent: TipIntent, receipt: SubmissionReceipt
    ) -> None: ...

    async def has_tip_for_intent(self, intent_id: str) -> bool: ...

    async def get_worker(self, worker_id: str) -> Optional[WorkerSnapshot]: ...


def worker_snapshot(worker: Worker) -> WorkerSnapshot:
    return WorkerSnapshot(
        worker_id=worker.worker_id,
        name=worker.name,
        occupation=worker.occupation,
        subscription_plan=worker.subscription_plan,
        subscription_expiry=worker.subscription_expiry,
        created_at=worker.created_at,
        total_tips=worker.total_tips or 0,
        tip_count=worker.tip_count or 0,
    )


class SqlRecordStore:
    """``RecordStore`` over an async SQLAlchemy session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create_pending_tip(
        self, intent: TipIntent, receipt: SubmissionReceipt
    ) -> None:
        try:
            async with self._session_factory() as session:
                await tipService.create_pending_tip(
                    session,
                    worker_id=intent.worker_id,
                    amount=intent.amount,
                    customer_phone=intent.customer_phone,
                    client_reference=intent.id,
                    transaction_id=receipt.transaction_id,
                    merchant_request_id=receipt.merchant_request_id,
                )
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error(
                "Failed to record tip for transaction %s: %s",
                receipt.transaction_id,
                exc,
            )
            raise RecordStoreError(
                f"Cannot record tip for transaction {receipt.transaction_id}: {exc}"
            ) from exc

    async def has_tip_for_intent(self, intent_id: str) -> bool:
        try:
            async with self._session_factory() as session:
                tip = await tipService.get_tip_by_reference(session, intent_id)
        except SQLAlchemyError as exc:
            raise RecordStoreError(f"Cannot look up tip for intent {intent_id}: {exc}") from exc
        return tip is not None

    async def get_worker(self, worker_id: str) -> Optional[WorkerSnapshot]:
        try:
            async with self._session_factory() as session:
                worker = await tipService.get_worker(session, worker_id)
        except SQLAlchemyError as exc:
            raise RecordStoreError(f"Cannot read worker {worker_id}: {exc}") from exc
        return worker_snapshot(worker) if worker is not None else None
