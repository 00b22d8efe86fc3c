"""
Local Durable Queue
===================

Device-local, file-backed store of tip intents that have not yet been
accepted by the payment gateway, plus a cache of last-known worker data for
offline reads.

Storage is SQLite through SQLAlchemy's async engine. Every public method
commits before returning, so anything written survives an unplanned
termination. Any SQLAlchemy failure is converted to ``StorageError``.

The queue has a single writer: the owning process.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from src.core.errors import StorageError
from src.models.base import LocalBase
from src.models.local import CachedWorker, QueueEntryRecord
from src.sync.types import QueueEntry, TipIntent, WorkerSnapshot, as_utc, utcnow

logger = logging.getLogger(__name__)


def _to_entry(record: QueueEntryRecord) -> QueueEntry:
    intent = TipIntent(
        id=record.entry_id,
        worker_id=record.worker_id,
        amount=record.amount,
        customer_phone=record.customer_phone,
        created_at=as_utc(record.created_at),
    )
    return QueueEntry(
        intent=intent,
        attempts=record.attempts,
        last_attempt_at=as_utc(record.last_attempt_at),
        last_error=record.last_error,
        flagged=record.flagged,
    )


class LocalDurableQueue:
    """Append / snapshot / remove store of queued tip intents."""

    def __init__(
        self,
        url: str,
        *,
        engine: Optional[AsyncEngine] = None,
    ) -> None:
        self._engine = engine or create_async_engine(url)
        self._session_factory = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        # Serialises writers sharing this queue
        self._write_lock = asyncio.Lock()

    async def init(self) -> None:
        """Create the local tables if they do not exist yet."""
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(LocalBase.metadata.create_all)
        except SQLAlchemyError as exc:
            raise StorageError(f"Cannot initialise local queue: {exc}") from exc

    async def close(self) -> None:
        await self._engine.dispose()

    # -- queue operations -------------------------------------------------

    async def enqueue(self, intent: TipIntent) -> QueueEntry:
        """Persist ``intent`` as a new queue entry.

        Content is not validated here. Enqueuing an intent id that is already
        queued returns the existing entry.

        Raises:
            StorageError: If the local store cannot be written.
        """
        try:
            async with self._write_lock, self._session_factory() as session:
                existing = await self._get_record(session, intent.id)
                if existing is not None:
                    return _to_entry(existing)
                record = QueueEntryRecord(
                    entry_id=intent.id,
                    worker_id=intent.worker_id,
                    amount=intent.amount,
                    customer_phone=intent.customer_phone,
                    created_at=intent.created_at,
                    attempts=0,
                    flagged=False,
                )
                session.add(record)
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error("Failed to enqueue tip intent %s: %s", intent.id, exc)
            raise StorageError(f"Cannot persist tip intent {intent.id}: {exc}") from exc

        logger.info(
            "Tip intent queued: id=%s, worker=%s, amount=%d",
            intent.id,
            intent.worker_id,
            intent.amount,
        )
        return _to_entry(record)

    async def drain(self) -> list[QueueEntry]:
        """Return a FIFO snapshot of the backlog without removing anything."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(QueueEntryRecord).order_by(
                        QueueEntryRecord.created_at, QueueEntryRecord.seq
                    )
                )
                records = result.scalars().all()
        except SQLAlchemyError as exc:
            raise StorageError(f"Cannot read local queue: {exc}") from exc
        return [_to_entry(r) for r in records]

    async def remove(self, entry_id: str) -> None:
        """Delete one entry. Removing an absent id is a no-op."""
        try:
            async with self._write_lock, self._session_factory() as session:
                await session.execute(
                    delete(QueueEntryRecord).where(QueueEntryRecord.entry_id == entry_id)
                )
                await session.commit()
        except SQLAlchemyError as exc:
            raise StorageError(f"Cannot remove queue entry {entry_id}: {exc}") from exc

    async def record_attempt(self, entry_id: str, error: str | None = None) -> None:
        """Bump the attempt counter after a failed submission."""
        try:
            async with self._write_lock, self._session_factory() as session:
                await session.execute(
                    update(QueueEntryRecord)
                    .where(QueueEntryRecord.entry_id == entry_id)
                    .values(
                        attempts=QueueEntryRecord.attempts + 1,
                        last_attempt_at=utcnow(),
                        last_error=error,
                    )
                )
                await session.commit()
        except SQLAlchemyError as exc:
            raise StorageError(f"Cannot update queue entry {entry_id}: {exc}") from exc

    async def flag(self, entry_id: str) -> None:
        """Mark an entry for manual resolution; drains skip flagged entries."""
        try:
            async with self._write_lock, self._session_factory() as session:
                await session.execute(
                    update(QueueEntryRecord)
                    .where(QueueEntryRecord.entry_id == entry_id)
                    .values(flagged=True)
                )
                await session.commit()
        except SQLAlchemyError as exc:
            raise StorageError(f"Cannot flag queue entry {entry_id}: {exc}") from exc

    async def get(self, entry_id: str) -> Optional[QueueEntry]:
        try:
            async with self._session_factory() as session:
                record = await self._get_record(session, entry_id)
        except SQLAlchemyError as exc:
            raise StorageError(f"Cannot read queue entry {entry_id}: {exc}") from exc
        return _to_entry(record) if record is not None else None

    async def count(self) -> int:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(func.count()).select_from(QueueEntryRecord)
                )
                return int(result.scalar_one())
        except SQLAlchemyError as exc:
            raise StorageError(f"Cannot count local queue: {exc}") from exc

    @staticmethod
    async def _get_record(
        session: AsyncSession, entry_id: str
    ) -> Optional[QueueEntryRecord]:
        result = await session.execute(
            select(QueueEntryRecord).where(QueueEntryRecord.entry_id == entry_id)
        )
        return result.scalar_one_or_none()

    # -- worker cache -----------------------------------------------------

    async def cache_worker(self, snapshot: WorkerSnapshot) -> None:
        """Store (or replace) the last-known copy of a worker."""
        try:
            async with self._write_lock, self._session_factory() as session:
                record = await session.get(CachedWorker, snapshot.worker_id)
                if record is None:
                    record = CachedWorker(worker_id=snapshot.worker_id)
                    session.add(record)
                record.payload = snapshot.to_payload()
                record.cached_at = utcnow()
                await session.commit()
        except SQLAlchemyError as exc:
            raise StorageError(f"Cannot cache worker {snapshot.worker_id}: {exc}") from exc

    async def get_cached_worker(self, worker_id: str) -> Optional[WorkerSnapshot]:
        try:
            async with self._session_factory() as session:
                record = await session.get(CachedWorker, worker_id)
        except SQLAlchemyError as exc:
            raise StorageError(f"Cannot read cached worker {worker_id}: {exc}") from exc
        if record is None:
            return None
        return WorkerSnapshot.from_payload(record.payload)
