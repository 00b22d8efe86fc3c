"""
Sync Engine
===========

Decides, for each tip intent, whether to submit it to the payment gateway
right away or park it in the local durable queue, and drains the queue when
connectivity comes back.

Per-intent states::

    Created -> Submitting -> Accepted | Queued
    Accepted -> (async callback) Completed | Failed

Concurrency rules:
- Monitor listeners only post ``ConnectivityChanged`` into the engine's
  inbox; a single consumer task handles inbox messages one at a time.
- Drains are single-flight. A drain requested while another is running is
  deferred and re-evaluated once the running one finishes.
- Each queue entry is submitted at most once per drain pass. A failed entry
  waits for the next trigger.
- A submission that has been dispatched runs to completion even if the
  caller that started it goes away.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Union

from src.core.errors import GatewayError, RecordStoreError, TipError
from src.events.tipEvents import emit_tip_queued, emit_tip_submitted
from src.sync.gateway import PaymentGateway
from src.sync.localQueue import LocalDurableQueue
from src.sync.networkMonitor import NetworkStateMonitor
from src.sync.recordStore import RecordStore
from src.sync.types import (
    DrainReport,
    OutcomeStatus,
    QueueEntry,
    SubmissionReceipt,
    TipIntent,
    TipOutcome,
    WorkerSnapshot,
    utcnow,
)

logger = logging.getLogger(__name__)

QUEUED_MESSAGE = "Tip queued. It will be sent when the connection is restored."

STALE_KEEP = "keep"
STALE_FLAG = "flag"
STALE_DROP = "drop"


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SyncPolicy:
    """Tunable behaviour of the engine.

    Attributes:
        stale_entry_policy: What a drain does with entries older than
            ``stale_entry_max_age_hours``: keep them, flag them for manual
            resolution, or drop them.
        stale_entry_max_age_hours: Age threshold; None disables the check.
        surface_gateway_rejections: When True, an explicit gateway rejection
            (non-retryable ``GatewayError``) is reported to the caller as
            ``rejected`` instead of being queued, and a rejected queue entry
            is flagged instead of retried.
    """
    stale_entry_policy: str = STALE_KEEP
    stale_entry_max_age_hours: Optional[float] = None
    surface_gateway_rejections: bool = False

    def stale_action(self, entry: QueueEntry, now: datetime) -> Optional[str]:
        """Return ``flag`` / ``drop`` for a stale entry, else None."""
        if self.stale_entry_policy == STALE_KEEP or self.stale_entry_max_age_hours is None:
            return None
        age = now - entry.intent.created_at
        if age < timedelta(hours=self.stale_entry_max_age_hours):
            return None
        return self.stale_entry_policy


# ---------------------------------------------------------------------------
# Inbox messages
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ConnectivityChanged:
    online: bool


@dataclass(frozen=True)
class DrainRequested:
    reason: str = "manual"


EngineMessage = Union[ConnectivityChanged, DrainRequested]


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class SyncEngine:
    """Offline-tolerant submission and queue reconciliation."""

    def __init__(
        self,
        monitor: NetworkStateMonitor,
        queue: LocalDurableQueue,
        gateway: PaymentGateway,
        record_store: RecordStore,
        policy: Optional[SyncPolicy] = None,
    ) -> None:
        self._monitor = monitor
        self._queue = queue
        self._gateway = gateway
        self._record_store = record_store
        self._policy = policy or SyncPolicy()

        self._inbox: asyncio.Queue[EngineMessage] = asyncio.Queue()
        self._consumer_task: Optional[asyncio.Task] = None
        self._unsubscribe = None

        self._drain_task: Optional[asyncio.Task] = None
        self._drain_deferred = False
        self._stopping = False
        self._last_report: Optional[DrainReport] = None

    @property
    def policy(self) -> SyncPolicy:
        return self._policy

    @property
    def last_report(self) -> Optional[DrainReport]:
        return self._last_report

    @property
    def is_draining(self) -> bool:
        return self._drain_task is not None and not self._drain_task.done()

    # -- lifecycle --------------------------------------------------------

    async def start(self) -> None:
        """Subscribe to the monitor, start the inbox consumer, and drain any
        backlog left over from a previous run."""
        if self._consumer_task is not None:
            return
        self._stopping = False
        self._consumer_task = asyncio.create_task(
            self._consume(), name="sync-engine-inbox"
        )
        self._unsubscribe = self._monitor.subscribe(self._on_connectivity)

        if self._monitor.is_online and await self._queue.count() > 0:
            logger.info("Startup recovery: draining queued tips")
            self.request_drain()

    async def stop(self) -> None:
        """Unsubscribe and stop the consumer. An in-flight drain is allowed
        to finish so no accepted submission is left in the queue."""
        self._stopping = True
        self._drain_deferred = False
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        if self._consumer_task is not None:
            self._consumer_task.cancel()
            try:
                await self._consumer_task
            except asyncio.CancelledError:
                pass
            self._consumer_task = None

        if self._drain_task is not None and not self._drain_task.done():
            await self._drain_task
        self._drain_task = None

    # -- inbox ------------------------------------------------------------

    def post(self, message: EngineMessage) -> None:
        """Queue a message for the consumer task. Never blocks."""
        self._inbox.put_nowait(message)

    def _on_connectivity(self, online: bool) -> None:
        self.post(ConnectivityChanged(online=online))

    async def _consume(self) -> None:
        while True:
            message = await self._inbox.get()
            try:
                self._handle(message)
            finally:
                self._inbox.task_done()

    def _handle(self, message: EngineMessage) -> None:
        if isinstance(message, ConnectivityChanged):
            if message.online:
                logger.info("Connectivity restored; requesting drain")
                self.request_drain()
            else:
                logger.info("Connectivity lost; new tips will be queued")
        elif isinstance(message, DrainRequested):
            if self._monitor.is_online:
                self.request_drain()
            else:
                logger.info("Drain request (%s) ignored while offline", message.reason)

    # -- tip creation -----------------------------------------------------

    async def create_tip(self, intent: TipIntent) -> TipOutcome:
        """Submit ``intent`` if online, otherwise queue it.

        Returns:
            TipOutcome with status ``submitted`` (gateway accepted, pending
            Tip recorded), ``queued`` (stored locally for a later drain) or
            ``rejected`` (explicit gateway rejection, only when the policy
            surfaces rejections).

        Raises:
            StorageError: If the intent had to be queued and could not be.
            RecordStoreError: If the gateway accepted the submission but the
                Tip could not be recorded. The intent is not queued in that
                case, since resubmitting it would charge the customer twice.
        """
        if not self._monitor.is_online:
            return await self._enqueue(intent, reason="offline")

        # Abandoning the request must not cancel a dispatched submission
        return await asyncio.shield(self._create_online(intent))

    async def _create_online(self, intent: TipIntent) -> TipOutcome:
        try:
            receipt = await self._submit_and_record(intent)
        except GatewayError as exc:
            if not exc.retryable and self._policy.surface_gateway_rejections:
                logger.warning("Tip %s rejected by gateway: %s", intent.id, exc.message)
                return TipOutcome(
                    status=OutcomeStatus.REJECTED,
                    intent_id=intent.id,
                    message=exc.message,
                )
            return await self._enqueue(intent, reason=exc.message)

        return TipOutcome(
            status=OutcomeStatus.SUBMITTED,
            intent_id=intent.id,
            transaction_id=receipt.transaction_id,
            message=receipt.customer_message or "Payment prompt sent",
        )

    async def _enqueue(self, intent: TipIntent, *, reason: str) -> TipOutcome:
        entry = await self._queue.enqueue(intent)
        emit_tip_queued(entry.id, intent.worker_id, intent.amount, reason)
        return TipOutcome(
            status=OutcomeStatus.QUEUED,
            intent_id=intent.id,
            entry_id=entry.id,
            message=QUEUED_MESSAGE,
        )

    async def _submit_and_record(self, intent: TipIntent) -> SubmissionReceipt:
        receipt = await self._gateway.submit(
            intent.customer_phone, intent.amount, intent.id
        )
        try:
            await self._record_store.create_pending_tip(intent, receipt)
        except RecordStoreError:
            logger.error(
                "Gateway accepted tip %s (transaction=%s) but it could not be recorded",
                intent.id,
                receipt.transaction_id,
            )
            raise
        emit_tip_submitted(receipt.transaction_id, intent.worker_id, intent.amount)
        return receipt

    # -- draining ---------------------------------------------------------

    def request_drain(self) -> bool:
        """Start a drain unless one is running.

        Returns:
            True if a drain task was started, False if the request was
            deferred behind an in-flight drain.
        """
        if self._stopping:
            return False
        if self.is_draining:
            self._drain_deferred = True
            logger.debug("Drain already running; deferring request")
            return False
        self._drain_task = asyncio.create_task(self._run_drain(), name="sync-engine-drain")
        return True

    async def _run_drain(self) -> None:
        while True:
            self._drain_deferred = False
            try:
                await self.drain_once()
            except TipError as exc:
                logger.error("Drain pass aborted: %s", exc.message)
            if not (self._drain_deferred and self._monitor.is_online and not self._stopping):
                break
            logger.info("Running deferred drain")

    async def drain_once(self) -> DrainReport:
        """Run one pass over the queue in FIFO order.

        Use ``request_drain`` to trigger drains; calling this directly
        bypasses the single-flight guard.

        Raises:
            StorageError: If the local queue cannot be read or updated.
        """
        report = DrainReport()
        entries = await self._queue.drain()
        now = utcnow()

        for entry in entries:
            if not self._monitor.is_online:
                report.interrupted = True
                logger.info("Went offline mid-drain; %d entries left", len(entries) - report.total)
                break

            action = None if entry.flagged else self._policy.stale_action(entry, now)
            if action == STALE_DROP:
                await self._queue.remove(entry.id)
                report.dropped.append(entry.id)
                logger.warning("Dropped stale queued tip %s", entry.id)
                continue
            if action == STALE_FLAG:
                await self._queue.flag(entry.id)
                report.flagged.append(entry.id)
                logger.warning("Flagged stale queued tip %s", entry.id)
                continue
            if entry.flagged:
                report.skipped.append(entry.id)
                continue

            # Submitted on an earlier pass that died before removing it
            if await self._record_store.has_tip_for_intent(entry.id):
                await self._queue.remove(entry.id)
                report.deduplicated.append(entry.id)
                logger.info("Queued tip %s already recorded; removed", entry.id)
                continue

            await self._drain_entry(entry, report)

        self._last_report = report
        logger.info(
            "Drain pass finished: submitted=%d, failed=%d, deduplicated=%d, "
            "skipped=%d, dropped=%d, flagged=%d, unrecorded=%d",
            len(report.submitted),
            len(report.failed),
            len(report.deduplicated),
            len(report.skipped),
            len(report.dropped),
            len(report.flagged),
            len(report.unrecorded),
        )
        return report

    async def _drain_entry(self, entry: QueueEntry, report: DrainReport) -> None:
        try:
            await self._submit_and_record(entry.intent)
        except GatewayError as exc:
            await self._queue.record_attempt(entry.id, exc.message)
            if not exc.retryable and self._policy.surface_gateway_rejections:
                await self._queue.flag(entry.id)
                report.flagged.append(entry.id)
                logger.warning("Queued tip %s rejected by gateway; flagged", entry.id)
            else:
                report.failed.append(entry.id)
                logger.warning(
                    "Queued tip %s not submitted (attempt %d): %s",
                    entry.id,
                    entry.attempts + 1,
                    exc.message,
                )
            return
        except RecordStoreError:
            # Already charged; leaving it queued would charge again
            await self._queue.remove(entry.id)
            report.unrecorded.append(entry.id)
            return

        await self._queue.remove(entry.id)
        report.submitted.append(entry.id)

    async def wait_idle(self) -> None:
        """Wait until the inbox is empty and no drain is running."""
        while True:
            if self._consumer_task is not None:
                await self._inbox.join()
            task = self._drain_task
            if task is not None and not task.done():
                await task
                continue
            if self._consumer_task is None or self._inbox.empty():
                return

    # -- reads ------------------------------------------------------------

    async def lookup_worker(self, worker_id: str) -> Optional[WorkerSnapshot]:
        """Read a worker from the record store, falling back to the local
        cache when the record store is unreachable or the device is offline.
        Successful reads refresh the cache."""
        if self._monitor.is_online:
            try:
                snapshot = await self._record_store.get_worker(worker_id)
            except RecordStoreError as exc:
                logger.warning("Worker %s read failed, using cache: %s", worker_id, exc.message)
            else:
                if snapshot is not None:
                    await self._queue.cache_worker(snapshot)
                return snapshot
        return await self._queue.get_cached_worker(worker_id)
