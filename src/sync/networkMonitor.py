"""
Network State Monitor
=====================

Tracks connectivity and notifies subscribers of transitions.

- ``is_online`` is a synchronous, side-effect-free read.
- Listeners are plain callables ``listener(online: bool)``. They run on the
  caller's thread / event loop and must not block; the sync engine's
  listener only posts a message into its inbox.
- Optional debounce: a burst of transitions collapses into one notification
  carrying the final settled state. A listener is never told about a state
  equal to the last one it was told about.

``ConnectivityProbe`` periodically issues an HTTP HEAD request and feeds the
result into a monitor.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

ConnectivityListener = Callable[[bool], None]


class NetworkStateMonitor:
    """Injectable connectivity flag with subscribe / unsubscribe."""

    def __init__(
        self,
        initial_online: bool = False,
        debounce_seconds: float = 0.0,
    ) -> None:
        self._online = initial_online
        self._notified_state = initial_online
        self._debounce_seconds = debounce_seconds
        self._listeners: list[ConnectivityListener] = []
        self._pending_notify: Optional[asyncio.TimerHandle] = None

    # -- reads ------------------------------------------------------------

    @property
    def is_online(self) -> bool:
        return self._online

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    # -- subscription -----------------------------------------------------

    def subscribe(self, listener: ConnectivityListener) -> Callable[[], None]:
        """Register ``listener`` and return a callable that unregisters it."""
        if listener not in self._listeners:
            self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: ConnectivityListener) -> None:
        """Remove ``listener``. Unknown listeners are ignored."""
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    # -- writes -----------------------------------------------------------

    def set_online(self, online: bool) -> None:
        """Record a raw connectivity observation."""
        if online != self._online:
            logger.info("Connectivity changed: %s", "ONLINE" if online else "OFFLINE")
        self._online = online

        if self._debounce_seconds <= 0:
            self._notify_if_changed()
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop to defer on; deliver synchronously
            self._notify_if_changed()
            return

        if self._pending_notify is not None:
            self._pending_notify.cancel()
        self._pending_notify = loop.call_later(
            self._debounce_seconds, self._flush_debounced
        )

    def _flush_debounced(self) -> None:
        self._pending_notify = None
        self._notify_if_changed()

    def _notify_if_changed(self) -> None:
        state = self._online
        if state == self._notified_state:
            return
        self._notified_state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("Connectivity listener %r raised", listener)

    def close(self) -> None:
        """Cancel any pending debounced notification."""
        if self._pending_notify is not None:
            self._pending_notify.cancel()
            self._pending_notify = None


# ---------------------------------------------------------------------------
# Active probing
# ---------------------------------------------------------------------------

class ConnectivityProbe:
    """Periodically check reachability and report it to a monitor."""

    def __init__(
        self,
        monitor: NetworkStateMonitor,
        url: str,
        *,
        interval_seconds: float = 30.0,
        timeout_seconds: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._monitor = monitor
        self._url = url
        self._interval = interval_seconds
        self._timeout = timeout_seconds
        self._client = client
        self._owns_client = client is None
        self._task: Optional[asyncio.Task] = None

    async def check_once(self) -> bool:
        """Probe once, update the monitor, and return the observed state."""
        if self._client is None:
            self._client = httpx.AsyncClient()
        try:
            response = await self._client.head(self._url, timeout=self._timeout)
            online = response.status_code < 500
        except httpx.HTTPError as exc:
            logger.debug("Connectivity probe failed: %s", exc)
            online = False
        self._monitor.set_online(online)
        return online

    async def _run(self) -> None:
        while True:
            await self.check_once()
            await asyncio.sleep(self._interval)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(), name="connectivity-probe")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
