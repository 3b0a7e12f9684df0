"""
Mutation-driven re-scans.

Every relevant document mutation resets one debounce timer. When the
document has been quiet for the debounce window, a scan is requested,
unless a scan is already in flight or the session is paused. A skipped
trigger is not queued: the next mutation re-arms the timer.

Mutations caused by our own highlight spans are ignored, otherwise each
scan that marks something would schedule another one.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Optional

from darkscan.document import Mutation
from darkscan.engine import ScanEngine
from darkscan.highlight import is_highlight_node
from darkscan.logging import get_logger

logger = get_logger("monitor")


class Debouncer:
    """Collapses a burst of events into one trailing call."""

    def __init__(
        self,
        delay: float,
        callback: Callable[[], None],
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self.delay = delay
        self.callback = callback
        self._loop = loop
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def armed(self) -> bool:
        return self._handle is not None

    def trigger(self) -> None:
        """Reset the timer. The callback fires ``delay`` after the last trigger."""
        loop = self._loop or asyncio.get_running_loop()
        self.cancel()
        self._handle = loop.call_later(self.delay, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        self.callback()


class ChangeMonitor:
    """Observes a document and drives the engine's scans."""

    def __init__(
        self,
        engine: ScanEngine,
        debounce_seconds: Optional[float] = None,
        initial_scan_delay: Optional[float] = None,
    ):
        self.engine = engine
        thresholds = engine.thresholds
        self.debounce_seconds = (
            thresholds.debounce_seconds if debounce_seconds is None else debounce_seconds
        )
        self.initial_scan_delay = (
            thresholds.initial_scan_delay if initial_scan_delay is None else initial_scan_delay
        )
        self._debouncer: Optional[Debouncer] = None
        self._initial: Optional[asyncio.TimerHandle] = None
        self._disconnect: Optional[Callable[[], None]] = None
        self.triggered = 0
        self.skipped = 0
        engine.on_pause_change(self._on_pause_change)

    @property
    def running(self) -> bool:
        return self._disconnect is not None

    def start(self) -> None:
        """Begin observing. Schedules the first scan after the initial delay."""
        if self.running:
            return
        loop = asyncio.get_running_loop()
        self._debouncer = Debouncer(self.debounce_seconds, self._on_quiet, loop=loop)
        self._disconnect = self.engine.document.observe(self.on_mutation)
        if self.initial_scan_delay is not None and self.initial_scan_delay >= 0:
            self._initial = loop.call_later(self.initial_scan_delay, self._on_initial_delay)
        logger.info("Change monitor started")

    def stop(self) -> None:
        if self._disconnect is not None:
            self._disconnect()
            self._disconnect = None
        if self._debouncer is not None:
            self._debouncer.cancel()
        if self._initial is not None:
            self._initial.cancel()
            self._initial = None

    def on_mutation(self, mutation: Mutation) -> None:
        if self.engine.session.is_paused or self._debouncer is None:
            return
        if self._is_own_mark(mutation):
            return
        self._debouncer.trigger()

    @staticmethod
    def _is_own_mark(mutation: Mutation) -> bool:
        if mutation.kind == "childList" and mutation.added:
            return all(is_highlight_node(n) for n in mutation.added)
        return is_highlight_node(mutation.target)

    def _on_initial_delay(self) -> None:
        self._initial = None
        self._on_quiet()

    def _on_quiet(self) -> None:
        session = self.engine.session
        if session.is_paused or session.is_scanning:
            self.skipped += 1
            logger.debug("Re-scan trigger skipped (paused=%s scanning=%s)", session.is_paused, session.is_scanning)
            return
        self.triggered += 1
        self.engine.request_scan()

    def _on_pause_change(self, paused: bool) -> None:
        if paused and self._debouncer is not None:
            self._debouncer.cancel()
