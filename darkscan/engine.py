"""
Scan Engine — the single owner of scan state.

One ScanEngine per document. It holds the ScanSession, runs the
extract -> verify -> decide -> mark pipeline, and reports through an
event sink:

  scanProgress  {progress: 0-100, found}
  resultsReady  {count, results, hasScanned}

ScanController maps the control protocol (scan / getResults /
togglePause / ping / initModel) onto the engine.

All of this runs on one event loop. Mutual exclusion is the
ScanSession's begin() check, not a lock.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from datetime import datetime, timezone
from typing import Callable, Optional

from darkscan.categories import CategoryBank
from darkscan.config import ScanThresholds
from darkscan.dispatcher import BatchDispatcher
from darkscan.document import Document
from darkscan.errors import StaleReferenceError
from darkscan.extractor import CandidateExtractor
from darkscan.highlight import DocumentHighlighter, Highlighter
from darkscan.logging import get_logger
from darkscan.models import (
    Candidate,
    DetectionResult,
    SCAN_PAUSED,
    SCAN_STARTED,
    ScanSession,
)
from darkscan.verifier import NullVerifier, Verifier

logger = get_logger("engine")

EventSink = Callable[[str, dict], None]


class EventLog:
    """Keeps the most recent emitted events. Usable as an EventSink."""

    def __init__(self, maxlen: int = 200):
        self._events: deque[dict] = deque(maxlen=maxlen)

    def __call__(self, action: str, payload: dict) -> None:
        self._events.append({
            "action": action,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **payload,
        })

    def recent(self, limit: int = 50, action: Optional[str] = None) -> list[dict]:
        events = [e for e in self._events if action is None or e["action"] == action]
        return events[-limit:]

    def __len__(self) -> int:
        return len(self._events)


class ScanEngine:
    """Runs scans over one document, at most one at a time."""

    def __init__(
        self,
        document: Document,
        bank: CategoryBank,
        verifier: Optional[Verifier] = None,
        highlighter: Optional[Highlighter] = None,
        thresholds: Optional[ScanThresholds] = None,
        emit: Optional[EventSink] = None,
    ):
        self.document = document
        self.bank = bank
        self.verifier = verifier or NullVerifier()
        self.highlighter = highlighter or DocumentHighlighter()
        self.thresholds = thresholds or ScanThresholds.from_settings()
        self.emit: EventSink = emit if emit is not None else EventLog()
        self.session = ScanSession()
        self.extractor = CandidateExtractor(
            bank,
            context_window=self.thresholds.context_window,
            min_pixels=self.thresholds.min_pixels,
        )
        self.dispatcher = BatchDispatcher(
            self.verifier,
            batch_size=self.thresholds.batch_size,
            verify_timeout=self.thresholds.verify_timeout,
            accept_threshold=self.thresholds.accept_threshold,
        )
        self._pause_hooks: list[Callable[[bool], None]] = []
        self._task: Optional[asyncio.Task] = None

    # --- Entry points ---

    async def scan(self) -> str:
        """Run one scan to completion. Returns started / busy / paused."""
        status = self.session.begin()
        if status != SCAN_STARTED:
            logger.debug("Scan request refused: %s", status)
            return status
        await self._run()
        return status

    def request_scan(self) -> dict:
        """Start a scan in the background and acknowledge immediately."""
        status = self.session.begin()
        if status == SCAN_PAUSED:
            return {"isScanning": False, "isPaused": True, "error": "Scanning is paused"}
        if status == SCAN_STARTED:
            self._task = asyncio.get_running_loop().create_task(self._run())
        return {"isScanning": True}

    async def wait_idle(self) -> None:
        """Await the background scan started by request_scan(), if any."""
        if self._task is not None:
            await asyncio.shield(self._task)

    @property
    def scan_task(self) -> Optional[asyncio.Task]:
        return self._task

    # --- Pipeline ---

    async def _run(self) -> None:
        start = time.monotonic()
        try:
            if self.bank.is_empty:
                logger.warning("Category bank is empty; aborting scan")
                self.session.results = []
                self.session.abort()
                self._emit_results()
                return

            existing = self.highlighter.existing(self.document)
            candidates = self.extractor.extract(self.document)
            logger.info(
                "Scan started: %d candidates, %d existing marks", len(candidates), len(existing),
                extra={"candidates": len(candidates), "found": len(existing)},
            )

            outcome = await self.dispatcher.run(
                candidates,
                apply=self._apply,
                on_progress=self._progress,
                found_offset=len(existing),
            )
            self.session.finish(existing + outcome.results, used_ai=outcome.used_ai)
        except Exception as e:
            self.session.abort()
            logger.error(
                "Scan failed", extra={"error": str(e), "error_type": type(e).__name__}, exc_info=True,
            )
            return

        logger.info(
            "Scan complete: %d found (%s)", len(self.session.results), self.session.mode,
            extra={
                "found": len(self.session.results),
                "mode": self.session.mode,
                "duration_ms": int((time.monotonic() - start) * 1000),
            },
        )
        self._emit_results()

    async def _apply(self, candidate: Candidate, result: DetectionResult) -> bool:
        try:
            self.highlighter.mark(candidate, result)
        except StaleReferenceError:
            logger.debug("Skipping stale result", extra={"category": result.category})
            return False
        return True

    def _progress(self, done: int, total: int, found: int) -> None:
        progress = round(done / total * 100) if total else 100
        self.emit("scanProgress", {"progress": progress, "found": found})

    def _emit_results(self) -> None:
        self.emit("resultsReady", {
            "count": len(self.session.results),
            "results": [r.to_dict() for r in self.session.results],
            "hasScanned": self.session.has_scanned,
        })

    # --- Queries / control ---

    def get_results(self) -> dict:
        results = self.session.results
        if not results and not self.session.is_scanning:
            results = self.highlighter.existing(self.document)
        return {
            "count": len(results),
            "results": [r.to_dict() for r in results],
            "isScanning": self.session.is_scanning,
            "hasScanned": self.session.has_scanned,
            "mode": self.session.mode,
        }

    def on_pause_change(self, hook: Callable[[bool], None]) -> None:
        self._pause_hooks.append(hook)

    def toggle_pause(self, paused: Optional[bool] = None) -> dict:
        """Flip the pause flag, or set it when ``paused`` is given. Resuming requests a scan."""
        if paused is None:
            paused = not self.session.is_paused
        changed = paused != self.session.is_paused
        self.session.set_paused(paused)
        if changed:
            logger.info("Scanning %s", "paused" if paused else "resumed")
            for hook in self._pause_hooks:
                hook(paused)
        if not paused:
            self.request_scan()
        return {"isPaused": paused}


class ScanController:
    """Control-protocol front end for one engine."""

    def __init__(self, engine: ScanEngine):
        self.engine = engine

    async def handle(self, message: dict) -> dict:
        action = message.get("action") if isinstance(message, dict) else None
        if action == "scan":
            return self.engine.request_scan()
        if action == "getResults":
            return self.engine.get_results()
        if action == "togglePause":
            paused = message.get("isPaused")
            return self.engine.toggle_pause(paused if isinstance(paused, bool) else None)
        if action == "ping":
            return {"pong": await self.engine.verifier.ping()}
        if action == "initModel":
            return {"success": await self.engine.verifier.initialize()}
        return {"error": f"Unknown action: {action}"}


