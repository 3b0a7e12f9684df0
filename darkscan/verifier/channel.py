"""
Async request/response over a message transport.

Every outbound request carries a locally unique id and a deadline. A
table maps outstanding ids to futures. The first of {response, expiry,
caller cancellation} removes the entry; a response whose id is no
longer in the table is dropped. Responses may arrive in any order.
"""

from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass
from typing import Callable, Optional

from darkscan.logging import get_logger

logger = get_logger("verifier.channel")

TIMEOUT_RESPONSE = {"error": "Sandbox timeout", "timeout": True}


@dataclass
class PendingRequest:
    """Tracked only while a round trip is outstanding."""
    id: int
    action: str
    future: asyncio.Future
    deadline: float          # event loop time


class RequestChannel:
    """Correlates responses to requests by id."""

    def __init__(self, send: Optional[Callable[[dict], None]] = None, default_timeout: float = 30.0):
        self._send = send
        self.default_timeout = default_timeout
        self._ids = itertools.count(1)
        self._pending: dict[int, PendingRequest] = {}
        self._closed = False

    def bind(self, send: Callable[[dict], None]) -> None:
        self._send = send
        self._closed = False

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def request(
        self,
        action: str,
        payload: Optional[dict] = None,
        timeout: Optional[float] = None,
    ) -> dict:
        """
        Send ``{id, action, **payload}`` and wait for the correlated reply.

        Never raises for transport trouble: a send failure or closed
        channel yields ``{"error": ...}``, an expired deadline yields
        TIMEOUT_RESPONSE. Cancelling the caller abandons the id.
        """
        if self._closed or self._send is None:
            return {"error": "Channel closed"}

        loop = asyncio.get_running_loop()
        timeout = self.default_timeout if timeout is None else timeout
        rid = next(self._ids)
        entry = PendingRequest(
            id=rid, action=action, future=loop.create_future(), deadline=loop.time() + timeout,
        )
        self._pending[rid] = entry

        try:
            self._send({"id": rid, "action": action, **(payload or {})})
        except Exception as e:
            self._pending.pop(rid, None)
            logger.warning("Send failed for %s", action, extra={"request_id": rid, "error": str(e)})
            return {"error": f"Send failed: {e}"}

        try:
            return await asyncio.wait_for(entry.future, timeout)
        except asyncio.TimeoutError:
            logger.debug("Request %d (%s) expired", rid, action, extra={"request_id": rid})
            return dict(TIMEOUT_RESPONSE)
        finally:
            self._pending.pop(rid, None)

    def deliver(self, message: dict) -> None:
        """Route one inbound message to its pending request, if any."""
        if not isinstance(message, dict):
            return
        entry = self._pending.pop(message.get("id"), None)
        if entry is None:
            logger.debug("Dropping response for unknown id", extra={"request_id": message.get("id")})
            return
        if not entry.future.done():
            entry.future.set_result(message)

    def close(self, reason: str = "Channel closed") -> None:
        """Fail every outstanding request and refuse new ones."""
        self._closed = True
        pending, self._pending = self._pending, {}
        for entry in pending.values():
            if not entry.future.done():
                entry.future.set_result({"id": entry.id, "error": reason})
