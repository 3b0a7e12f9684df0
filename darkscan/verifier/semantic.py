"""
Semantic Verifier — client side of the isolation boundary.

Talks to a VerifierWorker through a RequestChannel over a Transport.
The worker process is started lazily on first use.

Features:
- Circuit breaker: after consecutive failures, fail fast for 60s so
  scans drop straight to the strict-matcher tier. A request cancelled
  by the caller's per-item timeout counts as a failure.
- Prediction cache for context windows seen in earlier scans
- predict() never raises; every failure is a failure VerificationResult
"""

from __future__ import annotations

import asyncio
import time
from typing import Optional

from darkscan.cache import PredictionCache
from darkscan.logging import get_logger
from darkscan.models import VerificationResult
from darkscan.verifier import Verifier
from darkscan.verifier.channel import RequestChannel
from darkscan.verifier.transport import Transport

logger = get_logger("verifier.semantic")

# Circuit breaker settings
_CB_FAILURE_THRESHOLD = 3   # Open after this many consecutive failures
_CB_RECOVERY_TIMEOUT = 60   # Seconds before trying again (half-open)


class CircuitBreaker:
    """Simple circuit breaker: closed → open → half-open → closed.

    When open, predict() answers with a failure immediately so the
    scan can fall back to strict matching instead of waiting out the
    per-item timeout on every candidate.
    """

    def __init__(
        self,
        failure_threshold: int = _CB_FAILURE_THRESHOLD,
        recovery_timeout: float = _CB_RECOVERY_TIMEOUT,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._failures = 0
        self._last_failure_time: float = 0
        self._state = "closed"  # closed | open | half-open

    @property
    def state(self) -> str:
        if self._state == "open":
            if time.monotonic() - self._last_failure_time >= self.recovery_timeout:
                self._state = "half-open"
        return self._state

    def record_success(self) -> None:
        self._failures = 0
        self._state = "closed"

    def record_failure(self) -> None:
        self._failures += 1
        self._last_failure_time = time.monotonic()
        if self._failures >= self.failure_threshold:
            self._state = "open"
            logger.warning(
                "Circuit breaker OPEN after %d consecutive verifier failures. "
                "Strict-matcher fallback for %ds.",
                self._failures, self.recovery_timeout,
            )

    @property
    def is_open(self) -> bool:
        return self.state == "open"


class SemanticVerifier(Verifier):
    """Embedding-similarity verifier behind a message channel."""

    name = "semantic"

    def __init__(
        self,
        transport: Transport,
        model_name: str = "",
        sandbox_timeout: float = 30.0,
        cache: Optional[PredictionCache] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self.transport = transport
        self.model_name = model_name
        self.channel = RequestChannel(default_timeout=sandbox_timeout)
        self.cache = cache if cache is not None else PredictionCache()
        self.circuit_breaker = circuit_breaker or CircuitBreaker()
        self._start_lock = asyncio.Lock()
        self._ready = False

    async def _ensure_started(self) -> None:
        async with self._start_lock:
            if self.transport.alive:
                return
            await self.transport.start(self.channel.deliver)
            self.channel.bind(self.transport.send)

    async def initialize(self) -> bool:
        try:
            await self._ensure_started()
        except Exception as e:
            logger.error("Verifier transport failed to start", extra={"error": str(e)}, exc_info=True)
            return False
        response = await self.channel.request("init")
        self._ready = bool(response.get("success"))
        if not self._ready:
            logger.warning("Verifier init failed", extra={"error": response.get("error")})
        return self._ready

    async def predict(self, text: str) -> VerificationResult:
        if self.circuit_breaker.is_open:
            return VerificationResult.failure("Verifier circuit breaker is open")

        cached = await self.cache.get(text, self.model_name)
        if cached is not None:
            return VerificationResult.from_payload(cached)

        try:
            await self._ensure_started()
        except Exception as e:
            self.circuit_breaker.record_failure()
            logger.warning("Verifier unavailable", extra={"error": str(e), "error_type": type(e).__name__})
            return VerificationResult.failure(f"Verifier unavailable: {e}")

        try:
            response = await self.channel.request("predict", {"text": text})
        except asyncio.CancelledError:
            # caller's deadline expired first
            self.circuit_breaker.record_failure()
            raise
        result = VerificationResult.from_payload(response.get("result", response))

        if result.ok:
            self._ready = True
            self.circuit_breaker.record_success()
            await self.cache.put(text, self.model_name, result.to_payload())
        else:
            self.circuit_breaker.record_failure()
            logger.debug("Prediction failed", extra={"error": result.error})
        return result

    async def ping(self) -> bool:
        if not self.transport.alive:
            return False
        response = await self.channel.request("ping", timeout=2.0)
        return bool(response.get("pong"))

    async def close(self) -> None:
        self.channel.close("Verifier closed")
        await self.transport.stop()
        self._ready = False

    def status(self) -> dict:
        return {
            "name": self.name,
            "ready": self._ready,
            "model": self.model_name,
            "transport_alive": self.transport.alive,
            "circuit_breaker": self.circuit_breaker.state,
            "pending_requests": self.channel.pending_count,
            "cache": self.cache.stats,
        }
