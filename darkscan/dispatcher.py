"""
Batch Dispatcher & Decision Engine

Candidates are verified in fixed-size batches. Batches run strictly one
after another; candidates inside a batch are verified concurrently,
each raced against a per-item timeout. A timeout is handled exactly
like a verifier error.

Decision policy, per candidate:
  1. Verification succeeded and score > accept threshold  -> tier AI
  2. Otherwise the strict matcher fires on the original text -> tier StrictFallback
  3. Otherwise the candidate is discarded
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from darkscan.logging import get_logger
from darkscan.models import (
    Candidate,
    DetectionResult,
    TIER_AI,
    TIER_STRICT_FALLBACK,
    VerificationResult,
)
from darkscan.verifier import Verifier

logger = get_logger("dispatcher")

# (candidate, result) -> awaitable; called in candidate order after each batch
ApplyFn = Callable[[Candidate, DetectionResult], Awaitable[bool]]
# (done, total, found) after each batch
ProgressFn = Callable[[int, int, int], None]


def decide(
    candidate: Candidate,
    verification: Optional[VerificationResult],
    accept_threshold: float = 0.6,
) -> Optional[DetectionResult]:
    """Apply the tiered fallback policy to one verified candidate."""
    if (
        verification is not None
        and verification.ok
        and verification.score > accept_threshold
    ):
        return DetectionResult(
            category=verification.category or candidate.category.name,
            text=candidate.text,
            tier=TIER_AI,
            score=verification.score,
            message=candidate.category.message,
            matched_example=verification.matched_example,
        )

    # Low score, error or timeout: the original text, not the context window
    if candidate.category.strict.matches(candidate.text):
        return DetectionResult(
            category=candidate.category.name,
            text=candidate.text,
            tier=TIER_STRICT_FALLBACK,
            message=candidate.category.message,
        )
    return None


@dataclass
class DispatchOutcome:
    results: list[DetectionResult]
    used_ai: bool
    verified: int
    timeouts: int


class BatchDispatcher:
    """Sequences candidates through the verifier and the decision policy."""

    def __init__(
        self,
        verifier: Verifier,
        batch_size: int = 3,
        verify_timeout: float = 5.0,
        accept_threshold: float = 0.6,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.verifier = verifier
        self.batch_size = batch_size
        self.verify_timeout = verify_timeout
        self.accept_threshold = accept_threshold

    async def verify(self, candidate: Candidate) -> VerificationResult:
        """Race one verification against the per-item timeout."""
        try:
            return await asyncio.wait_for(
                self.verifier.predict(candidate.context), self.verify_timeout,
            )
        except asyncio.TimeoutError:
            logger.debug("Verification timed out", extra={"category": candidate.category.name})
            return VerificationResult.timeout()
        except Exception as e:
            logger.warning(
                "Verifier raised; using strict fallback",
                extra={"error": str(e), "error_type": type(e).__name__},
            )
            return VerificationResult.failure(str(e))

    async def run(
        self,
        candidates: list[Candidate],
        apply: Optional[ApplyFn] = None,
        on_progress: Optional[ProgressFn] = None,
        found_offset: int = 0,
    ) -> DispatchOutcome:
        """
        Verify and decide every candidate.

        ``apply`` is awaited for each accepted result in input order once
        its batch completes; returning False drops the result (e.g. the
        source node went stale). Batch N is fully applied before batch
        N+1 starts.
        """
        results: list[DetectionResult] = []
        # one node can match several categories but share a verifier label
        seen: set[tuple[int, str]] = set()
        used_ai = False
        timeouts = 0
        total = len(candidates)

        for start in range(0, total, self.batch_size):
            batch = candidates[start:start + self.batch_size]
            verifications = await asyncio.gather(*(self.verify(c) for c in batch))

            for candidate, verification in zip(batch, verifications):
                if verification.timed_out:
                    timeouts += 1
                result = decide(candidate, verification, self.accept_threshold)
                if result is None:
                    continue
                key = (id(candidate.source_ref), result.category)
                if candidate.source_ref is not None and key in seen:
                    continue
                if apply is not None and not await apply(candidate, result):
                    continue
                seen.add(key)
                results.append(result)
                if result.tier == TIER_AI:
                    used_ai = True

            if on_progress is not None:
                on_progress(min(start + len(batch), total), total, found_offset + len(results))

        return DispatchOutcome(results=results, used_ai=used_ai, verified=total, timeouts=timeouts)
