"""
Verifier — Abstract Interface

The decision engine depends on this interface only. Two variants:
SemanticVerifier (embeddings behind an isolation boundary) and
NullVerifier (always unavailable, so every candidate goes to the
strict-matcher tier). Swap by changing DARKSCAN_VERIFIER in env.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from darkscan.models import VerificationResult


class Verifier(ABC):
    """Abstract base for semantic verifiers. predict() never raises."""

    name: str = "abstract"

    @abstractmethod
    async def predict(self, text: str) -> VerificationResult:
        """Return the most similar category and its score, or a failure result."""
        ...

    async def initialize(self) -> bool:
        """Warm up. True once the verifier can answer predictions."""
        return False

    async def ping(self) -> bool:
        """Health check across the boundary."""
        return False

    async def close(self) -> None:
        return None

    def status(self) -> dict:
        return {"name": self.name, "ready": False}


class NullVerifier(Verifier):
    """Stand-in when no semantic verifier is configured or reachable."""

    name = "null"

    async def predict(self, text: str) -> VerificationResult:
        return VerificationResult.failure("Verifier unavailable")
