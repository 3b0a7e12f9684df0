"""
Returns the configured verifier.
"""

from __future__ import annotations

from typing import Optional

from darkscan.config import settings
from darkscan.examples import ExampleBank, default_example_bank
from darkscan.verifier import NullVerifier, Verifier


def get_verifier(
    name: str = "semantic",
    bank: Optional[ExampleBank] = None,
    model_name: Optional[str] = None,
) -> Verifier:
    """Factory: "semantic" (child process), "inprocess" (same loop) or "null"."""
    bank = bank or default_example_bank
    model_name = model_name or settings.EMBED_MODEL

    if name == "null":
        return NullVerifier()

    from darkscan.verifier.semantic import SemanticVerifier
    from darkscan.verifier.transport import LoopbackTransport, ProcessTransport

    if name == "semantic":
        transport = ProcessTransport(
            model_name=model_name,
            examples=dict(bank.examples),
            high_confidence=settings.HIGH_CONFIDENCE,
            medium_confidence=settings.MEDIUM_CONFIDENCE,
            embedder=settings.EMBEDDER or None,
        )
    elif name == "inprocess":
        from darkscan.verifier.worker import VerifierWorker
        transport = LoopbackTransport(VerifierWorker(
            bank,
            embedder=settings.EMBEDDER or None,
            model_name=model_name,
            high_confidence=settings.HIGH_CONFIDENCE,
            medium_confidence=settings.MEDIUM_CONFIDENCE,
        ))
    else:
        raise ValueError(f"Unknown verifier: {name}")

    return SemanticVerifier(
        transport, model_name=model_name, sandbox_timeout=settings.SANDBOX_TIMEOUT,
    )
