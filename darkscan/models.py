"""
Core data structures shared by the scan pipeline.

Candidates live for one scan pass. Verification results are produced
once per candidate per scan. Detection results are what collaborators
(the popup, the API, the CLI) get to see.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


# --- Confidence tiers (bucketed similarity) ---
CONFIDENCE_HIGH = "High"
CONFIDENCE_MEDIUM = "Medium"
CONFIDENCE_LOW = "Low"

# --- Decision tiers (how a detection was accepted) ---
TIER_AI = "AI"
TIER_STRICT_FALLBACK = "StrictFallback"

# --- Effective scan modes ---
MODE_HYBRID = "Hybrid AI"
MODE_FALLBACK = "Fallback Regex"

# Result payloads carry a short snippet, not the whole node text
RESULT_TEXT_LIMIT = 50


# ============================================================
# CANDIDATES
# ============================================================

@dataclass
class Candidate:
    """A text span paired with one category whose broad matcher fired."""
    source_ref: Any        # Opaque handle back to the origin node
    text: str              # The raw matched span
    context: str           # Whitespace-collapsed surrounding text
    category: Any          # PatternCategory


# ============================================================
# VERIFICATION
# ============================================================

@dataclass(frozen=True)
class VerificationResult:
    """
    Answer from the semantic verifier for one candidate.

    A failure carries ``error`` (and ``timed_out`` when the issuer's
    deadline expired first). The decision engine treats every failure
    the same way: fall through to the strict matcher.
    """
    score: float = 0.0
    category: Optional[str] = None
    confidence: str = CONFIDENCE_LOW
    matched_example: Optional[str] = None
    error: Optional[str] = None
    fallback: bool = False
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and not self.fallback

    @classmethod
    def failure(cls, error: str, fallback: bool = True) -> "VerificationResult":
        return cls(error=error, fallback=fallback)

    @classmethod
    def timeout(cls) -> "VerificationResult":
        return cls(error="Verification timeout", fallback=True, timed_out=True)

    @classmethod
    def from_payload(cls, payload: dict) -> "VerificationResult":
        """Build from a wire response: {score, category, confidence, matchedExample} or {error}."""
        if not isinstance(payload, dict):
            return cls.failure("Malformed verifier response")
        if payload.get("error"):
            return cls(
                error=str(payload["error"]),
                fallback=bool(payload.get("fallback", True)),
                timed_out=bool(payload.get("timeout", False)),
            )
        try:
            score = float(payload.get("score", 0.0))
        except (TypeError, ValueError):
            return cls.failure("Malformed verifier score")
        return cls(
            score=score,
            category=payload.get("category"),
            confidence=payload.get("confidence", CONFIDENCE_LOW),
            matched_example=payload.get("matchedExample"),
        )

    def to_payload(self) -> dict:
        if self.error is not None:
            return {"error": self.error, "fallback": self.fallback, "timeout": self.timed_out}
        return {
            "score": self.score,
            "category": self.category,
            "confidence": self.confidence,
            "matchedExample": self.matched_example,
        }


# ============================================================
# DETECTIONS
# ============================================================

@dataclass
class DetectionResult:
    """A candidate that survived the decision policy."""
    category: str
    text: str
    tier: str                       # TIER_AI or TIER_STRICT_FALLBACK
    score: Optional[float] = None   # Similarity score, AI tier only
    message: str = ""
    matched_example: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "category": self.category,
            "text": self.text[:RESULT_TEXT_LIMIT],
            "tier": self.tier,
            "score": round(self.score, 4) if self.score is not None else None,
            "message": self.message,
            "matchedExample": self.matched_example,
        }


# ============================================================
# SESSION
# ============================================================

SCAN_STARTED = "started"
SCAN_BUSY = "busy"
SCAN_PAUSED = "paused"


@dataclass
class ScanSession:
    """
    Process-wide scan state. One instance, owned by the engine.

    At most one scan is active: begin() refuses while a scan is in
    flight (no-op) and while paused (rejected).
    """
    is_scanning: bool = False
    has_scanned: bool = False
    is_paused: bool = False
    last_used_ai: bool = False
    results: list[DetectionResult] = field(default_factory=list)

    def begin(self) -> str:
        if self.is_paused:
            return SCAN_PAUSED
        if self.is_scanning:
            return SCAN_BUSY
        self.is_scanning = True
        return SCAN_STARTED

    def finish(self, results: list[DetectionResult], used_ai: bool) -> None:
        self.results = results
        self.last_used_ai = used_ai
        self.has_scanned = True
        self.is_scanning = False

    def abort(self) -> None:
        self.is_scanning = False

    def toggle_pause(self) -> bool:
        return self.set_paused(not self.is_paused)

    def set_paused(self, paused: bool) -> bool:
        self.is_paused = paused
        return self.is_paused

    @property
    def mode(self) -> str:
        return MODE_HYBRID if self.last_used_ai else MODE_FALLBACK
