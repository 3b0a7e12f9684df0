"""
DarkScan Configuration

Central settings loaded from environment variables.
"""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

_DEFAULT_CATEGORY_CONFIG = str(Path(__file__).resolve().parent / "data" / "categories.txt")


@dataclass(frozen=True)
class Settings:
    """Immutable application settings."""

    # --- Decision thresholds ---
    ACCEPT_THRESHOLD: float = float(os.getenv("DARKSCAN_ACCEPT_THRESHOLD", "0.6"))
    HIGH_CONFIDENCE: float = float(os.getenv("DARKSCAN_HIGH_CONFIDENCE", "0.7"))
    MEDIUM_CONFIDENCE: float = float(os.getenv("DARKSCAN_MEDIUM_CONFIDENCE", "0.5"))

    # --- Dispatch ---
    BATCH_SIZE: int = int(os.getenv("DARKSCAN_BATCH_SIZE", "3"))
    VERIFY_TIMEOUT: float = float(os.getenv("DARKSCAN_VERIFY_TIMEOUT", "5.0"))

    # --- Change monitor ---
    DEBOUNCE_SECONDS: float = float(os.getenv("DARKSCAN_DEBOUNCE", "0.75"))
    INITIAL_SCAN_DELAY: float = float(os.getenv("DARKSCAN_INITIAL_SCAN_DELAY", "2.0"))

    # --- Extraction ---
    CONTEXT_WINDOW: int = int(os.getenv("DARKSCAN_CONTEXT_WINDOW", "300"))
    MIN_PIXELS: int = int(os.getenv("DARKSCAN_MIN_PIXELS", "5"))
    CATEGORY_CONFIG: str = os.getenv("DARKSCAN_CATEGORY_CONFIG", _DEFAULT_CATEGORY_CONFIG)

    # --- Verifier ---
    VERIFIER: str = os.getenv("DARKSCAN_VERIFIER", "semantic")
    EMBED_MODEL: str = os.getenv(
        "DARKSCAN_EMBED_MODEL", "sentence-transformers/all-MiniLM-L6-v2",
    )
    # "package.module:callable"; empty means sentence-transformers
    EMBEDDER: str = os.getenv("DARKSCAN_EMBEDDER", "")
    SANDBOX_TIMEOUT: float = float(os.getenv("DARKSCAN_SANDBOX_TIMEOUT", "30"))

    # --- CORS ---
    CORS_ORIGINS: str = os.getenv("DARKSCAN_CORS_ORIGINS", "*")


settings = Settings()


@dataclass(frozen=True)
class ScanThresholds:
    """Tunables the scan pipeline reads. Built from settings by default."""

    accept_threshold: float = 0.6
    high_confidence: float = 0.7
    medium_confidence: float = 0.5
    batch_size: int = 3
    verify_timeout: float = 5.0
    debounce_seconds: float = 0.75
    initial_scan_delay: float = 2.0
    context_window: int = 300
    min_pixels: int = 5

    @classmethod
    def from_settings(cls, s: Settings = settings) -> "ScanThresholds":
        return cls(
            accept_threshold=s.ACCEPT_THRESHOLD,
            high_confidence=s.HIGH_CONFIDENCE,
            medium_confidence=s.MEDIUM_CONFIDENCE,
            batch_size=s.BATCH_SIZE,
            verify_timeout=s.VERIFY_TIMEOUT,
            debounce_seconds=s.DEBOUNCE_SECONDS,
            initial_scan_delay=s.INITIAL_SCAN_DELAY,
            context_window=s.CONTEXT_WINDOW,
            min_pixels=s.MIN_PIXELS,
        )
