"""
Shared fixtures.

Settings are read at import time, so the environment is pinned here,
before any darkscan module loads: no model download, no child process.
"""

from __future__ import annotations

import asyncio
import os
import zlib

os.environ.setdefault("DARKSCAN_VERIFIER", "null")
os.environ.setdefault("DARKSCAN_LOG_LEVEL", "WARNING")

import numpy as np
import pytest

from darkscan.categories import parse_category_config
from darkscan.models import VerificationResult
from darkscan.verifier import Verifier


SAMPLE_CONFIG = """
[Urgency]
message: Creates false urgency to rush your decision.
broad: hurry, act now, limited time, ends soon, only \\d+ left
strict: hurry, act now, only \\d+ left

[Scarcity]
message: Suggests scarcity to trigger FOMO.
broad: selling fast, almost gone, low stock, few left
strict: almost gone, low stock
"""


def hash_embed(texts, dim: int = 64):
    """Deterministic bag-of-words embedding for tests."""
    out = np.zeros((len(texts), dim))
    for i, text in enumerate(texts):
        for word in text.lower().replace("!", " ").replace(".", " ").split():
            out[i, zlib.crc32(word.encode()) % dim] += 1.0
    return out


@pytest.fixture
def bank():
    return parse_category_config(SAMPLE_CONFIG, source="test")


@pytest.fixture
def embed_fn():
    return hash_embed


class ScriptedVerifier(Verifier):
    """Answers from a text -> (score, category) table, with optional per-text delay."""

    name = "scripted"

    def __init__(self, answers=None, delays=None, default_score: float = 0.1):
        self.answers = answers or {}
        self.delays = delays or {}
        self.default_score = default_score
        self.in_flight = 0
        self.max_in_flight = 0
        self.calls: list[str] = []

    async def predict(self, text: str) -> VerificationResult:
        self.calls.append(text)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(text, 0))
            score, category = self.answers.get(text, (self.default_score, "benign"))
            return VerificationResult(score=score, category=category, matched_example=f"ex:{text}")
        finally:
            self.in_flight -= 1


@pytest.fixture
def scripted():
    """Factory for ScriptedVerifier instances."""
    return ScriptedVerifier
