"""
Prediction Cache

In-memory TTL cache for verifier predictions.
Key = SHA-256(text + model). TTL = 1 hour.

Mutation-driven re-scans see the same context windows again and again;
this keeps them from crossing the isolation boundary every time.
Only successful predictions are stored. Guarded by an asyncio lock.

Usage:
    from darkscan.cache import PredictionCache
    cache = PredictionCache()
    cached = await cache.get(text, model)
    if cached:
        return cached
    result = await predict(...)
    await cache.put(text, model, result)
"""

from __future__ import annotations

import asyncio
import hashlib
import time
from typing import Optional


class PredictionCache:
    """In-memory cache with TTL eviction."""

    def __init__(self, ttl_seconds: int = 3600, max_entries: int = 2000):
        self._cache: dict[str, tuple[float, dict]] = {}
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._lock = asyncio.Lock()
        self._hits = 0
        self._misses = 0

    @staticmethod
    def _make_key(text: str, model: str) -> str:
        raw = f"{text}||{model}"
        return hashlib.sha256(raw.encode()).hexdigest()

    async def get(self, text: str, model: str) -> Optional[dict]:
        """Return cached payload if it exists and has not expired."""
        key = self._make_key(text, model)
        async with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                self._misses += 1
                return None

            ts, payload = entry
            if time.monotonic() - ts > self._ttl:
                del self._cache[key]
                self._misses += 1
                return None

            self._hits += 1
            return dict(payload)

    async def put(self, text: str, model: str, payload: dict) -> None:
        """Store a payload. Evicts the oldest entry when full."""
        key = self._make_key(text, model)
        async with self._lock:
            if key not in self._cache and len(self._cache) >= self._max_entries:
                oldest_key = min(self._cache, key=lambda k: self._cache[k][0])
                del self._cache[oldest_key]

            self._cache[key] = (time.monotonic(), dict(payload))

    async def clear(self) -> None:
        async with self._lock:
            self._cache.clear()

    @property
    def stats(self) -> dict:
        """Cache hit/miss statistics."""
        total = self._hits + self._misses
        return {
            "entries": len(self._cache),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total, 3) if total > 0 else 0.0,
        }
