"""
Verifier Worker — runs on the far side of the isolation boundary.

Holds the embedding model and the pre-embedded Example Bank. Reachable
only through messages:

    {id, action: "init"}            -> {id, success, error?}
    {id, action: "predict", text}   -> {id, result: {score, category, confidence, matchedExample}}
                                       {id, result: {error}}
    {id, action: "ping"}            -> {id, pong: true, state}

Lifecycle: uninitialized -> loading -> ready, or -> error. Error is
terminal for that attempt only; the next request retries the load.
Concurrent callers during loading share the one in-flight load.
"""

from __future__ import annotations

import asyncio
import importlib
import sys
import threading
from typing import Callable, Optional, Sequence

import numpy as np

from darkscan.examples import ExampleBank, DARK_PATTERN_EXAMPLES
from darkscan.logging import get_logger, setup_logging
from darkscan.models import CONFIDENCE_HIGH, CONFIDENCE_LOW, CONFIDENCE_MEDIUM

logger = get_logger("verifier.worker")

STATE_UNINITIALIZED = "uninitialized"
STATE_LOADING = "loading"
STATE_READY = "ready"
STATE_ERROR = "error"

EmbedFn = Callable[[Sequence[str]], Sequence[Sequence[float]]]


# ============================================================
# MATH
# ============================================================

def cosine_similarity(a, b) -> float:
    """Dot product over the product of norms. 0.0 if either norm is zero."""
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    denom = np.linalg.norm(va) * np.linalg.norm(vb)
    if denom == 0:
        return 0.0
    return float(np.dot(va, vb) / denom)


def confidence_tier(score: float, high: float = 0.7, medium: float = 0.5) -> str:
    if score > high:
        return CONFIDENCE_HIGH
    if score > medium:
        return CONFIDENCE_MEDIUM
    return CONFIDENCE_LOW


# ============================================================
# EMBEDDINGS
# ============================================================

class SentenceTransformerEmbedder:
    """Lazily loads a sentence-transformers model on first call."""

    def __init__(self, model_name: str):
        self.model_name = model_name
        self._model = None

    def __call__(self, texts: Sequence[str]):
        if self._model is None:
            try:
                from sentence_transformers import SentenceTransformer
            except ImportError as e:
                raise RuntimeError(
                    "sentence-transformers is required for semantic verification. "
                    f"Install it and ensure model '{self.model_name}' is available. Reason: {e}"
                ) from e
            self._model = SentenceTransformer(self.model_name)
            logger.info("Embedding model loaded: %s", self.model_name)
        return self._model.encode(list(texts), convert_to_numpy=True)


def load_embedder(path: str) -> EmbedFn:
    """Import an embedding callable from "package.module:name"."""
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Embedder must look like 'package.module:name', got {path!r}")
    embed = getattr(importlib.import_module(module_name), attr)
    if not callable(embed):
        raise TypeError(f"Embedder {path!r} is not callable")
    return embed


# ============================================================
# WORKER
# ============================================================

class VerifierWorker:
    """Answers verification queries against the cached example embeddings."""

    def __init__(
        self,
        bank: Optional[ExampleBank] = None,
        embed_fn: Optional[EmbedFn] = None,
        embedder: Optional[str] = None,
        model_name: str = "sentence-transformers/all-MiniLM-L6-v2",
        high_confidence: float = 0.7,
        medium_confidence: float = 0.5,
    ):
        self.bank = bank or ExampleBank(DARK_PATTERN_EXAMPLES)
        self.model_name = model_name
        self.high_confidence = high_confidence
        self.medium_confidence = medium_confidence
        self._embed_fn = embed_fn
        self.embedder = embedder
        self._embed: Optional[EmbedFn] = None
        self._phrases, self._labels = self.bank.flatten()
        self._example_vectors: Optional[np.ndarray] = None
        self._loading: Optional[asyncio.Task] = None
        self.state = STATE_UNINITIALIZED
        self.load_count = 0   # completed example-bank embeddings
        self.last_error: Optional[str] = None

    async def initialize(self) -> dict:
        if self.state == STATE_READY:
            return {"success": True}
        if self._loading is None:
            self.state = STATE_LOADING
            self._loading = asyncio.get_running_loop().create_task(self._load())
        # shield: one caller giving up must not cancel the shared load
        return await asyncio.shield(self._loading)

    async def _load(self) -> dict:
        logger.info("Loading embedding model", extra={"mode": self.model_name})
        try:
            embed = self._embed_fn
            if embed is None:
                embed = load_embedder(self.embedder) if self.embedder else SentenceTransformerEmbedder(self.model_name)
            vectors = await asyncio.to_thread(embed, self._phrases)
            self._example_vectors = np.asarray(vectors, dtype=float)
            self._embed = embed
            self.load_count += 1
            self.state = STATE_READY
            self.last_error = None
            logger.info("Example bank embedded", extra={"candidates": len(self._phrases)})
            return {"success": True}
        except Exception as e:
            logger.error("Verifier init failed", extra={"error": str(e)}, exc_info=True)
            self.state = STATE_ERROR
            self.last_error = str(e)
            return {"success": False, "error": str(e)}
        finally:
            self._loading = None

    async def predict(self, text: str) -> dict:
        if self.state != STATE_READY:
            init = await self.initialize()
            if not init["success"]:
                return {"error": f"Model failed to load: {init.get('error')}"}

        try:
            embedded = await asyncio.to_thread(self._embed, [text])
            vec = np.asarray(embedded, dtype=float)[0]
        except Exception as e:
            return {"error": str(e)}

        best_idx = -1
        best = 0.0
        for i, example_vec in enumerate(self._example_vectors):
            sim = cosine_similarity(vec, example_vec)
            if sim > best:
                best = sim
                best_idx = i

        return {
            "score": best,
            "category": self._labels[best_idx] if best_idx >= 0 else "Unknown",
            "confidence": confidence_tier(best, self.high_confidence, self.medium_confidence),
            "matchedExample": self._phrases[best_idx] if best_idx >= 0 else None,
        }

    async def handle(self, message: dict) -> dict:
        """Dispatch one protocol message and build the correlated reply."""
        rid = message.get("id")
        action = message.get("action")
        if action == "init":
            result = await self.initialize()
            return {"id": rid, "success": result["success"], "error": result.get("error")}
        if action == "predict":
            return {"id": rid, "result": await self.predict(str(message.get("text", "")))}
        if action == "ping":
            return {"id": rid, "pong": True, "state": self.state}
        return {"id": rid, "error": f"Unknown action: {action}"}


# ============================================================
# CHILD PROCESS ENTRY POINT
# ============================================================

def serve(
    conn,
    model_name: str,
    examples: dict,
    high: float = 0.7,
    medium: float = 0.5,
    embedder: Optional[str] = None,
) -> None:
    """Run a worker behind a multiprocessing connection until shutdown."""
    setup_logging(stream=sys.stderr)
    asyncio.run(_serve(conn, VerifierWorker(
        ExampleBank(examples),
        embedder=embedder,
        model_name=model_name,
        high_confidence=high, medium_confidence=medium,
    )))


async def _serve(conn, worker: VerifierWorker) -> None:
    loop = asyncio.get_running_loop()
    inbox: asyncio.Queue = asyncio.Queue()

    def pump() -> None:
        while True:
            try:
                msg = conn.recv()
            except (EOFError, OSError):
                msg = None
            loop.call_soon_threadsafe(inbox.put_nowait, msg)
            if msg is None or msg.get("action") == "shutdown":
                return

    threading.Thread(target=pump, name="darkscan-worker-recv", daemon=True).start()

    async def reply(msg: dict) -> None:
        response = await worker.handle(msg)
        try:
            conn.send(response)
        except (BrokenPipeError, OSError):
            logger.debug("Parent went away before reply", extra={"request_id": msg.get("id")})

    tasks: set[asyncio.Task] = set()
    while True:
        msg = await inbox.get()
        if msg is None or msg.get("action") == "shutdown":
            break
        task = loop.create_task(reply(msg))
        tasks.add(task)
        task.add_done_callback(tasks.discard)

    for task in tasks:
        task.cancel()
