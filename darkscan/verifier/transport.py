"""
How channel messages cross to the worker.

ProcessTransport runs the worker in a spawned child process: the
embedding runtime and its imports stay out of the scanning process,
and the only way in is a pickled message over a pipe.

LoopbackTransport hands messages to an in-process worker on the same
event loop. Same protocol, same correlation, no isolation; used by
tests and hosts that cannot spawn processes.
"""

from __future__ import annotations

import asyncio
import multiprocessing
import threading
from abc import ABC, abstractmethod
from typing import Callable, Optional

from darkscan.errors import VerifierUnavailableError
from darkscan.logging import get_logger
from darkscan.verifier.worker import VerifierWorker, serve

logger = get_logger("verifier.transport")

Deliver = Callable[[dict], None]


class Transport(ABC):
    """One-way send plus an inbound delivery callback."""

    @abstractmethod
    async def start(self, deliver: Deliver) -> None:
        ...

    @abstractmethod
    def send(self, message: dict) -> None:
        ...

    @abstractmethod
    async def stop(self) -> None:
        ...

    @property
    @abstractmethod
    def alive(self) -> bool:
        ...


class LoopbackTransport(Transport):
    """Same-loop delivery to a VerifierWorker. Replies may interleave."""

    def __init__(self, worker: VerifierWorker):
        self.worker = worker
        self._deliver: Optional[Deliver] = None
        self._tasks: set[asyncio.Task] = set()

    async def start(self, deliver: Deliver) -> None:
        self._deliver = deliver

    def send(self, message: dict) -> None:
        if self._deliver is None:
            raise VerifierUnavailableError("Loopback transport not started")
        task = asyncio.get_running_loop().create_task(self._handle(message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _handle(self, message: dict) -> None:
        response = await self.worker.handle(message)
        if self._deliver is not None:
            self._deliver(response)

    async def stop(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        self._deliver = None

    @property
    def alive(self) -> bool:
        return self._deliver is not None


class ProcessTransport(Transport):
    """Worker in a spawned child process, reached over a duplex pipe."""

    def __init__(
        self,
        model_name: str,
        examples: dict,
        high_confidence: float = 0.7,
        medium_confidence: float = 0.5,
        start_method: str = "spawn",
        embedder: Optional[str] = None,
    ):
        self.model_name = model_name
        self.examples = {k: list(v) for k, v in examples.items()}
        self.high_confidence = high_confidence
        self.medium_confidence = medium_confidence
        self.embedder = embedder
        self._ctx = multiprocessing.get_context(start_method)
        self._conn = None
        self._proc = None
        self._reader: Optional[threading.Thread] = None
        self._send_lock = threading.Lock()

    async def start(self, deliver: Deliver) -> None:
        if self.alive:
            return
        if self._conn is not None:
            # previous child died
            self._conn.close()
            self._conn = None
        loop = asyncio.get_running_loop()
        parent_conn, child_conn = self._ctx.Pipe(duplex=True)
        self._proc = self._ctx.Process(
            target=serve,
            args=(child_conn, self.model_name, self.examples,
                  self.high_confidence, self.medium_confidence, self.embedder),
            name="darkscan-verifier",
            daemon=True,
        )
        self._proc.start()
        child_conn.close()
        self._conn = parent_conn

        def read() -> None:
            while True:
                try:
                    msg = parent_conn.recv()
                except (EOFError, OSError):
                    logger.info("Verifier process pipe closed")
                    return
                loop.call_soon_threadsafe(deliver, msg)

        self._reader = threading.Thread(target=read, name="darkscan-verifier-recv", daemon=True)
        self._reader.start()
        logger.info("Verifier process started", extra={"mode": self.model_name})

    def send(self, message: dict) -> None:
        if not self.alive:
            raise VerifierUnavailableError("Verifier process is not running")
        with self._send_lock:
            self._conn.send(message)

    async def stop(self) -> None:
        if self._conn is not None:
            try:
                self.send({"id": None, "action": "shutdown"})
            except (VerifierUnavailableError, OSError) as e:
                logger.debug("Shutdown message not delivered", extra={"error": str(e)})
        if self._proc is not None:
            await asyncio.to_thread(self._proc.join, 5)
            if self._proc.is_alive():
                self._proc.terminate()
        if self._conn is not None:
            self._conn.close()
        self._conn = None
        self._proc = None

    @property
    def alive(self) -> bool:
        return self._proc is not None and self._proc.is_alive() and self._conn is not None
