"""
DarkScan API — Main Application

POST /document         — Load an HTML document (replaces the current one)
POST /document/append  — Append HTML to <body>; triggers a debounced re-scan
POST /scan             — Request a scan (acknowledged immediately)
GET  /results          — Current results and scan state
POST /pause            — Toggle pause
POST /control          — Raw control-protocol message
GET  /events           — Recent scanProgress / resultsReady events
GET  /categories       — Loaded pattern categories
GET  /health           — Health check
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.requests import Request

from darkscan import __version__
from darkscan.categories import CategoryBank, load_category_bank
from darkscan.config import settings
from darkscan.document import Document, parse_fragment, parse_html
from darkscan.engine import EventLog, ScanController, ScanEngine
from darkscan.logging import setup_logging, get_logger
from darkscan.monitor import ChangeMonitor
from darkscan.verifier import Verifier
from darkscan.verifier.factory import get_verifier
from darkscan.schemas.scan import (
    DocumentRequest,
    DocumentResponse,
    ScanAck,
    ResultsResponse,
    PauseResponse,
    EventsResponse,
    CategoriesResponse,
    HealthResponse,
)

logger = get_logger("api")


# ============================================================
# RUNTIME STATE
# ============================================================

class Runtime:
    """The one document being watched, plus its engine and monitor."""

    def __init__(self, bank: CategoryBank, verifier: Verifier):
        self.bank = bank
        self.verifier = verifier
        self.events = EventLog()
        self.engine: Optional[ScanEngine] = None
        self.monitor: Optional[ChangeMonitor] = None
        self.controller: Optional[ScanController] = None

    def attach(self, document: Document) -> None:
        """Point a fresh engine and monitor at ``document``."""
        if self.monitor is not None:
            self.monitor.stop()
        self.engine = ScanEngine(document, self.bank, verifier=self.verifier, emit=self.events)
        self.controller = ScanController(self.engine)
        self.monitor = ChangeMonitor(self.engine)
        self.monitor.start()

    async def shutdown(self) -> None:
        if self.monitor is not None:
            self.monitor.stop()
        await self.verifier.close()


_runtime: Optional[Runtime] = None


def _get_runtime() -> Runtime:
    if _runtime is None or _runtime.engine is None:
        raise HTTPException(503, "Engine not initialized.")
    return _runtime


# ============================================================
# STARTUP / SHUTDOWN
# ============================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Wire up dependencies on startup."""
    global _runtime
    setup_logging()

    bank = load_category_bank(settings.CATEGORY_CONFIG)
    verifier = get_verifier(settings.VERIFIER)
    _runtime = Runtime(bank, verifier)
    _runtime.attach(Document())

    # Scans use strict matching until the model is ready
    warmup = asyncio.create_task(verifier.initialize())
    logger.info(
        f"DarkScan API starting: verifier={verifier.name} categories={len(bank)}",
        extra={"mode": settings.VERIFIER},
    )
    yield
    if not warmup.done():
        warmup.cancel()
    await _runtime.shutdown()
    _runtime = None
    logger.info("DarkScan API shutting down")


app = FastAPI(
    title="DarkScan API",
    description="Dark pattern detection: keyword candidates, semantic verification, strict fallback",
    version=__version__,
    lifespan=lifespan,
)

# CORS: set DARKSCAN_CORS_ORIGINS in production
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",")],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
    allow_credentials=False,
)


# ============================================================
# GLOBAL ERROR HANDLER
# ============================================================

@app.exception_handler(Exception)
async def global_error_handler(request: Request, exc: Exception):
    """Return a structured 500 without leaking internals."""
    logger.error(
        f"Unhandled exception: {type(exc).__name__}",
        extra={"error": str(exc), "path": request.url.path, "method": request.method},
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error."},
    )


# ============================================================
# ROUTES
# ============================================================

@app.post("/document", response_model=DocumentResponse)
async def load_document(request: DocumentRequest):
    """Replace the watched document. The monitor schedules an initial scan."""
    runtime = _get_runtime()
    document = parse_html(request.html)
    runtime.attach(document)
    text_nodes = len(document.text_nodes())
    logger.info(f"Document loaded: {text_nodes} text nodes")
    return {"text_nodes": text_nodes}


@app.post("/document/append", response_model=DocumentResponse)
async def append_document(request: DocumentRequest):
    """Append markup to <body>. Each node is one reported mutation."""
    runtime = _get_runtime()
    document = runtime.engine.document
    nodes = parse_fragment(request.html)
    for node in nodes:
        document.body.append(node)
    return {"text_nodes": len(document.text_nodes()), "appended": len(nodes)}


@app.post("/scan", response_model=ScanAck, response_model_exclude_none=True)
async def scan(wait: bool = Query(False, description="Block until the scan finishes")):
    """Request a scan. Returns at once unless ``wait`` is set."""
    runtime = _get_runtime()
    ack = runtime.engine.request_scan()
    if wait and ack.get("isScanning"):
        await runtime.engine.wait_idle()
    return ack


@app.get("/results", response_model=ResultsResponse)
async def get_results():
    return _get_runtime().engine.get_results()


@app.post("/pause", response_model=PauseResponse)
async def toggle_pause(
    paused: Optional[bool] = Query(None, description="Set this state instead of toggling"),
):
    """Toggle pause, or set it explicitly. Resuming requests a scan."""
    return _get_runtime().engine.toggle_pause(paused)


@app.post("/control")
async def control(request: Request):
    """Forward a control-protocol message ({"action": ...}) to the engine."""
    runtime = _get_runtime()
    try:
        message = await request.json()
    except ValueError:
        raise HTTPException(400, "Body must be a JSON object.")
    return await runtime.controller.handle(message)


@app.get("/events", response_model=EventsResponse)
async def get_events(
    limit: int = Query(50, ge=1, le=200),
    action: Optional[str] = Query(None, pattern="^(scanProgress|resultsReady)$"),
):
    """Recent events emitted by the engine."""
    events = _get_runtime().events
    return {"events": events.recent(limit=limit, action=action), "total": len(events)}


@app.get("/categories", response_model=CategoriesResponse)
async def get_categories():
    bank = _get_runtime().bank
    return {"categories": bank.describe(), "source": bank.source}


@app.get("/health", response_model=HealthResponse)
async def health():
    """Health check."""
    runtime = _get_runtime()
    session = runtime.engine.session
    return {
        "status": "operational" if not runtime.bank.is_empty else "degraded",
        "version": __version__,
        "verifier": runtime.verifier.status(),
        "categories": len(runtime.bank),
        "is_scanning": session.is_scanning,
        "is_paused": session.is_paused,
    }


# --- Version Headers Middleware ---
@app.middleware("http")
async def add_version_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-DarkScan-Version"] = __version__
    response.headers["X-Content-Type-Options"] = "nosniff"
    return response


# --- Body Size Limit Middleware ---
_MAX_BODY_BYTES = 4_194_304  # 4 MB


@app.middleware("http")
async def enforce_body_size_limit(request: Request, call_next):
    """Reject requests exceeding 4MB."""
    content_length = request.headers.get("content-length")
    if content_length:
        try:
            if int(content_length) > _MAX_BODY_BYTES:
                return JSONResponse(
                    status_code=413,
                    content={"detail": "Request body too large."},
                )
        except ValueError:
            pass  # Malformed content-length; let the framework handle it
    return await call_next(request)
