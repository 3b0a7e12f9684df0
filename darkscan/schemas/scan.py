"""
API Schemas — Request and Response Models

Pydantic models for the DarkScan API.
"""

from __future__ import annotations

from typing import Optional
from pydantic import BaseModel, Field


# ============================================================
# DOCUMENT
# ============================================================

class DocumentRequest(BaseModel):
    """POST /document and /document/append request body."""
    html: str = Field(..., min_length=1, max_length=2_000_000,
                      description="HTML markup to load (or append to <body>).")

    model_config = {"json_schema_extra": {"examples": [
        {"html": "<p>Hurry! Only 2 left in stock.</p><footer>All rights reserved.</footer>"},
    ]}}


class DocumentResponse(BaseModel):
    text_nodes: int
    appended: int = 0


# ============================================================
# SCAN
# ============================================================

class ScanAck(BaseModel):
    """POST /scan response: immediate acknowledgement."""
    isScanning: bool
    isPaused: Optional[bool] = None
    error: Optional[str] = None


class DetectionResponse(BaseModel):
    category: str
    text: str
    tier: str
    score: Optional[float] = None
    message: str = ""
    matchedExample: Optional[str] = None


class ResultsResponse(BaseModel):
    """GET /results response body."""
    count: int
    results: list[DetectionResponse]
    isScanning: bool
    hasScanned: bool
    mode: str


class PauseResponse(BaseModel):
    isPaused: bool


class EventsResponse(BaseModel):
    events: list[dict]
    total: int


# ============================================================
# CATEGORIES / HEALTH
# ============================================================

class CategoryInfo(BaseModel):
    name: str
    message: str
    broad_fragments: int
    strict_fragments: int
    strict_split: bool


class CategoriesResponse(BaseModel):
    categories: list[CategoryInfo]
    source: str


class HealthResponse(BaseModel):
    status: str
    version: str
    verifier: dict
    categories: int
    is_scanning: bool
    is_paused: bool
