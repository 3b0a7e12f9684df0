"""
DarkScan — Dark Pattern Detection Engine

Finds manipulative UI copy in a document by combining keyword candidate
selection, semantic verification against example phrases, and a strict
keyword fallback when verification is unavailable.

Public API:
  - CategoryBank / load_category_bank: Data-driven pattern categories
  - CandidateExtractor: Visible-text walker producing candidates
  - BatchDispatcher / decide: Batched verification and tiered decisions
  - ScanEngine / ScanController: Scan orchestration and control protocol
  - ChangeMonitor: Debounced mutation-driven re-scans
  - Verifier / get_verifier: Semantic verifier interface and factory

Usage:
    from darkscan import parse_html, load_category_bank, ScanEngine
    from darkscan import get_verifier
"""

__version__ = "2.2.0"

from darkscan.categories import (
    CategoryBank,
    Matcher,
    PatternCategory,
    compile_matcher,
    load_category_bank,
    parse_category_config,
)
from darkscan.document import Document, Element, TextNode, parse_html
from darkscan.extractor import CandidateExtractor
from darkscan.dispatcher import BatchDispatcher, decide
from darkscan.engine import ScanController, ScanEngine
from darkscan.monitor import ChangeMonitor
from darkscan.models import Candidate, DetectionResult, ScanSession, VerificationResult
from darkscan.verifier import NullVerifier, Verifier
from darkscan.verifier.factory import get_verifier
