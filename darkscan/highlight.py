"""
Highlighting collaborator.

The engine only hands a candidate and its accepted result to a
Highlighter; what "marking" means belongs to the host. The document
implementation wraps the source text node in a highlight span that
records every detection made on it, so later scans can read them back.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod

from darkscan.document import Document, Element
from darkscan.errors import StaleReferenceError
from darkscan.models import Candidate, DetectionResult, TIER_AI

HIGHLIGHT_CLASS = "darkscan-highlight"
DETECTIONS_ATTR = "data-darkscan-detections"


class Highlighter(ABC):
    """Applies visual marks for accepted detections."""

    @abstractmethod
    def mark(self, candidate: Candidate, result: DetectionResult) -> None:
        """Mark the candidate's origin. Raises StaleReferenceError if it is gone."""
        ...

    def existing(self, document: Document) -> list[DetectionResult]:
        """Detections left in the document by earlier scans."""
        return []


class NullHighlighter(Highlighter):
    """Marks nothing. Used by headless one-shot scans."""

    def mark(self, candidate: Candidate, result: DetectionResult) -> None:
        return None


def build_title(result: DetectionResult) -> str:
    title = f"Dark Pattern: {result.category}"
    if result.message:
        title += f"\n{result.message}"
    if result.tier == TIER_AI and result.score is not None:
        title += f"\nAI Confidence: {result.score * 100:.0f}%"
    return title


class DocumentHighlighter(Highlighter):
    """Wraps marked text nodes in ``<span class="darkscan-highlight">``."""

    def mark(self, candidate: Candidate, result: DetectionResult) -> None:
        node = candidate.source_ref
        parent = getattr(node, "parent", None)
        if parent is None or not node.attached:
            raise StaleReferenceError(f"Source node detached: {candidate.text[:30]!r}")

        if parent.has_class(HIGHLIGHT_CLASS):
            # Same span matched another category in this pass
            records = json.loads(parent.attrs.get(DETECTIONS_ATTR, "[]"))
            records.append(result.to_dict())
            parent.attrs[DETECTIONS_ATTR] = json.dumps(records)
            parent.attrs["title"] += "\n\n" + build_title(result)
            return

        span = Element("span", attrs={
            "class": HIGHLIGHT_CLASS,
            DETECTIONS_ATTR: json.dumps([result.to_dict()]),
            "title": build_title(result),
        })
        parent.replace_child(span, node)
        span.append(node)

    def existing(self, document: Document) -> list[DetectionResult]:
        found: list[DetectionResult] = []
        for el in document.body.find_all(lambda e: e.has_class(HIGHLIGHT_CLASS)):
            try:
                records = json.loads(el.attrs.get(DETECTIONS_ATTR, "[]"))
            except json.JSONDecodeError:
                records = []
            text = el.text_content()
            if not records:
                found.append(DetectionResult(category="Unknown", text=text, tier="Unknown"))
                continue
            for r in records:
                found.append(DetectionResult(
                    category=r.get("category", "Unknown"),
                    text=text,
                    tier=r.get("tier", "Unknown"),
                    score=r.get("score"),
                    message=r.get("message", ""),
                    matched_example=r.get("matchedExample"),
                ))
        return found


def is_highlight_node(node) -> bool:
    """True if node is, or sits inside, a highlight span."""
    if isinstance(node, Element) and node.has_class(HIGHLIGHT_CLASS):
        return True
    return any(a.has_class(HIGHLIGHT_CLASS) for a in node.ancestors())
