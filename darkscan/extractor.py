"""
Candidate extraction: the lexical pre-filter.

Walks the document's visible text, drops benign boilerplate, and pairs
each surviving text span with every category whose broad matcher fires
on it. One Candidate per (span, category) pair, in document order.

Visibility is re-evaluated on every call. Layout can change between
scans, so nothing here is cached.
"""

from __future__ import annotations

import re
from typing import Optional

from darkscan.categories import CategoryBank
from darkscan.document import Document, Element, TextNode
from darkscan.highlight import HIGHLIGHT_CLASS
from darkscan.logging import get_logger
from darkscan.models import Candidate

logger = get_logger("extractor")

# Containers whose text is never rendered
SKIP_TAGS = frozenset({
    "script", "style", "noscript", "template", "head", "iframe", "svg", "img", "object",
})

MIN_TEXT_LENGTH = 3

# Benign boilerplate (legalese, footers). A hit excludes the whole span.
IGNORED_PATTERNS: tuple[re.Pattern, ...] = tuple(
    re.compile(p, re.IGNORECASE) for p in (
        r"all rights reserved",
        r"privacy policy",
        r"terms (of|and) (use|service|conditions)",
        r"copyright",
        r"trademarks?",
        r"\d+-star prices",
        r"responsible for content",
        r"mobile app",
    )
)

_WS_RE = re.compile(r"\s+")


def collapse_whitespace(text: str) -> str:
    return _WS_RE.sub(" ", text).strip()


def _opacity(el: Element) -> float:
    raw = el.style.get("opacity")
    if raw is None:
        return 1.0
    try:
        return float(raw)
    except ValueError:
        return 1.0


def is_visible(element: Optional[Element], min_pixels: int = 5) -> bool:
    """
    True when the element would be rendered and is big enough to read.

    Excludes non-rendered containers, ``display: none`` or ``hidden``
    anywhere up the chain, inherited ``visibility: hidden``, zero
    effective opacity, and anything smaller than ``min_pixels`` in
    either dimension (tracking pixels). Unmeasured sizes pass.
    """
    if element is None:
        return False

    chain = [element, *element.ancestors()]
    effective_opacity = 1.0
    visibility = None
    for el in chain:
        if el.tag in SKIP_TAGS or "hidden" in el.attrs:
            return False
        if el.style.get("display") == "none":
            return False
        if visibility is None and "visibility" in el.style:
            visibility = el.style["visibility"]
        effective_opacity *= _opacity(el)

    if visibility in ("hidden", "collapse"):
        return False
    if effective_opacity <= 0:
        return False

    for dim in (element.width, element.height):
        if dim is not None and dim < min_pixels:
            return False
    return True


def is_ignored(text: str, patterns: tuple[re.Pattern, ...] = IGNORED_PATTERNS) -> bool:
    return any(p.search(text) for p in patterns)


def capture_context(node: TextNode, window: int = 300) -> str:
    """
    Surrounding text from the nearest containing element, whitespace
    collapsed, at most ``window`` characters and centred on the span.
    """
    span = collapse_whitespace(node.value)
    container = node.parent
    if container is None:
        return span[:window]

    context = collapse_whitespace(container.text_content())
    if len(context) <= window:
        return context

    idx = context.find(span)
    if idx == -1:
        return context[:window]
    centre = idx + len(span) // 2
    start = max(0, min(centre - window // 2, len(context) - window))
    return context[start:start + window]


class CandidateExtractor:
    """Produces the deduplicated candidate list for one scan pass."""

    def __init__(
        self,
        bank: CategoryBank,
        context_window: int = 300,
        min_pixels: int = 5,
        ignore_patterns: tuple[re.Pattern, ...] = IGNORED_PATTERNS,
    ):
        self.bank = bank
        self.context_window = context_window
        self.min_pixels = min_pixels
        self.ignore_patterns = ignore_patterns

    def extract(self, document: Document) -> list[Candidate]:
        candidates: list[Candidate] = []
        seen: set[tuple[int, str]] = set()

        for node in self._walk(document.body):
            content = node.value
            if not content or len(content.strip()) < MIN_TEXT_LENGTH:
                continue
            if not is_visible(node.parent, self.min_pixels):
                continue
            if is_ignored(content, self.ignore_patterns):
                continue

            context = None
            for category in self.bank:
                if not category.broad.matches(content):
                    continue
                key = (id(node), category.name)
                if key in seen:
                    continue
                seen.add(key)
                if context is None:
                    context = capture_context(node, self.context_window)
                candidates.append(Candidate(
                    source_ref=node,
                    text=content,
                    context=context,
                    category=category,
                ))

        logger.debug("Extracted %d candidates", len(candidates), extra={"candidates": len(candidates)})
        return candidates

    @staticmethod
    def _walk(root: Element):
        """Pre-order text nodes, skipping non-rendered containers and prior marks."""
        stack: list = [root]
        while stack:
            node = stack.pop()
            if isinstance(node, TextNode):
                yield node
                continue
            if node.tag in SKIP_TAGS or node.has_class(HIGHLIGHT_CLASS):
                continue
            stack.extend(reversed(node.children))
