"""
Candidate Extractor Tests

Covers visibility filtering, the ignore list, per-category candidate
emission, context capture, and skipping of existing highlight marks.
"""

from __future__ import annotations

from darkscan.document import Element, TextNode, parse_html
from darkscan.extractor import (
    CandidateExtractor,
    capture_context,
    collapse_whitespace,
    is_ignored,
    is_visible,
)
from darkscan.highlight import HIGHLIGHT_CLASS


def _extract(bank, markup: str, **kwargs):
    return CandidateExtractor(bank, **kwargs).extract(parse_html(markup))


# ============================================================
# VISIBILITY
# ============================================================

class TestVisibility:

    def test_plain_element_visible(self):
        assert is_visible(Element("p"))

    def test_none_is_not_visible(self):
        assert not is_visible(None)

    def test_display_none_on_ancestor(self, bank):
        assert _extract(bank, '<div style="display: none"><p>Hurry, act now!</p></div>') == []

    def test_hidden_attribute(self, bank):
        assert _extract(bank, "<p hidden>Hurry, act now!</p>") == []

    def test_visibility_inherited(self, bank):
        assert _extract(bank, '<div style="visibility:hidden"><p>Hurry, act now!</p></div>') == []

    def test_visibility_overridden_by_child(self, bank):
        markup = '<div style="visibility:hidden"><p style="visibility:visible">Hurry, act now!</p></div>'
        assert len(_extract(bank, markup)) == 1

    def test_zero_opacity_chain(self, bank):
        assert _extract(bank, '<div style="opacity: 0"><span>Hurry, act now!</span></div>') == []

    def test_tiny_element_excluded(self, bank):
        markup = '<div style="width: 1px; height: 1px">Hurry, act now!</div>'
        assert _extract(bank, markup) == []

    def test_min_pixels_configurable(self, bank):
        markup = '<div style="width: 3px; height: 3px">Hurry, act now!</div>'
        assert len(_extract(bank, markup, min_pixels=2)) == 1

    def test_script_and_style_skipped(self, bank):
        markup = "<script>var s = 'hurry';</script><style>.hurry{}</style><noscript>Hurry!</noscript>"
        assert _extract(bank, markup) == []


# ============================================================
# IGNORE LIST
# ============================================================

class TestIgnoreList:

    def test_legal_boilerplate_excluded(self, bank):
        # Scenario: keyword overlap ("act now") does not matter once ignored
        markup = "<footer>All rights reserved. Terms of Service apply. Act now!</footer>"
        assert _extract(bank, markup) == []

    def test_is_ignored(self):
        assert is_ignored("Read our Privacy Policy")
        assert is_ignored("Copyright 2024")
        assert is_ignored("Get the mobile app")
        assert not is_ignored("Hurry, act now")


# ============================================================
# CANDIDATES
# ============================================================

class TestCandidates:

    def test_one_candidate_per_category(self, bank):
        candidates = _extract(bank, "<p>Hurry! Only 2 left and almost gone.</p>")
        assert [c.category.name for c in candidates] == ["Urgency", "Scarcity"]
        assert candidates[0].source_ref is candidates[1].source_ref

    def test_multiple_fragments_same_category_once(self, bank):
        candidates = _extract(bank, "<p>Hurry, act now, limited time!</p>")
        assert len(candidates) == 1

    def test_document_order(self, bank):
        candidates = _extract(bank, "<p>Low stock</p><div><span>Act now</span></div><p>Few left</p>")
        assert [c.text for c in candidates] == ["Low stock", "Act now", "Few left"]

    def test_short_text_skipped(self):
        from darkscan.categories import parse_category_config
        short = parse_category_config("[Go]\nbroad: go\n")
        assert _extract(short, "<p>go</p>") == []
        assert len(_extract(short, "<p>go on</p>")) == 1

    def test_no_match_no_candidate(self, bank):
        assert _extract(bank, "<p>Welcome to our store.</p>") == []

    def test_existing_marks_skipped(self, bank):
        markup = f'<p><span class="{HIGHLIGHT_CLASS}">Hurry, act now!</span></p>'
        assert _extract(bank, markup) == []

    def test_visibility_reevaluated_each_call(self, bank):
        doc = parse_html("<p>Hurry, act now!</p>")
        extractor = CandidateExtractor(bank)
        assert len(extractor.extract(doc)) == 1
        doc.body.children[0].style["display"] = "none"
        assert extractor.extract(doc) == []

    def test_empty_bank(self):
        from darkscan.categories import CategoryBank
        assert _extract(CategoryBank(), "<p>Hurry, act now!</p>") == []


# ============================================================
# CONTEXT
# ============================================================

class TestContext:

    def test_context_is_parent_text_collapsed(self, bank):
        candidates = _extract(bank, "<p>Great   deals.\n Hurry, <b>today</b> only.</p>")
        assert candidates[0].context == "Great deals. Hurry, today only."

    def test_context_window_centred_on_span(self):
        filler = "lorem ipsum " * 100
        p = Element("p", children=[filler, "HURRY NOW", filler])
        node = p.children[1]
        context = capture_context(node, window=100)
        assert len(context) == 100
        assert "HURRY NOW" in context

    def test_detached_node_context(self):
        node = TextNode("  Hurry   now ")
        assert capture_context(node) == "Hurry now"

    def test_collapse_whitespace(self):
        assert collapse_whitespace("  a \n\t b  ") == "a b"
