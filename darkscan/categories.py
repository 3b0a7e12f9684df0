"""
Category Bank — Data-Driven Pattern Categories

Categories are read from a human-editable text file:

    # comment
    [Urgency]
    message: Creates false urgency to rush your decision.
    broad: hurry, rush, act now, limited time
    strict: hurry, act now

Each section compiles its fragments into two matchers. The broad matcher
selects candidates for semantic verification; the strict matcher is the
high-precision fallback used when verification is unavailable.
Unprefixed lines are broad fragments. With no ``strict:`` lines the
strict matcher is the broad matcher.

Fragments are trusted regex: they are joined, not escaped. Commas inside
(), [] or {} belong to the fragment, so quantifiers like ``.{0,10}`` work.

Matchers are stateless. ``Matcher.matches`` is a pure function of
(pattern, text); there is no cursor to reset between calls.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Optional

from darkscan.errors import ConfigLoadError
from darkscan.logging import get_logger

logger = get_logger("categories")

_SECTION_RE = re.compile(r"^\[(?P<name>[^\]]+)\]$")
_PREFIXES = ("broad", "strict", "message")
_REGEX_META = re.compile(r"[\\.^$*+?{}\[\]|()]")


# ============================================================
# MATCHERS
# ============================================================

@dataclass(frozen=True)
class Matcher:
    """Compiled alternation of fragments, matched on word boundaries."""
    fragments: tuple[str, ...]
    pattern: Optional[re.Pattern] = None

    def matches(self, text: str) -> bool:
        if self.pattern is None or not text:
            return False
        return self.pattern.search(text) is not None

    def find(self, text: str) -> Optional[str]:
        """Return the first matched substring, or None."""
        if self.pattern is None or not text:
            return None
        m = self.pattern.search(text)
        return m.group(0) if m else None

    @property
    def never_fires(self) -> bool:
        return self.pattern is None


def compile_matcher(fragments: list[str] | tuple[str, ...], label: str = "") -> Matcher:
    """
    Compile fragments into a case-insensitive word-bounded matcher.

    A fragment that is not valid regex is dropped with a warning. No
    usable fragments yields a matcher that never fires.
    """
    usable: list[str] = []
    for frag in fragments:
        frag = frag.strip()
        if not frag:
            continue
        try:
            re.compile(frag)
        except re.error as e:
            logger.warning(
                "Dropping malformed fragment %r in %s: %s", frag, label or "category", e,
                extra={"category": label, "error": str(e)},
            )
            continue
        usable.append(frag)

    if not usable:
        return Matcher(fragments=tuple(), pattern=None)

    pattern = re.compile(r"\b(?:" + "|".join(usable) + r")\b", re.IGNORECASE)
    return Matcher(fragments=tuple(usable), pattern=pattern)


def split_fragments(line: str) -> list[str]:
    """Split a comma-separated fragment line, respecting regex grouping and escapes."""
    parts: list[str] = []
    buf: list[str] = []
    depth = 0
    escaped = False
    for ch in line:
        if escaped:
            buf.append(ch)
            escaped = False
            continue
        if ch == "\\":
            buf.append(ch)
            escaped = True
            continue
        if ch in "([{":
            depth += 1
        elif ch in ")]}" and depth > 0:
            depth -= 1
        if ch == "," and depth == 0:
            parts.append("".join(buf).strip())
            buf = []
            continue
        buf.append(ch)
    parts.append("".join(buf).strip())
    return [p for p in parts if p]


# ============================================================
# CATEGORIES
# ============================================================

@dataclass(frozen=True)
class PatternCategory:
    """One dark pattern category. Broad fires on a superset of strict."""
    name: str
    broad: Matcher
    strict: Matcher
    message: str = ""

    @property
    def has_strict_split(self) -> bool:
        return self.strict is not self.broad


@dataclass
class CategoryBank:
    """Ordered collection of categories. Empty means scans abort."""
    categories: list[PatternCategory] = field(default_factory=list)
    source: str = ""

    def __iter__(self) -> Iterator[PatternCategory]:
        return iter(self.categories)

    def __len__(self) -> int:
        return len(self.categories)

    @property
    def is_empty(self) -> bool:
        return not self.categories

    def get(self, name: str) -> Optional[PatternCategory]:
        for c in self.categories:
            if c.name == name:
                return c
        return None

    def names(self) -> list[str]:
        return [c.name for c in self.categories]

    def describe(self) -> list[dict]:
        """Used by the GET /categories endpoint to expose the detection surface."""
        return [
            {
                "name": c.name,
                "message": c.message,
                "broad_fragments": len(c.broad.fragments),
                "strict_fragments": len(c.strict.fragments),
                "strict_split": c.has_strict_split,
            }
            for c in self.categories
        ]


def parse_category_config(text: str, source: str = "<string>") -> CategoryBank:
    """Parse the sectioned config format into a CategoryBank."""
    sections: list[dict] = []
    current: Optional[dict] = None

    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue

        header = _SECTION_RE.match(line)
        if header:
            current = {"name": header.group("name").strip(), "broad": [], "strict": [], "message": ""}
            sections.append(current)
            continue

        if current is None:
            logger.warning("Ignoring line %d outside any section in %s", lineno, source)
            continue

        kind, body = "broad", line
        prefix, sep, rest = line.partition(":")
        if sep and prefix.strip().lower() in _PREFIXES:
            kind, body = prefix.strip().lower(), rest.strip()

        if kind == "message":
            current["message"] = body
        else:
            current[kind].extend(split_fragments(body))

    categories = []
    for sec in sections:
        if not sec["broad"]:
            logger.warning(
                "Category %s has no broad fragments; it will never match", sec["name"],
                extra={"category": sec["name"]},
            )
        broad = compile_matcher(sec["broad"], sec["name"])
        strict = compile_matcher(sec["strict"], sec["name"]) if sec["strict"] else broad
        if strict is not broad:
            _warn_uncovered(sec["name"], broad, strict)
        categories.append(PatternCategory(
            name=sec["name"], broad=broad, strict=strict, message=sec["message"],
        ))

    return CategoryBank(categories=categories, source=source)


def _warn_uncovered(name: str, broad: Matcher, strict: Matcher) -> None:
    """Broad must fire on everything strict does; a literal strict fragment it misses is dead."""
    for frag in strict.fragments:
        if not _REGEX_META.search(frag) and not broad.matches(frag):
            logger.warning(
                "Strict fragment %r in %s is not matched by its broad fragments; it can never fire",
                frag, name, extra={"category": name},
            )


def read_category_config(path: str | Path) -> CategoryBank:
    """Read and parse a config file. Raises ConfigLoadError on i/o failure."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigLoadError(f"Cannot read category config {path}: {e}") from e
    return parse_category_config(text, source=str(path))


def load_category_bank(path: str | Path) -> CategoryBank:
    """
    Load the category bank, never raising.

    On failure the bank is empty and every scan aborts with zero results.
    """
    try:
        bank = read_category_config(path)
    except ConfigLoadError as e:
        logger.warning(
            "Category config failed to load; scans will abort",
            extra={"error": str(e), "path": str(path)},
        )
        return CategoryBank(source=str(path))

    if bank.is_empty:
        logger.warning("Category config %s defines no categories", path, extra={"path": str(path)})
    else:
        logger.info("Loaded %d categories from %s", len(bank), path)
    return bank
