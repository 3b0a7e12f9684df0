"""
Document Model — a minimal DOM stand-in.

The engine never talks to a browser. It walks this tree: elements with
inline style and an optional measured size, and text nodes. Structural
changes are reported to observers as Mutation records, which is what
the change monitor listens to.

parse_html() builds a Document from markup using the stdlib parser,
reading inline style (display / visibility / opacity / width / height)
and the ``hidden`` attribute.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from html.parser import HTMLParser
from typing import Callable, Iterator, Optional, Union


VOID_TAGS = frozenset({
    "area", "base", "br", "col", "embed", "hr", "img", "input",
    "link", "meta", "param", "source", "track", "wbr",
})

_PX_RE = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*(?:px)?\s*$")


def _parse_style(raw: str) -> dict[str, str]:
    style: dict[str, str] = {}
    for decl in raw.split(";"):
        prop, sep, value = decl.partition(":")
        if sep:
            style[prop.strip().lower()] = value.strip().lower()
    return style


def _parse_px(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    m = _PX_RE.match(value)
    return float(m.group(1)) if m else None


# ============================================================
# NODES
# ============================================================

class Node:
    """Base for elements and text nodes."""

    def __init__(self):
        self.parent: Optional[Element] = None

    @property
    def document(self) -> Optional["Document"]:
        node: Optional[Node] = self
        while node is not None:
            doc = getattr(node, "_owner", None)
            if doc is not None:
                return doc
            node = node.parent
        return None

    @property
    def attached(self) -> bool:
        return self.document is not None

    def ancestors(self) -> Iterator["Element"]:
        node = self.parent
        while node is not None:
            yield node
            node = node.parent


class TextNode(Node):
    """A run of character data."""

    def __init__(self, value: str = ""):
        super().__init__()
        self._value = value

    @property
    def value(self) -> str:
        return self._value

    def set_value(self, value: str) -> None:
        self._value = value
        doc = self.document
        if doc is not None:
            doc.notify(Mutation(kind="characterData", target=self))

    def __repr__(self) -> str:
        return f"TextNode({self._value[:30]!r})"


class Element(Node):
    """An element with attributes, classes, inline style and children."""

    def __init__(
        self,
        tag: str,
        attrs: Optional[dict[str, str]] = None,
        style: Optional[dict[str, str]] = None,
        width: Optional[float] = None,
        height: Optional[float] = None,
        children: Optional[list[Union["Element", TextNode, str]]] = None,
    ):
        super().__init__()
        self.tag = tag.lower()
        self.attrs: dict[str, str] = dict(attrs or {})
        self.classes: set[str] = set(self.attrs.pop("class", "").split())
        self.style: dict[str, str] = _parse_style(self.attrs.pop("style", ""))
        self.style.update(style or {})
        self.width = width if width is not None else _parse_px(self.style.get("width") or self.attrs.get("width"))
        self.height = height if height is not None else _parse_px(self.style.get("height") or self.attrs.get("height"))
        self.children: list[Union[Element, TextNode]] = []
        self._owner: Optional[Document] = None
        for child in children or []:
            self._adopt(TextNode(child) if isinstance(child, str) else child)

    def _adopt(self, child: Union["Element", TextNode]) -> None:
        if child.parent is not None:
            child.parent._detach(child)
        child.parent = self
        self.children.append(child)

    def _detach(self, child: Union["Element", TextNode]) -> None:
        self.children.remove(child)
        child.parent = None

    def _notify(self, added=(), removed=()) -> None:
        doc = self.document
        if doc is not None:
            doc.notify(Mutation(kind="childList", target=self, added=tuple(added), removed=tuple(removed)))

    # --- Mutating API (reported to observers) ---

    def append(self, child: Union["Element", TextNode, str]) -> Union["Element", TextNode]:
        node = TextNode(child) if isinstance(child, str) else child
        self._adopt(node)
        self._notify(added=[node])
        return node

    def remove(self, child: Union["Element", TextNode]) -> None:
        self._detach(child)
        self._notify(removed=[child])

    def replace_child(self, new: Union["Element", TextNode], old: Union["Element", TextNode]) -> None:
        idx = self.children.index(old)
        if new.parent is not None:
            new.parent._detach(new)
        old.parent = None
        new.parent = self
        self.children[idx] = new
        self._notify(added=[new], removed=[old])

    # --- Queries ---

    def has_class(self, name: str) -> bool:
        return name in self.classes

    def iter(self) -> Iterator[Union["Element", TextNode]]:
        """Depth-first pre-order over this subtree (self excluded)."""
        for child in self.children:
            yield child
            if isinstance(child, Element):
                yield from child.iter()

    def find_all(self, predicate: Callable[["Element"], bool]) -> list["Element"]:
        return [n for n in self.iter() if isinstance(n, Element) and predicate(n)]

    def text_content(self) -> str:
        parts = []
        for node in self.iter():
            if isinstance(node, TextNode):
                parts.append(node.value)
        return "".join(parts)

    def __repr__(self) -> str:
        return f"<{self.tag} children={len(self.children)}>"


# ============================================================
# DOCUMENT
# ============================================================

@dataclass
class Mutation:
    """One structural or character-data change."""
    kind: str                    # "childList" | "characterData"
    target: Node
    added: tuple = ()
    removed: tuple = ()


MutationObserver = Callable[[Mutation], None]


@dataclass
class Document:
    """Root container. Observers receive every mutation under ``body``."""
    body: Element = field(default_factory=lambda: Element("body"))
    observers: list[MutationObserver] = field(default_factory=list)

    def __post_init__(self):
        self.body._owner = self

    def observe(self, fn: MutationObserver) -> Callable[[], None]:
        self.observers.append(fn)

        def disconnect() -> None:
            if fn in self.observers:
                self.observers.remove(fn)
        return disconnect

    def notify(self, mutation: Mutation) -> None:
        for fn in list(self.observers):
            fn(mutation)

    def text_nodes(self) -> list[TextNode]:
        return [n for n in self.body.iter() if isinstance(n, TextNode)]


# ============================================================
# HTML LOADING
# ============================================================

class _TreeBuilder(HTMLParser):
    def __init__(self, root: Element):
        super().__init__(convert_charrefs=True)
        self.stack: list[Element] = [root]

    def handle_starttag(self, tag, attrs):
        tag = tag.lower()
        if tag in ("html", "body"):
            return
        el = Element(tag, attrs={k: (v or "") for k, v in attrs})
        self.stack[-1]._adopt(el)
        if tag not in VOID_TAGS:
            self.stack.append(el)

    def handle_startendtag(self, tag, attrs):
        tag = tag.lower()
        if tag in ("html", "body"):
            return
        self.stack[-1]._adopt(Element(tag, attrs={k: (v or "") for k, v in attrs}))

    def handle_endtag(self, tag):
        tag = tag.lower()
        # Close back to the nearest matching open element; stray end tags are ignored
        for i in range(len(self.stack) - 1, 0, -1):
            if self.stack[i].tag == tag:
                del self.stack[i:]
                return

    def handle_data(self, data):
        if data:
            self.stack[-1]._adopt(TextNode(data))


def parse_fragment(markup: str) -> list[Union[Element, TextNode]]:
    """Parse markup into detached top-level nodes."""
    holder = Element("div")
    builder = _TreeBuilder(holder)
    builder.feed(markup)
    builder.close()
    nodes = list(holder.children)
    for n in nodes:
        n.parent = None
    holder.children.clear()
    return nodes


def parse_html(markup: str) -> Document:
    """Build a Document from an HTML string."""
    doc = Document()
    builder = _TreeBuilder(doc.body)
    builder.feed(markup)
    builder.close()
    return doc
