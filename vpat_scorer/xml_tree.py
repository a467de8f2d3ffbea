"""
Order-preserving markup tree.

Parses WordprocessingML (or any well-formed XML) into a list-of-nodes tree and
serializes it back. Untouched nodes keep their original lexical form, so
serialize(parse(x)) == x for every document the parser accepts.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Union

from lxml import etree

from vpat_scorer.errors import MarkupParseError


DOCUMENT_TAG = "#document"

_START_TAG = re.compile(
    r"<([^\s/>!?]+)((?:\s+[^\s=/>]+\s*=\s*(?:\"[^\"]*\"|'[^']*'))*)\s*(/?)>"
)
_END_TAG = re.compile(r"</([^\s>]+)\s*>")
_ATTRIBUTE = re.compile(r"([^\s=/>]+)\s*=\s*(?:\"([^\"]*)\"|'([^']*)')")
_COMMENT = re.compile(r"<!--.*?-->", re.S)
_CDATA = re.compile(r"<!\[CDATA\[(.*?)\]\]>", re.S)
_PROCESSING = re.compile(r"<\?.*?\?>", re.S)
_DOCTYPE = re.compile(r"<!DOCTYPE(?:[^\[>]|\[[^\]]*\])*>", re.S)
_ENTITY = re.compile(r"&(#x[0-9a-fA-F]+|#[0-9]+|lt|gt|amp|quot|apos);")

_NAMED_ENTITIES = {"lt": "<", "gt": ">", "amp": "&", "quot": '"', "apos": "'"}


# ==========================
# Node types
# ==========================

@dataclass(eq=False)
class Text:
    """A run of character data. `raw` is the source form, None once edited."""
    value: str
    raw: Optional[str] = None
    cdata: bool = False

    @classmethod
    def of(cls, value: str) -> "Text":
        return cls(value=value)


@dataclass(eq=False)
class Markup:
    """Comment, processing instruction, declaration or doctype, kept verbatim."""
    raw: str


@dataclass(eq=False)
class Node:
    """An element: tag, attribute map and ordered children."""
    tag: str
    attributes: Dict[str, str] = field(default_factory=dict)
    children: List[Union["Node", Text, Markup]] = field(default_factory=list)
    self_closing: bool = False
    raw_start: Optional[str] = field(default=None, repr=False)
    raw_end: Optional[str] = field(default=None, repr=False)
    source_attributes: Optional[Dict[str, str]] = field(default=None, repr=False)

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.attributes.get(name, default)

    def set(self, name: str, value: str) -> None:
        self.attributes[name] = value


Item = Union[Node, Text, Markup]


def element(tag: str, attributes: Optional[Dict[str, str]] = None, children: Optional[List[Item]] = None) -> Node:
    """Build a new element that serializes canonically."""
    return Node(tag=tag, attributes=dict(attributes or {}), children=list(children or []))


# ==========================
# Parsing
# ==========================

def parse(markup: str) -> Node:
    """
    Parse markup into a document node.

    Raises:
        MarkupParseError: if the markup is not well-formed.
    """
    _check_well_formed(markup)

    document = Node(tag=DOCUMENT_TAG)
    stack: List[Node] = [document]
    pos = 0
    length = len(markup)

    while pos < length:
        lt = markup.find("<", pos)
        if lt == -1:
            lt = length
        if lt > pos:
            raw = markup[pos:lt]
            stack[-1].children.append(Text(value=_decode(raw), raw=raw))
            pos = lt
            continue

        m = _COMMENT.match(markup, pos) or _PROCESSING.match(markup, pos) or _DOCTYPE.match(markup, pos)
        if m:
            stack[-1].children.append(Markup(raw=m.group(0)))
            pos = m.end()
            continue

        m = _CDATA.match(markup, pos)
        if m:
            stack[-1].children.append(Text(value=m.group(1), raw=m.group(0), cdata=True))
            pos = m.end()
            continue

        m = _END_TAG.match(markup, pos)
        if m:
            current = stack[-1]
            if len(stack) == 1 or current.tag != m.group(1):
                raise MarkupParseError(f"unexpected closing tag </{m.group(1)}> at offset {pos}")
            current.raw_end = m.group(0)
            stack.pop()
            pos = m.end()
            continue

        m = _START_TAG.match(markup, pos)
        if not m:
            raise MarkupParseError(f"unreadable tag at offset {pos}")
        attributes = {
            a.group(1): _decode(a.group(2) if a.group(2) is not None else a.group(3))
            for a in _ATTRIBUTE.finditer(m.group(2))
        }
        node = Node(
            tag=m.group(1),
            attributes=attributes,
            self_closing=bool(m.group(3)),
            raw_start=m.group(0),
            source_attributes=dict(attributes),
        )
        stack[-1].children.append(node)
        if not node.self_closing:
            stack.append(node)
        pos = m.end()

    if len(stack) != 1:
        raise MarkupParseError(f"unclosed element <{stack[-1].tag}>")
    return document


def _check_well_formed(markup: str) -> None:
    try:
        etree.fromstring(markup.encode("utf-8"), etree.XMLParser(resolve_entities=False, huge_tree=True))
    except (etree.XMLSyntaxError, ValueError) as e:
        raise MarkupParseError(str(e)) from e


def _decode(raw: str) -> str:
    def repl(m: "re.Match[str]") -> str:
        ref = m.group(1)
        if ref.startswith("#x"):
            return chr(int(ref[2:], 16))
        if ref.startswith("#"):
            return chr(int(ref[1:]))
        return _NAMED_ENTITIES[ref]
    return _ENTITY.sub(repl, raw)


# ==========================
# Serialization
# ==========================

def serialize(node: Item) -> str:
    """Serialize a tree (or any subtree) back to markup."""
    parts: List[str] = []
    _emit(node, parts)
    return "".join(parts)


def _emit(item: Item, out: List[str]) -> None:
    if isinstance(item, Text):
        if item.raw is not None:
            out.append(item.raw)
        elif item.cdata:
            out.append(f"<![CDATA[{item.value}]]>")
        else:
            out.append(_escape_text(item.value))
        return
    if isinstance(item, Markup):
        out.append(item.raw)
        return
    if item.tag == DOCUMENT_TAG:
        for child in item.children:
            _emit(child, out)
        return

    pristine = item.raw_start is not None and item.attributes == item.source_attributes
    if item.self_closing and not item.children:
        out.append(item.raw_start if pristine else _start_tag(item, closed=True))
        return

    out.append(item.raw_start if pristine and not item.self_closing else _start_tag(item, closed=False))
    for child in item.children:
        _emit(child, out)
    out.append(item.raw_end or f"</{item.tag}>")


def _start_tag(node: Node, *, closed: bool) -> str:
    attrs = "".join(f' {k}="{_escape_attribute(v)}"' for k, v in node.attributes.items())
    return f"<{node.tag}{attrs}{'/' if closed else ''}>"


def _escape_text(value: str) -> str:
    return value.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def _escape_attribute(value: str) -> str:
    return _escape_text(value).replace('"', "&quot;")


# ==========================
# Traversal
# ==========================

def iter_elements(node: Node) -> Iterator[Node]:
    """Yield every descendant element in document order (pre-order)."""
    for child in node.children:
        if isinstance(child, Node):
            yield child
            yield from iter_elements(child)


def find_all(node: Node, tag: str) -> List[Node]:
    """All descendant elements named `tag`, including matches nested in matches."""
    return [n for n in iter_elements(node) if n.tag == tag]


def find_first(node: Node, tag: str) -> Optional[Node]:
    for n in iter_elements(node):
        if n.tag == tag:
            return n
    return None


def children(node: Node, tag: Optional[str] = None) -> List[Node]:
    """Direct child elements, optionally filtered by tag."""
    return [c for c in node.children if isinstance(c, Node) and (tag is None or c.tag == tag)]


def text_of(item: Item) -> str:
    """Concatenated character data below `item`; attributes never contribute."""
    if isinstance(item, Text):
        return item.value
    if isinstance(item, Markup):
        return ""
    return "".join(text_of(c) for c in item.children)


def run_text(node: Node) -> str:
    """Visible text of a paragraph, cell or run: the content of its w:t elements."""
    return "".join(text_of(t) for t in find_all(node, "w:t"))


def grid_span(tc: Node) -> int:
    """Number of grid columns a table cell spans."""
    tc_pr = children(tc, "w:tcPr")
    if not tc_pr:
        return 1
    span = children(tc_pr[0], "w:gridSpan")
    if not span:
        return 1
    try:
        return int(span[0].get("w:val", "1"))
    except ValueError:
        return 1
