"""
LabelParser - parses HTML-formatted key labels into a label AST.

Supports: <b>, <strong>, <i>, <em>, <a>, <img>, <svg>, <br>, <ul>, <ol>, <li>.
Every other element is transparent: its attributes are dropped and its
children are parsed with the inherited style.

The scanner recognizes exactly this vocabulary; it is not a general HTML
parser. Malformed markup degrades to plain text instead of raising:

- a "<" that does not open a well-formed tag is literal text
- stray closing tags are ignored, unclosed elements close at end of input
- an <svg> block without a matching </svg> turns the rest of the input into text

Results are memoized through a ParseCache keyed by the raw label string.
"""

import html
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

from keylegend.text import svg_processor
from keylegend.text.label_ast import (
    EMPTY_STYLE,
    ImageNode,
    LabelNode,
    LinkNode,
    ListItemNode,
    ListNode,
    SVGNode,
    TextNode,
    TextStyle,
    is_media_node,
)

TAG_PATTERN = re.compile(
    r"""<(/?)([A-Za-z][A-Za-z0-9:-]*)"""
    r"""((?:\s+[^\s/>"'=]+(?:\s*=\s*(?:"[^"]*"|'[^']*'|[^\s"'>]+))?)*)"""
    r"""\s*(/?)>"""
)
ATTR_PATTERN = re.compile(r"""([^\s/>"'=]+)(?:\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s"'>]+)))?""")
COMMENT_PATTERN = re.compile(r"<!--.*?-->", re.DOTALL)
SVG_BOUNDARY_PATTERN = re.compile(r"<svg\b[^>]*?(/?)>|</svg\s*>", re.IGNORECASE)
FORMATTING_TAG_PATTERN = re.compile(r"<\s*/?\s*(?:b|i|strong|em)(?:\s[^>]*)?>", re.IGNORECASE)
LEADING_INT_PATTERN = re.compile(r"\s*([+-]?\d+)")

VOID_ELEMENTS = frozenset(
    {"br", "img", "hr", "wbr", "input", "meta", "link", "source", "area", "col", "embed", "param", "track"}
)
BOLD_TAGS = frozenset({"b", "strong"})
ITALIC_TAGS = frozenset({"i", "em"})
LIST_TAGS = frozenset({"ul", "ol"})


@dataclass
class _Token:
    kind: str  # "text", "open", "close", "svg"
    value: str
    attrs: dict = field(default_factory=dict)
    self_closing: bool = False


@dataclass
class _Element:
    tag: str
    attrs: dict = field(default_factory=dict)
    children: List[Union[str, "_Element"]] = field(default_factory=list)
    raw: Optional[str] = None  # outer markup for <svg> blocks


def _parse_attributes(attr_text: str) -> dict:
    attrs = {}
    for match in ATTR_PATTERN.finditer(attr_text):
        name = match.group(1).lower()
        if name in attrs:
            continue  # first occurrence wins
        value = next((g for g in match.group(2, 3, 4) if g is not None), "")
        attrs[name] = html.unescape(value)
    return attrs


def _find_svg_end(text: str, start: int) -> int:
    """
    Index just past the </svg> matching the <svg> opened at ``start``,
    or -1 when the block is never closed.
    """
    depth = 0
    for match in SVG_BOUNDARY_PATTERN.finditer(text, start):
        if match.group(0).startswith("</"):
            depth -= 1
        elif not match.group(1):
            depth += 1
        elif depth == 0:
            return match.end()  # self-closing root <svg ... />
        if depth == 0:
            return match.end()
    return -1


def tokenize(text: str) -> List[_Token]:
    """Splits label markup into text, tag and raw <svg> block tokens."""
    tokens: List[_Token] = []
    buffer: List[str] = []
    pos = 0
    length = len(text)

    def flush_text():
        if buffer:
            tokens.append(_Token("text", "".join(buffer)))
            buffer.clear()

    while pos < length:
        lt = text.find("<", pos)
        if lt == -1:
            buffer.append(text[pos:])
            break
        if lt > pos:
            buffer.append(text[pos:lt])

        comment = COMMENT_PATTERN.match(text, lt)
        if comment:
            pos = comment.end()
            continue

        match = TAG_PATTERN.match(text, lt)
        if not match:
            buffer.append("<")
            pos = lt + 1
            continue

        is_close, name, attr_text, self_closing = match.groups()
        tag = name.lower()

        if tag == "svg" and not is_close:
            end = _find_svg_end(text, lt)
            if end == -1:
                # Unclosed graphic: the remainder is treated as plain text
                buffer.append(text[lt:])
                break
            flush_text()
            tokens.append(_Token("svg", text[lt:end]))
            pos = end
            continue

        flush_text()
        tokens.append(
            _Token(
                "close" if is_close else "open",
                tag,
                {} if is_close else _parse_attributes(attr_text),
                bool(self_closing),
            )
        )
        pos = match.end()

    flush_text()
    return tokens


def _build_tree(tokens: List[_Token]) -> _Element:
    root = _Element("#root")
    stack: List[_Element] = [root]

    for token in tokens:
        current = stack[-1]
        if token.kind == "text":
            current.children.append(html.unescape(token.value))
        elif token.kind == "svg":
            current.children.append(_Element("svg", raw=token.value))
        elif token.kind == "open":
            element = _Element(token.value, token.attrs)
            if token.value == "li":
                # An open <li> in the same list is implicitly closed by a new one
                for depth in range(len(stack) - 1, 0, -1):
                    tag = stack[depth].tag
                    if tag in LIST_TAGS:
                        break
                    if tag == "li":
                        del stack[depth:]
                        break
                current = stack[-1]
            current.children.append(element)
            if token.value not in VOID_ELEMENTS and not token.self_closing:
                stack.append(element)
        elif token.value == "br":
            # </br> behaves like <br>
            current.children.append(_Element("br"))
        else:
            for depth in range(len(stack) - 1, 0, -1):
                if stack[depth].tag == token.value:
                    del stack[depth:]
                    break

    return root


def _text_content(element: _Element) -> str:
    parts = []
    for child in element.children:
        if isinstance(child, str):
            parts.append(child)
        elif child.raw is None:
            parts.append(_text_content(child))
    return "".join(parts)


def _parse_int(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    match = LEADING_INT_PATTERN.match(value)
    return int(match.group(1)) if match else None


class LabelParser:
    """
    Parses label markup into AST nodes.

    Args:
        parse_cache: Cache used to memoize parse results. A private cache is
            created when omitted.
    """

    def __init__(self, parse_cache=None):
        if parse_cache is None:
            from keylegend.caching import ParseCache

            parse_cache = ParseCache()
        self.parse_cache = parse_cache

    def parse(self, text: str) -> List[LabelNode]:
        """
        Parse label text and return AST nodes.

        <br> tags become "\\n" characters inside text nodes. Results are cached
        by the exact input string; the returned list is a fresh copy of the
        cached (immutable) nodes.
        """
        return list(self.parse_cache.get_parsed(text, self._do_parse))

    def _do_parse(self, text: str) -> Tuple[LabelNode, ...]:
        if not text:
            return (TextNode("", EMPTY_STYLE),)

        tokens = tokenize(text)
        nodes = self._convert(_build_tree(tokens).children, EMPTY_STYLE)

        if not nodes:
            # Markup that resolved to nothing (e.g. <i class="fa fa-icon"></i>)
            # hides the label; plain text falls back to itself
            if _has_elements(tokens):
                return ()
            return (TextNode(text, EMPTY_STYLE),)

        return tuple(nodes)

    def _convert(self, children, style: TextStyle) -> List[LabelNode]:
        nodes: List[LabelNode] = []
        for child in children:
            if isinstance(child, str):
                if child:
                    nodes.append(TextNode(child, style))
            else:
                nodes.extend(self._convert_element(child, style))
        return nodes

    def _convert_element(self, element: _Element, style: TextStyle) -> List[LabelNode]:
        tag = element.tag

        if tag == "br":
            return [TextNode("\n", style)]

        if tag in BOLD_TAGS:
            return self._convert(element.children, style.merge(bold=True))

        if tag in ITALIC_TAGS:
            return self._convert(element.children, style.merge(italic=True))

        if tag == "a":
            text = _text_content(element)
            # Skip empty links (nothing to click on)
            if not text:
                return []
            return [LinkNode(element.attrs.get("href", ""), text, style)]

        if tag == "img":
            return [
                ImageNode(
                    element.attrs.get("src", ""),
                    _parse_int(element.attrs.get("width")),
                    _parse_int(element.attrs.get("height")),
                )
            ]

        if tag == "svg":
            width, height = svg_processor.get_dimensions(element.raw)
            return [SVGNode(element.raw, width, height)]

        if tag in LIST_TAGS:
            return self._convert_list(element, style)

        # div, span, li outside a list, unknown tags: transparent
        return self._convert(element.children, style)

    def _convert_list(self, element: _Element, style: TextStyle) -> List[LabelNode]:
        items = []
        for child in element.children:
            if isinstance(child, str) or child.tag != "li":
                continue
            # Images and graphics are not supported inside list items
            children = tuple(n for n in self._convert(child.children, style) if not is_media_node(n))
            if children:
                items.append(ListItemNode(children))

        if not items:
            return []
        return [ListNode(element.tag == "ol", tuple(items))]

    def has_formatting(self, text: str) -> bool:
        """True if the text contains any element (not just character data)."""
        if not text:
            return False
        return _has_elements(tokenize(text))

    def strip_formatting_tags(self, text: str) -> str:
        """Removes bold/italic tags only; image, link and SVG markup is kept as-is."""
        return FORMATTING_TAG_PATTERN.sub("", text)

    def get_plain_text(self, nodes: List[LabelNode]) -> str:
        """
        Extract plain text from parsed nodes.

        Text and link text are concatenated with newlines preserved; each list
        item contributes its text followed by a newline; images and graphics
        contribute nothing.
        """
        parts = []
        for node in nodes:
            if node.type in ("text", "link"):
                parts.append(node.text)
            elif node.type == "list":
                for item in node.items:
                    parts.append(self.get_plain_text(list(item.children)))
                    parts.append("\n")
        return "".join(parts)

    def is_media_only(self, text: str) -> bool:
        """True if the label is exactly one <img> tag or one <svg> block."""
        if not text:
            return False
        tokens = [t for t in tokenize(text) if not (t.kind == "text" and not t.value.strip())]
        if len(tokens) != 1:
            return False
        token = tokens[0]
        return token.kind == "svg" or (token.kind == "open" and token.value == "img")


def _has_elements(tokens: List[_Token]) -> bool:
    return any(token.kind in ("open", "svg") for token in tokens)


_default_parser: Optional[LabelParser] = None


def parse_label(text: str) -> List[LabelNode]:
    """Parse with a shared default parser (for scripts; renderers own their own)."""
    global _default_parser
    if _default_parser is None:
        _default_parser = LabelParser()
    return _default_parser.parse(text)
