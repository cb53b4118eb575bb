"""
Label AST - node types produced by the label parser.

Nodes are frozen: parsed trees are shared through the parse cache, so they
must never be mutated after creation. Splitting a node (word wrap, hard line
breaks) creates a new node via ``dataclasses.replace``.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple, Union


@dataclass(frozen=True)
class TextStyle:
    bold: bool = False
    italic: bool = False

    def merge(self, bold: Optional[bool] = None, italic: Optional[bool] = None) -> "TextStyle":
        """Return a new style with the given flags overriding this one."""
        return TextStyle(
            bold=self.bold if bold is None else bold,
            italic=self.italic if italic is None else italic,
        )

    @property
    def name(self) -> str:
        """Font variant name: regular, bold, italic or bold_italic."""
        if self.bold and self.italic:
            return "bold_italic"
        if self.bold:
            return "bold"
        if self.italic:
            return "italic"
        return "regular"


EMPTY_STYLE = TextStyle()


@dataclass(frozen=True)
class TextNode:
    text: str
    style: TextStyle = EMPTY_STYLE
    type: str = field(default="text", init=False)


@dataclass(frozen=True)
class LinkNode:
    href: str
    text: str
    style: TextStyle = EMPTY_STYLE
    type: str = field(default="link", init=False)


@dataclass(frozen=True)
class ImageNode:
    src: str
    width: Optional[int] = None
    height: Optional[int] = None
    type: str = field(default="image", init=False)


@dataclass(frozen=True)
class SVGNode:
    content: str
    width: Optional[float] = None
    height: Optional[float] = None
    type: str = field(default="svg", init=False)


@dataclass(frozen=True)
class ListItemNode:
    # Text content only: text, links and nested lists
    children: Tuple["LabelNode", ...] = ()
    type: str = field(default="list-item", init=False)


@dataclass(frozen=True)
class ListNode:
    ordered: bool
    items: Tuple[ListItemNode, ...] = ()
    type: str = field(default="list", init=False)


LabelNode = Union[TextNode, LinkNode, ImageNode, SVGNode, ListNode, ListItemNode]


def is_inline_node(node: LabelNode) -> bool:
    """Text and links flow word by word; everything else is an atomic box."""
    return node.type in ("text", "link")


def is_media_node(node: LabelNode) -> bool:
    return node.type in ("image", "svg")
