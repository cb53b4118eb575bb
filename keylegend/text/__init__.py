"""
Label text modules for keylegend.

This subpackage contains modules for:
- Label markup parsing into an immutable AST
- Inline SVG dimension extraction and sanitization
- Font management and measurement
- Line layout (wrapping, truncation, slot placement)
- Skia drawing helpers
"""

from .label_ast import (
    ImageNode,
    LinkNode,
    ListItemNode,
    ListNode,
    SVGNode,
    TextNode,
    TextStyle,
)
from .label_parser import LabelParser, parse_label
from .layout_engine import (
    LABEL_POSITIONS,
    LayoutLine,
    calculate_font_size,
    layout,
    line_rows,
    measure_lines_width,
    place_media,
    truncate_with_ellipsis,
    wrap_lines,
)

__all__ = [
    "TextStyle",
    "TextNode",
    "LinkNode",
    "ImageNode",
    "SVGNode",
    "ListNode",
    "ListItemNode",
    "LabelParser",
    "parse_label",
    "LABEL_POSITIONS",
    "LayoutLine",
    "calculate_font_size",
    "layout",
    "line_rows",
    "measure_lines_width",
    "place_media",
    "truncate_with_ellipsis",
    "wrap_lines",
]
