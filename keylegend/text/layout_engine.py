"""
Line layout for key labels.

Turns a parsed node list into placed lines: hard breaks, greedy word wrap,
ellipsis truncation of oversized words, a line cap derived from the available
height, then vertical and horizontal placement around an anchor point.

Measurement is injected (``measure(node) -> width``) so the same function
drives wrap decisions here and cursor advances in the renderer.
"""

import math
import re
from dataclasses import dataclass, replace
from typing import Callable, List, NamedTuple, Optional, Sequence

from keylegend.geometry import Point, Rect, add, div, mul, sub
from keylegend.text.label_ast import LabelNode, is_inline_node

ELLIPSIS = "…"
WORD_PATTERN = re.compile(r"[^ ]+")

Measure = Callable[[LabelNode], float]


@dataclass
class LayoutLine:
    nodes: List[LabelNode]
    x: float  # left edge after alignment
    y: float  # anchor y, interpreted according to the baseline mode
    width: float


class LabelPosition(NamedTuple):
    align: str  # left, center, right
    baseline: str  # hanging, middle, alphabetic


# Slots 0-8 form the 3x3 grid on the key top, 9-11 are front legends
LABEL_POSITIONS = (
    LabelPosition("left", "hanging"),
    LabelPosition("center", "hanging"),
    LabelPosition("right", "hanging"),
    LabelPosition("left", "middle"),
    LabelPosition("center", "middle"),
    LabelPosition("right", "middle"),
    LabelPosition("left", "alphabetic"),
    LabelPosition("center", "alphabetic"),
    LabelPosition("right", "alphabetic"),
    LabelPosition("left", "hanging"),
    LabelPosition("center", "hanging"),
    LabelPosition("right", "hanging"),
)
FRONT_SLOT_START = 9

# Fixed distances from the text area edges, independent of key size
HORIZONTAL_MARGIN = 1
VERTICAL_MARGIN = 3
ROTARY_HORIZONTAL_MARGIN = 4
ROTARY_VERTICAL_MARGIN = 12


def calculate_font_size(text_size, index: int, default: float = 3) -> float:
    """
    Font size in pixels for a label slot: ``6 + 2 * level``.

    A missing or non-positive level falls back to ``default``. Front legends
    are smaller: 80% of the size, capped at 10px.
    """
    level = text_size if isinstance(text_size, (int, float)) and text_size > 0 else default
    font_size = 6 + 2 * level
    if index >= FRONT_SLOT_START:
        font_size = min(10, font_size * 0.8)
    return font_size


def line_height_for(font_size: float, factor: float = 1.2) -> float:
    return mul(font_size, factor)


def label_anchor(
    index: int,
    text_rect: Rect,
    inner_rect: Rect,
    outer_rect: Optional[Rect] = None,
    rotary: bool = False,
) -> Optional[Point]:
    """
    Anchor point of a text label slot.

    Left/right columns sit a fixed margin inside the text area, the center
    column follows its midpoint. Rows sit on three fixed lines; front legends
    hang just below the inner cap. Rotary encoders measure the rows on the
    outer cap with wider margins and have no front legends (returns None).
    """
    if index < 0 or index >= len(LABEL_POSITIONS):
        return None
    position = LABEL_POSITIONS[index]
    if rotary and index >= FRONT_SLOT_START:
        return None

    h_margin = ROTARY_HORIZONTAL_MARGIN if rotary else HORIZONTAL_MARGIN
    if position.align == "left":
        x = add(text_rect.x, h_margin)
    elif position.align == "right":
        x = sub(text_rect.right, h_margin)
    else:
        x = add(text_rect.x, mul(text_rect.width, 0.5))

    if index >= FRONT_SLOT_START:
        return Point(x, add(inner_rect.bottom, 1))

    if rotary:
        outer = outer_rect or inner_rect
        top, extent, v_margin = outer.y, outer.width, ROTARY_VERTICAL_MARGIN
    else:
        top, extent, v_margin = text_rect.y, text_rect.height, VERTICAL_MARGIN

    if position.baseline == "hanging":
        y = add(top, v_margin)
    elif position.baseline == "alphabetic":
        y = sub(add(top, extent), v_margin)
    else:
        y = add(add(top, mul(extent, 0.5)), 1)
    return Point(x, y)


def place_media(index: int, width: float, height: float, inner_rect: Rect, cap_rect: Rect) -> Point:
    """
    Top-left corner of a media-only label.

    Columns: left edge, centered, right edge of the inner cap. Rows: top edge,
    centered, bottom edge; front legends sit one pixel below the cap.
    """
    position = LABEL_POSITIONS[index]
    if position.align == "left":
        x = inner_rect.x
    elif position.align == "center":
        x = sub(add(inner_rect.x, div(inner_rect.width, 2)), div(width, 2))
    else:
        x = sub(inner_rect.right, width)

    if index >= FRONT_SLOT_START:
        y = add(cap_rect.bottom, 1)
    elif position.baseline == "hanging":
        y = inner_rect.y
    elif position.baseline == "middle":
        y = sub(add(inner_rect.y, div(inner_rect.height, 2)), div(height, 2))
    else:
        y = sub(inner_rect.bottom, height)
    return Point(x, y)


def split_hard_lines(nodes: Sequence[LabelNode]) -> List[List[LabelNode]]:
    """Splits text nodes at "\\n", starting a new line at each break."""
    lines: List[List[LabelNode]] = [[]]
    for node in nodes:
        if node.type != "text" or "\n" not in node.text:
            lines[-1].append(node)
            continue
        parts = node.text.split("\n")
        for i, part in enumerate(parts):
            if i > 0:
                lines.append([])
            if part:
                lines[-1].append(replace(node, text=part))
    return lines


def truncate_with_ellipsis(node: LabelNode, max_width: float, measure: Measure) -> LabelNode:
    """
    Shortens a word one character at a time until ``word + "…"`` fits.

    When not even a single character plus the ellipsis fits, the untruncated
    word is returned and allowed to overflow.
    """
    text = node.text
    while text:
        candidate = replace(node, text=text + ELLIPSIS)
        if measure(candidate) <= max_width:
            return candidate
        text = text[:-1]
    return node


def list_rows(node: LabelNode) -> int:
    """Rows a list occupies: one per item plus the rows of nested lists."""
    rows = 0
    for item in node.items:
        rows += 1
        rows += sum(list_rows(child) for child in item.children if child.type == "list")
    return rows


def line_rows(line: Sequence[LabelNode]) -> int:
    """Lists stack their items downward, so a line holding one spans several rows."""
    return max([1] + [list_rows(node) for node in line if node.type == "list"])


def _units(line: Sequence[LabelNode]):
    """
    Yields (node, spaced) wrap units: one word of a text or link node, or a
    whole media/list node. ``spaced`` tells whether whitespace preceded the
    unit in the source.
    """
    pending_space = False
    for node in line:
        if not is_inline_node(node):
            yield node, pending_space
            pending_space = False
            continue
        words = list(WORD_PATTERN.finditer(node.text))
        if not words:
            pending_space = pending_space or bool(node.text)
            continue
        for match in words:
            spaced = pending_space or match.start() > 0
            yield replace(node, text=match.group(0)), spaced
            pending_space = False
        pending_space = words[-1].end() < len(node.text)


def _wrap_hard_line(line: Sequence[LabelNode], max_width: float, measure: Measure) -> List[List[LabelNode]]:
    wrapped: List[List[LabelNode]] = []
    current: List[LabelNode] = []
    current_width = 0.0

    for unit, spaced in _units(line):
        if current:
            candidate = replace(unit, text=" " + unit.text) if spaced and is_inline_node(unit) else unit
            candidate_width = measure(candidate)
            if current_width + candidate_width <= max_width:
                current.append(candidate)
                current_width += candidate_width
                continue
            wrapped.append(current)
            current, current_width = [], 0.0

        width = measure(unit)
        if width > max_width and is_inline_node(unit):
            unit = truncate_with_ellipsis(unit, max_width, measure)
            width = measure(unit)
        current = [unit]
        current_width = width

    wrapped.append(current)
    return wrapped


def wrap_lines(
    nodes: Sequence[LabelNode],
    max_width: float,
    max_height: float,
    line_height: float,
    measure: Measure,
) -> List[List[LabelNode]]:
    """
    Hard split, word wrap and line cap, without placement.

    The cap counts rows, so a line holding a list uses one row per item and
    lines from the first one that would overflow are dropped.
    """
    if line_height <= 0:
        return []
    max_rows = math.floor(max_height / line_height)
    if max_rows < 1:
        return []

    lines: List[List[LabelNode]] = []
    rows = 0
    for hard_line in split_hard_lines(nodes):
        for line in _wrap_hard_line(hard_line, max_width, measure):
            rows += line_rows(line)
            if rows > max_rows:
                return lines
            lines.append(line)
    return lines


def measure_lines_width(nodes: Sequence[LabelNode], measure: Measure) -> float:
    """Width of the widest hard line, unwrapped."""
    return max((sum(measure(node) for node in line) for line in split_hard_lines(nodes)), default=0.0)


def layout(
    nodes: Sequence[LabelNode],
    max_width: float,
    max_height: float,
    align: str,
    baseline: str,
    line_height: float,
    measure: Measure,
    x: float = 0,
    y: float = 0,
) -> List[LayoutLine]:
    """
    Wraps and places label content around the anchor (x, y).

    ``hanging`` puts the first line at y, ``alphabetic`` the last line, and
    ``middle`` centers the block. ``left`` starts lines at x, ``right`` ends
    them at x, ``center`` centers them on x.
    """
    lines = wrap_lines(nodes, max_width, max_height, line_height, measure)
    if not lines:
        return []

    row_counts = [line_rows(line) for line in lines]
    block = mul(sum(row_counts) - 1, line_height)
    if baseline == "middle":
        start_y = sub(y, div(block, 2))
    elif baseline == "alphabetic":
        start_y = sub(y, block)
    else:
        start_y = y

    placed = []
    row = 0
    for line, rows in zip(lines, row_counts):
        width = sum(measure(node) for node in line)
        if align == "right":
            line_x = sub(x, width)
        elif align == "center":
            line_x = sub(x, div(width, 2))
        else:
            line_x = x
        placed.append(LayoutLine(line, line_x, add(start_y, mul(row, line_height)), width))
        row += rows
    return placed
