import math
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

from keylegend.caching import ERROR, LoadedImage, RenderCaches
from keylegend.config import RenderingConfig
from keylegend.geometry import Point, Rect, add, div, mul, rotated_rectangle_corners, sub
from keylegend.link_tracker import LinkTracker
from keylegend.scheduler import RenderScheduler
from keylegend.text import drawing_engine
from keylegend.text.font_manager import FontSet, media_size
from keylegend.text.label_ast import LabelNode, ListNode
from keylegend.text.label_parser import LabelParser
from keylegend.text.layout_engine import (
    FRONT_SLOT_START,
    LABEL_POSITIONS,
    LayoutLine,
    calculate_font_size,
    label_anchor,
    layout,
    line_height_for,
    place_media,
)
from keylegend.utils.logging import log_message

LABEL_SLOTS = len(LABEL_POSITIONS)


@dataclass(frozen=True)
class KeyGeometry:
    """
    Pixel rectangles of one key, in unrotated canvas space.

    cap: full key footprint. outer: cap minus key spacing. inner: the key
    top surface. text: inner minus padding, where text labels are placed.
    """

    cap: Rect
    outer: Rect
    inner: Rect
    text: Rect
    rotation_angle: float = 0.0
    rotation_origin: Point = Point(0.0, 0.0)

    @classmethod
    def from_key(
        cls,
        x: float,
        y: float,
        width: float = 1,
        height: float = 1,
        unit: float = 54,
        rotation_angle: float = 0.0,
        rotation_x: float = 0.0,
        rotation_y: float = 0.0,
        key_spacing: float = 0,
        bevel_margin: float = 6,
        bevel_offset_top: float = 3,
        bevel_offset_bottom: float = 3,
        padding: float = 3,
    ) -> "KeyGeometry":
        """Builds the rectangles from a key position and size given in key units."""
        cap = Rect(mul(unit, x), mul(unit, y), mul(unit, width), mul(unit, height))

        outer_width = max(2, sub(cap.width, mul(key_spacing, 2)))
        outer_height = max(2, sub(cap.height, mul(key_spacing, 2)))
        outer = Rect(
            add(cap.x, max(0, div(sub(cap.width, outer_width), 2))),
            add(cap.y, max(0, div(sub(cap.height, outer_height), 2))),
            outer_width,
            outer_height,
        )

        bevel_skew = sub(bevel_offset_bottom, bevel_offset_top)
        inner_width = max(1, sub(outer.width, mul(bevel_margin, 2)))
        inner_height = max(1, sub(outer.height, add(mul(bevel_margin, 2), bevel_skew)))
        inner = Rect(
            add(outer.x, max(0, div(sub(outer.width, inner_width), 2))),
            sub(add(outer.y, max(0, div(sub(outer.height, add(inner_height, bevel_skew)), 2))), bevel_offset_top),
            inner_width,
            inner_height,
        )

        text_width = max(1, sub(inner.width, mul(padding, 2)))
        text_height = max(1, sub(inner.height, mul(padding, 2)))
        text = Rect(
            add(inner.x, max(0, div(sub(inner.width, text_width), 2))),
            add(inner.y, max(0, div(sub(inner.height, text_height), 2))),
            text_width,
            text_height,
        )

        return cls(
            cap=cap,
            outer=outer,
            inner=inner,
            text=text,
            rotation_angle=rotation_angle or 0.0,
            rotation_origin=Point(mul(unit, rotation_x), mul(unit, rotation_y)),
        )


@dataclass
class KeyLabels:
    """Label content and per-slot styling of one key (12 slots)."""

    labels: List[Optional[str]] = field(default_factory=list)
    text_colors: List[Optional[str]] = field(default_factory=list)
    text_sizes: List[Optional[float]] = field(default_factory=list)
    default_text_color: str = "#000000"
    default_text_size: float = 3
    rotary: bool = False

    def color_for(self, index: int) -> str:
        if index < len(self.text_colors) and self.text_colors[index]:
            return self.text_colors[index]
        return self.default_text_color

    def size_for(self, index: int) -> Optional[float]:
        return self.text_sizes[index] if index < len(self.text_sizes) else None


@dataclass(frozen=True)
class LabelStyle:
    """Style context shared by every line of one label."""

    font_size: float
    color: str
    baseline: str = "hanging"
    line_height: Optional[float] = None


@dataclass
class _Pass:
    style: LabelStyle
    measure: Callable[[LabelNode], float]
    text_color: int
    origin: Point
    rotation: float


@contextmanager
def rotated(canvas, origin: Optional[Point], angle: float):
    """Applies one rotation about ``origin`` (degrees) for the duration of the block."""
    if not angle:
        yield canvas
        return
    origin = origin or Point(0.0, 0.0)
    canvas.save()
    try:
        canvas.translate(origin.x, origin.y)
        canvas.rotate(angle)
        canvas.translate(-origin.x, -origin.y)
        yield canvas
    finally:
        canvas.restore()


def line_top(y: float, baseline: str, font_size: float) -> float:
    """Top of a line box whose anchor ``y`` is interpreted per baseline mode."""
    if baseline == "middle":
        return sub(y, div(font_size, 2))
    if baseline == "alphabetic":
        return sub(y, font_size)
    return y


def media_top(y: float, baseline: str, height: float) -> float:
    if baseline == "middle":
        return sub(y, div(height, 2))
    if baseline == "alphabetic":
        return sub(y, height)
    return y


class LabelRenderer:
    """
    Draws key labels onto a skia canvas.

    The renderer owns no global state: fonts, caches, the link tracker and the
    scheduler are injected, so several renderers can coexist.

    Args:
        font_set: Fonts used for both measuring and drawing.
        caches: Parse, SVG and image caches.
        link_tracker: Receives one region per drawn link word.
        scheduler: Runs asset completion callbacks on the host's tick.
        config: Rendering options.
        on_refresh: Called when loaded assets require the host to re-render.
    """

    def __init__(
        self,
        font_set: FontSet,
        caches: Optional[RenderCaches] = None,
        link_tracker: Optional[LinkTracker] = None,
        scheduler: Optional[RenderScheduler] = None,
        config: Optional[RenderingConfig] = None,
        on_refresh: Optional[Callable[[], None]] = None,
    ):
        self.config = config or RenderingConfig()
        self.font_set = font_set
        self.scheduler = scheduler or RenderScheduler()
        self.caches = caches or RenderCaches(self.scheduler, verbose=self.config.verbose)
        self.link_tracker = link_tracker or LinkTracker()
        self.parser = LabelParser(self.caches.parse)
        self.on_refresh = on_refresh
        self.active_href: Optional[str] = None
        self.refresh_count = 0

    # --- Host entry points ---
    def begin_pass(self) -> None:
        """Start of a full render: link regions from the previous frame are dropped."""
        self.link_tracker.clear()

    def request_refresh(self) -> None:
        """Asset load callback. Loads settling in the same tick share one refresh."""
        self.scheduler.schedule(self.refresh)

    def refresh(self) -> None:
        """Re-renders once loaded assets are available."""
        self.refresh_count += 1
        log_message("Assets settled, re-rendering", verbose=self.config.verbose)
        if self.on_refresh is not None:
            self.on_refresh()

    def tick(self, now: Optional[float] = None) -> int:
        """Expires stale loads, then runs pending callbacks. Returns how many ran."""
        self.caches.images.expire_stale(now)
        return self.scheduler.flush()

    def set_active_href(self, href: Optional[str]) -> None:
        """The link currently pointed at; only that link is underlined."""
        self.active_href = href

    # --- Measurement ---
    def natural_size(self, node: LabelNode) -> Optional[Tuple[float, float]]:
        if node.type == "image":
            loaded = self.caches.images.get_image(node.src)
            return (loaded.width, loaded.height) if loaded else None
        if node.type == "svg":
            raster = self.caches.svg.get_raster(node.content)
            return (raster.width(), raster.height()) if raster is not None else None
        return None

    def measure_for(self, font_size: float) -> Callable[[LabelNode], float]:
        """The per-node width function shared by layout and drawing."""
        return lambda node: self.font_set.measure_node(node, font_size, self.natural_size)

    # --- Key level ---
    def draw_key_labels(self, canvas, key: KeyLabels, geometry: KeyGeometry) -> None:
        """
        Draws all label slots of one key.

        Labels that are a single <img> or <svg> are placed on the media grid;
        everything else goes through layout and ``render``.
        """
        for index, label in enumerate(key.labels[:LABEL_SLOTS]):
            if not label:
                continue
            if key.rotary and index >= FRONT_SLOT_START:
                continue  # rotary encoders have no front face

            if self.parser.is_media_only(label):
                self._draw_media_label(canvas, label, index, geometry)
                continue

            font_size = calculate_font_size(key.size_for(index), index, key.default_text_size)
            lines = self.layout_label(label, index, font_size, geometry, key.rotary)
            if not lines:
                continue
            style = LabelStyle(
                font_size=font_size,
                color=key.color_for(index),
                baseline=LABEL_POSITIONS[index].baseline,
                line_height=line_height_for(font_size, self.config.line_height_factor),
            )
            self.render(canvas, lines, style, geometry.rotation_origin, geometry.rotation_angle)

    def layout_label(
        self, label: str, index: int, font_size: float, geometry: KeyGeometry, rotary: bool = False
    ) -> List[LayoutLine]:
        anchor = label_anchor(index, geometry.text, geometry.inner, geometry.outer, rotary)
        if anchor is None:
            return []
        if rotary:
            max_width = max_height = geometry.inner.width
        else:
            max_width = geometry.text.width
            max_height = sub(geometry.text.height, 2)

        position = LABEL_POSITIONS[index]
        return layout(
            self.parser.parse(label),
            max_width,
            max_height,
            position.align,
            position.baseline,
            line_height_for(font_size, self.config.line_height_factor),
            self.measure_for(font_size),
            anchor.x,
            anchor.y,
        )

    def _draw_media_label(self, canvas, label: str, index: int, geometry: KeyGeometry) -> None:
        node = next((n for n in self.parser.parse(label) if n.type in ("image", "svg")), None)
        if node is None:
            return

        asset = self._resolve_asset(node)
        if asset is None:
            return  # loading (load requested) or failed
        image, natural = asset
        width, height = media_size(node, natural)
        corner = place_media(index, width, height, geometry.inner, geometry.cap)
        with rotated(canvas, geometry.rotation_origin, geometry.rotation_angle):
            drawing_engine.draw_image(canvas, image, corner.x, corner.y, width, height)

    def _resolve_asset(self, node: LabelNode):
        """
        (image, natural size) for a drawable asset, or None.

        A missing external image triggers a load whose completion requests
        a refresh.
        """
        if node.type == "svg":
            raster = self.caches.svg.get_raster(node.content)
            if raster is None:
                return None
            return raster, (raster.width(), raster.height())

        if not node.src:
            return None
        state = self.caches.images.get_state(node.src)
        if isinstance(state, LoadedImage):
            return state.image, (state.width, state.height)
        if state != ERROR:
            self.caches.images.load_image(node.src, self.request_refresh)
        return None

    # --- Line level ---
    def render(
        self,
        canvas,
        lines: Sequence[LayoutLine],
        style: LabelStyle,
        origin: Optional[Point] = None,
        rotation: float = 0.0,
    ) -> None:
        """
        Draws laid-out label lines.

        Positions are unrotated local coordinates; a single rotation about
        ``origin`` wraps the whole draw so the label turns with its key.
        """
        state = _Pass(
            style=style,
            measure=self.measure_for(style.font_size),
            text_color=drawing_engine.parse_color(style.color),
            origin=origin or Point(0.0, 0.0),
            rotation=rotation or 0.0,
        )
        with rotated(canvas, origin, rotation):
            for line in lines:
                self._draw_line(canvas, line, state)

    def _draw_line(self, canvas, line: LayoutLine, state: _Pass) -> None:
        size = state.style.font_size
        top = line_top(line.y, state.style.baseline, size)
        baseline_y = add(top, self.font_set.ascent("regular", size))
        cursor = line.x

        for node in line.nodes:
            width = state.measure(node)
            if node.type in ("text", "link"):
                self._draw_inline(canvas, node, cursor, top, baseline_y, width, state)
            elif node.type in ("image", "svg"):
                self._draw_media(canvas, node, cursor, line.y, state)
            elif node.type == "list":
                self._draw_list(canvas, node, cursor, top, state, 0)
            cursor = add(cursor, width)

    def _draw_inline(self, canvas, node, x: float, top: float, baseline_y: float, width: float, state: _Pass):
        size = state.style.font_size
        if node.type == "text":
            paint = drawing_engine.fill_paint(state.text_color)
            self.font_set.draw_text(canvas, node.text, node.style.name, size, x, baseline_y, paint)
            return

        link_color = drawing_engine.parse_color(self.config.link_color)
        paint = drawing_engine.fill_paint(link_color)
        self.font_set.draw_text(canvas, node.text, node.style.name, size, x, baseline_y, paint)

        # The hit box covers the word itself, not its separating space
        word = node.text.lstrip(" ")
        lead = self.font_set.measure_text(node.text[: len(node.text) - len(word)], node.style.name, size)
        word_x = add(x, lead)
        word_width = sub(width, lead)
        self.link_tracker.register_link(
            node.href,
            word,
            word_x,
            top,
            word_width,
            size,
            state.rotation,
            state.origin.x,
            state.origin.y,
        )
        if self.active_href is not None and self.active_href == node.href:
            drawing_engine.draw_underline(canvas, word_x, baseline_y, word_width, link_color, size)

    def _draw_media(self, canvas, node, x: float, y: float, state: _Pass) -> None:
        if node.type == "svg":
            raster = self.caches.svg.get_raster(node.content)
            if raster is None:
                return
            width, height = media_size(node, (raster.width(), raster.height()))
            drawing_engine.draw_image(canvas, raster, x, media_top(y, state.style.baseline, height), width, height)
            return

        if not node.src:
            return
        state_value = self.caches.images.get_state(node.src)
        if state_value == ERROR:
            return
        if isinstance(state_value, LoadedImage):
            width, height = media_size(node, (state_value.width, state_value.height))
            top = media_top(y, state.style.baseline, height)
            drawing_engine.draw_image(canvas, state_value.image, x, top, width, height)
            return

        width, height = media_size(node)
        top = media_top(y, state.style.baseline, height)
        drawing_engine.draw_placeholder(
            canvas, x, top, width, height, drawing_engine.parse_color(self.config.placeholder_color)
        )
        self.caches.images.load_image(node.src, self.request_refresh)

    def _draw_list(self, canvas, node: ListNode, x: float, top: float, state: _Pass, depth: int) -> float:
        """Draws list items stacked from ``top``; returns the y below the last item."""
        size = state.style.font_size
        line_height = state.style.line_height or line_height_for(size, self.config.line_height_factor)
        ascent = self.font_set.ascent("regular", size)
        indent = mul(self.config.list_indent, depth)
        paint = drawing_engine.fill_paint(state.text_color)

        y = top
        for index, item in enumerate(node.items):
            baseline_y = add(y, ascent)
            marker = self.font_set.list_marker(node, index)
            marker_x = add(x, indent)
            self.font_set.draw_text(canvas, marker, "regular", size, marker_x, baseline_y, paint)
            cursor = add(marker_x, self.font_set.measure_text(marker, "regular", size))

            nested = []
            for child in item.children:
                if child.type == "list":
                    nested.append(child)
                    continue
                width = state.measure(child)
                self._draw_inline(canvas, child, cursor, y, baseline_y, width, state)
                cursor = add(cursor, width)

            y = add(y, line_height)
            for child in nested:
                y = self._draw_list(canvas, child, x, y, state, depth + 1)
        return y


def surface_size(geometries: Sequence[KeyGeometry], margin: float = 10) -> Tuple[int, int]:
    """Canvas size covering every key (rotation included) plus a margin."""
    right = bottom = 0.0
    for geometry in geometries:
        # Front legends hang below the cap
        extended = Rect(geometry.cap.x, geometry.cap.y, geometry.cap.width, add(geometry.cap.height, 14))
        for corner in rotated_rectangle_corners(extended, geometry.rotation_angle, geometry.rotation_origin):
            right = max(right, corner.x)
            bottom = max(bottom, corner.y)
    return int(math.ceil(right + margin)), int(math.ceil(bottom + margin))


def draw_keycap(canvas, geometry: KeyGeometry, color: str = "#cccccc") -> None:
    """Flat keycap: the outer cap in a darker shade under the lighter top surface."""
    base = drawing_engine.parse_color(color, drawing_engine.parse_color("#cccccc"))
    top = drawing_engine.lighten(base, 0.2)
    with rotated(canvas, geometry.rotation_origin, geometry.rotation_angle):
        drawing_engine.draw_rounded_rect(canvas, geometry.outer, 5, drawing_engine.darken(base, 0.2))
        drawing_engine.draw_rounded_rect(canvas, geometry.inner, 3, top)
