import os
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import skia
import uharfbuzz as hb

from keylegend.caching import LRUCache
from keylegend.config import DEFAULT_FONT_FAMILY, RenderingConfig
from keylegend.text.label_ast import LabelNode, ListNode
from keylegend.utils.exceptions import FontError
from keylegend.utils.logging import log_message

# Cache loaded font data with LRU management
_font_data_cache = LRUCache(max_size=50)
_typeface_cache = LRUCache(max_size=50)
_hb_face_cache = LRUCache(max_size=50)

# Cache font variants
_font_variants_cache: Dict[str, Dict[str, Optional[Path]]] = {}
FONT_KEYWORDS = {
    "bold": {"bold", "heavy", "black"},
    "italic": {"italic", "oblique", "slanted", "inclined"},
    "regular": {"regular", "normal", "roman", "medium"},
}
STYLE_NAMES = ("regular", "italic", "bold", "bold_italic")
STYLE_FALLBACKS = {
    "bold_italic": ("bold_italic", "bold", "italic", "regular"),
    "bold": ("bold", "regular"),
    "italic": ("italic", "regular"),
    "regular": ("regular",),
}

# HarfBuzz uses 26.6 fixed-point format (64 units per pixel)
HB_26_6_SCALE_FACTOR = 64.0

# Display size of media with neither explicit nor natural dimensions
IMAGE_FALLBACK_SIZE = 16
SVG_FALLBACK_SIZE = 32

NaturalSize = Callable[[LabelNode], Optional[Tuple[float, float]]]


def _matches(stem_lower: str, kind: str) -> bool:
    return any(kw in stem_lower for kw in FONT_KEYWORDS[kind])


def find_font_variants(font_dir: str, verbose: bool = False) -> Dict[str, Optional[Path]]:
    """
    Finds regular, italic, bold, and bold-italic font variants (.ttf, .otf)
    in a directory based on filename keywords. Caches results per directory.

    Args:
        font_dir (str): Directory containing font files.
        verbose (bool): Whether to print detailed logs.

    Returns:
        Dict[str, Optional[Path]]: Dictionary mapping style names
                                   ("regular", "italic", "bold", "bold_italic")
                                   to their respective Path objects, or None if not found.
    """
    resolved_dir = str(Path(font_dir).expanduser().resolve())
    if resolved_dir in _font_variants_cache:
        return _font_variants_cache[resolved_dir]

    log_message(f"Scanning font directory: {resolved_dir}", verbose=verbose)
    font_variants: Dict[str, Optional[Path]] = {name: None for name in STYLE_NAMES}

    font_dir_path = Path(resolved_dir)
    if not font_dir_path.is_dir():
        log_message(f"Font directory '{font_dir_path}' does not exist or is not a directory.", always_print=True)
        _font_variants_cache[resolved_dir] = font_variants
        return font_variants

    font_files: List[Path] = list(font_dir_path.glob("*.ttf")) + list(font_dir_path.glob("*.otf"))
    if not font_files:
        log_message(f"No font files (.ttf, .otf) found in '{resolved_dir}'", always_print=True)
        _font_variants_cache[resolved_dir] = font_variants
        return font_variants

    # Longest names first so "BoldItalic" is considered before "Bold"
    font_files.sort(key=lambda x: len(x.name), reverse=True)
    identified = set()

    # Pass 1: combined bold + italic
    for font_file in font_files:
        stem_lower = font_file.stem.lower()
        if not font_variants["bold_italic"] and _matches(stem_lower, "bold") and _matches(stem_lower, "italic"):
            font_variants["bold_italic"] = font_file
            identified.add(font_file)
            log_message(f"Found Bold Italic: {font_file.name}", verbose=verbose)

    # Pass 2: single styles
    for font_file in font_files:
        if font_file in identified:
            continue
        stem_lower = font_file.stem.lower()
        is_bold = _matches(stem_lower, "bold")
        is_italic = _matches(stem_lower, "italic")
        if is_bold and not is_italic and not font_variants["bold"]:
            font_variants["bold"] = font_file
            identified.add(font_file)
            log_message(f"Found Bold: {font_file.name}", verbose=verbose)
        elif is_italic and not is_bold and not font_variants["italic"]:
            font_variants["italic"] = font_file
            identified.add(font_file)
            log_message(f"Found Italic: {font_file.name}", verbose=verbose)

    # Pass 3: explicit regular, then any file without style keywords
    unidentified = [f for f in font_files if f not in identified]
    plain = [
        f for f in unidentified if not _matches(f.stem.lower(), "bold") and not _matches(f.stem.lower(), "italic")
    ]
    regular = next((f for f in plain if _matches(f.stem.lower(), "regular")), None)
    if regular is None:
        regular = next((f for f in plain if not _is_specific_weight(f.name.lower())), None)
    if regular is None:
        regular = next(iter(unidentified), None)
    if regular is None:
        regular = next(
            (f for f in (font_variants["bold"], font_variants["italic"], font_variants["bold_italic"]) if f),
            font_files[0],
        )
    font_variants["regular"] = regular

    log_message(f"Final Font Variants Found in {resolved_dir}:", verbose=verbose)
    for style, path in font_variants.items():
        log_message(f"  - {style}: {path.name if path else 'None'}", verbose=verbose)

    _font_variants_cache[resolved_dir] = font_variants
    return font_variants


def _is_specific_weight(font_name_lower: str) -> bool:
    return any(
        weight in font_name_lower
        for weight in ("light", "thin", "condensed", "expanded", "semi", "demi", "extra", "ultra", "book")
    )


def load_font_resources(font_path: str) -> Tuple[bytes, skia.Typeface, hb.Face]:
    """
    Loads font data, Skia Typeface, and HarfBuzz Face, using LRU caching.

    Raises:
        FontError: If the file cannot be read or either library rejects it
    """
    font_data = _font_data_cache.get(font_path)
    if font_data is None:
        try:
            with open(font_path, "rb") as f:
                font_data = f.read()
        except OSError as e:
            raise FontError(f"Failed to read font file {font_path}: {e}") from e
        _font_data_cache.put(font_path, font_data)

    typeface = _typeface_cache.get(font_path)
    if typeface is None:
        typeface = skia.Typeface.MakeFromData(skia.Data.MakeWithCopy(font_data))
        if typeface is None:
            log_message(f"Skia typeface load failed: {os.path.basename(font_path)}", always_print=True)
            _font_data_cache.delete(font_path)
            raise FontError(f"Failed to create Skia typeface from font: {font_path}")
        _typeface_cache.put(font_path, typeface)

    hb_face = _hb_face_cache.get(font_path)
    if hb_face is None:
        try:
            hb_face = hb.Face(font_data)
        except Exception as e:
            log_message(f"HarfBuzz face load failed: {os.path.basename(font_path)}: {e}", always_print=True)
            # Keep the caches consistent: a font is usable only with both resources
            _typeface_cache.delete(font_path)
            _font_data_cache.delete(font_path)
            raise FontError(f"Failed to create HarfBuzz face from font: {font_path}") from e
        _hb_face_cache.put(font_path, hb_face)

    return font_data, typeface, hb_face


def shape_text(text: str, hb_face: hb.Face, font_size: float, features: Dict[str, bool]):
    """Shapes a run of text with HarfBuzz at ``font_size`` (positions in 26.6 units)."""
    hb_font = hb.Font(hb_face)
    hb_font.ptem = float(font_size)
    hb_scale = int(font_size * HB_26_6_SCALE_FACTOR)
    hb_font.scale = (hb_scale, hb_scale)

    hb_buffer = hb.Buffer()
    hb_buffer.add_str(text)
    hb_buffer.guess_segment_properties()
    hb.shape(hb_font, hb_buffer, features)
    return hb_buffer.glyph_infos, hb_buffer.glyph_positions


def media_size(
    node: LabelNode,
    natural: Optional[Tuple[float, float]] = None,
    image_fallback: float = IMAGE_FALLBACK_SIZE,
    svg_fallback: float = SVG_FALLBACK_SIZE,
) -> Tuple[float, float]:
    """
    Display box of an image or graphic node: explicit attributes first, then
    the asset's natural size, then a fixed fallback.
    """
    fallback = svg_fallback if node.type == "svg" else image_fallback
    natural_width, natural_height = natural or (None, None)
    width = node.width or natural_width or fallback
    height = node.height or natural_height or fallback
    return float(width), float(height)


class FontSet:
    """
    The four style variants of one font family, used for both measuring and
    drawing so wrap decisions and cursor advances always agree.

    With a font directory, text is shaped with HarfBuzz against the variant
    files found there. Without one, typefaces are resolved by family name
    through skia's font manager and measured with ``skia.Font.measureText``.
    """

    def __init__(
        self,
        typefaces: Dict[str, Optional[skia.Typeface]],
        hb_faces: Optional[Dict[str, Optional[hb.Face]]] = None,
        config: Optional[RenderingConfig] = None,
    ):
        self.config = config or RenderingConfig()
        self.typefaces = typefaces
        self.hb_faces = hb_faces or {}
        self.features = {"liga": self.config.use_ligatures, "kern": True}
        self._width_cache = LRUCache(max_size=2000)
        if self.typefaces.get("regular") is None:
            raise FontError("FontSet requires a regular typeface")

    @classmethod
    def from_directory(cls, font_dir: str, config: Optional[RenderingConfig] = None) -> "FontSet":
        """
        Raises:
            FontError: If no usable regular font is found in ``font_dir``
        """
        config = config or RenderingConfig()
        variants = find_font_variants(font_dir, verbose=config.verbose)
        if variants["regular"] is None:
            raise FontError(f"No usable font files in '{font_dir}'")

        typefaces: Dict[str, Optional[skia.Typeface]] = {}
        hb_faces: Dict[str, Optional[hb.Face]] = {}
        for style, path in variants.items():
            if path is None:
                continue
            try:
                _, typefaces[style], hb_faces[style] = load_font_resources(str(path))
            except FontError as e:
                if style == "regular":
                    raise
                log_message(f"Skipping {style} variant: {e}", always_print=True)
        return cls(typefaces, hb_faces, config)

    @classmethod
    def from_family(cls, family: str = DEFAULT_FONT_FAMILY, config: Optional[RenderingConfig] = None) -> "FontSet":
        styles = {
            "regular": skia.FontStyle.Normal(),
            "bold": skia.FontStyle.Bold(),
            "italic": skia.FontStyle.Italic(),
            "bold_italic": skia.FontStyle.BoldItalic(),
        }
        typefaces = {style: skia.Typeface(family, font_style) for style, font_style in styles.items()}
        if typefaces["regular"] is None:
            typefaces["regular"] = skia.Typeface.MakeDefault()
        return cls(typefaces, None, config)

    @classmethod
    def from_config(cls, config: Optional[RenderingConfig] = None) -> "FontSet":
        """Directory fonts when configured and loadable, the family otherwise."""
        config = config or RenderingConfig()
        if config.font_dir:
            try:
                return cls.from_directory(config.font_dir, config)
            except FontError as e:
                log_message(f"{e}; falling back to '{config.font_family}'", always_print=True)
        return cls.from_family(config.font_family, config)

    def resolve(self, style_name: str) -> Tuple[skia.Typeface, Optional[hb.Face]]:
        """Typeface and shaping face for a style, degrading bold_italic -> bold -> italic -> regular."""
        for candidate in STYLE_FALLBACKS.get(style_name, ("regular",)):
            typeface = self.typefaces.get(candidate)
            if typeface is None:
                continue
            if self.hb_faces and self.hb_faces.get(candidate) is None:
                continue
            if candidate != style_name:
                log_message(f"Style '{style_name}' -> '{candidate}'", verbose=self.config.verbose)
            return typeface, self.hb_faces.get(candidate)
        return self.typefaces["regular"], self.hb_faces.get("regular")

    def make_font(self, style_name: str, font_size: float) -> skia.Font:
        typeface, _ = self.resolve(style_name)
        font = skia.Font(typeface, font_size)
        font.setSubpixel(self.config.use_subpixel_rendering)
        hinting_map = {
            "none": skia.FontHinting.kNone,
            "slight": skia.FontHinting.kSlight,
            "normal": skia.FontHinting.kNormal,
            "full": skia.FontHinting.kFull,
        }
        font.setHinting(hinting_map.get(self.config.font_hinting.lower(), skia.FontHinting.kNone))
        return font

    def ascent(self, style_name: str, font_size: float) -> float:
        """Distance from the top of the line box to the baseline."""
        metrics = self.make_font(style_name, font_size).getMetrics()
        return -metrics.fAscent if metrics.fAscent else font_size * 0.8

    def measure_text(self, text: str, style_name: str, font_size: float) -> float:
        if not text:
            return 0.0
        key = (text, style_name, font_size)
        cached = self._width_cache.get(key)
        if cached is not None:
            return cached

        _, hb_face = self.resolve(style_name)
        if hb_face is not None:
            _, positions = shape_text(text, hb_face, font_size, self.features)
            width = sum(pos.x_advance for pos in positions) / HB_26_6_SCALE_FACTOR
        else:
            width = self.make_font(style_name, font_size).measureText(text)
        self._width_cache.set(key, float(width))
        return float(width)

    def list_marker(self, node: ListNode, index: int) -> str:
        return f"{index + 1}. " if node.ordered else "• "

    def measure_node(self, node: LabelNode, font_size: float, natural_size: Optional[NaturalSize] = None) -> float:
        """
        Width of one node as laid out on a line.

        ``natural_size`` reports the intrinsic size of a loaded image or
        graphic, or None while it is unknown.
        """
        if node.type in ("text", "link"):
            return self.measure_text(node.text, node.style.name, font_size)
        if node.type in ("image", "svg"):
            natural = natural_size(node) if natural_size else None
            return media_size(node, natural)[0]
        if node.type == "list":
            return self._measure_list(node, font_size, natural_size, 0)
        if node.type == "list-item":
            return sum(self.measure_node(child, font_size, natural_size) for child in node.children)
        return 0.0

    def _measure_list(self, node: ListNode, font_size, natural_size, depth: int) -> float:
        indent = self.config.list_indent * depth
        widest = 0.0
        for index, item in enumerate(node.items):
            marker = self.measure_text(self.list_marker(node, index), "regular", font_size)
            inline = 0.0
            for child in item.children:
                if child.type == "list":
                    widest = max(widest, self._measure_list(child, font_size, natural_size, depth + 1))
                else:
                    inline += self.measure_node(child, font_size, natural_size)
            widest = max(widest, indent + marker + inline)
        return widest

    def draw_text(self, canvas, text: str, style_name: str, font_size: float, x: float, baseline_y: float, paint):
        """Draws one run at (x, baseline_y) and returns its advance."""
        if not text:
            return 0.0
        _, hb_face = self.resolve(style_name)
        font = self.make_font(style_name, font_size)

        if hb_face is None:
            canvas.drawString(text, x, baseline_y, font, paint)
            return self.measure_text(text, style_name, font_size)

        infos, positions = shape_text(text, hb_face, font_size, self.features)
        if not infos:
            return 0.0
        glyph_ids = [info.codepoint for info in infos]
        points = []
        cursor = 0.0
        for pos in positions:
            points.append(
                skia.Point(
                    x + cursor + pos.x_offset / HB_26_6_SCALE_FACTOR,
                    baseline_y - pos.y_offset / HB_26_6_SCALE_FACTOR,
                )
            )
            cursor += pos.x_advance / HB_26_6_SCALE_FACTOR

        builder = skia.TextBlobBuilder()
        builder.allocRunPos(font, glyph_ids, points)
        blob = builder.make()
        if blob:
            canvas.drawTextBlob(blob, 0, 0, paint)
        return cursor
