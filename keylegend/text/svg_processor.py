"""
SVG helpers for inline label graphics: dimension extraction, a basic
structural check and the sanitizer applied where labels enter the system.
"""

import re
from typing import Optional, Tuple

SVGDimensions = Tuple[Optional[float], Optional[float]]

# Elements that can carry script or external content
DANGEROUS_ELEMENTS = ("script", "iframe", "object", "embed", "link", "style")

SVG_OPEN_TAG_PATTERN = re.compile(r"<svg\b[^>]*>", re.IGNORECASE)
SVG_OPEN_PATTERN = re.compile(r"<svg[\s>/]", re.IGNORECASE)
SVG_CLOSE_PATTERN = re.compile(r"</svg\s*>", re.IGNORECASE)
VIEWBOX_PATTERN = re.compile(r"""\bviewBox\s*=\s*["']([^"']+)["']""", re.IGNORECASE)
EVENT_ATTRIBUTE_PATTERN = re.compile(
    r"""\s+on[a-z]+\s*=\s*(?:"[^"]*"|'[^']*'|[^\s>]+)""", re.IGNORECASE
)
SCRIPT_URL_PATTERN = re.compile(
    r"""(?:xlink:)?href\s*=\s*["']\s*(?:javascript:|data:text/html)[^"']*["']""",
    re.IGNORECASE,
)


def _dimension_pattern(name: str) -> re.Pattern:
    # Leading (?<![\w-]) keeps stroke-width / line-height from matching "width"/"height"
    return re.compile(
        rf"""(?<![\w-]){name}\s*=\s*["']?\s*(\d+(?:\.\d+)?)(?![\d.]*\s*%)""", re.IGNORECASE
    )


WIDTH_PATTERN = _dimension_pattern("width")
HEIGHT_PATTERN = _dimension_pattern("height")


def _number(value: str) -> float:
    number = float(value)
    return int(number) if number.is_integer() else number


def _root_tag(svg_content: str) -> str:
    match = SVG_OPEN_TAG_PATTERN.search(svg_content)
    return match.group(0) if match else ""


def extract_dimensions(svg_content: str) -> SVGDimensions:
    """
    Extracts width and height attributes from the root <svg> tag.

    Percentages are ignored. Returns None for each attribute that is missing.
    """
    root = _root_tag(svg_content)
    width_match = WIDTH_PATTERN.search(root)
    height_match = HEIGHT_PATTERN.search(root)
    return (
        _number(width_match.group(1)) if width_match else None,
        _number(height_match.group(1)) if height_match else None,
    )


def extract_viewbox_dimensions(svg_content: str) -> SVGDimensions:
    """Width and height from viewBox="minX minY width height"."""
    match = VIEWBOX_PATTERN.search(_root_tag(svg_content))
    if not match:
        return None, None

    values = re.split(r"[\s,]+", match.group(1).strip())
    if len(values) != 4:
        return None, None

    try:
        return _number(values[2]), _number(values[3])
    except ValueError:
        return None, None


def get_dimensions(svg_content: str) -> SVGDimensions:
    """
    Attribute dimensions, falling back to the viewBox.

    If neither source yields both values, both are None so the renderer
    resolves the size from the rasterized graphic instead of guessing an
    aspect ratio.
    """
    width, height = extract_dimensions(svg_content)
    if width is None or height is None:
        vb_width, vb_height = extract_viewbox_dimensions(svg_content)
        width = width if width is not None else vb_width
        height = height if height is not None else vb_height
    if width is None or height is None:
        return None, None
    return width, height


def is_valid_svg(content: str) -> bool:
    """Basic structural check: an <svg> opening tag followed by a closing tag."""
    if not content or not isinstance(content, str):
        return False
    open_match = SVG_OPEN_PATTERN.search(content)
    close_match = SVG_CLOSE_PATTERN.search(content)
    if not open_match or not close_match:
        return False
    return open_match.start() < close_match.start()


def sanitize_svg(svg_content: str) -> str:
    """
    Removes script-capable elements, event handler attributes and
    javascript:/data:text/html URLs.

    The rendering core trusts its input; call this where labels are loaded
    from an external source.
    """
    if not svg_content or not isinstance(svg_content, str):
        return ""

    sanitized = svg_content
    for element in DANGEROUS_ELEMENTS:
        sanitized = re.sub(
            rf"<{element}\b[^>]*>.*?</{element}\s*>",
            "",
            sanitized,
            flags=re.IGNORECASE | re.DOTALL,
        )
        sanitized = re.sub(rf"<{element}\b[^>]*/>", "", sanitized, flags=re.IGNORECASE)

    sanitized = EVENT_ATTRIBUTE_PATTERN.sub("", sanitized)
    sanitized = SCRIPT_URL_PATTERN.sub("", sanitized)
    return sanitized


def validate_and_sanitize(content: str) -> str:
    """Sanitized content, or an empty string when the content is not SVG."""
    if not is_valid_svg(content):
        return ""
    return sanitize_svg(content)
