import re
from typing import Optional

import numpy as np
import skia
from PIL import Image

from keylegend.utils.exceptions import RenderingError
from keylegend.utils.logging import log_message

HEX_COLOR_PATTERN = re.compile(r"^#?([0-9a-fA-F]{3,4}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$")

NAMED_COLORS = {
    "black": (0, 0, 0),
    "white": (255, 255, 255),
    "red": (255, 0, 0),
    "green": (0, 128, 0),
    "blue": (0, 0, 255),
    "gray": (128, 128, 128),
    "grey": (128, 128, 128),
}


def parse_color(value: Optional[str], default: int = skia.ColorBLACK) -> int:
    """
    Converts "#rgb", "#rgba", "#rrggbb", "#rrggbbaa" or a basic color name to
    a skia color. Unparseable values fall back to ``default``.
    """
    if not value:
        return default
    value = value.strip().lower()
    if value in NAMED_COLORS:
        return skia.Color(*NAMED_COLORS[value])

    match = HEX_COLOR_PATTERN.match(value)
    if not match:
        log_message(f"Unrecognized color '{value}', using default", always_print=True)
        return default

    digits = match.group(1)
    if len(digits) in (3, 4):
        digits = "".join(c * 2 for c in digits)
    r, g, b = (int(digits[i : i + 2], 16) for i in (0, 2, 4))
    a = int(digits[6:8], 16) if len(digits) == 8 else 255
    return skia.Color(r, g, b, a)


def fill_paint(color: int) -> skia.Paint:
    return skia.Paint(AntiAlias=True, Color=color)


def stroke_paint(color: int, width: float = 1.0) -> skia.Paint:
    return skia.Paint(AntiAlias=True, Color=color, Style=skia.Paint.kStroke_Style, StrokeWidth=width)


def draw_placeholder(canvas, x: float, y: float, width: float, height: float, color: int) -> None:
    """Outline of the box an asset will occupy once loaded."""
    canvas.drawRect(skia.Rect.MakeXYWH(x, y, width, height), stroke_paint(color))


def draw_image(canvas, image, x: float, y: float, width: float, height: float) -> None:
    canvas.drawImageRect(image, skia.Rect.MakeXYWH(x, y, width, height), skia.SamplingOptions(skia.FilterMode.kLinear))


def draw_underline(canvas, x: float, baseline_y: float, width: float, color: int, font_size: float) -> None:
    thickness = max(1.0, font_size / 14.0)
    y = baseline_y + thickness * 1.5
    canvas.drawLine(x, y, x + width, y, stroke_paint(color, thickness))


def skia_surface_to_pil(surface: skia.Surface) -> Image.Image:
    """Converts a Skia Surface back to a PIL image.

    Raises:
        RenderingError: If conversion fails
    """
    skia_image: Optional[skia.Image] = surface.makeImageSnapshot()
    if skia_image is None:
        log_message("Skia surface snapshot failed", always_print=True)
        raise RenderingError("Failed to create Skia image snapshot")

    skia_image = skia_image.convert(alphaType=skia.kUnpremul_AlphaType, colorType=skia.kRGBA_8888_ColorType)
    return Image.fromarray(np.array(skia_image))


def new_surface(width: int, height: int, background: Optional[str] = None) -> skia.Surface:
    """Blank surface, filled with ``background`` when given."""
    if width <= 0 or height <= 0:
        raise RenderingError(f"Invalid surface size {width}x{height}")
    surface = skia.Surface(int(width), int(height))
    with surface as canvas:
        canvas.clear(parse_color(background, skia.ColorTRANSPARENT) if background else skia.ColorTRANSPARENT)
    return surface


def _shade(color: int, amount: float, target: int) -> int:
    channels = (skia.ColorGetR(color), skia.ColorGetG(color), skia.ColorGetB(color))
    r, g, b = (int(round(c + (target - c) * amount)) for c in channels)
    return skia.Color(r, g, b, skia.ColorGetA(color))


def lighten(color: int, amount: float) -> int:
    return _shade(color, amount, 255)


def darken(color: int, amount: float) -> int:
    return _shade(color, amount, 0)


def draw_rounded_rect(canvas, rect, radius: float, color: int) -> None:
    bounds = skia.Rect.MakeXYWH(rect.x, rect.y, rect.width, rect.height)
    canvas.drawRoundRect(bounds, radius, radius, fill_paint(color))
