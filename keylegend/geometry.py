"""
Decimal-stable geometry helpers shared by layout, hit testing and the
interactive rotate/mirror tools.

Coordinates are stored as floats but every arithmetic step goes through
``decimal.Decimal`` with 15 significant digits so that repeated incremental
edits (move by 0.25u, rotate by 15 degrees, mirror, ...) do not accumulate
binary floating-point drift.
"""

import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Context, Decimal
from typing import List, Union

Number = Union[int, float, str, Decimal]

_CONTEXT = Context(prec=15, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Point:
    x: float
    y: float


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return add(self.x, self.width)

    @property
    def bottom(self) -> float:
        return add(self.y, self.height)

    @property
    def center(self) -> Point:
        return Point(add(self.x, div(self.width, 2)), add(self.y, div(self.height, 2)))

    def contains(self, x: float, y: float) -> bool:
        """Inclusive containment test."""
        return self.x <= x <= self.right and self.y <= y <= self.bottom


def _d(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # repr() gives the shortest round-tripping form, avoiding 0.1 -> 0.1000000000000000055...
        return Decimal(repr(value))
    return Decimal(value)


def add(a: Number, b: Number) -> float:
    return float(_CONTEXT.add(_d(a), _d(b)))


def sub(a: Number, b: Number) -> float:
    return float(_CONTEXT.subtract(_d(a), _d(b)))


def mul(a: Number, b: Number) -> float:
    return float(_CONTEXT.multiply(_d(a), _d(b)))


def div(a: Number, b: Number) -> float:
    return float(_CONTEXT.divide(_d(a), _d(b)))


def round_to(value: Number, decimal_places: int = 0) -> float:
    """Round half-up to a fixed number of decimal places."""
    quantum = Decimal(1).scaleb(-decimal_places)
    return float(_d(value).quantize(quantum, rounding=ROUND_HALF_UP))


def round_to_step(value: Number, step: Number) -> float:
    """Snap a value to the nearest multiple of ``step`` (e.g. the move step)."""
    step_d = _d(step)
    steps = _CONTEXT.divide(_d(value), step_d).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return float(_CONTEXT.multiply(steps, step_d))


def format_number(value: Number, max_decimal_places: int = 6) -> float:
    """Drop precision artifacts for display (0.30000000000000004 -> 0.3)."""
    return round_to(value, max_decimal_places)


def equals(a: Number, b: Number, tolerance: float = 1e-10) -> bool:
    return abs(_CONTEXT.subtract(_d(a), _d(b))) < _d(tolerance)


def degrees_to_radians(degrees: Number) -> float:
    return float(_CONTEXT.divide(_CONTEXT.multiply(_d(degrees), _d(math.pi)), Decimal(180)))


def rotate_vector(x: Number, y: Number, angle_radians: float) -> Point:
    """Rotate a vector about the origin by ``angle_radians``."""
    cos_a = _d(math.cos(angle_radians))
    sin_a = _d(math.sin(angle_radians))
    x_d = _d(x)
    y_d = _d(y)
    return Point(
        float(_CONTEXT.subtract(_CONTEXT.multiply(x_d, cos_a), _CONTEXT.multiply(y_d, sin_a))),
        float(_CONTEXT.add(_CONTEXT.multiply(x_d, sin_a), _CONTEXT.multiply(y_d, cos_a))),
    )


def rotate_point(point: Point, origin: Point, angle_degrees: float) -> Point:
    """Rotate ``point`` about ``origin`` by ``angle_degrees`` (clockwise on screen, y down)."""
    if not angle_degrees:
        return point
    rotated = rotate_vector(
        sub(point.x, origin.x), sub(point.y, origin.y), degrees_to_radians(angle_degrees)
    )
    return Point(add(rotated.x, origin.x), add(rotated.y, origin.y))


def mirror_point(position: Number, line: Number, extent: Number = 0) -> float:
    """Mirror a coordinate across a line: ``2 * line - position - extent``."""
    return float(
        _CONTEXT.subtract(
            _CONTEXT.subtract(_CONTEXT.multiply(Decimal(2), _d(line)), _d(position)),
            _d(extent),
        )
    )


def rectangle_corners(rect: Rect) -> List[Point]:
    """Corners in order top-left, top-right, bottom-right, bottom-left."""
    return [
        Point(rect.x, rect.y),
        Point(rect.right, rect.y),
        Point(rect.right, rect.bottom),
        Point(rect.x, rect.bottom),
    ]


def rotated_rectangle_corners(rect: Rect, angle_degrees: float, origin: Point = None) -> List[Point]:
    """Corners of ``rect`` rotated about ``origin`` (defaults to the rectangle center)."""
    corners = rectangle_corners(rect)
    if not angle_degrees:
        return corners
    pivot = origin if origin is not None else rect.center
    return [rotate_point(corner, pivot, angle_degrees) for corner in corners]


def rotated_control_point(
    x: Number,
    y: Number,
    origin_x: Number,
    origin_y: Number,
    angle_radians: float,
    unit: Number = 1,
) -> Point:
    """
    Position of a rotation control point (key corner or center) once the key
    is rotated, in key units.

    Uses the closed-form rotation in pixel space and converts back, matching
    what the renderer's canvas rotation produces.
    """
    px = mul(x, unit)
    py = mul(y, unit)
    ox = mul(origin_x, unit)
    oy = mul(origin_y, unit)
    rotated = rotate_vector(sub(px, ox), sub(py, oy), angle_radians)
    return Point(
        div(add(rotated.x, ox), unit),
        div(add(rotated.y, oy), unit),
    )


def inverse_rotate(x: float, y: float, angle_degrees: float, origin_x: float, origin_y: float) -> Point:
    """Map a canvas-space point back into the unrotated local space of an object."""
    if not angle_degrees:
        return Point(x, y)
    return rotate_point(Point(x, y), Point(origin_x, origin_y), -angle_degrees)
