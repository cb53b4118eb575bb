"""
Reads keys from JSON for the command line renderer.

Accepted shapes: a single key object, a list of keys, or ``{"keys": [...]}``.
Field names follow the layout editor's serialized form::

    {
      "labels": ["Esc", null, ...],          # up to 12 slots
      "textColor": ["#333", ...], "textSize": [3, ...],
      "default": {"textColor": "#000000", "textSize": 3},
      "x": 0, "y": 0, "width": 1, "height": 1,
      "rotation_angle": 0, "rotation_x": 0, "rotation_y": 0,
      "color": "#cccccc", "sm": "rot_ec11"   # rotary encoder switch mount
    }

This is where labels enter from outside, so inline SVG is sanitized here.
"""

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Union

from keylegend.rendering import KeyGeometry, KeyLabels
from keylegend.text.svg_processor import sanitize_svg
from keylegend.utils.exceptions import ValidationError

SVG_BLOCK_PATTERN = re.compile(r"<svg\b.*?</svg\s*>", re.IGNORECASE | re.DOTALL)
ROTARY_MOUNTS = ("rot_ec11",)


@dataclass
class KeySpec:
    labels: KeyLabels
    geometry: KeyGeometry
    color: str = "#cccccc"


def sanitize_label(label: str) -> str:
    """Sanitizes every inline <svg> block of a label, leaving other markup untouched."""
    return SVG_BLOCK_PATTERN.sub(lambda m: sanitize_svg(m.group(0)), label)


def _number(data: dict, name: str, default: float) -> float:
    value = data.get(name, default)
    if value is None:
        return default
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        raise ValidationError(f"Key field '{name}' must be a number, got {value!r}")
    return value


def _list(data: dict, name: str) -> list:
    value = data.get(name) or []
    if not isinstance(value, list):
        raise ValidationError(f"Key field '{name}' must be a list")
    return value


def parse_key(data: Any, unit: float = 54, sanitize: bool = True) -> KeySpec:
    """
    Raises:
        ValidationError: If the key object is malformed
    """
    if not isinstance(data, dict):
        raise ValidationError(f"Key must be an object, got {type(data).__name__}")

    labels = [label if isinstance(label, str) else None for label in _list(data, "labels")]
    if sanitize:
        labels = [sanitize_label(label) if label else label for label in labels]
    defaults = data.get("default") or {}

    key_labels = KeyLabels(
        labels=labels,
        text_colors=_list(data, "textColor"),
        text_sizes=_list(data, "textSize"),
        default_text_color=defaults.get("textColor") or "#000000",
        default_text_size=_number(defaults, "textSize", 3),
        rotary=data.get("sm") in ROTARY_MOUNTS or bool(data.get("rotary")),
    )
    geometry = KeyGeometry.from_key(
        x=_number(data, "x", 0),
        y=_number(data, "y", 0),
        width=_number(data, "width", 1),
        height=_number(data, "height", 1),
        unit=unit,
        rotation_angle=_number(data, "rotation_angle", 0),
        rotation_x=_number(data, "rotation_x", 0),
        rotation_y=_number(data, "rotation_y", 0),
    )
    return KeySpec(key_labels, geometry, data.get("color") or "#cccccc")


def load_keys(source: Union[str, Path, dict, list], unit: float = 54, sanitize: bool = True) -> List[KeySpec]:
    """
    Loads keys from a JSON file path or already-decoded JSON data.

    Raises:
        ValidationError: If the file is unreadable, not JSON, or malformed
    """
    if isinstance(source, (str, Path)):
        try:
            with open(source, "r", encoding="utf-8") as f:
                data = json.load(f)
        except OSError as e:
            raise ValidationError(f"Cannot read key file {source}: {e}") from e
        except json.JSONDecodeError as e:
            raise ValidationError(f"Invalid JSON in {source}: {e}") from e
    else:
        data = source

    if isinstance(data, dict) and "keys" in data:
        data = data["keys"]
    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        raise ValidationError("Expected a key object or a list of keys")
    return [parse_key(item, unit, sanitize) for item in data]
