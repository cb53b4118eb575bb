"""
keylegend Core Package

Label layout and rendering engine for a visual keyboard layout editor.
Parses the markup assigned to each key label slot, lays it out inside the
key and draws it with Skia, tracking clickable links for hit testing.
"""

from .caching import ImageCache, LRUCache, ParseCache, RenderCaches, SVGCache
from .link_tracker import LinkBoundingBox, LinkTracker
from .rendering import KeyGeometry, KeyLabels, LabelRenderer, LabelStyle
from .scheduler import RenderScheduler

__version__ = "1.0.0"
__version_info__ = (1, 0, 0)
__license__ = "Apache-2.0"
__description__ = "Label layout and rendering engine for keyboard layout editors"
__all__ = [
    "LRUCache",
    "ParseCache",
    "SVGCache",
    "ImageCache",
    "RenderCaches",
    "LinkBoundingBox",
    "LinkTracker",
    "KeyGeometry",
    "KeyLabels",
    "LabelRenderer",
    "LabelStyle",
    "RenderScheduler",
]
