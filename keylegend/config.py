import os
from dataclasses import dataclass, field
from typing import Optional

DEFAULT_FONT_FAMILY = "Helvetica Neue"


@dataclass
class CacheConfig:
    """Capacities of the render caches."""

    parse_cache_size: int = 1000
    svg_cache_size: int = 1000
    image_cache_size: int = 1000


@dataclass
class AssetConfig:
    """Configuration for fetching external label images."""

    load_timeout: float = 10.0  # seconds before a pending load is marked failed
    max_workers: int = 4
    user_agent: str = "keylegend/1.0"


@dataclass
class RenderingConfig:
    """Configuration for drawing key labels."""

    font_dir: Optional[str] = None
    font_family: str = DEFAULT_FONT_FAMILY
    unit: float = 54.0
    default_text_size: int = 3
    default_text_color: str = "#000000"
    link_color: str = "#0066cc"
    placeholder_color: str = "#cccccc"
    line_height_factor: float = 1.2
    use_subpixel_rendering: bool = True
    font_hinting: str = "none"
    use_ligatures: bool = False
    list_indent: float = 8.0
    verbose: bool = False


@dataclass
class KeyLegendConfig:
    """Main configuration for the label engine."""

    rendering: RenderingConfig = field(default_factory=RenderingConfig)
    caches: CacheConfig = field(default_factory=CacheConfig)
    assets: AssetConfig = field(default_factory=AssetConfig)
    verbose: bool = False

    def __post_init__(self):
        # Font directory may come from the environment if not set explicitly
        if not self.rendering.font_dir:
            self.rendering.font_dir = os.environ.get("KEYLEGEND_FONT_DIR") or None
        if self.verbose:
            self.rendering.verbose = True
