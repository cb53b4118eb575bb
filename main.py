import argparse
import time
from pathlib import Path

from keylegend.caching import RenderCaches
from keylegend.config import AssetConfig, KeyLegendConfig, RenderingConfig
from keylegend.image_utils import save_image_with_compression
from keylegend.keyfile import load_keys
from keylegend.link_tracker import LinkTracker
from keylegend.rendering import LabelRenderer, draw_keycap, surface_size
from keylegend.scheduler import RenderScheduler
from keylegend.text.drawing_engine import new_surface, skia_surface_to_pil
from keylegend.text.font_manager import FontSet
from keylegend.utils.exceptions import ImageProcessingError, RenderingError, ValidationError
from keylegend.utils.logging import log_message


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Render keyboard key labels to an image")
    parser.add_argument(
        "--input",
        type=str,
        required=True,
        help="Path to a JSON file with one key, a list of keys, or {\"keys\": [...]}",
    )
    parser.add_argument(
        "--output",
        type=str,
        required=False,
        help="Path to save the rendered image (.png, .jpg, .webp)",
    )
    parser.add_argument(
        "--font-dir",
        type=str,
        default=None,
        help="Directory with regular/bold/italic font files (overrides KEYLEGEND_FONT_DIR)",
    )
    parser.add_argument("--font-family", type=str, default=None, help="Font family used when no font directory is set")
    parser.add_argument("--unit", type=float, default=54.0, help="Pixels per key unit")
    parser.add_argument(
        "--hover-href",
        type=str,
        default=None,
        help="Render as if the pointer were over links with this href (underlined)",
    )
    parser.add_argument(
        "--click",
        type=float,
        nargs=2,
        metavar=("X", "Y"),
        default=None,
        help="Canvas coordinates to hit test against rendered links",
    )
    parser.add_argument(
        "--wait",
        type=float,
        default=5.0,
        help="Seconds to wait for external images before saving",
    )
    parser.add_argument("--load-timeout", type=float, default=10.0, help="Seconds before an image load is failed")
    parser.add_argument("--png-compression", type=int, default=6, help="PNG compression level (0-9)")
    parser.add_argument("--jpeg-quality", type=int, default=95, help="JPEG quality (1-100)")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    return parser


def main():
    args = build_parser().parse_args()

    rendering = RenderingConfig(font_dir=args.font_dir, unit=args.unit)
    if args.font_family:
        rendering.font_family = args.font_family
    config = KeyLegendConfig(
        rendering=rendering,
        assets=AssetConfig(load_timeout=args.load_timeout),
        verbose=args.verbose,
    )

    input_path = Path(args.input)
    if not input_path.is_file():
        log_message(f"Error: Input '{args.input}' is not a valid file.", always_print=True)
        exit(1)

    try:
        keys = load_keys(input_path, unit=config.rendering.unit)
    except ValidationError as e:
        log_message(f"Error: {e}", always_print=True)
        exit(1)
    if not keys:
        log_message("Error: no keys to render", always_print=True)
        exit(1)

    scheduler = RenderScheduler()
    caches = RenderCaches(scheduler, config.caches, config.assets, verbose=config.verbose)
    font_set = FontSet.from_config(config.rendering)

    dirty = {"value": True}
    renderer = LabelRenderer(
        font_set,
        caches,
        LinkTracker(),
        scheduler,
        config.rendering,
        on_refresh=lambda: dirty.update(value=True),
    )
    renderer.set_active_href(args.hover_href)
    width, height = surface_size([key.geometry for key in keys])

    def render_all():
        surface = new_surface(width, height, "#ffffff")
        with surface as canvas:
            renderer.begin_pass()
            for key in keys:
                draw_keycap(canvas, key.geometry, key.color)
                renderer.draw_key_labels(canvas, key.labels, key.geometry)
        dirty["value"] = False
        return surface

    surface = render_all()
    deadline = time.monotonic() + max(0.0, args.wait)
    while caches.images.get_stats().loading and time.monotonic() < deadline:
        time.sleep(0.05)
        renderer.tick()
        if dirty["value"]:
            surface = render_all()
    renderer.tick()
    if dirty["value"]:
        surface = render_all()

    pending = caches.images.get_stats().loading
    if pending:
        log_message(f"{pending} image(s) still loading; saved with placeholders", always_print=True)

    if args.click:
        hit = renderer.link_tracker.get_link_at_position(args.click[0], args.click[1])
        if hit:
            log_message(f"Hit {hit.id}: {hit.href} ({hit.display_text})", always_print=True)
        else:
            log_message("No link at that position", always_print=True)

    if args.output:
        output_path = Path(args.output)
    else:
        timestamp = time.strftime("%Y%m%d_%H%M%S")
        output_path = Path("./output") / f"{input_path.stem}_{timestamp}.png"
        log_message(f"--output not specified, using default: {output_path}", always_print=True)
    try:
        saved = save_image_with_compression(
            skia_surface_to_pil(surface),
            output_path,
            jpeg_quality=args.jpeg_quality,
            png_compression=args.png_compression,
            verbose=config.verbose,
        )
        log_message(f"Rendered {len(keys)} key(s) to {saved}", always_print=True)
    except (RenderingError, ImageProcessingError) as e:
        log_message(f"Error saving {output_path}: {e}", always_print=True)
        exit(1)
    finally:
        fetcher = caches.images.fetcher
        if hasattr(fetcher, "shutdown"):
            fetcher.shutdown()


if __name__ == "__main__":
    main()
