import base64
import io
import os
import urllib.parse
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

import requests
from PIL import Image

from keylegend.caching import LoadedImage, _rasterize_svg
from keylegend.config import AssetConfig
from keylegend.utils.exceptions import AssetLoadError, ImageProcessingError
from keylegend.utils.logging import log_message


def _is_svg_source(url: str, content_type: str = "") -> bool:
    lowered = url.lower()
    return (
        lowered.split("?", 1)[0].endswith(".svg")
        or "image/svg+xml" in lowered[:64]
        or "image/svg+xml" in content_type
    )


def fetch_bytes(url: str, timeout: float, user_agent: str = "keylegend") -> tuple:
    """
    Reads the raw bytes behind an image source.

    Supports http(s) URLs, data: URLs, file: URLs and plain local paths.

    Returns:
        Tuple of (data, content_type)

    Raises:
        AssetLoadError: If the source cannot be read
    """
    if url.startswith("data:"):
        try:
            header, _, payload = url[5:].partition(",")
            content_type = header.split(";", 1)[0]
            if header.endswith(";base64"):
                return base64.b64decode(payload), content_type
            return urllib.parse.unquote_to_bytes(payload), content_type
        except (ValueError, TypeError) as e:
            raise AssetLoadError(f"Malformed data URL: {url[:40]}...") from e

    parsed = urllib.parse.urlparse(url)
    if parsed.scheme in ("http", "https"):
        try:
            response = requests.get(url, headers={"User-Agent": user_agent}, timeout=timeout)
            response.raise_for_status()
            return response.content, response.headers.get("Content-Type", "")
        except requests.exceptions.HTTPError as e:
            raise AssetLoadError(f"HTTP {e.response.status_code} for {url}") from e
        except requests.exceptions.RequestException as e:
            raise AssetLoadError(f"Connection error for {url}: {e}") from e

    path = urllib.parse.unquote(parsed.path) if parsed.scheme == "file" else url
    try:
        with open(os.path.expanduser(path), "rb") as f:
            return f.read(), ""
    except OSError as e:
        raise AssetLoadError(f"Cannot read image file {path}: {e}") from e


def decode_image(data: bytes, url: str = "", content_type: str = "") -> LoadedImage:
    """
    Decodes image bytes into a drawable skia image.

    Raises:
        ImageProcessingError: If the bytes are not a decodable image
    """
    import skia

    if _is_svg_source(url, content_type):
        raster = _rasterize_svg(data.decode("utf-8", errors="replace"))
        if raster is None:
            raise ImageProcessingError(f"Could not rasterize SVG image {url[:80]}")
        return LoadedImage(raster, raster.width(), raster.height())

    try:
        pil_image = Image.open(io.BytesIO(data))
        pil_image.load()
    except Exception as e:
        raise ImageProcessingError(f"Could not decode image {url[:80]}") from e

    if pil_image.mode != "RGBA":
        pil_image = pil_image.convert("RGBA")
    skia_image = skia.Image.frombytes(pil_image.tobytes(), pil_image.size, skia.kRGBA_8888_ColorType)
    if skia_image is None:
        raise ImageProcessingError(f"Failed to create Skia image for {url[:80]}")
    return LoadedImage(skia_image, pil_image.width, pil_image.height)


class AssetFetcher:
    """
    Loads images on worker threads.

    Instances are callables matching the ImageCache fetcher signature:
    ``fetcher(url, on_success, on_failure)``. Callbacks run on the worker
    thread; ImageCache posts them back to the UI thread.
    """

    def __init__(self, config: Optional[AssetConfig] = None, verbose: bool = False):
        self.config = config or AssetConfig()
        self.verbose = verbose
        self._executor: Optional[ThreadPoolExecutor] = None

    def __call__(
        self,
        url: str,
        on_success: Callable[[LoadedImage], None],
        on_failure: Callable[[Exception], None],
    ) -> None:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.config.max_workers, thread_name_prefix="keylegend-assets"
            )
        self._executor.submit(self._load, url, on_success, on_failure)

    def _load(self, url, on_success, on_failure) -> None:
        try:
            data, content_type = fetch_bytes(url, self.config.load_timeout, self.config.user_agent)
            loaded = decode_image(data, url, content_type)
        except (AssetLoadError, ImageProcessingError) as e:
            on_failure(e)
            return
        except Exception as e:
            # Anything raised here would otherwise stay inside the executor Future
            on_failure(AssetLoadError(f"Unexpected error loading {url[:80]}: {e}"))
            return
        log_message(f"Loaded image {url[:80]} ({loaded.width}x{loaded.height})", verbose=self.verbose)
        on_success(loaded)

    def shutdown(self, wait: bool = False) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None
