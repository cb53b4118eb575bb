import time
import urllib.parse
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from keylegend.config import AssetConfig, CacheConfig
from keylegend.utils.exceptions import ValidationError
from keylegend.utils.logging import log_message


@dataclass(frozen=True)
class CacheStats:
    hits: int
    misses: int
    evictions: int
    size: int
    max_size: int
    hit_rate: float


# --- LRU Cache Implementation ---
class LRUCache:
    """
    LRU cache with hit/miss/eviction statistics.

    Entries are kept in access order (oldest first). A capacity of 0 is
    valid: nothing is ever retained.
    """

    def __init__(self, max_size: int = 1000):
        if max_size < 0:
            raise ValidationError(f"Cache size must be >= 0, got {max_size}")
        self.max_size = max_size
        self.cache = OrderedDict()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def get(self, key, default=None):
        if key in self.cache:
            # Move to end (most recently used)
            self.cache.move_to_end(key)
            self.hits += 1
            return self.cache[key]
        self.misses += 1
        return default

    def set(self, key, value) -> None:
        if self.max_size == 0:
            return
        if key in self.cache:
            # Update existing key
            self.cache.move_to_end(key)
        elif len(self.cache) >= self.max_size:
            # Remove least recently used (first item) before inserting
            self.cache.popitem(last=False)
            self.evictions += 1
        self.cache[key] = value

    put = set

    def has(self, key) -> bool:
        """Membership test; does not touch recency or statistics."""
        return key in self.cache

    def delete(self, key) -> bool:
        if key in self.cache:
            del self.cache[key]
            return True
        return False

    def clear(self) -> None:
        self.cache.clear()
        self.reset_stats()

    def resize(self, new_max_size: int) -> None:
        """Changes capacity, evicting the oldest entries if over the new limit."""
        if new_max_size < 0:
            raise ValidationError(f"Cache size must be >= 0, got {new_max_size}")
        self.max_size = new_max_size
        while len(self.cache) > self.max_size:
            self.cache.popitem(last=False)
            self.evictions += 1

    def reset_stats(self) -> None:
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def get_stats(self) -> CacheStats:
        total = self.hits + self.misses
        return CacheStats(
            hits=self.hits,
            misses=self.misses,
            evictions=self.evictions,
            size=len(self.cache),
            max_size=self.max_size,
            hit_rate=self.hits / total if total > 0 else 0.0,
        )

    def keys(self) -> Iterator:
        return iter(list(self.cache.keys()))

    def values(self) -> Iterator:
        return iter(list(self.cache.values()))

    def items(self) -> Iterator[Tuple[Any, Any]]:
        return iter(list(self.cache.items()))

    def __len__(self) -> int:
        return len(self.cache)

    def __contains__(self, key) -> bool:
        return key in self.cache

    def __delitem__(self, key):
        if key in self.cache:
            del self.cache[key]


class ParseCache:
    """Memoizes label parse results keyed by the raw label string."""

    def __init__(self, max_size: int = 1000):
        self._cache = LRUCache(max_size=max_size)

    def get_parsed(self, text: str, parser: Callable[[str], Any]):
        """
        Cached parse result for ``text``; ``parser`` is only called on a miss.
        """
        cached = self._cache.get(text)
        if cached is not None:
            return cached
        result = parser(text)
        self._cache.set(text, result)
        return result

    def remove(self, text: str) -> bool:
        return self._cache.delete(text)

    def has(self, text: str) -> bool:
        return self._cache.has(text)

    def clear(self) -> None:
        self._cache.clear()

    def resize(self, new_max_size: int) -> None:
        self._cache.resize(new_max_size)

    def reset_stats(self) -> None:
        self._cache.reset_stats()

    def get_stats(self) -> CacheStats:
        return self._cache.get_stats()

    @property
    def size(self) -> int:
        return len(self._cache)


def _rasterize_svg(svg_content: str):
    """Renders SVG markup to a skia.Image at its intrinsic size, or None on failure."""
    import skia

    from keylegend.text import svg_processor

    try:
        data = skia.Data.MakeWithCopy(svg_content.encode("utf-8"))
        dom = skia.SVGDOM.MakeFromStream(skia.MemoryStream(data))
        if dom is None:
            return None
        width, height = svg_processor.get_dimensions(svg_content)
        size = dom.containerSize()
        width = int(round(width or size.width() or 0))
        height = int(round(height or size.height() or 0))
        if width <= 0 or height <= 0:
            return None
        dom.setContainerSize(skia.Size(width, height))
        surface = skia.Surface(width, height)
        with surface as canvas:
            dom.render(canvas)
        return surface.makeImageSnapshot()
    except Exception as e:
        log_message(f"SVG rasterization failed: {e}", always_print=True)
        return None


class SVGCache:
    """
    Caches inline SVG markup -> rasterized, drawable image.

    A failed rasterization is cached too (as None) so a broken graphic is
    not re-processed on every frame.
    """

    _FAILED = object()

    def __init__(self, max_size: int = 1000, rasterizer: Optional[Callable[[str], Any]] = None):
        self._cache = LRUCache(max_size=max_size)
        self._rasterizer = rasterizer or _rasterize_svg

    def get_raster(self, svg_content: str):
        cached = self._cache.get(svg_content)
        if cached is not None:
            return None if cached is self._FAILED else cached
        raster = self._rasterizer(svg_content)
        self._cache.set(svg_content, self._FAILED if raster is None else raster)
        return raster

    @staticmethod
    def to_data_url(svg_content: str) -> str:
        """Percent-encoded data URL, suitable as an image source when exporting."""
        return "data:image/svg+xml;charset=utf-8," + urllib.parse.quote(svg_content, safe="")

    def remove(self, svg_content: str) -> bool:
        return self._cache.delete(svg_content)

    def has(self, svg_content: str) -> bool:
        return self._cache.has(svg_content)

    def clear(self) -> None:
        self._cache.clear()

    def resize(self, new_max_size: int) -> None:
        self._cache.resize(new_max_size)

    def reset_stats(self) -> None:
        self._cache.reset_stats()

    def get_stats(self) -> CacheStats:
        return self._cache.get_stats()

    @property
    def size(self) -> int:
        return len(self._cache)


LOADING = "loading"
ERROR = "error"


@dataclass(frozen=True)
class LoadedImage:
    """A decoded, drawable image with its natural size."""

    image: Any
    width: int
    height: int


@dataclass(frozen=True)
class ImageCacheStats:
    loaded: int
    loading: int
    errors: int
    total: int
    max_size: int
    evictions: int


class ImageCache:
    """
    Manages asset loading state per URL: LOADING, ERROR or a LoadedImage.

    At most one fetch is issued per URL. Requests arriving while a fetch is in
    flight queue their callbacks, even if the LRU entry was evicted meanwhile;
    when the fetch settles (success, failure or timeout) every queued callback
    is posted to the scheduler and runs once on its next flush.

    Args:
        scheduler: RenderScheduler that runs completion callbacks on the UI thread.
        fetcher: Callable ``fetcher(url, on_success, on_failure)`` starting an
            asynchronous load. ``on_success`` takes a LoadedImage, ``on_failure``
            an exception. Both may be called from any thread.
        max_size: Cache capacity.
        load_timeout: Seconds after which a pending load is forced to ERROR.
        clock: Monotonic time source.
    """

    def __init__(
        self,
        scheduler,
        fetcher: Optional[Callable] = None,
        max_size: int = 1000,
        load_timeout: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
        verbose: bool = False,
    ):
        self._cache = LRUCache(max_size=max_size)
        self._callbacks: Dict[str, List[Callable[[], None]]] = {}
        self._error_callbacks: Dict[str, List[Callable[[str], None]]] = {}
        self._started: Dict[str, float] = {}
        self._scheduler = scheduler
        self._fetcher = fetcher
        self._clock = clock
        self.load_timeout = load_timeout
        self.verbose = verbose

    @property
    def fetcher(self) -> Optional[Callable]:
        return self._fetcher

    def get_image(self, url: str) -> Optional[LoadedImage]:
        """The loaded image, or None while loading, after failure, or if unknown."""
        cached = self._cache.get(url)
        return cached if isinstance(cached, LoadedImage) else None

    def get_state(self, url: str):
        return self._cache.get(url)

    def load_image(
        self,
        url: str,
        on_load: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[str], None]] = None,
    ) -> None:
        """
        Starts loading ``url`` unless a load is already in flight or settled.

        ``on_load`` runs on the next scheduler flush after the load settles,
        whether it succeeded or failed, so dependent views can refresh.
        """
        if url in self._started:
            # In flight; the LRU entry may have been evicted meanwhile
            if not self._cache.has(url):
                self._cache.set(url, LOADING)
            if on_load:
                self._callbacks.setdefault(url, []).append(on_load)
            if on_error:
                self._error_callbacks.setdefault(url, []).append(on_error)
            return
        state = self._cache.get(url)
        if state is not None:
            # Already loaded or failed: run on the next flush
            if on_load:
                self._scheduler.post(on_load)
            return

        if self._fetcher is None:
            raise ValidationError("ImageCache has no fetcher configured")

        self._cache.set(url, LOADING)
        self._started[url] = self._clock()
        self._callbacks[url] = [on_load] if on_load else []
        self._error_callbacks[url] = [on_error] if on_error else []
        log_message(f"Loading image: {url[:80]}", verbose=self.verbose)

        self._fetcher(
            url,
            lambda loaded: self._scheduler.post(lambda: self._on_loaded(url, loaded)),
            lambda error: self._scheduler.post(lambda: self._on_failed(url, error)),
        )

    def _on_loaded(self, url: str, loaded: LoadedImage) -> None:
        if url not in self._started:
            return  # timed out, removed or cleared meanwhile
        self._cache.set(url, loaded)
        self._settle(url)

    def _on_failed(self, url: str, error) -> None:
        if url not in self._started:
            return
        log_message(f"Failed to load image: {url[:80]}: {error}", always_print=True)
        self._cache.set(url, ERROR)
        for callback in self._error_callbacks.get(url, []):
            callback(url)
        self._settle(url)

    def _settle(self, url: str) -> None:
        self._started.pop(url, None)
        self._error_callbacks.pop(url, None)
        # Every waiter runs once, on the same flush
        for callback in self._callbacks.pop(url, []):
            self._scheduler.post(callback)

    def expire_stale(self, now: Optional[float] = None) -> List[str]:
        """Forces loads pending longer than ``load_timeout`` into the ERROR state."""
        now = self._clock() if now is None else now
        expired = [url for url, started in self._started.items() if now - started >= self.load_timeout]
        for url in expired:
            self._on_failed(url, f"timed out after {self.load_timeout:.1f}s")
        return expired

    def is_loaded(self, url: str) -> bool:
        return isinstance(self._cache.get(url), LoadedImage)

    def is_loading(self, url: str) -> bool:
        return url in self._started

    def has_error(self, url: str) -> bool:
        return self._cache.get(url) == ERROR

    def has(self, url: str) -> bool:
        return self._cache.has(url)

    def remove(self, url: str) -> bool:
        self._callbacks.pop(url, None)
        self._error_callbacks.pop(url, None)
        self._started.pop(url, None)
        return self._cache.delete(url)

    def clear(self) -> None:
        self._cache.clear()
        self._callbacks.clear()
        self._error_callbacks.clear()
        self._started.clear()

    def resize(self, new_max_size: int) -> None:
        self._cache.resize(new_max_size)

    def get_stats(self) -> ImageCacheStats:
        loaded = loading = errors = 0
        for state in self._cache.values():
            if isinstance(state, LoadedImage):
                loaded += 1
            elif state == LOADING:
                loading += 1
            elif state == ERROR:
                errors += 1
        return ImageCacheStats(
            loaded=loaded,
            loading=loading,
            errors=errors,
            total=len(self._cache),
            max_size=self._cache.max_size,
            evictions=self._cache.evictions,
        )

    @property
    def size(self) -> int:
        return len(self._cache)


class RenderCaches:
    """
    The caches one renderer instance owns: parsed labels, rasterized inline
    SVGs and external image load state.
    """

    def __init__(
        self,
        scheduler,
        cache_config: Optional[CacheConfig] = None,
        asset_config: Optional[AssetConfig] = None,
        fetcher: Optional[Callable] = None,
        svg_rasterizer: Optional[Callable[[str], Any]] = None,
        verbose: bool = False,
    ):
        cache_config = cache_config or CacheConfig()
        asset_config = asset_config or AssetConfig()
        if fetcher is None:
            from keylegend.assets import AssetFetcher

            fetcher = AssetFetcher(asset_config, verbose=verbose)
        self.parse = ParseCache(max_size=cache_config.parse_cache_size)
        self.svg = SVGCache(max_size=cache_config.svg_cache_size, rasterizer=svg_rasterizer)
        self.images = ImageCache(
            scheduler,
            fetcher=fetcher,
            max_size=cache_config.image_cache_size,
            load_timeout=asset_config.load_timeout,
            verbose=verbose,
        )

    def clear_all(self) -> None:
        """Clear all caches."""
        self.parse.clear()
        self.svg.clear()
        self.images.clear()
        log_message("All caches cleared", always_print=True)

    def get_cache_stats(self) -> dict:
        """
        Get statistics about cache sizes.

        Returns:
            dict: Cache statistics
        """
        return {
            "parse": self.parse.get_stats(),
            "svg": self.svg.get_stats(),
            "images": self.images.get_stats(),
        }
