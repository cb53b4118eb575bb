"""
Unit tests for LRUCache, ParseCache and SVGCache.
"""

import urllib.parse

import pytest

from keylegend.caching import LRUCache, ParseCache, SVGCache
from keylegend.utils.exceptions import ValidationError


class TestLRUCache:
    def test_evicts_least_recently_used(self):
        cache = LRUCache(max_size=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)
        assert "a" not in cache
        assert list(cache.keys()) == ["b", "c"]
        assert cache.get_stats().evictions == 1

    def test_get_protects_entry(self):
        cache = LRUCache(max_size=2)
        cache.set("a", 1)
        cache.set("b", 2)
        assert cache.get("a") == 1
        cache.set("c", 3)
        assert "a" in cache
        assert "b" not in cache

    def test_update_existing_does_not_evict(self):
        cache = LRUCache(max_size=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("a", 10)
        assert len(cache) == 2
        assert cache.get("a") == 10
        assert cache.get_stats().evictions == 0

    def test_zero_capacity_retains_nothing(self):
        cache = LRUCache(max_size=0)
        cache.set("a", 1)
        assert len(cache) == 0
        assert cache.get("a") is None

    def test_negative_capacity_rejected(self):
        with pytest.raises(ValidationError):
            LRUCache(max_size=-1)

    def test_has_does_not_touch_stats_or_order(self):
        cache = LRUCache(max_size=2)
        cache.set("a", 1)
        cache.set("b", 2)
        assert cache.has("a")
        cache.set("c", 3)
        assert not cache.has("a")
        stats = cache.get_stats()
        assert stats.hits == 0
        assert stats.misses == 0

    def test_stats(self):
        cache = LRUCache(max_size=5)
        cache.set("a", 1)
        cache.get("a")
        cache.get("missing")
        stats = cache.get_stats()
        assert stats.hits == 1
        assert stats.misses == 1
        assert stats.size == 1
        assert stats.max_size == 5
        assert stats.hit_rate == 0.5

    def test_resize_evicts_oldest(self):
        cache = LRUCache(max_size=4)
        for key in "abcd":
            cache.set(key, key)
        cache.resize(2)
        assert list(cache.keys()) == ["c", "d"]
        assert cache.get_stats().evictions == 2

    def test_clear_resets_stats(self):
        cache = LRUCache(max_size=2)
        cache.set("a", 1)
        cache.get("a")
        cache.clear()
        stats = cache.get_stats()
        assert stats.size == 0
        assert stats.hits == 0

    def test_delete(self):
        cache = LRUCache()
        cache.set("a", 1)
        assert cache.delete("a")
        assert not cache.delete("a")


class TestParseCache:
    def test_parser_called_once(self):
        cache = ParseCache(max_size=10)
        calls = []

        def parser(text):
            calls.append(text)
            return (text.upper(),)

        assert cache.get_parsed("esc", parser) == ("ESC",)
        assert cache.get_parsed("esc", parser) == ("ESC",)
        assert calls == ["esc"]

    def test_remove_and_has(self):
        cache = ParseCache()
        cache.get_parsed("x", lambda text: (text,))
        assert cache.has("x")
        assert cache.remove("x")
        assert not cache.has("x")
        assert cache.size == 0


class TestSVGCache:
    def test_raster_memoized(self):
        calls = []

        def rasterizer(content):
            calls.append(content)
            return "raster"

        cache = SVGCache(rasterizer=rasterizer)
        assert cache.get_raster("<svg></svg>") == "raster"
        assert cache.get_raster("<svg></svg>") == "raster"
        assert len(calls) == 1

    def test_failure_is_cached(self):
        calls = []

        def rasterizer(content):
            calls.append(content)
            return None

        cache = SVGCache(rasterizer=rasterizer)
        assert cache.get_raster("<svg>bad</svg>") is None
        assert cache.get_raster("<svg>bad</svg>") is None
        assert len(calls) == 1
        assert cache.has("<svg>bad</svg>")

    def test_data_url(self):
        svg = '<svg width="4"><path d="M0 0"/></svg>'
        url = SVGCache.to_data_url(svg)
        assert url.startswith("data:image/svg+xml;charset=utf-8,")
        assert "<" not in url
        assert urllib.parse.unquote(url.split(",", 1)[1]) == svg
