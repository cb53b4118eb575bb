"""
Unit tests for asset fetching and decoding.
"""

import base64
import io
import threading

import pytest
import requests
from PIL import Image

from keylegend import assets
from keylegend.assets import AssetFetcher, decode_image, fetch_bytes
from keylegend.config import AssetConfig
from keylegend.utils.exceptions import AssetLoadError, ImageProcessingError


def png_bytes(size=(3, 2), color=(255, 0, 0, 255)):
    buffer = io.BytesIO()
    Image.new("RGBA", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


class FakeResponse:
    def __init__(self, status_code=200, content=b"", headers=None):
        self.status_code = status_code
        self.content = content
        self.headers = headers or {}

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code}", response=self)


class TestFetchBytes:
    def test_base64_data_url(self):
        url = "data:image/png;base64," + base64.b64encode(b"abc").decode("ascii")
        assert fetch_bytes(url, 1) == (b"abc", "image/png")

    def test_percent_encoded_data_url(self):
        assert fetch_bytes("data:image/svg+xml;charset=utf-8,%3Csvg%3E", 1) == (b"<svg>", "image/svg+xml")

    def test_local_path(self, tmp_path):
        path = tmp_path / "icon.png"
        path.write_bytes(b"png")
        assert fetch_bytes(str(path), 1) == (b"png", "")
        assert fetch_bytes(path.as_uri(), 1) == (b"png", "")

    def test_missing_file(self, tmp_path):
        with pytest.raises(AssetLoadError):
            fetch_bytes(str(tmp_path / "missing.png"), 1)

    def test_http_success(self, monkeypatch):
        seen = {}

        def fake_get(url, headers, timeout):
            seen.update(url=url, headers=headers, timeout=timeout)
            return FakeResponse(content=b"img", headers={"Content-Type": "image/png"})

        monkeypatch.setattr(assets.requests, "get", fake_get)
        assert fetch_bytes("https://example.com/a.png", 3, "agent") == (b"img", "image/png")
        assert seen == {"url": "https://example.com/a.png", "headers": {"User-Agent": "agent"}, "timeout": 3}

    def test_http_error_status(self, monkeypatch):
        monkeypatch.setattr(assets.requests, "get", lambda url, headers, timeout: FakeResponse(404))
        with pytest.raises(AssetLoadError, match="404"):
            fetch_bytes("https://example.com/a.png", 3)

    def test_connection_error(self, monkeypatch):
        def fake_get(url, headers, timeout):
            raise requests.exceptions.ConnectionError("refused")

        monkeypatch.setattr(assets.requests, "get", fake_get)
        with pytest.raises(AssetLoadError):
            fetch_bytes("http://example.com/a.png", 3)


class TestDecodeImage:
    def test_png(self):
        loaded = decode_image(png_bytes((3, 2)), "a.png")
        assert (loaded.width, loaded.height) == (3, 2)
        assert loaded.image.width() == 3

    def test_undecodable(self):
        with pytest.raises(ImageProcessingError):
            decode_image(b"not an image", "a.png")

    def test_svg_detected_by_extension(self, monkeypatch):
        monkeypatch.setattr(assets, "_rasterize_svg", lambda content: None)
        with pytest.raises(ImageProcessingError):
            decode_image(b"<svg></svg>", "icon.svg")

    def test_svg_detection(self):
        assert assets._is_svg_source("https://x/icon.SVG?v=2")
        assert assets._is_svg_source("data:image/svg+xml,%3Csvg")
        assert assets._is_svg_source("https://x/icon", "image/svg+xml; charset=utf-8")
        assert not assets._is_svg_source("https://x/icon.png", "image/png")


class TestAssetFetcher:
    def test_loads_on_worker_thread(self):
        fetcher = AssetFetcher(AssetConfig(max_workers=1))
        done = threading.Event()
        results = []

        def on_success(loaded):
            results.append((loaded.width, loaded.height, threading.current_thread().name))
            done.set()

        url = "data:image/png;base64," + base64.b64encode(png_bytes((4, 4))).decode("ascii")
        try:
            fetcher(url, on_success, lambda error: done.set())
            assert done.wait(5)
        finally:
            fetcher.shutdown(wait=True)
        width, height, thread_name = results[0]
        assert (width, height) == (4, 4)
        assert thread_name.startswith("keylegend-assets")

    def test_failure_reported(self, tmp_path):
        fetcher = AssetFetcher()
        done = threading.Event()
        errors = []

        def on_failure(error):
            errors.append(error)
            done.set()

        try:
            fetcher(str(tmp_path / "missing.png"), lambda loaded: done.set(), on_failure)
            assert done.wait(5)
        finally:
            fetcher.shutdown(wait=True)
        assert isinstance(errors[0], AssetLoadError)

    def test_unexpected_decode_error_reported(self, monkeypatch):
        def broken_decode(data, url="", content_type=""):
            raise RuntimeError("frombytes failed")

        monkeypatch.setattr(assets, "decode_image", broken_decode)
        fetcher = AssetFetcher()
        done = threading.Event()
        errors = []

        def on_failure(error):
            errors.append(error)
            done.set()

        url = "data:image/png;base64," + base64.b64encode(png_bytes()).decode("ascii")
        try:
            fetcher(url, lambda loaded: done.set(), on_failure)
            assert done.wait(5)
        finally:
            fetcher.shutdown(wait=True)
        assert isinstance(errors[0], AssetLoadError)
        assert "frombytes failed" in str(errors[0])
