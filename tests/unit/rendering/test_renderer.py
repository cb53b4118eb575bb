"""
Unit tests for LabelRenderer.

The canvas is a recorder and the font set measures 0.5em per character, so
tests can assert exact draw positions without rasterizing anything. Asset
loads go through a fake fetcher that the test settles explicitly.
"""

import pytest

from keylegend.caching import LoadedImage, RenderCaches
from keylegend.geometry import Point, Rect
from keylegend.link_tracker import LinkTracker
from keylegend.rendering import (
    KeyGeometry,
    KeyLabels,
    LabelRenderer,
    LabelStyle,
    draw_keycap,
    line_top,
    surface_size,
)
from keylegend.scheduler import RenderScheduler
from keylegend.text.font_manager import FontSet
from keylegend.text.layout_engine import layout


class RecordingCanvas:
    def __init__(self):
        self.calls = []

    def __getattr__(self, name):
        def record(*args):
            self.calls.append((name,) + args)

        return record

    def named(self, name):
        return [call for call in self.calls if call[0] == name]

    def texts(self):
        return [call[1] for call in self.named("text")]


class HalfEmFontSet(FontSet):
    def __init__(self):
        super().__init__({"regular": "regular-face"})

    def measure_text(self, text, style_name, font_size):
        return 0.5 * font_size * len(text)

    def ascent(self, style_name, font_size):
        return font_size * 0.8

    def draw_text(self, canvas, text, style_name, font_size, x, baseline_y, paint):
        canvas.calls.append(("text", text, x, baseline_y, style_name))
        return self.measure_text(text, style_name, font_size)


class FakeFetcher:
    def __init__(self):
        self.calls = []

    def __call__(self, url, on_success, on_failure):
        self.calls.append((url, on_success, on_failure))

    def succeed(self, index=0, image="bitmap", width=20, height=10):
        self.calls[index][1](LoadedImage(image, width, height))

    def fail(self, index=0):
        self.calls[index][2]("unreachable")


class FakeRaster:
    def __init__(self, width, height):
        self._width = width
        self._height = height

    def width(self):
        return self._width

    def height(self):
        return self._height


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def refreshes():
    return []


@pytest.fixture
def renderer(fetcher, refreshes):
    scheduler = RenderScheduler()
    caches = RenderCaches(scheduler, fetcher=fetcher, svg_rasterizer=lambda content: FakeRaster(10, 10))
    return LabelRenderer(
        HalfEmFontSet(),
        caches,
        LinkTracker(),
        scheduler,
        on_refresh=lambda: refreshes.append(True),
    )


@pytest.fixture
def canvas():
    return RecordingCanvas()


def render_markup(renderer, canvas, markup, font_size=10, **kwargs):
    nodes = renderer.parser.parse(markup)
    lines = layout(nodes, 200, 100, "left", "hanging", 12, renderer.measure_for(font_size))
    renderer.render(canvas, lines, LabelStyle(font_size, "#000000", line_height=12), **kwargs)
    return lines


def image_rect(call):
    rect = call[2]
    return rect.left(), rect.top(), rect.width(), rect.height()


class TestKeyGeometry:
    def test_one_unit_key(self):
        geometry = KeyGeometry.from_key(0, 0)
        assert geometry.cap == Rect(0, 0, 54, 54)
        assert geometry.outer == Rect(0, 0, 54, 54)
        assert geometry.inner == Rect(6, 3, 42, 42)
        assert geometry.text == Rect(9, 6, 36, 36)

    def test_position_and_rotation_origin(self):
        geometry = KeyGeometry.from_key(1, 0, width=2, rotation_angle=15, rotation_x=1, rotation_y=0.5)
        assert geometry.cap == Rect(54, 0, 108, 54)
        assert geometry.rotation_angle == 15
        assert geometry.rotation_origin == Point(54, 27)

    def test_surface_size(self):
        assert surface_size([KeyGeometry.from_key(0, 0)]) == (64, 78)


class TestKeyLabels:
    def test_per_slot_overrides(self):
        labels = KeyLabels(["a"], text_colors=["#ff0000"], text_sizes=[5], default_text_color="#111111")
        assert labels.color_for(0) == "#ff0000"
        assert labels.color_for(3) == "#111111"
        assert labels.size_for(0) == 5
        assert labels.size_for(3) is None


class TestLineTop:
    def test_baseline_modes(self):
        assert line_top(20, "hanging", 10) == 20
        assert line_top(20, "middle", 10) == 15
        assert line_top(20, "alphabetic", 10) == 10


class TestTextRendering:
    def test_text_drawn_at_baseline(self, renderer, canvas):
        render_markup(renderer, canvas, "Esc")
        assert canvas.named("text") == [("text", "Esc", 0, 8, "regular")]

    def test_styled_runs(self, renderer, canvas):
        render_markup(renderer, canvas, "A <b>B</b>")
        assert [(call[1], call[4]) for call in canvas.named("text")] == [("A", "regular"), (" B", "bold")]
        assert canvas.named("text")[1][2] == 5

    def test_list_items_stacked(self, renderer, canvas):
        render_markup(renderer, canvas, "<ul><li>One</li><li>Two</li></ul>")
        assert canvas.texts() == ["• ", "One", "• ", "Two"]
        baselines = [call[3] for call in canvas.named("text")]
        assert baselines[2] - baselines[0] == pytest.approx(12)

    def test_rotation_wraps_draw(self, renderer, canvas):
        render_markup(renderer, canvas, "R", origin=Point(5, 5), rotation=30)
        assert canvas.calls[:4] == [("save",), ("translate", 5, 5), ("rotate", 30), ("translate", -5, -5)]
        assert canvas.calls[-1] == ("restore",)

    def test_no_rotation_no_save(self, renderer, canvas):
        render_markup(renderer, canvas, "R")
        assert not canvas.named("save")


class TestLinks:
    def test_one_region_per_word(self, renderer, canvas):
        render_markup(renderer, canvas, '<a href="https://x.io">Go there</a>')
        boxes = renderer.link_tracker.links
        assert [box.display_text for box in boxes] == ["Go", "there"]
        assert {box.href for box in boxes} == {"https://x.io"}
        assert (boxes[0].local_x, boxes[0].local_width, boxes[0].local_height) == (0, 10, 10)
        assert (boxes[1].local_x, boxes[1].local_width) == (15, 25)

    def test_regions_carry_rotation(self, renderer, canvas):
        render_markup(renderer, canvas, '<a href="#">k</a>', origin=Point(5, 6), rotation=45)
        box = renderer.link_tracker.links[0]
        assert (box.rotation_angle, box.rotation_origin_x, box.rotation_origin_y) == (45, 5, 6)

    def test_underline_only_when_active(self, renderer, canvas):
        render_markup(renderer, canvas, '<a href="https://x.io">Go there</a> <a href="#">k</a>')
        assert canvas.named("drawLine") == []

        renderer.set_active_href("https://x.io")
        canvas.calls.clear()
        render_markup(renderer, canvas, '<a href="https://x.io">Go there</a> <a href="#">k</a>')
        assert len(canvas.named("drawLine")) == 2

    def test_begin_pass_clears_regions(self, renderer, canvas):
        render_markup(renderer, canvas, '<a href="#">k</a>')
        renderer.begin_pass()
        assert renderer.link_tracker.count == 0


class TestInlineImages:
    def test_placeholder_and_load_request(self, renderer, canvas, fetcher):
        render_markup(renderer, canvas, 'hi <img src="http://img/a.png" width="20" height="10">')
        assert len(canvas.named("drawRect")) == 1
        assert [call[0] for call in fetcher.calls] == ["http://img/a.png"]

    def test_loaded_image_drawn_after_refresh(self, renderer, canvas, fetcher, refreshes):
        markup = 'hi <img src="http://img/a.png" width="20" height="10">'
        render_markup(renderer, canvas, markup)
        fetcher.succeed(image="bitmap")
        renderer.tick()
        assert renderer.refresh_count == 1
        assert refreshes == [True]

        canvas.calls.clear()
        render_markup(renderer, canvas, markup)
        draws = canvas.named("drawImageRect")
        assert [call[1] for call in draws] == ["bitmap"]
        assert image_rect(draws[0]) == (10, 0, 20, 10)
        assert canvas.named("drawRect") == []

    def test_refresh_coalesced(self, renderer, canvas, fetcher):
        render_markup(renderer, canvas, '<img src="a.png"> and <img src="b.png">')
        assert len(fetcher.calls) == 2
        fetcher.succeed(0)
        fetcher.succeed(1)
        renderer.tick()
        assert renderer.refresh_count == 1

    def test_repeated_image_one_fetch_one_refresh(self, renderer, canvas, fetcher):
        render_markup(renderer, canvas, '<img src="a.png"> and <img src="a.png">')
        render_markup(renderer, canvas, '<img src="a.png">')
        assert len(fetcher.calls) == 1
        fetcher.succeed()
        renderer.tick()
        assert renderer.refresh_count == 1
        assert not renderer.scheduler.is_pending()

    def test_failed_image_skipped(self, renderer, canvas, fetcher):
        markup = 'x <img src="broken.png">'
        render_markup(renderer, canvas, markup)
        fetcher.fail()
        renderer.tick()

        canvas.calls.clear()
        render_markup(renderer, canvas, markup)
        assert canvas.named("drawRect") == []
        assert canvas.named("drawImageRect") == []
        assert len(fetcher.calls) == 1

    def test_timeout_settles_load(self, renderer, canvas, fetcher):
        render_markup(renderer, canvas, 'x <img src="slow.png">')
        renderer.tick(now=1e9)
        assert renderer.caches.images.has_error("slow.png")
        assert renderer.refresh_count == 1

    def test_inline_svg(self, renderer, canvas):
        render_markup(renderer, canvas, 'a <svg width="8" height="8"></svg>')
        draws = canvas.named("drawImageRect")
        assert len(draws) == 1
        assert image_rect(draws[0])[2:] == (8, 8)


class TestKeyLabelsDrawing:
    def test_text_slot(self, renderer, canvas):
        key = KeyLabels(["Esc"])
        renderer.draw_key_labels(canvas, key, KeyGeometry.from_key(0, 0))
        call = canvas.named("text")[0]
        assert call[1:3] == ("Esc", 10)
        assert call[3] == pytest.approx(9 + 12 * 0.8)

    def test_media_only_svg_on_grid(self, renderer, canvas):
        key = KeyLabels([None, None, None, None, '<svg width="10" height="10"></svg>'])
        renderer.draw_key_labels(canvas, key, KeyGeometry.from_key(0, 0))
        draws = canvas.named("drawImageRect")
        assert len(draws) == 1
        assert image_rect(draws[0]) == (22, 19, 10, 10)

    def test_media_only_image_loads_without_placeholder(self, renderer, canvas, fetcher):
        key = KeyLabels(['<img src="http://img/logo.png">'])
        geometry = KeyGeometry.from_key(0, 0)
        renderer.draw_key_labels(canvas, key, geometry)
        assert canvas.calls == []
        assert len(fetcher.calls) == 1

        fetcher.succeed(image="logo", width=12, height=12)
        renderer.tick()
        renderer.draw_key_labels(canvas, key, geometry)
        draws = canvas.named("drawImageRect")
        assert [call[1] for call in draws] == ["logo"]
        assert image_rect(draws[0]) == (6, 3, 12, 12)

    def test_rotary_has_no_front_legends(self, renderer, canvas):
        labels = [None] * 12
        labels[9] = "Front"
        renderer.draw_key_labels(canvas, KeyLabels(labels, rotary=True), KeyGeometry.from_key(0, 0))
        assert canvas.calls == []

    def test_front_legend_drawn_on_regular_key(self, renderer, canvas):
        labels = [None] * 12
        labels[9] = "Fn"
        renderer.draw_key_labels(canvas, KeyLabels(labels), KeyGeometry.from_key(0, 0))
        assert canvas.texts() == ["Fn"]

    def test_hidden_icon_label(self, renderer, canvas):
        renderer.draw_key_labels(canvas, KeyLabels(['<i class="fa fa-icon"></i>']), KeyGeometry.from_key(0, 0))
        assert canvas.calls == []


class TestKeycap:
    def test_two_layers(self, canvas):
        draw_keycap(canvas, KeyGeometry.from_key(0, 0), "#cccccc")
        assert len(canvas.named("drawRoundRect")) == 2
