import json

import pytest

from keylegend.geometry import Rect
from keylegend.keyfile import load_keys, parse_key, sanitize_label
from keylegend.utils.exceptions import ValidationError


class TestSanitizeLabel:
    def test_only_svg_blocks_touched(self):
        label = '<b onclick="x()">A</b><svg width="4" onload="evil()"><script>bad()</script></svg>'
        cleaned = sanitize_label(label)
        assert cleaned.startswith('<b onclick="x()">A</b>')
        assert "onload" not in cleaned
        assert "script" not in cleaned

    def test_plain_label_unchanged(self):
        assert sanitize_label("Esc") == "Esc"


class TestParseKey:
    def test_full_key(self):
        key = parse_key(
            {
                "labels": ["Esc", None, 3],
                "textColor": ["#ff0000"],
                "textSize": [4],
                "default": {"textColor": "#222222", "textSize": 2},
                "x": 1,
                "y": 2,
                "width": 1.5,
                "color": "#eeeeee",
            }
        )
        assert key.labels.labels == ["Esc", None, None]
        assert key.labels.color_for(0) == "#ff0000"
        assert key.labels.default_text_color == "#222222"
        assert key.labels.default_text_size == 2
        assert key.geometry.cap == Rect(54, 108, 81, 54)
        assert key.color == "#eeeeee"
        assert not key.labels.rotary

    def test_defaults(self):
        key = parse_key({})
        assert key.labels.labels == []
        assert key.geometry.cap == Rect(0, 0, 54, 54)
        assert key.color == "#cccccc"

    def test_rotary_mount(self):
        assert parse_key({"sm": "rot_ec11"}).labels.rotary
        assert parse_key({"rotary": True}).labels.rotary

    def test_custom_unit(self):
        assert parse_key({"x": 1}, unit=19.05).geometry.cap.x == 19.05

    def test_labels_sanitized(self):
        key = parse_key({"labels": ['<svg onload="x()" width="4"></svg>']})
        assert "onload" not in key.labels.labels[0]

    def test_sanitize_disabled(self):
        key = parse_key({"labels": ['<svg onload="x()"></svg>']}, sanitize=False)
        assert "onload" in key.labels.labels[0]

    def test_rejects_non_object(self):
        with pytest.raises(ValidationError):
            parse_key(["Esc"])

    def test_rejects_bad_number(self):
        with pytest.raises(ValidationError):
            parse_key({"x": "1"})
        with pytest.raises(ValidationError):
            parse_key({"width": True})

    def test_rejects_bad_list(self):
        with pytest.raises(ValidationError):
            parse_key({"labels": "Esc"})


class TestLoadKeys:
    def test_shapes(self):
        assert len(load_keys({"labels": ["a"]})) == 1
        assert len(load_keys([{}, {}])) == 2
        assert len(load_keys({"keys": [{}, {}, {}]})) == 3

    def test_from_file(self, tmp_path):
        path = tmp_path / "keys.json"
        path.write_text(json.dumps({"keys": [{"labels": ["Q"]}]}), encoding="utf-8")
        keys = load_keys(path)
        assert keys[0].labels.labels == ["Q"]

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "keys.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ValidationError):
            load_keys(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ValidationError):
            load_keys(tmp_path / "missing.json")

    def test_wrong_top_level(self):
        with pytest.raises(ValidationError):
            load_keys(42)
