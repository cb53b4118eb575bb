from keylegend.text import svg_processor


class TestDimensions:
    def test_attributes(self):
        assert svg_processor.extract_dimensions('<svg width="24" height="12.5"></svg>') == (24, 12.5)

    def test_stroke_width_not_mistaken_for_width(self):
        svg = '<svg stroke-width="3" height="10"></svg>'
        assert svg_processor.extract_dimensions(svg) == (None, 10)

    def test_percentages_ignored(self):
        assert svg_processor.extract_dimensions('<svg width="100%" height="50%"></svg>') == (None, None)

    def test_child_attributes_ignored(self):
        svg = '<svg viewBox="0 0 8 8"><rect width="5" height="5"/></svg>'
        assert svg_processor.extract_dimensions(svg) == (None, None)

    def test_viewbox(self):
        assert svg_processor.extract_viewbox_dimensions('<svg viewBox="0,0,30,40"></svg>') == (30, 40)

    def test_malformed_viewbox(self):
        assert svg_processor.extract_viewbox_dimensions('<svg viewBox="0 0 30"></svg>') == (None, None)

    def test_partial_attributes_filled_from_viewbox(self):
        svg = '<svg width="16" viewBox="0 0 32 48"></svg>'
        assert svg_processor.get_dimensions(svg) == (16, 48)

    def test_neither_source(self):
        assert svg_processor.get_dimensions('<svg width="16"></svg>') == (None, None)


class TestValidation:
    def test_valid(self):
        assert svg_processor.is_valid_svg("<svg><g/></svg>")

    def test_invalid(self):
        assert not svg_processor.is_valid_svg("<div></div>")
        assert not svg_processor.is_valid_svg("</svg><svg>")
        assert not svg_processor.is_valid_svg("")


class TestSanitize:
    def test_removes_scripts_and_handlers(self):
        svg = (
            '<svg onload="alert(1)" width="4"><script>alert(2)</script>'
            '<a href="javascript:alert(3)"><rect onclick=\'x()\'/></a></svg>'
        )
        cleaned = svg_processor.sanitize_svg(svg)
        assert "script" not in cleaned
        assert "onload" not in cleaned
        assert "onclick" not in cleaned
        assert "javascript:" not in cleaned
        assert 'width="4"' in cleaned

    def test_keeps_plain_graphics(self):
        svg = '<svg width="4" height="4"><path d="M0 0L4 4"/></svg>'
        assert svg_processor.sanitize_svg(svg) == svg

    def test_validate_and_sanitize(self):
        assert svg_processor.validate_and_sanitize("<p>no</p>") == ""
        assert svg_processor.validate_and_sanitize("<svg><style>x</style></svg>") == "<svg></svg>"
