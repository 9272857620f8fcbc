"""Tests for reelcompose.common utilities."""

import pytest

from reelcompose.common import (
    fit_text,
    format_price,
    letterbox_geometry,
    load_clip,
    load_font,
    measure_text,
    parse_hex_color,
    resolve_path_vars,
    scale_px,
    with_alpha,
)


class TestParseHexColor:
    def test_with_hash(self):
        assert parse_hex_color("#2563EB") == (37, 99, 235)

    def test_without_hash(self):
        assert parse_hex_color("111827") == (17, 24, 39)

    def test_invalid_raises(self):
        with pytest.raises(ValueError, match="Invalid hex color"):
            parse_hex_color("#12345")


class TestWithAlpha:
    def test_scales_to_255(self):
        assert with_alpha((1, 2, 3), 0.5) == (1, 2, 3, 128)

    def test_clamped(self):
        assert with_alpha((0, 0, 0), 2.0)[3] == 255


class TestResolvePathVars:
    def test_single_var(self):
        result = resolve_path_vars("${photos}/sala.jpg", {"photos": "/data/p"})
        assert result == "/data/p/sala.jpg"

    def test_no_vars(self):
        assert resolve_path_vars("/plain/path", {}) == "/plain/path"

    def test_unknown_var_raises(self):
        with pytest.raises(ValueError, match="Unknown path variable"):
            resolve_path_vars("${missing}/x", {})


class TestScalePx:
    def test_reference_height_is_identity(self):
        assert scale_px(48, 1920) == 48

    def test_scales_linearly(self):
        assert scale_px(48, 960) == 24

    def test_floor_applies(self):
        assert scale_px((48, 5), 96) == 5


class TestFormatPrice:
    def test_groups_thousands_with_dots(self):
        assert format_price("1500000") == "$ 1.500.000"

    def test_strips_non_digits(self):
        assert format_price("$1,500,000") == "$ 1.500.000"

    def test_integer_input(self):
        assert format_price(950000) == "$ 950.000"

    def test_empty(self):
        assert format_price(None) == ""
        assert format_price("") == ""


class TestText:
    def test_measure_positive(self):
        w, h = measure_text("Apartamento", load_font(24))
        assert w > 0 and h > 0

    def test_fit_text_truncates_to_width(self):
        font = load_font(20)
        long = "Apartamento con vista al parque en el norte de la ciudad"
        fitted = fit_text(long, font, 120)
        assert measure_text(fitted, font)[0] <= 120
        assert fitted != long

    def test_fit_text_keeps_short_text(self):
        font = load_font(20)
        assert fit_text("Casa", font, 500) == "Casa"


class TestLetterboxGeometry:
    def test_landscape_into_portrait(self):
        w, h, x, y = letterbox_geometry(1280, 720, 1080, 1920)
        assert w == 1080
        assert h == 608
        assert x == 0
        assert y == (1920 - 608) // 2

    def test_same_aspect_fills_frame(self):
        assert letterbox_geometry(720, 1280, 1080, 1920) == (1080, 1920, 0, 0)

    def test_dimensions_are_even(self):
        w, h, _, _ = letterbox_geometry(333, 777, 108, 192)
        assert w % 2 == 0 and h % 2 == 0

    def test_invalid_source(self):
        with pytest.raises(ValueError):
            letterbox_geometry(0, 720, 1080, 1920)


class TestLoadClip:
    def test_resamples_fps(self, make_video):
        clip = load_clip(make_video(fps=10), target_fps=24)
        try:
            assert clip.fps == 24
            assert clip.audio is None
        finally:
            clip.close()
