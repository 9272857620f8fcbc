"""Tests for the scene compositor."""

from dataclasses import replace

import numpy as np
import pytest
from PIL import Image

from reelcompose.assets import AssetCache
from reelcompose.compositor import (
    GRADIENT_BOTTOM_START,
    chip_layout,
    cover_crop_box,
    gradient_alpha,
    logo_box,
    logo_fade,
    render,
    shape_radius,
    text_stack_anchors,
)
from reelcompose.models import (
    BrandColors,
    GradientSpec,
    IconChip,
    LogoSpec,
    SceneDescriptor,
    SummaryContent,
    TextBlock,
    VisualLayers,
)

SIZE = (108, 192)

NO_GRADIENT = GradientSpec("none", 0)

ALL_OFF = VisualLayers(False, False, False, False, False, False)

PHOTO_ONLY = VisualLayers(True, False, False, False, False, False)


def full_scene(photo, logo, mark, **overrides):
    kwargs = dict(
        background=str(photo),
        logo=LogoSpec(str(logo)),
        text=TextBlock(title="Apartamento", location="Chapinero, Bogotá",
                       price_label="ARRIENDO", price="$ 2.500.000", badge="Sala amplia"),
        chips=(IconChip("hab", "3"), IconChip("baños", "2")),
        footer_mark=str(mark),
    )
    kwargs.update(overrides)
    return SceneDescriptor(**kwargs)


class TestGeometry:
    def test_cover_crop_landscape_into_portrait(self):
        left, top, right, bottom = cover_crop_box(200, 100, 108, 192)
        # Height is kept whole; width is cropped symmetrically.
        assert (top, bottom) == (0, 100)
        assert right - left == pytest.approx(100 * 108 / 192)
        assert left == pytest.approx(200 - right)

    def test_cover_crop_same_aspect(self):
        assert cover_crop_box(540, 960, 1080, 1920) == (0, 0, 540, 960)

    def test_shape_radius(self):
        assert shape_radius("square", 90) == 0
        assert shape_radius("circle", 90) == 45
        assert shape_radius("squircle", 90) == 27
        assert shape_radius("rounded", 90) == 12

    def test_logo_fade(self):
        assert logo_fade(None, "fade-in") == 1.0
        assert logo_fade(0.0, "fade-in") == 0.0
        assert 0 < logo_fade(0.25, "fade-in") < 1
        assert logo_fade(0.6, "fade-in") == 1.0
        assert logo_fade(0.0, "none") == 1.0

    def test_logo_box_corners(self):
        left = logo_box(LogoSpec("l", position="top-left"), 1080, 1920)
        right = logo_box(LogoSpec("l", position="top-right", size="large"), 1080, 1920)
        assert left == (20, 20, 90)
        assert right == (1080 - 100 - 20, 20, 100)

    def test_text_slots_fixed(self):
        a = text_stack_anchors(1920, 1.0, 1.0)
        assert a["location"] == 1920 - 48
        assert a["badge_top"] < a["badge"] < a["pill_top"] < a["pill"] < a["title"] < a["location"]

    def test_chip_row_centred(self):
        xs = chip_layout([50, 50], 20, 200)
        assert xs == [40, 110]
        assert chip_layout([], 20, 200) == []

    def test_gradient_ramps(self):
        top, bottom = gradient_alpha("both", 100, 100)
        assert top[0] == pytest.approx(0.7)
        assert top[60:].max() == 0
        assert bottom[: int(100 * GRADIENT_BOTTOM_START) + 1].max() == 0
        assert bottom[-1] == pytest.approx(0.7 * 59 / 60)

    def test_gradient_none(self):
        top, bottom = gradient_alpha("none", 100, 50)
        assert not top.any() and not bottom.any()


class TestRender:
    def test_shape_and_dtype(self, photo_path, logo_path, mark_path, loaded_cache):
        cache = loaded_cache(photo_path, logo_path, mark_path)
        frame = render(full_scene(photo_path, logo_path, mark_path), cache, SIZE)
        assert frame.shape == (192, 108, 3)
        assert frame.dtype == np.uint8

    def test_deterministic(self, photo_path, logo_path, mark_path, loaded_cache):
        cache = loaded_cache(photo_path, logo_path, mark_path)
        scene = full_scene(photo_path, logo_path, mark_path)
        assert np.array_equal(render(scene, cache, SIZE), render(scene, cache, SIZE))

    def test_cover_fit_fills_frame(self, photo_path, loaded_cache):
        cache = loaded_cache(photo_path)
        scene = SceneDescriptor(background=str(photo_path), gradient=NO_GRADIENT,
                                layers=PHOTO_ONLY)
        frame = render(scene, cache, SIZE).astype(int)
        red, green = (200, 30, 30), (30, 200, 30)
        # Centre crop of a red|green image: both halves visible, no bars.
        assert np.allclose(frame[96, 5], red, atol=3)
        assert np.allclose(frame[96, 102], green, atol=3)
        assert np.allclose(frame[0, 5], red, atol=3)
        assert np.allclose(frame[191, 102], green, atol=3)

    def test_missing_asset_leaves_layer_out(self, photo_path):
        scene = SceneDescriptor(background=str(photo_path), gradient=NO_GRADIENT,
                                layers=PHOTO_ONLY)
        frame = render(scene, AssetCache(), SIZE)
        assert not frame.any()

    def test_layers_off_renders_black(self, photo_path, logo_path, mark_path, loaded_cache):
        cache = loaded_cache(photo_path, logo_path, mark_path)
        scene = full_scene(photo_path, logo_path, mark_path, gradient=NO_GRADIENT,
                           layers=ALL_OFF, text=TextBlock(), chips=())
        assert not render(scene, cache, SIZE).any()

    def test_logo_layer_only_touches_its_corner(self, photo_path, logo_path, mark_path,
                                                 loaded_cache):
        cache = loaded_cache(photo_path, logo_path, mark_path)
        base = full_scene(photo_path, logo_path, mark_path)
        without_logo = replace(base, layers=VisualLayers(show_ally_logo=False))
        a = render(base, cache, SIZE).astype(int)
        b = render(without_logo, cache, SIZE).astype(int)
        diff = np.argwhere(np.abs(a - b).sum(axis=2) > 0)
        assert len(diff) > 0
        # Differences stay in the top band where the logo lives.
        assert diff[:, 0].max() < 192 // 3

    def test_hiding_price_keeps_title_in_place(self, photo_path, logo_path, mark_path,
                                               loaded_cache):
        size = (270, 480)
        cache = loaded_cache(photo_path, logo_path, mark_path)
        base = full_scene(photo_path, logo_path, mark_path, chips=(), footer_mark=None)
        no_price = replace(base, layers=VisualLayers(show_price=False))
        a = render(base, cache, size).astype(int)
        b = render(no_price, cache, size).astype(int)
        assert not np.array_equal(a, b)
        # Below the pill (and its shadow) title and location are untouched.
        pill_bottom = text_stack_anchors(480, 1.0, 1.0)["pill"]
        assert np.array_equal(a[pill_bottom + 8:], b[pill_bottom + 8:])

    def test_fade_in_first_frame_differs(self, photo_path, logo_path, loaded_cache):
        cache = loaded_cache(photo_path, logo_path)
        scene = SceneDescriptor(background=str(photo_path), logo=LogoSpec(str(logo_path)))
        first = render(scene, cache, SIZE, elapsed=0.0)
        settled = render(scene, cache, SIZE)
        late = render(scene, cache, SIZE, elapsed=1.0)
        assert not np.array_equal(first, settled)
        assert np.array_equal(late, settled)

    @pytest.mark.parametrize("background", ["none", "flat", "frosted", "glow", "elevated", "gradient"])
    def test_logo_backgrounds(self, photo_path, logo_path, loaded_cache, background):
        cache = loaded_cache(photo_path, logo_path)
        scene = SceneDescriptor(background=str(photo_path),
                                logo=LogoSpec(str(logo_path), background=background,
                                              shape="circle"),
                                brand=BrandColors((200, 0, 0), (0, 0, 200)))
        assert render(scene, cache, SIZE).shape == (192, 108, 3)


class TestSummary:
    @pytest.mark.parametrize("style", ["solid", "blur", "mosaic"])
    def test_backgrounds(self, photo_path, logo_path, loaded_cache, style):
        cache = loaded_cache(photo_path, logo_path)
        scene = SceneDescriptor(
            kind="summary",
            background=str(photo_path),
            logo=LogoSpec(str(logo_path)),
            brand=BrandColors((37, 99, 235), (17, 24, 39)),
            summary=SummaryContent(headline="¡Tu nuevo hogar!", price="$ 2.500.000",
                                   contact="+57 300 000 0000", background_style=style),
        )
        frame = render(scene, cache, SIZE)
        assert frame.shape == (192, 108, 3)
        if style == "solid":
            assert tuple(frame[5, 5]) == (37, 99, 235)
        else:
            # Photo is darkened by the veil.
            assert frame[5, 5].max() < 200

    def test_solid_without_photo(self):
        scene = SceneDescriptor(kind="summary", summary=SummaryContent(),
                                brand=BrandColors((10, 20, 30), (0, 0, 0)))
        frame = render(scene, AssetCache(), SIZE)
        assert tuple(frame[100, 50]) == (10, 20, 30)

    def test_solid_ignores_photo(self, photo_path, loaded_cache):
        cache = loaded_cache(photo_path)
        scene = SceneDescriptor(kind="summary", background=str(photo_path),
                                summary=SummaryContent(background_style="solid"),
                                brand=BrandColors((10, 20, 30), (0, 0, 0)))
        assert tuple(render(scene, cache, SIZE)[100, 50]) == (10, 20, 30)


def test_render_accepts_translucent_photo(tmp_path, loaded_cache):
    path = tmp_path / "alpha.png"
    Image.new("RGBA", (50, 50), (0, 255, 0, 128)).save(path)
    cache = loaded_cache(path)
    scene = SceneDescriptor(background=str(path), gradient=NO_GRADIENT, layers=PHOTO_ONLY)
    frame = render(scene, cache, SIZE)
    # Composited over black.
    assert 100 < frame[96, 54, 1] < 160
    assert frame[96, 54, 0] == 0
