"""Scene compositor: SceneDescriptor + AssetCache -> raster frame.

render() is a pure function: the same descriptor and the same cached
assets always produce byte-identical frames. It never performs I/O;
assets must already be in the cache (see AssetCache.preload), and a
missing asset simply leaves its layer out.

Layer order (fixed, bottom to top):
  1. Background photo, cover fit (center-cropped overflow).
  2. Gradient veil (top ramp, bottom ramp, or both).
  3. Primary ally logo with its background recipe.
  4. Text stack: location, title, price pill, badge.
  5. Icon chips, centred as a group.
  6. Footer branding mark, bottom-right corner.

Every layer anchors itself to the frame edges. Turning a layer off
(VisualLayers) or leaving a text field empty never moves anything else.

All pixel constants are given at the canonical 1080x1920 frame and
scale linearly with the frame height (common.scale_px).
"""

import functools
import math

import numpy as np
from PIL import Image, ImageDraw, ImageFilter, ImageOps

from .assets import AssetCache
from .common import (
    fit_text,
    load_font,
    measure_text,
    scale_px,
    with_alpha,
)
from .models import BrandColors, GradientSpec, LogoSpec, SceneDescriptor


REEL_SIZE = (1080, 1920)

WHITE = (255, 255, 255)
BLACK = (0, 0, 0)
BADGE_TEXT = (17, 24, 39)

# ── Layout constants at the reference height ─────────────────────

GRADIENT_TOP_END = 0.6        # top ramp fades out at 60% of the height
GRADIENT_BOTTOM_START = 0.4   # bottom ramp starts at 40% of the height

LOGO_SIZES = {"small": 80, "medium": 90, "large": 100}
_REF_LOGO_MARGIN = (20, 2)
_REF_LOGO_INSET = (5, 1)
LOGO_FADE_SECONDS = 0.5

_REF_BOTTOM_PADDING = (48, 2)
_REF_LEFT_PADDING = (16, 1)
_REF_RIGHT_PADDING = (80, 4)
_REF_LOCATION_FONT = 18
_REF_LOCATION_GAP = 16
_REF_TITLE_FONT = 32
_REF_TITLE_GAP = 6
_REF_PILL_LABEL_FONT = 10
_REF_PILL_PRICE_FONT = 32
_REF_PILL_HEIGHT = 60
_REF_PILL_PADDING = 40
_REF_PILL_RADIUS = (16, 2)
_REF_PILL_GAP = (12, 1)
_REF_BADGE_FONT = 18
_REF_BADGE_HEIGHT = 44
_REF_BADGE_PADDING = (40, 4)
_REF_BADGE_RADIUS = (12, 2)

_REF_CHIP_SIZE = 54
_REF_CHIP_SPACING = 20
_REF_CHIP_FONT = 16
_REF_CHIP_RADIUS = (12, 2)
_REF_CHIP_PADDING = (16, 2)
_REF_CHIP_OFFSET_FROM_BOTTOM = (450, 20)

_REF_FOOTER_HEIGHT = (40, 4)
_REF_FOOTER_RIGHT = (16, 1)
_REF_FOOTER_BOTTOM = (48, 2)
_REF_FOOTER_FONT = (24, 6)

_REF_SUMMARY_LOGO = (180, 12)
_REF_SUMMARY_LOGO_Y = 1300
_REF_SUMMARY_BLUR = (24, 1)
SUMMARY_VEIL_ALPHA = 0.7
MOSAIC_CELLS = 24

# (reference y, font size, bold) for each summary text line.
SUMMARY_LINES = {
    "headline": (300, 56, True),
    "price": (450, 72, True),
    "location": (570, 32, False),
    "features": (680, 28, False),
    "call_to_action": (900, 36, True),
    "contact": (1000, 32, False),
    "ally_name": (1150, 28, True),
}


@functools.lru_cache(maxsize=256)
def cached_font(size: int, bold: bool):
    return load_font(max(1, size), bold=bold)


# ── Geometry helpers ─────────────────────────────────────────────


def cover_crop_box(
    src_w: int, src_h: int, dst_w: int, dst_h: int,
) -> tuple[float, float, float, float]:
    """Source-space crop box that fills dst with cover semantics.

    The image is scaled so it covers the whole target; the overflowing
    dimension is cropped symmetrically, the other is kept whole.

    Returns:
        (left, top, right, bottom) in source pixel coordinates.
    """
    scale = max(dst_w / src_w, dst_h / src_h)
    crop_w = dst_w / scale
    crop_h = dst_h / scale
    left = (src_w - crop_w) / 2
    top = (src_h - crop_h) / 2
    return left, top, left + crop_w, top + crop_h


def shape_radius(shape: str, size: int) -> int:
    """Corner radius for a logo shape at the given box size."""
    if shape == "square":
        return 0
    if shape == "circle":
        return size // 2
    if shape == "squircle":
        return round(size * 0.3)
    return round(12 * size / 90)  # rounded


def ease_out(t: float) -> float:
    return 1 - (1 - t) ** 3


def logo_fade(elapsed: float | None, animation: str) -> float:
    """Opacity multiplier of the logo entrance animation."""
    if elapsed is None or animation != "fade-in":
        return 1.0
    if elapsed >= LOGO_FADE_SECONDS:
        return 1.0
    return ease_out(max(0.0, elapsed) / LOGO_FADE_SECONDS)


def logo_box(spec: LogoSpec, frame_w: int, frame_h: int) -> tuple[int, int, int]:
    """(x, y, size) of the logo box, anchored to the top corners."""
    size = scale_px((LOGO_SIZES[spec.size], 8), frame_h)
    margin = scale_px(_REF_LOGO_MARGIN, frame_h)
    x = margin if spec.position == "top-left" else frame_w - size - margin
    return x, margin, size


def text_stack_anchors(frame_h: int, typography: float, badge: float) -> dict[str, int]:
    """Bottom edge (y) of every text-stack slot, measured from the frame bottom.

    Slots are fixed: an empty location or a hidden price pill leaves its
    slot empty instead of pulling the elements above it down.
    """
    def px(ref: float) -> int:
        return max(1, round(ref * frame_h / 1920))

    location = frame_h - scale_px(_REF_BOTTOM_PADDING, frame_h)
    title = location - px(_REF_LOCATION_FONT * typography + _REF_LOCATION_GAP)
    pill = title - px(_REF_TITLE_FONT * typography + _REF_TITLE_GAP)
    pill_top = pill - px(_REF_PILL_HEIGHT * typography)
    badge_bottom = pill_top - scale_px(_REF_PILL_GAP, frame_h)
    badge_top = badge_bottom - px(_REF_BADGE_HEIGHT * badge)
    return {
        "location": location,
        "title": title,
        "pill": pill,
        "pill_top": pill_top,
        "badge": badge_bottom,
        "badge_top": badge_top,
    }


def chip_layout(widths: list[int], spacing: int, frame_w: int) -> list[int]:
    """Left x of each chip so the whole row is centred horizontally."""
    if not widths:
        return []
    total = sum(widths) + spacing * (len(widths) - 1)
    x = (frame_w - total) // 2
    positions = []
    for w in widths:
        positions.append(x)
        x += w + spacing
    return positions


# ── Low-level drawing ────────────────────────────────────────────


def composite_at(canvas: Image.Image, layer: Image.Image, x: int, y: int) -> None:
    """alpha_composite layer onto canvas at (x, y), clipping to the canvas."""
    src_x = max(0, -x)
    src_y = max(0, -y)
    dst_x = max(0, x)
    dst_y = max(0, y)
    w = min(layer.width - src_x, canvas.width - dst_x)
    h = min(layer.height - src_y, canvas.height - dst_y)
    if w <= 0 or h <= 0:
        return
    if (src_x, src_y, w, h) != (0, 0, layer.width, layer.height):
        layer = layer.crop((src_x, src_y, src_x + w, src_y + h))
    canvas.alpha_composite(layer, dest=(dst_x, dst_y))


def drop_shadow(
    canvas: Image.Image,
    mask: Image.Image,
    x: int,
    y: int,
    alpha: float,
    blur: float,
    color: tuple[int, int, int] = BLACK,
) -> None:
    """Composite a blurred, tinted copy of an L mask at (x, y)."""
    pad = math.ceil(blur) + 1
    padded = Image.new("L", (mask.width + 2 * pad, mask.height + 2 * pad), 0)
    padded.paste(mask, (pad, pad))
    if blur > 0:
        padded = padded.filter(ImageFilter.GaussianBlur(blur / 2))
    padded = padded.point(lambda v: round(v * alpha))
    layer = Image.new("RGBA", padded.size, (*color, 0))
    layer.putalpha(padded)
    composite_at(canvas, layer, x - pad, y - pad)


def rounded_mask(w: int, h: int, radius: int) -> Image.Image:
    mask = Image.new("L", (max(1, w), max(1, h)), 0)
    ImageDraw.Draw(mask).rounded_rectangle(
        [(0, 0), (w - 1, h - 1)], radius=max(0, min(radius, min(w, h) // 2)), fill=255,
    )
    return mask


def fill_rounded(
    canvas: Image.Image,
    box: tuple[int, int, int, int],
    radius: int,
    fill: tuple[int, int, int, int],
    outline: tuple[int, int, int, int] | None = None,
) -> None:
    x, y, w, h = box
    layer = Image.new("RGBA", (w, h), (0, 0, 0, 0))
    ImageDraw.Draw(layer).rounded_rectangle(
        [(0, 0), (w - 1, h - 1)],
        radius=max(0, min(radius, min(w, h) // 2)),
        fill=fill,
        outline=outline,
        width=1,
    )
    composite_at(canvas, layer, x, y)


def _text_layer(text: str, font, fill: tuple[int, int, int, int],
                spacing: int = 0) -> tuple[Image.Image, int]:
    """Render text onto a tight RGBA patch. Returns (patch, ascent offset)."""
    left, top, right, bottom = font.getbbox(text)
    width = right - left + spacing * max(0, len(text) - 1)
    layer = Image.new("RGBA", (max(1, width), max(1, bottom - top)), (0, 0, 0, 0))
    draw = ImageDraw.Draw(layer)
    if spacing:
        x = -left
        for ch in text:
            draw.text((x, -top), ch, font=font, fill=fill)
            x += round(font.getlength(ch)) + spacing
    else:
        draw.text((-left, -top), text, font=font, fill=fill)
    return layer, top


def draw_text(
    canvas: Image.Image,
    text: str,
    x: int,
    y: int,
    font,
    fill=WHITE,
    anchor: str = "left-bottom",
    shadow: tuple[float, float, int] | None = None,
    spacing: int = 0,
) -> tuple[int, int]:
    """Draw text anchored at (x, y). Returns the rendered (w, h).

    anchor: "left-bottom", "left-top", "center" or "right-bottom".
    shadow: (alpha, blur, offset) drop shadow in black, or None.
    """
    if not text:
        return 0, 0
    patch, _ = _text_layer(text, font, (*fill, 255), spacing)
    w, h = patch.size
    if anchor == "left-bottom":
        px, py = x, y - h
    elif anchor == "left-top":
        px, py = x, y
    elif anchor == "right-bottom":
        px, py = x - w, y - h
    else:  # center
        px, py = x - w // 2, y - h // 2
    if shadow is not None:
        alpha, blur, offset = shadow
        drop_shadow(canvas, patch.getchannel("A"), px + offset, py + offset, alpha, blur)
    composite_at(canvas, patch, px, py)
    return w, h


# ── Layers ───────────────────────────────────────────────────────


def draw_cover(canvas: Image.Image, image: Image.Image) -> None:
    """Layer 1: fill the canvas with the image using cover fit."""
    box = cover_crop_box(image.width, image.height, canvas.width, canvas.height)
    fitted = image.resize(canvas.size, Image.Resampling.LANCZOS, box=box)
    canvas.alpha_composite(fitted.convert("RGBA"))


def gradient_alpha(direction: str, intensity: int, height: int) -> tuple[np.ndarray, np.ndarray]:
    """Per-row alpha of the top and bottom ramps (each shape (height,))."""
    spec = GradientSpec(direction, intensity)
    y = np.arange(height, dtype=np.float64)
    top = np.zeros(height)
    bottom = np.zeros(height)
    if spec.direction in ("top", "both") and spec.intensity > 0:
        end = height * GRADIENT_TOP_END
        top = spec.max_alpha * np.clip(1 - y / end, 0, 1)
    if spec.direction in ("bottom", "both") and spec.intensity > 0:
        start = height * GRADIENT_BOTTOM_START
        bottom = spec.max_alpha * np.clip((y - start) / (height - start), 0, 1)
    return top, bottom


def draw_gradient(canvas: Image.Image, gradient: GradientSpec) -> None:
    """Layer 2: black veils, the top one fading out by 60% height, the
    bottom one fading in from 40% height."""
    if gradient.direction == "none" or gradient.intensity == 0:
        return
    w, h = canvas.size
    for ramp in gradient_alpha(gradient.direction, gradient.intensity, h):
        if not ramp.any():
            continue
        column = np.round(ramp * 255).astype(np.uint8)
        alpha = Image.fromarray(np.repeat(column[:, None], w, axis=1))
        veil = Image.new("RGBA", (w, h), (*BLACK, 0))
        veil.putalpha(alpha)
        canvas.alpha_composite(veil)


def _logo_background(
    canvas: Image.Image,
    style: str,
    box: tuple[int, int, int],
    radius: int,
    brand: BrandColors,
) -> None:
    """Deterministic fill/stroke/shadow recipe per named background style."""
    x, y, size = box
    frame_h = canvas.height
    if style == "none":
        return
    mask = rounded_mask(size, size, radius)

    if style == "flat":
        fill_rounded(canvas, (x, y, size, size), radius, (*WHITE, 255))
    elif style == "frosted":
        # Blur what is behind the box, then a faint white wash and rim.
        region = canvas.crop((x, y, x + size, y + size))
        region = region.filter(ImageFilter.GaussianBlur(scale_px((12, 1), frame_h)))
        canvas.paste(region, (x, y), mask)
        fill_rounded(canvas, (x, y, size, size), radius,
                     with_alpha(WHITE, 0.1), outline=with_alpha(WHITE, 0.35))
    elif style == "glow":
        drop_shadow(canvas, mask, x, y, 0.6, scale_px((24, 2), frame_h), color=brand.primary)
        fill_rounded(canvas, (x, y, size, size), radius, with_alpha(brand.primary, 0.2))
    elif style == "elevated":
        drop_shadow(canvas, mask, x, y + scale_px((8, 1), frame_h), 0.15,
                scale_px((20, 2), frame_h))
        fill_rounded(canvas, (x, y, size, size), radius, with_alpha(WHITE, 0.95))
    elif style == "gradient":
        top = np.array(brand.primary, dtype=np.float64)
        bottom = np.array(brand.secondary, dtype=np.float64)
        t = np.linspace(0, 1, size)[:, None]
        rows = np.round(top * (1 - t) + bottom * t).astype(np.uint8)
        fill = Image.fromarray(np.repeat(rows[:, None, :], size, axis=1))
        layer = fill.convert("RGBA")
        layer.putalpha(mask)
        composite_at(canvas, layer, x, y)


def draw_logo(
    canvas: Image.Image,
    spec: LogoSpec,
    brand: BrandColors,
    image: Image.Image | None,
    elapsed: float | None = None,
) -> None:
    """Layer 3: ally logo in a shaped box at a top corner."""
    if image is None:
        return
    w, h = canvas.size
    x, y, size = logo_box(spec, w, h)
    radius = shape_radius(spec.shape, size)
    _logo_background(canvas, spec.background, (x, y, size), radius, brand)

    inset = scale_px(_REF_LOGO_INSET, h)
    inner = max(1, size - 2 * inset)
    logo = ImageOps.fit(image, (inner, inner), Image.Resampling.LANCZOS).convert("RGBA")
    clip = rounded_mask(inner, inner, shape_radius(spec.shape, inner))
    opacity = (spec.opacity / 100) * logo_fade(elapsed, spec.animation)
    alpha = Image.fromarray(
        np.round(
            np.asarray(logo.getchannel("A"), dtype=np.float64)
            * (np.asarray(clip, dtype=np.float64) / 255)
            * opacity
        ).astype(np.uint8)
    )
    logo.putalpha(alpha)
    composite_at(canvas, logo, x + inset, y + inset)


def draw_text_stack(canvas: Image.Image, scene: SceneDescriptor) -> None:
    """Layer 4: location, title, price pill and badge, bottom-left."""
    w, h = canvas.size
    text = scene.text
    layers = scene.layers
    ts = text.typography_scale
    anchors = text_stack_anchors(h, ts, text.badge_scale)
    left = scale_px(_REF_LEFT_PADDING, h)
    max_w = w - left - scale_px(_REF_RIGHT_PADDING, h)
    text_shadow = (0.9, scale_px((8, 1), h), scale_px((2, 1), h))

    def px(ref: float) -> int:
        return max(1, round(ref * h / 1920))

    if text.location:
        font = cached_font(px(_REF_LOCATION_FONT * ts), True)
        draw_text(canvas, fit_text(text.location, font, max_w), left, anchors["location"],
                  font, shadow=text_shadow)

    if text.title:
        font = cached_font(px(_REF_TITLE_FONT * ts), True)
        draw_text(canvas, fit_text(text.title, font, max_w), left, anchors["title"],
                  font, shadow=text_shadow)

    if layers.show_price and text.price:
        label_font = cached_font(px(_REF_PILL_LABEL_FONT * ts), False)
        price_font = cached_font(px(_REF_PILL_PRICE_FONT * ts), True)
        label = text.price_label.upper()
        letter_spacing = max(0, round(_REF_PILL_LABEL_FONT * ts * 0.05 * h / 1920))
        label_w = measure_text(label, label_font)[0] + letter_spacing * max(0, len(label) - 1)
        price_w = measure_text(text.price, price_font)[0]
        pill_w = max(label_w, price_w) + px(_REF_PILL_PADDING * ts)
        pill_top = anchors["pill_top"]
        pill_h = anchors["pill"] - pill_top
        radius = scale_px(_REF_PILL_RADIUS, h)

        drop_shadow(canvas, rounded_mask(pill_w, pill_h, radius), left,
                    pill_top + scale_px((4, 1), h), 0.3, scale_px((16, 1), h))
        fill_rounded(canvas, (left, pill_top, pill_w, pill_h), radius,
                     with_alpha(scene.brand.primary, 0.9), outline=with_alpha(WHITE, 0.2))
        pad_x = px(20 * ts)
        if label:
            draw_text(canvas, label, left + pad_x, pill_top + px(10 * ts), label_font,
                      anchor="left-top", spacing=letter_spacing)
        draw_text(canvas, text.price, left + pad_x, anchors["pill"] - px(8 * ts), price_font)

    if layers.show_badge and text.badge:
        font = cached_font(px(_REF_BADGE_FONT * text.badge_scale), True)
        pad = scale_px(_REF_BADGE_PADDING, h)
        label = fit_text(text.badge, font, max_w - pad)
        badge_w = measure_text(label, font)[0] + pad
        badge_top = anchors["badge_top"]
        badge_h = anchors["badge"] - badge_top
        radius = scale_px(_REF_BADGE_RADIUS, h)
        drop_shadow(canvas, rounded_mask(badge_w, badge_h, radius), left, badge_top,
                    0.2, scale_px((15, 1), h))
        fill_rounded(canvas, (left, badge_top, badge_w, badge_h), radius,
                     with_alpha(WHITE, 0.9))
        draw_text(canvas, label, left + badge_w // 2, badge_top + badge_h // 2, font,
                  fill=BADGE_TEXT, anchor="center")


def draw_chips(canvas: Image.Image, scene: SceneDescriptor) -> None:
    """Layer 5: key/value chips in one centred row."""
    if not scene.chips:
        return
    w, h = canvas.size
    ts = scene.text.typography_scale
    size = max(1, round(_REF_CHIP_SIZE * ts * h / 1920))
    spacing = max(1, round(_REF_CHIP_SPACING * ts * h / 1920))
    font = cached_font(max(1, round(_REF_CHIP_FONT * ts * h / 1920)), True)
    pad = scale_px(_REF_CHIP_PADDING, h)
    widths = [max(size, measure_text(c.label, font)[0] + pad) for c in scene.chips]
    y = h - scale_px(_REF_CHIP_OFFSET_FROM_BOTTOM, h)
    radius = scale_px(_REF_CHIP_RADIUS, h)
    for chip, x, cw in zip(scene.chips, chip_layout(widths, spacing, w), widths):
        drop_shadow(canvas, rounded_mask(cw, size, radius), x, y, 0.15, scale_px((12, 1), h))
        fill_rounded(canvas, (x, y, cw, size), radius, with_alpha(WHITE, 0.95))
        draw_text(canvas, chip.label, x + cw // 2, y + size // 2, font,
                  fill=scene.brand.secondary, anchor="center")


def draw_footer_mark(canvas: Image.Image, image: Image.Image | None, fallback_text: str = "") -> None:
    """Layer 6: footer branding mark in the bottom-right corner."""
    w, h = canvas.size
    right = w - scale_px(_REF_FOOTER_RIGHT, h)
    bottom = h - scale_px(_REF_FOOTER_BOTTOM, h)
    shadow_offset = scale_px((4, 1), h)
    if image is None:
        if fallback_text:
            draw_text(canvas, fallback_text, right, bottom,
                      cached_font(scale_px(_REF_FOOTER_FONT, h), True), anchor="right-bottom",
                      shadow=(0.5, scale_px((6, 1), h), shadow_offset))
        return
    mark_h = scale_px(_REF_FOOTER_HEIGHT, h)
    mark_w = max(1, round(image.width / image.height * mark_h))
    mark = image.resize((mark_w, mark_h), Image.Resampling.LANCZOS).convert("RGBA")
    x = right - mark_w
    y = bottom - mark_h
    drop_shadow(canvas, mark.getchannel("A"), x, y + shadow_offset, 0.5, scale_px((6, 1), h))
    composite_at(canvas, mark, x, y)


# ── Summary slide ────────────────────────────────────────────────


def _summary_background(canvas: Image.Image, scene: SceneDescriptor, cache: AssetCache) -> None:
    style = scene.summary.background_style
    photo = cache.get(scene.background) if scene.background else None
    if style == "solid" or photo is None:
        canvas.paste((*scene.brand.primary, 255), (0, 0, *canvas.size))
        return
    h = canvas.height
    draw_cover(canvas, photo.image)
    if style == "blur":
        blurred = canvas.filter(ImageFilter.GaussianBlur(scale_px(_REF_SUMMARY_BLUR, h)))
        canvas.paste(blurred)
    else:  # mosaic
        cells_w = max(1, MOSAIC_CELLS)
        cells_h = max(1, round(MOSAIC_CELLS * canvas.height / canvas.width))
        small = canvas.resize((cells_w, cells_h), Image.Resampling.BOX)
        canvas.paste(small.resize(canvas.size, Image.Resampling.NEAREST))
    veil = Image.new("RGBA", canvas.size, with_alpha(BLACK, SUMMARY_VEIL_ALPHA))
    canvas.alpha_composite(veil)


def draw_summary(canvas: Image.Image, scene: SceneDescriptor, cache: AssetCache,
                 elapsed: float | None = None) -> None:
    """Closing slide: centred price, contact and ally logo."""
    w, h = canvas.size
    summary = scene.summary
    _summary_background(canvas, scene, cache)

    for field_name, (ref_y, ref_size, bold) in SUMMARY_LINES.items():
        value = getattr(summary, field_name)
        if not value:
            continue
        font = cached_font(scale_px((ref_size, 4), h), bold)
        draw_text(canvas, fit_text(value, font, w - 2 * scale_px((40, 2), h)),
                  w // 2, round(ref_y * h / 1920), font, anchor="center")

    if scene.layers.show_ally_logo and scene.logo is not None:
        handle = cache.get(scene.logo.source)
        if handle is not None:
            size = scale_px(_REF_SUMMARY_LOGO, h)
            logo = ImageOps.contain(handle.image, (size, size), Image.Resampling.LANCZOS).convert("RGBA")
            opacity = (scene.logo.opacity / 100) * logo_fade(elapsed, scene.logo.animation)
            alpha = logo.getchannel("A").point(lambda v: round(v * opacity))
            logo.putalpha(alpha)
            x = (w - logo.width) // 2
            y = round(_REF_SUMMARY_LOGO_Y * h / 1920)
            drop_shadow(canvas, alpha, x, y, 0.5, scale_px((20, 2), h))
            composite_at(canvas, logo, x, y)

    if scene.layers.show_cta:
        mark = cache.get(scene.footer_mark) if scene.footer_mark else None
        draw_footer_mark(canvas, mark.image if mark else None)


# ── Entry point ──────────────────────────────────────────────────


def render_image(
    scene: SceneDescriptor,
    cache: AssetCache,
    size: tuple[int, int] = REEL_SIZE,
    elapsed: float | None = None,
) -> Image.Image:
    """Render a scene to an RGBA Pillow image (see render())."""
    canvas = Image.new("RGBA", size, (*BLACK, 255))

    if scene.kind == "summary":
        draw_summary(canvas, scene, cache, elapsed)
        return canvas

    layers = scene.layers
    if layers.show_photo and scene.background:
        handle = cache.get(scene.background)
        if handle is not None:
            draw_cover(canvas, handle.image)

    draw_gradient(canvas, scene.gradient)

    if layers.show_ally_logo and scene.logo is not None:
        handle = cache.get(scene.logo.source)
        draw_logo(canvas, scene.logo, scene.brand, handle.image if handle else None, elapsed)

    draw_text_stack(canvas, scene)

    if layers.show_icons:
        draw_chips(canvas, scene)

    if layers.show_cta:
        mark = cache.get(scene.footer_mark) if scene.footer_mark else None
        draw_footer_mark(canvas, mark.image if mark else None, scene.footer_text)

    return canvas


def render(
    scene: SceneDescriptor,
    cache: AssetCache,
    size: tuple[int, int] = REEL_SIZE,
    elapsed: float | None = None,
) -> np.ndarray:
    """Render one scene to an RGB frame.

    Args:
        scene: Immutable scene description.
        cache: Asset cache holding every asset the scene references.
        size: (width, height) of the output frame.
        elapsed: Seconds since the scene started, for the logo entrance
            animation. None renders the settled state.

    Returns:
        numpy array of shape (height, width, 3), dtype uint8.
    """
    return np.asarray(render_image(scene, cache, size, elapsed).convert("RGB"))
