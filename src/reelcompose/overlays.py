"""Per-clip overlay layer for multi-clip reels.

Each input clip of a multi-clip reel carries the same branding on top
of its footage: gradient veils, the ally logo, a centred subtitle badge,
a white footer panel with the property details, and the footer mark.
Nothing in the overlay changes during a clip, so it is rendered once
per clip as an RGBA patch the size of the frame and then either:
  - alpha-blended onto every decoded frame (apply_overlay_to_frame), on
    the frame-recapture path, or
  - written as a PNG and handed to the engine's overlay filter, on the
    engine normalization path.

Layout, at the 1080x1920 reference frame:
  gradient   top ramp 0-40% height, bottom ramp 60-100% height
  logo       50/60/70/80px box, 40px from the top corner
  subtitle   badge centred at 15% height, at most 85% of the width
  footer     310px white panel at the bottom edge
  mark       80px square, bottom-right
"""

import io
from dataclasses import dataclass, field

import numpy as np
from PIL import Image, ImageDraw

from .assets import AssetCache
from .common import fit_text, measure_text, scale_px, wrap_text, with_alpha
from .compositor import (
    BLACK,
    WHITE,
    cached_font,
    composite_at,
    draw_text,
    drop_shadow,
    fill_rounded,
    rounded_mask,
)
from .models import GradientSpec, VisualLayers


# ── Constants ────────────────────────────────────────────────────

OVERLAY_GRADIENT_TOP_END = 0.4
OVERLAY_GRADIENT_BOTTOM_START = 0.6

OVERLAY_LOGO_SIZES = {"small": 50, "medium": 60, "large": 70, "xlarge": 80}
_REF_LOGO_MARGIN = (40, 2)
_REF_LOGO_PADDING = (10, 1)
_REF_LOGO_RADIUS = (12, 1)

SUBTITLE_CENTER_FRAC = 0.15
SUBTITLE_MAX_WIDTH_FRAC = 0.85
_REF_SUBTITLE_FONT = (36, 6)
SUBTITLE_LINE_HEIGHT = 1.3
_REF_SUBTITLE_PADDING_X = (44, 2)
_REF_SUBTITLE_PADDING_Y = (32, 2)
_REF_SUBTITLE_RADIUS = (16, 2)
SUBTITLE_TEXT = (31, 41, 55)

_REF_FOOTER_PANEL = (310, 20)
FOOTER_PANEL_ALPHA = 0.85
_REF_FOOTER_LEFT = (40, 2)
FOOTER_MUTED = (107, 114, 128)
FOOTER_STRONG = (17, 24, 39)

# (reference baseline offset inside the panel, font size, bold, color)
FOOTER_LINES = {
    "modality": (55, 32, False, FOOTER_MUTED),
    "price": (110, 48, True, FOOTER_STRONG),
    "location": (155, 32, False, FOOTER_MUTED),
    "property_type": (205, 32, False, FOOTER_STRONG),
    "attributes": (260, 30, False, FOOTER_MUTED),
}

_REF_MARK_SIZE = (80, 6)
_REF_MARK_RIGHT = (40, 2)
_REF_MARK_BOTTOM = (48, 2)


@dataclass(frozen=True)
class ClipOverlay:
    """Overlay content for one clip. Text fields are display-ready."""

    subtitle: str = ""
    modality: str = ""
    price: str = ""
    location: str = ""
    property_type: str = ""
    attributes: str = ""
    logo: str | None = None
    logo_position: str = "top-right"
    logo_size: str = "large"
    logo_shape: str = "rounded"
    logo_background: bool = True
    logo_opacity: int = 100
    gradient: GradientSpec = field(default_factory=GradientSpec)
    layers: VisualLayers = field(default_factory=VisualLayers)
    footer_mark: str | None = None

    def __post_init__(self):
        if self.logo_size not in OVERLAY_LOGO_SIZES:
            raise ValueError(
                f"Invalid overlay logo size '{self.logo_size}'. "
                f"Valid: {sorted(OVERLAY_LOGO_SIZES)}"
            )

    @property
    def has_footer(self) -> bool:
        layers = self.layers
        return layers.show_price or layers.show_badge or layers.show_icons

    def asset_sources(self) -> list[str]:
        return [s for s in (self.logo, self.footer_mark) if s]


# ── Layers ───────────────────────────────────────────────────────


def _draw_gradient(canvas: Image.Image, gradient: GradientSpec) -> None:
    if gradient.direction == "none" or gradient.intensity == 0:
        return
    w, h = canvas.size
    y = np.arange(h, dtype=np.float64)
    ramps = []
    if gradient.direction in ("top", "both"):
        end = h * OVERLAY_GRADIENT_TOP_END
        ramps.append(gradient.max_alpha * np.clip(1 - y / end, 0, 1))
    if gradient.direction in ("bottom", "both"):
        start = h * OVERLAY_GRADIENT_BOTTOM_START
        ramps.append(gradient.max_alpha * np.clip((y - start) / (h - start), 0, 1))
    for ramp in ramps:
        column = np.round(ramp * 255).astype(np.uint8)
        veil = Image.new("RGBA", (w, h), (*BLACK, 0))
        veil.putalpha(Image.fromarray(np.repeat(column[:, None], w, axis=1)))
        canvas.alpha_composite(veil)


def _draw_logo(canvas: Image.Image, overlay: ClipOverlay, image: Image.Image) -> None:
    w, h = canvas.size
    size = scale_px((OVERLAY_LOGO_SIZES[overlay.logo_size], 6), h)
    margin = scale_px(_REF_LOGO_MARGIN, h)
    x = margin if overlay.logo_position == "top-left" else w - size - margin
    y = margin
    circle = overlay.logo_shape == "circle"

    layer = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
    if overlay.logo_background:
        pad = scale_px(_REF_LOGO_PADDING, h)
        bg = size + 2 * pad
        radius = bg // 2 if circle else scale_px(_REF_LOGO_RADIUS, h)
        fill_rounded(layer, (x - pad, y - pad, bg, bg), radius, with_alpha(WHITE, 0.95))

    logo = image.resize((size, size), Image.Resampling.LANCZOS).convert("RGBA")
    if circle:
        mask = Image.new("L", (size, size), 0)
        ImageDraw.Draw(mask).ellipse([(0, 0), (size - 1, size - 1)], fill=255)
        alpha = np.minimum(np.asarray(logo.getchannel("A")), np.asarray(mask))
        logo.putalpha(Image.fromarray(alpha))
    composite_at(layer, logo, x, y)

    # Opacity applies to the background and the logo together.
    if overlay.logo_opacity < 100:
        scaled = layer.getchannel("A").point(lambda v: round(v * overlay.logo_opacity / 100))
        layer.putalpha(scaled)
    canvas.alpha_composite(layer)


def _draw_subtitle(canvas: Image.Image, text: str) -> None:
    w, h = canvas.size
    font = cached_font(scale_px(_REF_SUBTITLE_FONT, h), True)
    max_w = round(w * SUBTITLE_MAX_WIDTH_FRAC)
    pad_x = scale_px(_REF_SUBTITLE_PADDING_X, h)
    lines = [fit_text(line, font, max_w - 2 * pad_x)
             for line in wrap_text(text, font, max_w - 2 * pad_x)]
    if not lines:
        return
    line_h = round(getattr(font, "size", measure_text("Ag", font)[1]) * SUBTITLE_LINE_HEIGHT)
    badge_w = min(max_w, max(measure_text(line, font)[0] for line in lines) + 2 * pad_x)
    badge_h = len(lines) * line_h + scale_px(_REF_SUBTITLE_PADDING_Y, h)
    cx = w // 2
    cy = round(h * SUBTITLE_CENTER_FRAC)
    x = cx - badge_w // 2
    y = cy - badge_h // 2
    radius = scale_px(_REF_SUBTITLE_RADIUS, h)

    drop_shadow(canvas, rounded_mask(badge_w, badge_h, radius), x,
                y + scale_px((4, 1), h), 0.15, scale_px((20, 2), h))
    fill_rounded(canvas, (x, y, badge_w, badge_h), radius, (*WHITE, 255))
    first = cy - ((len(lines) - 1) * line_h) // 2
    for i, line in enumerate(lines):
        draw_text(canvas, line, cx, first + i * line_h, font,
                  fill=SUBTITLE_TEXT, anchor="center")


def _draw_footer(canvas: Image.Image, overlay: ClipOverlay) -> None:
    w, h = canvas.size
    panel_h = scale_px(_REF_FOOTER_PANEL, h)
    top = h - panel_h
    panel = Image.new("RGBA", (w, panel_h), with_alpha(WHITE, FOOTER_PANEL_ALPHA))
    composite_at(canvas, panel, 0, top)

    layers = overlay.layers
    visible = {
        "modality": layers.show_price,
        "price": layers.show_price,
        "location": layers.show_badge,
        "property_type": layers.show_badge,
        "attributes": layers.show_icons,
    }
    left = scale_px(_REF_FOOTER_LEFT, h)
    for name, (ref_offset, ref_size, bold, color) in FOOTER_LINES.items():
        value = getattr(overlay, name)
        if not visible[name] or not value:
            continue
        font = cached_font(scale_px((ref_size, 4), h), bold)
        baseline = top + round(ref_offset * h / 1920)
        draw_text(canvas, fit_text(value, font, w - 2 * left), left, baseline, font,
                  fill=color)


def _draw_mark(canvas: Image.Image, image: Image.Image) -> None:
    w, h = canvas.size
    size = scale_px(_REF_MARK_SIZE, h)
    mark = image.resize((size, size), Image.Resampling.LANCZOS).convert("RGBA")
    x = w - size - scale_px(_REF_MARK_RIGHT, h)
    y = h - size - scale_px(_REF_MARK_BOTTOM, h)
    drop_shadow(canvas, mark.getchannel("A"), x, y + scale_px((2, 1), h), 0.5,
                scale_px((6, 1), h))
    composite_at(canvas, mark, x, y)


# ── Patch rendering ──────────────────────────────────────────────


def render_clip_overlay(
    overlay: ClipOverlay,
    cache: AssetCache,
    size: tuple[int, int],
) -> np.ndarray:
    """Render the overlay for one clip on a transparent frame.

    Missing assets (logo, footer mark not in the cache) are skipped.

    Returns:
        numpy array of shape (h, w, 4), dtype uint8 (RGBA).
    """
    canvas = Image.new("RGBA", size, (0, 0, 0, 0))
    layers = overlay.layers

    _draw_gradient(canvas, overlay.gradient)

    if layers.show_ally_logo and overlay.logo:
        handle = cache.get(overlay.logo)
        if handle is not None:
            _draw_logo(canvas, overlay, handle.image)

    if layers.show_badge and overlay.subtitle:
        _draw_subtitle(canvas, overlay.subtitle)

    if overlay.has_footer:
        _draw_footer(canvas, overlay)

    if layers.show_cta and overlay.footer_mark:
        handle = cache.get(overlay.footer_mark)
        if handle is not None:
            _draw_mark(canvas, handle.image)

    return np.array(canvas)


def overlay_png(patch: np.ndarray) -> bytes:
    """Encode an RGBA overlay patch as PNG bytes for the engine."""
    buf = io.BytesIO()
    Image.fromarray(patch).save(buf, format="PNG")
    return buf.getvalue()


# ── Frame-level overlay application ─────────────────────────────


def apply_overlay_to_frame(frame: np.ndarray, patch: np.ndarray | None) -> np.ndarray:
    """Alpha-blend a full-frame RGBA patch onto an RGB frame.

    Args:
        frame: Input frame, shape (h, w, 3), dtype uint8.
        patch: Overlay from render_clip_overlay at the same size, or None.

    Returns:
        New frame with the overlay composited, same shape and dtype.
    """
    if patch is None:
        return frame
    if patch.shape[:2] != frame.shape[:2]:
        raise ValueError(
            f"Overlay size {patch.shape[1]}x{patch.shape[0]} does not match "
            f"frame size {frame.shape[1]}x{frame.shape[0]}"
        )
    alpha = patch[:, :, 3:4].astype(np.float32) / 255.0
    rgb = patch[:, :, :3].astype(np.float32)
    blended = frame.astype(np.float32) * (1 - alpha) + rgb * alpha
    return np.round(blended).astype(np.uint8)
