"""reelcompose.common — shared utilities for frame composition.

Contains: color parsing, path variable resolution, font loading,
reference-height scaling, text measurement and clip loading.
"""

import re
from pathlib import Path

from PIL import Image, ImageDraw, ImageFont
from moviepy import VideoFileClip


# ── Font paths ─────────────────────────────────────────────────────
# Poppins preferred to match the brand templates, DejaVu Sans as fallback.

FONT_PATHS = [
    Path.home() / ".local/share/fonts/Poppins-Regular.ttf",
    Path("/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf"),
]

BOLD_FONT_PATHS = [
    Path.home() / ".local/share/fonts/Poppins-Black.ttf",
    Path("/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf"),
]


# ── Scaling system ─────────────────────────────────────────────────
#
# Layout constants are defined at the canonical reel height (1920px)
# and scale linearly with the frame height, with a floor so tiny test
# resolutions keep every element visible.

REF_H = 1920


def scale_px(ref_and_floor: tuple[int, int] | int, frame_h: int) -> int:
    """Scale a reference pixel value to the current frame height.

    Args:
        ref_and_floor: (value_at_REF_H, absolute_minimum), or a bare value
            with a floor of 1.
        frame_h: Current frame height.
    """
    if isinstance(ref_and_floor, tuple):
        ref_val, floor = ref_and_floor
    else:
        ref_val, floor = ref_and_floor, 1
    return max(floor, round(ref_val * frame_h / REF_H))


# ── Color utilities ────────────────────────────────────────────────

def parse_hex_color(hex_str: str) -> tuple[int, int, int]:
    """Convert '#RRGGBB' or 'RRGGBB' string to (R, G, B) tuple."""
    hex_str = hex_str.lstrip("#")
    if len(hex_str) != 6 or not all(c in "0123456789abcdefABCDEF" for c in hex_str):
        raise ValueError(f"Invalid hex color: '#{hex_str}'")
    return (int(hex_str[0:2], 16), int(hex_str[2:4], 16), int(hex_str[4:6], 16))


def with_alpha(color: tuple[int, int, int], alpha: float) -> tuple[int, int, int, int]:
    """Attach a 0-1 alpha to an RGB tuple as an RGBA tuple."""
    return (*color, max(0, min(255, round(alpha * 255))))


# ── Path utilities ─────────────────────────────────────────────────

def resolve_path_vars(text: str, paths: dict[str, str]) -> str:
    """Replace ${name} variables in a string using the paths dict."""
    def _replace(match):
        key = match.group(1)
        if key not in paths:
            raise ValueError(f"Unknown path variable: ${{{key}}}")
        return paths[key]
    return re.sub(r"\$\{(\w+)\}", _replace, text)


# ── Font loading ───────────────────────────────────────────────────

def load_font(size: int, bold: bool = False) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Load Poppins (or fallback) at the given size.

    Bold requests try the heavy face first and fall back to the regular
    list, so a missing bold face never breaks rendering.
    """
    candidates = (BOLD_FONT_PATHS + FONT_PATHS) if bold else FONT_PATHS
    for font_path in candidates:
        if font_path.exists():
            try:
                return ImageFont.truetype(str(font_path), size=size)
            except (OSError, IndexError):
                continue
    # Last resort: Pillow default font at the requested size.
    try:
        return ImageFont.load_default(size=size)
    except TypeError:
        return ImageFont.load_default()


# ── Text rendering ─────────────────────────────────────────────────

_MEASURE = ImageDraw.Draw(Image.new("RGB", (1, 1)))


def measure_text(text: str, font) -> tuple[int, int]:
    """Return (width, height) of text in the given font."""
    bbox = _MEASURE.textbbox((0, 0), text, font=font)
    return bbox[2] - bbox[0], bbox[3] - bbox[1]


def fit_text(text: str, font, max_width: int) -> str:
    """Truncate text with an ellipsis until it fits max_width pixels."""
    width, _ = measure_text(text, font)
    while width > max_width and len(text) > 5:
        text = text[:-4] + "..."
        width, _ = measure_text(text, font)
    return text


def wrap_text(text: str, font, max_width: int) -> list[str]:
    """Split text into lines that fit within max_width pixels."""
    lines = []
    current = ""
    for word in text.split(" "):
        candidate = f"{current} {word}" if current else word
        if measure_text(candidate, font)[0] > max_width and current:
            lines.append(current)
            current = word
        else:
            current = candidate
    if current:
        lines.append(current)
    return lines


def format_price(value: str | int | None) -> str:
    """Format a price as Colombian pesos without decimals ('$ 1.500.000')."""
    if value is None or value == "":
        return ""
    digits = re.sub(r"\D", "", str(value))
    if not digits:
        return f"${value}"
    grouped = f"{int(digits):,}".replace(",", ".")
    return f"$ {grouped}"


# ── Clip loading ───────────────────────────────────────────────────

def load_clip(path: str | Path, target_fps: int) -> VideoFileClip:
    """Load a single video clip without audio and resample to target fps.

    Source clips come from phones at 24-60fps. This normalizes to the
    reel's canonical frame rate.
    """
    clip = VideoFileClip(str(path), audio=False)
    if clip.fps != target_fps:
        clip = clip.with_fps(target_fps)
    return clip


# ── Letterbox geometry ─────────────────────────────────────────────

def letterbox_geometry(
    src_w: int, src_h: int, dst_w: int, dst_h: int,
) -> tuple[int, int, int, int]:
    """Fit-inside placement of a source frame in a target frame.

    The source keeps its aspect ratio and is never cropped. Scaled
    dimensions are rounded to even numbers (yuv420p needs them) and the
    remaining space is padded symmetrically.

    Returns:
        (scaled_w, scaled_h, pad_x, pad_y) where pad_x/pad_y are the
        left/top offsets of the scaled frame.
    """
    if src_w <= 0 or src_h <= 0:
        raise ValueError(f"Invalid source size {src_w}x{src_h}")
    scale = min(dst_w / src_w, dst_h / src_h)
    w = min(dst_w, max(2, 2 * round(src_w * scale / 2)))
    h = min(dst_h, max(2, 2 * round(src_h * scale / 2)))
    return w, h, (dst_w - w) // 2, (dst_h - h) // 2
