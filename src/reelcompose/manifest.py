"""Manifest loaders for reels and multi-clip reels.

Parses YAML manifests, resolves ${path} variables, and turns each
section into the records the scene builder consumes (AllyConfig,
PropertyData, VisualLayers, LogoSettings, TextCompositionSettings,
GradientSettings). Every error is a ManifestError prefixed with the
section (and index) it came from.

Reel manifest sections:
  video      resolution [w, h], fps, format
  paths      ${name} substitution variables
  ally       name, logo, primary_color, secondary_color, whatsapp, city
  property   property_type, modality, rent | sale_price, location,
             bedrooms, bathrooms, parking, area, subtitles
  layers     show_photo, show_ally_logo, show_price, show_badge,
             show_icons, show_cta
  logo       position, size, shape, background, opacity, animation
  text       typography_scale, badge_scale
  gradient   direction, intensity
  photos     list of image paths or URLs (at least one)
  durations  photo_ms, summary_ms
  summary    include, background (solid | blur | mosaic)

Clips manifest: video, paths, ally, property, layers, logo, gradient,
footer_mark and a clips list of {path, subtitle?} (at least two).
"""

from dataclasses import fields
from pathlib import Path

import yaml

from .common import resolve_path_vars
from .config import VALID_FORMATS
from .errors import ManifestError
from .models import (
    VALID_GRADIENT_DIRECTIONS,
    VALID_LOGO_ANIMATIONS,
    VALID_LOGO_BACKGROUNDS,
    VALID_LOGO_POSITIONS,
    VALID_LOGO_SHAPES,
    VALID_LOGO_SIZES,
    VALID_SUMMARY_BACKGROUNDS,
    AllyConfig,
    Clip,
    GradientSettings,
    LogoSettings,
    PropertyData,
    TextCompositionSettings,
    VisualLayers,
)
from .overlays import ClipOverlay
from .scenes import build_clip_overlays, build_scenes


VALID_MODALITIES = {"arriendo", "venta"}

HEX_COLOR_FIELDS = ("primary_color", "secondary_color")

MEDIA_EXTENSIONS = {".mp4", ".mov", ".webm", ".png", ".jpg", ".jpeg", ".webp"}


# ── Manifest loading ──────────────────────────────────────────────


def load_reel_manifest(manifest_path: str | Path) -> dict:
    """Load and validate a photo reel manifest.

    Returns:
        Config dict with video settings, the parsed records, photo list,
        durations and summary options. Pass it to scenes_from_manifest().

    Raises:
        ManifestError: Missing or invalid field.
        FileNotFoundError: Missing manifest file.
    """
    raw = _read(manifest_path)
    paths = raw.get("paths", {}) or {}

    config = _common_sections(raw, paths)
    config["text"] = _record(TextCompositionSettings, raw.get("text"), "text")
    for key in ("typography_scale", "badge_scale"):
        value = getattr(config["text"], key)
        if not isinstance(value, int) or not -50 <= value <= 100:
            raise ManifestError(f"text: '{key}' must be an integer in [-50, 100], got {value!r}")

    photos = raw.get("photos")
    if not isinstance(photos, list) or not photos:
        raise ManifestError("photos: at least one photo is required")
    config["photos"] = []
    for i, photo in enumerate(photos):
        if not isinstance(photo, str) or not photo.strip():
            raise ManifestError(f"photos, item {i}: must be a non-empty path or URL")
        config["photos"].append(resolve_path_vars(photo, paths))

    durations = raw.get("durations", {}) or {}
    config["durations"] = {
        "photo_ms": _positive_int(durations.get("photo_ms", 2000), "durations: 'photo_ms'"),
        "summary_ms": _positive_int(durations.get("summary_ms", 2500), "durations: 'summary_ms'"),
    }

    summary = raw.get("summary", {}) or {}
    background = summary.get("background", "solid")
    if background not in VALID_SUMMARY_BACKGROUNDS:
        raise ManifestError(
            f"summary: invalid background '{background}'. "
            f"Valid: {sorted(VALID_SUMMARY_BACKGROUNDS)}"
        )
    config["summary"] = {
        "include": bool(summary.get("include", True)),
        "background": background,
        "footer_text": str(summary.get("footer_text", "")),
    }
    return config


def load_clips_manifest(manifest_path: str | Path) -> dict:
    """Load and validate a multi-clip reel manifest.

    Returns:
        Config dict with video settings, the parsed records and a list of
        Clip objects. Pass it to overlays_from_manifest() for overlays.

    Raises:
        ManifestError: Missing or invalid field, or fewer than two clips.
        FileNotFoundError: Missing manifest file.
    """
    raw = _read(manifest_path)
    paths = raw.get("paths", {}) or {}

    config = _common_sections(raw, paths)
    clips_raw = raw.get("clips")
    if not isinstance(clips_raw, list) or len(clips_raw) < 2:
        raise ManifestError("clips: at least 2 clips are required")

    clips = []
    for i, item in enumerate(clips_raw):
        prefix = f"clips, item {i}"
        if isinstance(item, str):
            item = {"path": item}
        if not isinstance(item, dict) or "path" not in item:
            raise ManifestError(f"{prefix}: missing required field 'path'")
        subtitle = item.get("subtitle")
        if subtitle is not None and not isinstance(subtitle, str):
            raise ManifestError(f"{prefix}: 'subtitle' must be a string")
        clips.append(Clip(resolve_path_vars(str(item["path"]), paths), subtitle=subtitle))
    config["clips"] = clips
    return config


def scenes_from_manifest(config: dict) -> list:
    """Build the scene list described by a loaded reel manifest."""
    return build_scenes(
        config["property"],
        config["ally"],
        config["photos"],
        layers=config["layers"],
        logo=config["logo"],
        text=config["text"],
        gradient=config["gradient"],
        photo_duration_ms=config["durations"]["photo_ms"],
        summary_duration_ms=config["durations"]["summary_ms"],
        include_summary=config["summary"]["include"],
        summary_background=config["summary"]["background"],
        footer_mark=config["footer_mark"],
        footer_text=config["summary"]["footer_text"],
    )


def overlays_from_manifest(config: dict) -> list[ClipOverlay]:
    """Build one overlay per clip of a loaded clips manifest."""
    return build_clip_overlays(
        config["property"],
        config["ally"],
        config["clips"],
        layers=config["layers"],
        logo=config["logo"],
        gradient=config["gradient"],
        footer_mark=config["footer_mark"],
    )


def _read(manifest_path: str | Path) -> dict:
    with open(manifest_path) as f:
        raw = yaml.safe_load(f)
    if not isinstance(raw, dict):
        raise ManifestError(f"{manifest_path}: manifest must be a YAML mapping")
    return raw


def _common_sections(raw: dict, paths: dict) -> dict:
    """Sections shared by both manifest kinds."""
    config = {"video": _video(raw.get("video", {}) or {})}

    ally_raw = _resolve(raw.get("ally"), paths)
    if not isinstance(ally_raw, dict) or not ally_raw.get("name"):
        raise ManifestError("ally: missing required field 'name'")
    ally = _record(AllyConfig, {"logo": "", **ally_raw}, "ally")
    for key in HEX_COLOR_FIELDS:
        value = getattr(ally, key)
        if not (isinstance(value, str) and value.startswith("#") and len(value) == 7):
            raise ManifestError(f"ally: '{key}' must be a #RRGGBB color, got {value!r}")
    config["ally"] = ally

    config["property"] = _property(raw.get("property", {}) or {})
    config["layers"] = _record(VisualLayers, raw.get("layers"), "layers")
    for f in fields(VisualLayers):
        if not isinstance(getattr(config["layers"], f.name), bool):
            raise ManifestError(f"layers: '{f.name}' must be true or false")

    logo = _record(LogoSettings, raw.get("logo"), "logo")
    _choice(logo.position, VALID_LOGO_POSITIONS, "logo: position")
    _choice(logo.size, VALID_LOGO_SIZES, "logo: size")
    _choice(logo.shape, VALID_LOGO_SHAPES, "logo: shape")
    _choice(logo.background, VALID_LOGO_BACKGROUNDS, "logo: background")
    _choice(logo.animation, VALID_LOGO_ANIMATIONS, "logo: animation")
    _percent(logo.opacity, "logo: opacity")
    config["logo"] = logo

    gradient = _record(GradientSettings, raw.get("gradient"), "gradient")
    _choice(gradient.direction, VALID_GRADIENT_DIRECTIONS, "gradient: direction")
    _percent(gradient.intensity, "gradient: intensity")
    config["gradient"] = gradient

    mark = raw.get("footer_mark")
    config["footer_mark"] = resolve_path_vars(str(mark), paths) if mark else None
    return config


def _video(video: dict) -> dict:
    out = {}
    if "resolution" in video:
        res = video["resolution"]
        if not isinstance(res, list) or len(res) != 2:
            raise ManifestError("video: 'resolution' must be [width, height]")
        out["resolution"] = tuple(res)
    if "fps" in video:
        out["fps"] = _positive_int(video["fps"], "video: 'fps'")
    if "format" in video:
        _choice(video["format"], VALID_FORMATS, "video: format")
        out["format"] = video["format"]
    return out


def _property(raw: dict) -> PropertyData:
    prop = _record(PropertyData, raw, "property")
    _choice(prop.modality, VALID_MODALITIES, "property: modality")
    price_field = "sale_price" if prop.modality == "venta" else "rent"
    if getattr(prop, price_field) in (None, ""):
        raise ManifestError(f"property: '{price_field}' is required for modality '{prop.modality}'")
    for key in ("bedrooms", "bathrooms", "parking"):
        value = getattr(prop, key)
        if value is not None and (not isinstance(value, int) or value < 0):
            raise ManifestError(f"property: '{key}' must be a non-negative integer")
    if not isinstance(prop.subtitles, (list, tuple)):
        raise ManifestError("property: 'subtitles' must be a list")
    return PropertyData(**{
        **{f.name: getattr(prop, f.name) for f in fields(PropertyData)},
        "rent": None if prop.rent is None else str(prop.rent),
        "sale_price": None if prop.sale_price is None else str(prop.sale_price),
        "subtitles": tuple(str(s) for s in prop.subtitles),
    })


def _record(cls, raw, section: str):
    """Build a dataclass record from a section dict, rejecting unknown keys."""
    raw = raw or {}
    if not isinstance(raw, dict):
        raise ManifestError(f"{section}: must be a mapping")
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ManifestError(f"{section}: unknown field(s) {unknown}. Valid: {sorted(known)}")
    return cls(**raw)


def _resolve(obj, paths: dict):
    """Recursively resolve ${var} in all string values."""
    if isinstance(obj, str):
        return resolve_path_vars(obj, paths)
    elif isinstance(obj, dict):
        return {k: _resolve(v, paths) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_resolve(item, paths) for item in obj]
    return obj


def _choice(value, valid: set, name: str) -> None:
    if value not in valid:
        raise ManifestError(f"{name} '{value}' is invalid. Valid: {sorted(valid)}")


def _percent(value, name: str) -> None:
    if not isinstance(value, int) or not 0 <= value <= 100:
        raise ManifestError(f"{name} must be an integer in [0, 100], got {value!r}")


def _positive_int(value, name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise ManifestError(f"{name} must be a positive integer, got {value!r}")
    return value


# ── Path validation ───────────────────────────────────────────────


def validate_paths(config: dict) -> None:
    """Check that every local media file named by the manifest exists.

    Remote sources (http/https URLs) are skipped. Reports all missing
    paths at once.

    Raises:
        FileNotFoundError: Lists all missing files.
    """
    candidates = list(config.get("photos", []))
    candidates += [c.source for c in config.get("clips", []) if not isinstance(c.source, bytes)]
    ally = config.get("ally")
    if ally is not None and ally.logo:
        candidates.append(ally.logo)
    if config.get("footer_mark"):
        candidates.append(config["footer_mark"])

    missing = []
    for source in candidates:
        source = str(source)
        if source.startswith(("http://", "https://")):
            continue
        p = Path(source)
        if p.suffix.lower() in MEDIA_EXTENSIONS and not p.exists():
            missing.append(source)

    if missing:
        msg = f"Missing {len(missing)} file(s):\n"
        for p in missing:
            msg += f"  - {p}\n"
        raise FileNotFoundError(msg)
