"""Pipeline settings loaded from YAML.

Every threshold the pipeline relies on (minimum plausible artifact
size, stall window, stage timeouts) is empirical, so all of them live
here rather than in the modules that use them.

Settings file schema (every key optional):
  video:
    resolution: [1080, 1920]
    fps: 24
    format: mp4                  # mp4 | webm | gif
    pad_color: "#000000"
  engine:
    primary: "ffmpeg"            # path, name on PATH, or "bundled"
    mirrors: ["bundled"]
    load_attempts: 1
    retry_delay: 2.0
  timeouts:
    engine_load: 60
    transcode: 90
    live_capture_factor: 3.0
  stall_window: 5.0
  min_artifact_bytes: 10240
  live_capture: auto             # auto | on | off
  footer_mark: null              # path or URL of the footer logo
"""

import os
from dataclasses import dataclass, replace
from pathlib import Path

import yaml

from .common import parse_hex_color
from .errors import ManifestError


VALID_FORMATS = {"mp4", "webm", "gif"}

VALID_LIVE_CAPTURE_MODES = {"auto", "on", "off"}

ENGINE_ENV_VAR = "REELCOMPOSE_FFMPEG"

# imageio-ffmpeg's bundled binary, used as the default mirror.
BUNDLED_ENGINE = "bundled"


@dataclass(frozen=True)
class Settings:
    resolution: tuple[int, int] = (1080, 1920)
    fps: int = 24
    format: str = "mp4"
    pad_color: tuple[int, int, int] = (0, 0, 0)
    engine_primary: str = "ffmpeg"
    engine_mirrors: tuple[str, ...] = (BUNDLED_ENGINE,)
    engine_load_attempts: int = 1
    engine_retry_delay: float = 2.0
    engine_load_timeout: float | None = 60.0
    transcode_timeout: float | None = 90.0
    live_capture_factor: float = 3.0
    stall_window: float = 5.0
    min_artifact_bytes: int = 10 * 1024
    live_capture: str = "auto"
    footer_mark: str | None = None

    @property
    def engine_locations(self) -> list[str]:
        """Primary location first, then mirrors, without duplicates."""
        locations = []
        for loc in (self.engine_primary, *self.engine_mirrors):
            if loc and loc not in locations:
                locations.append(loc)
        return locations

    def with_overrides(self, **changes) -> "Settings":
        return replace(self, **changes)


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a YAML file, falling back to defaults.

    The REELCOMPOSE_FFMPEG environment variable, when set, replaces the
    primary engine location (the file's value becomes the first mirror).

    Raises:
        ManifestError: Invalid value in the settings file.
    """
    raw = {}
    if path is not None:
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
    settings = settings_from_dict(raw)

    env_engine = os.environ.get(ENGINE_ENV_VAR)
    if env_engine:
        mirrors = (settings.engine_primary, *settings.engine_mirrors)
        settings = settings.with_overrides(
            engine_primary=env_engine, engine_mirrors=tuple(mirrors),
        )
    return settings


def settings_from_dict(raw: dict) -> Settings:
    """Build Settings from a parsed YAML dict, validating every field."""
    kwargs = {}

    video = raw.get("video", {})
    if "resolution" in video:
        res = video["resolution"]
        if not isinstance(res, (list, tuple)) or len(res) != 2:
            raise ManifestError("Settings: video.resolution must be [width, height]")
        w, h = int(res[0]), int(res[1])
        if w <= 0 or h <= 0 or w % 2 or h % 2:
            raise ManifestError(
                f"Settings: video.resolution must be positive even numbers, got {w}x{h}"
            )
        kwargs["resolution"] = (w, h)
    if "fps" in video:
        fps = video["fps"]
        if not isinstance(fps, int) or fps <= 0:
            raise ManifestError(f"Settings: video.fps must be a positive integer, got {fps!r}")
        kwargs["fps"] = fps
    if "format" in video:
        fmt = video["format"]
        if fmt not in VALID_FORMATS:
            raise ManifestError(
                f"Settings: invalid video.format '{fmt}'. Valid: {sorted(VALID_FORMATS)}"
            )
        kwargs["format"] = fmt
    if "pad_color" in video:
        kwargs["pad_color"] = parse_hex_color(video["pad_color"])

    engine = raw.get("engine", {})
    if "primary" in engine:
        kwargs["engine_primary"] = str(engine["primary"])
    if "mirrors" in engine:
        kwargs["engine_mirrors"] = tuple(str(m) for m in engine["mirrors"])
    if "load_attempts" in engine:
        attempts = engine["load_attempts"]
        if not isinstance(attempts, int) or attempts < 1:
            raise ManifestError("Settings: engine.load_attempts must be >= 1")
        kwargs["engine_load_attempts"] = attempts
    if "retry_delay" in engine:
        kwargs["engine_retry_delay"] = _non_negative(engine["retry_delay"], "engine.retry_delay")

    timeouts = raw.get("timeouts", {})
    if "engine_load" in timeouts:
        kwargs["engine_load_timeout"] = _timeout(timeouts["engine_load"], "timeouts.engine_load")
    if "transcode" in timeouts:
        kwargs["transcode_timeout"] = _timeout(timeouts["transcode"], "timeouts.transcode")
    if "live_capture_factor" in timeouts:
        factor = _non_negative(timeouts["live_capture_factor"], "timeouts.live_capture_factor")
        if factor < 1:
            raise ManifestError("Settings: timeouts.live_capture_factor must be >= 1")
        kwargs["live_capture_factor"] = factor

    if "stall_window" in raw:
        window = _non_negative(raw["stall_window"], "stall_window")
        if window == 0:
            raise ManifestError("Settings: stall_window must be > 0")
        kwargs["stall_window"] = window
    if "min_artifact_bytes" in raw:
        kwargs["min_artifact_bytes"] = int(_non_negative(raw["min_artifact_bytes"], "min_artifact_bytes"))
    if "live_capture" in raw:
        mode = raw["live_capture"]
        # YAML parses bare on/off as booleans.
        if mode is True:
            mode = "on"
        elif mode is False:
            mode = "off"
        if mode not in VALID_LIVE_CAPTURE_MODES:
            raise ManifestError(
                f"Settings: invalid live_capture '{mode}'. "
                f"Valid: {sorted(VALID_LIVE_CAPTURE_MODES)}"
            )
        kwargs["live_capture"] = mode
    if raw.get("footer_mark"):
        kwargs["footer_mark"] = str(raw["footer_mark"])

    return Settings(**kwargs)


def _non_negative(value, name: str) -> float:
    if not isinstance(value, (int, float)) or isinstance(value, bool) or value < 0:
        raise ManifestError(f"Settings: {name} must be a number >= 0, got {value!r}")
    return float(value)


def _timeout(value, name: str) -> float | None:
    """Timeouts accept null for 'unbounded'."""
    if value is None:
        return None
    seconds = _non_negative(value, name)
    if seconds == 0:
        raise ManifestError(f"Settings: {name} must be > 0 (or null for no limit)")
    return seconds
