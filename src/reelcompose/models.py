"""Data model for reel generation.

Scene-level value objects are frozen dataclasses: a SceneDescriptor is
built once per render request and never mutated, which is what makes
the compositor a pure function of (descriptor, asset cache).

Clip and EncodingJob are mutable: a clip caches its probe result, and
a job moves through created -> running -> succeeded | failed.
"""

import enum
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from .errors import ManifestError


# ── Enumerations of valid values ─────────────────────────────────

VALID_GRADIENT_DIRECTIONS = {"none", "top", "bottom", "both"}

VALID_LOGO_POSITIONS = {"top-left", "top-right"}

VALID_LOGO_SIZES = {"small", "medium", "large"}

VALID_LOGO_SHAPES = {"square", "rounded", "squircle", "circle"}

VALID_LOGO_BACKGROUNDS = {"none", "flat", "frosted", "glow", "elevated", "gradient"}

VALID_LOGO_ANIMATIONS = {"none", "fade-in"}

VALID_SCENE_KINDS = {"photo", "summary"}

VALID_SUMMARY_BACKGROUNDS = {"solid", "blur", "mosaic"}

FORMAT_MIME = {
    "mp4": "video/mp4",
    "webm": "video/webm",
    "gif": "image/gif",
}

MIME_EXTENSION = {mime: fmt for fmt, mime in FORMAT_MIME.items()}

ProgressCallback = Callable[[float, str], None]


def _check_choice(value, valid: set, name: str) -> None:
    if value not in valid:
        raise ManifestError(f"Invalid {name} '{value}'. Valid: {sorted(valid)}")


def _check_percent(value, name: str) -> None:
    if not isinstance(value, (int, float)) or not 0 <= value <= 100:
        raise ManifestError(f"{name} must be between 0 and 100, got {value!r}")


class Strategy(enum.Enum):
    """Encoding strategies, in the order the selector prefers them."""

    LIVE_CAPTURE = "live"
    FRAME_SEQUENCE = "frames"


class JobState(enum.Enum):
    CREATED = "created"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


# ── Scene value objects ──────────────────────────────────────────


@dataclass(frozen=True)
class BrandColors:
    primary: tuple[int, int, int] = (37, 99, 235)
    secondary: tuple[int, int, int] = (17, 24, 39)


@dataclass(frozen=True)
class GradientSpec:
    direction: str = "both"
    intensity: int = 100

    def __post_init__(self):
        _check_choice(self.direction, VALID_GRADIENT_DIRECTIONS, "gradient direction")
        _check_percent(self.intensity, "Gradient intensity")

    @property
    def max_alpha(self) -> float:
        """Peak alpha of the ramp at the frame edge."""
        return (self.intensity / 100) * 0.7


@dataclass(frozen=True)
class LogoSpec:
    source: str
    position: str = "top-right"
    size: str = "medium"
    shape: str = "rounded"
    background: str = "elevated"
    opacity: int = 100
    animation: str = "fade-in"

    def __post_init__(self):
        _check_choice(self.position, VALID_LOGO_POSITIONS, "logo position")
        _check_choice(self.size, VALID_LOGO_SIZES, "logo size")
        _check_choice(self.shape, VALID_LOGO_SHAPES, "logo shape")
        _check_choice(self.background, VALID_LOGO_BACKGROUNDS, "logo background")
        _check_choice(self.animation, VALID_LOGO_ANIMATIONS, "logo animation")
        _check_percent(self.opacity, "Logo opacity")


@dataclass(frozen=True)
class TextBlock:
    title: str = ""
    location: str = ""
    price_label: str = ""
    price: str = ""
    badge: str = ""
    typography_scale: float = 1.0
    badge_scale: float = 1.0

    def __post_init__(self):
        if self.typography_scale <= 0 or self.badge_scale <= 0:
            raise ManifestError("Text scale multipliers must be > 0")


@dataclass(frozen=True)
class IconChip:
    """A feature chip such as bedrooms; rendered as "<value> <key>"."""

    key: str
    value: str

    @property
    def label(self) -> str:
        return f"{self.value} {self.key}".strip()


@dataclass(frozen=True)
class VisualLayers:
    show_photo: bool = True
    show_ally_logo: bool = True
    show_price: bool = True
    show_badge: bool = True
    show_icons: bool = True
    show_cta: bool = True


@dataclass(frozen=True)
class SummaryContent:
    """Text of the closing summary slide."""

    headline: str = ""
    price: str = ""
    location: str = ""
    features: str = ""
    call_to_action: str = ""
    contact: str = ""
    ally_name: str = ""
    background_style: str = "solid"

    def __post_init__(self):
        _check_choice(self.background_style, VALID_SUMMARY_BACKGROUNDS, "summary background")


@dataclass(frozen=True)
class SceneDescriptor:
    kind: str = "photo"
    background: str | None = None
    gradient: GradientSpec = field(default_factory=GradientSpec)
    logo: LogoSpec | None = None
    text: TextBlock = field(default_factory=TextBlock)
    chips: tuple[IconChip, ...] = ()
    layers: VisualLayers = field(default_factory=VisualLayers)
    brand: BrandColors = field(default_factory=BrandColors)
    footer_mark: str | None = None
    footer_text: str = ""
    summary: SummaryContent | None = None
    duration_ms: int = 2000

    def __post_init__(self):
        _check_choice(self.kind, VALID_SCENE_KINDS, "scene kind")
        if self.duration_ms <= 0:
            raise ManifestError(f"Scene duration must be > 0 ms, got {self.duration_ms}")
        if self.kind == "summary" and self.summary is None:
            raise ManifestError("Summary scenes need summary content")
        # Normalize lists passed by callers into tuples to stay hashable.
        if not isinstance(self.chips, tuple):
            object.__setattr__(self, "chips", tuple(self.chips))

    @property
    def duration(self) -> float:
        return self.duration_ms / 1000

    def asset_sources(self) -> list[str]:
        """Every asset id the compositor may read for this scene."""
        sources = []
        if self.background:
            sources.append(self.background)
        if self.logo is not None:
            sources.append(self.logo.source)
        if self.footer_mark:
            sources.append(self.footer_mark)
        return sources


# ── Clips ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ClipInfo:
    duration: float
    width: int
    height: int
    fps: float


@dataclass(eq=False)
class Clip:
    """An input video: byte payload or file path, probed lazily."""

    source: bytes | str | Path
    subtitle: str | None = None
    _info: ClipInfo | None = field(default=None, init=False, repr=False)

    def read_bytes(self) -> bytes:
        if isinstance(self.source, bytes):
            return self.source
        return Path(self.source).read_bytes()

    def probe(self) -> ClipInfo:
        """Read duration, size and frame rate (cached after the first call)."""
        if self._info is None:
            from moviepy import VideoFileClip

            if isinstance(self.source, bytes):
                with tempfile.TemporaryDirectory() as tmp:
                    path = Path(tmp) / "probe.mp4"
                    path.write_bytes(self.source)
                    with VideoFileClip(str(path), audio=False) as video:
                        self._info = _clip_info(video)
            else:
                with VideoFileClip(str(self.source), audio=False) as video:
                    self._info = _clip_info(video)
        return self._info

    @property
    def duration(self) -> float:
        return self.probe().duration


def _clip_info(video) -> ClipInfo:
    w, h = video.size
    return ClipInfo(duration=float(video.duration), width=int(w), height=int(h),
                    fps=float(video.fps))


# ── Jobs and artifacts ───────────────────────────────────────────


@dataclass(frozen=True)
class Artifact:
    data: bytes = field(repr=False)
    mime_type: str
    strategy: str | None = None

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        return MIME_EXTENSION.get(self.mime_type, "bin")

    def write(self, path: str | Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self.data)
        return path


@dataclass(eq=False)
class EncodingJob:
    scenes: tuple[SceneDescriptor, ...] = ()
    clips: tuple[Clip, ...] = ()
    width: int = 1080
    height: int = 1920
    fps: int = 24
    format: str = "mp4"
    strategy: Strategy | None = None
    progress: ProgressCallback | None = None
    timeout: float | None = None
    state: JobState = JobState.CREATED
    artifact: Artifact | None = None
    error: Exception | None = None

    def __post_init__(self):
        self.scenes = tuple(self.scenes)
        self.clips = tuple(self.clips)
        if bool(self.scenes) == bool(self.clips):
            raise ManifestError("A job needs either scenes or clips (exactly one kind)")
        _check_choice(self.format, set(FORMAT_MIME), "format")
        if self.width <= 0 or self.height <= 0 or self.width % 2 or self.height % 2:
            raise ManifestError(
                f"Resolution must be positive even numbers, got {self.width}x{self.height}"
            )
        if self.fps <= 0:
            raise ManifestError(f"fps must be > 0, got {self.fps}")

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    @property
    def mime_type(self) -> str:
        return FORMAT_MIME[self.format]

    @property
    def total_duration(self) -> float:
        """Expected playback duration in seconds."""
        if self.scenes:
            return sum(s.duration_ms for s in self.scenes) / 1000
        return sum(c.duration for c in self.clips)

    def report(self, percent: float, label: str) -> None:
        if self.progress is not None:
            self.progress(percent, label)

    def start(self) -> None:
        if self.state is not JobState.CREATED:
            raise RuntimeError(f"Job already {self.state.value}")
        self.state = JobState.RUNNING

    def succeed(self, artifact: Artifact) -> Artifact:
        self.state = JobState.SUCCEEDED
        self.artifact = artifact
        return artifact

    def fail(self, error: Exception) -> None:
        self.state = JobState.FAILED
        self.error = error


# ── UI collaborator records ──────────────────────────────────────
# Plain configuration structs supplied by the form layer.


@dataclass(frozen=True)
class AllyConfig:
    name: str
    logo: str
    primary_color: str = "#2563EB"
    secondary_color: str = "#111827"
    whatsapp: str = ""
    city: str = ""


@dataclass(frozen=True)
class PropertyData:
    property_type: str = "apartamento"
    modality: str = "arriendo"         # arriendo | venta
    rent: str | None = None
    sale_price: str | None = None
    location: str = ""
    bedrooms: int | None = None
    bathrooms: int | None = None
    parking: int | None = None
    area: float | None = None
    subtitles: tuple[str, ...] = ()


@dataclass(frozen=True)
class LogoSettings:
    position: str = "top-right"
    size: str = "medium"
    shape: str = "rounded"
    background: str = "elevated"
    opacity: int = 100
    animation: str = "fade-in"


@dataclass(frozen=True)
class TextCompositionSettings:
    """Typography sliders, in percent added on top of the base size."""

    typography_scale: int = 0
    badge_scale: int = 0


@dataclass(frozen=True)
class GradientSettings:
    direction: str = "both"
    intensity: int = 100
