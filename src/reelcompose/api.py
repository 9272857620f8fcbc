"""Public entry points: generate_reel and generate_multi_clip_reel.

Both resolve to an Artifact (bytes + MIME type) or raise a typed error.
Failures with a fallback are absorbed inside; callers see
ReelGenerationError only once every strategy is exhausted, and
ManifestError for invalid input.

Example:
    settings = load_settings("reel-settings.yaml")
    scenes = build_scenes(prop, ally, photos)
    artifact = await generate_reel(scenes, ReelOptions(progress=print_progress,
                                                       settings=settings))
    artifact.write("reel.mp4")
"""

import logging
from dataclasses import dataclass, replace

import httpx

from .assets import FETCH_TIMEOUT, AssetCache
from .capture import (
    FrameSequenceExport,
    LiveCapture,
    Platform,
    RecorderFactory,
    SurfaceRecorder,
    TranscodeStage,
    detect_platform,
)
from .concat import concatenate_clips
from .config import Settings
from .engine import EngineSession, get_engine_session
from .models import (
    Artifact,
    Clip,
    EncodingJob,
    ProgressCallback,
    SceneDescriptor,
    Strategy,
)
from .overlays import ClipOverlay
from .strategy import StrategyHistory, encode_with_fallback

logger = logging.getLogger(__name__)

# Live capture failures are remembered for the life of the process.
_HISTORY = StrategyHistory()


@dataclass
class ReelOptions:
    """Per-call options. Unset values come from settings."""

    width: int | None = None
    height: int | None = None
    fps: int | None = None
    format: str | None = None
    progress: ProgressCallback | None = None
    strategy: Strategy | None = None
    timeout: float | None = None
    settings: Settings | None = None
    overlays: list[ClipOverlay | None] | None = None
    allow_single: bool = False

    def resolved_settings(self) -> Settings:
        return self.settings or Settings()

    def job(self, scenes=(), clips=()) -> EncodingJob:
        settings = self.resolved_settings()
        width, height = settings.resolution
        return EncodingJob(
            scenes=tuple(scenes),
            clips=tuple(clips),
            width=self.width or width,
            height=self.height or height,
            fps=self.fps or settings.fps,
            format=self.format or settings.format,
            strategy=self.strategy,
            progress=self.progress,
            timeout=self.timeout,
        )


def _with_footer_mark(scenes: list[SceneDescriptor], settings: Settings) -> list[SceneDescriptor]:
    """Apply the configured footer mark to scenes that do not name one."""
    if not settings.footer_mark:
        return scenes
    return [s if s.footer_mark else replace(s, footer_mark=settings.footer_mark)
            for s in scenes]


async def generate_reel(
    scenes: list[SceneDescriptor],
    opts: ReelOptions | None = None,
    *,
    cache: AssetCache | None = None,
    session: EngineSession | None = None,
    platform: Platform | None = None,
    history: StrategyHistory | None = None,
    recorder_factory: RecorderFactory = SurfaceRecorder,
) -> Artifact:
    """Encode a scene sequence into a reel.

    Raises:
        ManifestError: No scenes, or invalid job parameters.
        ReelGenerationError: Every strategy failed.
    """
    opts = opts or ReelOptions()
    settings = opts.resolved_settings()
    job = opts.job(scenes=_with_footer_mark(list(scenes), settings))
    session = session or get_engine_session(settings)
    platform = platform or detect_platform(settings)
    history = history if history is not None else _HISTORY
    logger.info(
        "Generating reel: %d scenes, %.1fs, %dx%d@%d %s",
        len(job.scenes), job.total_duration, job.width, job.height, job.fps, job.format,
    )

    async with _asset_cache(cache) as assets:
        return await encode_with_fallback(
            job,
            platform=platform,
            history=history,
            settings=settings,
            live=LiveCapture(platform, assets, settings, recorder_factory),
            export=FrameSequenceExport(session, assets, settings),
            transcoder=TranscodeStage(session, settings),
        )


async def generate_multi_clip_reel(
    clips: list[Clip],
    opts: ReelOptions | None = None,
    *,
    cache: AssetCache | None = None,
    session: EngineSession | None = None,
    recorder_factory: RecorderFactory = SurfaceRecorder,
) -> Artifact:
    """Normalize and join clips into one reel with per-clip overlays.

    Raises:
        ManifestError: Fewer than two clips (unless opts.allow_single).
        ReelGenerationError: Engine and recapture paths both failed.
    """
    opts = opts or ReelOptions()
    settings = opts.resolved_settings()
    job = opts.job(clips=clips)
    session = session or get_engine_session(settings)
    logger.info("Joining %d clips into %dx%d@%d %s",
                len(job.clips), job.width, job.height, job.fps, job.format)

    async with _asset_cache(cache) as assets:
        return await concatenate_clips(
            job,
            session=session,
            cache=assets,
            settings=settings,
            overlays=opts.overlays,
            allow_single=opts.allow_single,
            recorder_factory=recorder_factory,
        )


class _asset_cache:
    """Use the caller's cache, or a fresh one with its own HTTP client."""

    def __init__(self, cache: AssetCache | None):
        self._given = cache
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> AssetCache:
        if self._given is not None:
            return self._given
        self._client = httpx.AsyncClient(timeout=FETCH_TIMEOUT, follow_redirects=True)
        return AssetCache(client=self._client)

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._client is not None:
            await self._client.aclose()
