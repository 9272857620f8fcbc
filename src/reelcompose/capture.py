"""Encoding strategies: live capture, frame-sequence export, transcode.

Live capture plays the scene timeline in real time into a surface
recorder (an imageio-ffmpeg VP8/WebM writer). It needs no engine
session but takes as long as the reel itself and its output is only as
good as the platform recorder, so the artifact is size-checked.

Frame-sequence export renders one still per visual state (each scene's
logo fade-in frames, then its settled frame), stages the PNGs in the
engine session together with an ffconcat script holding each still's
duration, and encodes the whole timeline with a single engine command.

The transcode stage converts a live capture artifact into the job's
target container when the recorder's native one does not match.
"""

import asyncio
import io
import logging
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

import imageio_ffmpeg
import numpy as np
from PIL import Image

from .assets import AssetCache
from .compositor import LOGO_FADE_SECONDS, render
from .config import Settings
from .engine import EngineSession
from .errors import (
    EmptyOutputError,
    EngineExecError,
    EngineIOError,
    EngineLoadError,
    StageTimeoutError,
    TranscodeError,
    UnsupportedPlatformError,
)
from .models import Artifact, EncodingJob, ProgressCallback, Strategy
from .progress import ProgressTracker, with_timeout
from .scheduler import SceneFrameScheduler, frame_plan, has_entrance

logger = logging.getLogger(__name__)

LIVE_MIME = "video/webm"
LIVE_BITRATE = "4M"


# ── Platform capability ──────────────────────────────────────────


@dataclass(frozen=True)
class Platform:
    """What the runtime can do. live_capture False routes around live capture."""

    live_capture: bool
    live_mime: str = LIVE_MIME
    reason: str = ""


def detect_platform(settings: Settings) -> Platform:
    """Resolve the live_capture setting into a Platform.

    "auto" enables live capture when imageio-ffmpeg can provide a
    recorder binary.
    """
    mode = settings.live_capture
    if mode == "off":
        return Platform(False, reason="disabled in settings")
    if mode == "on":
        return Platform(True)
    try:
        imageio_ffmpeg.get_ffmpeg_exe()
    except RuntimeError as e:
        return Platform(False, reason=f"no recorder binary ({e})")
    return Platform(True)


# ── Output encoding arguments ────────────────────────────────────


def output_args(fmt: str, fps: int) -> list[str]:
    """Engine arguments producing fmt at a constant fps, audio dropped."""
    if fmt == "mp4":
        return [
            "-vf", f"fps={fps},format=yuv420p",
            "-c:v", "libx264", "-preset", "veryfast", "-crf", "23",
            "-pix_fmt", "yuv420p", "-movflags", "+faststart", "-an",
        ]
    if fmt == "webm":
        return [
            "-vf", f"fps={fps},format=yuv420p",
            "-c:v", "libvpx", "-b:v", LIVE_BITRATE, "-auto-alt-ref", "0", "-an",
        ]
    if fmt == "gif":
        return [
            "-vf", f"fps={fps},split[a][b];[a]palettegen[p];[b][p]paletteuse",
            "-loop", "0",
        ]
    raise ValueError(f"Unknown output format '{fmt}'")


def encode_png(frame: np.ndarray) -> bytes:
    buf = io.BytesIO()
    Image.fromarray(frame).save(buf, format="PNG")
    return buf.getvalue()


def stage_progress(tracker: ProgressTracker, name: str):
    """Adapt a tracker stage to the engine's fraction-only callback."""
    stage = tracker.stage(name)
    return lambda fraction: stage.update(fraction)


# ── Surface recorder ─────────────────────────────────────────────


class SurfaceRecorder:
    """Records frames pushed to it into a WebM (VP8) file.

    The recorder encodes whatever it is given at the nominal fps; pacing
    frames to the wall clock is the caller's job.

    Usage:
        recorder = SurfaceRecorder(path, (1080, 1920), fps=24)
        recorder.start()
        recorder.write(frame)
        data = recorder.finish()
    """

    def __init__(self, path: str | Path, size: tuple[int, int], fps: int):
        self.path = Path(path)
        self.size = size
        self.fps = fps
        self.frames_written = 0
        self._writer = None

    def start(self) -> None:
        self._writer = imageio_ffmpeg.write_frames(
            str(self.path),
            self.size,
            fps=self.fps,
            codec="libvpx",
            quality=None,
            bitrate=LIVE_BITRATE,
            pix_fmt_in="rgb24",
            pix_fmt_out="yuv420p",
            macro_block_size=2,
            output_params=["-auto-alt-ref", "0"],
        )
        self._writer.send(None)  # prime the generator

    def write(self, frame: np.ndarray) -> None:
        if self._writer is None:
            raise RuntimeError("Recorder not started")
        self._writer.send(np.ascontiguousarray(frame, dtype=np.uint8))
        self.frames_written += 1

    def finish(self) -> bytes:
        """Close the stream and return the recorded bytes."""
        if self._writer is not None:
            writer, self._writer = self._writer, None
            writer.close()
        return self.path.read_bytes() if self.path.exists() else b""

    def abort(self) -> None:
        if self._writer is not None:
            writer, self._writer = self._writer, None
            try:
                writer.close()
            except (OSError, RuntimeError, ValueError) as e:
                # ValueError: the generator is still inside send().
                logger.debug("Recorder close after failure: %s", e)
        self.path.unlink(missing_ok=True)


RecorderFactory = Callable[[Path, tuple[int, int], int], SurfaceRecorder]


async def run_to_completion(func, *args):
    """Run func in a worker thread; on cancellation, wait for it first.

    A worker thread cannot be interrupted. When the awaiting task is
    cancelled (a stage timeout), the CancelledError is re-raised only
    after func has returned, so cleanup never races a call still running
    on the same recorder.
    """
    task = asyncio.ensure_future(asyncio.to_thread(func, *args))
    try:
        return await asyncio.shield(task)
    except asyncio.CancelledError:
        await asyncio.wait([task])
        if not task.cancelled() and task.exception() is not None:
            logger.debug("%s failed after cancellation: %s",
                         getattr(func, "__name__", func), task.exception())
        raise


async def play_in_real_time(frames, recorder: SurfaceRecorder, fps: int,
                            on_frame: Callable[[int], None] | None = None) -> int:
    """Feed frames to the recorder, each at its wall-clock boundary.

    frames is an async frame source: an awaitable returning the next
    frame, or None at the end. Returns the number of frames recorded.
    """
    loop = asyncio.get_running_loop()
    start = loop.time()
    index = 0
    while True:
        frame = await frames()
        if frame is None:
            return index
        delay = start + index / fps - loop.time()
        if delay > 0:
            await asyncio.sleep(delay)
        await run_to_completion(recorder.write, frame)
        index += 1
        if on_frame is not None:
            on_frame(index)


# ── Live capture ─────────────────────────────────────────────────


class LiveCapture:
    """Real-time recording of the scene timeline."""

    strategy = Strategy.LIVE_CAPTURE

    def __init__(
        self,
        platform: Platform,
        cache: AssetCache,
        settings: Settings,
        recorder_factory: RecorderFactory = SurfaceRecorder,
    ):
        self.platform = platform
        self.cache = cache
        self.settings = settings
        self.recorder_factory = recorder_factory

    async def encode(self, job: EncodingJob, progress: ProgressCallback | None = None) -> Artifact:
        """Record the job's scenes in real time.

        Raises:
            UnsupportedPlatformError: The platform cannot record.
            EmptyOutputError: The recording is below min_artifact_bytes.
        """
        if not self.platform.live_capture:
            raise UnsupportedPlatformError(
                f"Live capture unavailable: {self.platform.reason or 'unsupported'}"
            )
        tracker = ProgressTracker(progress, {"preload": 5, "record": 85, "finalize": 10})
        sources = [s for scene in job.scenes for s in scene.asset_sources()]
        await self.cache.preload(sources)
        tracker.stage("preload").complete("Loading images")

        scheduler = SceneFrameScheduler(list(job.scenes), self.cache, job.size, job.fps)
        record = tracker.stage("record")
        total = max(1, scheduler.total_frames)
        logger.info(
            "Live capture: %d frames (%.1fs) at %dfps",
            scheduler.total_frames, scheduler.duration, job.fps,
        )

        tmp = Path(tempfile.mkdtemp(prefix="reelcompose-live-"))
        recorder = self.recorder_factory(tmp / "capture.webm", job.size, job.fps)
        try:
            await run_to_completion(recorder.start)

            async def next_frame():
                return await run_to_completion(scheduler.next_frame)

            await play_in_real_time(
                next_frame, recorder, job.fps,
                on_frame=lambda i: record.update(i / total, "Recording video"),
            )
            data = await run_to_completion(recorder.finish)
        except BaseException:
            await asyncio.to_thread(recorder.abort)
            raise
        finally:
            shutil.rmtree(tmp, ignore_errors=True)

        if len(data) < self.settings.min_artifact_bytes:
            raise EmptyOutputError(len(data), self.settings.min_artifact_bytes)
        tracker.stage("finalize").complete("Recording finished")
        logger.info("Live capture produced %d bytes", len(data))
        return Artifact(data, self.platform.live_mime, strategy=self.strategy.value)


# ── Frame-sequence export ────────────────────────────────────────


@dataclass(frozen=True)
class Still:
    """One staged image and how long it stays on screen."""

    scene_index: int
    elapsed: float | None
    frames: int


def plan_stills(scenes, fps: int) -> list[Still]:
    """Stills covering the timeline: fade-in frames, then a settled still."""
    stills = []
    fade_frames = round(LOGO_FADE_SECONDS * fps)
    for span in frame_plan(list(scenes), fps):
        if span.count == 0:
            continue
        animated = min(fade_frames, span.count) if has_entrance(span.scene) else 0
        for k in range(animated):
            stills.append(Still(span.index, k / fps, 1))
        if span.count > animated:
            stills.append(Still(span.index, None, span.count - animated))
    return stills


def ffconcat_script(names: list[str], frame_counts: list[int], fps: int) -> str:
    """ffconcat playlist showing each still for its frame count.

    The demuxer ignores the last entry's duration, so the last still is
    listed once more.
    """
    lines = ["ffconcat version 1.0"]
    for name, count in zip(names, frame_counts):
        lines.append(f"file '{name}'")
        lines.append(f"duration {count / fps:.6f}")
    if names:
        lines.append(f"file '{names[-1]}'")
    return "\n".join(lines) + "\n"


class FrameSequenceExport:
    """Deterministic export through the engine session."""

    strategy = Strategy.FRAME_SEQUENCE

    def __init__(self, session: EngineSession, cache: AssetCache, settings: Settings):
        self.session = session
        self.cache = cache
        self.settings = settings

    async def encode(self, job: EncodingJob, progress: ProgressCallback | None = None) -> Artifact:
        """Render every still, then encode them in one engine command.

        Stills are rendered strictly in order; each one's assets are
        loaded before it is rendered and it is staged before the next
        render starts. Every staged file is deleted on exit.
        """
        tracker = ProgressTracker(progress, {"load": 20, "render": 50, "encode": 30})
        await self.session.load(on_progress=stage_progress(tracker, "load"))
        tracker.stage("load").complete("Video engine ready")

        scenes = list(job.scenes)
        stills = plan_stills(scenes, job.fps)
        total_frames = sum(s.frames for s in stills)
        render_stage = tracker.stage("render")
        output = f"output.{job.format}"

        async with self.session.acquire():
            async with self.session.staging() as area:
                names = []
                for i, still in enumerate(stills):
                    scene = scenes[still.scene_index]
                    await self.cache.preload(scene.asset_sources())
                    frame = await asyncio.to_thread(
                        render, scene, self.cache, job.size, still.elapsed,
                    )
                    png = await asyncio.to_thread(encode_png, frame)
                    name = await area.write(f"frame_{i:05d}.png", png)
                    names.append(name)
                    render_stage.update(
                        (i + 1) / len(stills),
                        f"Rendering frame {i + 1}/{len(stills)}",
                    )

                script = ffconcat_script(names, [s.frames for s in stills], job.fps)
                await area.write("frames.ffconcat", script.encode())
                area.track(output)

                logger.info(
                    "Frame export: %d stills, %d frames -> %s",
                    len(stills), total_frames, output,
                )
                encode_stage = tracker.stage("encode")
                encode_stage.update(0.0, "Encoding video")
                await self.session.exec(
                    ["-f", "concat", "-safe", "0", "-i", "frames.ffconcat",
                     *output_args(job.format, job.fps), output],
                    on_progress=lambda f: encode_stage.update(f, "Encoding video"),
                    duration=total_frames / job.fps,
                )
                data = await area.read(output)

        if not data:
            raise EmptyOutputError(0, 1)
        tracker.finish("Video ready")
        return Artifact(data, job.mime_type, strategy=self.strategy.value)


# ── Transcode stage ──────────────────────────────────────────────

_INPUT_EXTENSION = {"video/webm": "webm", "video/mp4": "mp4", "image/gif": "gif"}


class TranscodeStage:
    """Convert a captured artifact into the job's target format.

    Raises TranscodeError on any engine failure or timeout, after the
    staged files are gone.
    """

    def __init__(self, session: EngineSession, settings: Settings):
        self.session = session
        self.settings = settings

    def needed(self, artifact: Artifact, job: EncodingJob) -> bool:
        return artifact.mime_type != job.mime_type

    async def run(self, artifact: Artifact, job: EncodingJob,
                  progress: ProgressCallback | None = None) -> Artifact:
        if not self.needed(artifact, job):
            return artifact
        try:
            return await with_timeout(
                self._transcode(artifact, job, progress),
                self.settings.transcode_timeout,
                "transcode",
            )
        except (EngineLoadError, EngineExecError, EngineIOError, StageTimeoutError) as e:
            logger.warning("Transcode to %s failed: %s", job.format, e)
            raise TranscodeError(f"Could not transcode to {job.format}: {e}") from e

    async def _transcode(self, artifact: Artifact, job: EncodingJob,
                         progress: ProgressCallback | None) -> Artifact:
        tracker = ProgressTracker(progress, {"load": 20, "transcode": 80})
        await self.session.load(on_progress=stage_progress(tracker, "load"))
        source = f"capture.{_INPUT_EXTENSION.get(artifact.mime_type, 'bin')}"
        output = f"transcoded.{job.format}"
        stage = tracker.stage("transcode")
        async with self.session.acquire():
            async with self.session.staging() as area:
                await area.write(source, artifact.data)
                area.track(output)
                stage.update(0.0, "Converting video")
                await self.session.exec(
                    ["-i", source, *output_args(job.format, job.fps), output],
                    on_progress=lambda f: stage.update(f, "Converting video"),
                    duration=job.total_duration,
                )
                data = await area.read(output)
        tracker.finish("Conversion finished")
        return Artifact(data, job.mime_type, strategy=artifact.strategy)
