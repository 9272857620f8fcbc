"""Normalize and join clips into one reel.

Engine path (preferred):
  1. Load the engine (0-20%).
  2. Stage every clip and its overlay PNG.
  3. Normalize each clip on its own: fit inside the target frame, pad
     the rest with a solid color, square pixels, canonical fps, H.264
     ultrafast/crf 28, no audio, overlay burned in. Every normalized clip
     ends up with identical codec parameters.
  4. Join them with the concat demuxer and `-c copy` (no re-encode at
     the joins).
  5. Read the result; every staged file is deleted whatever happens.

Recapture path (engine cannot load):
  Each clip is decoded, letterboxed, overlaid and fed to one surface
  recorder in real time. A stall watchdog aborts a clip whose playback
  stops advancing; the pipeline then retries the engine path once.
"""

import asyncio
import logging
import shutil
import tempfile
from pathlib import Path

import numpy as np

from .assets import AssetCache
from .capture import (
    RecorderFactory,
    SurfaceRecorder,
    output_args,
    play_in_real_time,
    run_to_completion,
)
from .common import letterbox_geometry
from .config import Settings
from .engine import EngineSession
from .errors import (
    EmptyOutputError,
    EngineLoadError,
    ManifestError,
    ReelError,
    ReelGenerationError,
    StallError,
)
from .models import Artifact, Clip, EncodingJob
from .overlays import ClipOverlay, overlay_png, render_clip_overlay
from .progress import Heartbeat, ProgressTracker
from .scheduler import ClipFrameSource, FrameOpener, PlaybackWatchdog, open_with_moviepy

logger = logging.getLogger(__name__)

NORMALIZE_ARGS = [
    "-c:v", "libx264", "-preset", "ultrafast", "-crf", "28",
    "-pix_fmt", "yuv420p", "-movflags", "+faststart", "-an",
]


def _hex(color: tuple[int, int, int]) -> str:
    return "0x{:02X}{:02X}{:02X}".format(*color)


def normalize_filter(
    src_size: tuple[int, int],
    size: tuple[int, int],
    fps: int,
    pad_color: tuple[int, int, int] = (0, 0, 0),
    with_overlay: bool = False,
) -> str:
    """filter_complex graph normalizing input 0 (and overlaying input 1).

    Output pad is labelled [v].
    """
    dst_w, dst_h = size
    w, h, x, y = letterbox_geometry(*src_size, dst_w, dst_h)
    chain = (
        f"[0:v]scale={w}:{h},pad={dst_w}:{dst_h}:{x}:{y}:color={_hex(pad_color)},"
        f"setsar=1,fps={fps}"
    )
    if with_overlay:
        return f"{chain}[base];[base][1:v]overlay=0:0:format=auto,format=yuv420p[v]"
    return f"{chain},format=yuv420p[v]"


def concat_list(names: list[str]) -> str:
    return "".join(f"file '{name}'\n" for name in names)


async def concat_with_engine(
    job: EncodingJob,
    session: EngineSession,
    patches: list[np.ndarray | None],
    settings: Settings,
    tracker: ProgressTracker,
) -> Artifact:
    """Normalize and join the job's clips with the engine.

    Raises:
        EngineLoadError: The engine could not be loaded.
        EngineExecError, EngineIOError: A staged command or file failed.
    """
    load = tracker.stage("load")
    await session.load(on_progress=lambda f: load.update(f, "Loading video engine"))
    load.complete("Video engine ready")

    clips = list(job.clips)
    infos = [await asyncio.to_thread(c.probe) for c in clips]
    durations = [max(i.duration, 1e-3) for i in infos]
    total = sum(durations)
    normalize = tracker.stage("normalize")
    done = 0.0

    async with session.acquire():
        async with session.staging() as area:
            normalized = []
            for i, (clip, info, patch) in enumerate(zip(clips, infos, patches)):
                label = f"Processing video {i + 1}/{len(clips)}"
                source = await area.write(f"input{i}.mp4", await asyncio.to_thread(clip.read_bytes))
                args = ["-i", source]
                if patch is not None:
                    args += ["-i", await area.write(f"overlay{i}.png", overlay_png(patch))]
                out = area.track(f"norm{i}.mp4")
                args += [
                    "-filter_complex",
                    normalize_filter((info.width, info.height), job.size, job.fps,
                                     settings.pad_color, with_overlay=patch is not None),
                    "-map", "[v]", *NORMALIZE_ARGS, out,
                ]
                start = done

                def on_progress(f, start=start, span=durations[i], label=label):
                    normalize.update((start + f * span) / total, label)

                normalize.update(start / total, label)
                await session.exec(args, on_progress=on_progress, duration=durations[i])
                # Inputs are no longer needed once normalized.
                await session.delete(source)
                done += durations[i]
                normalized.append(out)
            normalize.complete("Videos processed")

            await area.write("list.txt", concat_list(normalized).encode())
            joined = area.track("output.mp4")
            async with Heartbeat(tracker.stage("concat"), "Joining videos", step=0.02, cap=0.95):
                await session.exec(["-f", "concat", "-safe", "0", "-i", "list.txt",
                                    "-c", "copy", joined])
            tracker.stage("concat").complete("Videos joined")

            final = joined
            if job.format != "mp4":
                final = area.track(f"output_final.{job.format}")
                await session.exec(["-i", joined, *output_args(job.format, job.fps), final],
                                   duration=total)
            data = await area.read(final)

    if not data:
        raise EmptyOutputError(0, 1)
    tracker.stage("finalize").complete("Video ready")
    return Artifact(data, job.mime_type, strategy="engine")


async def recapture_clips(
    job: EncodingJob,
    patches: list[np.ndarray | None],
    settings: Settings,
    tracker: ProgressTracker,
    recorder_factory: RecorderFactory = SurfaceRecorder,
    opener: FrameOpener = open_with_moviepy,
) -> Artifact:
    """Play every clip into one recorder in real time.

    The result is always WebM, the recorder's container.

    Raises:
        StallError: A clip's playback stopped advancing.
        EmptyOutputError: The recording is below min_artifact_bytes.
    """
    clips = list(job.clips)
    stage = tracker.stage("normalize")
    tmp = Path(tempfile.mkdtemp(prefix="reelcompose-recapture-"))
    recorder = recorder_factory(tmp / "recapture.webm", job.size, job.fps)
    try:
        await run_to_completion(recorder.start)
        for i, (clip, patch) in enumerate(zip(clips, patches)):
            label = f"Recording video {i + 1}/{len(clips)}"
            watchdog = PlaybackWatchdog(settings.stall_window, clip_index=i)
            source = ClipFrameSource(clip, job.size, job.fps, patch, watchdog=watchdog,
                                     pad_color=settings.pad_color, opener=opener)
            async with source:
                await play_in_real_time(source.next_frame, recorder, job.fps)
            stage.update((i + 1) / len(clips), label)
            logger.info("Recaptured clip %d (%d frames)", i, source.frames_read)
        data = await run_to_completion(recorder.finish)
    except BaseException:
        await asyncio.to_thread(recorder.abort)
        raise
    finally:
        shutil.rmtree(tmp, ignore_errors=True)

    if len(data) < settings.min_artifact_bytes:
        raise EmptyOutputError(len(data), settings.min_artifact_bytes)
    if job.format != "webm":
        logger.warning("Recapture produces WebM; requested %s is not available", job.format)
    tracker.stage("concat").complete("Videos joined")
    tracker.stage("finalize").complete("Video ready")
    return Artifact(data, "video/webm", strategy="recapture")


async def concatenate_clips(
    job: EncodingJob,
    *,
    session: EngineSession,
    cache: AssetCache,
    settings: Settings,
    overlays: list[ClipOverlay | None] | None = None,
    allow_single: bool = False,
    recorder_factory: RecorderFactory = SurfaceRecorder,
    opener: FrameOpener = open_with_moviepy,
) -> Artifact:
    """Join the job's clips, falling back to recapture without an engine.

    Order: engine path; on EngineLoadError the recapture path; on a stall
    during recapture one more engine attempt. Anything else fails the job.

    Raises:
        ManifestError: Fewer than two clips (unless allow_single), or an
            overlay list that does not match the clips.
        ReelGenerationError: Every path failed.
    """
    clips: list[Clip] = list(job.clips)
    if not clips or (len(clips) < 2 and not allow_single):
        raise ManifestError("At least 2 clips are required to concatenate")
    if overlays is not None and len(overlays) != len(clips):
        raise ManifestError(f"Got {len(overlays)} overlays for {len(clips)} clips")

    job.start()
    tracker = ProgressTracker(job.progress, {"load": 20, "normalize": 60, "concat": 15, "finalize": 5})

    overlays = overlays or [None] * len(clips)
    await cache.preload([s for o in overlays if o is not None for s in o.asset_sources()])
    patches = [render_clip_overlay(o, cache, job.size) if o is not None else None
               for o in overlays]

    failures: list[tuple[str, Exception]] = []
    attempt = "engine"
    try:
        try:
            artifact = await concat_with_engine(job, session, patches, settings, tracker)
        except EngineLoadError as e:
            logger.warning("Engine unavailable, recapturing clips: %s", e)
            failures.append(("engine", e))
            attempt = "recapture"
            try:
                artifact = await recapture_clips(job, patches, settings, tracker,
                                                 recorder_factory, opener)
            except StallError as stall:
                logger.warning("Recapture stalled, retrying with the engine: %s", stall)
                failures.append(("recapture", stall))
                attempt = "engine retry"
                artifact = await concat_with_engine(job, session, patches, settings, tracker)
    except Exception as e:
        if not isinstance(e, ReelError):
            logger.warning("Concat %s failed unexpectedly", attempt, exc_info=True)
        failures.append((attempt, e))
        error = ReelGenerationError(failures=failures)
        job.fail(error)
        raise error from e

    tracker.finish("Video ready")
    return job.succeed(artifact)
